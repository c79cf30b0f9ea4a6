"""
Credential hashing and the per-request authorization context.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from folio.errors import NotAuthenticatedError, PermissionDeniedError

SESSION_ACCOUNT_KEY = "account_id"
SESSION_ADMIN_KEY = "is_admin"
SESSION_ADMIN_EMAIL_KEY = "admin_email"


class CredentialVerifier(Protocol):
    """Turns passwords into stored credentials and checks them later."""

    def hash(self, password: str, salt: Optional[str] = None) -> tuple[str, str]:
        ...

    def verify(self, password: str, password_hash: str, salt: str) -> bool:
        ...


class Pbkdf2CredentialVerifier:
    """Salted PBKDF2-SHA256; hashes and salts are stored hex-encoded."""

    def __init__(self, iterations: int = 120_000, salt_bytes: int = 16):
        self.iterations = iterations
        self.salt_bytes = salt_bytes

    def hash(self, password: str, salt: Optional[str] = None) -> tuple[str, str]:
        if not salt:
            salt = secrets.token_hex(self.salt_bytes)
        dk = hashlib.pbkdf2_hmac(
            "sha256", password.encode(), bytes.fromhex(salt), self.iterations
        )
        return dk.hex(), salt

    def verify(self, password: str, password_hash: str, salt: str) -> bool:
        if not password_hash or not salt:
            return False
        computed, _ = self.hash(password, salt)
        return hmac.compare_digest(computed, password_hash)


@dataclass(frozen=True)
class AuthContext:
    """Who is calling, resolved once at request entry."""

    account_id: Optional[str] = None
    is_admin: bool = False

    @classmethod
    def from_session(
        cls, session: Mapping, configured_admin_email: Optional[str]
    ) -> "AuthContext":
        """Build the context from verified session data.

        Admin rights need both the session flag and a session e-mail equal to
        the configured administrator address.
        """
        admin_email = session.get(SESSION_ADMIN_EMAIL_KEY)
        is_admin = bool(
            session.get(SESSION_ADMIN_KEY)
            and configured_admin_email
            and admin_email
            and hmac.compare_digest(str(admin_email).encode(), configured_admin_email.encode())
        )
        account_id = session.get(SESSION_ACCOUNT_KEY)
        return cls(account_id=str(account_id) if account_id else None, is_admin=is_admin)

    @property
    def is_authenticated(self) -> bool:
        return self.account_id is not None


def require_account(ctx: AuthContext) -> str:
    if not ctx.is_authenticated:
        raise NotAuthenticatedError()
    return ctx.account_id


def require_owner(ctx: AuthContext, account_id: str) -> None:
    """The caller must be signed in as ``account_id``."""
    if require_account(ctx) != account_id:
        raise PermissionDeniedError()


def require_admin(ctx: AuthContext) -> None:
    if not ctx.is_admin:
        raise PermissionDeniedError("Admin access required")


def check_admin_credentials(
    email: str,
    password: str,
    configured_email: Optional[str],
    configured_password: Optional[str],
) -> bool:
    """Compare submitted admin credentials against configuration in constant time."""
    if not configured_email or not configured_password:
        return False
    email_ok = hmac.compare_digest(email.encode(), configured_email.encode())
    password_ok = hmac.compare_digest(password.encode(), configured_password.encode())
    return email_ok and password_ok
