import unittest

from folio.auth import (
    SESSION_ACCOUNT_KEY,
    SESSION_ADMIN_EMAIL_KEY,
    SESSION_ADMIN_KEY,
    AuthContext,
    Pbkdf2CredentialVerifier,
    check_admin_credentials,
    require_account,
    require_admin,
    require_owner,
)
from folio.errors import NotAuthenticatedError, PermissionDeniedError


class CredentialVerifierTests(unittest.TestCase):
    def setUp(self):
        # Low iteration count keeps the tests quick.
        self.verifier = Pbkdf2CredentialVerifier(iterations=1000)

    def test_hash_and_verify(self):
        password_hash, salt = self.verifier.hash("hunter2")
        self.assertNotEqual(password_hash, "hunter2")
        self.assertTrue(self.verifier.verify("hunter2", password_hash, salt))
        self.assertFalse(self.verifier.verify("hunter3", password_hash, salt))

    def test_salts_differ_per_hash(self):
        first, salt_a = self.verifier.hash("same")
        second, salt_b = self.verifier.hash("same")
        self.assertNotEqual(salt_a, salt_b)
        self.assertNotEqual(first, second)

    def test_missing_stored_credentials_never_verify(self):
        self.assertFalse(self.verifier.verify("anything", "", ""))


class AuthContextTests(unittest.TestCase):
    def test_anonymous_session(self):
        ctx = AuthContext.from_session({}, "admin@example.com")
        self.assertFalse(ctx.is_authenticated)
        self.assertFalse(ctx.is_admin)
        with self.assertRaises(NotAuthenticatedError):
            require_account(ctx)

    def test_account_session(self):
        ctx = AuthContext.from_session({SESSION_ACCOUNT_KEY: "u1"}, None)
        self.assertEqual(require_account(ctx), "u1")
        require_owner(ctx, "u1")
        with self.assertRaises(PermissionDeniedError):
            require_owner(ctx, "u2")
        with self.assertRaises(PermissionDeniedError):
            require_admin(ctx)

    def test_admin_needs_matching_email(self):
        session = {SESSION_ADMIN_KEY: True, SESSION_ADMIN_EMAIL_KEY: "admin@example.com"}
        self.assertTrue(AuthContext.from_session(session, "admin@example.com").is_admin)
        self.assertFalse(AuthContext.from_session(session, "other@example.com").is_admin)
        self.assertFalse(AuthContext.from_session(session, None).is_admin)

    def test_admin_flag_without_email_is_not_admin(self):
        ctx = AuthContext.from_session({SESSION_ADMIN_KEY: True}, "admin@example.com")
        self.assertFalse(ctx.is_admin)


class AdminCredentialTests(unittest.TestCase):
    def test_check_admin_credentials(self):
        self.assertTrue(
            check_admin_credentials("a@example.com", "pw", "a@example.com", "pw")
        )
        self.assertFalse(
            check_admin_credentials("a@example.com", "nope", "a@example.com", "pw")
        )
        self.assertFalse(
            check_admin_credentials("b@example.com", "pw", "a@example.com", "pw")
        )

    def test_unconfigured_admin_rejects_everything(self):
        self.assertFalse(check_admin_credentials("", "", None, None))
        self.assertFalse(check_admin_credentials("a@example.com", "pw", "a@example.com", ""))


if __name__ == "__main__":
    unittest.main()
