"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from fastapi import Depends, Request

from folio.auth import AuthContext, CredentialVerifier, Pbkdf2CredentialVerifier
from folio.config import Settings, get_settings
from folio.db import InMemoryRecordStore, RecordStore, SqlRecordStore
from folio.deletion import DeletionCoordinator
from folio.intake import UploadIntake
from folio.linker import OwnershipLinker
from folio.storage import BlobStore, InMemoryBlobStore, LocalBlobStore, S3BlobStore

_record_store: RecordStore | None = None
_blob_store: BlobStore | None = None
_credential_verifier: CredentialVerifier | None = None


def get_record_store() -> RecordStore:
    """
    Return a singleton record store so state persists across requests.
    """
    global _record_store
    if _record_store:
        return _record_store

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _record_store = InMemoryRecordStore()
    else:
        _record_store = SqlRecordStore(settings.database_url)
    return _record_store


def get_blob_store() -> BlobStore:
    global _blob_store
    if _blob_store:
        return _blob_store

    settings = get_settings()
    if settings.use_in_memory_backends:
        _blob_store = InMemoryBlobStore()
    elif settings.storage_backend == "s3":
        if not settings.s3_bucket:
            raise ValueError("S3_BUCKET is required when STORAGE_BACKEND=s3")
        _blob_store = S3BlobStore(
            bucket_name=settings.s3_bucket,
            region=settings.s3_region or "",
            endpoint=settings.s3_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    else:
        _blob_store = LocalBlobStore(settings.upload_root)
    return _blob_store


def get_credential_verifier() -> CredentialVerifier:
    global _credential_verifier
    if _credential_verifier is None:
        _credential_verifier = Pbkdf2CredentialVerifier()
    return _credential_verifier


def reset_backends() -> None:
    """Forget the singletons; the next request builds them from settings again."""
    global _record_store, _blob_store, _credential_verifier
    _record_store = None
    _blob_store = None
    _credential_verifier = None


def get_upload_intake(storage: BlobStore = Depends(get_blob_store)) -> UploadIntake:
    return UploadIntake(storage)


def get_deletion_coordinator(
    db: RecordStore = Depends(get_record_store),
    storage: BlobStore = Depends(get_blob_store),
) -> DeletionCoordinator:
    return DeletionCoordinator(db, storage)


def get_ownership_linker(
    db: RecordStore = Depends(get_record_store),
    intake: UploadIntake = Depends(get_upload_intake),
    deletion: DeletionCoordinator = Depends(get_deletion_coordinator),
) -> OwnershipLinker:
    return OwnershipLinker(db, intake, deletion)


def get_auth_context(
    request: Request, settings: Settings = Depends(get_settings)
) -> AuthContext:
    """Resolve the caller from the signed session cookie, once per request."""
    return AuthContext.from_session(request.session, settings.admin_email)
