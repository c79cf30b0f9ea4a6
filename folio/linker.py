"""
Attaches stored uploads to the account or blog post that owns them.
"""

from __future__ import annotations

import logging
from typing import Optional

from folio.auth import AuthContext, require_admin, require_owner
from folio.db import AccountRecord, AssetRecord, BlogPostRecord, ProfilePicture, RecordStore
from folio.deletion import ACCOUNT_BUCKETS, DeletionCoordinator
from folio.errors import NotFoundError, ValidationError
from folio.intake import IncomingFile, StoredUpload, UploadIntake
from folio.storage import Bucket, public_url

logger = logging.getLogger(__name__)

REQUIRED_BLOG_FIELDS = ("title", "excerpt", "content", "category")


def clean_blog_fields(fields: dict, *, partial: bool = False) -> dict:
    """Strip text fields and enforce the required ones.

    With ``partial`` set, missing fields are dropped instead of rejected, so
    only the supplied ones are updated.
    """
    cleaned = {}
    for name in REQUIRED_BLOG_FIELDS:
        value = fields.get(name)
        value = value.strip() if isinstance(value, str) else value
        if not value:
            if partial and value is None:
                continue
            raise ValidationError(f"{name} is required")
        cleaned[name] = value
    return cleaned


class OwnershipLinker:
    """Runs upload intake for an owner and commits the resulting reference.

    Ownership and admin checks happen before any blob is written. A failed
    record write after a successful blob write leaves an orphaned blob, which
    is logged and not rolled back.
    """

    def __init__(
        self,
        db: RecordStore,
        intake: UploadIntake,
        deletion: DeletionCoordinator,
    ):
        self.db = db
        self.intake = intake
        self.deletion = deletion

    def upload_account_file(
        self,
        ctx: AuthContext,
        account_id: str,
        bucket: Bucket,
        incoming: IncomingFile,
    ) -> tuple[StoredUpload, AccountRecord]:
        require_owner(ctx, account_id)
        bucket = Bucket(bucket)
        if bucket not in ACCOUNT_BUCKETS:
            raise ValidationError(f"Bucket {bucket.value} does not hold account files")
        if not self.db.get_account(account_id):
            raise NotFoundError("User not found")

        upload = self.intake.accept(bucket, incoming)
        account = self.attach_account_asset(account_id, upload)
        return upload, account

    def attach_account_asset(self, account_id: str, upload: StoredUpload) -> AccountRecord:
        """Append a PDF or image, or replace the profile picture."""
        try:
            if upload.bucket == Bucket.PROFILE_PICTURE:
                return self._replace_profile_picture(account_id, upload)
            asset = AssetRecord(
                name=upload.display_name,
                filename=upload.stored_filename,
                path=upload.path,
                size=upload.size,
                uploaded_at=upload.uploaded_at,
            )
            return self.db.append_asset(account_id, upload.bucket, asset)
        except Exception:
            logger.exception("Record update failed; orphaned blob %s", upload.path)
            raise

    def _replace_profile_picture(
        self, account_id: str, upload: StoredUpload
    ) -> AccountRecord:
        account = self.db.get_account(account_id)
        if not account:
            raise NotFoundError("User not found")
        previous = account.profile_picture
        if previous and previous.filename != upload.stored_filename:
            self.deletion.discard_blob(Bucket.PROFILE_PICTURE, previous.filename)
        picture = ProfilePicture(
            filename=upload.stored_filename,
            path=upload.path,
            uploaded_at=upload.uploaded_at,
        )
        return self.db.set_profile_picture(account_id, picture)

    def create_blog_post(
        self,
        ctx: AuthContext,
        fields: dict,
        incoming: Optional[IncomingFile] = None,
    ) -> BlogPostRecord:
        require_admin(ctx)
        cleaned = clean_blog_fields(fields)

        image_url = None
        upload = None
        if incoming is not None:
            upload = self.intake.accept(Bucket.BLOG_IMAGE, incoming)
            image_url = public_url(Bucket.BLOG_IMAGE, upload.stored_filename)
        try:
            return self.db.create_blog_post(**cleaned, image_url=image_url)
        except Exception:
            if upload is not None:
                logger.exception("Blog post creation failed; orphaned blob %s", upload.path)
            raise

    def update_blog_post(
        self,
        ctx: AuthContext,
        post_id: str,
        fields: dict,
        incoming: Optional[IncomingFile] = None,
    ) -> BlogPostRecord:
        require_admin(ctx)
        cleaned = clean_blog_fields(fields, partial=True)
        if not self.db.get_blog_post(post_id):
            raise NotFoundError("Blog not found")

        if incoming is not None:
            upload = self.intake.accept(Bucket.BLOG_IMAGE, incoming)
            self.attach_blog_image(post_id, upload)
        return self.db.update_blog_post(post_id, **cleaned)

    def attach_blog_image(self, post_id: str, upload: StoredUpload) -> BlogPostRecord:
        """Point a post at a new image, discarding the previous one first."""
        try:
            post = self.db.get_blog_post(post_id)
            if not post:
                raise NotFoundError("Blog not found")
            new_url = public_url(Bucket.BLOG_IMAGE, upload.stored_filename)
            if post.image_url and post.image_url != new_url:
                self.deletion.discard_blob(Bucket.BLOG_IMAGE, post.image_url)
            return self.db.update_blog_post(post_id, image_url=new_url)
        except Exception:
            logger.exception("Blog image update failed; orphaned blob %s", upload.path)
            raise
