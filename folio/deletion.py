"""
Deletion of owned files, and cascading deletion of accounts and blog posts.

Blob and record are never removed in one transaction. Single-file deletes
remove the blob first and the record reference second; cascades remove every
blob on a best-effort basis and the owning record last.
"""

from __future__ import annotations

import logging
from typing import Iterator

from folio.auth import AuthContext, require_admin, require_owner
from folio.db import AccountRecord, BlogPostRecord, RecordStore
from folio.errors import NotFoundError, ValidationError
from folio.storage import BlobStore, Bucket, safe_name

logger = logging.getLogger(__name__)

ACCOUNT_BUCKETS = (Bucket.PROFILE_PICTURE, Bucket.PDF, Bucket.IMAGE)


def account_bucket(value: str) -> Bucket:
    """Parse a bucket name that may hold account-owned files."""
    try:
        bucket = Bucket(value)
    except ValueError:
        raise ValidationError(f"Unknown bucket: {value}") from None
    if bucket not in ACCOUNT_BUCKETS:
        raise ValidationError(f"Bucket {bucket.value} does not hold account files")
    return bucket


def owned_blobs(account: AccountRecord) -> Iterator[tuple[Bucket, str]]:
    """Every blob an account references, profile picture first."""
    if account.profile_picture and account.profile_picture.filename:
        yield Bucket.PROFILE_PICTURE, account.profile_picture.filename
    for pdf in account.pdfs:
        yield Bucket.PDF, pdf.filename
    for image in account.images:
        yield Bucket.IMAGE, image.filename


def references(account: AccountRecord, bucket: Bucket, filename: str) -> bool:
    return (Bucket(bucket), filename) in set(owned_blobs(account))


class DeletionCoordinator:
    """Removes blobs and the record references that point at them."""

    def __init__(self, db: RecordStore, storage: BlobStore):
        self.db = db
        self.storage = storage

    def discard_blob(self, bucket: Bucket, filename: str) -> bool:
        """Best-effort blob removal. Failures are logged and reported as False."""
        name = safe_name(filename)
        try:
            self.storage.delete(bucket, name)
        except FileNotFoundError:
            logger.warning("Blob already missing: %s/%s", Bucket(bucket).value, name)
            return False
        except Exception:
            logger.exception("Failed to delete blob: %s/%s", Bucket(bucket).value, name)
            return False
        return True

    def delete_account_file(
        self, ctx: AuthContext, account_id: str, bucket: Bucket, filename: str
    ) -> None:
        """Delete one of the caller's files and detach it from their account.

        Raises:
            PermissionDeniedError: the caller does not own ``account_id``.
            NotFoundError: the account does not reference the file, or the blob
                is absent. The record is left untouched in both cases.
        """
        require_owner(ctx, account_id)
        bucket = Bucket(bucket)
        if bucket not in ACCOUNT_BUCKETS:
            raise ValidationError(f"Bucket {bucket.value} does not hold account files")
        name = safe_name(filename)

        account = self.db.get_account(account_id)
        if not account:
            raise NotFoundError("User not found")
        if not references(account, bucket, name) or not self.storage.exists(bucket, name):
            raise NotFoundError("File not found")

        try:
            self.storage.delete(bucket, name)
        except FileNotFoundError:
            raise NotFoundError("File not found") from None
        logger.info("Deleted %s/%s for account %s", bucket.value, name, account_id)

        try:
            if bucket == Bucket.PROFILE_PICTURE:
                self.db.set_profile_picture(account_id, None)
            else:
                self.db.remove_asset(account_id, bucket, name)
        except Exception:
            # The record now points at a missing blob.
            logger.exception(
                "Blob %s/%s deleted but record update failed for account %s",
                bucket.value,
                name,
                account_id,
            )

    def delete_account(self, ctx: AuthContext, account_id: str) -> None:
        """Delete an account and every blob it owns. Owner or admin only."""
        if not ctx.is_admin:
            require_owner(ctx, account_id)
        account = self.db.get_account(account_id)
        if not account:
            raise NotFoundError("User not found")

        removed = 0
        for bucket, name in owned_blobs(account):
            if self.discard_blob(bucket, name):
                removed += 1
        self.db.delete_account(account_id)
        logger.info(
            "Deleted account %s and %d of its files", account_id, removed
        )

    def delete_blog_post(self, ctx: AuthContext, post_id: str) -> None:
        require_admin(ctx)
        post = self.db.get_blog_post(post_id)
        if not post:
            raise NotFoundError("Blog not found")
        if post.image_url:
            self.discard_blob(Bucket.BLOG_IMAGE, post.image_url)
        self.db.delete_blog_post(post_id)
        logger.info("Deleted blog post %s", post_id)

    def delete_blog_image(self, ctx: AuthContext, post_id: str) -> BlogPostRecord:
        """Delete a post's image and clear its reference, keeping the post."""
        require_admin(ctx)
        post = self.db.get_blog_post(post_id)
        if not post:
            raise NotFoundError("Blog not found")
        if not post.image_url:
            raise NotFoundError("Blog has no image")
        name = safe_name(post.image_url)
        if not self.storage.exists(Bucket.BLOG_IMAGE, name):
            raise NotFoundError("File not found")

        self.storage.delete(Bucket.BLOG_IMAGE, name)
        try:
            return self.db.update_blog_post(post_id, image_url=None)
        except Exception:
            logger.exception(
                "Blog image %s deleted but record update failed for post %s",
                name,
                post_id,
            )
            return post
