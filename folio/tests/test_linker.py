import tempfile
import unittest
from unittest.mock import patch

from folio.auth import AuthContext
from folio.db import InMemoryRecordStore
from folio.deletion import DeletionCoordinator
from folio.errors import (
    NotAuthenticatedError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from folio.intake import IncomingFile, UploadIntake
from folio.linker import OwnershipLinker, clean_blog_fields
from folio.storage import Bucket, LocalBlobStore


def _png(name="pic.png", data=b"\x89PNG"):
    return IncomingFile(name, "image/png", data)


class OwnershipLinkerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.db = InMemoryRecordStore()
        self.storage = LocalBlobStore(self._tmp.name)
        self.deletion = DeletionCoordinator(self.db, self.storage)
        self.linker = OwnershipLinker(self.db, UploadIntake(self.storage), self.deletion)
        self.account = self.db.create_account(
            name="Ada",
            email="ada@example.com",
            profession="Engineer",
            password_hash="hash",
            password_salt="00",
        )
        self.owner = AuthContext(account_id=self.account.account_id)
        self.admin = AuthContext(is_admin=True)

    def test_pdf_and_image_uploads_append(self):
        first, _ = self.linker.upload_account_file(
            self.owner, self.account.account_id, Bucket.PDF,
            IncomingFile("a.pdf", "application/pdf", b"%PDF-a"),
        )
        second, account = self.linker.upload_account_file(
            self.owner, self.account.account_id, Bucket.PDF,
            IncomingFile("b.pdf", "application/pdf", b"%PDF-b"),
        )
        self.assertEqual(
            [a.filename for a in account.pdfs],
            [first.stored_filename, second.stored_filename],
        )
        self.assertEqual(account.pdfs[0].name, "a.pdf")
        self.assertEqual(account.pdfs[0].size, 6)

        _, account = self.linker.upload_account_file(
            self.owner, self.account.account_id, Bucket.IMAGE, _png()
        )
        self.assertEqual(len(account.images), 1)
        self.assertEqual(len(account.pdfs), 2)

    def test_profile_picture_replacement_removes_previous_blob(self):
        old, _ = self.linker.upload_account_file(
            self.owner, self.account.account_id, Bucket.PROFILE_PICTURE, _png("old.png")
        )
        new, account = self.linker.upload_account_file(
            self.owner, self.account.account_id, Bucket.PROFILE_PICTURE, _png("new.png")
        )
        self.assertEqual(
            self.storage.list_names(Bucket.PROFILE_PICTURE), [new.stored_filename]
        )
        self.assertFalse(self.storage.exists(Bucket.PROFILE_PICTURE, old.stored_filename))
        self.assertEqual(account.profile_picture.filename, new.stored_filename)

    def test_profile_replacement_proceeds_when_old_blob_is_missing(self):
        old, _ = self.linker.upload_account_file(
            self.owner, self.account.account_id, Bucket.PROFILE_PICTURE, _png()
        )
        self.storage.delete(Bucket.PROFILE_PICTURE, old.stored_filename)

        with self.assertLogs("folio.deletion", level="WARNING"):
            new, account = self.linker.upload_account_file(
                self.owner, self.account.account_id, Bucket.PROFILE_PICTURE, _png()
            )
        self.assertEqual(account.profile_picture.filename, new.stored_filename)

    def test_profile_replacement_proceeds_when_old_blob_delete_fails(self):
        self.linker.upload_account_file(
            self.owner, self.account.account_id, Bucket.PROFILE_PICTURE, _png()
        )
        with patch.object(self.storage, "delete", side_effect=PermissionError("busy")):
            new, account = self.linker.upload_account_file(
                self.owner, self.account.account_id, Bucket.PROFILE_PICTURE, _png()
            )
        self.assertEqual(account.profile_picture.filename, new.stored_filename)

    def test_other_caller_is_rejected_before_any_write(self):
        stranger = AuthContext(account_id="someone-else")
        with self.assertRaises(PermissionDeniedError):
            self.linker.upload_account_file(
                stranger, self.account.account_id, Bucket.IMAGE, _png()
            )
        with self.assertRaises(NotAuthenticatedError):
            self.linker.upload_account_file(
                AuthContext(), self.account.account_id, Bucket.IMAGE, _png()
            )
        self.assertEqual(self.storage.list_names(Bucket.IMAGE), [])
        self.assertEqual(self.db.get_account(self.account.account_id).images, [])

    def test_blog_bucket_is_not_an_account_bucket(self):
        with self.assertRaises(ValidationError):
            self.linker.upload_account_file(
                self.owner, self.account.account_id, Bucket.BLOG_IMAGE, _png()
            )

    def test_missing_account_is_not_found_before_any_write(self):
        ghost = AuthContext(account_id="ghost")
        with self.assertRaises(NotFoundError):
            self.linker.upload_account_file(ghost, "ghost", Bucket.IMAGE, _png())
        self.assertEqual(self.storage.list_names(Bucket.IMAGE), [])

    def test_record_failure_leaves_orphaned_blob(self):
        with patch.object(self.db, "append_asset", side_effect=RuntimeError("db down")):
            with self.assertLogs("folio.linker", level="ERROR"):
                with self.assertRaises(RuntimeError):
                    self.linker.upload_account_file(
                        self.owner, self.account.account_id, Bucket.IMAGE, _png()
                    )
        self.assertEqual(len(self.storage.list_names(Bucket.IMAGE)), 1)
        self.assertEqual(self.db.get_account(self.account.account_id).images, [])


class BlogLinkingTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.db = InMemoryRecordStore()
        self.storage = LocalBlobStore(self._tmp.name)
        self.linker = OwnershipLinker(
            self.db, UploadIntake(self.storage), DeletionCoordinator(self.db, self.storage)
        )
        self.admin = AuthContext(is_admin=True)
        self.fields = {
            "title": "Hello",
            "excerpt": "Short",
            "content": "Body",
            "category": "news",
        }

    def test_create_requires_admin(self):
        with self.assertRaises(PermissionDeniedError):
            self.linker.create_blog_post(AuthContext(account_id="u1"), self.fields, _png())
        self.assertEqual(self.storage.list_names(Bucket.BLOG_IMAGE), [])

    def test_create_with_image_references_it_by_url(self):
        post = self.linker.create_blog_post(self.admin, self.fields, _png("cover.png"))
        [stored] = self.storage.list_names(Bucket.BLOG_IMAGE)
        self.assertEqual(post.image_url, f"/uploads/blog-images/{stored}")
        self.assertTrue(stored.endswith(".png"))
        self.assertEqual(post.author, "Admin")

    def test_missing_fields_are_rejected_before_upload(self):
        with self.assertRaises(ValidationError):
            self.linker.create_blog_post(self.admin, {**self.fields, "title": "  "}, _png())
        self.assertEqual(self.storage.list_names(Bucket.BLOG_IMAGE), [])

    def test_update_replaces_image_and_keeps_unsent_fields(self):
        post = self.linker.create_blog_post(self.admin, self.fields, _png("one.png"))
        updated = self.linker.update_blog_post(
            self.admin, post.post_id, {"title": "Renamed"}, _png("two.png")
        )
        [stored] = self.storage.list_names(Bucket.BLOG_IMAGE)
        self.assertEqual(updated.image_url, f"/uploads/blog-images/{stored}")
        self.assertNotEqual(updated.image_url, post.image_url)
        self.assertEqual(updated.title, "Renamed")
        self.assertEqual(updated.content, "Body")
        self.assertGreaterEqual(updated.updated_at, post.updated_at)

    def test_update_unknown_post_writes_nothing(self):
        with self.assertRaises(NotFoundError):
            self.linker.update_blog_post(self.admin, "missing", {}, _png())
        self.assertEqual(self.storage.list_names(Bucket.BLOG_IMAGE), [])

    def test_clean_blog_fields(self):
        self.assertEqual(
            clean_blog_fields({"title": " T ", "excerpt": "E", "content": "C", "category": "K"}),
            {"title": "T", "excerpt": "E", "content": "C", "category": "K"},
        )
        self.assertEqual(clean_blog_fields({"title": "T"}, partial=True), {"title": "T"})
        with self.assertRaises(ValidationError):
            clean_blog_fields({"title": ""}, partial=True)


if __name__ == "__main__":
    unittest.main()
