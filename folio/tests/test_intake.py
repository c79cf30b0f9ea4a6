import os
import random
import tempfile
import unittest

from folio.errors import PayloadTooLargeError, ValidationError
from folio.intake import (
    MAX_EXTENSION_BYTES,
    MIB,
    IncomingFile,
    UploadIntake,
    generate_stored_name,
    policy_for,
    validate_upload,
)
from folio.storage import Bucket, LocalBlobStore


class BucketPolicyTests(unittest.TestCase):
    def test_pdf_bucket_requires_exact_pdf_type(self):
        policy = policy_for(Bucket.PDF)
        self.assertTrue(policy.allows("application/pdf"))
        self.assertFalse(policy.allows("application/pdfx"))
        self.assertFalse(policy.allows("image/png"))

    def test_image_buckets_accept_any_image_type(self):
        for bucket in (Bucket.IMAGE, Bucket.PROFILE_PICTURE, Bucket.BLOG_IMAGE):
            policy = policy_for(bucket)
            self.assertTrue(policy.allows("image/png"))
            self.assertTrue(policy.allows("image/jpeg; charset=binary"))
            self.assertFalse(policy.allows("application/pdf"))
            self.assertFalse(policy.allows(""))

    def test_size_ceilings(self):
        self.assertEqual(policy_for(Bucket.PDF).max_bytes, 10 * MIB)
        self.assertEqual(policy_for(Bucket.IMAGE).max_bytes, 10 * MIB)
        self.assertEqual(policy_for(Bucket.PROFILE_PICTURE).max_bytes, 5 * MIB)
        self.assertEqual(policy_for(Bucket.BLOG_IMAGE).max_bytes, 5 * MIB)

    def test_validate_upload_at_the_ceiling_passes(self):
        validate_upload(Bucket.PROFILE_PICTURE, "image/png", 5 * MIB)
        with self.assertRaises(PayloadTooLargeError):
            validate_upload(Bucket.PROFILE_PICTURE, "image/png", 5 * MIB + 1)


class StoredNameTests(unittest.TestCase):
    def test_name_is_timestamp_random_and_extension(self):
        name = generate_stored_name(
            "Report.Final.PDF", clock=lambda: 1700000000.1234, rng=random.Random(7)
        )
        stem, extension = os.path.splitext(name)
        self.assertEqual(extension, ".PDF")
        timestamp, rand = stem.split("-")
        self.assertEqual(timestamp, "1700000000123")
        self.assertTrue(rand.isdigit())
        self.assertLessEqual(int(rand), 10**9)

    def test_name_without_extension(self):
        name = generate_stored_name("README", clock=lambda: 1.0, rng=random.Random(1))
        self.assertEqual(os.path.splitext(name)[1], "")

    def test_directory_parts_of_original_are_ignored(self):
        name = generate_stored_name("../../evil.dir/photo.jpeg")
        self.assertTrue(name.endswith(".jpeg"))
        self.assertNotIn("/", name)


class UploadIntakeTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.storage = LocalBlobStore(self._tmp.name)
        self.intake = UploadIntake(self.storage)

    def _listing(self):
        return {bucket: self.storage.list_names(bucket) for bucket in Bucket}

    def test_accept_preserves_extension_and_writes_one_blob(self):
        for bucket, filename, content_type in (
            (Bucket.PDF, "cv.pdf", "application/pdf"),
            (Bucket.IMAGE, "holiday.PNG", "image/png"),
            (Bucket.PROFILE_PICTURE, "me.jpg", "image/jpeg"),
            (Bucket.BLOG_IMAGE, "cover.webp", "image/webp"),
        ):
            upload = self.intake.accept(
                bucket, IncomingFile(filename, content_type, b"payload")
            )
            self.assertEqual(
                os.path.splitext(upload.stored_filename)[1],
                os.path.splitext(filename)[1],
            )
            self.assertEqual(upload.display_name, filename)
            self.assertEqual(upload.size, 7)
            self.assertEqual(self.storage.list_names(bucket), [upload.stored_filename])
            with open(upload.path, "rb") as f:
                self.assertEqual(f.read(), b"payload")

    def test_bucket_directory_is_created_on_demand(self):
        bucket_dir = os.path.join(self._tmp.name, "pdfs")
        self.assertFalse(os.path.isdir(bucket_dir))
        self.intake.accept(Bucket.PDF, IncomingFile("a.pdf", "application/pdf", b"1"))
        self.intake.accept(Bucket.PDF, IncomingFile("b.pdf", "application/pdf", b"2"))
        self.assertTrue(os.path.isdir(bucket_dir))
        self.assertEqual(len(self.storage.list_names(Bucket.PDF)), 2)

    def test_oversize_payload_is_rejected_without_writing(self):
        for bucket, content_type in (
            (Bucket.PDF, "application/pdf"),
            (Bucket.IMAGE, "image/png"),
            (Bucket.PROFILE_PICTURE, "image/png"),
            (Bucket.BLOG_IMAGE, "image/png"),
        ):
            before = self._listing()
            data = b"x" * (policy_for(bucket).max_bytes + 1)
            with self.assertRaises(PayloadTooLargeError):
                self.intake.accept(bucket, IncomingFile("big.bin", content_type, data))
            self.assertEqual(self._listing(), before)

    def test_understated_declared_size_does_not_help(self):
        data = b"x" * (5 * MIB + 1)
        with self.assertRaises(PayloadTooLargeError):
            self.intake.accept(
                Bucket.PROFILE_PICTURE,
                IncomingFile("me.png", "image/png", data, declared_size=10),
            )

    def test_oversize_declared_size_is_rejected(self):
        with self.assertRaises(PayloadTooLargeError):
            self.intake.accept(
                Bucket.BLOG_IMAGE,
                IncomingFile("x.png", "image/png", b"small", declared_size=6 * MIB),
            )
        self.assertEqual(self.storage.list_names(Bucket.BLOG_IMAGE), [])

    def test_wrong_mime_type_is_rejected_without_writing(self):
        cases = (
            (Bucket.PDF, "image/png"),
            (Bucket.IMAGE, "application/pdf"),
            (Bucket.PROFILE_PICTURE, "text/plain"),
            (Bucket.BLOG_IMAGE, "application/octet-stream"),
        )
        for bucket, content_type in cases:
            before = self._listing()
            with self.assertRaises(ValidationError) as cm:
                self.intake.accept(bucket, IncomingFile("f.bin", content_type, b"data"))
            self.assertNotIsInstance(cm.exception, PayloadTooLargeError)
            self.assertEqual(self._listing(), before)

    def test_overlong_extension_is_rejected_without_writing(self):
        before = self._listing()
        with self.assertRaises(ValidationError):
            self.intake.accept(
                Bucket.IMAGE, IncomingFile("photo." + "x" * 300, "image/png", b"data")
            )
        self.assertEqual(self._listing(), before)

    def test_extension_limit_counts_encoded_bytes(self):
        within = "photo." + "x" * (MAX_EXTENSION_BYTES - 1)
        upload = self.intake.accept(Bucket.IMAGE, IncomingFile(within, "image/png", b"data"))
        self.assertTrue(upload.stored_filename.endswith(within[len("photo"):]))
        with self.assertRaises(ValidationError):
            self.intake.accept(
                Bucket.IMAGE, IncomingFile("photo." + "中" * 11, "image/png", b"data")
            )

    def test_missing_filename_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.intake.accept(Bucket.PDF, IncomingFile("", "application/pdf", b"data"))


if __name__ == "__main__":
    unittest.main()
