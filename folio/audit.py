"""
Report mismatches between records and stored blobs.

Dangling references (a record names a blob that is gone) can optionally be
detached from their records. Orphaned blobs are only reported; nothing here
deletes a blob.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field

from folio.config import get_settings
from folio.db import RecordStore
from folio.deletion import owned_blobs
from folio.dependencies import get_blob_store, get_record_store
from folio.storage import BlobStore, Bucket, safe_name

logger = logging.getLogger(__name__)


@dataclass
class DanglingReference:
    owner_kind: str
    owner_id: str
    bucket: Bucket
    filename: str


@dataclass
class AuditReport:
    dangling: list[DanglingReference] = field(default_factory=list)
    orphans: list[tuple[Bucket, str]] = field(default_factory=list)
    detached: int = 0

    @property
    def clean(self) -> bool:
        return not self.dangling and not self.orphans


def audit_storage(
    db: RecordStore, storage: BlobStore, *, detach_dangling: bool = False
) -> AuditReport:
    report = AuditReport()
    referenced: set[tuple[Bucket, str]] = set()

    for account in db.list_accounts():
        for bucket, name in owned_blobs(account):
            referenced.add((bucket, name))
            if not storage.exists(bucket, name):
                report.dangling.append(
                    DanglingReference("account", account.account_id, bucket, name)
                )

    for post in db.list_blog_posts():
        if not post.image_url:
            continue
        name = safe_name(post.image_url)
        referenced.add((Bucket.BLOG_IMAGE, name))
        if not storage.exists(Bucket.BLOG_IMAGE, name):
            report.dangling.append(
                DanglingReference("blog_post", post.post_id, Bucket.BLOG_IMAGE, name)
            )

    for bucket in Bucket:
        for name in storage.list_names(bucket):
            if (bucket, name) not in referenced:
                report.orphans.append((bucket, name))

    if detach_dangling:
        for ref in report.dangling:
            _detach(db, ref)
            report.detached += 1
    return report


def _detach(db: RecordStore, ref: DanglingReference) -> None:
    if ref.owner_kind == "blog_post":
        db.update_blog_post(ref.owner_id, image_url=None)
    elif ref.bucket == Bucket.PROFILE_PICTURE:
        db.set_profile_picture(ref.owner_id, None)
    else:
        db.remove_asset(ref.owner_id, ref.bucket, ref.filename)
    logger.info(
        "Detached dangling %s/%s from %s %s",
        ref.bucket.value,
        ref.filename,
        ref.owner_kind,
        ref.owner_id,
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Audit uploaded files against records")
    parser.add_argument(
        "--detach-dangling",
        action="store_true",
        help="Remove record references to blobs that no longer exist",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=get_settings().log_level.upper(), format="%(levelname)s:%(message)s"
    )
    report = audit_storage(
        get_record_store(), get_blob_store(), detach_dangling=args.detach_dangling
    )
    for ref in report.dangling:
        print(
            f"dangling {ref.owner_kind} {ref.owner_id}: {ref.bucket.value}/{ref.filename}"
        )
    for bucket, name in report.orphans:
        print(f"orphan {bucket.value}/{name}")
    if report.detached:
        print(f"detached {report.detached} dangling reference(s)")
    return 0 if report.clean else 1


if __name__ == "__main__":
    sys.exit(main())
