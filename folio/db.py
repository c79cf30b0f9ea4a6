"""
Record store abstraction for SQL databases and an in-memory test implementation.

Records are document-shaped: an account embeds its profile picture and its
ordered PDF and image collections, stored as JSON columns by the SQL backend.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Protocol

from sqlalchemy import JSON, Column, Float, String, Text, create_engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from folio.errors import ConflictError, NotFoundError, ServerError
from folio.storage import Bucket

DEFAULT_AUTHOR = "Admin"

# Embedded collections on an account, keyed by the bucket that holds their blobs.
ASSET_COLLECTIONS = {Bucket.PDF: "pdfs", Bucket.IMAGE: "images"}


def _collection_for(bucket: Bucket) -> str:
    try:
        return ASSET_COLLECTIONS[Bucket(bucket)]
    except KeyError:
        raise ValueError(f"Bucket {bucket!r} has no asset collection") from None


@dataclass
class ProfilePicture:
    filename: str
    path: str
    uploaded_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "filename": self.filename,
            "path": self.path,
            "uploaded_at": self.uploaded_at,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["ProfilePicture"]:
        if not data:
            return None
        return cls(
            filename=data["filename"],
            path=data["path"],
            uploaded_at=data.get("uploaded_at") or time.time(),
        )


@dataclass
class AssetRecord:
    """Metadata for one PDF or image owned by an account."""

    name: str
    filename: str
    path: str
    size: int
    uploaded_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "filename": self.filename,
            "path": self.path,
            "size": self.size,
            "uploaded_at": self.uploaded_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AssetRecord":
        return cls(
            name=data.get("name", ""),
            filename=data["filename"],
            path=data["path"],
            size=data.get("size", 0),
            uploaded_at=data.get("uploaded_at") or time.time(),
        )


@dataclass
class AccountRecord:
    account_id: str
    name: str
    email: str
    profession: str
    password_hash: str
    password_salt: str
    profile_picture: Optional[ProfilePicture] = None
    pdfs: list[AssetRecord] = field(default_factory=list)
    images: list[AssetRecord] = field(default_factory=list)
    created_at: float = field(default_factory=lambda: time.time())

    def assets(self, bucket: Bucket) -> list[AssetRecord]:
        return getattr(self, _collection_for(bucket))

    def as_dict(self) -> dict:
        """Public view of the account; credentials are never included."""
        return {
            "account_id": self.account_id,
            "name": self.name,
            "email": self.email,
            "profession": self.profession,
            "profile_picture": (
                self.profile_picture.as_dict() if self.profile_picture else None
            ),
            "pdfs": [a.as_dict() for a in self.pdfs],
            "images": [a.as_dict() for a in self.images],
            "created_at": self.created_at,
        }


@dataclass
class BlogPostRecord:
    post_id: str
    title: str
    excerpt: str
    content: str
    category: str
    image_url: Optional[str] = None
    author: str = DEFAULT_AUTHOR
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "post_id": self.post_id,
            "title": self.title,
            "excerpt": self.excerpt,
            "content": self.content,
            "category": self.category,
            "image_url": self.image_url,
            "author": self.author,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class ContactInquiryRecord:
    inquiry_id: str
    name: str
    email: str
    subject: str
    message: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "inquiry_id": self.inquiry_id,
            "name": self.name,
            "email": self.email,
            "subject": self.subject,
            "message": self.message,
            "created_at": self.created_at,
        }


@dataclass
class ProjectInquiryRecord:
    inquiry_id: str
    email: str
    message: str
    created_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "inquiry_id": self.inquiry_id,
            "email": self.email,
            "message": self.message,
            "created_at": self.created_at,
        }


BLOG_POST_FIELDS = ("title", "excerpt", "content", "category", "image_url", "author")


class RecordStore(Protocol):
    """Interface for record storage."""

    def create_account(
        self,
        *,
        name: str,
        email: str,
        profession: str,
        password_hash: str,
        password_salt: str,
    ) -> AccountRecord:
        ...

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        ...

    def find_account_by_email(self, email: str) -> Optional[AccountRecord]:
        ...

    def list_accounts(self) -> list[AccountRecord]:
        ...

    def append_asset(
        self, account_id: str, bucket: Bucket, asset: AssetRecord
    ) -> AccountRecord:
        ...

    def remove_asset(self, account_id: str, bucket: Bucket, filename: str) -> bool:
        ...

    def set_profile_picture(
        self, account_id: str, picture: Optional[ProfilePicture]
    ) -> AccountRecord:
        ...

    def delete_account(self, account_id: str) -> bool:
        ...

    def create_blog_post(
        self,
        *,
        title: str,
        excerpt: str,
        content: str,
        category: str,
        image_url: Optional[str] = None,
        author: str = DEFAULT_AUTHOR,
    ) -> BlogPostRecord:
        ...

    def get_blog_post(self, post_id: str) -> Optional[BlogPostRecord]:
        ...

    def list_blog_posts(self) -> list[BlogPostRecord]:
        ...

    def update_blog_post(self, post_id: str, **fields) -> BlogPostRecord:
        ...

    def delete_blog_post(self, post_id: str) -> bool:
        ...

    def create_contact_inquiry(
        self, *, name: str, email: str, subject: str, message: str
    ) -> ContactInquiryRecord:
        ...

    def create_project_inquiry(
        self, *, email: str, message: str
    ) -> ProjectInquiryRecord:
        ...

    def list_contact_inquiries(self) -> list[ContactInquiryRecord]:
        ...

    def list_project_inquiries(self) -> list[ProjectInquiryRecord]:
        ...

    def delete_contact_inquiry(self, inquiry_id: str) -> bool:
        ...

    def delete_project_inquiry(self, inquiry_id: str) -> bool:
        ...


def _check_blog_fields(fields: dict) -> None:
    unknown = set(fields) - set(BLOG_POST_FIELDS)
    if unknown:
        raise ValueError(f"Unknown blog post fields: {sorted(unknown)}")


class InMemoryRecordStore:
    """Simple in-memory record store for development and tests."""

    def __init__(self):
        self.accounts: Dict[str, AccountRecord] = {}
        self.blog_posts: Dict[str, BlogPostRecord] = {}
        self.contacts: Dict[str, ContactInquiryRecord] = {}
        self.projects: Dict[str, ProjectInquiryRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.accounts.clear()
        self.blog_posts.clear()
        self.contacts.clear()
        self.projects.clear()

    def _require_account(self, account_id: str) -> AccountRecord:
        account = self.accounts.get(account_id)
        if not account:
            raise NotFoundError("User not found")
        return account

    def create_account(
        self,
        *,
        name: str,
        email: str,
        profession: str,
        password_hash: str,
        password_salt: str,
    ) -> AccountRecord:
        if self.find_account_by_email(email):
            raise ConflictError("Email already registered")
        record = AccountRecord(
            account_id=uuid.uuid4().hex,
            name=name,
            email=email,
            profession=profession,
            password_hash=password_hash,
            password_salt=password_salt,
        )
        self.accounts[record.account_id] = record
        return record

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        return self.accounts.get(account_id)

    def find_account_by_email(self, email: str) -> Optional[AccountRecord]:
        for account in self.accounts.values():
            if account.email == email:
                return account
        return None

    def list_accounts(self) -> list[AccountRecord]:
        return sorted(self.accounts.values(), key=lambda a: a.created_at, reverse=True)

    def append_asset(
        self, account_id: str, bucket: Bucket, asset: AssetRecord
    ) -> AccountRecord:
        account = self._require_account(account_id)
        account.assets(bucket).append(asset)
        return account

    def remove_asset(self, account_id: str, bucket: Bucket, filename: str) -> bool:
        account = self._require_account(account_id)
        assets = account.assets(bucket)
        kept = [a for a in assets if a.filename != filename]
        removed = len(kept) != len(assets)
        assets[:] = kept
        return removed

    def set_profile_picture(
        self, account_id: str, picture: Optional[ProfilePicture]
    ) -> AccountRecord:
        account = self._require_account(account_id)
        account.profile_picture = picture
        return account

    def delete_account(self, account_id: str) -> bool:
        return self.accounts.pop(account_id, None) is not None

    def create_blog_post(
        self,
        *,
        title: str,
        excerpt: str,
        content: str,
        category: str,
        image_url: Optional[str] = None,
        author: str = DEFAULT_AUTHOR,
    ) -> BlogPostRecord:
        record = BlogPostRecord(
            post_id=uuid.uuid4().hex,
            title=title,
            excerpt=excerpt,
            content=content,
            category=category,
            image_url=image_url,
            author=author,
        )
        self.blog_posts[record.post_id] = record
        return record

    def get_blog_post(self, post_id: str) -> Optional[BlogPostRecord]:
        return self.blog_posts.get(post_id)

    def list_blog_posts(self) -> list[BlogPostRecord]:
        return sorted(
            self.blog_posts.values(), key=lambda p: p.created_at, reverse=True
        )

    def update_blog_post(self, post_id: str, **fields) -> BlogPostRecord:
        _check_blog_fields(fields)
        post = self.blog_posts.get(post_id)
        if not post:
            raise NotFoundError("Blog not found")
        updated = replace(post, **fields, updated_at=time.time())
        self.blog_posts[post_id] = updated
        return updated

    def delete_blog_post(self, post_id: str) -> bool:
        return self.blog_posts.pop(post_id, None) is not None

    def create_contact_inquiry(
        self, *, name: str, email: str, subject: str, message: str
    ) -> ContactInquiryRecord:
        if any(c.email == email for c in self.contacts.values()):
            raise ConflictError("An inquiry from this email already exists")
        record = ContactInquiryRecord(
            inquiry_id=uuid.uuid4().hex,
            name=name,
            email=email,
            subject=subject,
            message=message,
        )
        self.contacts[record.inquiry_id] = record
        return record

    def create_project_inquiry(
        self, *, email: str, message: str
    ) -> ProjectInquiryRecord:
        if any(p.email == email for p in self.projects.values()):
            raise ConflictError("An inquiry from this email already exists")
        record = ProjectInquiryRecord(
            inquiry_id=uuid.uuid4().hex, email=email, message=message
        )
        self.projects[record.inquiry_id] = record
        return record

    def list_contact_inquiries(self) -> list[ContactInquiryRecord]:
        return sorted(self.contacts.values(), key=lambda c: c.created_at, reverse=True)

    def list_project_inquiries(self) -> list[ProjectInquiryRecord]:
        return sorted(self.projects.values(), key=lambda p: p.created_at, reverse=True)

    def delete_contact_inquiry(self, inquiry_id: str) -> bool:
        return self.contacts.pop(inquiry_id, None) is not None

    def delete_project_inquiry(self, inquiry_id: str) -> bool:
        return self.projects.pop(inquiry_id, None) is not None


class SqlRecordStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlRecordStore")
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        if database_url.startswith("sqlite") and ":memory:" in database_url:
            # One shared connection, otherwise every thread sees an empty database.
            engine_kwargs.update(
                poolclass=StaticPool, connect_args={"check_same_thread": False}
            )
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)
        # Serialises read-modify-write of embedded collections within this process.
        self._account_lock = threading.Lock()

    def _commit(self, session: Session, conflict_message: str = "Already exists") -> None:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError(conflict_message) from exc
        except SQLAlchemyError as exc:
            session.rollback()
            raise ServerError("Database error") from exc

    def _to_account(self, row: "AccountRow") -> AccountRecord:
        return AccountRecord(
            account_id=row.account_id,
            name=row.name,
            email=row.email,
            profession=row.profession,
            password_hash=row.password_hash,
            password_salt=row.password_salt,
            profile_picture=ProfilePicture.from_dict(row.profile_picture),
            pdfs=[AssetRecord.from_dict(a) for a in row.pdfs or []],
            images=[AssetRecord.from_dict(a) for a in row.images or []],
            created_at=row.created_at,
        )

    def _to_blog_post(self, row: "BlogPostRow") -> BlogPostRecord:
        return BlogPostRecord(
            post_id=row.post_id,
            title=row.title,
            excerpt=row.excerpt,
            content=row.content,
            category=row.category,
            image_url=row.image_url,
            author=row.author,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _lock_account_row(self, session: Session, account_id: str) -> "AccountRow":
        """Load an account row under a row lock (SELECT ... FOR UPDATE)."""
        stmt = (
            select(AccountRow)
            .where(AccountRow.account_id == account_id)
            .with_for_update()
        )
        row = session.execute(stmt).scalar_one_or_none()
        if not row:
            raise NotFoundError("User not found")
        return row

    def create_account(
        self,
        *,
        name: str,
        email: str,
        profession: str,
        password_hash: str,
        password_salt: str,
    ) -> AccountRecord:
        with self.Session() as session:
            row = AccountRow(
                account_id=uuid.uuid4().hex,
                name=name,
                email=email,
                profession=profession,
                password_hash=password_hash,
                password_salt=password_salt,
                profile_picture=None,
                pdfs=[],
                images=[],
                created_at=time.time(),
            )
            session.add(row)
            self._commit(session, "Email already registered")
            return self._to_account(row)

    def get_account(self, account_id: str) -> Optional[AccountRecord]:
        with self.Session() as session:
            row = session.get(AccountRow, account_id)
            return self._to_account(row) if row else None

    def find_account_by_email(self, email: str) -> Optional[AccountRecord]:
        with self.Session() as session:
            stmt = select(AccountRow).where(AccountRow.email == email)
            row = session.execute(stmt).scalar_one_or_none()
            return self._to_account(row) if row else None

    def list_accounts(self) -> list[AccountRecord]:
        with self.Session() as session:
            stmt = select(AccountRow).order_by(AccountRow.created_at.desc())
            return [self._to_account(r) for r in session.execute(stmt).scalars()]

    def append_asset(
        self, account_id: str, bucket: Bucket, asset: AssetRecord
    ) -> AccountRecord:
        column = _collection_for(bucket)
        with self._account_lock, self.Session() as session:
            row = self._lock_account_row(session, account_id)
            # JSON columns are not mutation-tracked; assign a new list.
            setattr(row, column, list(getattr(row, column) or []) + [asset.as_dict()])
            self._commit(session)
            return self._to_account(row)

    def remove_asset(self, account_id: str, bucket: Bucket, filename: str) -> bool:
        column = _collection_for(bucket)
        with self._account_lock, self.Session() as session:
            row = self._lock_account_row(session, account_id)
            assets = list(getattr(row, column) or [])
            kept = [a for a in assets if a.get("filename") != filename]
            if len(kept) == len(assets):
                return False
            setattr(row, column, kept)
            self._commit(session)
            return True

    def set_profile_picture(
        self, account_id: str, picture: Optional[ProfilePicture]
    ) -> AccountRecord:
        with self._account_lock, self.Session() as session:
            row = self._lock_account_row(session, account_id)
            row.profile_picture = picture.as_dict() if picture else None
            self._commit(session)
            return self._to_account(row)

    def delete_account(self, account_id: str) -> bool:
        with self.Session() as session:
            row = session.get(AccountRow, account_id)
            if not row:
                return False
            session.delete(row)
            self._commit(session)
            return True

    def create_blog_post(
        self,
        *,
        title: str,
        excerpt: str,
        content: str,
        category: str,
        image_url: Optional[str] = None,
        author: str = DEFAULT_AUTHOR,
    ) -> BlogPostRecord:
        now = time.time()
        with self.Session() as session:
            row = BlogPostRow(
                post_id=uuid.uuid4().hex,
                title=title,
                excerpt=excerpt,
                content=content,
                category=category,
                image_url=image_url,
                author=author,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            self._commit(session)
            return self._to_blog_post(row)

    def get_blog_post(self, post_id: str) -> Optional[BlogPostRecord]:
        with self.Session() as session:
            row = session.get(BlogPostRow, post_id)
            return self._to_blog_post(row) if row else None

    def list_blog_posts(self) -> list[BlogPostRecord]:
        with self.Session() as session:
            stmt = select(BlogPostRow).order_by(BlogPostRow.created_at.desc())
            return [self._to_blog_post(r) for r in session.execute(stmt).scalars()]

    def update_blog_post(self, post_id: str, **fields) -> BlogPostRecord:
        _check_blog_fields(fields)
        with self.Session() as session:
            row = session.get(BlogPostRow, post_id)
            if not row:
                raise NotFoundError("Blog not found")
            for name, value in fields.items():
                setattr(row, name, value)
            row.updated_at = time.time()
            self._commit(session)
            return self._to_blog_post(row)

    def delete_blog_post(self, post_id: str) -> bool:
        with self.Session() as session:
            row = session.get(BlogPostRow, post_id)
            if not row:
                return False
            session.delete(row)
            self._commit(session)
            return True

    def create_contact_inquiry(
        self, *, name: str, email: str, subject: str, message: str
    ) -> ContactInquiryRecord:
        record = ContactInquiryRecord(
            inquiry_id=uuid.uuid4().hex,
            name=name,
            email=email,
            subject=subject,
            message=message,
        )
        with self.Session() as session:
            session.add(ContactInquiryRow(**record.as_dict()))
            self._commit(session, "An inquiry from this email already exists")
        return record

    def create_project_inquiry(
        self, *, email: str, message: str
    ) -> ProjectInquiryRecord:
        record = ProjectInquiryRecord(
            inquiry_id=uuid.uuid4().hex, email=email, message=message
        )
        with self.Session() as session:
            session.add(ProjectInquiryRow(**record.as_dict()))
            self._commit(session, "An inquiry from this email already exists")
        return record

    def list_contact_inquiries(self) -> list[ContactInquiryRecord]:
        with self.Session() as session:
            stmt = select(ContactInquiryRow).order_by(ContactInquiryRow.created_at.desc())
            return [
                ContactInquiryRecord(
                    inquiry_id=r.inquiry_id,
                    name=r.name,
                    email=r.email,
                    subject=r.subject,
                    message=r.message,
                    created_at=r.created_at,
                )
                for r in session.execute(stmt).scalars()
            ]

    def list_project_inquiries(self) -> list[ProjectInquiryRecord]:
        with self.Session() as session:
            stmt = select(ProjectInquiryRow).order_by(ProjectInquiryRow.created_at.desc())
            return [
                ProjectInquiryRecord(
                    inquiry_id=r.inquiry_id,
                    email=r.email,
                    message=r.message,
                    created_at=r.created_at,
                )
                for r in session.execute(stmt).scalars()
            ]

    def _delete_row(self, model, key: str) -> bool:
        with self.Session() as session:
            row = session.get(model, key)
            if not row:
                return False
            session.delete(row)
            self._commit(session)
            return True

    def delete_contact_inquiry(self, inquiry_id: str) -> bool:
        return self._delete_row(ContactInquiryRow, inquiry_id)

    def delete_project_inquiry(self, inquiry_id: str) -> bool:
        return self._delete_row(ProjectInquiryRow, inquiry_id)


Base = declarative_base()


class AccountRow(Base):
    __tablename__ = "accounts"

    account_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    profession = Column(String, nullable=False)
    password_hash = Column(String, nullable=False)
    password_salt = Column(String, nullable=False)
    profile_picture = Column(JSON, nullable=True)
    pdfs = Column(JSON, nullable=False, default=list)
    images = Column(JSON, nullable=False, default=list)
    created_at = Column(Float, nullable=False)


class BlogPostRow(Base):
    __tablename__ = "blog_posts"

    post_id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    excerpt = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    image_url = Column(String, nullable=True)
    author = Column(String, nullable=False, default=DEFAULT_AUTHOR)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)


class ContactInquiryRow(Base):
    __tablename__ = "contact_inquiries"

    inquiry_id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    subject = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(Float, nullable=False)


class ProjectInquiryRow(Base):
    __tablename__ = "project_inquiries"

    inquiry_id = Column(String, primary_key=True)
    email = Column(String, nullable=False, unique=True)
    message = Column(Text, nullable=False)
    created_at = Column(Float, nullable=False)
