"""
Pydantic schemas for the site backend API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from folio.db import AccountRecord, AssetRecord, BlogPostRecord
from folio.storage import Bucket, public_url


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    profession: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=1, max_length=1024)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AdminLoginRequest(BaseModel):
    email: str
    password: str


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class AssetResponse(BaseModel):
    name: str
    filename: str
    size: int
    uploaded_at: float
    url: str

    @classmethod
    def from_record(cls, bucket: Bucket, asset: AssetRecord) -> "AssetResponse":
        return cls(
            name=asset.name,
            filename=asset.filename,
            size=asset.size,
            uploaded_at=asset.uploaded_at,
            url=public_url(bucket, asset.filename),
        )


class ProfilePictureResponse(BaseModel):
    filename: str
    uploaded_at: float
    url: str


class AccountResponse(BaseModel):
    account_id: str
    name: str
    email: str
    profession: str
    profile_picture: Optional[ProfilePictureResponse] = None
    pdfs: list[AssetResponse] = Field(default_factory=list)
    images: list[AssetResponse] = Field(default_factory=list)
    created_at: float

    @classmethod
    def from_record(cls, account: AccountRecord) -> "AccountResponse":
        picture = None
        if account.profile_picture:
            picture = ProfilePictureResponse(
                filename=account.profile_picture.filename,
                uploaded_at=account.profile_picture.uploaded_at,
                url=public_url(Bucket.PROFILE_PICTURE, account.profile_picture.filename),
            )
        return cls(
            account_id=account.account_id,
            name=account.name,
            email=account.email,
            profession=account.profession,
            profile_picture=picture,
            pdfs=[AssetResponse.from_record(Bucket.PDF, a) for a in account.pdfs],
            images=[AssetResponse.from_record(Bucket.IMAGE, a) for a in account.images],
            created_at=account.created_at,
        )


class UploadResponse(BaseModel):
    stored_filename: str
    display_name: str
    path: str
    size: int
    url: str


class ContactRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=10_000)


class ProjectQueryRequest(BaseModel):
    email: EmailStr
    message: str = Field(..., min_length=1, max_length=10_000)


class ContactInquiryResponse(BaseModel):
    inquiry_id: str
    name: str
    email: str
    subject: str
    message: str
    created_at: float


class ProjectInquiryResponse(BaseModel):
    inquiry_id: str
    email: str
    message: str
    created_at: float


class BlogPostResponse(BaseModel):
    post_id: str
    title: str
    excerpt: str
    content: str
    category: str
    image_url: Optional[str] = None
    author: str
    created_at: float
    updated_at: float

    @classmethod
    def from_record(cls, post: BlogPostRecord) -> "BlogPostResponse":
        return cls(**post.as_dict())


class AdminDashboardResponse(BaseModel):
    contacts: list[ContactInquiryResponse]
    projects: list[ProjectInquiryResponse]
    users: list[AccountResponse]
