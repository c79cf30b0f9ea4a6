"""
HTTP routes for the site backend API.
"""

from __future__ import annotations

import logging
import mimetypes
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from folio.auth import (
    SESSION_ACCOUNT_KEY,
    SESSION_ADMIN_EMAIL_KEY,
    SESSION_ADMIN_KEY,
    AuthContext,
    CredentialVerifier,
    check_admin_credentials,
    require_account,
    require_admin,
)
from folio.config import Settings, get_settings
from folio.db import RecordStore
from folio.deletion import DeletionCoordinator, account_bucket
from folio.dependencies import (
    get_auth_context,
    get_blob_store,
    get_credential_verifier,
    get_deletion_coordinator,
    get_ownership_linker,
    get_record_store,
)
from folio.errors import NotAuthenticatedError, NotFoundError
from folio.intake import IncomingFile, policy_for
from folio.linker import OwnershipLinker
from folio.schemas import (
    AccountResponse,
    AdminDashboardResponse,
    AdminLoginRequest,
    BlogPostResponse,
    ContactInquiryResponse,
    ContactRequest,
    LoginRequest,
    ProjectInquiryResponse,
    ProjectQueryRequest,
    RegisterRequest,
    SuccessResponse,
    UploadResponse,
)
from folio.storage import BlobStore, Bucket, public_url, safe_name

logger = logging.getLogger(__name__)

router = APIRouter()
files_router = APIRouter()


async def _read_incoming(file: UploadFile, bucket: Bucket) -> IncomingFile:
    # One byte past the ceiling is enough to reject an oversize upload.
    data = await file.read(policy_for(bucket).max_bytes + 1)
    return IncomingFile(
        filename=file.filename or "",
        content_type=file.content_type or "",
        data=data,
        declared_size=getattr(file, "size", None),
    )


def _present(file: Optional[UploadFile]) -> bool:
    return file is not None and bool(file.filename)


def _admin_context(
    request: Request, ctx: AuthContext = Depends(get_auth_context)
) -> AuthContext:
    """Admin gate; a failed check ends the whole session."""
    if not ctx.is_admin:
        request.session.clear()
        require_admin(ctx)
    return ctx


# Accounts

@router.post("/register", response_model=AccountResponse, status_code=201)
def register(
    payload: RegisterRequest,
    request: Request,
    db: RecordStore = Depends(get_record_store),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
):
    password_hash, salt = verifier.hash(payload.password)
    account = db.create_account(
        name=payload.name,
        email=payload.email,
        profession=payload.profession,
        password_hash=password_hash,
        password_salt=salt,
    )
    request.session[SESSION_ACCOUNT_KEY] = account.account_id
    logger.info("Registered account %s", account.account_id)
    return AccountResponse.from_record(account)


@router.post("/login", response_model=AccountResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: RecordStore = Depends(get_record_store),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
):
    account = db.find_account_by_email(payload.email)
    if not account or not verifier.verify(
        payload.password, account.password_hash, account.password_salt
    ):
        raise NotAuthenticatedError("Invalid email or password")
    request.session[SESSION_ACCOUNT_KEY] = account.account_id
    return AccountResponse.from_record(account)


@router.post("/logout", response_model=SuccessResponse)
def logout(request: Request):
    request.session.clear()
    return SuccessResponse()


@router.get("/space", response_model=AccountResponse)
def space(
    ctx: AuthContext = Depends(get_auth_context),
    db: RecordStore = Depends(get_record_store),
):
    account = db.get_account(require_account(ctx))
    if not account:
        raise NotAuthenticatedError()
    return AccountResponse.from_record(account)


@router.delete("/accounts/{account_id}", response_model=SuccessResponse)
def delete_own_account(
    account_id: str,
    request: Request,
    ctx: AuthContext = Depends(get_auth_context),
    deletion: DeletionCoordinator = Depends(get_deletion_coordinator),
):
    deletion.delete_account(ctx, account_id)
    if ctx.account_id == account_id:
        request.session.pop(SESSION_ACCOUNT_KEY, None)
    return SuccessResponse(message="Account deleted")


# Account files

@router.post(
    "/accounts/{account_id}/files/{bucket}",
    response_model=UploadResponse,
    status_code=201,
)
async def upload_account_file(
    account_id: str,
    bucket: str,
    file: UploadFile = File(...),
    ctx: AuthContext = Depends(get_auth_context),
    linker: OwnershipLinker = Depends(get_ownership_linker),
):
    target = account_bucket(bucket)
    incoming = await _read_incoming(file, target)
    upload, _ = await run_in_threadpool(
        linker.upload_account_file, ctx, account_id, target, incoming
    )
    return UploadResponse(
        stored_filename=upload.stored_filename,
        display_name=upload.display_name,
        path=upload.path,
        size=upload.size,
        url=public_url(target, upload.stored_filename),
    )


@router.delete(
    "/accounts/{account_id}/files/{bucket}/{filename}",
    response_model=SuccessResponse,
)
def delete_account_file(
    account_id: str,
    bucket: str,
    filename: str,
    ctx: AuthContext = Depends(get_auth_context),
    deletion: DeletionCoordinator = Depends(get_deletion_coordinator),
):
    target = account_bucket(bucket)
    deletion.delete_account_file(ctx, account_id, target, filename)
    return SuccessResponse(message="File deleted successfully")


# Inquiries

@router.post("/contact", response_model=ContactInquiryResponse, status_code=201)
def submit_contact(payload: ContactRequest, db: RecordStore = Depends(get_record_store)):
    record = db.create_contact_inquiry(
        name=payload.name,
        email=payload.email,
        subject=payload.subject,
        message=payload.message,
    )
    return ContactInquiryResponse(**record.as_dict())


@router.post("/projectquery", response_model=ProjectInquiryResponse, status_code=201)
def submit_project_query(
    payload: ProjectQueryRequest, db: RecordStore = Depends(get_record_store)
):
    record = db.create_project_inquiry(email=payload.email, message=payload.message)
    return ProjectInquiryResponse(**record.as_dict())


# Blog

@router.get("/blogs", response_model=list[BlogPostResponse])
def list_blogs(db: RecordStore = Depends(get_record_store)):
    return [BlogPostResponse.from_record(p) for p in db.list_blog_posts()]


@router.get("/blogs/{post_id}", response_model=BlogPostResponse)
def get_blog(post_id: str, db: RecordStore = Depends(get_record_store)):
    post = db.get_blog_post(post_id)
    if not post:
        raise NotFoundError("Blog not found")
    return BlogPostResponse.from_record(post)


@router.post("/blogs", response_model=BlogPostResponse, status_code=201)
async def create_blog(
    title: str = Form(""),
    excerpt: str = Form(""),
    content: str = Form(""),
    category: str = Form(""),
    image: Optional[UploadFile] = File(None),
    ctx: AuthContext = Depends(_admin_context),
    linker: OwnershipLinker = Depends(get_ownership_linker),
):
    fields = {"title": title, "excerpt": excerpt, "content": content, "category": category}
    incoming = await _read_incoming(image, Bucket.BLOG_IMAGE) if _present(image) else None
    post = await run_in_threadpool(linker.create_blog_post, ctx, fields, incoming)
    return BlogPostResponse.from_record(post)


@router.put("/blogs/{post_id}", response_model=BlogPostResponse)
async def update_blog(
    post_id: str,
    title: Optional[str] = Form(None),
    excerpt: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    ctx: AuthContext = Depends(_admin_context),
    linker: OwnershipLinker = Depends(get_ownership_linker),
):
    fields = {"title": title, "excerpt": excerpt, "content": content, "category": category}
    incoming = await _read_incoming(image, Bucket.BLOG_IMAGE) if _present(image) else None
    post = await run_in_threadpool(linker.update_blog_post, ctx, post_id, fields, incoming)
    return BlogPostResponse.from_record(post)


@router.delete("/blogs/{post_id}", response_model=SuccessResponse)
def delete_blog(
    post_id: str,
    ctx: AuthContext = Depends(_admin_context),
    deletion: DeletionCoordinator = Depends(get_deletion_coordinator),
):
    deletion.delete_blog_post(ctx, post_id)
    return SuccessResponse(message="Blog deleted successfully")


@router.delete("/blogs/{post_id}/image", response_model=BlogPostResponse)
def delete_blog_image(
    post_id: str,
    ctx: AuthContext = Depends(_admin_context),
    deletion: DeletionCoordinator = Depends(get_deletion_coordinator),
):
    return BlogPostResponse.from_record(deletion.delete_blog_image(ctx, post_id))


# Admin console

@router.post("/admin/login", response_model=SuccessResponse)
def admin_login(
    payload: AdminLoginRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
):
    if not check_admin_credentials(
        payload.email, payload.password, settings.admin_email, settings.admin_password
    ):
        logger.warning("Rejected admin login for %s", payload.email)
        raise NotAuthenticatedError("Invalid admin credentials")
    request.session[SESSION_ADMIN_KEY] = True
    request.session[SESSION_ADMIN_EMAIL_KEY] = payload.email
    return SuccessResponse()


@router.post("/admin/logout", response_model=SuccessResponse)
def admin_logout(request: Request):
    request.session.pop(SESSION_ADMIN_KEY, None)
    request.session.pop(SESSION_ADMIN_EMAIL_KEY, None)
    return SuccessResponse()


@router.get("/admin/dashboard", response_model=AdminDashboardResponse)
def admin_dashboard(
    ctx: AuthContext = Depends(_admin_context),
    db: RecordStore = Depends(get_record_store),
):
    return AdminDashboardResponse(
        contacts=[ContactInquiryResponse(**c.as_dict()) for c in db.list_contact_inquiries()],
        projects=[ProjectInquiryResponse(**p.as_dict()) for p in db.list_project_inquiries()],
        users=[AccountResponse.from_record(a) for a in db.list_accounts()],
    )


@router.delete("/admin/users/{account_id}", response_model=SuccessResponse)
def admin_delete_user(
    account_id: str,
    ctx: AuthContext = Depends(_admin_context),
    deletion: DeletionCoordinator = Depends(get_deletion_coordinator),
):
    deletion.delete_account(ctx, account_id)
    return SuccessResponse()


@router.delete("/admin/contacts/{inquiry_id}", response_model=SuccessResponse)
def admin_delete_contact(
    inquiry_id: str,
    ctx: AuthContext = Depends(_admin_context),
    db: RecordStore = Depends(get_record_store),
):
    if not db.delete_contact_inquiry(inquiry_id):
        raise NotFoundError("Contact not found")
    return SuccessResponse()


@router.delete("/admin/projects/{inquiry_id}", response_model=SuccessResponse)
def admin_delete_project(
    inquiry_id: str,
    ctx: AuthContext = Depends(_admin_context),
    db: RecordStore = Depends(get_record_store),
):
    if not db.delete_project_inquiry(inquiry_id):
        raise NotFoundError("Project query not found")
    return SuccessResponse()


# File retrieval

@files_router.get("/{bucket}/{filename}")
def serve_file(
    bucket: str,
    filename: str,
    download: bool = Query(False),
    storage: BlobStore = Depends(get_blob_store),
):
    try:
        target = Bucket(bucket)
    except ValueError:
        raise NotFoundError("File not found") from None
    name = safe_name(filename)
    if not name or not storage.exists(target, name):
        raise NotFoundError("File not found")

    media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    disposition = "attachment" if download else "inline"
    quoted = quote(name)
    if quoted != name:
        disposition = f"{disposition}; filename*=utf-8''{quoted}"
    else:
        disposition = f'{disposition}; filename="{name}"'
    return StreamingResponse(
        storage.iter_bytes(target, name),
        media_type=media_type,
        headers={"Content-Disposition": disposition},
    )
