"""
Error taxonomy shared by the upload, linking and deletion services.
"""

from __future__ import annotations


class FolioError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(FolioError):
    status_code = 400
    default_message = "Invalid request"


class PayloadTooLargeError(ValidationError):
    status_code = 413
    default_message = "File too large"


class PermissionDeniedError(FolioError):
    status_code = 403
    default_message = "Unauthorized"


class NotAuthenticatedError(PermissionDeniedError):
    status_code = 401
    default_message = "Unauthorized"


class NotFoundError(FolioError):
    status_code = 404
    default_message = "Not found"


class ConflictError(FolioError):
    status_code = 409
    default_message = "Already exists"


class ServerError(FolioError):
    status_code = 500
