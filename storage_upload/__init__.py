"""Client for uploading objects to a storage bucket over HTTP."""

from .client import StorageClient
from .config import UploadConfig
from .exceptions import NegotiationFailed, UploadError, UploadFailed
from .models import (
    Fulfilled,
    ProgressStep,
    Rejected,
    SessionState,
    StorageReference,
    UploadOutcome,
    UploadProgress,
    UploadStrategy,
)
from .payload import BytesPayload, FilePayload, Payload
from .transport import AiohttpRequestIssuer, HttpResponse, RequestIssuer
from .upload_session import ProgressCursor, UploadSession

__version__ = "0.1.0"

__all__ = [
    "AiohttpRequestIssuer",
    "BytesPayload",
    "FilePayload",
    "Fulfilled",
    "HttpResponse",
    "NegotiationFailed",
    "Payload",
    "ProgressCursor",
    "ProgressStep",
    "Rejected",
    "RequestIssuer",
    "SessionState",
    "StorageClient",
    "StorageReference",
    "UploadConfig",
    "UploadError",
    "UploadFailed",
    "UploadOutcome",
    "UploadProgress",
    "UploadSession",
    "UploadStrategy",
]
