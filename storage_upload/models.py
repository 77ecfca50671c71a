"""Value types shared by the upload session and its collaborators."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    from storage_upload.config import UploadConfig
    from storage_upload.payload import Payload
    from storage_upload.transport import RequestIssuer
    from storage_upload.upload_session import UploadSession


class UploadStrategy(str, Enum):
    """How the payload is sent to the storage service."""

    SINGLE_SHOT = "single_shot"
    RESUMABLE = "resumable"


class SessionState(str, Enum):
    """Lifecycle states for an upload session.

    State transitions:
    - PENDING -> FULFILLED (server acknowledged the finalized object)
    - PENDING -> REJECTED (any error at any stage)
    """

    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass(frozen=True)
class StorageReference:
    """Destination of an upload: a bucket and an object path inside it."""

    bucket: str
    object_path: str

    def put(
        self,
        payload: Payload,
        issuer: RequestIssuer,
        metadata: Mapping[str, Any] | None = None,
        strategy: UploadStrategy = UploadStrategy.RESUMABLE,
        config: UploadConfig | None = None,
    ) -> UploadSession:
        """Start uploading ``payload`` to this reference.

        Must be called from inside a running event loop.
        """
        from storage_upload.upload_session import UploadSession

        return UploadSession(
            self,
            payload,
            issuer,
            metadata=metadata,
            strategy=strategy,
            config=config,
        )


@dataclass(frozen=True)
class UploadProgress:
    """Bytes acknowledged by the server out of the payload total."""

    offset: int
    total: int


@dataclass(frozen=True)
class ProgressStep:
    """One negotiation, chunk or single-shot operation of a session."""

    done: bool
    value: UploadProgress


@dataclass(frozen=True)
class Fulfilled:
    """Outcome of a session that completed; holds the decoded response."""

    result: Any


@dataclass(frozen=True)
class Rejected:
    """Outcome of a session that failed; holds the causing error."""

    error: BaseException


UploadOutcome = Union[Fulfilled, Rejected]
