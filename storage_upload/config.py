"""Pydantic configuration for the storage upload client."""

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlencode

from pydantic import BaseModel, Field, field_validator

from storage_upload.const import (
    API_URL,
    DEFAULT_CHUNK_GRANULARITY,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
)
from storage_upload.models import StorageReference


def object_to_query(params: Mapping[str, Any]) -> str:
    """Encode a mapping as a query string.

    Returns:
        ``""`` for an empty mapping, otherwise ``"?k=v&..."`` url-encoded.
    """
    if not params:
        return ""
    return "?" + urlencode({key: str(value) for key, value in params.items()})


class UploadConfig(BaseModel):
    """Configuration options for upload sessions.

    Attributes:
        base_url: root of the storage REST API, without a trailing slash.
        default_chunk_granularity: chunk size in bytes used when the server
            does not dictate one during negotiation.
        request_timeout_seconds: total timeout applied to each HTTP request.
    """

    base_url: str = API_URL
    default_chunk_granularity: int = Field(default=DEFAULT_CHUNK_GRANULARITY, gt=0)
    request_timeout_seconds: float = Field(
        default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0
    )

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def bucket_url(self, bucket: str) -> str:
        """Return the objects endpoint of a bucket."""
        return f"{self.base_url}/b/{bucket}/o"

    def resumable_start_url(self, ref: StorageReference) -> str:
        """Return the URL that starts a resumable upload session for ``ref``."""
        return self.bucket_url(ref.bucket) + object_to_query(
            {"name": ref.object_path, "uploadType": "resumable"}
        )

    def single_shot_url(
        self, ref: StorageReference, metadata: Mapping[str, Any]
    ) -> str:
        """Return the URL of a single request upload to ``ref``."""
        return (
            f"{self.bucket_url(ref.bucket)}/{quote(ref.object_path, safe='')}"
            + object_to_query(metadata)
        )
