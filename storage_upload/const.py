"""Constants for the storage upload client."""

import os

API_URL = os.getenv(
    "STORAGE_UPLOAD_API_URL", "https://firebasestorage.googleapis.com/v0"
)

# Used when the server does not dictate a chunk granularity during negotiation.
DEFAULT_CHUNK_GRANULARITY = 256 * 1024  # (256kb)
DEFAULT_REQUEST_TIMEOUT_SECONDS = 300.0

DEFAULT_CONTENT_TYPE = "application/octet-stream"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"

# Request headers of the resumable upload protocol
UPLOAD_PROTOCOL_HEADER = "X-Goog-Upload-Protocol"
UPLOAD_COMMAND_HEADER = "X-Goog-Upload-Command"
UPLOAD_OFFSET_HEADER = "X-Goog-Upload-Offset"
UPLOAD_CONTENT_LENGTH_HEADER = "X-Goog-Upload-Header-Content-Length"
UPLOAD_CONTENT_TYPE_HEADER = "X-Goog-Upload-Header-Content-Type"

# Response headers of the resumable upload protocol
UPLOAD_URL_HEADER = "x-goog-upload-url"
UPLOAD_CHUNK_GRANULARITY_HEADER = "x-goog-upload-chunk-granularity"

COMMAND_START = "start"
COMMAND_UPLOAD = "upload"
COMMAND_UPLOAD_FINALIZE = "upload, finalize"
