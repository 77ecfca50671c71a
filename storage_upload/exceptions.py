"""Exception classes for the upload workflow."""


class UploadError(Exception):
    """Base error for the upload workflow."""


class NegotiationFailed(UploadError):
    """Raised when a resumable upload session cannot be started."""

    def __init__(self, message: str, status: int | None = None):
        """Initialize NegotiationFailed.

        Args:
            message: Human readable reason.
            status: HTTP status of the negotiation response, if any.
        """
        super().__init__(message)
        self.status = status


class UploadFailed(UploadError):
    """Raised when the server rejects an upload or chunk request."""

    def __init__(self, message: str, status: int | None = None, offset: int = 0):
        """Initialize UploadFailed.

        Args:
            message: Human readable reason.
            status: HTTP status of the failed response, if any.
            offset: Byte offset the failed request started at.
        """
        super().__init__(message)
        self.status = status
        self.offset = offset
