"""Payload sources that can be sliced into chunks for upload."""

import mimetypes
from pathlib import Path
from typing import Protocol

from storage_upload.const import DEFAULT_CONTENT_TYPE


def _clamp(start: int, end: int, size: int) -> tuple[int, int]:
    start = min(max(start, 0), size)
    end = min(max(end, start), size)
    return start, end


class Payload(Protocol):
    """A read-only binary blob with a size, a content type and sub-ranges."""

    @property
    def size(self) -> int: ...

    @property
    def content_type(self) -> str: ...

    def slice(self, start: int, end: int) -> "Payload": ...

    def read(self) -> bytes: ...


class BytesPayload:
    """Payload backed by an in-memory buffer.

    Slices are memoryviews over the original buffer, so no data is copied
    until ``read`` is called.
    """

    def __init__(
        self, data: bytes | bytearray | memoryview, content_type: str | None = None
    ) -> None:
        """Initialize the payload.

        Args:
            data: Buffer holding the payload bytes. Mutable or non-contiguous
                buffers are copied so the caller's buffer stays resizable.
            content_type: MIME type, defaults to application/octet-stream
        """
        if isinstance(data, bytearray):
            data = bytes(data)
        elif isinstance(data, memoryview) and not data.contiguous:
            data = data.tobytes()
        self._view = memoryview(data).cast("B")
        self._content_type = content_type or DEFAULT_CONTENT_TYPE

    @property
    def size(self) -> int:
        return len(self._view)

    @property
    def content_type(self) -> str:
        return self._content_type

    def slice(self, start: int, end: int) -> "BytesPayload":
        start, end = _clamp(start, end, self.size)
        return BytesPayload(self._view[start:end], self._content_type)

    def read(self) -> bytes:
        return self._view.tobytes()

    def __repr__(self) -> str:
        return f"BytesPayload(size={self.size}, content_type={self._content_type!r})"


class FilePayload:
    """Payload backed by a file on disk.

    Only the byte range of a slice is read, and only when ``read`` is called.
    """

    def __init__(
        self,
        path: str | Path,
        content_type: str | None = None,
        start: int = 0,
        end: int | None = None,
    ) -> None:
        """Initialize the payload.

        Args:
            path: Local filesystem path to file
            content_type: MIME type, guessed from the file name when omitted
            start: First byte of the file covered by this payload
            end: Byte after the last one covered, defaults to the file size

        Raises:
            FileNotFoundError: If the local file does not exist.
        """
        self._path = Path(path)
        if not self._path.is_file():
            raise FileNotFoundError(f"File not found: {self._path}")

        file_size = self._path.stat().st_size
        self._start, self._end = _clamp(
            start, file_size if end is None else end, file_size
        )
        if content_type is None:
            content_type, _ = mimetypes.guess_type(self._path.name)
        self._content_type = content_type or DEFAULT_CONTENT_TYPE

    @property
    def path(self) -> Path:
        return self._path

    @property
    def size(self) -> int:
        return self._end - self._start

    @property
    def content_type(self) -> str:
        return self._content_type

    def slice(self, start: int, end: int) -> "FilePayload":
        start, end = _clamp(start, end, self.size)
        return FilePayload(
            self._path,
            self._content_type,
            start=self._start + start,
            end=self._start + end,
        )

    def read(self) -> bytes:
        with open(self._path, "rb") as f:
            f.seek(self._start)
            return f.read(self.size)

    def __repr__(self) -> str:
        return (
            f"FilePayload(path={str(self._path)!r}, "
            f"range={self._start}-{self._end}, content_type={self._content_type!r})"
        )
