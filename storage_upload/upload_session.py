"""Upload session state machine.

This module drives one upload of a payload to the storage service, either as
a single request or through the resumable upload protocol: a session is
negotiated, the server dictates a chunk granularity, and the payload is sent
as strictly ordered chunks addressed by byte offset until the last chunk
finalizes the object.

More info about the resumable upload protocol can be found here:
https://developers.google.com/android/over-the-air/v1/how-tos/create-package
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from collections.abc import Callable, Coroutine, Generator, Mapping
from types import MappingProxyType
from typing import Any

from storage_upload.config import UploadConfig
from storage_upload.const import (
    COMMAND_START,
    COMMAND_UPLOAD,
    COMMAND_UPLOAD_FINALIZE,
    JSON_CONTENT_TYPE,
    UPLOAD_CHUNK_GRANULARITY_HEADER,
    UPLOAD_COMMAND_HEADER,
    UPLOAD_CONTENT_LENGTH_HEADER,
    UPLOAD_CONTENT_TYPE_HEADER,
    UPLOAD_OFFSET_HEADER,
    UPLOAD_PROTOCOL_HEADER,
    UPLOAD_URL_HEADER,
)
from storage_upload.exceptions import NegotiationFailed, UploadFailed
from storage_upload.models import (
    Fulfilled,
    ProgressStep,
    Rejected,
    SessionState,
    StorageReference,
    UploadOutcome,
    UploadProgress,
    UploadStrategy,
)
from storage_upload.payload import Payload
from storage_upload.transport import RequestIssuer

logger = logging.getLogger(__name__)


def _outcome_of(future: asyncio.Future) -> UploadOutcome:
    if future.cancelled():
        return Rejected(asyncio.CancelledError())
    error = future.exception()
    if error is not None:
        return Rejected(error)
    return Fulfilled(future.result())


class UploadSession:
    """Upload a single payload and expose its progress and completion.

    Construction schedules the upload on the running event loop and returns
    immediately. Callers either await the session (or ``outcome()``), attach
    handlers with ``on_success``/``on_failure``/``on_settled``, or iterate
    the progress steps with ``async for step in session``.
    """

    def __init__(
        self,
        ref: StorageReference,
        payload: Payload,
        issuer: RequestIssuer,
        metadata: Mapping[str, Any] | None = None,
        strategy: UploadStrategy = UploadStrategy.RESUMABLE,
        config: UploadConfig | None = None,
    ) -> None:
        """Initialize the session and start uploading.

        Args:
            ref: Bucket and object path to upload to
            payload: Binary source of the object
            issuer: Performs the HTTP requests
            metadata: Custom metadata attached to the object
            strategy: Single request or resumable chunked upload
            config: Base URL and default chunk granularity

        Raises:
            RuntimeError: If there is no running event loop.
        """
        self._loop = asyncio.get_running_loop()

        self.ref = ref
        self.payload = payload
        self.metadata: Mapping[str, Any] = MappingProxyType(
            copy.deepcopy(dict(metadata or {}))
        )
        self.strategy = UploadStrategy(strategy)
        self._issuer = issuer
        self._config = config or UploadConfig()

        self.offset = 0
        self.session_url: str | None = None
        self.chunk_granularity: int | None = None

        self._completion: asyncio.Future[Any] = self._loop.create_future()
        # Errors reach cursor-only observers through the failing step
        self._completion.add_done_callback(lambda f: f.cancelled() or f.exception())
        self._last_step: asyncio.Task[ProgressStep] | None = None
        self._step_published = asyncio.Event()
        self._task = self._loop.create_task(self._run())

    def __repr__(self) -> str:
        return (
            f"UploadSession(ref={self.ref!r}, strategy={self.strategy.value}, "
            f"offset={self.offset}/{self.payload.size}, state={self.state.value})"
        )

    # Completion surface

    @property
    def state(self) -> SessionState:
        if not self._completion.done():
            return SessionState.PENDING
        if isinstance(_outcome_of(self._completion), Rejected):
            return SessionState.REJECTED
        return SessionState.FULFILLED

    @property
    def result(self) -> Any:
        """Decoded server response, or None until the session is fulfilled."""
        if self.state is not SessionState.FULFILLED:
            return None
        return self._completion.result()

    @property
    def error(self) -> BaseException | None:
        """Causing error, or None unless the session is rejected."""
        if not self._completion.done():
            return None
        outcome = _outcome_of(self._completion)
        return outcome.error if isinstance(outcome, Rejected) else None

    @property
    def last_step(self) -> asyncio.Future[ProgressStep] | None:
        return self._last_step

    def done(self) -> bool:
        return self._completion.done()

    def __await__(self) -> Generator[Any, None, Any]:
        return asyncio.shield(self._completion).__await__()

    async def wait(self) -> Any:
        """Wait for the upload to settle.

        Returns:
            The decoded server response for the finalized object.

        Raises:
            UploadError: If the server rejected the upload.
        """
        return await asyncio.shield(self._completion)

    async def outcome(self) -> UploadOutcome:
        """Wait for the upload to settle without raising."""
        try:
            result = await self.wait()
        except Exception as e:
            return Rejected(e)
        return Fulfilled(result)

    def on_success(self, callback: Callable[[Any], Any]) -> UploadSession:
        """Call ``callback(result)`` once the session is fulfilled."""

        def _invoke(future: asyncio.Future) -> None:
            outcome = _outcome_of(future)
            if isinstance(outcome, Fulfilled):
                callback(outcome.result)

        self._completion.add_done_callback(_invoke)
        return self

    def on_failure(self, callback: Callable[[BaseException], Any]) -> UploadSession:
        """Call ``callback(error)`` once the session is rejected."""

        def _invoke(future: asyncio.Future) -> None:
            outcome = _outcome_of(future)
            if isinstance(outcome, Rejected):
                callback(outcome.error)

        self._completion.add_done_callback(_invoke)
        return self

    def on_settled(self, callback: Callable[[UploadOutcome], Any]) -> UploadSession:
        """Call ``callback(outcome)`` once the session settles either way."""
        self._completion.add_done_callback(
            lambda future: callback(_outcome_of(future))
        )
        return self

    # Progress surface

    def progress(self) -> ProgressCursor:
        """Return a cursor over the progress steps of this session."""
        return ProgressCursor(self)

    def __aiter__(self) -> ProgressCursor:
        return self.progress()

    # Execution

    async def _run(self) -> None:
        logger.info(
            "Starting %s upload of %d bytes to %s/%s",
            self.strategy.value,
            self.payload.size,
            self.ref.bucket,
            self.ref.object_path,
        )
        try:
            if self.strategy is UploadStrategy.RESUMABLE:
                await self._advance(self._negotiate())
                while not (await self._advance(self._upload_next_chunk())).done:
                    pass
            else:
                await self._advance(self._post())
        except asyncio.CancelledError:
            self._completion.cancel()
            raise
        except Exception as e:
            self._reject(e)
        finally:
            # Wake cursors waiting for a step that will never be published
            self._publish_step()

    async def _advance(
        self, operation: Coroutine[Any, Any, ProgressStep]
    ) -> ProgressStep:
        """Run one operation as the session's current step."""
        self._last_step = self._loop.create_task(operation)
        self._publish_step()
        return await self._last_step

    def _publish_step(self) -> None:
        published, self._step_published = self._step_published, asyncio.Event()
        published.set()

    def _fulfill(self, result: Any) -> None:
        if self._completion.done():
            return
        logger.info(
            "Upload complete for %s/%s: %d bytes",
            self.ref.bucket,
            self.ref.object_path,
            self.payload.size,
        )
        self._completion.set_result(result)

    def _reject(self, error: Exception) -> None:
        if self._completion.done():
            return
        logger.warning(
            "Upload failed for %s/%s at offset %d/%d: %s",
            self.ref.bucket,
            self.ref.object_path,
            self.offset,
            self.payload.size,
            error,
        )
        self._completion.set_exception(error)

    async def _negotiate(self) -> ProgressStep:
        """Request a resumable upload session.

        The response carries the session URL used by every chunk request and
        optionally the chunk granularity the server expects.

        Raises:
            NegotiationFailed: If the server refuses the session, omits the
                session URL or dictates a non-positive granularity.
        """
        body = json.dumps({
            **self.metadata,
            "name": self.ref.object_path,
            "contentType": self.payload.content_type,
        }).encode("utf-8")
        response = await self._issuer.issue(
            self._config.resumable_start_url(self.ref),
            method="POST",
            headers={
                "Content-Type": JSON_CONTENT_TYPE,
                UPLOAD_PROTOCOL_HEADER: "resumable",
                UPLOAD_COMMAND_HEADER: COMMAND_START,
                UPLOAD_CONTENT_LENGTH_HEADER: self.payload.size,
                UPLOAD_CONTENT_TYPE_HEADER: self.payload.content_type,
            },
            body=body,
        )
        if not response.ok:
            raise NegotiationFailed(
                f"unexpected status {response.status}", status=response.status
            )

        session_url = response.header(UPLOAD_URL_HEADER)
        if not session_url:
            raise NegotiationFailed("missing session URL", status=response.status)

        self.chunk_granularity = self._parse_granularity(
            response.header(UPLOAD_CHUNK_GRANULARITY_HEADER), response.status
        )
        self.session_url = session_url
        logger.debug(
            "Negotiated upload session for %s/%s with granularity %d",
            self.ref.bucket,
            self.ref.object_path,
            self.chunk_granularity,
        )
        return ProgressStep(
            done=False, value=UploadProgress(offset=0, total=self.payload.size)
        )

    def _parse_granularity(self, raw: str | None, status: int) -> int:
        if raw is None:
            return self._config.default_chunk_granularity
        try:
            granularity = int(raw.strip())
        except ValueError:
            logger.warning("Ignoring malformed chunk granularity %r", raw)
            return self._config.default_chunk_granularity
        if granularity <= 0:
            raise NegotiationFailed(
                f"invalid chunk granularity {granularity}", status=status
            )
        return granularity

    async def _upload_next_chunk(self) -> ProgressStep:
        """Send the chunk starting at the current offset.

        Raises:
            UploadFailed: If the server rejects the chunk. The offset is not
                advanced.
        """
        offset = self.offset
        granularity = self.chunk_granularity
        session_url = self.session_url
        assert session_url is not None and granularity is not None
        total = self.payload.size
        chunk = self.payload.slice(offset, offset + granularity)
        is_final = chunk.size < granularity or offset + chunk.size >= total

        response = await self._issuer.issue(
            session_url,
            method="POST",
            headers={
                UPLOAD_OFFSET_HEADER: offset,
                UPLOAD_COMMAND_HEADER: (
                    COMMAND_UPLOAD_FINALIZE if is_final else COMMAND_UPLOAD
                ),
            },
            body=chunk.read(),
        )
        if not response.ok:
            raise UploadFailed(
                f"unexpected status {response.status}",
                status=response.status,
                offset=offset,
            )

        self.offset = offset + chunk.size
        logger.debug("Uploaded chunk: %d/%d bytes", self.offset, total)

        if is_final:
            self._fulfill(response.json())
        return ProgressStep(
            done=is_final, value=UploadProgress(offset=self.offset, total=total)
        )

    async def _post(self) -> ProgressStep:
        """Upload the whole payload in one request.

        Raises:
            UploadFailed: If the server rejects the upload.
        """
        total = self.payload.size
        response = await self._issuer.issue(
            self._config.single_shot_url(self.ref, self.metadata),
            method="POST",
            headers={"Content-Type": self.payload.content_type},
            body=self.payload.read(),
        )
        if not response.ok:
            raise UploadFailed(
                f"unexpected status {response.status}", status=response.status
            )

        self._fulfill(response.json())
        return ProgressStep(done=True, value=UploadProgress(offset=total, total=total))


class ProgressCursor:
    """Async iterator replaying the progress of one UploadSession.

    Each step is the session's own in-flight or last completed operation, so
    any number of cursors can observe a session without issuing requests of
    their own. Cancelling a consumer never cancels the step it waits on.
    The sequence ends after the step that completes the upload, and raises
    the step's error if the in-flight operation fails.
    """

    def __init__(self, session: UploadSession) -> None:
        self._session = session
        self._seen: asyncio.Future[ProgressStep] | None = None
        self._finished = False

    def __aiter__(self) -> ProgressCursor:
        return self

    async def __anext__(self) -> ProgressStep:
        if self._finished:
            raise StopAsyncIteration

        session = self._session
        while session.last_step is self._seen:
            if session.done():
                self._finished = True
                raise StopAsyncIteration
            await session._step_published.wait()

        step_future = session.last_step
        assert step_future is not None
        self._seen = step_future
        step = await asyncio.shield(step_future)
        if step.done:
            self._finished = True
        return step
