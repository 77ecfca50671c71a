"""Storage client that starts upload sessions over aiohttp."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from types import TracebackType
from typing import Any

import aiohttp

from storage_upload.config import UploadConfig
from storage_upload.models import StorageReference, UploadStrategy
from storage_upload.payload import Payload
from storage_upload.transport import AiohttpRequestIssuer
from storage_upload.upload_session import UploadSession

logger = logging.getLogger(__name__)


class StorageClient:
    """Owns the HTTP session and configuration shared by upload sessions.

    A client session passed in by the caller is left open on ``close``;
    one created by the client is closed with it.
    """

    def __init__(
        self,
        config: UploadConfig | None = None,
        client_session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config or UploadConfig()
        self._client_session = client_session
        self._owns_session = client_session is None
        self._issuer: AiohttpRequestIssuer | None = None

    @property
    def client_session(self) -> aiohttp.ClientSession:
        if self._client_session is None:
            self._client_session = aiohttp.ClientSession()
        return self._client_session

    @property
    def issuer(self) -> AiohttpRequestIssuer:
        if self._issuer is None:
            self._issuer = AiohttpRequestIssuer(
                self.client_session,
                timeout_seconds=self.config.request_timeout_seconds,
            )
        return self._issuer

    def upload(
        self,
        ref: StorageReference,
        payload: Payload,
        metadata: Mapping[str, Any] | None = None,
        strategy: UploadStrategy = UploadStrategy.RESUMABLE,
    ) -> UploadSession:
        """Start uploading ``payload`` to ``ref``.

        Must be called from inside a running event loop.

        Returns:
            The started upload session.
        """
        return UploadSession(
            ref,
            payload,
            self.issuer,
            metadata=metadata,
            strategy=strategy,
            config=self.config,
        )

    async def close(self) -> None:
        if self._owns_session and self._client_session is not None:
            await self._client_session.close()
            logger.debug("Closed storage client session")
        self._client_session = None
        self._issuer = None

    async def __aenter__(self) -> StorageClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
