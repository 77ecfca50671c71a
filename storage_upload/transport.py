"""HTTP request issuing for upload sessions.

The upload session never talks to aiohttp directly. It calls into a
``RequestIssuer`` which returns an ``HttpResponse`` whose body has already
been read, so the response can be inspected after the connection is released.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import aiohttp
from multidict import CIMultiDict, CIMultiDictProxy

from storage_upload.const import DEFAULT_REQUEST_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class HttpResponse:
    """Status, headers and body extracted from an HTTP response."""

    status: int
    headers: CIMultiDictProxy[str] = field(
        default_factory=lambda: CIMultiDictProxy(CIMultiDict())
    )
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        """Return a response header, matched case-insensitively."""
        return self.headers.get(name)

    def json(self) -> Any:
        """Decode the body as JSON; an empty body decodes to an empty dict."""
        if not self.body.strip():
            return {}
        return json.loads(self.body)


class RequestIssuer(Protocol):
    """Performs one HTTP request and returns its extracted response."""

    async def issue(
        self,
        url: str,
        *,
        method: str,
        headers: Mapping[str, str | int],
        body: bytes | None = None,
    ) -> HttpResponse: ...


class AiohttpRequestIssuer:
    """Issue requests through a shared aiohttp ClientSession."""

    def __init__(
        self,
        client_session: aiohttp.ClientSession,
        timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the issuer.

        Args:
            client_session: aiohttp ClientSession for HTTP requests
            timeout_seconds: Total timeout applied to every request
        """
        self._session = client_session
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def issue(
        self,
        url: str,
        *,
        method: str,
        headers: Mapping[str, str | int],
        body: bytes | None = None,
    ) -> HttpResponse:
        """Send the request and read the whole response.

        Raises:
            aiohttp.ClientError: If the request fails at the transport level.
            asyncio.TimeoutError: If the request exceeds the configured timeout.
        """
        logger.debug("%s %s (%d bytes)", method, url, len(body or b""))
        async with self._session.request(
            method,
            url,
            headers={name: str(value) for name, value in headers.items()},
            data=body,
            timeout=self._timeout,
        ) as response:
            # Extract response data before context exits
            payload = await response.read()
            return HttpResponse(
                status=response.status,
                headers=CIMultiDictProxy(CIMultiDict(response.headers)),
                body=payload,
            )
