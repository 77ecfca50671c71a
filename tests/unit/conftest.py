"""Shared fixtures for upload session tests.

``FakeStorageServer`` stands in for the request issuer and models just enough
of the storage service: a resumable session start, ordered chunk uploads at
the session URL, and single request uploads to the object path.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import pytest
from multidict import CIMultiDict, CIMultiDictProxy

from storage_upload.config import UploadConfig
from storage_upload.transport import HttpResponse

BASE_URL = "http://fake/v0"
SESSION_URL = "http://fake/upload/sess-1"
DEFAULT_GRANULARITY = 262144


def make_response(
    status: int,
    headers: Mapping[str, str] | None = None,
    json_body: Any = None,
) -> HttpResponse:
    body = b"" if json_body is None else json.dumps(json_body).encode()
    return HttpResponse(
        status=status,
        headers=CIMultiDictProxy(CIMultiDict(headers or {})),
        body=body,
    )


@dataclass
class RecordedRequest:
    url: str
    method: str
    headers: dict[str, str]
    body: bytes

    @property
    def command(self) -> str | None:
        return self.headers.get("X-Goog-Upload-Command")

    @property
    def offset(self) -> int:
        return int(self.headers["X-Goog-Upload-Offset"])

    @property
    def is_chunk(self) -> bool:
        return self.url == SESSION_URL


class FakeStorageServer:
    def __init__(self) -> None:
        self.requests: list[RecordedRequest] = []
        self.granularity_header: str | None = str(DEFAULT_GRANULARITY)
        self.session_url: str | None = SESSION_URL
        self.start_status = 200
        self.upload_status = 200
        self.chunk_statuses: dict[int, int] = {}
        self.data = bytearray()
        self.finalized = False
        self.gate: asyncio.Event | None = None
        self.pre_request: Callable[[RecordedRequest], Exception | None] | None = None

    @property
    def chunk_requests(self) -> list[RecordedRequest]:
        return [request for request in self.requests if request.is_chunk]

    async def issue(
        self,
        url: str,
        *,
        method: str,
        headers: Mapping[str, str | int],
        body: bytes | None = None,
    ) -> HttpResponse:
        request = RecordedRequest(
            url=url,
            method=method,
            headers={name: str(value) for name, value in headers.items()},
            body=body or b"",
        )
        self.requests.append(request)

        if self.gate is not None:
            await self.gate.wait()
        await asyncio.sleep(0)

        if self.pre_request:
            error = self.pre_request(request)
            if error is not None:
                raise error

        if request.command == "start":
            return self._start(request)
        if request.is_chunk:
            return self._chunk(request)
        return self._single_shot(request)

    def _start(self, request: RecordedRequest) -> HttpResponse:
        headers: dict[str, str] = {}
        if self.session_url is not None:
            headers["X-Goog-Upload-URL"] = self.session_url
        if self.granularity_header is not None:
            headers["X-Goog-Upload-Chunk-Granularity"] = self.granularity_header
        return make_response(self.start_status, headers=headers)

    def _chunk(self, request: RecordedRequest) -> HttpResponse:
        status = self.chunk_statuses.get(request.offset, 200)
        if status != 200:
            return make_response(status)
        assert request.offset == len(self.data), "chunk sent out of order"
        self.data.extend(request.body)
        if request.command == "upload, finalize":
            self.finalized = True
            return make_response(
                200, json_body={"name": "object", "size": str(len(self.data))}
            )
        return make_response(200)

    def _single_shot(self, request: RecordedRequest) -> HttpResponse:
        if self.upload_status >= 400:
            return make_response(self.upload_status)
        self.data.extend(request.body)
        self.finalized = True
        return make_response(
            200, json_body={"name": "object", "size": str(len(self.data))}
        )


@pytest.fixture
def server() -> FakeStorageServer:
    return FakeStorageServer()


@pytest.fixture
def config() -> UploadConfig:
    return UploadConfig(base_url=BASE_URL)
