"""Tests for HttpResponse and the aiohttp request issuer."""

from __future__ import annotations

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from multidict import CIMultiDict, CIMultiDictProxy

from storage_upload.transport import AiohttpRequestIssuer, HttpResponse


async def _echo(request: web.Request) -> web.Response:
    body = await request.read()
    if request.path == "/fail":
        return web.Response(status=503, text="unavailable")
    return web.json_response(
        {
            "method": request.method,
            "path": request.path,
            "offset": request.headers.get("X-Goog-Upload-Offset"),
            "size": len(body),
        },
        headers={"X-Goog-Upload-URL": "http://storage.local/upload/1"},
    )


@pytest_asyncio.fixture
async def echo_server():
    app = web.Application()
    app.router.add_route("*", "/{tail:.*}", _echo)
    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest_asyncio.fixture
async def client_session():
    session = aiohttp.ClientSession()
    yield session
    await session.close()


def test_http_response_headers_are_case_insensitive() -> None:
    response = HttpResponse(
        status=200,
        headers=CIMultiDictProxy(CIMultiDict({"X-Goog-Upload-URL": "http://u"})),
    )

    assert response.ok is True
    assert response.header("x-goog-upload-url") == "http://u"
    assert response.header("x-goog-upload-chunk-granularity") is None


@pytest.mark.parametrize(
    "status, ok", [(200, True), (204, True), (302, False), (308, False), (404, False)]
)
def test_http_response_ok(status: int, ok: bool) -> None:
    assert HttpResponse(status=status).ok is ok


def test_http_response_json() -> None:
    assert HttpResponse(status=200, body=b'{"name": "x"}').json() == {"name": "x"}
    assert HttpResponse(status=200).json() == {}


@pytest.mark.asyncio
async def test_issuer_sends_request_and_reads_response(
    echo_server: TestServer, client_session: aiohttp.ClientSession
) -> None:
    issuer = AiohttpRequestIssuer(client_session, timeout_seconds=5)

    response = await issuer.issue(
        str(echo_server.make_url("/upload/1")),
        method="POST",
        headers={"X-Goog-Upload-Offset": 262144},
        body=b"x" * 10,
    )

    assert response.status == 200
    assert response.header("x-goog-upload-url") == "http://storage.local/upload/1"
    assert response.json() == {
        "method": "POST",
        "path": "/upload/1",
        "offset": "262144",
        "size": 10,
    }


@pytest.mark.asyncio
async def test_issuer_returns_error_status_without_raising(
    echo_server: TestServer, client_session: aiohttp.ClientSession
) -> None:
    issuer = AiohttpRequestIssuer(client_session)

    response = await issuer.issue(
        str(echo_server.make_url("/fail")), method="POST", headers={}
    )

    assert response.status == 503
    assert response.ok is False
    assert response.body == b"unavailable"


@pytest.mark.asyncio
async def test_issuer_propagates_connection_errors(
    client_session: aiohttp.ClientSession,
) -> None:
    issuer = AiohttpRequestIssuer(client_session, timeout_seconds=5)

    with pytest.raises(aiohttp.ClientConnectionError):
        await issuer.issue("http://127.0.0.1:1/unreachable", method="POST", headers={})
