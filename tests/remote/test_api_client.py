from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from contact_importer.errors import RowSubmissionError
from contact_importer.remote.api_client import SUBSCRIBE_PATH, UPSERT_PATH, HttpContactWriter


def _run_with(handler, action):
    async def scenario():
        async with HttpContactWriter(
            "https://api.example.com/",
            token="secret",
            transport=httpx.MockTransport(handler),
        ) as writer:
            await action(writer)

    asyncio.run(scenario())


def test_upsert_posts_contact_with_bearer_token() -> None:
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"ok": True})

    _run_with(handler, lambda writer: writer.upsert("ws_1", {"email": "ada@example.com", "lifetime_value": 12.5}))

    (request,) = requests
    assert request.method == "POST"
    assert request.url == httpx.URL("https://api.example.com" + UPSERT_PATH)
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {
        "workspace_id": "ws_1",
        "contact": {"email": "ada@example.com", "lifetime_value": 12.5},
    }


def test_subscribe_sends_list_ids() -> None:
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append((request.url.path, json.loads(request.content)))
        return httpx.Response(204)

    _run_with(handler, lambda writer: writer.subscribe("ws_1", {"email": "ada@example.com"}, ("a", "b")))

    assert bodies == [
        (SUBSCRIBE_PATH, {"workspace_id": "ws_1", "contact": {"email": "ada@example.com"}, "list_ids": ["a", "b"]})
    ]


@pytest.mark.parametrize(
    "response, expected",
    [
        (httpx.Response(422, json={"error": "Invalid email"}), "Invalid email"),
        (httpx.Response(400, json={"message": "Missing workspace"}), "Missing workspace"),
        (httpx.Response(500, text="<html>oops</html>"), "HTTP 500 Internal Server Error"),
    ],
)
def test_rejections_raise_row_submission_error(response, expected) -> None:
    with pytest.raises(RowSubmissionError) as excinfo:
        _run_with(lambda request: response, lambda writer: writer.upsert("ws_1", {"email": "x@example.com"}))

    assert str(excinfo.value) == expected
    assert excinfo.value.status_code == response.status_code


def test_transport_errors_raise_row_submission_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(RowSubmissionError, match="failed"):
        _run_with(handler, lambda writer: writer.upsert("ws_1", {"email": "x@example.com"}))


def test_timeouts_raise_row_submission_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(RowSubmissionError, match="timed out"):
        _run_with(handler, lambda writer: writer.upsert("ws_1", {"email": "x@example.com"}))
