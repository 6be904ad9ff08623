"""Tests for the Dropbox HTTP adapter."""

import asyncio
import json

import httpx
import pytest

from picsift.adapters.dropbox_client import (
    HttpxDropboxClient,
    is_image_file,
    validate_path,
    validate_session_id,
)
from picsift.domain.errors import ListingError, RemoteOperationError
from picsift.services.triage import PhotoListingClient, QuarantineClient


def _client(handler) -> HttpxDropboxClient:  # type: ignore[no-untyped-def]
    transport = httpx.MockTransport(handler)
    return HttpxDropboxClient(
        app_key="key",
        app_secret="secret",
        refresh_token="refresh",
        http_client=httpx.AsyncClient(transport=transport),
    )


def _token_response() -> httpx.Response:
    return httpx.Response(200, json={"access_token": "token-1", "expires_in": 14400})


def _is_token_request(request: httpx.Request) -> bool:
    return request.url.host == "api.dropbox.com"


def test_list_photos_paginates_and_filters_images() -> None:
    pages = {
        "/2/files/list_folder": {
            "entries": [
                {
                    ".tag": "file",
                    "name": "a.JPG",
                    "path_lower": "/camera/a.jpg",
                    "path_display": "/Camera/a.JPG",
                    "id": "id:a",
                    "rev": "1",
                    "size": 10,
                },
                {
                    ".tag": "file",
                    "name": "notes.txt",
                    "path_lower": "/camera/notes.txt",
                },
                {".tag": "folder", "name": "sub.jpg", "path_lower": "/camera/sub.jpg"},
            ],
            "has_more": True,
            "cursor": "cursor-1",
        },
        "/2/files/list_folder/continue": {
            "entries": [
                {
                    ".tag": "file",
                    "name": "b.heic",
                    "path_lower": "/camera/b.heic",
                    "path_display": "/Camera/b.heic",
                    "id": "id:b",
                }
            ],
            "has_more": False,
            "cursor": "cursor-2",
        },
    }
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            return _token_response()
        assert request.headers["Authorization"] == "Bearer token-1"
        bodies.append(json.loads(request.content.decode()))
        return httpx.Response(200, json=pages[request.url.path])

    client = _client(handler)
    entries = asyncio.run(client.list_photos("/Camera"))

    assert [entry.name for entry in entries] == ["a.JPG", "b.heic"]
    assert entries[0].key == "/camera/a.jpg"
    assert entries[0].size == 10
    assert bodies == [{"path": "/Camera", "recursive": False}, {"cursor": "cursor-1"}]


def test_list_photos_failure_raises_listing_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            return _token_response()
        return httpx.Response(409, json={"error_summary": "path/not_found/"})

    client = _client(handler)

    with pytest.raises(ListingError) as exc_info:
        asyncio.run(client.list_photos("/Missing"))

    assert exc_info.value.status == 409
    assert "path/not_found" in exc_info.value.message


def test_quarantine_moves_into_session_folder() -> None:
    seen: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            return _token_response()
        assert request.url.path == "/2/files/move_v2"
        payload = json.loads(request.content.decode())
        seen.append(payload)
        return httpx.Response(
            200,
            json={"metadata": {"path_display": "/_TRASHME/s-1/Camera/a (1).jpg"}},
        )

    client = _client(handler)
    record = asyncio.run(client.quarantine("/Camera/a.jpg", "s-1"))

    assert seen == [
        {
            "from_path": "/Camera/a.jpg",
            "to_path": "/_TRASHME/s-1/Camera/a.jpg",
            "autorename": True,
        }
    ]
    assert record.original_path == "/Camera/a.jpg"
    assert record.trashed_path == "/_TRASHME/s-1/Camera/a (1).jpg"
    assert record.session_id == "s-1"


def test_quarantine_validates_inputs_without_calling_remote() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = _client(handler)

    with pytest.raises(RemoteOperationError):
        asyncio.run(client.quarantine("/Camera/../secret.jpg", "s-1"))
    with pytest.raises(RemoteOperationError):
        asyncio.run(client.quarantine("/Camera/a.jpg", "bad id!"))
    with pytest.raises(RemoteOperationError):
        asyncio.run(client.restore("/Elsewhere/a.jpg", "/Camera/a.jpg"))


def test_restore_moves_file_back() -> None:
    seen: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            return _token_response()
        seen.append(json.loads(request.content.decode()))
        return httpx.Response(200, json={"metadata": {}})

    client = _client(handler)
    asyncio.run(client.restore("/_TRASHME/s-1/Camera/a.jpg", "/Camera/a.jpg"))

    assert seen == [
        {"from_path": "/_TRASHME/s-1/Camera/a.jpg", "to_path": "/Camera/a.jpg"}
    ]


def test_access_token_is_cached_and_refreshed_on_401() -> None:
    token_requests: list[str] = []
    api_calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            form = request.content.decode()
            assert "grant_type=refresh_token" in form
            token_requests.append(form)
            return _token_response()
        api_calls["count"] += 1
        if api_calls["count"] == 2:
            return httpx.Response(401, json={"error_summary": "expired_access_token/"})
        return httpx.Response(200, json={"metadata": {}})

    client = _client(handler)

    async def scenario() -> None:
        await client.restore("/_TRASHME/s/a.jpg", "/a.jpg")
        await client.restore("/_TRASHME/s/b.jpg", "/b.jpg")

    asyncio.run(scenario())

    assert api_calls["count"] == 3
    assert len(token_requests) == 2


def test_transient_failures_are_retried_once() -> None:
    statuses = [503, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            return _token_response()
        return httpx.Response(statuses.pop(0), json={"metadata": {}})

    client = _client(handler)
    asyncio.run(client.restore("/_TRASHME/s/a.jpg", "/a.jpg"))

    assert statuses == []


def test_persistent_server_errors_surface_with_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            return _token_response()
        return httpx.Response(500, json={})

    client = _client(handler)

    with pytest.raises(RemoteOperationError) as exc_info:
        asyncio.run(client.restore("/_TRASHME/s/a.jpg", "/a.jpg"))

    assert exc_info.value.status == 500


def test_network_errors_surface_as_remote_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)

    with pytest.raises(RemoteOperationError) as exc_info:
        asyncio.run(client.quarantine("/a.jpg", "s-1"))

    assert exc_info.value.status is None


def test_path_and_name_helpers() -> None:
    assert is_image_file("photo.JPEG")
    assert is_image_file("clip.webp")
    assert not is_image_file("movie.mov")
    assert not is_image_file("README")
    assert validate_path("/Camera/a.jpg")
    assert not validate_path("Camera/a.jpg")
    assert not validate_path("/a/../b.jpg")
    assert validate_session_id("3f2a-b_9")
    assert not validate_session_id("")
    assert not validate_session_id("x" * 129)


def test_non_json_success_body_is_a_remote_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            return _token_response()
        return httpx.Response(200, text="<html>gateway</html>")

    client = _client(handler)

    with pytest.raises(RemoteOperationError) as exc_info:
        asyncio.run(client.quarantine("/Camera/a.jpg", "s-1"))

    assert exc_info.value.status == 200
    assert "files/move_v2" in exc_info.value.message


def test_token_response_without_access_token_is_a_remote_error() -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"token_type": "bearer"})

    client = _client(handler)

    with pytest.raises(RemoteOperationError):
        asyncio.run(client.restore("/_TRASHME/s-1/Camera/a.jpg", "/Camera/a.jpg"))

    assert all(path == "/oauth2/token" for path in calls)


def test_malformed_listing_page_raises_listing_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if _is_token_request(request):
            return _token_response()
        return httpx.Response(200, json={"entries": [], "has_more": True})

    client = _client(handler)

    with pytest.raises(ListingError):
        asyncio.run(client.list_photos("/Camera"))


def test_client_declares_engine_interfaces() -> None:
    assert PhotoListingClient in HttpxDropboxClient.__mro__
    assert QuarantineClient in HttpxDropboxClient.__mro__
