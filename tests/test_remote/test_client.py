"""Tests for the HTTP catalog service."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from modsync.exceptions import AuthError, NotFoundError, TransientNetworkError
from modsync.remote.base import CatalogService
from modsync.remote.client import HttpCatalogService, parse_item
from modsync.schemas.page import Pagination, TimeRange

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable

API_URL = "https://api.example.test/v1"

MOD_PAYLOAD: dict[str, Any] = {
    "id": 12,
    "name": "Better Trees",
    "name_id": "better-trees",
    "summary": "Nicer trees",
    "description": "<p>Nicer trees</p>",
    "description_plaintext": "Nicer trees",
    "date_added": 1_600_000_000,
    "date_updated": 1_600_000_500,
    "date_live": 1_600_000_100,
    "visible": 1,
    "status": 1,
    "logo": {
        "filename": "logo.png",
        "original": "https://img.example.test/logo.png",
        "thumb_320x180": "https://img.example.test/logo_320.png",
    },
    "media": {
        "youtube": ["https://youtube.example.test/v"],
        "sketchfab": [],
        "images": [{"filename": "shot.jpg", "original": "https://img.example.test/shot.jpg"}],
    },
    "tags": [{"name": "Graphics", "date_added": 1}],
    "metadata_kvp": [{"metakey": "engine", "metavalue": "v2"}],
    "modfile": {
        "id": 99,
        "mod_id": 12,
        "date_added": 1_600_000_400,
        "filesize": 2048,
        "filehash": {"md5": "abc123"},
        "version": "1.2",
        "download": {"binary_url": "https://files.example.test/99.zip", "date_expires": 0},
    },
}


def _envelope(data: list[dict[str, Any]], limit: int = 100, offset: int = 0) -> dict[str, Any]:
    return {
        "data": data,
        "result_count": len(data),
        "result_offset": offset,
        "result_limit": limit,
        "result_total": len(data),
    }


class RecordingTransport:
    """Mock transport that answers with a fixed handler and keeps every request."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)


def _service(transport: RecordingTransport) -> HttpCatalogService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(transport))
    return HttpCatalogService(API_URL, "secret-key", 7, client=client)


@pytest.fixture
async def ok_service() -> AsyncGenerator[tuple[HttpCatalogService, RecordingTransport]]:
    transport = RecordingTransport(lambda request: httpx.Response(200, json=MOD_PAYLOAD))
    service = _service(transport)
    yield service, transport
    await service.client.aclose()


class TestParsing:
    def test_parse_item_maps_nested_fields(self) -> None:
        item = parse_item(MOD_PAYLOAD)

        assert item.id == 12
        assert item.description == "Nicer trees"
        assert item.tags == ["Graphics"]
        assert item.youtube_urls == ["https://youtube.example.test/v"]
        assert item.gallery_images[0].filename == "shot.jpg"
        assert item.metadata_kvp[0].metakey == "engine"
        assert item.logo.thumb_320x180.endswith("logo_320.png")
        assert item.modfile is not None
        assert item.modfile.item_id == 12
        assert item.modfile.filehash_md5 == "abc123"
        assert item.modfile.binary_url == "https://files.example.test/99.zip"
        assert item.primary_file_id == 99

    def test_parse_item_without_modfile(self) -> None:
        payload = {**MOD_PAYLOAD, "modfile": None}
        assert parse_item(payload).modfile is None


class TestRequests:
    def test_satisfies_protocol(self) -> None:
        service = HttpCatalogService(API_URL, "key", 7, client=httpx.AsyncClient())
        assert isinstance(service, CatalogService)

    @pytest.mark.asyncio
    async def test_get_item_uses_api_key(
        self, ok_service: tuple[HttpCatalogService, RecordingTransport]
    ) -> None:
        service, transport = ok_service

        item = await service.get_item(12)

        assert item.name == "Better Trees"
        request = transport.requests[0]
        assert request.url.path == "/v1/games/7/mods/12"
        assert request.url.params["api_key"] == "secret-key"
        assert "Authorization" not in request.headers

    @pytest.mark.asyncio
    async def test_user_calls_send_bearer_token(self) -> None:
        transport = RecordingTransport(
            lambda request: httpx.Response(200, json={"id": 1, "username": "alice"})
        )
        service = _service(transport)

        profile = await service.get_authenticated_user("tok")

        assert profile.username == "alice"
        request = transport.requests[0]
        assert request.url.path == "/v1/me"
        assert request.headers["Authorization"] == "Bearer tok"
        assert "api_key" not in request.url.params

    @pytest.mark.asyncio
    async def test_list_events_sends_time_range_and_window(self) -> None:
        events = [{"id": 5, "mod_id": 12, "event_type": "MOD_EDITED", "date_added": 150}]
        transport = RecordingTransport(
            lambda request: httpx.Response(200, json=_envelope(events, limit=50, offset=100))
        )
        service = _service(transport)

        page = await service.list_events(TimeRange(100, 200), Pagination(limit=50, offset=100))

        assert page.data[0].item_id == 12
        assert page.result_limit == 50
        params = transport.requests[0].url.params
        assert params["date_added-min"] == "100"
        assert params["date_added-lt"] == "200"
        assert params["_limit"] == "50"
        assert params["_offset"] == "100"

    @pytest.mark.asyncio
    async def test_subscribe_posts_and_accepts_empty_body(self) -> None:
        transport = RecordingTransport(lambda request: httpx.Response(201))
        service = _service(transport)

        await service.subscribe("tok", 12)
        await service.unsubscribe("tok", 12)

        assert [r.method for r in transport.requests] == ["POST", "DELETE"]
        assert transport.requests[0].url.path == "/v1/games/7/mods/12/subscribe"


class TestErrors:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_statuses(self, status: int) -> None:
        service = _service(RecordingTransport(lambda request: httpx.Response(status)))
        with pytest.raises(AuthError) as exc_info:
            await service.get_authenticated_user("tok")
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        service = _service(RecordingTransport(lambda request: httpx.Response(404)))
        with pytest.raises(NotFoundError):
            await service.get_item(1)

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self) -> None:
        service = _service(RecordingTransport(lambda request: httpx.Response(500)))
        with pytest.raises(TransientNetworkError) as exc_info:
            await service.get_catalog_profile()
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        service = _service(RecordingTransport(handler))
        with pytest.raises(TransientNetworkError):
            await service.get_item(1)

    @pytest.mark.asyncio
    async def test_invalid_json_is_transient(self) -> None:
        service = _service(
            RecordingTransport(lambda request: httpx.Response(200, content=b"<html>"))
        )
        with pytest.raises(TransientNetworkError, match="invalid JSON"):
            await service.get_item(1)

    @pytest.mark.asyncio
    async def test_malformed_payload_is_transient(self) -> None:
        service = _service(
            RecordingTransport(lambda request: httpx.Response(200, content=json.dumps({})))
        )
        with pytest.raises(TransientNetworkError, match="Malformed response"):
            await service.get_item(1)
