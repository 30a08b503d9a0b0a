"""HTTP implementation of the remote catalog service (mod.io v1 style API)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from pydantic import ValidationError

from modsync.exceptions import AuthError, NotFoundError, TransientNetworkError
from modsync.schemas.catalog import (
    CatalogProfile,
    FileRecord,
    GalleryImage,
    Item,
    LogoLocator,
    MetadataKVP,
    TagOption,
)
from modsync.schemas.event import Event
from modsync.schemas.manifest import UserProfile
from modsync.schemas.page import Page

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from modsync.schemas.page import Pagination, TimeRange

logger = logging.getLogger(__name__)

T = TypeVar("T")

_AUTH_STATUS_CODES = frozenset({401, 403})


def parse_logo(data: Mapping[str, Any] | None) -> LogoLocator:
    if not data:
        return LogoLocator()
    return LogoLocator(
        filename=data.get("filename") or "",
        original=data.get("original") or "",
        thumb_320x180=data.get("thumb_320x180") or "",
        thumb_640x360=data.get("thumb_640x360") or "",
        thumb_1280x720=data.get("thumb_1280x720") or "",
    )


def parse_file_record(data: Mapping[str, Any]) -> FileRecord:
    filehash = data.get("filehash") or {}
    download = data.get("download") or {}
    return FileRecord(
        id=data["id"],
        item_id=data["mod_id"],
        date_added=data.get("date_added") or 0,
        filesize=data.get("filesize") or 0,
        filehash_md5=filehash.get("md5") or None,
        version=data.get("version"),
        changelog=data.get("changelog"),
        metadata_blob=data.get("metadata_blob"),
        binary_url=download.get("binary_url"),
    )


def parse_item(data: Mapping[str, Any]) -> Item:
    media = data.get("media") or {}
    modfile_data = data.get("modfile")
    return Item(
        id=data["id"],
        name=data.get("name") or "",
        name_id=data.get("name_id") or "",
        summary=data.get("summary") or "",
        description=data.get("description_plaintext") or data.get("description") or "",
        homepage_url=data.get("homepage_url"),
        date_added=data.get("date_added") or 0,
        date_updated=data.get("date_updated") or 0,
        date_live=data.get("date_live") or 0,
        visible=data.get("visible", 1),
        status=data.get("status", 1),
        logo=parse_logo(data.get("logo")),
        gallery_images=[
            GalleryImage(
                filename=image["filename"],
                original=image.get("original") or "",
                thumb_320x180=image.get("thumb_320x180") or "",
            )
            for image in media.get("images") or []
        ],
        youtube_urls=list(media.get("youtube") or []),
        sketchfab_urls=list(media.get("sketchfab") or []),
        tags=[tag["name"] for tag in data.get("tags") or []],
        metadata_blob=data.get("metadata_blob"),
        metadata_kvp=[parse_kvp(kvp) for kvp in data.get("metadata_kvp") or []],
        modfile=parse_file_record(modfile_data) if modfile_data and modfile_data.get("id") else None,
    )


def parse_kvp(data: Mapping[str, Any]) -> MetadataKVP:
    return MetadataKVP(metakey=data["metakey"], metavalue=data["metavalue"])


def parse_event(data: Mapping[str, Any]) -> Event:
    return Event(
        id=data["id"],
        item_id=data["mod_id"],
        event_type=data["event_type"],
        date_added=data.get("date_added") or 0,
    )


def parse_catalog_profile(data: Mapping[str, Any]) -> CatalogProfile:
    return CatalogProfile(
        id=data["id"],
        name=data.get("name") or "",
        name_id=data.get("name_id") or "",
        summary=data.get("summary") or "",
        date_updated=data.get("date_updated") or 0,
        logo=parse_logo(data.get("logo")),
        tag_options=[
            TagOption(
                name=option["name"],
                type=option.get("type") or "checkboxes",
                tags=list(option.get("tags") or []),
                hidden=bool(option.get("hidden", False)),
            )
            for option in data.get("tag_options") or []
        ],
    )


def parse_user(data: Mapping[str, Any]) -> UserProfile:
    return UserProfile(
        id=data["id"],
        username=data.get("username") or "",
        name_id=data.get("name_id") or "",
        date_online=data.get("date_online") or 0,
        profile_url=data.get("profile_url") or "",
    )


def parse_page(payload: Any, parse_one: Callable[[Mapping[str, Any]], T]) -> Page[T]:
    """Parse a paged response envelope, parsing each entry with ``parse_one``."""
    return Page(
        data=[parse_one(entry) for entry in payload.get("data") or []],
        result_count=payload.get("result_count", 0),
        result_offset=payload.get("result_offset", 0),
        result_limit=payload.get("result_limit", 0),
        result_total=payload.get("result_total", 0),
    )


def _raise_for_status(resp: httpx.Response, method: str, path: str) -> None:
    status = resp.status_code
    if status < 400:
        return
    if status in _AUTH_STATUS_CODES:
        raise AuthError(status, f"{method} {path} rejected ({status})")
    if status == 404:
        raise NotFoundError(f"{method} {path} not found")
    raise TransientNetworkError(f"{method} {path} failed with HTTP {status}", status_code=status)


class HttpCatalogService:
    """Remote catalog service over HTTP.

    Public calls authenticate with the API key; user calls send the OAuth
    token as a bearer token instead.
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        game_id: int,
        *,
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.game_id = game_id
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> HttpCatalogService:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        token: str | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> Any:
        query: dict[str, Any] = dict(params or {})
        headers: dict[str, str] = {}
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
        else:
            query["api_key"] = self.api_key

        try:
            resp = await self.client.request(
                method, f"{self.api_url}{path}", params=query, headers=headers
            )
        except httpx.HTTPError as exc:
            raise TransientNetworkError(f"{method} {path} failed: {exc}") from exc

        _raise_for_status(resp, method, path)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise TransientNetworkError(f"{method} {path} returned invalid JSON") from exc

    async def _get_parsed(
        self,
        path: str,
        parse: Callable[[Any], T],
        *,
        token: str | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> T:
        payload = await self._request("GET", path, token=token, params=params)
        try:
            return parse(payload)
        except (KeyError, TypeError, AttributeError, ValidationError) as exc:
            raise TransientNetworkError(f"Malformed response from GET {path}: {exc}") from exc

    @property
    def _game_path(self) -> str:
        return f"/games/{self.game_id}"

    async def list_items(self, filters: Mapping[str, str], pagination: Pagination) -> Page[Item]:
        return await self._get_parsed(
            f"{self._game_path}/mods",
            lambda payload: parse_page(payload, parse_item),
            params={**filters, **pagination.as_params()},
        )

    async def list_events(self, time_range: TimeRange, pagination: Pagination) -> Page[Event]:
        params = {
            "date_added-min": time_range.start,
            "date_added-lt": time_range.end,
            "latest": "true",
            **pagination.as_params(),
        }
        return await self._get_parsed(
            f"{self._game_path}/mods/events",
            lambda payload: parse_page(payload, parse_event),
            params=params,
        )

    async def list_subscriptions(
        self, token: str, filters: Mapping[str, str], pagination: Pagination
    ) -> Page[Item]:
        return await self._get_parsed(
            "/me/subscribed",
            lambda payload: parse_page(payload, parse_item),
            token=token,
            params={**filters, **pagination.as_params()},
        )

    async def get_item(self, item_id: int) -> Item:
        return await self._get_parsed(f"{self._game_path}/mods/{item_id}", parse_item)

    async def get_file(self, item_id: int, file_id: int) -> FileRecord:
        return await self._get_parsed(
            f"{self._game_path}/mods/{item_id}/files/{file_id}", parse_file_record
        )

    async def get_catalog_profile(self) -> CatalogProfile:
        return await self._get_parsed(self._game_path, parse_catalog_profile)

    async def list_item_metadata(self, item_id: int, pagination: Pagination) -> Page[MetadataKVP]:
        return await self._get_parsed(
            f"{self._game_path}/mods/{item_id}/metadatakvp",
            lambda payload: parse_page(payload, parse_kvp),
            params=pagination.as_params(),
        )

    async def get_authenticated_user(self, token: str) -> UserProfile:
        return await self._get_parsed("/me", parse_user, token=token)

    async def subscribe(self, token: str, item_id: int) -> None:
        await self._request("POST", f"{self._game_path}/mods/{item_id}/subscribe", token=token)

    async def unsubscribe(self, token: str, item_id: int) -> None:
        await self._request("DELETE", f"{self._game_path}/mods/{item_id}/subscribe", token=token)
