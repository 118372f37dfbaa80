"""Async client for The Movie Database (TMDB) v3 API."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

import httpx

from ..categories import CategoryDefinition, MediaType
from ..config import Settings
from ..models import Genre
from ..utils import clamp

logger = logging.getLogger(__name__)

PEOPLE_REVALIDATE = 900
GENRE_REVALIDATE = 43_200
DETAIL_REVALIDATE = 600
CACHE_MAX_ENTRIES = 1024
SEARCH_MEDIA_TYPES = frozenset({"movie", "tv", "person"})


class TMDBError(RuntimeError):
    """Raised when TMDB cannot be reached or answers with a failure."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TMDBNotFoundError(TMDBError):
    """Raised for 404 responses."""


class TMDBConfigurationError(TMDBError):
    """Raised when no TMDB credentials are configured."""


@dataclass(slots=True)
class ListPage:
    """One page of a paginated TMDB list response."""

    page: int
    results: list[dict[str, Any]]
    total_pages: int = 0
    total_results: int = 0

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages

    @classmethod
    def empty(cls) -> "ListPage":
        return cls(page=1, results=[], total_pages=0, total_results=0)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, fallback_page: int) -> "ListPage":
        results = payload.get("results")
        if not isinstance(results, list):
            raise TMDBError("TMDB list response is missing results")
        return cls(
            page=int(payload.get("page") or fallback_page),
            results=[entry for entry in results if isinstance(entry, dict)],
            total_pages=int(payload.get("total_pages") or 0),
            total_results=int(payload.get("total_results") or 0),
        )


@dataclass(slots=True)
class GuestSession:
    """Anonymous TMDB session used for rating submissions."""

    id: str
    expires_at: str | None = None


_CacheKey = tuple[str, tuple[tuple[str, str], ...]]


@dataclass(slots=True)
class _CacheEntry:
    expires: float
    payload: Any = field(default=None)


class TMDBClient:
    """Thin wrapper around the TMDB HTTP API.

    Each request carries a ``revalidate`` hint in seconds. Successful GET
    payloads are kept in-process for that long; ``0`` bypasses the cache.
    Expired entries are purged on every write and the cache never holds
    more than ``cache_size`` payloads, oldest evicted first.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        cache_size: int = CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._settings = settings
        self._client = http_client
        self._cache_size = max(1, cache_size)
        self._clock = clock
        self._cache: OrderedDict[_CacheKey, _CacheEntry] = OrderedDict()

    @property
    def cached_entries(self) -> int:
        return len(self._cache)

    def _cache_get(self, key: _CacheKey) -> _CacheEntry | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.expires <= self._clock():
            del self._cache[key]
            return None
        return entry

    def _cache_put(self, key: _CacheKey, payload: Any, revalidate: int) -> None:
        now = self._clock()
        for stale in [name for name, entry in self._cache.items() if entry.expires <= now]:
            del self._cache[stale]
        self._cache[key] = _CacheEntry(expires=now + revalidate, payload=payload)
        self._cache.move_to_end(key)
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)

    def _auth(self, params: dict[str, Any]) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self._settings.tmdb_access_token:
            headers["Authorization"] = f"Bearer {self._settings.tmdb_access_token}"
        elif self._settings.tmdb_api_key:
            params["api_key"] = self._settings.tmdb_api_key
        else:
            raise TMDBConfigurationError(
                "Missing TMDB credentials. Set TMDB_ACCESS_TOKEN (v4 auth) or "
                "TMDB_API_KEY (v3 auth) in your environment."
            )
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        json: Any = None,
        revalidate: int = 0,
    ) -> Any:
        params = {
            key: str(value)
            for key, value in (query or {}).items()
            if value is not None
        }
        cache_key = (path, tuple(sorted(params.items())))
        use_cache = (
            method == "GET" and revalidate > 0 and self._settings.tmdb_cache_enabled
        )
        if use_cache:
            entry = self._cache_get(cache_key)
            if entry is not None:
                return entry.payload

        headers = self._auth(params)
        try:
            response = await self._client.request(
                method, path, params=params, headers=headers, json=json
            )
        except httpx.HTTPError as exc:
            raise TMDBError(f"TMDB request failed: {exc.__class__.__name__}") from exc

        if response.status_code == 404:
            raise TMDBNotFoundError(
                f"TMDB request failed: 404 {path}", status_code=404
            )
        if response.status_code >= 400:
            raise TMDBError(
                f"TMDB request failed: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise TMDBError(
                "Unexpected non-JSON TMDB response", status_code=response.status_code
            ) from exc

        if use_cache:
            self._cache_put(cache_key, payload, revalidate)
        return payload

    async def _list(self, path: str, *, page: int, revalidate: int, **query: Any) -> ListPage:
        payload = await self._request(
            "GET",
            path,
            query={"page": page, "language": self._settings.tmdb_language, **query},
            revalidate=revalidate,
        )
        if not isinstance(payload, dict):
            raise TMDBError(f"Unexpected TMDB list payload for {path}")
        return ListPage.from_payload(payload, fallback_page=page)

    async def get_category_page(self, category: CategoryDefinition, page: int = 1) -> ListPage:
        """Fetch one page of a movie or TV category feed."""

        return await self._list(
            f"/{category.media_type}/{category.feed}",
            page=page,
            revalidate=category.revalidate,
        )

    async def get_popular_people(self, page: int = 1) -> ListPage:
        return await self._list("/person/popular", page=page, revalidate=PEOPLE_REVALIDATE)

    async def search_multi(self, query: str, page: int = 1) -> ListPage:
        """Search movies, shows and people; blank queries skip the request."""

        query = (query or "").strip()
        if not query:
            return ListPage.empty()
        result = await self._list(
            "/search/multi",
            page=page,
            revalidate=0,
            query=query,
            include_adult="false",
        )
        result.results = [
            entry for entry in result.results if entry.get("media_type") in SEARCH_MEDIA_TYPES
        ]
        return result

    async def get_genres(self, media_type: MediaType) -> list[Genre]:
        payload = await self._request(
            "GET",
            f"/genre/{media_type}/list",
            query={"language": self._settings.tmdb_language},
            revalidate=GENRE_REVALIDATE,
        )
        genres = payload.get("genres") if isinstance(payload, dict) else None
        if not isinstance(genres, list):
            return []
        return [Genre.model_validate(entry) for entry in genres if isinstance(entry, dict)]

    async def get_details(self, media_type: MediaType, media_id: int) -> dict[str, Any] | None:
        """Fetch full details with videos, credits and recommendations."""

        try:
            return await self._request(
                "GET",
                f"/{media_type}/{media_id}",
                query={
                    "language": self._settings.tmdb_language,
                    "append_to_response": "videos,credits,recommendations",
                },
                revalidate=DETAIL_REVALIDATE,
            )
        except TMDBNotFoundError:
            return None

    async def get_person_details(self, person_id: int) -> dict[str, Any] | None:
        """Fetch a person with combined credits, external ids and images."""

        try:
            return await self._request(
                "GET",
                f"/person/{person_id}",
                query={
                    "language": self._settings.tmdb_language,
                    "append_to_response": "combined_credits,external_ids,images",
                },
                revalidate=PEOPLE_REVALIDATE,
            )
        except TMDBNotFoundError:
            return None

    async def create_guest_session(self) -> GuestSession:
        payload = await self._request("GET", "/authentication/guest_session/new")
        session_id = payload.get("guest_session_id") if isinstance(payload, dict) else None
        if not session_id:
            raise TMDBError("TMDB did not return a guest session id")
        return GuestSession(id=str(session_id), expires_at=payload.get("expires_at"))

    async def rate_media(
        self,
        media_type: MediaType,
        media_id: int,
        value: float,
        guest_session_id: str,
    ) -> None:
        """Submit a 0.5-10 rating for a title under a guest session."""

        await self._request(
            "POST",
            f"/{media_type}/{media_id}/rating",
            query={"guest_session_id": guest_session_id},
            json={"value": clamp(value, 0.5, 10)},
        )
