"""High level orchestration of TMDB lookups for the browsing pages."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..categories import MediaType, get_category
from ..config import Settings
from ..mappers import (
    map_media_credits,
    map_media_details,
    map_media_list,
    map_people_list,
    map_person_details,
    map_search_suggestion,
)
from ..models import (
    Genre,
    MediaCredits,
    MediaDetails,
    MediaSummary,
    PersonDetails,
    SearchSuggestion,
)
from .browse import BrowseSession, BrowseSessionRegistry
from .tmdb import ListPage, TMDBClient

logger = logging.getLogger(__name__)

SHELF_SIZE = 10

_SEARCH_GROUPS = {"movie": "movies", "tv": "shows", "person": "people"}


class CatalogueService:
    """Coordinates TMDB fetches, mapping and per-visitor browse sessions."""

    def __init__(self, settings: Settings, tmdb_client: TMDBClient):
        self._settings = settings
        self._tmdb = tmdb_client
        self._image_base = settings.image_base_url
        self.sessions = BrowseSessionRegistry(
            self._new_browse_session, limit=settings.browse_session_limit
        )

    @property
    def tmdb(self) -> TMDBClient:
        return self._tmdb

    def _new_browse_session(self, media_type: MediaType) -> BrowseSession:
        return BrowseSession(media_type, self._tmdb, image_base=self._image_base)

    def browse_session(self, visitor_id: str, media_type: MediaType) -> BrowseSession:
        return self.sessions.get(visitor_id, media_type)

    async def genres(self, media_type: MediaType) -> list[Genre]:
        return await self._tmdb.get_genres(media_type)

    def _shelf(self, listing: ListPage, media_type: MediaType) -> list[MediaSummary]:
        return map_media_list(listing.results, media_type, image_base=self._image_base)[
            :SHELF_SIZE
        ]

    async def home(self) -> dict[str, Any]:
        """Fetch every home page shelf in parallel."""

        (
            now_playing,
            popular,
            top_rated,
            upcoming,
            popular_tv,
            top_rated_tv,
            people,
        ) = await asyncio.gather(
            self._tmdb.get_category_page(get_category("movie", "now-playing")),
            self._tmdb.get_category_page(get_category("movie", "popular")),
            self._tmdb.get_category_page(get_category("movie", "top-rated")),
            self._tmdb.get_category_page(get_category("movie", "upcoming")),
            self._tmdb.get_category_page(get_category("tv", "popular")),
            self._tmdb.get_category_page(get_category("tv", "top-rated")),
            self._tmdb.get_popular_people(),
        )

        hero_candidates = self._shelf(now_playing, "movie") or self._shelf(popular, "movie")
        return {
            "hero": hero_candidates[0] if hero_candidates else None,
            "shelves": {
                "nowPlaying": self._shelf(now_playing, "movie"),
                "popularMovies": self._shelf(popular, "movie"),
                "topRatedMovies": self._shelf(top_rated, "movie"),
                "upcomingMovies": self._shelf(upcoming, "movie"),
                "popularTv": self._shelf(popular_tv, "tv"),
                "topRatedTv": self._shelf(top_rated_tv, "tv"),
            },
            "people": map_people_list(people.results, image_base=self._image_base)[
                :SHELF_SIZE
            ],
        }

    async def people(self, page: int = 1) -> dict[str, Any]:
        """One page of the popular people listing."""

        listing = await self._tmdb.get_popular_people(max(1, page))
        return {
            "page": listing.page,
            "totalPages": listing.total_pages,
            "hasMore": listing.has_more,
            "people": map_people_list(listing.results, image_base=self._image_base),
        }

    async def person(self, person_id: int) -> PersonDetails | None:
        record = await self._tmdb.get_person_details(person_id)
        if record is None:
            return None
        return map_person_details(record, image_base=self._image_base)

    def clamp_suggestion_limit(self, limit: int | None) -> int:
        maximum = self._settings.search_suggestion_limit
        if limit is None:
            return maximum
        return max(1, min(maximum, limit))

    async def suggest(
        self, query: str, limit: int | None = None
    ) -> dict[str, list[SearchSuggestion]]:
        """Group the first page of a multi-search into movie, show and people hits."""

        groups: dict[str, list[SearchSuggestion]] = {"movies": [], "shows": [], "people": []}
        query = (query or "").strip()
        if not query:
            return groups

        resolved_limit = self.clamp_suggestion_limit(limit)
        results = await self._tmdb.search_multi(query, 1)
        for entry in results.results:
            group = _SEARCH_GROUPS.get(entry.get("media_type"))
            if group is None or len(groups[group]) >= resolved_limit:
                continue
            suggestion = map_search_suggestion(entry, image_base=self._image_base)
            if suggestion is not None:
                groups[group].append(suggestion)
        return groups

    async def search(self, query: str, page: int = 1) -> dict[str, Any]:
        """Full multi-search results for one page, grouped like the suggestions."""

        query = (query or "").strip()
        page = max(1, page)
        payload: dict[str, Any] = {
            "query": query,
            "page": page,
            "totalPages": 0,
            "totalResults": 0,
            "hasMore": False,
            "movies": [],
            "shows": [],
            "people": [],
        }
        if not query:
            return payload

        results = await self._tmdb.search_multi(query, page)
        hits: dict[str, list[dict[str, Any]]] = {"movies": [], "shows": [], "people": []}
        for entry in results.results:
            group = _SEARCH_GROUPS.get(entry.get("media_type"))
            if group is not None:
                hits[group].append(entry)

        payload.update(
            page=results.page,
            totalPages=results.total_pages,
            totalResults=results.total_results,
            hasMore=results.has_more,
            movies=map_media_list(hits["movies"], "movie", image_base=self._image_base),
            shows=map_media_list(hits["shows"], "tv", image_base=self._image_base),
            people=map_people_list(hits["people"], image_base=self._image_base),
        )
        return payload

    async def details(self, media_type: MediaType, media_id: int) -> MediaDetails | None:
        record = await self._tmdb.get_details(media_type, media_id)
        if record is None:
            return None
        return map_media_details(record, media_type, image_base=self._image_base)

    async def credits(self, media_type: MediaType, media_id: int) -> MediaCredits | None:
        record = await self._tmdb.get_details(media_type, media_id)
        if record is None:
            return None
        return map_media_credits(record, media_type, image_base=self._image_base)
