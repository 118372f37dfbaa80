"""Per-view orchestration of seeding, load-more and filtering."""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..categories import (
    CategoryDefinition,
    MediaType,
    continuation_category,
    normalize_category_key,
    seed_categories,
)
from ..mappers import map_media_list
from ..models import FilterState, MediaSummary
from ..utils import DEFAULT_IMAGE_BASE_URL
from .aggregation import (
    CollectionState,
    MediaCollection,
    PageLoader,
    PageResult,
    apply_filters,
    initialize,
    load_next,
)
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BrowseView:
    """Filtered snapshot of a collection handed to the presentation layer."""

    category: str
    items: list[MediaSummary]
    total: int
    page: int
    has_more: bool
    state: CollectionState
    generation: int

    def to_payload(self) -> dict[str, object]:
        return {
            "category": self.category,
            "items": [item.model_dump(mode="json", by_alias=True) for item in self.items],
            "showing": len(self.items),
            "total": self.total,
            "page": self.page,
            "hasMore": self.has_more,
            "state": self.state.value,
            "generation": self.generation,
        }


class BrowseSession:
    """Owns the collection behind one movie or TV browsing view.

    Switching category discards the accumulated pages and installs a
    collection with the next generation number. Loads that finish against a
    collection that is no longer installed are dropped, as are seeds whose
    ``select`` was overtaken by a newer one.
    """

    def __init__(
        self,
        media_type: MediaType,
        tmdb_client: TMDBClient,
        *,
        image_base: str = DEFAULT_IMAGE_BASE_URL,
    ):
        self.media_type = media_type
        self._tmdb = tmdb_client
        self._image_base = image_base
        self._generation = 0
        self._selects = 0
        self._seeding = False
        self.category: str | None = None
        self.collection: MediaCollection | None = None

    @property
    def generation(self) -> int:
        """Generation of the installed collection, ``0`` before the first seed."""

        return self._generation

    @property
    def state(self) -> CollectionState:
        if self._seeding or self.collection is None:
            return CollectionState.SEEDING
        return self.collection.state

    def loader_for(self, category: CategoryDefinition) -> PageLoader:
        """Bind the paging contract to a single category feed."""

        async def fetch_page(page: int) -> PageResult:
            listing = await self._tmdb.get_category_page(category, page)
            items = map_media_list(
                listing.results, category.media_type, image_base=self._image_base
            )
            return PageResult(items=items, has_more=listing.has_more)

        return fetch_page

    async def _fetch_seeds(self, seeds: tuple[CategoryDefinition, ...]) -> list[PageResult]:
        tasks = [asyncio.create_task(self.loader_for(definition)(1)) for definition in seeds]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def select(self, category: str, *, force: bool = False) -> MediaCollection:
        """Seed the view for ``category`` unless it is already active.

        Raises ``KeyError`` for unknown categories and ``TMDBError`` when a
        seed fetch fails. A failed seed cancels its sibling fetches and leaves
        the previous collection and generation in place.
        """

        key = normalize_category_key(category)
        seeds = seed_categories(self.media_type, key)
        if not force and self.collection is not None and key == self.category:
            return self.collection

        self._selects += 1
        ticket = self._selects
        self._seeding = True
        try:
            pages = await self._fetch_seeds(seeds)
        finally:
            if ticket == self._selects:
                self._seeding = False

        if ticket != self._selects:
            logger.info(
                "Discarding stale %s seed for %s (overtaken by a newer selection)",
                self.media_type,
                key,
            )
            return self.collection or initialize([], category=key, generation=self._generation)

        self._generation += 1
        self.category = key
        self.collection = initialize(pages, category=key, generation=self._generation)
        logger.info(
            "Seeded %s %s view with %s titles from %s feeds",
            self.media_type,
            key,
            len(self.collection),
            len(seeds),
        )
        return self.collection

    async def load_more(self) -> MediaCollection:
        """Continue the active category by one page.

        Raises ``LookupError`` before any category has been selected and
        :class:`~app.services.aggregation.PageLoadError` on upstream failure.
        """

        collection = self.collection
        if collection is None or self.category is None:
            raise LookupError("No category selected for this view")
        if not collection.has_more:
            return collection

        loader = self.loader_for(continuation_category(self.media_type, self.category))
        result = await load_next(collection, loader)
        if result is not self.collection:
            logger.info(
                "Discarding %s page %s for superseded generation %s",
                self.media_type,
                result.page,
                result.generation,
            )
            return self.collection or result
        return result

    def view(
        self, filters: FilterState | None = None, *, now: datetime | None = None
    ) -> BrowseView:
        collection = self.collection or MediaCollection(state=CollectionState.SEEDING)
        items = apply_filters(collection, filters, now=now)
        return BrowseView(
            category=self.category or "",
            items=items,
            total=len(collection),
            page=collection.page,
            has_more=collection.has_more,
            state=self.state,
            generation=collection.generation,
        )


class BrowseSessionRegistry:
    """Keeps browse sessions per visitor and media type, evicting the least recent."""

    def __init__(self, factory: Callable[[MediaType], BrowseSession], *, limit: int = 512):
        self._factory = factory
        self._limit = max(1, limit)
        self._sessions: OrderedDict[tuple[str, str], BrowseSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, visitor_id: str, media_type: MediaType) -> BrowseSession:
        key = (visitor_id, media_type)
        session = self._sessions.get(key)
        if session is not None:
            self._sessions.move_to_end(key)
            return session
        session = self._factory(media_type)
        self._sessions[key] = session
        while len(self._sessions) > self._limit:
            evicted, _ = self._sessions.popitem(last=False)
            logger.debug("Evicted browse session %s", evicted)
        return session
