"""Merge, paginate, filter and sort media collections.

A collection is built from one or more already fetched first pages, then
grown one page at a time from a single category feed. Filtering and sorting
are pure views over the stored sequence.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Iterable, Sequence

from ..models import FilterState, MediaSummary
from ..utils import parse_release_date

logger = logging.getLogger(__name__)

YEAR = timedelta(days=365)
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class CollectionState(str, enum.Enum):
    SEEDING = "seeding"
    READY = "ready"
    LOADING = "loading"


@dataclass(slots=True)
class PageResult:
    """One page handed back by a category loader."""

    items: list[MediaSummary]
    has_more: bool = False


PageLoader = Callable[[int], Awaitable[PageResult]]


@dataclass(slots=True)
class PageLoad:
    """Identifies which feed, page and generation a merged page came from."""

    category: str | None
    page: int
    generation: int


@dataclass
class MediaCollection:
    """Deduplicated, incrementally loaded sequence for one browsing view.

    ``items`` and the ``page``/``has_more`` cursor are written only by
    :func:`initialize` and :func:`load_next`.
    """

    items: list[MediaSummary] = field(default_factory=list)
    page: int = 1
    has_more: bool = False
    category: str | None = None
    generation: int = 0
    state: CollectionState = CollectionState.READY
    last_load: PageLoad | None = None
    _seen: set[tuple[int, str]] = field(default_factory=set, repr=False)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_loading(self) -> bool:
        return self.state is CollectionState.LOADING

    def _merge(self, incoming: Iterable[MediaSummary]) -> int:
        added = 0
        for item in incoming:
            if item.identity in self._seen:
                continue
            self._seen.add(item.identity)
            self.items.append(item)
            added += 1
        return added


class PageLoadError(RuntimeError):
    """Raised when a "load more" fetch fails; the collection is unchanged."""

    def __init__(self, collection: MediaCollection, page: int):
        super().__init__(
            f"Failed to load page {page} for category {collection.category or 'unknown'}"
        )
        self.collection = collection
        self.page = page


def initialize(
    seed_pages: Sequence[PageResult | Sequence[MediaSummary]],
    *,
    category: str | None = None,
    generation: int = 0,
) -> MediaCollection:
    """Build a collection from first pages, earliest seed winning duplicates.

    Plain item sequences are accepted as seeds that report no further pages.
    """

    collection = MediaCollection(
        category=category,
        generation=generation,
        state=CollectionState.SEEDING,
    )
    has_more = False
    for seed in seed_pages:
        if isinstance(seed, PageResult):
            collection._merge(seed.items)
            has_more = has_more or seed.has_more
        else:
            collection._merge(seed)
    collection.page = 1
    collection.has_more = has_more
    collection.last_load = PageLoad(category=category, page=1, generation=generation)
    collection.state = CollectionState.READY
    return collection


async def load_next(collection: MediaCollection, fetch_page: PageLoader) -> MediaCollection:
    """Fetch and append the next page of the active category.

    Only one load runs per collection: a call made while another is pending
    returns the collection untouched without calling ``fetch_page``. On
    failure :class:`PageLoadError` is raised and neither items nor the cursor
    move.
    """

    if collection.state is not CollectionState.READY:
        logger.debug(
            "Ignoring load request for %s while %s",
            collection.category,
            collection.state.value,
        )
        return collection

    next_page = collection.page + 1
    collection.state = CollectionState.LOADING
    try:
        try:
            result = await fetch_page(next_page)
        except Exception as exc:
            logger.warning(
                "Loading page %s of %s failed: %s", next_page, collection.category, exc
            )
            raise PageLoadError(collection, next_page) from exc

        added = collection._merge(result.items)
        collection.page = next_page
        collection.has_more = result.has_more
        collection.last_load = PageLoad(
            category=collection.category,
            page=next_page,
            generation=collection.generation,
        )
    finally:
        collection.state = CollectionState.READY
    logger.debug(
        "Merged page %s of %s (%s new of %s)",
        next_page,
        collection.category,
        added,
        len(result.items),
    )
    return collection


def matches_release_window(item: MediaSummary, window: str, now: datetime) -> bool:
    if window == "all":
        return True
    released = parse_release_date(item.release_date)
    if released is None:
        return window == "older"

    difference = now - released
    if window == "upcoming":
        return released > now
    if window == "last-year":
        return difference <= YEAR
    if window == "last-five-years":
        return difference <= YEAR * 5
    if window == "older":
        return difference > YEAR * 5
    return True


def matches_genres(item: MediaSummary, selected: frozenset[int]) -> bool:
    return not selected or selected.issubset(item.genre_ids)


def _timestamp(item: MediaSummary) -> float | None:
    released = parse_release_date(item.release_date)
    if released is None:
        return None
    return (released - EPOCH).total_seconds()


def sort_items(items: Iterable[MediaSummary], sort: str) -> list[MediaSummary]:
    """Stable sort; titles without a release date go last for both date orders."""

    if sort == "rating":
        return sorted(items, key=lambda item: -(item.score or 0.0))
    if sort == "newest":
        def newest_key(item: MediaSummary) -> tuple[bool, float]:
            stamp = _timestamp(item)
            return (stamp is None, -(stamp or 0.0))

        return sorted(items, key=newest_key)
    if sort == "oldest":
        def oldest_key(item: MediaSummary) -> tuple[bool, float]:
            stamp = _timestamp(item)
            return (stamp is None, stamp or 0.0)

        return sorted(items, key=oldest_key)
    if sort == "alphabetical":
        return sorted(items, key=lambda item: item.title.casefold())
    return sorted(items, key=lambda item: -(item.popularity or 0.0))


def apply_filters(
    collection: MediaCollection | Sequence[MediaSummary],
    filters: FilterState | None = None,
    *,
    now: datetime | None = None,
) -> list[MediaSummary]:
    """Return the filtered, sorted view without touching the collection.

    ``now`` anchors the release windows; it defaults to the current UTC time.
    """

    filters = filters or FilterState()
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    items = collection.items if isinstance(collection, MediaCollection) else collection
    selected = frozenset(filters.selected_genres)
    filtered = [
        item
        for item in items
        if matches_genres(item, selected)
        and matches_release_window(item, filters.release_window, now)
    ]
    return sort_items(filtered, filters.sort)
