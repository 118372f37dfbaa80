"""Category feed definitions for the movie and TV browsing views."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


MediaType = Literal["movie", "tv"]

CATALOGUE_KEY = "catalogue"


@dataclass(frozen=True)
class CategoryDefinition:
    """Describes one independently paginated upstream feed."""

    key: str
    feed: str
    title: str
    description: str
    media_type: MediaType
    revalidate: int


MOVIE_CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition(
        key="now-playing",
        feed="now_playing",
        title="Now Playing",
        description="Films currently showing in theatres.",
        media_type="movie",
        revalidate=600,
    ),
    CategoryDefinition(
        key="popular",
        feed="popular",
        title="Popular Movies",
        description="What audiences are watching right now.",
        media_type="movie",
        revalidate=3600,
    ),
    CategoryDefinition(
        key="top-rated",
        feed="top_rated",
        title="Top Rated Movies",
        description="The highest rated films of all time.",
        media_type="movie",
        revalidate=3600,
    ),
    CategoryDefinition(
        key="upcoming",
        feed="upcoming",
        title="Upcoming Movies",
        description="Films arriving in theatres soon.",
        media_type="movie",
        revalidate=600,
    ),
)

TV_CATEGORIES: tuple[CategoryDefinition, ...] = (
    CategoryDefinition(
        key="airing-today",
        feed="airing_today",
        title="Airing Today",
        description="Episodes airing today.",
        media_type="tv",
        revalidate=300,
    ),
    CategoryDefinition(
        key="on-the-air",
        feed="on_the_air",
        title="On The Air",
        description="Series with new episodes in the coming week.",
        media_type="tv",
        revalidate=2700,
    ),
    CategoryDefinition(
        key="popular",
        feed="popular",
        title="Popular TV Shows",
        description="The series everyone is talking about.",
        media_type="tv",
        revalidate=2700,
    ),
    CategoryDefinition(
        key="top-rated",
        feed="top_rated",
        title="Top Rated TV Shows",
        description="The highest rated series of all time.",
        media_type="tv",
        revalidate=2700,
    ),
)

# Seed order decides which category wins on duplicate titles.
CATALOGUE_SEEDS: dict[MediaType, tuple[str, ...]] = {
    "movie": ("popular", "top-rated", "upcoming"),
    "tv": ("popular", "top-rated", "on-the-air"),
}
CATALOGUE_CONTINUATION = "popular"

_CATEGORY_MAP: dict[MediaType, dict[str, CategoryDefinition]] = {
    "movie": {definition.key: definition for definition in MOVIE_CATEGORIES},
    "tv": {definition.key: definition for definition in TV_CATEGORIES},
}


def normalize_category_key(value: str) -> str:
    """Accept either slug (``top-rated``) or feed (``top_rated``) spellings."""

    slug = value.strip().replace("_", "-").replace(" ", "-").lower()
    return "-".join(part for part in slug.split("-") if part)


def get_category(media_type: MediaType, key: str) -> CategoryDefinition:
    """Return the category definition or raise ``KeyError``."""

    categories = _CATEGORY_MAP.get(media_type)
    if categories is None:
        raise KeyError(f"Unsupported media type: {media_type}")
    slug = normalize_category_key(key)
    try:
        return categories[slug]
    except KeyError:
        raise KeyError(f"Unsupported {media_type} category: {key}") from None


def categories_for(media_type: MediaType) -> tuple[CategoryDefinition, ...]:
    return tuple(_CATEGORY_MAP[media_type].values())


def seed_categories(media_type: MediaType, key: str) -> tuple[CategoryDefinition, ...]:
    """Return the feeds whose first pages seed the requested view."""

    if normalize_category_key(key) == CATALOGUE_KEY:
        return tuple(get_category(media_type, seed) for seed in CATALOGUE_SEEDS[media_type])
    return (get_category(media_type, key),)


def continuation_category(media_type: MediaType, key: str) -> CategoryDefinition:
    """Return the single feed that "load more" continues for a view."""

    if normalize_category_key(key) == CATALOGUE_KEY:
        return get_category(media_type, CATALOGUE_CONTINUATION)
    return get_category(media_type, key)
