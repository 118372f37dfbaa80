"""Utility helpers for the CineDeck service."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

ImageSize = Literal["w92", "w154", "w185", "w342", "w500", "w780", "original"]

DEFAULT_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/"


def build_image_url(
    path: str | None,
    size: ImageSize = "w500",
    base_url: str = DEFAULT_IMAGE_BASE_URL,
) -> str | None:
    """Return an absolute image URL for an upstream artwork path."""

    if not path:
        return None
    if path.startswith("http"):
        return path
    return f"{base_url}{size}{path}"


def parse_release_date(value: str | None) -> datetime | None:
    """Parse an upstream release date into an aware UTC datetime.

    Bare ``YYYY-MM-DD`` values are read as UTC midnight. Anything that does
    not parse yields ``None``.
    """

    if not value or not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def release_year(value: str | None) -> str:
    """Return the four digit year of a release date, or an empty string."""

    parsed = parse_release_date(value)
    return str(parsed.year) if parsed else ""


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
