"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable

import pytest


# Make ``app`` importable without an editable install; it sits at the
# project root at runtime.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from app.config import Settings  # noqa: E402
from app.models import MediaSummary  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """Return a factory for settings isolated from any local .env file."""

    def factory(**overrides: Any) -> Settings:
        base: dict[str, Any] = {"TMDB_API_KEY": "test-key"}
        base.update(overrides)
        return Settings(_env_file=None, **base)  # type: ignore[call-arg]

    return factory


@pytest.fixture
def media() -> Callable[..., MediaSummary]:
    """Return a factory for terse MediaSummary fixtures."""

    def factory(media_id: int, media_type: str = "movie", **fields: Any) -> MediaSummary:
        fields.setdefault("title", f"Title {media_id}")
        return MediaSummary(id=media_id, media_type=media_type, **fields)

    return factory
