"""Anonymous guest sessions, saved titles and per-session ratings.

State lives behind :class:`KeyValueStore` so the backend can be swapped:
:class:`MemoryStore` for tests and short-lived processes, :class:`SqlStore`
for the on-disk SQLite file.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import KeyValueEntry
from ..models import MediaType
from .tmdb import TMDBClient, TMDBError

logger = logging.getLogger(__name__)

SESSION_STORAGE_KEY = "tmdb-guest-session"
WATCHLIST_PREFIX = "cine-watchlist"
RATINGS_PREFIX = "cine-ratings"
MIN_RATING = 1
MAX_RATING = 5

_pending_submissions: set[asyncio.Task[bool]] = set()


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal async persistence contract."""

    async def get(self, key: str) -> Any | None:
        ...

    async def set(self, key: str, value: Any) -> None:
        ...

    async def clear(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    async def get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def clear(self, key: str) -> None:
        self._data.pop(key, None)


class SqlStore:
    """Store backed by the ``kv_entries`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, key: str) -> Any | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: Any) -> None:
        async with self._session_factory() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value
            await session.commit()

    async def clear(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))
            await session.commit()


def parse_expiry(value: Any) -> datetime | None:
    """Parse TMDB's ``2016-08-27 16:26:40 UTC`` style expiry timestamps."""

    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(" UTC"):
        text = f"{text[:-4]}+00:00"
    elif text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(slots=True)
class StoredSession:
    id: str
    expires_at: datetime | None

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at > now


class GuestSessionManager:
    """Caches the anonymous TMDB guest session until it expires."""

    def __init__(
        self,
        store: KeyValueStore,
        tmdb_client: TMDBClient,
        *,
        storage_key: str = SESSION_STORAGE_KEY,
    ):
        self._store = store
        self._tmdb = tmdb_client
        self._storage_key = storage_key

    async def _load(self) -> StoredSession | None:
        raw = await self._store.get(self._storage_key)
        if not isinstance(raw, dict) or not raw.get("id"):
            return None
        return StoredSession(id=str(raw["id"]), expires_at=parse_expiry(raw.get("expiresAt")))

    async def current(self, *, now: datetime | None = None) -> StoredSession | None:
        """Return the cached session if it has not expired."""

        now = now or datetime.now(timezone.utc)
        stored = await self._load()
        if stored is not None and stored.is_valid(now):
            return stored
        return None

    async def ensure_session(self, *, now: datetime | None = None) -> StoredSession | None:
        """Return a valid session, creating one upstream when needed.

        Upstream failure is logged and reported as ``None``.
        """

        existing = await self.current(now=now)
        if existing is not None:
            return existing
        try:
            created = await self._tmdb.create_guest_session()
        except TMDBError as exc:
            logger.warning("Failed to create TMDB guest session: %s", exc)
            return None
        stored = StoredSession(id=created.id, expires_at=parse_expiry(created.expires_at))
        await self._store.set(
            self._storage_key,
            {
                "id": stored.id,
                "expiresAt": stored.expires_at.isoformat() if stored.expires_at else None,
            },
        )
        logger.info("Created TMDB guest session expiring %s", stored.expires_at)
        return stored

    async def clear(self) -> None:
        await self._store.clear(self._storage_key)


class WatchlistItem(BaseModel):
    """A saved title as shown in the watchlist drawer."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    media_type: MediaType
    title: str
    subtitle: str | None = None
    image: str | None = None
    average_score: float | None = None
    release_date: str | None = None

    @property
    def identity(self) -> tuple[int, str]:
        return (self.id, self.media_type)


@dataclass(slots=True)
class RatingOutcome:
    """Result of rating a title.

    ``rating`` is always the locally stored value. ``queued`` reports whether
    an upstream submission was scheduled; ``submission`` resolves to whether
    TMDB accepted it.
    """

    media_type: MediaType
    media_id: int
    rating: int
    queued: bool
    submission: asyncio.Task[bool] | None = field(default=None, repr=False, compare=False)

    def to_payload(self) -> dict[str, object]:
        return {
            "mediaType": self.media_type,
            "id": self.media_id,
            "rating": self.rating,
            "queued": self.queued,
        }


async def drain_rating_submissions() -> None:
    """Wait for background rating submissions still in flight."""

    if _pending_submissions:
        await asyncio.gather(*list(_pending_submissions), return_exceptions=True)


def compose_key(media_id: int, media_type: str) -> str:
    return f"{media_type}-{media_id}"


class Watchlist:
    """Saved titles and ratings scoped to one guest session."""

    def __init__(
        self,
        store: KeyValueStore,
        session_id: str,
        *,
        tmdb_client: TMDBClient | None = None,
    ):
        self._store = store
        self.session_id = session_id
        self._tmdb = tmdb_client
        self._items_key = f"{WATCHLIST_PREFIX}-{session_id}"
        self._ratings_key = f"{RATINGS_PREFIX}-{session_id}"
        self._items: list[WatchlistItem] = []
        self._ratings: dict[str, int] = {}
        self.hydrated = False

    @property
    def items(self) -> list[WatchlistItem]:
        return list(self._items)

    @property
    def ratings(self) -> dict[str, int]:
        return dict(self._ratings)

    async def load(self) -> "Watchlist":
        """Restore persisted state; corrupt entries reset to empty."""

        raw_items = await self._store.get(self._items_key)
        raw_ratings = await self._store.get(self._ratings_key)
        self._items = []
        if isinstance(raw_items, list):
            for entry in raw_items:
                if not isinstance(entry, dict):
                    continue
                try:
                    self._items.append(WatchlistItem.model_validate(entry))
                except ValueError as exc:
                    logger.warning("Dropping unreadable watchlist entry: %s", exc)
        self._ratings = {}
        if isinstance(raw_ratings, dict):
            for key, value in raw_ratings.items():
                if isinstance(value, int) and MIN_RATING <= value <= MAX_RATING:
                    self._ratings[str(key)] = value
        self.hydrated = True
        return self

    async def _persist(self) -> None:
        await self._store.set(
            self._items_key,
            [item.model_dump(mode="json", by_alias=True) for item in self._items],
        )
        await self._store.set(self._ratings_key, dict(self._ratings))

    def contains(self, media_id: int, media_type: str) -> bool:
        return any(item.identity == (media_id, media_type) for item in self._items)

    async def add(self, item: WatchlistItem) -> None:
        if self.contains(item.id, item.media_type):
            return
        self._items.insert(0, item)
        await self._persist()

    async def remove(self, media_id: int, media_type: str) -> None:
        self._items = [
            item for item in self._items if item.identity != (media_id, media_type)
        ]
        self._ratings.pop(compose_key(media_id, media_type), None)
        await self._persist()

    async def toggle(self, item: WatchlistItem) -> bool:
        """Add an absent title or remove a saved one; return whether it is saved."""

        if self.contains(item.id, item.media_type):
            self._items = [entry for entry in self._items if entry.identity != item.identity]
            await self._persist()
            return False
        self._items.insert(0, item)
        await self._persist()
        return True

    def get_rating(self, media_id: int, media_type: str) -> int | None:
        return self._ratings.get(compose_key(media_id, media_type))

    async def set_rating(self, media_id: int, media_type: str, rating: int) -> None:
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
        self._ratings[compose_key(media_id, media_type)] = rating
        await self._persist()

    async def _submit_rating(
        self, tmdb: TMDBClient, media_id: int, media_type: MediaType, rating: int
    ) -> bool:
        try:
            await tmdb.rate_media(media_type, media_id, rating * 2, self.session_id)
        except TMDBError as exc:
            logger.warning(
                "Failed to submit TMDB rating for %s %s: %s", media_type, media_id, exc
            )
            return False
        return True

    async def rate(self, media_id: int, media_type: MediaType, rating: int) -> RatingOutcome:
        """Store the rating locally, then submit ``rating * 2`` to TMDB in the background.

        The call returns once the local write is persisted. The local value
        wins regardless of what TMDB answers.
        """

        await self.set_rating(media_id, media_type, rating)
        submission: asyncio.Task[bool] | None = None
        if self._tmdb is not None:
            submission = asyncio.create_task(
                self._submit_rating(self._tmdb, media_id, media_type, rating)
            )
            _pending_submissions.add(submission)
            submission.add_done_callback(_pending_submissions.discard)
        return RatingOutcome(
            media_type=media_type,
            media_id=media_id,
            rating=rating,
            queued=submission is not None,
            submission=submission,
        )
