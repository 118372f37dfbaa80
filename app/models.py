"""Pydantic models describing browsable media payloads."""

from __future__ import annotations

from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MediaType = Literal["movie", "tv"]
SortOption = Literal["popularity", "rating", "newest", "oldest", "alphabetical"]
ReleaseWindow = Literal["all", "upcoming", "last-year", "last-five-years", "older"]

SORT_OPTIONS: tuple[str, ...] = (
    "popularity",
    "rating",
    "newest",
    "oldest",
    "alphabetical",
)
RELEASE_WINDOWS: tuple[str, ...] = (
    "all",
    "upcoming",
    "last-year",
    "last-five-years",
    "older",
)
DEFAULT_SORT: SortOption = "popularity"
DEFAULT_RELEASE_WINDOW: ReleaseWindow = "all"

_RELEASE_WINDOW_ALIASES = {
    "last-five": "last-five-years",
    "last-5-years": "last-five-years",
}


class MediaSummary(BaseModel):
    """Uniform display shape shared by movies and TV shows."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    id: int
    title: str = ""
    media_type: MediaType
    overview: str | None = None
    poster_path: str | None = None
    poster_url: str | None = None
    score: float | None = None
    release_date: str | None = None
    genre_ids: tuple[int, ...] = ()
    popularity: float = 0.0
    supplementary_label: str | None = None
    href: str | None = None

    @property
    def identity(self) -> tuple[int, str]:
        """Return the dedup identity; ids collide across movie and TV."""

        return (self.id, self.media_type)

    @field_validator("genre_ids", mode="before")
    @classmethod
    def _coerce_genres(cls, value: object) -> object:
        if value is None:
            return ()
        return value

    @field_validator("popularity", mode="before")
    @classmethod
    def _default_popularity(cls, value: object) -> object:
        return 0.0 if value is None else value


class Genre(BaseModel):
    """Upstream genre entry; fixed per media type for the session."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str


class PersonSummary(BaseModel):
    """Display shape for a person shelf entry."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    known_for_department: str | None = None
    profile_url: str | None = None
    popularity: float = 0.0
    href: str | None = None


class SearchSuggestion(BaseModel):
    """Compact search hit rendered by the live suggestion dropdown."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    title: str
    subtitle: str = ""
    href: str
    poster_url: str | None = None


class FilterState(BaseModel):
    """Client-side filter and sort selection for a collection view.

    Unknown ``sort`` or ``release_window`` values never raise; they fall back
    to ``popularity`` and ``all`` respectively.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    sort: SortOption = DEFAULT_SORT
    release_window: ReleaseWindow = Field(
        default=DEFAULT_RELEASE_WINDOW,
        validation_alias=AliasChoices("release_window", "releaseWindow", "release"),
    )
    selected_genres: frozenset[int] = Field(
        default_factory=frozenset,
        validation_alias=AliasChoices("selected_genres", "selectedGenres", "genres"),
    )

    @field_validator("sort", mode="before")
    @classmethod
    def _parse_sort(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in SORT_OPTIONS:
                return lowered
        return DEFAULT_SORT

    @field_validator("release_window", mode="before")
    @classmethod
    def _parse_release_window(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower().replace("_", "-")
            lowered = _RELEASE_WINDOW_ALIASES.get(lowered, lowered)
            if lowered in RELEASE_WINDOWS:
                return lowered
        return DEFAULT_RELEASE_WINDOW

    @field_validator("selected_genres", mode="before")
    @classmethod
    def _parse_genres(cls, value: object) -> object:
        if value is None or value == "":
            return frozenset()
        if isinstance(value, str):
            raw_values: list[object] = [part.strip() for part in value.split(",")]
        elif isinstance(value, (list, tuple, set, frozenset)):
            raw_values = list(value)
        else:
            raise ValueError("genres must be a comma separated string or a collection")

        cleaned: set[int] = set()
        for entry in raw_values:
            if entry is None or entry == "":
                continue
            try:
                cleaned.add(int(str(entry)))
            except ValueError as exc:
                raise ValueError("Genre ids must be integers") from exc
        return frozenset(cleaned)


class CastCredit(BaseModel):
    """Billed cast member on a detail page."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    character: str | None = None
    profile_url: str | None = None
    order: int | None = None


class CrewCredit(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    department: str
    job: str | None = None
    profile_url: str | None = None


class CrewDepartment(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    department: str
    members: list[CrewCredit] = Field(default_factory=list)


class MediaCredits(BaseModel):
    """Full cast and crew of a title, crew grouped by department."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    media_type: MediaType
    title: str
    cast: list[CastCredit] = Field(default_factory=list)
    crew: list[CrewDepartment] = Field(default_factory=list)


class MediaDetails(BaseModel):
    """Detail page payload for a single movie or TV show."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    summary: MediaSummary
    tagline: str | None = None
    status: str | None = None
    runtime_minutes: int | None = None
    genres: list[Genre] = Field(default_factory=list)
    homepage: str | None = None
    trailer_key: str | None = None
    number_of_seasons: int | None = None
    cast: list[CastCredit] = Field(default_factory=list)
    recommendations: list[MediaSummary] = Field(default_factory=list)


class PersonDetails(BaseModel):
    """Profile, biography and filmography highlights for one person."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int
    name: str
    known_for_department: str | None = None
    biography: str | None = None
    birthday: str | None = None
    deathday: str | None = None
    age: int | None = None
    place_of_birth: str | None = None
    also_known_as: list[str] = Field(default_factory=list)
    profile_url: str | None = None
    homepage: str | None = None
    external_links: dict[str, str] = Field(default_factory=dict)
    known_for: list[MediaSummary] = Field(default_factory=list)
    acting: list[MediaSummary] = Field(default_factory=list)
    crew: list[MediaSummary] = Field(default_factory=list)
