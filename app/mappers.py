"""Convert upstream TMDB records into display models.

Every mapper is total: missing optional fields (poster, release date, genre
list) produce empty values rather than errors. Records without a usable
``id`` cannot be linked to, so the list helpers skip them.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from .models import (
    CastCredit,
    CrewCredit,
    CrewDepartment,
    Genre,
    MediaCredits,
    MediaDetails,
    MediaSummary,
    PersonDetails,
    PersonSummary,
    SearchSuggestion,
)
from .utils import DEFAULT_IMAGE_BASE_URL, build_image_url, parse_release_date, release_year

PERSON_HIGHLIGHTS = 12
CAST_PREVIEW = 12


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def record_id(record: Any) -> int | None:
    """Return the integer id of a raw record, or ``None`` when it has none."""

    if not isinstance(record, Mapping):
        return None
    value = record.get("id")
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _genre_ids(record: Mapping[str, Any]) -> tuple[int, ...]:
    raw = record.get("genre_ids")
    if not raw and isinstance(record.get("genres"), list):
        raw = [genre.get("id") for genre in record["genres"] if isinstance(genre, Mapping)]
    if not isinstance(raw, (list, tuple)):
        return ()
    ids: list[int] = []
    for value in raw:
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            continue
    return tuple(ids)


def map_movie_summary(
    movie: Mapping[str, Any], *, image_base: str = DEFAULT_IMAGE_BASE_URL
) -> MediaSummary:
    poster_path = movie.get("poster_path") or None
    return MediaSummary(
        id=int(movie["id"]),
        title=movie.get("title") or movie.get("name") or "",
        media_type="movie",
        overview=movie.get("overview") or None,
        poster_path=poster_path,
        poster_url=build_image_url(poster_path, "w500", image_base),
        score=_as_float(movie.get("vote_average")),
        release_date=movie.get("release_date") or None,
        genre_ids=_genre_ids(movie),
        popularity=_as_float(movie.get("popularity")) or 0.0,
        href=f"/movies/{movie['id']}",
    )


def map_tv_summary(
    show: Mapping[str, Any], *, image_base: str = DEFAULT_IMAGE_BASE_URL
) -> MediaSummary:
    poster_path = show.get("poster_path") or None
    countries = show.get("origin_country") or []
    return MediaSummary(
        id=int(show["id"]),
        title=show.get("name") or show.get("title") or "",
        media_type="tv",
        overview=show.get("overview") or None,
        poster_path=poster_path,
        poster_url=build_image_url(poster_path, "w500", image_base),
        score=_as_float(show.get("vote_average")),
        release_date=show.get("first_air_date") or None,
        genre_ids=_genre_ids(show),
        popularity=_as_float(show.get("popularity")) or 0.0,
        supplementary_label=" • ".join(countries) or None,
        href=f"/tv/{show['id']}",
    )


def map_media_summary(
    record: Mapping[str, Any],
    media_type: str,
    *,
    image_base: str = DEFAULT_IMAGE_BASE_URL,
) -> MediaSummary:
    """Dispatch to the movie or TV mapper."""

    if media_type == "tv":
        return map_tv_summary(record, image_base=image_base)
    return map_movie_summary(record, image_base=image_base)


def map_media_list(
    records: Iterable[Any],
    media_type: str,
    *,
    image_base: str = DEFAULT_IMAGE_BASE_URL,
) -> list[MediaSummary]:
    return [
        map_media_summary(record, media_type, image_base=image_base)
        for record in records
        if record_id(record) is not None
    ]


def map_person_summary(
    person: Mapping[str, Any], *, image_base: str = DEFAULT_IMAGE_BASE_URL
) -> PersonSummary:
    return PersonSummary(
        id=int(person["id"]),
        name=person.get("name") or "",
        known_for_department=person.get("known_for_department") or None,
        profile_url=build_image_url(person.get("profile_path"), "w342", image_base),
        popularity=_as_float(person.get("popularity")) or 0.0,
        href=f"/people/{person['id']}",
    )


def map_people_list(
    records: Iterable[Any], *, image_base: str = DEFAULT_IMAGE_BASE_URL
) -> list[PersonSummary]:
    return [
        map_person_summary(record, image_base=image_base)
        for record in records
        if record_id(record) is not None
    ]


def map_search_suggestion(
    result: Mapping[str, Any], *, image_base: str = DEFAULT_IMAGE_BASE_URL
) -> SearchSuggestion | None:
    """Summarise one multi-search hit; unsupported or id-less hits return None."""

    media_type = result.get("media_type")
    result_id = record_id(result)
    if result_id is None:
        return None
    if media_type == "movie":
        return SearchSuggestion(
            id=result_id,
            title=result.get("title") or result.get("name") or "",
            subtitle=release_year(result.get("release_date")),
            href=f"/movies/{result_id}",
            poster_url=build_image_url(result.get("poster_path"), "w185", image_base),
        )
    if media_type == "tv":
        subtitle = release_year(result.get("first_air_date"))
        if not subtitle:
            subtitle = " • ".join(result.get("origin_country") or [])
        return SearchSuggestion(
            id=result_id,
            title=result.get("name") or result.get("title") or "",
            subtitle=subtitle,
            href=f"/tv/{result_id}",
            poster_url=build_image_url(result.get("poster_path"), "w185", image_base),
        )
    if media_type == "person":
        return SearchSuggestion(
            id=result_id,
            title=result.get("name") or "",
            subtitle=result.get("known_for_department") or "",
            href="/people",
            poster_url=build_image_url(result.get("profile_path"), "w185", image_base),
        )
    return None


def _trailer_key(record: Mapping[str, Any]) -> str | None:
    videos = (record.get("videos") or {}).get("results") or []
    youtube = [
        video
        for video in videos
        if isinstance(video, Mapping) and video.get("site") == "YouTube" and video.get("key")
    ]
    for video in youtube:
        if video.get("type") == "Trailer" and video.get("official"):
            return str(video["key"])
    for video in youtube:
        if video.get("type") == "Trailer":
            return str(video["key"])
    return str(youtube[0]["key"]) if youtube else None


def _cast_credit(member: Mapping[str, Any], image_base: str) -> CastCredit:
    order = member.get("order")
    return CastCredit(
        id=int(member["id"]),
        name=member.get("name") or "",
        character=member.get("character") or None,
        profile_url=build_image_url(member.get("profile_path"), "w185", image_base),
        order=order if isinstance(order, int) else None,
    )


def _cast_list(record: Mapping[str, Any], image_base: str) -> list[CastCredit]:
    credits = (record.get("credits") or {}).get("cast") or []
    return [
        _cast_credit(member, image_base)
        for member in credits
        if record_id(member) is not None
    ]


def map_media_details(
    record: Mapping[str, Any],
    media_type: str,
    *,
    image_base: str = DEFAULT_IMAGE_BASE_URL,
    cast_limit: int = CAST_PREVIEW,
) -> MediaDetails:
    """Build the detail page payload; the cast is cut to a short preview."""

    summary = map_media_summary(record, media_type, image_base=image_base)

    if media_type == "tv":
        run_times = record.get("episode_run_time") or []
        runtime = run_times[0] if run_times else None
    else:
        runtime = record.get("runtime")

    recommended = (record.get("recommendations") or {}).get("results") or []

    return MediaDetails(
        summary=summary,
        tagline=record.get("tagline") or None,
        status=record.get("status") or None,
        runtime_minutes=runtime,
        genres=[
            Genre.model_validate(genre)
            for genre in record.get("genres") or []
            if isinstance(genre, Mapping)
        ],
        homepage=record.get("homepage") or None,
        trailer_key=_trailer_key(record),
        number_of_seasons=record.get("number_of_seasons") if media_type == "tv" else None,
        cast=_cast_list(record, image_base)[:cast_limit],
        recommendations=map_media_list(recommended, media_type, image_base=image_base),
    )


def map_media_credits(
    record: Mapping[str, Any],
    media_type: str,
    *,
    image_base: str = DEFAULT_IMAGE_BASE_URL,
) -> MediaCredits:
    """Full cast in billing order plus crew grouped by department.

    Departments are ordered by name; members within one by job, then name.
    """

    cast = sorted(
        _cast_list(record, image_base),
        key=lambda member: (member.order is None, member.order or 0),
    )

    departments: dict[str, list[CrewCredit]] = {}
    for member in (record.get("credits") or {}).get("crew") or []:
        if record_id(member) is None:
            continue
        department = (member.get("department") or "").strip() or "Crew"
        departments.setdefault(department, []).append(
            CrewCredit(
                id=int(member["id"]),
                name=member.get("name") or "",
                department=department,
                job=(member.get("job") or "").strip() or None,
                profile_url=build_image_url(member.get("profile_path"), "w185", image_base),
            )
        )
    crew = [
        CrewDepartment(
            department=department,
            members=sorted(
                members,
                key=lambda member: ((member.job or "").casefold(), member.name.casefold()),
            ),
        )
        for department, members in sorted(
            departments.items(), key=lambda entry: entry[0].casefold()
        )
    ]

    title = record.get("title") if media_type == "movie" else record.get("name")
    return MediaCredits(
        id=int(record["id"]),
        media_type="tv" if media_type == "tv" else "movie",
        title=title or record.get("title") or record.get("name") or "",
        cast=cast,
        crew=crew,
    )


def map_person_credit(
    credit: Mapping[str, Any], *, image_base: str = DEFAULT_IMAGE_BASE_URL
) -> MediaSummary:
    """Map one combined-credits entry, labelled with the role played."""

    media_type = "tv" if credit.get("media_type") == "tv" else "movie"
    summary = map_media_summary(credit, media_type, image_base=image_base)
    character = credit.get("character")
    if character:
        label = f"as {character}"
    elif media_type == "tv":
        label = credit.get("department") or credit.get("job") or None
    else:
        label = None
    return summary.model_copy(update={"supplementary_label": label})


def _credit_time(credit: Mapping[str, Any]) -> float:
    key = "first_air_date" if credit.get("media_type") == "tv" else "release_date"
    released = parse_release_date(credit.get(key))
    return released.timestamp() if released else 0.0


def _dedupe_credits(credits: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    seen: set[tuple[str, int]] = set()
    unique: list[Mapping[str, Any]] = []
    for credit in credits:
        key = (str(credit.get("media_type")), int(credit["id"]))
        if key in seen:
            continue
        seen.add(key)
        unique.append(credit)
    return unique


def _age(birthday: str | None, deathday: str | None, now: datetime) -> int | None:
    born = parse_release_date(birthday)
    if born is None:
        return None
    end = parse_release_date(deathday) if deathday else now
    if end is None:
        return None
    years = end.year - born.year
    if (end.month, end.day) < (born.month, born.day):
        years -= 1
    return years if years > 0 else None


def _external_links(record: Mapping[str, Any]) -> dict[str, str]:
    ids = record.get("external_ids") or {}
    links: dict[str, str] = {}
    if record.get("homepage"):
        links["homepage"] = str(record["homepage"])
    imdb_id = ids.get("imdb_id") or record.get("imdb_id")
    if imdb_id:
        links["imdb"] = f"https://www.imdb.com/name/{imdb_id}"
    if ids.get("twitter_id"):
        links["twitter"] = f"https://twitter.com/{ids['twitter_id']}"
    if ids.get("instagram_id"):
        links["instagram"] = f"https://instagram.com/{ids['instagram_id']}"
    if ids.get("facebook_id"):
        links["facebook"] = f"https://facebook.com/{ids['facebook_id']}"
    return links


def map_person_details(
    record: Mapping[str, Any],
    *,
    image_base: str = DEFAULT_IMAGE_BASE_URL,
    now: datetime | None = None,
) -> PersonDetails:
    """Build a person profile with known-for, acting and crew highlights."""

    now = now or datetime.now(timezone.utc)
    combined = record.get("combined_credits") or {}
    cast = [credit for credit in combined.get("cast") or [] if record_id(credit) is not None]
    crew = [credit for credit in combined.get("crew") or [] if record_id(credit) is not None]

    by_popularity = sorted(cast, key=lambda credit: -(_as_float(credit.get("popularity")) or 0.0))
    known_for = _dedupe_credits(by_popularity[: PERSON_HIGHLIGHTS + 4])[:PERSON_HIGHLIGHTS]
    acting = _dedupe_credits(sorted(cast, key=_credit_time, reverse=True))[:PERSON_HIGHLIGHTS]
    crew_highlights = _dedupe_credits(sorted(crew, key=_credit_time, reverse=True))[
        :PERSON_HIGHLIGHTS
    ]

    def _map(credits: list[Mapping[str, Any]]) -> list[MediaSummary]:
        return [map_person_credit(credit, image_base=image_base) for credit in credits]

    biography = (record.get("biography") or "").strip()
    return PersonDetails(
        id=int(record["id"]),
        name=record.get("name") or "",
        known_for_department=record.get("known_for_department") or None,
        biography=biography or None,
        birthday=record.get("birthday") or None,
        deathday=record.get("deathday") or None,
        age=_age(record.get("birthday"), record.get("deathday"), now),
        place_of_birth=record.get("place_of_birth") or None,
        also_known_as=[str(name) for name in record.get("also_known_as") or []],
        profile_url=build_image_url(record.get("profile_path"), "w780", image_base),
        homepage=record.get("homepage") or None,
        external_links=_external_links(record),
        known_for=_map(known_for),
        acting=_map(acting),
        crew=_map(crew_highlights),
    )
