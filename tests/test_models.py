import pytest
from pydantic import ValidationError

from app.models import FilterState, MediaSummary


def test_filter_state_defaults() -> None:
    state = FilterState()

    assert state.sort == "popularity"
    assert state.release_window == "all"
    assert state.selected_genres == frozenset()


def test_filter_state_falls_back_on_unknown_values() -> None:
    state = FilterState.model_validate({"sort": "loudest", "release": "next-decade"})

    assert state.sort == "popularity"
    assert state.release_window == "all"


def test_filter_state_accepts_legacy_release_spelling() -> None:
    state = FilterState.model_validate({"releaseWindow": "last-five"})

    assert state.release_window == "last-five-years"


def test_filter_state_parses_comma_separated_genres() -> None:
    state = FilterState.model_validate({"genres": "28, 12,,28"})

    assert state.selected_genres == frozenset({28, 12})


def test_filter_state_rejects_non_numeric_genres() -> None:
    with pytest.raises(ValidationError):
        FilterState.model_validate({"genres": "action"})


def test_media_summary_identity_includes_media_type() -> None:
    movie = MediaSummary(id=10, media_type="movie")
    show = MediaSummary(id=10, media_type="tv")

    assert movie.identity != show.identity
    assert movie.identity == (10, "movie")


def test_media_summary_serialises_camel_case() -> None:
    item = MediaSummary(id=1, media_type="tv", release_date="2020-01-01", genre_ids=[3])

    payload = item.model_dump(mode="json", by_alias=True)

    assert payload["mediaType"] == "tv"
    assert payload["releaseDate"] == "2020-01-01"
    assert payload["genreIds"] == [3]
    assert payload["popularity"] == 0.0
