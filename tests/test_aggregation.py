"""Behaviour of the merge, load-more and filter engine."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.models import FilterState
from app.services.aggregation import (
    CollectionState,
    PageLoadError,
    PageResult,
    apply_filters,
    initialize,
    load_next,
)

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


def _days_ago(days: int) -> str:
    return (NOW - timedelta(days=days)).date().isoformat()


def test_initialize_keeps_first_occurrence_across_seeds(media) -> None:
    popular = PageResult(
        items=[media(1, title="A"), media(2, title="B")], has_more=True
    )
    top_rated = PageResult(items=[media(2, title="B (dup)"), media(3, title="C")])

    collection = initialize([popular, top_rated], category="catalogue")

    assert [item.id for item in collection.items] == [1, 2, 3]
    assert collection.items[1].title == "B"
    assert collection.page == 1
    assert collection.has_more is True
    assert collection.state is CollectionState.READY


def test_initialize_does_not_merge_across_media_types(media) -> None:
    collection = initialize([[media(7, "movie")], [media(7, "tv")]])

    assert [item.identity for item in collection.items] == [(7, "movie"), (7, "tv")]
    assert collection.has_more is False


def test_initialize_reports_more_when_any_seed_has_more(media) -> None:
    collection = initialize(
        [PageResult(items=[media(1)]), PageResult(items=[media(2)], has_more=True)]
    )

    assert collection.has_more is True


def test_initialize_is_deterministic(media) -> None:
    seeds = [PageResult(items=[media(3), media(1)]), PageResult(items=[media(1), media(2)])]

    first = initialize(seeds)
    second = initialize(seeds)

    assert first.items == second.items


@pytest.mark.anyio("asyncio")
async def test_load_next_appends_new_items_without_reordering(media) -> None:
    collection = initialize([PageResult(items=[media(1), media(2)], has_more=True)])
    requested: list[int] = []

    async def fetch_page(page: int) -> PageResult:
        requested.append(page)
        return PageResult(items=[media(2, title="Moved"), media(4)], has_more=False)

    result = await load_next(collection, fetch_page)

    assert result is collection
    assert requested == [2]
    assert [item.id for item in collection.items] == [1, 2, 4]
    assert collection.items[1].title == "Title 2"
    assert collection.page == 2
    assert collection.has_more is False
    assert collection.last_load is not None
    assert collection.last_load.page == 2


@pytest.mark.anyio("asyncio")
async def test_load_next_failure_leaves_collection_unchanged(media) -> None:
    collection = initialize([PageResult(items=[media(1)], has_more=True)], category="popular")

    async def fetch_page(page: int) -> PageResult:
        raise ConnectionError("upstream down")

    with pytest.raises(PageLoadError) as excinfo:
        await load_next(collection, fetch_page)

    assert excinfo.value.page == 2
    assert isinstance(excinfo.value.__cause__, ConnectionError)
    assert [item.id for item in collection.items] == [1]
    assert collection.page == 1
    assert collection.has_more is True
    assert collection.state is CollectionState.READY


@pytest.mark.anyio("asyncio")
async def test_concurrent_load_next_is_single_flight(media) -> None:
    collection = initialize([PageResult(items=[media(1)], has_more=True)])
    release = asyncio.Event()
    calls: list[int] = []

    async def fetch_page(page: int) -> PageResult:
        calls.append(page)
        await release.wait()
        return PageResult(items=[media(page * 10)], has_more=True)

    first = asyncio.create_task(load_next(collection, fetch_page))
    await asyncio.sleep(0)
    assert collection.state is CollectionState.LOADING

    second = await load_next(collection, fetch_page)
    assert second is collection
    assert [item.id for item in second.items] == [1]

    release.set()
    await first

    assert calls == [2]
    assert [item.id for item in collection.items] == [1, 20]
    assert collection.page == 2


def test_genre_filter_requires_every_selected_genre(media) -> None:
    collection = initialize(
        [[media(1, genre_ids=[1, 2]), media(2, genre_ids=[1, 3]), media(3, genre_ids=[2, 1, 9])]]
    )

    result = apply_filters(collection, FilterState(genres=[1, 2]), now=NOW)

    assert {item.id for item in result} == {1, 3}


def test_empty_genre_selection_keeps_everything(media) -> None:
    collection = initialize([[media(1), media(2, genre_ids=[5])]])

    assert len(apply_filters(collection, FilterState(), now=NOW)) == 2


def test_last_year_boundary_is_inclusive(media) -> None:
    collection = initialize(
        [[media(1, release_date=_days_ago(365)), media(2, release_date=_days_ago(366))]]
    )
    midnight = datetime(2025, 6, 15, tzinfo=timezone.utc)

    result = apply_filters(collection, FilterState(release="last-year"), now=midnight)

    assert [item.id for item in result] == [1]


def test_release_windows(media) -> None:
    collection = initialize(
        [
            [
                media(1, release_date=(NOW + timedelta(days=30)).date().isoformat()),
                media(2, release_date=_days_ago(100)),
                media(3, release_date=_days_ago(3 * 365)),
                media(4, release_date=_days_ago(10 * 365)),
                media(5, release_date=None),
                media(6, release_date="not-a-date"),
            ]
        ]
    )

    def ids(window: str) -> set[int]:
        return {item.id for item in apply_filters(collection, FilterState(release=window), now=NOW)}

    assert ids("upcoming") == {1}
    assert ids("last-year") == {1, 2}
    assert ids("last-five-years") == {1, 2, 3}
    assert ids("older") == {4, 5, 6}
    assert ids("all") == {1, 2, 3, 4, 5, 6}


def test_rating_sort_treats_missing_score_as_zero(media) -> None:
    collection = initialize([[media(1, score=7.0), media(2, score=None), media(3, score=9.0)]])

    result = apply_filters(collection, FilterState(sort="rating"), now=NOW)

    assert [item.score for item in result] == [9.0, 7.0, None]


def test_popularity_is_default_sort(media) -> None:
    collection = initialize(
        [[media(1, popularity=5), media(2, popularity=50), media(3)]]
    )

    result = apply_filters(collection, FilterState(sort="bogus"), now=NOW)

    assert [item.id for item in result] == [2, 1, 3]


def test_alphabetical_sort_ignores_case_and_is_stable(media) -> None:
    collection = initialize(
        [[media(1, title="b"), media(2, title="a"), media(3, title="b"), media(4, title="B")]]
    )

    result = apply_filters(collection, FilterState(sort="alphabetical"), now=NOW)

    assert [item.id for item in result] == [2, 1, 3, 4]


def test_date_sorts_put_missing_dates_last(media) -> None:
    collection = initialize(
        [
            [
                media(1, release_date="2001-01-01"),
                media(2, release_date=None),
                media(3, release_date="2020-05-05"),
                media(4, release_date="1965-03-02"),
            ]
        ]
    )

    newest = apply_filters(collection, FilterState(sort="newest"), now=NOW)
    oldest = apply_filters(collection, FilterState(sort="oldest"), now=NOW)

    assert [item.id for item in newest] == [3, 1, 4, 2]
    assert [item.id for item in oldest] == [4, 1, 3, 2]


def test_apply_filters_never_mutates_collection(media) -> None:
    collection = initialize([[media(1, popularity=1), media(2, popularity=2)]])
    before = list(collection.items)

    first = apply_filters(collection, FilterState(sort="popularity"), now=NOW)
    second = apply_filters(collection, FilterState(sort="popularity"), now=NOW)

    assert collection.items == before
    assert first == second
    assert first is not collection.items
