"""Tests for the TMDB API client."""

from __future__ import annotations

import json

import httpx
import pytest

from app.categories import get_category
from app.services.tmdb import (
    TMDBClient,
    TMDBConfigurationError,
    TMDBError,
)

BASE_URL = "https://api.example.com/3"


def _page(page: int, results: list[dict], total_pages: int = 3) -> dict:
    return {
        "page": page,
        "results": results,
        "total_pages": total_pages,
        "total_results": total_pages * 20,
    }


@pytest.mark.anyio("asyncio")
async def test_category_page_uses_api_key_and_reports_more(make_settings) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=_page(2, [{"id": 1, "title": "A"}]))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        listing = await client.get_category_page(get_category("movie", "top-rated"), 2)

    assert listing.page == 2
    assert listing.has_more is True
    assert listing.results == [{"id": 1, "title": "A"}]
    assert requests[0].url.path == "/3/movie/top_rated"
    assert requests[0].url.params["api_key"] == "test-key"
    assert requests[0].url.params["page"] == "2"
    assert requests[0].url.params["language"] == "en-US"


@pytest.mark.anyio("asyncio")
async def test_bearer_token_takes_precedence(make_settings) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json=_page(3, [], total_pages=3))

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(TMDB_ACCESS_TOKEN="v4-token"), http_client)
        listing = await client.get_category_page(get_category("tv", "popular"), 3)

    assert listing.has_more is False
    assert requests[0].headers["Authorization"] == "Bearer v4-token"
    assert "api_key" not in requests[0].url.params


@pytest.mark.anyio("asyncio")
async def test_missing_credentials_raise_configuration_error(make_settings) -> None:
    def handler(_: httpx.Request) -> httpx.Response:  # pragma: no cover - never reached
        return httpx.Response(200, json={})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(TMDB_API_KEY=None), http_client)
        with pytest.raises(TMDBConfigurationError):
            await client.get_popular_people()


@pytest.mark.anyio("asyncio")
async def test_successful_responses_are_cached_per_revalidate_hint(make_settings) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"genres": [{"id": 28, "name": "Action"}]})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        first = await client.get_genres("movie")
        second = await client.get_genres("movie")

    assert calls == 1
    assert first == second
    assert first[0].name == "Action"


@pytest.mark.anyio("asyncio")
async def test_search_is_never_cached_and_filters_media_types(make_settings) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        assert request.url.params["include_adult"] == "false"
        return httpx.Response(
            200,
            json=_page(
                1,
                [
                    {"id": 1, "media_type": "movie", "title": "Alien"},
                    {"id": 2, "media_type": "collection", "name": "Alien Collection"},
                    {"id": 3, "media_type": "person", "name": "Ridley Scott"},
                ],
                total_pages=1,
            ),
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        await client.search_multi("alien")
        result = await client.search_multi("alien")
        empty = await client.search_multi("   ")

    assert calls == 2
    assert [entry["id"] for entry in result.results] == [1, 3]
    assert empty.results == []


@pytest.mark.anyio("asyncio")
async def test_error_status_raises_tmdb_error(make_settings) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"status_message": "unavailable"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        with pytest.raises(TMDBError) as excinfo:
            await client.get_category_page(get_category("movie", "popular"))

    assert excinfo.value.status_code == 503


@pytest.mark.anyio("asyncio")
async def test_transport_failure_raises_tmdb_error(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        with pytest.raises(TMDBError) as excinfo:
            await client.get_category_page(get_category("movie", "popular"))

    assert excinfo.value.status_code is None


@pytest.mark.anyio("asyncio")
async def test_details_return_none_for_missing_titles(make_settings) -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"status_message": "not found"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        assert await client.get_details("movie", 999) is None


@pytest.mark.anyio("asyncio")
async def test_rate_media_clamps_value(make_settings) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(201, json={"success": True})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        await client.rate_media("tv", 12, 14, "guest-1")

    assert requests[0].method == "POST"
    assert requests[0].url.path == "/3/tv/12/rating"
    assert requests[0].url.params["guest_session_id"] == "guest-1"
    assert json.loads(requests[0].content) == {"value": 10}


@pytest.mark.anyio("asyncio")
async def test_create_guest_session(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/3/authentication/guest_session/new"
        return httpx.Response(
            200,
            json={
                "success": True,
                "guest_session_id": "abc",
                "expires_at": "2030-01-01 00:00:00 UTC",
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        session = await client.create_guest_session()

    assert session.id == "abc"
    assert session.expires_at == "2030-01-01 00:00:00 UTC"


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


@pytest.mark.anyio("asyncio")
async def test_expired_cache_entries_are_purged(make_settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        media_id = int(request.url.path.rsplit("/", 1)[-1])
        return httpx.Response(200, json={"id": media_id, "title": f"Movie {media_id}"})

    clock = FakeClock()
    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client, clock=clock)
        for media_id in range(1, 51):
            await client.get_details("movie", media_id)
        assert client.cached_entries == 50

        clock.now += 10_000
        await client.get_details("movie", 999)

    assert client.cached_entries == 1


@pytest.mark.anyio("asyncio")
async def test_expired_entry_is_refetched(make_settings) -> None:
    calls = 0

    def handler(_: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"genres": []})

    clock = FakeClock()
    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client, clock=clock)
        await client.get_genres("tv")
        clock.now += 43_200
        await client.get_genres("tv")

    assert calls == 2


@pytest.mark.anyio("asyncio")
async def test_cache_evicts_oldest_beyond_capacity(make_settings) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"id": 1, "title": "Movie"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client, cache_size=2, clock=FakeClock())
        await client.get_details("movie", 1)
        await client.get_details("movie", 2)
        await client.get_details("movie", 3)
        assert client.cached_entries == 2

        await client.get_details("movie", 3)
        await client.get_details("movie", 1)

    assert calls == [
        "/3/movie/1",
        "/3/movie/2",
        "/3/movie/3",
        "/3/movie/1",
    ]


@pytest.mark.anyio("asyncio")
async def test_person_details_requests_combined_credits(make_settings) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/404"):
            return httpx.Response(404, json={})
        return httpx.Response(200, json={"id": 31, "name": "Tom Hanks"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as http_client:
        client = TMDBClient(make_settings(), http_client)
        person = await client.get_person_details(31)
        missing = await client.get_person_details(404)

    assert person == {"id": 31, "name": "Tom Hanks"}
    assert missing is None
    assert requests[0].url.path == "/3/person/31"
    assert requests[0].url.params["append_to_response"] == "combined_credits,external_ids,images"
