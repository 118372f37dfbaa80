"""Entry point for the FastAPI-powered CineDeck service."""

from __future__ import annotations

import logging
import secrets
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Mapping

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from . import __version__
from .config import settings
from .database import Database
from .models import FilterState, MediaType
from .services.aggregation import PageLoadError
from .services.catalogue import CatalogueService
from .services.tmdb import TMDBClient, TMDBConfigurationError, TMDBError
from .services.watchlist import (
    SESSION_STORAGE_KEY,
    GuestSessionManager,
    KeyValueStore,
    SqlStore,
    Watchlist,
    WatchlistItem,
    drain_rating_submissions,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

VISITOR_COOKIE = "cinedeck_visitor"
GUEST_SESSION_HEADER = "X-Guest-Session"

_MEDIA_TYPES: dict[str, MediaType] = {
    "movie": "movie",
    "movies": "movie",
    "tv": "tv",
}

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tmdb_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    if not settings.has_tmdb_credentials:
        logger.warning("No TMDB credentials configured; upstream requests will fail")

    tmdb = TMDBClient(settings, tmdb_http_client, cache_size=settings.tmdb_cache_size)
    fastapi_app.state.catalogue_service = CatalogueService(settings, tmdb)
    fastapi_app.state.store = SqlStore(database.session_factory)
    fastapi_app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await drain_rating_submissions()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie and TV discovery backed by TMDB",
        version=__version__,
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_catalogue_service(fastapi_app: FastAPI) -> CatalogueService:
    service = getattr(fastapi_app.state, "catalogue_service", None)
    if not isinstance(service, CatalogueService):
        raise RuntimeError("Catalogue service not initialised")
    return service


def get_store(fastapi_app: FastAPI) -> KeyValueStore:
    store = getattr(fastapi_app.state, "store", None)
    if not isinstance(store, KeyValueStore):
        raise RuntimeError("Key-value store not initialised")
    return store


class RatingRequest(BaseModel):
    """Body of a rating submission."""

    model_config = ConfigDict(populate_by_name=True)

    media_type: MediaType = Field(alias="mediaType")
    id: int
    rating: int


def _resolve_media_type(value: str) -> MediaType:
    media_type = _MEDIA_TYPES.get(value.lower())
    if media_type is None:
        raise HTTPException(status_code=404, detail=f"Unsupported media type: {value}")
    return media_type


def _parse_filters(params: Mapping[str, str]) -> FilterState:
    try:
        return FilterState.model_validate(
            {
                "sort": params.get("sort"),
                "release": params.get("release"),
                "genres": params.get("genres"),
            }
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()) from exc


def _visitor_id(request: Request) -> tuple[str, bool]:
    existing = (request.cookies.get(VISITOR_COOKIE) or "").strip()
    if existing:
        return existing, False
    return secrets.token_urlsafe(16), True


def _visitor_response(
    payload: Any, visitor_id: str, is_new: bool, *, status_code: int = 200
) -> JSONResponse:
    response = JSONResponse(payload, status_code=status_code)
    if is_new:
        response.set_cookie(VISITOR_COOKIE, visitor_id, httponly=True, samesite="lax")
    return response


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, list):
        return [_dump(entry) for entry in value]
    if isinstance(value, dict):
        return {key: _dump(entry) for key, entry in value.items()}
    return value


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.exception_handler(TMDBError)
    async def tmdb_error_handler(_: Request, exc: TMDBError) -> JSONResponse:
        if isinstance(exc, TMDBConfigurationError):
            return JSONResponse({"error": str(exc)}, status_code=500)
        logger.warning("Upstream TMDB failure: %s", exc)
        return JSONResponse({"error": "Upstream metadata service failed"}, status_code=502)

    async def _watchlist_for(request: Request) -> Watchlist:
        session_id = (request.headers.get(GUEST_SESSION_HEADER) or "").strip()
        if not session_id:
            raise HTTPException(
                status_code=401, detail=f"{GUEST_SESSION_HEADER} header is required"
            )
        service = get_catalogue_service(fastapi_app)
        watchlist = Watchlist(get_store(fastapi_app), session_id, tmdb_client=service.tmdb)
        return await watchlist.load()

    def _watchlist_payload(watchlist: Watchlist) -> dict[str, Any]:
        return {
            "items": _dump(watchlist.items),
            "ratings": watchlist.ratings,
        }

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/home")
    async def home() -> JSONResponse:
        service = get_catalogue_service(fastapi_app)
        return JSONResponse(_dump(await service.home()))

    @fastapi_app.get("/api/genres/{media_type}")
    async def genres(media_type: str) -> JSONResponse:
        resolved = _resolve_media_type(media_type)
        service = get_catalogue_service(fastapi_app)
        return JSONResponse({"genres": _dump(await service.genres(resolved))})

    @fastapi_app.get("/api/search/suggestions")
    async def search_suggestions(q: str = "", limit: int | None = None) -> JSONResponse:
        service = get_catalogue_service(fastapi_app)
        try:
            groups = await service.suggest(q, limit)
        except TMDBError as exc:
            logger.warning("Failed to fetch TMDB search suggestions: %s", exc)
            return JSONResponse(
                {"error": "Unable to fetch search suggestions"}, status_code=500
            )
        return JSONResponse(_dump(groups))

    @fastapi_app.get("/api/search")
    async def search(q: str = "", page: int = 1) -> JSONResponse:
        service = get_catalogue_service(fastapi_app)
        return JSONResponse(_dump(await service.search(q, page)))

    @fastapi_app.get("/api/people")
    async def people(page: int = 1) -> JSONResponse:
        service = get_catalogue_service(fastapi_app)
        return JSONResponse(_dump(await service.people(page)))

    @fastapi_app.get("/api/people/{person_id:int}")
    async def person(person_id: int) -> JSONResponse:
        record = await get_catalogue_service(fastapi_app).person(person_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Person not found")
        return JSONResponse(_dump(record))

    @fastapi_app.get("/api/{media_type}/browse")
    async def browse(request: Request, media_type: str, category: str = "catalogue") -> JSONResponse:
        resolved = _resolve_media_type(media_type)
        filters = _parse_filters(request.query_params)
        visitor_id, is_new = _visitor_id(request)
        session = get_catalogue_service(fastapi_app).browse_session(visitor_id, resolved)
        try:
            await session.select(category)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        view = session.view(filters, now=datetime.now(timezone.utc))
        return _visitor_response(view.to_payload(), visitor_id, is_new)

    @fastapi_app.post("/api/{media_type}/browse/more")
    async def browse_more(
        request: Request, media_type: str, category: str = "catalogue"
    ) -> JSONResponse:
        resolved = _resolve_media_type(media_type)
        filters = _parse_filters(request.query_params)
        visitor_id, is_new = _visitor_id(request)
        session = get_catalogue_service(fastapi_app).browse_session(visitor_id, resolved)
        try:
            await session.select(category)
            await session.load_more()
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc.args[0])) from exc
        except PageLoadError as exc:
            raise HTTPException(
                status_code=502, detail=f"{exc}. Try again shortly."
            ) from exc
        view = session.view(filters, now=datetime.now(timezone.utc))
        return _visitor_response(view.to_payload(), visitor_id, is_new)

    @fastapi_app.get("/api/{media_type}/{media_id:int}")
    async def details(media_type: str, media_id: int) -> JSONResponse:
        resolved = _resolve_media_type(media_type)
        record = await get_catalogue_service(fastapi_app).details(resolved, media_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Title not found")
        return JSONResponse(_dump(record))

    @fastapi_app.get("/api/{media_type}/{media_id:int}/credits")
    async def credits(media_type: str, media_id: int) -> JSONResponse:
        resolved = _resolve_media_type(media_type)
        record = await get_catalogue_service(fastapi_app).credits(resolved, media_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Title not found")
        return JSONResponse(_dump(record))

    @fastapi_app.post("/api/session")
    async def guest_session(request: Request) -> JSONResponse:
        visitor_id, is_new = _visitor_id(request)
        manager = GuestSessionManager(
            get_store(fastapi_app),
            get_catalogue_service(fastapi_app).tmdb,
            storage_key=f"{SESSION_STORAGE_KEY}-{visitor_id}",
        )
        session = await manager.ensure_session()
        if session is None:
            return _visitor_response(
                {"error": "Failed to create guest session"}, visitor_id, is_new, status_code=502
            )
        return _visitor_response(
            {
                "guestSessionId": session.id,
                "expiresAt": session.expires_at.isoformat() if session.expires_at else None,
            },
            visitor_id,
            is_new,
        )

    @fastapi_app.get("/api/watchlist")
    async def watchlist(request: Request) -> JSONResponse:
        return JSONResponse(_watchlist_payload(await _watchlist_for(request)))

    @fastapi_app.post("/api/watchlist/toggle")
    async def toggle_watchlist(request: Request, item: WatchlistItem) -> JSONResponse:
        current = await _watchlist_for(request)
        saved = await current.toggle(item)
        return JSONResponse({"saved": saved, **_watchlist_payload(current)})

    @fastapi_app.post("/api/ratings")
    async def rate(request: Request, body: RatingRequest) -> JSONResponse:
        current = await _watchlist_for(request)
        try:
            outcome = await current.rate(body.id, body.media_type, body.rating)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return JSONResponse(outcome.to_payload())


app = create_app()


def run() -> None:  # pragma: no cover - runtime entrypoint
    """Serve the app with uvicorn using the configured host and port."""

    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":  # pragma: no cover - manual execution
    run()
