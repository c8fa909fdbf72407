"""FastAPI application serving memoized reads of the SnapFest public catalog."""
from __future__ import annotations

import logging
import math
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, Response

from .cache import TTLCache
from .catalog import CatalogAPIError, CatalogClient
from .sweeper import CacheSweeper

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:5001/api"
DEFAULT_CACHE_TTL = 5 * 60.0
DEFAULT_SWEEP_INTERVAL = 5 * 60.0

router = APIRouter()


def configure_logging() -> None:
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from exc
    if not math.isfinite(value):
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}")
    return value


def _public_segments(path: str) -> Optional[List[str]]:
    """Split a catalog path, or return None if it could leave /public."""
    segments = path.strip("/").split("/")
    if any(segment in ("", ".", "..") or any(ch in segment for ch in "\\?#%") for segment in segments):
        return None
    return segments


def create_app(*, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        base_url = os.getenv("SNAPFEST_API_URL", DEFAULT_API_URL)
        api_key = os.getenv("SNAPFEST_API_KEY")
        cache: TTLCache[str, Any] = TTLCache(default_ttl=_env_float("CACHE_DEFAULT_TTL", DEFAULT_CACHE_TTL))
        client = CatalogClient(base_url, cache, api_key=api_key, transport=transport)
        sweeper = CacheSweeper(cache, interval=_env_float("CACHE_SWEEP_INTERVAL", DEFAULT_SWEEP_INTERVAL))
        app.state.cache = cache
        app.state.catalog_client = client
        app.state.sweeper = sweeper
        sweeper.start()
        logger.info("Serving catalog from %s (default ttl %ss)", base_url, cache.default_ttl)
        try:
            yield
        finally:
            await sweeper.stop()
            await client.close()

    app = FastAPI(title="SnapFest catalog cache", version="1.0.0", lifespan=lifespan)
    app.include_router(router)
    return app


async def get_cache(request: Request) -> TTLCache[str, Any]:
    return request.app.state.cache


async def get_client(request: Request) -> CatalogClient:
    return request.app.state.catalog_client


async def get_sweeper(request: Request) -> CacheSweeper:
    return request.app.state.sweeper


@router.get("/healthz")
async def healthz() -> Dict[str, bool]:
    return {"ok": True}


@router.get("/catalog/{path:path}")
async def catalog(
    path: str,
    request: Request,
    force_refresh: Optional[int] = Query(0, description="Bypass the cached entry when set"),
    client: CatalogClient = Depends(get_client),
) -> Response:
    segments = _public_segments(path)
    if segments is None:
        raise HTTPException(
            status_code=400,
            detail={"error": "invalid_path", "path": path},
        )
    params = [(key, value) for key, value in request.query_params.multi_items() if key != "force_refresh"]
    try:
        payload, from_cache = await client.fetch(
            "/public/" + "/".join(segments),
            params=params,
            force_refresh=bool(force_refresh),
        )
    except CatalogAPIError as exc:
        if exc.status_code is not None:
            raise HTTPException(
                status_code=exc.status_code,
                detail={"error": "upstream_rejected", "message": str(exc)},
            )
        raise HTTPException(
            status_code=503,
            detail={"error": "upstream_unavailable", "message": str(exc)},
        )

    response = JSONResponse(content=payload)
    response.headers["X-Cache"] = "HIT" if from_cache else "MISS"
    return response


@router.get("/cache/stats")
async def cache_stats(
    cache: TTLCache[str, Any] = Depends(get_cache),
    sweeper: CacheSweeper = Depends(get_sweeper),
) -> Dict[str, Any]:
    return {
        "size": cache.size(),
        "live_size": cache.live_size(),
        "default_ttl": cache.default_ttl,
        "sweep_interval": sweeper.interval,
        "sweeper_running": sweeper.running,
    }


@router.post("/cache/cleanup")
async def cache_cleanup(sweeper: CacheSweeper = Depends(get_sweeper)) -> Dict[str, int]:
    return {"removed": sweeper.sweep_once()}


@router.delete("/cache")
async def cache_clear(cache: TTLCache[str, Any] = Depends(get_cache)) -> Dict[str, int]:
    cleared = cache.size()
    cache.clear()
    logger.info("Cleared %d cache entries", cleared)
    return {"cleared": cleared}


@router.delete("/cache/entries", status_code=204)
async def cache_delete(
    key: str = Query(..., description="Exact cache key, e.g. 'GET /public/packages?page=1'"),
    cache: TTLCache[str, Any] = Depends(get_cache),
) -> Response:
    cache.delete(key)
    return Response(status_code=204)


app = create_app()
