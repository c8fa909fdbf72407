"""Async client for the SnapFest public catalog API with memoized reads."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlencode

import httpx

from .cache import TTLCache

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = httpx.Timeout(connect=3.0, read=10.0, write=5.0, pool=5.0)
_RETRIES = 2

Params = Optional[Union[Mapping[str, Any], Sequence[Tuple[str, Any]]]]


class CatalogAPIError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def cache_key(path: str, params: Params = None) -> str:
    """Build the memoization key for a GET of ``path`` with ``params``."""
    # stable on key so repeated params keep their order
    query = urlencode(sorted(_clean_params(params), key=lambda pair: pair[0]))
    return f"GET {path}?{query}" if query else f"GET {path}"


def _clean_params(params: Params) -> List[Tuple[str, str]]:
    if not params:
        return []
    pairs = params.items() if isinstance(params, Mapping) else params
    return [(str(k), str(v)) for k, v in pairs if v is not None]


class CatalogClient:
    """Thin async wrapper for the read-only SnapFest public endpoints."""

    def __init__(
        self,
        base_url: str,
        cache: TTLCache[str, Any],
        *,
        api_key: Optional[str] = None,
        timeout: httpx.Timeout = _DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._cache = cache
        headers: Dict[str, str] = {"accept": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        limits = httpx.Limits(max_keepalive_connections=5, max_connections=10)
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout,
            limits=limits,
            transport=transport,
        )

    @property
    def cache(self) -> TTLCache[str, Any]:
        return self._cache

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def get_json(
        self,
        path: str,
        *,
        params: Params = None,
        ttl: Optional[float] = None,
        force_refresh: bool = False,
    ) -> Any:
        payload, _ = await self.fetch(path, params=params, ttl=ttl, force_refresh=force_refresh)
        return payload

    async def fetch(
        self,
        path: str,
        *,
        params: Params = None,
        ttl: Optional[float] = None,
        force_refresh: bool = False,
    ) -> Tuple[Any, bool]:
        """Return ``(payload, from_cache)`` for a memoized GET."""

        key = cache_key(path, params)
        if force_refresh:
            self._cache.delete(key)
        cached = self._cache.get(key)
        if cached is not None:
            return cached, True

        payload = await self._call("GET", path, params=_clean_params(params))
        # a null body can never be told apart from a miss
        if payload is not None:
            self._cache.set(key, payload, ttl)
        return payload, False

    def invalidate(self, path: str, params: Params = None) -> None:
        self._cache.delete(cache_key(path, params))

    async def list_packages(self, **params: Any) -> Dict[str, Any]:
        return await self.get_json("/public/packages", params=params)

    async def featured_packages(self) -> Dict[str, Any]:
        return await self.get_json("/public/packages/featured")

    async def package_details(self, package_id: str) -> Dict[str, Any]:
        return await self.get_json(f"/public/packages/{package_id}")

    async def list_events(self, **params: Any) -> Dict[str, Any]:
        return await self.get_json("/public/events", params=params)

    async def event_details(self, event_id: str) -> Dict[str, Any]:
        return await self.get_json(f"/public/events/{event_id}")

    async def list_venues(self, **params: Any) -> Dict[str, Any]:
        return await self.get_json("/public/venues", params=params)

    async def venue_details(self, venue_id: str) -> Dict[str, Any]:
        return await self.get_json(f"/public/venues/{venue_id}")

    async def list_beatblooms(self, **params: Any) -> Dict[str, Any]:
        return await self.get_json("/public/beatbloom", params=params)

    async def beatbloom_details(self, beatbloom_id: str) -> Dict[str, Any]:
        return await self.get_json(f"/public/beatbloom/{beatbloom_id}")

    async def testimonials(self) -> Dict[str, Any]:
        return await self.get_json("/public/testimonials")

    async def search(self, query: str, **params: Any) -> Dict[str, Any]:
        # search results go stale quickly and are rarely repeated verbatim
        return await self.get_json("/public/search", params={"q": query, **params}, ttl=60.0)

    async def _call(
        self, method: str, path: str, *, params: Optional[List[Tuple[str, str]]] = None
    ) -> Any:
        last_exc: Optional[Exception] = None
        for attempt in range(_RETRIES + 1):
            try:
                resp = await self._client.request(method, path, params=params)
                resp.raise_for_status()
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if 400 <= status < 500:
                    logger.warning("Catalog API 4xx %s", exc)
                    raise CatalogAPIError(str(exc), status_code=status) from exc
                last_exc = exc
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
            else:
                try:
                    return resp.json()
                except ValueError as exc:
                    raise CatalogAPIError(f"Invalid JSON from {path}") from exc
            if attempt < _RETRIES:
                logger.debug("Retrying %s %s after %s", method, path, last_exc)
                await asyncio.sleep(0.3 * (attempt + 1))
        assert last_exc is not None
        raise CatalogAPIError(str(last_exc)) from last_exc
