"""
Geo Service: geocoding and great-circle distance for the radius filter.

Lookup order:
  1. "lat,lng" strings are parsed directly
  2. Redis cache (30-day TTL)
  3. Geoapify (when GEOAPIFY_API_KEY is set)
  4. Nominatim (OSM) as free fallback

Geocoding is best effort: any failure is logged and returns None, and the
directory falls back to matching the location text.
"""

import hashlib
import logging
import math
import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from config import settings

logger = logging.getLogger(__name__)

_redis: aioredis.Redis | None = None
_http: httpx.AsyncClient | None = None

GEOAPIFY_GEOCODE_URL = "https://api.geoapify.com/v1/geocode/search"
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
USER_AGENT = "DDirectory/1.0 (directory@d-directory.app)"

GEOCODE_CACHE_TTL = 30 * 24 * 3600   # 30 days
EARTH_RADIUS_MILES = 3958.8


async def _get_redis() -> aioredis.Redis:
    global _redis
    if _redis is None:
        _redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis


async def _get_http() -> httpx.AsyncClient:
    global _http
    if _http is None:
        _http = httpx.AsyncClient(timeout=10.0, headers={"User-Agent": USER_AGENT})
    return _http


async def close() -> None:
    """Close the shared Redis and HTTP clients (app shutdown)."""
    global _redis, _http
    if _http is not None:
        await _http.aclose()
        _http = None
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def _address_hash(address: str) -> str:
    """Normalize and hash an address for cache key."""
    normalized = " ".join(address.strip().lower().split())
    return hashlib.sha256(normalized.encode()).hexdigest()[:16]


# ── Distance ───────────────────────────────────────────────

def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Straight-line distance in miles between two coordinates."""
    dlat = math.radians(lat2 - lat1)
    dlng = math.radians(lng2 - lng1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_MILES * c, 2)


# ── Geocoding ──────────────────────────────────────────────

def parse_lat_lng(text: str) -> tuple[float, float] | None:
    """Parse a 'lat,lng' string."""
    if not text or "," not in text:
        return None
    parts = text.strip().split(",", 1)
    try:
        lat, lng = float(parts[0].strip()), float(parts[1].strip())
    except ValueError:
        return None
    if -90 <= lat <= 90 and -180 <= lng <= 180:
        return (lat, lng)
    return None


async def _cache_get(key: str) -> dict | None:
    try:
        r = await _get_redis()
        cached = await r.hgetall(key)
    except RedisError as e:
        logger.warning("Geocode cache read failed: %s", e)
        return None
    if cached and "lat" in cached:
        return {
            "lat": float(cached["lat"]),
            "lng": float(cached["lng"]),
            "formatted": cached.get("formatted", ""),
        }
    return None


async def _cache_set(key: str, result: dict) -> None:
    try:
        r = await _get_redis()
        await r.hset(key, mapping={
            "lat": str(result["lat"]),
            "lng": str(result["lng"]),
            "formatted": result["formatted"],
        })
        await r.expire(key, GEOCODE_CACHE_TTL)
    except RedisError as e:
        logger.warning("Geocode cache write failed: %s", e)


async def _geoapify(query: str) -> dict | None:
    http = await _get_http()
    resp = await http.get(
        GEOAPIFY_GEOCODE_URL,
        params={
            "text": query,
            "filter": f"countrycode:{settings.GEOCODE_COUNTRY_CODES}",
            "apiKey": settings.GEOAPIFY_API_KEY,
        },
    )
    resp.raise_for_status()
    features = resp.json().get("features") or []
    if not features:
        return None
    props = features[0].get("properties", {}) or {}
    if props.get("lat") is None or props.get("lon") is None:
        return None
    return {
        "lat": float(props["lat"]),
        "lng": float(props["lon"]),
        "formatted": props.get("formatted") or query,
    }


async def _nominatim(query: str) -> dict | None:
    http = await _get_http()
    resp = await http.get(NOMINATIM_URL, params={
        "q": query,
        "format": "json",
        "limit": 1,
        "countrycodes": settings.GEOCODE_COUNTRY_CODES,
    })
    resp.raise_for_status()
    hits = resp.json()
    if not hits:
        return None
    return {
        "lat": float(hits[0]["lat"]),
        "lng": float(hits[0]["lon"]),
        "formatted": hits[0].get("display_name", query),
    }


async def geocode(address: str | None) -> dict | None:
    """
    Geocode a free-text location ("Lake Charles, LA") to coordinates.

    Returns:
        {"lat": float, "lng": float, "formatted": str} or None
    """
    if not address or not address.strip():
        return None

    coords = parse_lat_lng(address)
    if coords is not None:
        return {"lat": coords[0], "lng": coords[1], "formatted": address}

    if not settings.GEOCODING_ENABLED:
        return None

    cache_key = f"geo:{_address_hash(address)}"
    cached = await _cache_get(cache_key)
    if cached:
        return cached

    result = None
    providers = [_nominatim]
    if settings.GEOAPIFY_API_KEY:
        providers.insert(0, _geoapify)

    for provider in providers:
        try:
            result = await provider(address.strip())
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("Geocode via %s failed for %r: %s", provider.__name__, address, e)
            continue
        if result:
            break

    if result:
        await _cache_set(cache_key, result)
    else:
        logger.info("Could not geocode %r", address)
    return result
