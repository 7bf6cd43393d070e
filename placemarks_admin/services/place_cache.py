"""
Freshness cache for Google Places data.

Entries are keyed by Google Place ID and expire a fixed number of days
after they were written. Expired entries are never returned; removing them
physically is a separate cleanup sweep (``delete_expired``).

Cache writes are best effort: they report a CacheWriteOutcome instead of
raising, and callers are free to ignore it.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import redis.asyncio as redis
from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from placemarks_admin.database import upsert_statement
from placemarks_admin.exceptions import ConfigurationError
from placemarks_admin.models.places import CacheStats, PlaceDetails
from placemarks_admin.models.tables import GooglePlacesCacheEntry
from placemarks_admin.utils.time import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 30
SEARCH_LIMIT = 20


@dataclass(frozen=True)
class CacheWriteOutcome:
    """Result of a cache write. ``ignored`` outcomes carry the swallowed error."""

    written: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def stored(cls, count: int = 1) -> "CacheWriteOutcome":
        return cls(written=count)

    @classmethod
    def ignored(cls, error: Union[str, BaseException]) -> "CacheWriteOutcome":
        return cls(written=0, error=str(error))


class PlaceCache(Protocol):
    """Operations shared by every cache backend."""

    async def get_place(self, place_id: str) -> Optional[Dict[str, Any]]: ...

    async def cache_place(self, place: Union[PlaceDetails, Dict[str, Any]]) -> CacheWriteOutcome: ...

    async def cache_places(self, places: List[Dict[str, Any]]) -> CacheWriteOutcome: ...

    async def search_places(self, query: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]: ...

    async def get_stats(self) -> CacheStats: ...

    async def count(self) -> int: ...

    async def delete_expired(self) -> int: ...


def _as_dict(place: Union[PlaceDetails, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(place, PlaceDetails):
        return place.model_dump(mode="json")
    return dict(place)


def build_detail_entry(place: Union[PlaceDetails, Dict[str, Any]], now: datetime, ttl: timedelta) -> Dict[str, Any]:
    """Cache row for a details response."""
    data = _as_dict(place)
    photos = data.get("photos") or []
    reviews = data.get("reviews") or []
    return {
        "google_place_id": data.get("place_id"),
        "place_id": data.get("place_id"),
        "name": data.get("name"),
        "formatted_address": data.get("formatted_address") or data.get("vicinity"),
        "geometry": data.get("geometry"),
        "types": data.get("types") or [],
        "rating": data.get("rating"),
        "price_level": data.get("price_level"),
        "photos": photos,
        "formatted_phone_number": data.get("formatted_phone_number"),
        "website": data.get("website"),
        "opening_hours": data.get("opening_hours"),
        "reviews": reviews,
        "has_basic_data": bool(data.get("name") and data.get("geometry")),
        "has_contact_data": bool(data.get("formatted_phone_number") or data.get("website")),
        "has_hours_data": bool(data.get("opening_hours")),
        "has_photos_data": bool(photos),
        "has_reviews_data": bool(reviews),
        "cached_at": now,
        "expires_at": now + ttl,
    }


def build_summary_entry(place: Dict[str, Any], now: datetime, ttl: timedelta) -> Dict[str, Any]:
    """Cache row for a text-search result (no contact, hours or reviews)."""
    photos = place.get("photos") or []
    return {
        "google_place_id": place.get("place_id"),
        "place_id": place.get("place_id"),
        "name": place.get("name"),
        "formatted_address": place.get("formatted_address") or place.get("vicinity"),
        "geometry": place.get("geometry"),
        "types": place.get("types") or [],
        "rating": place.get("rating"),
        "price_level": place.get("price_level"),
        "photos": photos,
        "has_basic_data": bool(place.get("name") and place.get("geometry")),
        "has_photos_data": bool(photos),
        "cached_at": now,
        "expires_at": now + ttl,
    }


def search_terms(query: str) -> List[str]:
    """Words of a multi-word query that are long enough to match on their own."""
    words = [word for word in query.strip().split() if len(word) > 2]
    return words if len(words) > 1 else []


class DatabasePlaceCache:
    """Cache stored in the google_places_cache table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ttl_days: int = DEFAULT_TTL_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.ttl = timedelta(days=ttl_days)
        self.clock = clock

    @staticmethod
    def _row_to_dict(row: GooglePlacesCacheEntry) -> Dict[str, Any]:
        data = {column.name: getattr(row, column.name) for column in GooglePlacesCacheEntry.__table__.columns}
        for key in ("cached_at", "expires_at"):
            if data.get(key) is not None:
                data[key] = data[key].isoformat()
        return data

    async def get_place(self, place_id: str) -> Optional[Dict[str, Any]]:
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(GooglePlacesCacheEntry).where(
                        GooglePlacesCacheEntry.google_place_id == place_id,
                        GooglePlacesCacheEntry.expires_at > self.clock(),
                    )
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error(f"Error reading place {place_id} from cache: {exc}")
            return None

        if row is None:
            logger.debug(f"Place {place_id} not in cache or expired")
            return None
        return self._row_to_dict(row)

    async def _upsert(self, entries: List[Dict[str, Any]]) -> None:
        async with self.session_factory() as session:
            for entry in entries:
                stmt = upsert_statement(session, GooglePlacesCacheEntry.__table__).values(**entry)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[GooglePlacesCacheEntry.google_place_id],
                    set_={key: stmt.excluded[key] for key in entry if key != "google_place_id"},
                )
                await session.execute(stmt)
            await session.commit()

    async def cache_place(self, place: Union[PlaceDetails, Dict[str, Any]]) -> CacheWriteOutcome:
        entry = build_detail_entry(place, self.clock(), self.ttl)
        if not entry["google_place_id"]:
            return CacheWriteOutcome.ignored("place has no place_id")
        try:
            await self._upsert([entry])
        except SQLAlchemyError as exc:
            logger.error(f"Error caching place details for {entry['google_place_id']}: {exc}")
            return CacheWriteOutcome.ignored(exc)
        logger.info(f"Cached place details: {entry['name']}")
        return CacheWriteOutcome.stored()

    async def cache_places(self, places: List[Dict[str, Any]]) -> CacheWriteOutcome:
        if not places:
            return CacheWriteOutcome.stored(0)
        now = self.clock()
        entries = [build_summary_entry(place, now, self.ttl) for place in places if place.get("place_id")]
        try:
            await self._upsert(entries)
        except SQLAlchemyError as exc:
            logger.error(f"Cache operation failed for {len(entries)} search results: {exc}")
            return CacheWriteOutcome.ignored(exc)
        return CacheWriteOutcome.stored(len(entries))

    async def search_places(self, query: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]:
        trimmed = query.strip()
        if not trimmed:
            return []
        conditions = [
            GooglePlacesCacheEntry.name.ilike(f"%{trimmed}%"),
            GooglePlacesCacheEntry.formatted_address.ilike(f"%{trimmed}%"),
        ]
        conditions.extend(GooglePlacesCacheEntry.name.ilike(f"%{word}%") for word in search_terms(trimmed))

        stmt = (
            select(GooglePlacesCacheEntry)
            .where(or_(*conditions), GooglePlacesCacheEntry.expires_at > self.clock())
            .order_by(GooglePlacesCacheEntry.cached_at.desc())
            .limit(limit)
        )
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            logger.error(f"Cache search error for '{trimmed}': {exc}")
            return []

        logger.info(f"Found {len(rows)} cached results for '{trimmed}'")
        return [self._row_to_dict(row) for row in rows]

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(GooglePlacesCacheEntry))
            return int(result.scalar_one())

    async def get_stats(self) -> CacheStats:
        try:
            async with self.session_factory() as session:
                total = (await session.execute(
                    select(func.count()).select_from(GooglePlacesCacheEntry)
                )).scalar_one()
                expired = (await session.execute(
                    select(func.count())
                    .select_from(GooglePlacesCacheEntry)
                    .where(GooglePlacesCacheEntry.expires_at < self.clock())
                )).scalar_one()
        except SQLAlchemyError as exc:
            logger.error(f"Error getting cache stats: {exc}")
            return CacheStats()

        stats = CacheStats(total=total, expired=expired, fresh=total - expired)
        logger.info(f"Cache stats - Total: {stats.total}, Fresh: {stats.fresh}, Expired: {stats.expired}")
        return stats

    async def delete_expired(self) -> int:
        logger.info("Cleaning up expired cache entries")
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    delete(GooglePlacesCacheEntry).where(GooglePlacesCacheEntry.expires_at < self.clock())
                )
                await session.commit()
        except SQLAlchemyError as exc:
            logger.error(f"Error cleaning up expired entries: {exc}")
            return 0

        deleted = result.rowcount or 0
        logger.info(f"Cleaned up {deleted} expired entries")
        return deleted


class RedisPlaceCache:
    """
    Cache stored in Redis.

    Each place is one JSON value with a key TTL. A sorted set scored by the
    expiry timestamp indexes every entry, which backs stats, search and
    cleanup of keys that Redis already evicted.
    """

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = "placemarks:place_cache",
        ttl_days: int = DEFAULT_TTL_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client = client
        self.key_prefix = key_prefix
        self.ttl = timedelta(days=ttl_days)
        self.clock = clock

    @classmethod
    def from_settings(cls, settings) -> "RedisPlaceCache":
        client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            password=settings.redis_password,
            decode_responses=True,
        )
        return cls(client, key_prefix=settings.redis_key_prefix, ttl_days=settings.place_cache_ttl_days)

    @property
    def index_key(self) -> str:
        return f"{self.key_prefix}:expiry"

    def _key(self, place_id: str) -> str:
        return f"{self.key_prefix}:{place_id}"

    def _now_score(self) -> float:
        return self.clock().timestamp()

    @staticmethod
    def _serialize(entry: Dict[str, Any]) -> str:
        data = dict(entry)
        for key in ("cached_at", "expires_at"):
            if isinstance(data.get(key), datetime):
                data[key] = data[key].isoformat()
        return json.dumps(data)

    def _is_fresh(self, entry: Dict[str, Any]) -> bool:
        expires_at = entry.get("expires_at")
        if not expires_at:
            return False
        try:
            return datetime.fromisoformat(expires_at) > self.clock()
        except (ValueError, TypeError) as exc:
            logger.error(f"Corrupt expiry on cache entry {entry.get('google_place_id')}: {exc}")
            return False

    def _decode(self, place_id: str, value: Any) -> Optional[Dict[str, Any]]:
        """Parse a stored entry; corrupt values are logged and read as a miss."""
        try:
            entry = json.loads(value)
            if not isinstance(entry, dict):
                raise ValueError(f"expected an object, got {type(entry).__name__}")
        except (ValueError, TypeError) as exc:
            logger.error(f"Corrupt cache entry for {place_id}: {exc}")
            return None
        return entry

    async def get_place(self, place_id: str) -> Optional[Dict[str, Any]]:
        try:
            value = await self.client.get(self._key(place_id))
        except redis.RedisError as exc:
            logger.error(f"Redis GET error for {place_id}: {exc}")
            return None
        if not value:
            return None
        entry = self._decode(place_id, value)
        return entry if entry is not None and self._is_fresh(entry) else None

    async def _write(self, entries: List[Dict[str, Any]]) -> None:
        ttl_seconds = int(self.ttl.total_seconds())
        for entry in entries:
            place_id = entry["google_place_id"]
            await self.client.set(self._key(place_id), self._serialize(entry), ex=ttl_seconds)
            await self.client.zadd(self.index_key, {place_id: entry["expires_at"].timestamp()})

    async def cache_place(self, place: Union[PlaceDetails, Dict[str, Any]]) -> CacheWriteOutcome:
        entry = build_detail_entry(place, self.clock(), self.ttl)
        if not entry["google_place_id"]:
            return CacheWriteOutcome.ignored("place has no place_id")
        try:
            await self._write([entry])
        except redis.RedisError as exc:
            logger.error(f"Redis SET error for {entry['google_place_id']}: {exc}")
            return CacheWriteOutcome.ignored(exc)
        return CacheWriteOutcome.stored()

    async def cache_places(self, places: List[Dict[str, Any]]) -> CacheWriteOutcome:
        now = self.clock()
        entries = [build_summary_entry(place, now, self.ttl) for place in places if place.get("place_id")]
        try:
            await self._write(entries)
        except redis.RedisError as exc:
            logger.error(f"Redis SET error for {len(entries)} search results: {exc}")
            return CacheWriteOutcome.ignored(exc)
        return CacheWriteOutcome.stored(len(entries))

    async def search_places(self, query: str, limit: int = SEARCH_LIMIT) -> List[Dict[str, Any]]:
        trimmed = query.strip().lower()
        if not trimmed:
            return []
        words = [word.lower() for word in search_terms(trimmed)]
        try:
            place_ids = await self.client.zrangebyscore(self.index_key, self._now_score(), "+inf")
            values = await self.client.mget([self._key(place_id) for place_id in place_ids]) if place_ids else []
        except redis.RedisError as exc:
            logger.error(f"Redis search error for '{trimmed}': {exc}")
            return []

        matches = []
        for place_id, value in zip(place_ids, values):
            if not value:
                continue
            entry = self._decode(place_id, value)
            if entry is None:
                continue
            name = (entry.get("name") or "").lower()
            address = (entry.get("formatted_address") or "").lower()
            if trimmed in name or trimmed in address or any(word in name for word in words):
                matches.append(entry)
        matches.sort(key=lambda entry: entry.get("cached_at") or "", reverse=True)
        return matches[:limit]

    async def count(self) -> int:
        return int(await self.client.zcard(self.index_key))

    async def get_stats(self) -> CacheStats:
        try:
            total = int(await self.client.zcard(self.index_key))
            expired = int(await self.client.zcount(self.index_key, "-inf", f"({self._now_score()}"))
        except redis.RedisError as exc:
            logger.error(f"Error getting cache stats: {exc}")
            return CacheStats()
        return CacheStats(total=total, expired=expired, fresh=total - expired)

    async def delete_expired(self) -> int:
        try:
            expired_ids = await self.client.zrangebyscore(self.index_key, "-inf", f"({self._now_score()}")
            if not expired_ids:
                return 0
            await self.client.delete(*[self._key(place_id) for place_id in expired_ids])
            await self.client.zrem(self.index_key, *expired_ids)
        except redis.RedisError as exc:
            logger.error(f"Error cleaning up expired entries: {exc}")
            return 0
        logger.info(f"Cleaned up {len(expired_ids)} expired entries")
        return len(expired_ids)


def create_place_cache(settings, session_factory: async_sessionmaker[AsyncSession]) -> PlaceCache:
    """Pick the cache backend configured by ``place_cache_backend``."""
    backend = settings.place_cache_backend.lower()
    if backend == "redis":
        return RedisPlaceCache.from_settings(settings)
    if backend == "database":
        return DatabasePlaceCache(session_factory, ttl_days=settings.place_cache_ttl_days)
    raise ConfigurationError(f"Unknown place cache backend: {settings.place_cache_backend}")
