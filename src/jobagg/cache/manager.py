# src/jobagg/cache/manager.py
"""
Two-tier result cache consulted before any network query.

- Requester tier: the same requester, same query, short TTL (30 min).
- Location tier: any requester, same location and query, longer TTL (1 hour).

Writes always land in the requester tier. Every document also carries an
absolute expiry (24 h) used by the sweep, and until then it can still be
served as a stale answer when everything else failed.

A broken store never breaks a search: failures are logged and read as a miss.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from jobagg.cache.store import CacheStore
from jobagg.config import Settings
from jobagg.models import CacheEntry, QueryMetadata, QuerySpec, RankedRecord

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

REQUESTER_TIER = "requester"
LOCATION_TIER = "location"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CacheKey:
    requester_id: Optional[str]
    keywords: Sequence[str]
    location: Optional[str] = None
    remote: Optional[bool] = None
    job_types: Sequence[str] = field(default_factory=tuple)

    @classmethod
    def for_query(cls, requester_id: Optional[str], spec: QuerySpec) -> "CacheKey":
        return cls(requester_id, spec.keywords, spec.location, spec.remote, spec.job_types)

    @property
    def query(self) -> str:
        return " ".join(self.keywords)


@dataclass
class CacheHit:
    records: List[RankedRecord]
    tier: str
    age_minutes: float
    metadata: Dict[str, Any]
    created_at: datetime


def _parse_ts(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        ts = datetime.fromisoformat(str(value))
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _query_matches(entry: CacheEntry, keywords: Sequence[str]) -> bool:
    stored = (entry.get("query") or "").lower()
    words = [k.lower() for k in keywords if k]
    return bool(words) and all(w in stored for w in words)


def _location_matches(entry: CacheEntry, location: Optional[str]) -> bool:
    if not location:
        return True
    return location.lower() in (entry.get("location") or "").lower()


class CacheManager:
    def __init__(self, store: CacheStore, settings: Optional[Settings] = None, clock: Clock = utcnow):
        self.store = store
        self.settings = settings or Settings()
        self.clock = clock

    async def _entries(self) -> List[CacheEntry]:
        try:
            entries = await self.store.entries()
        except Exception as e:
            logger.error(f"Cache read error: {e}")
            return []
        return [e for e in entries if isinstance(e, dict)]

    def _hit(self, entry: CacheEntry, tier: str) -> CacheHit:
        created = _parse_ts(entry.get("created_at")) or self.clock()
        age = (self.clock() - created).total_seconds() / 60
        return CacheHit(
            records=list(entry.get("records") or []),
            tier=tier,
            age_minutes=round(age, 1),
            metadata=dict(entry.get("metadata") or {}),
            created_at=created,
        )

    def _newest(
        self,
        entries: List[CacheEntry],
        predicate: Callable[[CacheEntry], bool],
        max_age: Optional[timedelta],
    ) -> Optional[CacheEntry]:
        now = self.clock()
        best: Optional[CacheEntry] = None
        best_ts: Optional[datetime] = None
        for e in entries:
            try:
                created = _parse_ts(e.get("created_at"))
                if created is None or not predicate(e):
                    continue
            except (AttributeError, TypeError, ValueError) as err:
                logger.warning(f"Skipping malformed cache entry {e.get('id')!r}: {err}")
                continue
            if max_age is not None and now - created > max_age:
                continue
            if best_ts is None or created > best_ts:
                best, best_ts = e, created
        return best

    def _requester_predicate(self, key: CacheKey) -> Callable[[CacheEntry], bool]:
        def match(e: CacheEntry) -> bool:
            return (
                e.get("requester_id") == key.requester_id
                and _query_matches(e, key.keywords)
                and _location_matches(e, key.location)
                and (key.remote is None or e.get("remote") == key.remote)
            )
        return match

    @staticmethod
    def _same_key(key: CacheKey) -> Callable[[CacheEntry], bool]:
        """Entries a save of `key` supersedes: exact requester, query and filters."""
        job_types = sorted(key.job_types)

        def match(e: CacheEntry) -> bool:
            try:
                return (
                    e.get("requester_id") == key.requester_id
                    and e.get("query") == key.query
                    and e.get("location") == key.location
                    and e.get("remote") == key.remote
                    and sorted(e.get("job_types") or []) == job_types
                )
            except (AttributeError, TypeError):
                return False
        return match

    @staticmethod
    def _location_predicate(location: str, keywords: Sequence[str]) -> Callable[[CacheEntry], bool]:
        def match(e: CacheEntry) -> bool:
            return bool(e.get("location")) and _location_matches(e, location) and _query_matches(e, keywords)
        return match

    # ---- Reads ----------------------------------------------------------------

    def _lookup(
        self,
        entries: List[CacheEntry],
        predicate: Callable[[CacheEntry], bool],
        max_age: Optional[timedelta],
        tier: str,
    ) -> Optional[CacheHit]:
        """Newest matching entry as a hit; anything unreadable is a miss."""
        try:
            entry = self._newest(entries, predicate, max_age)
            return self._hit(entry, tier) if entry is not None else None
        except Exception as e:
            logger.error(f"Cache lookup error ({tier} tier): {e}")
            return None

    async def get_requester(self, key: CacheKey) -> Optional[CacheHit]:
        if not key.requester_id:
            return None
        hit = self._lookup(
            await self._entries(),
            self._requester_predicate(key),
            self.settings.requester_ttl,
            REQUESTER_TIER,
        )
        if hit is not None:
            logger.info(f"Requester-tier cache hit for {key.requester_id}")
        return hit

    async def get_location(self, location: Optional[str], keywords: Sequence[str]) -> Optional[CacheHit]:
        if not location:
            return None
        hit = self._lookup(
            await self._entries(),
            self._location_predicate(location, keywords),
            self.settings.location_ttl,
            LOCATION_TIER,
        )
        if hit is not None:
            logger.info(f"Location-tier cache hit for {location!r}")
        return hit

    async def get_with_fallback(self, key: CacheKey) -> Optional[CacheHit]:
        """Requester tier first, then the shared location tier."""
        hit = await self.get_requester(key)
        if hit is None and key.location:
            hit = await self.get_location(key.location, key.keywords)
        return hit

    async def get_stale(self, key: CacheKey) -> Optional[CacheHit]:
        """Newest matching entry regardless of TTL or expiry."""
        entries = await self._entries()
        hit: Optional[CacheHit] = None
        if key.requester_id:
            hit = self._lookup(entries, self._requester_predicate(key), None, REQUESTER_TIER)
        if hit is None and key.location:
            hit = self._lookup(entries, self._location_predicate(key.location, key.keywords), None, LOCATION_TIER)
        return hit

    # ---- Writes ---------------------------------------------------------------

    async def save(
        self,
        key: CacheKey,
        records: List[RankedRecord],
        metadata: Optional[QueryMetadata] = None,
    ) -> Optional[str]:
        """Store a requester-tier entry; returns its id, or None if nothing was written."""
        if not key.requester_id:
            logger.warning("Cannot save to cache without a requester id")
            return None

        now = self.clock()
        entry: CacheEntry = {
            "id": uuid.uuid4().hex,
            "requester_id": key.requester_id,
            "query": key.query,
            "location": key.location,
            "remote": key.remote,
            "job_types": list(key.job_types),
            "tier": REQUESTER_TIER,
            "records": list(records),
            "metadata": dict(metadata or {}),
            "created_at": now.isoformat(),
            "expires_at": (now + self.settings.retention).isoformat(),
        }
        try:
            superseded = await self.store.delete_where(self._same_key(key))
            await self.store.insert(entry)
        except Exception as e:
            logger.error(f"Cache save error: {e}")
            return None
        if superseded:
            logger.debug(f"Replaced {superseded} older entries for {key.requester_id}")
        logger.info(f"Saved {len(records)} records to requester-tier cache")
        return entry["id"]

    async def clear_expired(self) -> int:
        now = self.clock()

        def expired(e: CacheEntry) -> bool:
            ts = _parse_ts(e.get("expires_at"))
            return ts is not None and ts < now

        try:
            count = await self.store.delete_where(expired)
        except Exception as e:
            logger.error(f"Clear expired error: {e}")
            return 0
        logger.info(f"Cleared {count} expired cache entries")
        return count

    async def clear_requester(self, requester_id: str) -> int:
        try:
            count = await self.store.delete_where(lambda e: e.get("requester_id") == requester_id)
        except Exception as e:
            logger.error(f"Clear requester cache error: {e}")
            return 0
        logger.info(f"Cleared {count} cache entries for {requester_id}")
        return count

    async def stats(self, requester_id: str) -> Dict[str, Any]:
        now = self.clock()
        live = [
            e for e in await self._entries()
            if e.get("requester_id") == requester_id
            and (_parse_ts(e.get("expires_at")) or now) > now
        ]
        created = [ts for ts in (_parse_ts(e.get("created_at")) for e in live) if ts]
        return {
            "total_entries": len(live),
            "total_records": sum(len(e.get("records") or []) for e in live),
            "total_cost": sum((e.get("metadata") or {}).get("total_cost", 0.0) for e in live),
            "oldest_entry": min(created).isoformat() if created else None,
        }
