# src/jobagg/search.py
"""
Top-level job search with a layered fallback chain.

search() tries, in order, and stops at the first step that produces enough:
1. cache (requester tier, then location tier)
2. full federation across the selected sources
3. the single reliable slow fallback source
4. the generative last resort (currently a stub)
5. stale cache, ignoring TTL
6. whatever step 2 did find, if anything
7. a structured "no jobs" error result

It always returns a SearchResult; it never raises.
"""

from __future__ import annotations

import logging
import time
from typing import List, Optional

from jobagg.cache.manager import CacheHit, CacheKey, CacheManager
from jobagg.clients.base import SourceAdapter
from jobagg.clients.generative import GenerativeSource
from jobagg.config import Settings
from jobagg.models import (
    ProgressEvent,
    QueryMetadata,
    QuerySpec,
    RankedRecord,
    RawRecord,
    SearchPreferences,
    SearchResult,
    UserProfile,
    WeightProfile,
)
from jobagg.pipeline.dedupe import dedupe
from jobagg.pipeline.federate import FederatedClient
from jobagg.pipeline.progressive import ProgressCallback, ProgressiveAggregator
from jobagg.pipeline.rank import rank
from jobagg.pipeline.select import select_sources
from jobagg.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)

CACHE_USE = "use"
CACHE_BYPASS = "bypass"
CACHE_REFRESH = "refresh"

STALE_WARNING = "All job sources failed. Showing cached results."
PARTIAL_WARNING = "Only a few job sources answered. Results may be incomplete."
FAILURE_MESSAGE = "Unable to fetch jobs. Please try again later."


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class JobSearch:
    def __init__(
        self,
        registry: SourceRegistry,
        cache: CacheManager,
        settings: Optional[Settings] = None,
        client: Optional[FederatedClient] = None,
        last_resort: Optional[SourceAdapter] = None,
    ):
        self.registry = registry
        self.cache = cache
        self.settings = settings or Settings()
        self.client = client or FederatedClient(registry, self.settings)
        self.progressive = ProgressiveAggregator(self.client, self.settings)
        self.last_resort = last_resort or GenerativeSource()

    def _finish(self, records: List[RawRecord], profile: Optional[WeightProfile]) -> List[RankedRecord]:
        return rank(dedupe(records, self.settings.fuzzy_threshold), profile)

    def _from_cache(self, hit: CacheHit, start: float, source: str = "cache") -> SearchResult:
        return SearchResult(
            records=hit.records,
            source=source,
            cached=True,
            duration_ms=_elapsed_ms(start),
            metadata={
                "cache_tier": hit.tier,
                "cache_age_minutes": hit.age_minutes,
                "sources": list((hit.metadata.get("sources") or {}).keys()),
                "unique_records": len(hit.records),
            },
        )

    async def _save(self, key: CacheKey, records: List[RankedRecord], meta: QueryMetadata) -> None:
        meta = {**meta, "unique_records": len(records)}
        await self.cache.save(key, records, meta)  # type: ignore[arg-type]

    async def search(
        self,
        requester_id: Optional[str],
        query: QuerySpec,
        profile: Optional[WeightProfile] = None,
        cache_option: str = CACHE_USE,
        user_profile: Optional[UserProfile] = None,
        preferences: Optional[SearchPreferences] = None,
    ) -> SearchResult:
        start = time.monotonic()
        key = CacheKey.for_query(requester_id, query)
        if profile is None and user_profile is not None:
            profile = user_profile.weight_profile(query.location, query.remote)
        logger.info(f"Starting search for {query.text!r} (location={query.location!r}, remote={query.remote})")

        # 1. cache
        if cache_option == CACHE_REFRESH and requester_id:
            await self.cache.clear_requester(requester_id)
        if cache_option == CACHE_USE:
            hit = await self.cache.get_with_fallback(key)
            if hit and hit.records:
                logger.info(f"Cache hit ({hit.tier} tier, {hit.age_minutes} min old)")
                return self._from_cache(hit, start)

        # 2. full federation
        partial: List[RawRecord] = []
        primary_meta: QueryMetadata = {}
        try:
            sources = select_sources(self.registry, user_profile, preferences, self.settings.selector)
            logger.info(f"Estimated cost: ${self.registry.estimate_cost(sources):.4f}")
            partial, primary_meta = await self.client.query_many(sources, query)
            ranked = self._finish(partial, profile)
            if len(ranked) >= self.settings.min_results:
                await self._save(key, ranked, primary_meta)
                return SearchResult(
                    records=ranked,
                    source="primary",
                    cost=primary_meta.get("total_cost", 0.0),
                    duration_ms=_elapsed_ms(start),
                    metadata={
                        "sources": list(primary_meta.get("sources", {})),
                        "source_results": primary_meta.get("sources", {}),
                        "total_records": len(partial),
                        "unique_records": len(ranked),
                    },
                )
            logger.warning(f"Only got {len(ranked)} jobs from primary sources, trying fallback...")
        except Exception as e:
            logger.error(f"Primary federation error: {e}", exc_info=True)

        cost = primary_meta.get("total_cost", 0.0)

        # 3. single reliable fallback source
        fallback = self.settings.fallback_source
        try:
            found, meta = await self.client.query_many([fallback], query)
            cost += meta.get("total_cost", 0.0)
            if found:
                combined = partial + found
                ranked = self._finish(combined, profile)
                merged: QueryMetadata = {
                    "sources": {**primary_meta.get("sources", {}), **meta.get("sources", {})},
                    "total_records": len(combined),
                    "duration_ms": _elapsed_ms(start),
                    "total_cost": cost,
                }
                await self._save(key, ranked, merged)
                logger.info(f"Fallback {fallback}: {len(found)} jobs")
                return SearchResult(
                    records=ranked,
                    source="fallback",
                    fallback_used=True,
                    cost=cost,
                    duration_ms=_elapsed_ms(start),
                    metadata={
                        "sources": list(merged["sources"]),
                        "source_results": merged["sources"],
                        "total_records": len(combined),
                        "unique_records": len(ranked),
                    },
                )
        except Exception as e:
            logger.error(f"Fallback {fallback} error: {e}", exc_info=True)

        # 4. generative last resort
        try:
            generated = await self.last_resort.fetch(query)
            if generated:
                ranked = self._finish(generated, profile)
                cost += getattr(self.last_resort, "cost", 0.0)
                return SearchResult(
                    records=ranked,
                    source="generative",
                    fallback_used=True,
                    cost=cost,
                    duration_ms=_elapsed_ms(start),
                    metadata={"sources": ["generative"], "unique_records": len(ranked)},
                )
        except Exception as e:
            logger.error(f"Generative fallback error: {e}", exc_info=True)

        # 5. stale cache
        stale = await self.cache.get_stale(key)
        if stale and stale.records:
            logger.warning(f"Returning stale cache: {len(stale.records)} jobs")
            result = self._from_cache(stale, start, source="stale")
            result.warning = STALE_WARNING
            result.cost = cost
            return result

        # 6. partial primary results
        if partial:
            ranked = self._finish(partial, profile)
            if ranked:
                return SearchResult(
                    records=ranked,
                    source="partial",
                    cost=cost,
                    duration_ms=_elapsed_ms(start),
                    warning=PARTIAL_WARNING,
                    metadata={
                        "sources": list(primary_meta.get("sources", {})),
                        "total_records": len(partial),
                        "unique_records": len(ranked),
                    },
                )

        # 7. nothing at all
        logger.error("All fallbacks failed")
        return SearchResult(
            records=[],
            source="error",
            cost=cost,
            duration_ms=_elapsed_ms(start),
            error=FAILURE_MESSAGE,
        )

    async def search_progressive(
        self,
        requester_id: Optional[str],
        query: QuerySpec,
        on_progress: ProgressCallback,
        profile: Optional[WeightProfile] = None,
        cache_option: str = CACHE_USE,
        preferences: Optional[SearchPreferences] = None,
    ) -> None:
        """
        Progressive search: `on_progress` gets one event per wave and the
        last call always has `is_complete=True`.
        """
        start = time.monotonic()
        key = CacheKey.for_query(requester_id, query)

        if cache_option == CACHE_REFRESH and requester_id:
            await self.cache.clear_requester(requester_id)
        if cache_option == CACHE_USE:
            hit = await self.cache.get_with_fallback(key)
            if hit and hit.records:
                _emit(on_progress, {
                    "records": hit.records,
                    "wave": 1,
                    "total_count": len(hit.records),
                    "sources": ["cache"],
                    "duration_ms": _elapsed_ms(start),
                    "is_complete": True,
                    "metadata": hit.metadata,  # type: ignore[typeddict-item]
                })
                return

        final: List[RankedRecord] = []
        meta: QueryMetadata = {}
        wave = 0
        try:
            async for event in self.progressive.stream(query, profile, preferences):
                final, meta, wave = event["records"], event["metadata"], event["wave"]
                _emit(on_progress, event)
        except Exception as e:
            logger.error(f"Progressive search error: {e}", exc_info=True)
            result = await self.search(requester_id, query, profile, CACHE_BYPASS, preferences=preferences)
            # numbered after whatever waves already went out
            _emit(on_progress, {
                "records": result.records,
                "wave": wave + 1,
                "total_count": len(result.records),
                "sources": result.metadata.get("sources", []),
                "duration_ms": result.duration_ms,
                "is_complete": True,
                "metadata": {
                    "sources": result.metadata.get("source_results", {}),
                    "total_records": result.metadata.get("total_records", len(result.records)),
                    "unique_records": len(result.records),
                    "duration_ms": result.duration_ms,
                    "total_cost": result.cost,
                },
            })
            return

        if final:
            await self._save(key, final, meta)


def _emit(on_progress: ProgressCallback, event: ProgressEvent) -> None:
    try:
        on_progress(event)
    except Exception as e:
        logger.error(f"Progress callback failed on wave {event['wave']}: {e}")
