# src/jobagg/pipeline/progressive.py
"""
Show results as sources answer instead of waiting for the slowest one.

Sources are queried in waves, fastest first. After every wave the whole
accumulated set is deduplicated and re-ranked and a progress event goes out.
If the waves together still find too few postings, one extra wave asks a
slow, high-coverage source.
"""

from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Callable, Dict, List, Optional

from jobagg.config import Settings
from jobagg.models import (
    ProgressEvent,
    QueryMetadata,
    QuerySpec,
    RankedRecord,
    RawRecord,
    SearchPreferences,
    SourceResult,
    WeightProfile,
)
from jobagg.pipeline.dedupe import dedupe
from jobagg.pipeline.federate import FederatedClient
from jobagg.pipeline.rank import rank

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class ProgressiveAggregator:
    def __init__(self, client: FederatedClient, settings: Optional[Settings] = None):
        self.client = client
        self.settings = settings or client.settings

    def plan(self, spec: QuerySpec, preferences: Optional[SearchPreferences] = None) -> List[List[str]]:
        """Wave layout for one search; specialists ride in the last (slow) wave."""
        waves = [list(w) for w in self.settings.waves if w]
        extra: List[str] = []
        if spec.remote or (preferences and preferences.remote):
            extra.append(self.settings.remote_source)
        if preferences and preferences.include_freelance:
            extra.append(self.settings.freelance_source)
        if extra:
            if waves:
                waves[-1].extend(s for s in extra if s not in waves[-1])
            else:
                waves.append(extra)
        return waves

    def _finish(self, records: List[RawRecord], profile: Optional[WeightProfile]) -> List[RankedRecord]:
        return rank(dedupe(records, self.settings.fuzzy_threshold), profile)

    async def stream(
        self,
        spec: QuerySpec,
        profile: Optional[WeightProfile] = None,
        preferences: Optional[SearchPreferences] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Yield one ProgressEvent per wave. The last event, and only that one,
        has `is_complete=True`. Stop iterating to stop further waves.
        """
        start = time.monotonic()
        waves = self.plan(spec, preferences)
        accumulated: List[RawRecord] = []
        queried: List[str] = []
        ranked: List[RankedRecord] = []
        # per-source outcome and spend across every wave so far
        source_results: Dict[str, SourceResult] = {}
        total_cost = 0.0

        def absorb(meta: QueryMetadata) -> None:
            nonlocal total_cost
            source_results.update(meta.get("sources", {}))
            total_cost += meta.get("total_cost", 0.0)

        def event(wave: int, complete: bool) -> ProgressEvent:
            duration = int((time.monotonic() - start) * 1000)
            return {
                "records": ranked,
                "wave": wave,
                "total_count": len(ranked),
                "sources": list(queried),
                "duration_ms": duration,
                "is_complete": complete,
                "metadata": {
                    "sources": dict(source_results),
                    "total_records": len(accumulated),
                    "unique_records": len(ranked),
                    "duration_ms": duration,
                    "total_cost": round(total_cost, 6),
                },
            }

        fallback = self.settings.fallback_source
        logger.info(f"Starting progressive search over {len(waves)} waves")

        for number, sources in enumerate(waves, start=1):
            try:
                found, meta = await self.client.query_many(sources, spec)
                accumulated.extend(found)
                absorb(meta)
            except Exception as e:
                logger.error(f"Wave {number} error: {e}", exc_info=True)
            queried.extend(s for s in sources if s not in queried)
            ranked = self._finish(accumulated, profile)

            last = number == len(waves)
            needs_fallback = last and len(ranked) < self.settings.min_results and fallback not in queried
            logger.info(f"Wave {number} complete: {len(ranked)} jobs")
            yield event(number, complete=last and not needs_fallback)

        if len(ranked) < self.settings.min_results and fallback not in queried:
            number = len(waves) + 1
            logger.warning(f"Only {len(ranked)} jobs after {len(waves)} waves, trying {fallback}...")
            try:
                found, meta = await self.client.query_many([fallback], spec)
                accumulated.extend(found)
                absorb(meta)
                logger.info(f"{fallback} fallback added {len(found)} jobs")
            except Exception as e:
                logger.error(f"{fallback} fallback error: {e}", exc_info=True)
            queried.append(fallback)
            ranked = self._finish(accumulated, profile)
            yield event(number, complete=True)

    async def run(
        self,
        spec: QuerySpec,
        on_progress: ProgressCallback,
        profile: Optional[WeightProfile] = None,
        preferences: Optional[SearchPreferences] = None,
    ) -> List[RankedRecord]:
        """
        Drive `stream`, handing each event to `on_progress`. A callback that
        raises is logged and ignored. Returns the final records.
        """
        final: List[RankedRecord] = []
        async for evt in self.stream(spec, profile, preferences):
            final = evt["records"]
            try:
                on_progress(evt)
            except Exception as e:
                logger.error(f"Progress callback failed on wave {evt['wave']}: {e}")
        return final
