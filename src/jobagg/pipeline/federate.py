# src/jobagg/pipeline/federate.py
"""
Send one query to many sources at once and collect whatever comes back.

A source that errors, times out or is switched off contributes zero records
and a metadata entry; it never takes its siblings down with it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Dict, List, Optional, Sequence, Tuple

from jobagg.config import Settings
from jobagg.errors import SourceTimeoutError
from jobagg.models import QueryMetadata, QuerySpec, RawRecord, SourceResult
from jobagg.pipeline.normalize import clean_records
from jobagg.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class FederatedClient:
    def __init__(self, registry: SourceRegistry, settings: Optional[Settings] = None):
        self.registry = registry
        self.settings = settings or Settings()

    async def query_source(self, source_id: str, spec: QuerySpec) -> Tuple[List[RawRecord], int]:
        """
        Query one source under its latency-tier timeout.

        Returns (records, duration_ms). Raises for unknown sources, timeouts
        and adapter errors; a disabled source returns ([], 0) untouched.
        """
        descriptor = self.registry.get(source_id)
        if not self.registry.is_enabled(source_id):
            logger.info(f"Source {source_id} is disabled")
            return [], 0

        adapter = self.registry.adapter(source_id)
        timeout = self.settings.timeout_for(descriptor.tier)
        start = time.monotonic()
        logger.info(f"Querying {descriptor.name}...")
        try:
            raw = await asyncio.wait_for(adapter.fetch(spec), timeout=timeout)
        except asyncio.TimeoutError:
            raise SourceTimeoutError(source_id, timeout) from None

        records = clean_records(raw or [])
        for r in records:
            r.setdefault("source", source_id)
        duration = _elapsed_ms(start)
        logger.info(f"{descriptor.name}: {len(records)} jobs in {duration}ms")
        return records, duration

    async def query_many(
        self,
        source_ids: Sequence[str],
        spec: QuerySpec,
    ) -> Tuple[List[RawRecord], QueryMetadata]:
        """
        Query every source concurrently; settle all, abort none.
        """
        start = time.monotonic()
        source_ids = list(dict.fromkeys(source_ids))
        logger.info(f"Querying {len(source_ids)} sources in parallel...")

        results = await asyncio.gather(
            *(self.query_source(sid, spec) for sid in source_ids),
            return_exceptions=True,
        )

        records: List[RawRecord] = []
        meta: Dict[str, SourceResult] = {}
        total_cost = 0.0

        for sid, result in zip(source_ids, results):
            known = sid in self.registry
            dispatched = known and self.registry.is_enabled(sid)
            cost = self.registry.get(sid).cost if dispatched else 0.0
            total_cost += cost

            if not dispatched and not isinstance(result, BaseException):
                meta[sid] = {"success": False, "count": 0, "cost": 0.0, "error": "disabled"}
            elif isinstance(result, BaseException):
                logger.error(f"Error querying {sid}: {result}")
                meta[sid] = {"success": False, "count": 0, "cost": cost, "error": str(result) or type(result).__name__}
            else:
                found, duration = result
                records.extend(found)
                meta[sid] = {"success": True, "count": len(found), "cost": cost, "duration_ms": duration}

        metadata: QueryMetadata = {
            "sources": meta,
            "total_records": len(records),
            "duration_ms": _elapsed_ms(start),
            "total_cost": round(total_cost, 6),
        }
        logger.info(
            f"Total: {len(records)} jobs from {len(source_ids)} sources in {metadata['duration_ms']}ms "
            f"(cost ${metadata['total_cost']:.4f})"
        )
        return records, metadata

    async def query_paginated(
        self,
        source_id: str,
        spec: QuerySpec,
        max_pages: Optional[int] = None,
    ) -> Tuple[List[RawRecord], QueryMetadata]:
        """
        Walk pages of one source in order, starting at `spec.page`.

        Stops on the first empty page. An error mid-way stops paging and keeps
        what was already fetched.
        """
        max_pages = max_pages or self.settings.max_pages
        start = time.monotonic()
        records: List[RawRecord] = []
        pages = 0
        error: Optional[str] = None
        known = source_id in self.registry
        dispatched = known and self.registry.is_enabled(source_id)

        for offset in range(max_pages):
            if offset:
                # respect the source's rate limit between pages
                await asyncio.sleep(self.settings.page_delay)
            page_spec = replace(spec, page=spec.page + offset)
            try:
                found, _ = await self.query_source(source_id, page_spec)
            except Exception as e:
                logger.error(f"Error on page {page_spec.page} of {source_id}: {e}")
                error = str(e) or type(e).__name__
                if dispatched:
                    pages += 1
                break
            if not dispatched:
                break
            pages += 1
            records.extend(found)
            if not found:
                break

        cost = self.registry.get(source_id).cost * pages if known else 0.0
        result: SourceResult = {
            "success": dispatched and (error is None or pages > 1),
            "count": len(records),
            "cost": cost,
            "duration_ms": _elapsed_ms(start),
            "pages": pages,
        }
        if error is not None:
            result["error"] = error
        elif not dispatched:
            result["error"] = "disabled" if known else "unknown source"

        metadata: QueryMetadata = {
            "sources": {source_id: result},
            "total_records": len(records),
            "duration_ms": result["duration_ms"],
            "total_cost": round(cost, 6),
        }
        return records, metadata
