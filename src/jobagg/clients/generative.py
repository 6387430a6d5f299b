# src/jobagg/clients/generative.py
"""
Last-resort generative job search.

Reserved slot in the fallback chain for an expensive LLM-backed search
(~$0.10 per call). Not wired to any provider yet: `fetch` logs the gap and
returns no records so the chain moves on to the stale cache.
"""

from __future__ import annotations

import logging
from typing import List

from jobagg.models import QuerySpec, RawRecord

logger = logging.getLogger(__name__)


class GenerativeSource:
    source_id = "generative"
    cost = 0.10

    async def fetch(self, spec: QuerySpec) -> List[RawRecord]:
        logger.warning(f"Generative fallback not implemented; skipping for query {spec.text!r}")
        return []
