# src/jobagg/sources/registry.py
"""
Catalog of query-able job sources and the adapters that talk to them.

The registry only holds descriptors and adapter handles; it knows nothing
about how any one source is queried or parsed.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

import httpx

from jobagg.clients.adzuna import AdzunaAdapter
from jobagg.clients.base import SourceAdapter
from jobagg.clients.rapidapi import RapidAPIAdapter
from jobagg.config import Settings
from jobagg.errors import UnknownSourceError
from jobagg.models import SourceDescriptor

logger = logging.getLogger(__name__)


DEFAULT_SOURCES: List[SourceDescriptor] = [
    SourceDescriptor("google-jobs", "Google for Jobs", "https://google-jobs-search.p.rapidapi.com/search", 1, 0.001, 50),
    SourceDescriptor("active-jobs-db", "Active Jobs DB", "https://active-jobs-db.p.rapidapi.com/v1/jobs/search", 1, 0.001, 100),
    SourceDescriptor("linkedin-jobs", "LinkedIn Job Search", "https://linkedin-job-search-api.p.rapidapi.com/jobs", 2, 0.001, 100),
    SourceDescriptor("jobs-api", "Jobs API", "https://jobs-api14.p.rapidapi.com/list", 2, 0.001, 50),
    SourceDescriptor("jsearch", "JSearch", "https://jsearch.p.rapidapi.com/search", 2, 0.001, 50),
    SourceDescriptor("indeed", "Indeed", "https://indeed12.p.rapidapi.com/jobs/search", 3, 0.001, 50),
    SourceDescriptor("remote-jobs", "Remote Jobs API", "https://remote-jobs-api.p.rapidapi.com/jobs", 3, 0.001, 50),
    SourceDescriptor("freelancer", "Freelancer API", "https://freelancer-api.p.rapidapi.com/jobs", 3, 0.001, 50),
    SourceDescriptor("upwork", "Upwork Jobs", "https://upwork-jobs-api.p.rapidapi.com/jobs", 3, 0.001, 100),
    SourceDescriptor("startup-jobs", "Startup Jobs", "https://startup-jobs-api.p.rapidapi.com/jobs", 3, 0.001, 100),
    SourceDescriptor("adzuna", "Adzuna", "https://api.adzuna.com/v1/api/jobs", 2, 0.0, 50),
]

_JOB_TYPE_SOURCES: Dict[str, List[str]] = {
    "remote": ["remote-jobs", "linkedin-jobs", "active-jobs-db", "jsearch"],
    "freelance": ["upwork", "freelancer", "remote-jobs"],
    "contract": ["upwork", "freelancer", "active-jobs-db"],
    "full-time": ["active-jobs-db", "jsearch", "indeed", "linkedin-jobs"],
    "part-time": ["indeed", "jsearch", "active-jobs-db"],
    "startup": ["startup-jobs", "linkedin-jobs", "active-jobs-db"],
    "internship": ["active-jobs-db", "linkedin-jobs", "indeed"],
}
_CORE_SOURCES = ["active-jobs-db", "jsearch", "indeed"]


class SourceRegistry:
    def __init__(
        self,
        descriptors: Iterable[SourceDescriptor] = (),
        adapters: Optional[Dict[str, SourceAdapter]] = None,
    ):
        self._descriptors: Dict[str, SourceDescriptor] = {}
        self._adapters: Dict[str, SourceAdapter] = {}
        for d in descriptors:
            self._descriptors[d.id] = d
        for sid, adapter in (adapters or {}).items():
            self._adapters[sid] = adapter

    def register(self, descriptor: SourceDescriptor, adapter: SourceAdapter) -> None:
        self._descriptors[descriptor.id] = descriptor
        self._adapters[descriptor.id] = adapter

    def __contains__(self, source_id: str) -> bool:
        return source_id in self._descriptors

    def get(self, source_id: str) -> SourceDescriptor:
        try:
            return self._descriptors[source_id]
        except KeyError:
            raise UnknownSourceError(source_id) from None

    def adapter(self, source_id: str) -> SourceAdapter:
        try:
            return self._adapters[source_id]
        except KeyError:
            raise UnknownSourceError(source_id) from None

    def is_enabled(self, source_id: str) -> bool:
        d = self._descriptors.get(source_id)
        return bool(d and d.enabled and source_id in self._adapters)

    def enable(self, source_id: str) -> None:
        self.get(source_id).enabled = True

    def disable(self, source_id: str) -> None:
        self.get(source_id).enabled = False
        logger.info(f"Source {source_id} disabled")

    def ids(self) -> List[str]:
        return list(self._descriptors)

    def enabled_ids(self) -> List[str]:
        return [sid for sid in self._descriptors if self.is_enabled(sid)]

    def by_tier(self, tier: int) -> List[SourceDescriptor]:
        return [d for d in self._descriptors.values() if d.tier == tier]

    def estimate_cost(self, source_ids: Iterable[str]) -> float:
        return sum(self._descriptors[s].cost for s in source_ids if s in self._descriptors)

    def estimate_count(self, source_ids: Iterable[str]) -> int:
        return sum(self._descriptors[s].max_results for s in source_ids if s in self._descriptors)


def recommend_for_job_type(job_type: str) -> List[str]:
    """Sources that tend to carry a given kind of job."""
    return list(_JOB_TYPE_SOURCES.get(job_type.lower(), _CORE_SOURCES))


def build_default_registry(
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> SourceRegistry:
    """
    Wire the default catalog to real adapters.

    RapidAPI sources are disabled without RAPIDAPI_KEY, Adzuna without its
    app id/key.
    """
    registry = SourceRegistry()
    for d in DEFAULT_SOURCES:
        d = replace(d)  # registry owns its copy of the enabled flag
        if d.id == "adzuna":
            d.enabled = bool(settings.adzuna_app_id and settings.adzuna_app_key)
            adapter: SourceAdapter = AdzunaAdapter(
                settings.adzuna_app_id,
                settings.adzuna_app_key,
                country=settings.adzuna_country,
                client=client,
            )
        else:
            d.enabled = bool(settings.rapidapi_key)
            adapter = RapidAPIAdapter(d, settings.rapidapi_key, client=client)
        registry.register(d, adapter)

    if not settings.rapidapi_key:
        logger.warning("No RapidAPI key found. Set RAPIDAPI_KEY to enable RapidAPI sources.")
    return registry
