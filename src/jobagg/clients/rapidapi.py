# src/jobagg/clients/rapidapi.py
"""
Adapter for the job APIs reachable through RapidAPI with a single key.

Each source wants slightly different query params; `build_params` holds that
mapping. The response goes through `normalize_payload` for the same source id.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from jobagg.clients.base import get_json
from jobagg.models import QuerySpec, RawRecord, SourceDescriptor
from jobagg.pipeline.normalize import normalize_payload


def build_params(source_id: str, spec: QuerySpec) -> Dict[str, Any]:
    query = spec.text

    if source_id == "active-jobs-db":
        return {"query": query, "location": spec.location, "remote": spec.remote,
                "limit": spec.limit or 100, "page": spec.page}
    if source_id in ("jsearch", "google-jobs"):
        return {"query": f"{query} in {spec.location}" if spec.location else query,
                "remote_jobs_only": spec.remote, "num_pages": 1, "page": spec.page}
    if source_id == "indeed":
        return {"query": query, "location": spec.location, "page": spec.page}
    if source_id == "linkedin-jobs":
        return {"keywords": query, "location": spec.location, "remote": spec.remote,
                "limit": spec.limit or 100, "page": spec.page}
    if source_id in ("remote-jobs", "upwork", "freelancer"):
        return {"query": query, "limit": spec.limit or 50, "page": spec.page}
    if source_id in ("startup-jobs", "jobs-api"):
        return {"query": query, "location": spec.location, "limit": spec.limit or 100, "page": spec.page}
    return {"query": query, "location": spec.location}


class RapidAPIAdapter:
    def __init__(
        self,
        descriptor: SourceDescriptor,
        api_key: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        attempts: int = 3,
    ):
        self.descriptor = descriptor
        self.api_key = api_key
        self.client = client
        self.attempts = attempts

    @property
    def source_id(self) -> str:
        return self.descriptor.id

    def headers(self) -> Dict[str, str]:
        return {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": urlparse(self.descriptor.endpoint).hostname or "",
        }

    async def fetch(self, spec: QuerySpec) -> List[RawRecord]:
        data = await get_json(
            self.descriptor.endpoint,
            build_params(self.source_id, spec),
            client=self.client,
            headers=self.headers(),
            attempts=self.attempts,
        )
        return normalize_payload(self.source_id, data)
