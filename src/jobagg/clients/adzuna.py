# src/jobagg/clients/adzuna.py

"""
Adapter for Adzuna's Jobs API.

Keeps every Adzuna HTTP detail (URL shape, credentials, paging) here and
hands back RawRecord dicts via the Adzuna mapper, so the federated client
treats it like any other source.
"""

from __future__ import annotations

from typing import Dict, List, Optional

import httpx

from jobagg.clients.base import get_json
from jobagg.models import QuerySpec, RawRecord
from jobagg.pipeline.normalize import normalize_payload


def _base_url(country: str, page: int) -> str:
    """
    Build the Adzuna search URL for a country + page number.
    Adzuna paginates with integer pages: /search/1, /search/2, ...
    """
    return f"https://api.adzuna.com/v1/api/jobs/{country}/search/{page}"


def search_params(
    app_id: str,
    app_key: str,
    spec: QuerySpec,
    *,
    results_per_page: int = 50,
    category: Optional[str] = None,
) -> Dict[str, str]:
    """Query params Adzuna expects for one QuerySpec."""
    params: Dict[str, str] = {
        "app_id": app_id,
        "app_key": app_key,
        "what": spec.text,
        "results_per_page": str(spec.limit or results_per_page),
    }
    if spec.location:
        params["where"] = spec.location
    if category:
        params["category"] = category
    if "full-time" in spec.job_types or "full_time" in spec.job_types:
        params["full_time"] = "1"
    if "contract" in spec.job_types:
        params["contract"] = "1"
    return params


class AdzunaAdapter:
    """One page of Adzuna results per `fetch` call (page taken from the QuerySpec)."""

    source_id = "adzuna"

    def __init__(
        self,
        app_id: str,
        app_key: str,
        *,
        country: str = "us",
        client: Optional[httpx.AsyncClient] = None,
        category: Optional[str] = None,
        attempts: int = 3,
    ):
        self.app_id = app_id
        self.app_key = app_key
        self.country = country
        self.client = client
        self.category = category
        self.attempts = attempts

    async def fetch(self, spec: QuerySpec) -> List[RawRecord]:
        url = _base_url(country=self.country, page=spec.page)
        params = search_params(self.app_id, self.app_key, spec, category=self.category)
        data = await get_json(url, params, client=self.client, attempts=self.attempts)
        return normalize_payload(self.source_id, data)
