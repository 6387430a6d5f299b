# src/jobagg/config.py
"""
Runtime settings for the aggregator.

Credentials and the tuned numbers (TTLs, thresholds, result floor) come from
environment variables, optionally via a .env file in the project root.
Wave layout, selector tiers and per-tier timeouts are plain defaults that
callers can override when building `Settings` by hand.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from dotenv import load_dotenv


def _default_waves() -> List[List[str]]:
    # fastest first; the last wave also gets the conditional specialists
    return [
        ["google-jobs"],
        ["active-jobs-db"],
        ["linkedin-jobs", "jobs-api"],
        ["jsearch"],
    ]


def _default_tier_timeouts() -> Dict[int, float]:
    return {1: 5.0, 2: 10.0, 3: 30.0}


@dataclass
class SelectorTiers:
    always: List[str] = field(default_factory=lambda: ["google-jobs", "active-jobs-db"])
    medium: List[str] = field(default_factory=lambda: ["linkedin-jobs", "jobs-api", "jsearch", "adzuna"])
    remote: List[str] = field(default_factory=lambda: ["remote-jobs"])
    freelance: List[str] = field(default_factory=lambda: ["freelancer", "upwork"])
    startup: List[str] = field(default_factory=lambda: ["startup-jobs"])
    linkedin: str = "linkedin-jobs"


@dataclass
class Settings:
    rapidapi_key: str = ""
    adzuna_app_id: str = ""
    adzuna_app_key: str = ""
    adzuna_country: str = "us"

    cache_path: str = ".jobagg-cache.json"
    requester_ttl: timedelta = timedelta(minutes=30)
    location_ttl: timedelta = timedelta(minutes=60)
    # absolute lifetime of a cache document; stale reads can see it until then
    retention: timedelta = timedelta(hours=24)

    min_results: int = 10
    fuzzy_threshold: float = 0.85
    page_delay: float = 1.0
    max_pages: int = 3

    fallback_source: str = "indeed"
    remote_source: str = "remote-jobs"
    freelance_source: str = "freelancer"
    waves: List[List[str]] = field(default_factory=_default_waves)
    selector: SelectorTiers = field(default_factory=SelectorTiers)

    tier_timeouts: Dict[int, float] = field(default_factory=_default_tier_timeouts)
    timeout_margin: float = 2.0
    http_timeout: float = 20.0

    def timeout_for(self, tier: int) -> float:
        return self.tier_timeouts.get(tier, max(self.tier_timeouts.values())) + self.timeout_margin

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """
        Build settings from the process environment.

        A .env file in the working directory is loaded first (without
        overriding variables that are already set).
        """
        if dotenv:
            load_dotenv()

        return cls(
            rapidapi_key=os.getenv("RAPIDAPI_KEY", ""),
            adzuna_app_id=os.getenv("ADZUNA_APP_ID", ""),
            adzuna_app_key=os.getenv("ADZUNA_APP_KEY", ""),
            adzuna_country=os.getenv("ADZUNA_COUNTRY", "us"),
            cache_path=os.getenv("JOBAGG_CACHE_PATH", ".jobagg-cache.json"),
            requester_ttl=timedelta(minutes=_env_float("JOBAGG_REQUESTER_TTL_MIN", 30)),
            location_ttl=timedelta(minutes=_env_float("JOBAGG_LOCATION_TTL_MIN", 60)),
            retention=timedelta(hours=_env_float("JOBAGG_RETENTION_HOURS", 24)),
            min_results=int(_env_float("JOBAGG_MIN_RESULTS", 10)),
            fuzzy_threshold=_env_float("JOBAGG_FUZZY_THRESHOLD", 0.85),
            page_delay=_env_float("JOBAGG_PAGE_DELAY", 1.0),
            fallback_source=os.getenv("JOBAGG_FALLBACK_SOURCE", "indeed"),
        )


def _env_float(name: str, default: float) -> float:
    raw: Optional[str] = os.getenv(name)
    if raw is None or raw.strip() == "":
        return float(default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None
