# src/jobagg/models.py
"""
Typed shapes for everything that moves through the aggregation pipeline.

Records (raw, deduplicated, ranked, cached) are plain dicts with `TypedDict`
hints, so they can go straight into a JSON cache document. Values the caller
builds once per search (query, weight profile, preferences) are dataclasses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, TypedDict


# ---- Sources ------------------------------------------------------------------

@dataclass
class SourceDescriptor:
    """
    Catalog entry for one upstream job source.

    Everything except `enabled` is fixed at process start; `enabled` is the
    operational kill switch.
    """

    id: str
    name: str
    endpoint: str
    # 1 = fast (sub-second), 2 = medium, 3 = slow
    tier: int
    # Dollars per call
    cost: float
    max_results: int
    enabled: bool = True


@dataclass(frozen=True)
class QuerySpec:
    """
    One search request, passed unchanged to every source adapter.
    Adapters translate it into their own query parameters.
    """

    keywords: Tuple[str, ...]
    location: Optional[str] = None
    remote: Optional[bool] = None
    job_types: Tuple[str, ...] = ()
    page: int = 1
    limit: Optional[int] = None

    @classmethod
    def build(
        cls,
        keywords: List[str] | Tuple[str, ...] | str,
        **kwargs: Any,
    ) -> "QuerySpec":
        if isinstance(keywords, str):
            keywords = keywords.split()
        job_types = kwargs.pop("job_types", None) or ()
        return cls(
            keywords=tuple(k.strip() for k in keywords if k and k.strip()),
            job_types=tuple(job_types),
            **kwargs,
        )

    @property
    def text(self) -> str:
        return " ".join(self.keywords)


# ---- Records ------------------------------------------------------------------

class RawRecord(TypedDict, total=False):
    """
    Common shape every source adapter returns.

    `title` and `company` are required for a record to survive
    normalization; everything else may be missing or empty.
    """

    # Source-local identifier (may be absent)
    id: Optional[str]

    title: str
    company: str

    # Free-text location
    location: Optional[str]

    # Free-text description, may be ""
    description: str

    # Canonical posting URL, may be ""
    url: str

    # Source id from the registry (e.g. "jsearch")
    source: str

    posted_date: Optional[str]

    # Salary as the source prints it, e.g. "$80K - $120K"
    salary: Optional[str]

    remote: Optional[bool]
    job_types: List[str]
    skills: List[str]


class UniqueRecord(RawRecord, total=False):
    # "url" or "fuzzy" when this record replaced a duplicate, else None
    dedup_reason: Optional[str]
    # id (or url) of the duplicate that was replaced
    superseded_id: Optional[str]


class MatchDetails(TypedDict):
    primary_skills_matched: int
    secondary_skills_matched: int
    location_match: bool
    remote_match: bool
    salary_match: bool


class RankedRecord(UniqueRecord, total=False):
    match_score: float
    # 0-100, score normalized against the profile's maximum
    match_percentage: float
    matched_skills: List[str]
    match_details: MatchDetails


# ---- Caller preferences ---------------------------------------------------------

@dataclass
class WeightedSkill:
    skill: str
    weight: float = 1.0
    category: str = "general"
    years: Optional[float] = None


@dataclass
class WeightProfile:
    """Relevance preferences: primary skills count double, secondary once."""

    primary_skills: List[WeightedSkill] = field(default_factory=list)
    secondary_skills: List[WeightedSkill] = field(default_factory=list)
    location: Optional[str] = None
    remote: Optional[bool] = None
    salary_min: Optional[float] = None


@dataclass
class CareerPreferences:
    target_roles: List[str] = field(default_factory=list)
    target_industries: List[str] = field(default_factory=list)
    target_companies: List[str] = field(default_factory=list)
    work_type: List[str] = field(default_factory=list)
    remote: Optional[bool] = None


@dataclass
class UserProfile:
    primary_skills: List[WeightedSkill] = field(default_factory=list)
    secondary_skills: List[WeightedSkill] = field(default_factory=list)
    city: Optional[str] = None
    province: Optional[str] = None
    career: CareerPreferences = field(default_factory=CareerPreferences)

    def weight_profile(
        self,
        location: Optional[str] = None,
        remote: Optional[bool] = None,
        salary_min: Optional[float] = None,
    ) -> Optional[WeightProfile]:
        """None when the profile carries no weighted skills at all."""
        if not self.primary_skills and not self.secondary_skills:
            return None
        return WeightProfile(
            primary_skills=list(self.primary_skills),
            secondary_skills=list(self.secondary_skills),
            location=location,
            remote=remote,
            salary_min=salary_min,
        )


@dataclass
class SearchPreferences:
    remote: Optional[bool] = None
    work_type: List[str] = field(default_factory=list)
    include_linkedin: bool = True
    include_freelance: bool = False
    include_startups: bool = False
    company_size: List[str] = field(default_factory=list)
    max_sources: Optional[int] = None


# ---- Metadata -------------------------------------------------------------------

class SourceResult(TypedDict, total=False):
    success: bool
    count: int
    cost: float
    duration_ms: int
    pages: int
    error: str


class QueryMetadata(TypedDict, total=False):
    sources: Dict[str, SourceResult]
    total_records: int
    unique_records: int
    duration_ms: int
    total_cost: float


class CacheEntry(TypedDict, total=False):
    """One persisted cache document."""

    id: str
    requester_id: str
    # keywords joined with spaces, as searched
    query: str
    location: Optional[str]
    remote: Optional[bool]
    job_types: List[str]
    # "requester" or "location"
    tier: str
    records: List[RankedRecord]
    metadata: QueryMetadata
    # ISO-8601 UTC timestamps
    created_at: str
    expires_at: str


class ProgressEvent(TypedDict):
    records: List[RankedRecord]
    wave: int
    total_count: int
    sources: List[str]
    duration_ms: int
    is_complete: bool
    metadata: QueryMetadata


@dataclass
class SearchResult:
    """What `JobSearch.search` hands back; never an exception."""

    records: List[RankedRecord]
    # cache | primary | fallback | generative | stale | partial | error
    source: str
    cached: bool = False
    fallback_used: bool = False
    cost: float = 0.0
    duration_ms: int = 0
    warning: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records": self.records,
            "metadata": {
                **self.metadata,
                "source": self.source,
                "cached": self.cached,
                "fallback_used": self.fallback_used,
                "cost": self.cost,
                "duration_ms": self.duration_ms,
                "warning": self.warning,
                "error": self.error,
            },
        }
