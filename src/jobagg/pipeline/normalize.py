# src/jobagg/pipeline/normalize.py
"""
Convert each source's raw JSON payload into our common RawRecord dicts.

Every upstream API nests and names things differently. The mapping lives here
so adapters stay thin and the rest of the pipeline only ever sees one shape.
A payload we can't make sense of becomes an empty list, never an exception.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from jobagg.models import RawRecord

logger = logging.getLogger(__name__)


def _created_ymd(raw: Optional[str]) -> str:
    # Adzuna format: "2025-09-26T07:20:13Z"
    if not raw:
        return ""
    return str(raw).split("T", 1)[0]  # "YYYY-MM-DD"


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _first(item: Dict, *keys: str) -> Any:
    """First non-empty value among `keys`."""
    for k in keys:
        v = item.get(k)
        if v not in (None, "", [], {}):
            return v
    return None


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value if v]


def _items(payload: Any, *keys: str) -> List[Dict]:
    """Locate the job array inside a payload (or the payload itself)."""
    if isinstance(payload, list):
        return [x for x in payload if isinstance(x, dict)]
    if not isinstance(payload, dict):
        return []
    for k in keys:
        v = payload.get(k)
        if isinstance(v, list):
            return [x for x in v if isinstance(x, dict)]
    return []


def _salary_range(lo: Any, hi: Any) -> Optional[str]:
    if lo is None and hi is None:
        return None
    if lo is not None and hi is not None and lo != hi:
        return f"{int(float(lo))} - {int(float(hi))}"
    return str(int(float(hi if hi is not None else lo)))


# ---- Per-source mappers ---------------------------------------------------------

def normalize_adzuna(results_json: dict) -> List[RawRecord]:
    """
    Adzuna returns nested JSON: company and location live under
    `display_name` keys, salary comes as two numbers.
    """
    out: List[RawRecord] = []
    for x in _items(results_json, "results"):
        company = (x.get("company") or {}).get("display_name")
        location = (x.get("location") or {}).get("display_name")
        out.append({
            "id": _text(x.get("id")) or None,
            "title": _text(x.get("title")),
            "company": _text(company),
            # Adzuna's redirect URL goes through their site to the posting
            "url": _text(x.get("redirect_url")),
            "location": _text(location) or None,
            "description": _text(x.get("description")),
            "salary": _salary_range(x.get("salary_min"), x.get("salary_max")),
            "source": "adzuna",
            "posted_date": _created_ymd(x.get("created")) or None,
            "remote": None,
            "job_types": _as_list(x.get("contract_time")),
            "skills": [],
        })
    return out


def normalize_jsearch(data: dict, source_id: str = "jsearch") -> List[RawRecord]:
    out: List[RawRecord] = []
    for j in _items(data, "data"):
        city = _text(j.get("job_city"))
        state = _text(j.get("job_state"))
        location = ", ".join(p for p in (city, state) if p)
        out.append({
            "id": _text(j.get("job_id")) or None,
            "title": _text(j.get("job_title")),
            "company": _text(j.get("employer_name")),
            "location": location or None,
            "description": _text(j.get("job_description")),
            "url": _text(_first(j, "job_apply_link", "job_google_link")),
            "source": source_id,
            "posted_date": _first(j, "job_posted_at_datetime_utc"),
            "salary": _text(_first(j, "job_salary", "job_min_salary")) or None,
            "remote": bool(j.get("job_is_remote", False)),
            "job_types": _as_list(j.get("job_employment_type")),
            "skills": _as_list(j.get("job_required_skills")),
        })
    return out


def normalize_active_jobs(data: dict, source_id: str = "active-jobs-db") -> List[RawRecord]:
    out: List[RawRecord] = []
    for j in _items(data, "jobs", "data"):
        out.append({
            "id": _text(_first(j, "id", "job_id")) or None,
            "title": _text(_first(j, "title", "job_title")),
            "company": _text(_first(j, "company", "company_name", "organization")),
            "location": _text(_first(j, "location", "job_location")) or None,
            "description": _text(_first(j, "description", "job_description")),
            "url": _text(_first(j, "url", "job_url", "apply_url")),
            "source": source_id,
            "posted_date": _first(j, "posted_date", "date_posted", "publication_date"),
            "salary": _text(_first(j, "salary", "salary_range")) or None,
            "remote": bool(_first(j, "remote", "is_remote") or False),
            "job_types": _as_list(j.get("job_type")),
            "skills": _as_list(j.get("skills")),
        })
    return out


def normalize_indeed(data: dict, source_id: str = "indeed") -> List[RawRecord]:
    out: List[RawRecord] = []
    for j in _items(data, "jobs", "data", "hits"):
        out.append({
            "id": _text(_first(j, "id", "job_id")) or None,
            "title": _text(_first(j, "title", "job_title")),
            "company": _text(_first(j, "company", "company_name")),
            "location": _text(j.get("location")) or None,
            "description": _text(_first(j, "description", "job_description")),
            "url": _text(_first(j, "url", "link")),
            "source": source_id,
            "posted_date": _first(j, "date", "posted_date"),
            "salary": _text(j.get("salary")) or None,
            "remote": bool(j.get("remote", False)),
            "job_types": [],
            "skills": [],
        })
    return out


def normalize_generic(data: Any, source_id: str) -> List[RawRecord]:
    """Best-effort mapping for sources without their own mapper."""
    out: List[RawRecord] = []
    for j in _items(data, "jobs", "data", "results"):
        out.append({
            "id": _text(_first(j, "id", "job_id")) or None,
            "title": _text(_first(j, "title", "job_title", "name")),
            "company": _text(_first(j, "company", "company_name", "employer")),
            "location": _text(_first(j, "location", "job_location")) or None,
            "description": _text(_first(j, "description", "job_description", "details")),
            "url": _text(_first(j, "url", "link", "apply_url")),
            "source": source_id,
            "posted_date": _first(j, "posted_date", "date", "created_at"),
            "salary": _text(_first(j, "salary", "budget")) or None,
            "remote": bool(_first(j, "remote", "is_remote") or False),
            "job_types": _as_list(j.get("job_type")),
            "skills": _as_list(j.get("skills")),
        })
    return out


_MAPPERS: Dict[str, Callable[[Any, str], List[RawRecord]]] = {
    "jsearch": normalize_jsearch,
    "google-jobs": normalize_jsearch,
    "active-jobs-db": normalize_active_jobs,
    "indeed": normalize_indeed,
    "adzuna": lambda data, _sid: normalize_adzuna(data),
}

GENERIC_SOURCES = {
    "linkedin-jobs",
    "jobs-api",
    "remote-jobs",
    "upwork",
    "freelancer",
    "startup-jobs",
}


def normalize_payload(source_id: str, payload: Any) -> List[RawRecord]:
    """
    Dispatch to the right mapper for `source_id`.

    Unknown sources and malformed payloads both yield [] (logged).
    """
    mapper = _MAPPERS.get(source_id)
    if mapper is None:
        if source_id not in GENERIC_SOURCES:
            logger.warning(f"Unknown source format: {source_id}")
            return []
        mapper = normalize_generic
    try:
        return mapper(payload, source_id)
    except (AttributeError, TypeError, ValueError) as e:
        logger.error(f"Error normalizing payload from {source_id}: {e}")
        return []


def clean_records(records: Iterable[RawRecord]) -> List[RawRecord]:
    """
    Keep only records that carry both a title and a company.
    Records are plain dicts.
    """
    out: List[RawRecord] = []
    for r in records:
        if not _text(r.get("title")) or not _text(r.get("company")):
            logger.debug(f"Dropping record with missing title/company: {r.get('id')}")
            continue
        out.append(r)
    return out
