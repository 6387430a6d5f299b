# src/jobagg/pipeline/dedupe.py
"""
Collapse the merged record set from many sources into unique postings.

1. Exact pass: records with a URL are keyed by the normalized URL.
2. Fuzzy pass: records without a URL are keyed by company + title + location,
   and two records under the same key only merge when their descriptions are
   nearly identical (Jaccard similarity above the threshold).

Whenever two records collide, the more complete one is kept. The function is
stateless: nothing is remembered between calls.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from rapidfuzz import fuzz

from jobagg.models import RawRecord, UniqueRecord

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.85

_NON_ALNUM = re.compile(r"[^a-z0-9\s]")
_SPACES = re.compile(r"\s+")


def normalize_url(url: str) -> str:
    """
    scheme://host/path, lowercased, without query, fragment or trailing slash.
    Anything that doesn't parse as an absolute URL is just lowercased.
    """
    raw = (url or "").strip()
    try:
        parts = urlsplit(raw)
    except ValueError:
        return raw.lower()
    if not parts.scheme or not parts.hostname:
        return raw.lower()
    return f"{parts.scheme}://{parts.hostname}{parts.path}".lower().rstrip("/")


def normalize_text(text: Optional[str]) -> str:
    text = _NON_ALNUM.sub("", (text or "").lower())
    return _SPACES.sub("_", text.strip())


def fingerprint(record: RawRecord) -> str:
    return "_".join((
        normalize_text(record.get("company")),
        normalize_text(record.get("title")),
        normalize_text(record.get("location")),
    ))


def _tokens(text: Optional[str]) -> set:
    cleaned = _NON_ALNUM.sub("", (text or "").lower())
    return {w for w in cleaned.split() if len(w) > 2}


def jaccard(a: Optional[str], b: Optional[str]) -> float:
    """Word-set overlap of two texts; 0 when either side has no usable words."""
    w1, w2 = _tokens(a), _tokens(b)
    if not w1 or not w2:
        return 0.0
    return len(w1 & w2) / len(w1 | w2)


def completeness(record: RawRecord) -> int:
    score = 0
    if len(record.get("description") or "") > 100:
        score += 3
    if record.get("salary"):
        score += 2
    if record.get("url"):
        score += 2
    if record.get("location"):
        score += 1
    if record.get("posted_date"):
        score += 1
    if record.get("skills"):
        score += 1
    return score


def _ident(record: RawRecord) -> Optional[str]:
    return record.get("id") or record.get("url") or None


def _annotate(record: RawRecord, reason: Optional[str] = None, replaced: Optional[RawRecord] = None) -> UniqueRecord:
    out: UniqueRecord = dict(record)  # type: ignore[assignment]
    if reason is None:
        # keep annotations from an earlier pass
        out.setdefault("dedup_reason", None)
        out.setdefault("superseded_id", None)
    else:
        out["dedup_reason"] = reason
        out["superseded_id"] = _ident(replaced) if replaced else None
    return out


def dedupe(records: Iterable[RawRecord], threshold: float = DEFAULT_THRESHOLD) -> List[UniqueRecord]:
    """
    Unique records in first-seen order. A record that replaces a duplicate
    takes over the duplicate's position.
    """
    records = list(records)
    if not records:
        return []

    # merged-away fuzzy slots become None and are compacted at the end
    slots: List[Optional[UniqueRecord]] = []
    by_url: Dict[str, int] = {}
    by_fingerprint: Dict[str, List[int]] = defaultdict(list)
    skipped = 0

    for rec in records:
        if not rec.get("title") or not rec.get("company"):
            skipped += 1
            continue

        if rec.get("url"):
            key = normalize_url(rec["url"])
            idx = by_url.get(key)
            if idx is None:
                by_url[key] = len(slots)
                slots.append(_annotate(rec))
            elif completeness(rec) > completeness(slots[idx]):
                slots[idx] = _annotate(rec, "url", slots[idx])
            continue

        key = fingerprint(rec)
        match: Optional[int] = None
        for idx in by_fingerprint[key]:
            similarity = jaccard(rec.get("description"), slots[idx].get("description"))
            if similarity > threshold:
                match = idx
                break
            logger.debug(f"Same fingerprint, different posting ({similarity:.2f}): {key}")

        if match is None:
            by_fingerprint[key].append(len(slots))
            slots.append(_annotate(rec))
        elif completeness(rec) > completeness(slots[match]):
            slots[match] = _annotate(rec, "fuzzy", slots[match])
            _collapse(slots, by_fingerprint[key], match, threshold)

    unique = [s for s in slots if s is not None]
    if skipped:
        logger.info(f"Skipped {skipped} records with missing title/company")
    logger.info(f"Deduplicated {len(records)} -> {len(unique)} unique records")
    return unique


def _collapse(slots: List[Optional[UniqueRecord]], group: List[int], idx: int, threshold: float) -> None:
    """
    A replacement can make slot `idx` a near-duplicate of another slot in its
    fingerprint group (Jaccard is not transitive). Merge such pairs into the
    earlier slot, keeping the more complete record, until the group is
    pairwise distinct again.
    """
    merged = True
    while merged:
        merged = False
        for other in group:
            if other == idx:
                continue
            current, candidate = slots[idx], slots[other]
            if jaccard(current.get("description"), candidate.get("description")) <= threshold:
                continue
            keep, drop = min(idx, other), max(idx, other)
            if completeness(slots[drop]) > completeness(slots[keep]):
                slots[keep] = _annotate(slots[drop], "fuzzy", slots[keep])
            else:
                slots[keep] = _annotate(slots[keep], "fuzzy", slots[drop])
            slots[drop] = None
            group.remove(drop)
            idx = keep
            merged = True
            break


# ---- Related-job helpers --------------------------------------------------------

_COMPANY_SUFFIXES = (
    " inc.", " inc", ", inc", " llc", ", llc", " ltd.", " ltd",
    " corp.", " corp", " corporation", " company", " co.", " co",
)


def clean_company(name: Optional[str]) -> str:
    """Lowercase company name without common legal suffixes."""
    s = (name or "").lower().strip()
    for suf in _COMPANY_SUFFIXES:
        if s.endswith(suf):
            s = s[: -len(suf)].strip()
    return s


def group_by_company(records: Iterable[RawRecord]) -> Dict[str, List[RawRecord]]:
    grouped: Dict[str, List[RawRecord]] = defaultdict(list)
    for r in records:
        grouped[clean_company(r.get("company"))].append(r)
    return dict(grouped)


def similarity(a: RawRecord, b: RawRecord) -> float:
    """Overall 0-1 closeness of two postings (title 40%, description 30%, company 20%, location 10%)."""
    score = fuzz.token_set_ratio(a.get("title") or "", b.get("title") or "") / 100 * 0.4
    score += jaccard(a.get("description"), b.get("description")) * 0.3
    if clean_company(a.get("company")) == clean_company(b.get("company")):
        score += 0.2
    if a.get("location") and b.get("location") and normalize_text(a["location"]) == normalize_text(b["location"]):
        score += 0.1
    return score


def find_similar(target: RawRecord, records: Iterable[RawRecord], limit: int = 5) -> List[RawRecord]:
    """The `limit` records most like `target` (excluding itself), best first."""
    scored: List[Tuple[float, RawRecord]] = [
        (similarity(target, r), r)
        for r in records
        if r is not target and (r.get("id") is None or r.get("id") != target.get("id"))
    ]
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [r for _, r in scored[:limit]]
