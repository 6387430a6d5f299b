# src/jobagg/pipeline/rank.py
"""
Score unique records against a weighted skill profile and sort them.

Primary skills count double, secondary skills once; location, remote and
salary add small flat bonuses. Skill matching is delegated to a
`SkillMatcher` so a smarter matcher can be dropped in without touching the
scoring arithmetic.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from jobagg.models import MatchDetails, RankedRecord, UniqueRecord, WeightProfile, WeightedSkill

logger = logging.getLogger(__name__)

PRIMARY_MULTIPLIER = 2.0
SECONDARY_MULTIPLIER = 1.0
LOCATION_BONUS = 0.5
REMOTE_BONUS = 0.3
SALARY_BONUS = 0.2

_DIGITS = re.compile(r"\d+")


# ---- Matchers -------------------------------------------------------------------

class SkillMatcher(Protocol):
    def matches(self, skill: str, text: str, tags: Sequence[str]) -> bool:
        """`text` is the lowercased title + description."""
        ...


class WordBoundaryMatcher:
    """
    Default matcher: substring against the record's skill tags, phrase
    substring for multi-word skills, whole-word regex for single words.
    """

    def matches(self, skill: str, text: str, tags: Sequence[str]) -> bool:
        needle = skill.lower().strip()
        if not needle:
            return False
        if any(needle in t.lower() for t in tags):
            return True
        if " " in needle:
            return needle in text
        return re.search(rf"\b{re.escape(needle)}\b", text) is not None


class SubstringMatcher:
    def matches(self, skill: str, text: str, tags: Sequence[str]) -> bool:
        needle = skill.lower().strip()
        return bool(needle) and (needle in text or any(needle in t.lower() for t in tags))


class ExactMatcher:
    """Tag equality, or the skill appearing as a whole token sequence."""

    def matches(self, skill: str, text: str, tags: Sequence[str]) -> bool:
        needle = skill.lower().strip()
        if not needle:
            return False
        if any(needle == t.lower().strip() for t in tags):
            return True
        words = re.findall(r"[a-z0-9+#.]+", text)
        target = needle.split()
        n = len(target)
        return any(words[i:i + n] == target for i in range(len(words) - n + 1))


# ---- Scoring --------------------------------------------------------------------

def parse_max_salary(salary: Optional[str]) -> Optional[int]:
    """
    Largest number in a salary string, times 1000 when it uses "k"
    ("$80K - $120K" -> 120000). None when there are no digits.
    """
    if not salary:
        return None
    numbers = [int(n) for n in _DIGITS.findall(str(salary))]
    if not numbers:
        return None
    multiplier = 1000 if "k" in str(salary).lower() else 1
    return max(numbers) * multiplier


def max_possible_score(profile: WeightProfile) -> float:
    return (
        PRIMARY_MULTIPLIER * sum(s.weight for s in profile.primary_skills)
        + SECONDARY_MULTIPLIER * sum(s.weight for s in profile.secondary_skills)
        + LOCATION_BONUS + REMOTE_BONUS + SALARY_BONUS
    )


def _match_skills(
    skills: Iterable[WeightedSkill],
    text: str,
    tags: Sequence[str],
    matcher: SkillMatcher,
) -> List[WeightedSkill]:
    return [s for s in skills if matcher.matches(s.skill, text, tags)]


def score_record(
    record: UniqueRecord,
    profile: WeightProfile,
    matcher: Optional[SkillMatcher] = None,
) -> RankedRecord:
    matcher = matcher or WordBoundaryMatcher()
    text = f"{record.get('title') or ''} {record.get('description') or ''}".lower()
    tags = list(record.get("skills") or [])

    primary = _match_skills(profile.primary_skills, text, tags, matcher)
    secondary = _match_skills(profile.secondary_skills, text, tags, matcher)

    score = PRIMARY_MULTIPLIER * sum(s.weight for s in primary)
    score += SECONDARY_MULTIPLIER * sum(s.weight for s in secondary)

    location = record.get("location") or ""
    location_match = bool(profile.location and location and profile.location.lower() in location.lower())
    if location_match:
        score += LOCATION_BONUS

    remote_match = bool(profile.remote and record.get("remote"))
    if remote_match:
        score += REMOTE_BONUS

    salary_match = False
    if profile.salary_min:
        top = parse_max_salary(record.get("salary"))
        salary_match = top is not None and top >= profile.salary_min
    if salary_match:
        score += SALARY_BONUS

    max_score = max_possible_score(profile)
    details: MatchDetails = {
        "primary_skills_matched": len(primary),
        "secondary_skills_matched": len(secondary),
        "location_match": location_match,
        "remote_match": remote_match,
        "salary_match": salary_match,
    }
    out: RankedRecord = dict(record)  # type: ignore[assignment]
    out["match_score"] = score
    out["match_percentage"] = min(100.0, score / max_score * 100) if max_score > 0 else 0.0
    out["matched_skills"] = [s.skill for s in primary + secondary]
    out["match_details"] = details
    return out


def unscored(record: UniqueRecord) -> RankedRecord:
    out: RankedRecord = dict(record)  # type: ignore[assignment]
    out["match_score"] = 0.0
    out["match_percentage"] = 0.0
    out["matched_skills"] = []
    out["match_details"] = {
        "primary_skills_matched": 0,
        "secondary_skills_matched": 0,
        "location_match": False,
        "remote_match": False,
        "salary_match": False,
    }
    return out


def rank(
    records: Iterable[UniqueRecord],
    profile: Optional[WeightProfile],
    matcher: Optional[SkillMatcher] = None,
) -> List[RankedRecord]:
    """
    Records sorted by score, highest first; ties keep their input order.

    Without a profile nothing is scored: records pass through in input order
    with a zero score.
    """
    records = list(records)
    if profile is None:
        return [unscored(r) for r in records]

    matcher = matcher or WordBoundaryMatcher()
    ranked = [score_record(r, profile, matcher) for r in records]
    ranked.sort(key=lambda r: r["match_score"], reverse=True)

    if ranked:
        logger.info(
            f"Ranked {len(ranked)} records; top match {ranked[0]['match_percentage']:.1f}%, "
            f"{len(profile.primary_skills)} primary / {len(profile.secondary_skills)} secondary skills"
        )
    return ranked


# ---- Reporting helpers ----------------------------------------------------------

def filter_by_threshold(records: Iterable[RankedRecord], min_percentage: float = 30) -> List[RankedRecord]:
    return [r for r in records if r.get("match_percentage", 0) >= min_percentage]


def group_by_tier(records: Iterable[RankedRecord]) -> Dict[str, List[RankedRecord]]:
    tiers: Dict[str, List[RankedRecord]] = {"excellent": [], "good": [], "fair": [], "poor": []}
    for r in records:
        pct = r.get("match_percentage", 0)
        if pct >= 80:
            tiers["excellent"].append(r)
        elif pct >= 60:
            tiers["good"].append(r)
        elif pct >= 40:
            tiers["fair"].append(r)
        else:
            tiers["poor"].append(r)
    return tiers


def match_statistics(records: Sequence[RankedRecord]) -> Dict[str, float]:
    if not records:
        return {"total": 0, "average": 0.0, "median": 0.0, "top": 0.0, "excellent": 0, "good": 0}
    pcts = sorted(r.get("match_percentage", 0.0) for r in records)
    return {
        "total": len(records),
        "average": sum(pcts) / len(pcts),
        "median": pcts[len(pcts) // 2],
        "top": pcts[-1],
        "excellent": sum(1 for p in pcts if p >= 80),
        "good": sum(1 for p in pcts if p >= 60),
    }
