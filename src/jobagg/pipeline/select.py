# src/jobagg/pipeline/select.py
"""
Pick which sources to query for a given profile and search preferences.

Fast core sources always go first so the first results come back in under a
second; medium sources always follow; slow specialists only join when the
caller's preferences ask for them.
"""

import logging
from typing import List, Optional

from jobagg.config import SelectorTiers
from jobagg.models import SearchPreferences, UserProfile
from jobagg.sources.registry import SourceRegistry

logger = logging.getLogger(__name__)


def wants_remote(profile: Optional[UserProfile], prefs: Optional[SearchPreferences]) -> bool:
    if prefs and prefs.remote:
        return True
    if profile:
        career = profile.career
        if career.remote or "remote" in [w.lower() for w in career.work_type]:
            return True
    return False


def wants_freelance(prefs: Optional[SearchPreferences]) -> bool:
    if not prefs:
        return False
    work = [w.lower() for w in prefs.work_type]
    return prefs.include_freelance or "freelance" in work or "contract" in work


def wants_startups(profile: Optional[UserProfile], prefs: Optional[SearchPreferences]) -> bool:
    if prefs and (prefs.include_startups or "startup" in [s.lower() for s in prefs.company_size]):
        return True
    if profile:
        for company in profile.career.target_companies:
            c = company.lower()
            if "startup" in c or "early-stage" in c:
                return True
    return False


def select_sources(
    registry: SourceRegistry,
    profile: Optional[UserProfile] = None,
    preferences: Optional[SearchPreferences] = None,
    tiers: Optional[SelectorTiers] = None,
) -> List[str]:
    """
    Ordered list of source ids to query. Never raises; may be empty.
    """
    tiers = tiers or SelectorTiers()
    sources: List[str] = list(tiers.always)

    for sid in tiers.medium:
        if sid == tiers.linkedin and preferences is not None and not preferences.include_linkedin:
            logger.info(f"Skipping {sid} (disabled in preferences)")
            continue
        sources.append(sid)

    if wants_remote(profile, preferences):
        logger.info(f"Adding {', '.join(tiers.remote)} (remote preferred)")
        sources.extend(tiers.remote)
    if wants_freelance(preferences):
        logger.info(f"Adding {', '.join(tiers.freelance)} (freelance/contract work)")
        sources.extend(tiers.freelance)
    if wants_startups(profile, preferences):
        logger.info(f"Adding {', '.join(tiers.startup)} (startup targeting)")
        sources.extend(tiers.startup)

    # keep first occurrence
    sources = list(dict.fromkeys(sources))

    if preferences and preferences.max_sources is not None and len(sources) > preferences.max_sources:
        sources = sources[: max(0, preferences.max_sources)]
        logger.info(f"Limiting to {preferences.max_sources} sources: {sources}")

    enabled = [sid for sid in sources if registry.is_enabled(sid)]
    logger.info(f"Selected {len(enabled)} sources: {enabled}")
    return enabled
