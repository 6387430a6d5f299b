from dataclasses import replace

import pytest

from jobagg.models import CareerPreferences, SearchPreferences, UserProfile
from jobagg.pipeline.select import select_sources, wants_freelance, wants_remote, wants_startups
from jobagg.sources.registry import (
    DEFAULT_SOURCES,
    SourceRegistry,
    recommend_for_job_type,
)


@pytest.fixture
def registry(fake_adapter):
    """Every default source wired to a do-nothing adapter."""
    descriptors = [replace(d) for d in DEFAULT_SOURCES]
    return SourceRegistry(descriptors, {d.id: fake_adapter() for d in descriptors})


BASE = ["google-jobs", "active-jobs-db", "linkedin-jobs", "jobs-api", "jsearch", "adzuna"]


def test_default_selection_is_fast_then_medium(registry):
    assert select_sources(registry) == BASE


def test_linkedin_opt_out(registry):
    out = select_sources(registry, preferences=SearchPreferences(include_linkedin=False))
    assert "linkedin-jobs" not in out
    assert out[:2] == ["google-jobs", "active-jobs-db"]


def test_remote_preference_adds_remote_source(registry):
    out = select_sources(registry, preferences=SearchPreferences(remote=True))
    assert out == BASE + ["remote-jobs"]


def test_remote_from_career_work_type(registry):
    profile = UserProfile(career=CareerPreferences(work_type=["Remote"]))
    assert "remote-jobs" in select_sources(registry, profile)


def test_freelance_and_contract(registry):
    out = select_sources(registry, preferences=SearchPreferences(work_type=["contract"]))
    assert out[-2:] == ["freelancer", "upwork"]


def test_startups_from_target_companies(registry):
    profile = UserProfile(career=CareerPreferences(target_companies=["Early-stage fintech"]))
    assert select_sources(registry, profile)[-1] == "startup-jobs"


def test_max_sources_truncates_in_order(registry):
    out = select_sources(registry, preferences=SearchPreferences(remote=True, max_sources=3))
    assert out == ["google-jobs", "active-jobs-db", "linkedin-jobs"]


def test_disabled_sources_filtered_after_truncation(registry):
    registry.disable("active-jobs-db")
    out = select_sources(registry, preferences=SearchPreferences(max_sources=2))
    assert out == ["google-jobs"]


def test_no_adapters_returns_empty():
    registry = SourceRegistry([replace(d) for d in DEFAULT_SOURCES])
    assert select_sources(registry) == []


def test_no_duplicates(registry):
    out = select_sources(
        registry,
        preferences=SearchPreferences(remote=True, include_freelance=True, include_startups=True),
    )
    assert len(out) == len(set(out))


def test_predicates():
    assert not wants_remote(None, None)
    assert wants_remote(UserProfile(career=CareerPreferences(remote=True)), None)
    assert wants_freelance(SearchPreferences(include_freelance=True))
    assert not wants_freelance(None)
    assert wants_startups(None, SearchPreferences(company_size=["Startup"]))
    assert not wants_startups(UserProfile(), SearchPreferences())


class TestRegistry:
    def test_estimates(self, registry):
        ids = ["google-jobs", "active-jobs-db", "ghost"]
        assert registry.estimate_cost(ids) == pytest.approx(0.002)
        assert registry.estimate_count(ids) == 150

    def test_enable_disable(self, registry):
        registry.disable("jsearch")
        assert not registry.is_enabled("jsearch")
        assert "jsearch" not in registry.enabled_ids()
        registry.enable("jsearch")
        assert registry.is_enabled("jsearch")

    def test_by_tier(self, registry):
        assert [d.id for d in registry.by_tier(1)] == ["google-jobs", "active-jobs-db"]

    def test_recommend_for_job_type(self):
        assert recommend_for_job_type("Freelance")[0] == "upwork"
        assert recommend_for_job_type("unheard-of") == ["active-jobs-db", "jsearch", "indeed"]
