"""Shared fixtures: record factory, scripted source adapters, registries, clock."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from jobagg.config import Settings
from jobagg.models import SourceDescriptor
from jobagg.sources.registry import SourceRegistry


class FakeAdapter:
    """Returns scripted pages in order (the last page repeats), or raises."""

    def __init__(self, *pages, error: Optional[BaseException] = None, delay: float = 0.0, fail_on_page: Optional[int] = None):
        self.pages: List[list] = [list(p) for p in pages] or [[]]
        self.error = error
        self.delay = delay
        self.fail_on_page = fail_on_page
        self.calls: list = []

    async def fetch(self, spec):
        self.calls.append(spec)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.fail_on_page is not None and spec.page == self.fail_on_page:
            raise ConnectionError(f"page {spec.page} failed")
        idx = min(len(self.calls), len(self.pages)) - 1
        return [dict(r) for r in self.pages[idx]]


class FixedClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def record(n: int = 1, **overrides) -> Dict:
    base = {
        "id": f"job-{n}",
        "title": f"Software Engineer {n}",
        "company": f"Company {n}",
        "location": "Toronto, ON",
        "description": f"Build services number {n} with Python and Postgres.",
        "url": f"https://jobs.example.com/posting/{n}",
        "source": "test",
        "skills": [],
    }
    base.update(overrides)
    return base


@pytest.fixture
def make_record():
    return record


@pytest.fixture
def many_records():
    def build(count: int, start: int = 1, **overrides) -> List[Dict]:
        return [record(n, **overrides) for n in range(start, start + count)]
    return build


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def settings():
    # no inter-page sleeping in tests
    return Settings(page_delay=0.0)


@pytest.fixture
def fake_adapter():
    return FakeAdapter


@pytest.fixture
def build_registry():
    """
    build_registry({"google-jobs": FakeAdapter(...), ...}, disabled={"x"}, tiers={"x": 3})
    """
    def build(adapters: Dict[str, FakeAdapter], disabled=(), tiers=None, cost: float = 0.001) -> SourceRegistry:
        registry = SourceRegistry()
        for sid, adapter in adapters.items():
            tier = (tiers or {}).get(sid, 1)
            registry.register(
                SourceDescriptor(sid, sid.title(), f"https://{sid}.example.com", tier, cost, 50, sid not in disabled),
                adapter,
            )
        return registry
    return build
