import pytest

from jobagg.config import Settings
from jobagg.models import QuerySpec, SearchPreferences, WeightedSkill, WeightProfile
from jobagg.pipeline.federate import FederatedClient
from jobagg.pipeline.progressive import ProgressiveAggregator

SPEC = QuerySpec.build("engineer")


def aggregator(registry, **overrides) -> ProgressiveAggregator:
    settings = Settings(page_delay=0.0, **overrides)
    return ProgressiveAggregator(FederatedClient(registry, settings), settings)


async def collect(agg, spec=SPEC, **kwargs):
    return [evt async for evt in agg.stream(spec, **kwargs)]


@pytest.mark.asyncio
async def test_waves_in_order_with_growing_counts(build_registry, fake_adapter, many_records):
    registry = build_registry({
        "w1": fake_adapter(many_records(4)),
        "w2": fake_adapter(many_records(4, start=5)),
        "w3": fake_adapter(many_records(4, start=9)),
    })
    agg = aggregator(registry, waves=[["w1"], ["w2"], ["w3"]])
    events = await collect(agg)

    assert [e["wave"] for e in events] == [1, 2, 3]
    counts = [e["total_count"] for e in events]
    assert counts == sorted(counts) == [4, 8, 12]
    assert [e["is_complete"] for e in events] == [False, False, True]
    assert events[-1]["sources"] == ["w1", "w2", "w3"]


@pytest.mark.asyncio
async def test_metadata_accumulates_across_waves(build_registry, fake_adapter, many_records):
    registry = build_registry({
        "w1": fake_adapter(many_records(4)),
        "w2": fake_adapter(many_records(4, start=4)),
    })
    events = await collect(aggregator(registry, waves=[["w1"], ["w2"]], min_results=1))

    first, last = events[0]["metadata"], events[-1]["metadata"]
    assert list(first["sources"]) == ["w1"]
    assert first["total_cost"] == pytest.approx(0.001)
    assert sorted(last["sources"]) == ["w1", "w2"]
    assert last["sources"]["w2"]["count"] == 4
    assert last["total_cost"] == pytest.approx(0.002)
    # posting 4 came back from both waves
    assert (last["total_records"], last["unique_records"]) == (8, 7)


@pytest.mark.asyncio
async def test_fallback_wave_when_too_few(build_registry, fake_adapter, many_records):
    registry = build_registry({
        "w1": fake_adapter(many_records(1)),
        "w2": fake_adapter([]),
        "w3": fake_adapter(many_records(1, start=2)),
        "w4": fake_adapter([]),
        "indeed": fake_adapter(many_records(10, start=100)),
    })
    agg = aggregator(registry, waves=[["w1"], ["w2"], ["w3"], ["w4"]])
    events = await collect(agg)

    assert [e["wave"] for e in events] == [1, 2, 3, 4, 5]
    assert [e["is_complete"] for e in events] == [False] * 4 + [True]
    assert events[-1]["total_count"] == 12
    assert events[-1]["sources"][-1] == "indeed"


@pytest.mark.asyncio
async def test_no_fallback_when_enough(build_registry, fake_adapter, many_records):
    fallback = fake_adapter(many_records(5, start=100))
    registry = build_registry({"w1": fake_adapter(many_records(12)), "indeed": fallback})
    events = await collect(aggregator(registry, waves=[["w1"]]))
    assert len(events) == 1
    assert events[0]["is_complete"] is True
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_fallback_skipped_when_already_queried(build_registry, fake_adapter, many_records):
    indeed = fake_adapter(many_records(2))
    registry = build_registry({"indeed": indeed})
    events = await collect(aggregator(registry, waves=[["indeed"]]))
    assert len(events) == 1
    assert events[0]["is_complete"] is True
    assert len(indeed.calls) == 1


@pytest.mark.asyncio
async def test_failing_source_does_not_stop_waves(build_registry, fake_adapter, many_records):
    registry = build_registry({
        "w1": fake_adapter(error=RuntimeError("down")),
        "w2": fake_adapter(many_records(11)),
    })
    events = await collect(aggregator(registry, waves=[["w1"], ["w2"]]))
    assert [e["total_count"] for e in events] == [0, 11]
    assert sum(e["is_complete"] for e in events) == 1


@pytest.mark.asyncio
async def test_failing_wave_is_logged_and_skipped(build_registry, fake_adapter, many_records, monkeypatch):
    registry = build_registry({"w1": fake_adapter(many_records(3)), "w2": fake_adapter(many_records(11, start=10))})
    agg = aggregator(registry, waves=[["w1"], ["w2"]])
    real_query_many = agg.client.query_many

    async def flaky(sources, spec):
        if sources == ["w1"]:
            raise RuntimeError("wave exploded")
        return await real_query_many(sources, spec)

    monkeypatch.setattr(agg.client, "query_many", flaky)
    events = await collect(agg)
    assert [e["total_count"] for e in events] == [0, 11]
    assert events[-1]["is_complete"] is True


@pytest.mark.asyncio
async def test_cross_wave_duplicates_removed_and_ranked(build_registry, fake_adapter, make_record):
    dup = make_record(1)
    registry = build_registry({
        "w1": fake_adapter([dup]),
        "w2": fake_adapter([dict(dup), make_record(2, description="Kubernetes operator work")]),
    })
    profile = WeightProfile(primary_skills=[WeightedSkill("kubernetes", 3)])
    events = await collect(aggregator(registry, waves=[["w1"], ["w2"]], min_results=1), profile=profile)
    final = events[-1]["records"]
    assert [r["id"] for r in final] == ["job-2", "job-1"]


@pytest.mark.asyncio
async def test_stopping_iteration_stops_waves(build_registry, fake_adapter, many_records):
    w2 = fake_adapter(many_records(3))
    registry = build_registry({"w1": fake_adapter(many_records(3)), "w2": w2})
    stream = aggregator(registry, waves=[["w1"], ["w2"]]).stream(SPEC)
    first = await stream.__anext__()
    await stream.aclose()
    assert first["wave"] == 1
    assert w2.calls == []


def test_plan_adds_specialists_to_last_wave(build_registry):
    agg = aggregator(build_registry({}), waves=[["a"], ["b"]])
    plan = agg.plan(QuerySpec.build("x", remote=True), SearchPreferences(include_freelance=True))
    assert plan == [["a"], ["b", "remote-jobs", "freelancer"]]


def test_plan_without_preferences_is_configured_waves(build_registry):
    agg = aggregator(build_registry({}))
    assert agg.plan(SPEC) == [["google-jobs"], ["active-jobs-db"], ["linkedin-jobs", "jobs-api"], ["jsearch"]]


@pytest.mark.asyncio
async def test_run_survives_callback_errors(build_registry, fake_adapter, many_records):
    registry = build_registry({"w1": fake_adapter(many_records(6)), "w2": fake_adapter(many_records(6, start=7))})
    seen = []

    def on_progress(evt):
        seen.append(evt["wave"])
        raise ValueError("ui went away")

    final = await aggregator(registry, waves=[["w1"], ["w2"]]).run(SPEC, on_progress)
    assert seen == [1, 2]
    assert len(final) == 12
