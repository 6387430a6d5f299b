# src/jobagg/cli.py
"""
Command-line interface for the job aggregator.

This module provides CLI commands to:
- Search all configured sources (at once or wave by wave) and print/export results
- List the source catalog and which sources are enabled
- Maintain the on-disk result cache (sweep expired entries, purge a requester)
"""

from dotenv import load_dotenv
load_dotenv()  # looks for a .env file in the working directory

import asyncio
import json
import logging
from typing import List, Optional

import httpx
import typer

from jobagg.cache.manager import CacheManager
from jobagg.cache.store import JsonCacheStore
from jobagg.config import Settings
from jobagg.io.export import write_csv
from jobagg.models import ProgressEvent, QuerySpec, SearchPreferences, WeightedSkill, WeightProfile
from jobagg.search import CACHE_BYPASS, CACHE_REFRESH, CACHE_USE, JobSearch
from jobagg.sources.registry import build_default_registry

# Typer app instance for CLI commands
app = typer.Typer(help="Multi-source job aggregator")


def parse_skill(raw: str) -> WeightedSkill:
    """'python:5' -> WeightedSkill('python', 5.0); weight defaults to 1."""
    name, _, weight = raw.rpartition(":")
    if not name:
        return WeightedSkill(skill=raw.strip())
    try:
        return WeightedSkill(skill=name.strip(), weight=float(weight))
    except ValueError:
        raise typer.BadParameter(f"bad skill weight in {raw!r} (expected skill:number)") from None


def _profile(
    primary: List[str],
    secondary: List[str],
    location: Optional[str],
    remote: bool,
    salary_min: Optional[float],
) -> Optional[WeightProfile]:
    if not primary and not secondary and salary_min is None:
        return None
    return WeightProfile(
        primary_skills=[parse_skill(s) for s in primary],
        secondary_skills=[parse_skill(s) for s in secondary],
        location=location,
        remote=remote or None,
        salary_min=salary_min,
    )


def _summary(records: list, limit: int) -> list:
    return [
        {
            "match": round(r.get("match_percentage", 0.0), 1),
            "title": r.get("title"),
            "company": r.get("company"),
            "location": r.get("location"),
            "source": r.get("source"),
            "url": r.get("url"),
        }
        for r in records[:limit]
    ]


@app.command()
def search(
    keywords: List[str] = typer.Argument(..., help="Search keywords"),
    location: Optional[str] = typer.Option(None, "--location", "-l"),
    remote: bool = typer.Option(False, "--remote", help="Remote jobs only / prefer remote"),
    requester: str = typer.Option("cli", "--requester", help="Requester id used as the cache key"),
    primary: Optional[List[str]] = typer.Option(None, "--skill", "-s", help="Primary skill as name:weight (repeatable)"),
    secondary: Optional[List[str]] = typer.Option(None, "--secondary", help="Secondary skill as name:weight (repeatable)"),
    salary_min: Optional[float] = typer.Option(None, "--salary-min"),
    freelance: bool = typer.Option(False, "--freelance", help="Include freelance/contract sources"),
    progressive: bool = typer.Option(False, "--progressive", help="Print results wave by wave"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Skip cache reads"),
    refresh: bool = typer.Option(False, "--refresh", help="Purge this requester's cache first"),
    limit: int = typer.Option(20, "--limit", help="How many results to print"),
    csv: Optional[str] = typer.Option(None, "--csv", help="Also write all results to this CSV file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """
    Search every enabled source → dedupe → rank → print the top results.
    """
    logging.basicConfig(level=logging.INFO if verbose else logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    settings = Settings.from_env(dotenv=False)
    spec = QuerySpec.build(keywords, location=location, remote=remote or None)
    profile = _profile(primary or [], secondary or [], location, remote, salary_min)
    prefs = SearchPreferences(remote=remote or None, include_freelance=freelance)
    cache_option = CACHE_REFRESH if refresh else CACHE_BYPASS if no_cache else CACHE_USE

    def on_progress(event: ProgressEvent) -> None:
        state = "done" if event["is_complete"] else "..."
        typer.echo(f"wave {event['wave']}: {event['total_count']} jobs from {', '.join(event['sources'])} {state}")

    async def run():
        async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
            registry = build_default_registry(settings, client)
            cache = CacheManager(JsonCacheStore(settings.cache_path), settings)
            engine = JobSearch(registry, cache, settings)
            if progressive:
                final: list = []

                def collect(event: ProgressEvent) -> None:
                    nonlocal final
                    final = event["records"]
                    on_progress(event)

                await engine.search_progressive(requester, spec, collect, profile, cache_option, prefs)
                return {"records": final, "metadata": {"source": "progressive"}}
            result = await engine.search(requester, spec, profile, cache_option, preferences=prefs)
            return result.to_dict()

    out = asyncio.run(run())
    records = out["records"]
    meta = out["metadata"]

    if csv:
        written = write_csv(records, csv)
        typer.echo(f"Wrote {written} rows to {csv}")

    typer.echo(json.dumps({
        "source": meta.get("source"),
        "cached": meta.get("cached", False),
        "count": len(records),
        "warning": meta.get("warning"),
        "error": meta.get("error"),
        "top": _summary(records, limit),
    }, indent=2))

    if meta.get("source") == "error":
        raise typer.Exit(code=1)


@app.command()
def sources():
    """
    List the source catalog: id, latency tier, cost per call, enabled flag.
    """
    settings = Settings.from_env(dotenv=False)
    registry = build_default_registry(settings)
    for sid in registry.ids():
        d = registry.get(sid)
        flag = "on " if registry.is_enabled(sid) else "off"
        typer.echo(f"[{flag}] {d.id:<16} tier={d.tier} cost=${d.cost:.4f} max={d.max_results}  {d.name}")


@app.command("cache-sweep")
def cache_sweep():
    """
    Delete cache entries past their expiry (run on a schedule).
    """
    settings = Settings.from_env(dotenv=False)
    cache = CacheManager(JsonCacheStore(settings.cache_path), settings)
    removed = asyncio.run(cache.clear_expired())
    typer.echo(f"Removed {removed} expired entries")


@app.command("cache-clear")
def cache_clear(requester: str):
    """
    Delete every cache entry for one requester ("refresh").
    """
    settings = Settings.from_env(dotenv=False)
    cache = CacheManager(JsonCacheStore(settings.cache_path), settings)
    removed = asyncio.run(cache.clear_requester(requester))
    typer.echo(f"Removed {removed} entries for {requester}")


@app.command("cache-stats")
def cache_stats(requester: str):
    """
    Show live cache entries, cached records and spend for one requester.
    """
    settings = Settings.from_env(dotenv=False)
    cache = CacheManager(JsonCacheStore(settings.cache_path), settings)
    typer.echo(json.dumps(asyncio.run(cache.stats(requester)), indent=2))


if __name__ == "__main__":
    app()
