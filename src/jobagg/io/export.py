# src/jobagg/io/export.py
from __future__ import annotations

import os
from typing import Iterable, List

import pandas as pd

from jobagg.models import RankedRecord

COLUMNS: List[str] = [
    "Match %",
    "Score",
    "Job title",
    "Company",
    "Location",
    "Remote",
    "Salary",
    "Matched skills",
    "Source",
    "Posted",
    "URL",
]


def records_to_frame(records: Iterable[RankedRecord]) -> pd.DataFrame:
    """One row per ranked record, columns in `COLUMNS` order."""
    rows = []
    for r in records:
        rows.append({
            "Match %": round(float(r.get("match_percentage") or 0.0), 1),
            "Score": float(r.get("match_score") or 0.0),
            "Job title": r.get("title", ""),
            "Company": r.get("company", ""),
            "Location": r.get("location") or "",
            "Remote": bool(r.get("remote")),
            "Salary": r.get("salary") or "",
            "Matched skills": ", ".join(r.get("matched_skills") or []),
            "Source": r.get("source", ""),
            "Posted": r.get("posted_date") or "",
            "URL": r.get("url", ""),
        })
    return pd.DataFrame(rows, columns=COLUMNS)


def write_csv(records: Iterable[RankedRecord], path: str | os.PathLike) -> int:
    """
    Write ranked records to a CSV file (overwrites).
    Returns number of rows written.
    """
    df = records_to_frame(records)
    df.to_csv(path, index=False)
    return len(df)
