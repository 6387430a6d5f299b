# src/jobagg/clients/base.py
"""
What every source adapter looks like, plus the one HTTP helper they share.

An adapter is anything with `async fetch(spec) -> list[RawRecord]`:
- zero results is `[]`, never an exception;
- only unrecoverable transport errors raise (the federated client turns
  those into a per-source failure entry).
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from jobagg.models import QuerySpec, RawRecord


@runtime_checkable
class SourceAdapter(Protocol):
    async def fetch(self, spec: QuerySpec) -> List[RawRecord]:
        ...


def default_headers() -> Dict[str, str]:
    return {"User-Agent": "jobagg/0.1 (+https://example.com)"}


async def get_json(
    url: str,
    params: Dict[str, Any],
    *,
    client: Optional[httpx.AsyncClient] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 20.0,
    attempts: int = 3,
) -> Any:
    """
    One HTTP GET returning decoded JSON.

    Retries on httpx errors: wait 0.5s, 1s, 2s … up to 4s, at most
    `attempts` tries. The last error is re-raised as-is.
    """
    # httpx would send "None" for missing values; drop them instead
    params = {k: str(v).lower() if isinstance(v, bool) else v for k, v in params.items() if v is not None}
    request_headers = {**default_headers(), **(headers or {})}

    async for attempt in AsyncRetrying(
        wait=wait_exponential(min=0.5, max=4),
        stop=stop_after_attempt(max(1, attempts)),
        retry=retry_if_exception_type(httpx.HTTPError),
        reraise=True,
    ):
        with attempt:
            if client is not None:
                resp = await client.get(url, params=params, headers=request_headers)
            else:
                async with httpx.AsyncClient(timeout=timeout) as own:
                    resp = await own.get(url, params=params, headers=request_headers)
            resp.raise_for_status()  # raises httpx.HTTPStatusError for 4xx/5xx
            return resp.json()
