from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from usage_analytics.models import (
    BucketStats,
    HostRow,
    ProjectRow,
    SessionRow,
    TokenSample,
    TokenStats,
    UsageSample,
)
from usage_analytics.query_interface import QueryError

_MAX_ATTEMPTS = 3


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying query in {wait:.1f}s (attempt {attempt}/{_MAX_ATTEMPTS})...")


_read_retry = retry(
    retry=retry_if_exception_type(httpx.TransportError),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
    stop=stop_after_attempt(_MAX_ATTEMPTS),
    before_sleep=_on_retry,
    reraise=True,
)


class HttpQueryClient:
    """Query interface backed by a query service speaking the ``/api/<command>`` contract.

    Every command is ``POST {base_url}/api/{command}`` with the arguments as a
    JSON object. Reads are retried on transport errors; deletes are sent once.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, command: str, args: dict[str, Any]) -> Any:
        response = await self._client.post(f"/api/{command}", json=args)
        if response.status_code >= 400:
            raise QueryError(f"{command} failed: HTTP {response.status_code}: {response.text}")
        if not response.content:
            return None
        return response.json()

    @_read_retry
    async def _read(self, command: str, args: dict[str, Any] | None = None) -> Any:
        return await self._post(command, args or {})

    async def get_usage_history(self, bucket: str, range_name: str) -> list[UsageSample]:
        data = await self._read("get_usage_history", {"bucket": bucket, "range": range_name})
        return [UsageSample.from_dict(d) for d in data or []]

    async def get_token_history(
        self,
        range_name: str,
        hostname: str | None = None,
        session_id: str | None = None,
        cwd: str | None = None,
    ) -> list[TokenSample]:
        data = await self._read(
            "get_token_history",
            {"range": range_name, "hostname": hostname, "session_id": session_id, "cwd": cwd},
        )
        return [TokenSample.from_dict(d) for d in data or []]

    async def get_usage_stats(self, bucket: str, days: int) -> BucketStats:
        data = await self._read("get_usage_stats", {"bucket": bucket, "days": days})
        return BucketStats.from_dict(data or {})

    async def get_all_bucket_stats(self, buckets_json: str, days: int) -> list[BucketStats]:
        data = await self._read("get_all_bucket_stats", {"buckets_json": buckets_json, "days": days})
        return [BucketStats.from_dict(d) for d in data or []]

    async def get_token_stats(
        self,
        days: int,
        hostname: str | None = None,
        cwd: str | None = None,
    ) -> TokenStats:
        data = await self._read("get_token_stats", {"days": days, "hostname": hostname, "cwd": cwd})
        return TokenStats.from_dict(data or {})

    async def get_token_hostnames(self) -> list[str]:
        data = await self._read("get_token_hostnames")
        return [str(h) for h in data or []]

    async def get_host_breakdown(self, days: int) -> list[HostRow]:
        data = await self._read("get_host_breakdown", {"days": days})
        return [HostRow.from_dict(d) for d in data or []]

    async def get_project_breakdown(self, days: int) -> list[ProjectRow]:
        data = await self._read("get_project_breakdown", {"days": days})
        return [ProjectRow.from_dict(d) for d in data or []]

    async def get_session_breakdown(self, days: int, hostname: str | None = None) -> list[SessionRow]:
        data = await self._read("get_session_breakdown", {"days": days, "hostname": hostname})
        return [SessionRow.from_dict(d) for d in data or []]

    async def get_snapshot_count(self) -> int:
        data = await self._read("get_snapshot_count")
        return int(data or 0)

    async def delete_host_data(self, hostname: str) -> None:
        await self._post("delete_host_data", {"hostname": hostname})

    async def delete_project_data(self, cwd: str) -> None:
        await self._post("delete_project_data", {"cwd": cwd})

    async def delete_session_data(self, session_id: str) -> None:
        await self._post("delete_session_data", {"session_id": session_id})
