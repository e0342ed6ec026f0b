from typing import Protocol, runtime_checkable

from usage_analytics.models import (
    BucketStats,
    HostRow,
    ProjectRow,
    SessionRow,
    TokenSample,
    TokenStats,
    UsageSample,
)


class QueryError(Exception):
    """A backend query failed."""


@runtime_checkable
class QueryInterface(Protocol):
    """Historical data store and statistics backend.

    Every read is idempotent and side-effect free. The three ``delete_*`` calls
    either complete or raise; callers re-fetch afterwards instead of patching
    their data in place.
    """

    async def get_usage_history(self, bucket: str, range_name: str) -> list[UsageSample]: ...

    async def get_token_history(
        self,
        range_name: str,
        hostname: str | None = None,
        session_id: str | None = None,
        cwd: str | None = None,
    ) -> list[TokenSample]: ...

    async def get_usage_stats(self, bucket: str, days: int) -> BucketStats: ...

    async def get_all_bucket_stats(self, buckets_json: str, days: int) -> list[BucketStats]: ...

    async def get_token_stats(
        self,
        days: int,
        hostname: str | None = None,
        cwd: str | None = None,
    ) -> TokenStats: ...

    async def get_token_hostnames(self) -> list[str]: ...

    async def get_host_breakdown(self, days: int) -> list[HostRow]: ...

    async def get_project_breakdown(self, days: int) -> list[ProjectRow]: ...

    async def get_session_breakdown(self, days: int, hostname: str | None = None) -> list[SessionRow]: ...

    async def get_snapshot_count(self) -> int: ...

    async def delete_host_data(self, hostname: str) -> None: ...

    async def delete_project_data(self, cwd: str) -> None: ...

    async def delete_session_data(self, session_id: str) -> None: ...
