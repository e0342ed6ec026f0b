from __future__ import annotations

import shlex
from datetime import UTC, datetime

from usage_analytics.analytics import AnalyticsController
from usage_analytics.models import BreakdownRow, HostRow, ProjectRow, SessionRow

COMMAND_NAMES = (
    "help",
    "show",
    "range",
    "bucket",
    "mode",
    "select",
    "clear",
    "page",
    "delete",
    "refresh",
)

HELP_TEXT = [
    "/show                      current chart, stats and breakdown page",
    "/range 1h|24h|7d|30d       change the display range",
    "/bucket <label>            change the usage bucket",
    "/mode hosts|projects|sessions",
    "/select <n>                toggle selection of row n on the current page",
    "/clear                     clear the drill-down selection",
    "/page next|prev",
    "/delete                    delete the selected entity (run twice to confirm)",
    "/refresh                   re-run every query",
]


def parse_command(command: str) -> tuple[str, list[str]]:
    parts = shlex.split(command)
    if not parts:
        return "", []
    return parts[0].lstrip("/").lower(), parts[1:]


def parse_row_index(args: list[str], page_size: int, *, line_prefix: str) -> tuple[int | None, str | None]:
    if len(args) != 1:
        return None, f"{line_prefix}Usage: /select <n>"
    try:
        index = int(args[0])
    except ValueError:
        return None, f"{line_prefix}Row number must be an integer"
    if index < 1 or index > page_size:
        return None, f"{line_prefix}No row {index} on this page"
    return index - 1, None


def format_token_count(value: int) -> str:
    if value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"{value / 1_000:.1f}K"
    return str(value)


def format_relative_time(when: datetime, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    minutes = int((now - when).total_seconds() // 60)
    if minutes < 1:
        return "just now"
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def _row_title(row: BreakdownRow) -> str:
    if isinstance(row, HostRow):
        return row.hostname
    if isinstance(row, ProjectRow):
        parts = [p for p in row.project.split("/") if p]
        name = parts[-1] if parts else row.project
        return f"{name} ({row.session_count} sessions)"
    assert isinstance(row, SessionRow)
    project = row.project.rstrip("/").rsplit("/", 1)[-1] if row.project else "-"
    return f"{row.session_id[:8]} {project} @{row.hostname}"


def format_view(view: AnalyticsController, *, line_prefix: str, now: datetime | None = None) -> list[str]:
    lines: list[str] = []
    if view.is_empty:
        lines.append(f"{line_prefix}Collecting usage data... analytics appear once snapshots are recorded.")
        return lines

    header = f"{line_prefix}{view.bucket} usage [{view.range_name}]"
    label = view.filter_label()
    if label:
        header += f" filter={label} (tokens: {view.tokens.parameters.range_name if view.tokens.parameters else '-'})"
    lines.append(header)

    if view.error:
        lines.append(f"{line_prefix}Failed to load analytics: {view.error}")

    stats = view.usage.data.stats
    if stats is not None:
        lines.append(
            f"{line_prefix}Now {stats.current:.1f}% | Avg {stats.avg:.1f}% | Peak {stats.max:.1f}% | trend {stats.trend}"
        )

    all_stats = view.usage.data.all_stats
    if all_stats:
        lines.append(
            f"{line_prefix}Buckets: "
            + " | ".join(f"{s.label} {s.current:.1f}% (avg {s.avg:.1f}%, {s.trend})" for s in all_stats)
        )

    token_stats = view.tokens.data.stats
    if token_stats is not None:
        lines.append(
            f"{line_prefix}Tokens {format_token_count(token_stats.total_tokens)} in {token_stats.turn_count} turns"
            f" | in {format_token_count(token_stats.total_input)} / out {format_token_count(token_stats.total_output)}"
            f" | cache {format_token_count(token_stats.total_cache_read)} read"
            f", {format_token_count(token_stats.total_cache_creation)} created"
        )
    hostnames = view.tokens.data.hostnames
    if hostnames:
        lines.append(f"{line_prefix}Hosts reporting: {', '.join(hostnames)}")

    series = view.chart_series()
    lines.append(f"{line_prefix}Chart: {len(series)} points")
    for point in series[-5:]:
        util = f"{point.utilization:.1f}%" if point.utilization is not None else "-"
        tokens = format_token_count(point.total_tokens) if point.total_tokens is not None else "-"
        lines.append(f"{line_prefix}  {point.timestamp.isoformat(timespec='minutes')}  {util:>6}  {tokens:>7}")

    breakdown = view.breakdown
    lines.append(
        f"{line_prefix}{breakdown.mode.capitalize()} page {breakdown.current_page + 1}/{breakdown.total_pages}"
    )
    if breakdown.error:
        lines.append(f"{line_prefix}Breakdown error: {breakdown.error}")
    elif breakdown.loading:
        lines.append(f"{line_prefix}  loading...")
    for i, row in enumerate(breakdown.page_rows, start=1):
        marker = "*" if breakdown.is_selected(row) else " "
        lines.append(
            f"{line_prefix}{marker}{i}. {_row_title(row)}  {format_token_count(row.total_tokens)} tokens, "
            f"{row.turn_count} turns, {format_relative_time(row.last_active, now)}"
        )
    if breakdown.confirm_pending and breakdown.selection is not None:
        lines.append(f"{line_prefix}Run /delete again to confirm deleting {breakdown.selection.kind} {breakdown.selection.key}")
    return lines
