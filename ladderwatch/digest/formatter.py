"""Ladderwatch — Plain-text digest renderer.

Sectioned message, each section capped with a "+N more" line, and the whole
thing truncated to the Telegram-safe maximum length.
"""

from typing import List, Optional

from ladderwatch.config import settings
from ladderwatch.models.digest_models import (
    DigestData,
    DigestLeaderboardRow,
    DigestMilestoneLine,
)

TOP_ROWS_LIMIT = 10
TOP_MOVERS_LIMIT = 5
MILESTONES_LIMIT = 8
WARNINGS_LIMIT = 8
ELLIPSIS = "..."
# Only cut at a newline if it keeps at least this share of the limit
NEWLINE_CUT_RATIO = 0.6


def format_signed(value: float) -> str:
    return f"+{value:.2f}" if value >= 0 else f"{value:.2f}"


def _rank(rank: Optional[int]) -> str:
    return "?" if rank is None else str(rank)


def render_row(row: DigestLeaderboardRow) -> str:
    return (
        f"{_rank(row.rank)}. {row.label} | Score {row.total_score:.2f} "
        f"| Δ {format_signed(row.daily_delta)}"
    )


def render_milestone(line: DigestMilestoneLine) -> str:
    return (
        f"{_rank(line.rank)}. {line.label} | {line.text} "
        f"| score Δ {format_signed(line.daily_delta)}"
    )


def with_overflow(lines: List[str], limit: int) -> List[str]:
    if len(lines) <= limit:
        return lines
    return lines[:limit] + [f"+{len(lines) - limit} more"]


def truncate_message(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return ELLIPSIS[: max(0, max_length)]
    cut = text[: max_length - len(ELLIPSIS)]
    newline = cut.rfind("\n")
    if newline > max_length * NEWLINE_CUT_RATIO:
        return cut[:newline] + ELLIPSIS
    return cut + ELLIPSIS


def _section(lines: List[str], title: str, body: List[str]) -> None:
    if not body:
        return
    lines.append("")
    lines.append(title)
    lines.extend(body)


def format_digest(data: DigestData, max_length: Optional[int] = None) -> str:
    if max_length is None:
        max_length = settings.digest_max_length

    lines = [data.league_name, f"Snapshot: {data.snapshot_date} (UTC)"]
    poll_parts = [f"Poll: {data.poll.status}"]
    if data.poll.warning_count is not None:
        poll_parts.append(f"warnings={data.poll.warning_count}")
    if data.poll.error_count is not None:
        poll_parts.append(f"errors={data.poll.error_count}")
    lines.append(" | ".join(poll_parts))

    if data.variant == "poll_failure":
        _section(lines, "Failure Summary", [data.failure_message or ""])
        return truncate_message("\n".join(lines), max_length)

    lines.append(f"Score Profile: {data.score_profile_name} v{data.score_profile_version}")

    leaderboard = with_overflow([render_row(r) for r in data.rows], TOP_ROWS_LIMIT)
    _section(lines, "Top Leaderboard", leaderboard or ["No leaderboard rows found."])
    _section(
        lines,
        "Top Movers",
        with_overflow([render_row(r) for r in data.top_movers], TOP_MOVERS_LIMIT),
    )
    _section(
        lines,
        "Notable Milestones",
        with_overflow([render_milestone(m) for m in data.milestones], MILESTONES_LIMIT),
    )
    _section(lines, "Warnings", with_overflow(data.warnings, WARNINGS_LIMIT))

    return truncate_message("\n".join(lines), max_length)
