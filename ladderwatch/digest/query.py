"""Ladderwatch — Digest data query.

Read-only. Picks the latest completed poll for the date and either reports
its failure or gathers the standings for the active profile.
"""

import json
from typing import Any, List, Optional

from sqlmodel import Session, select

from ladderwatch.analyzer.leaderboard import get_active_profile
from ladderwatch.config import settings
from ladderwatch.core.exceptions import NoActiveScoreProfileError, NoPollJobError
from ladderwatch.models.digest_models import (
    DigestData,
    DigestLeaderboardRow,
    DigestMilestoneLine,
    DigestPollSummary,
)
from ladderwatch.models.job_models import JobRun, JobStatus, JobType
from ladderwatch.models.metrics_models import NormalizedMetrics
from ladderwatch.models.roster_models import TrackedCharacter
from ladderwatch.models.snapshot_models import (
    CharacterMetricDelta,
    CharacterSnapshot,
    LeaderboardScore,
)

FAILED_POLL_FALLBACK = "Poll job failed with no error details."
_UNRANKED = float("inf")


def latest_completed_poll(session: Session, snapshot_date: str) -> Optional[JobRun]:
    return session.exec(
        select(JobRun)
        .where(
            JobRun.job_type == JobType.POLL.value,
            JobRun.snapshot_date == snapshot_date,
            JobRun.status != JobStatus.RUNNING.value,
        )
        .order_by(JobRun.started_at.desc(), JobRun.id.desc())
    ).first()


def _int_or_none(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None


def poll_warnings(details: dict) -> List[str]:
    """One line per per-character error, then per warning."""
    lines: List[str] = []
    for result in details.get("results") or []:
        if not isinstance(result, dict):
            continue
        character = result.get("character") or {}
        name = character.get("character_name")
        region = character.get("region")
        realm = character.get("realm_slug")
        if not name or not realm or region not in ("US", "EU"):
            continue
        label = f"{name} ({region}/{realm})"
        if result.get("ok") is not True and result.get("error"):
            lines.append(f"ERROR {label}: {result['error']}")
        for warning in result.get("warnings") or []:
            if isinstance(warning, str) and warning.strip():
                lines.append(f"WARN {label}: {warning}")
    return lines


def _movement_key(rank: Optional[int], daily_delta: float, name: str):
    return (-daily_delta, rank if rank is not None else _UNRANKED, name.lower())


def query_digest_data(session: Session, snapshot_date: str) -> DigestData:
    poll = latest_completed_poll(session, snapshot_date)
    if poll is None:
        raise NoPollJobError(
            f"No completed poll job found for {snapshot_date}.",
            {"snapshot_date": snapshot_date},
        )

    try:
        details = json.loads(poll.details_json or "{}")
    except ValueError:
        details = {}
    if not isinstance(details, dict):
        details = {}

    summary = DigestPollSummary(
        job_run_id=poll.id,
        status=poll.status,
        warning_count=_int_or_none(details.get("warning_count")),
        error_count=_int_or_none(details.get("error_count")),
    )

    if poll.status == JobStatus.FAILED.value:
        message = details.get("message")
        return DigestData(
            variant="poll_failure",
            snapshot_date=snapshot_date,
            league_name=settings.league_name,
            poll=summary,
            failure_message=message if isinstance(message, str) and message else FAILED_POLL_FALLBACK,
        )

    profile = get_active_profile(session)
    if profile is None:
        raise NoActiveScoreProfileError(
            "No active score profile found for digest generation."
        )

    scored = session.exec(
        select(LeaderboardScore, TrackedCharacter, CharacterSnapshot)
        .join(TrackedCharacter, TrackedCharacter.id == LeaderboardScore.tracked_character_id)
        .join(CharacterSnapshot, CharacterSnapshot.id == LeaderboardScore.snapshot_id)
        .where(
            LeaderboardScore.snapshot_date == snapshot_date,
            LeaderboardScore.score_profile_id == profile.id,
            TrackedCharacter.active == True,  # noqa: E712
        )
    ).all()
    scored = sorted(
        scored,
        key=lambda r: (
            r[0].rank if r[0].rank is not None else _UNRANKED,
            -r[0].total_score,
            r[1].character_name.lower(),
        ),
    )

    rows: List[DigestLeaderboardRow] = []
    for score, character, snapshot in scored:
        metrics = NormalizedMetrics.model_validate_json(snapshot.normalized_json)
        rows.append(
            DigestLeaderboardRow(
                rank=score.rank,
                character_name=character.character_name,
                region=character.region,
                realm_slug=character.realm_slug,
                total_score=score.total_score,
                daily_delta=score.daily_delta,
                level=metrics.level,
                item_level=metrics.average_item_level,
                mythic_plus_rating=metrics.mythic_plus_season_score,
                best_key_level=metrics.mythic_plus_best_run_level,
            )
        )

    by_snapshot = {snapshot.id: (score, character) for score, character, snapshot in scored}
    milestones: List[DigestMilestoneLine] = []
    if by_snapshot:
        deltas = session.exec(
            select(CharacterMetricDelta).where(
                CharacterMetricDelta.to_snapshot_id.in_(list(by_snapshot.keys()))
            )
        ).all()
        for delta in deltas:
            score, character = by_snapshot[delta.to_snapshot_id]
            for text in json.loads(delta.milestones_json or "[]"):
                if not isinstance(text, str) or not text.strip():
                    continue
                milestones.append(
                    DigestMilestoneLine(
                        rank=score.rank,
                        character_name=character.character_name,
                        region=character.region,
                        realm_slug=character.realm_slug,
                        daily_delta=score.daily_delta,
                        text=text,
                    )
                )
    milestones.sort(key=lambda m: _movement_key(m.rank, m.daily_delta, m.character_name))

    top_movers = sorted(
        (row for row in rows if row.daily_delta > 0),
        key=lambda r: _movement_key(r.rank, r.daily_delta, r.character_name),
    )

    warnings = poll_warnings(details)
    results = [r for r in details.get("results") or [] if isinstance(r, dict)]
    if summary.warning_count is None:
        summary.warning_count = len(warnings)
    if summary.error_count is None:
        summary.error_count = sum(1 for r in results if r.get("ok") is not True or r.get("error"))

    return DigestData(
        variant="standings",
        snapshot_date=snapshot_date,
        league_name=settings.league_name,
        poll=summary,
        score_profile_name=profile.name,
        score_profile_version=profile.version,
        rows=rows,
        top_movers=top_movers,
        milestones=milestones,
        warnings=warnings,
    )
