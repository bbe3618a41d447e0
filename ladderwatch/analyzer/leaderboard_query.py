"""Ladderwatch — Latest leaderboard read projection.

Read-only. Everything here is derived from rows the poll/rebuild jobs wrote.
"""

import json
from typing import Dict, Optional

from sqlmodel import Session, select

from ladderwatch.analyzer.leaderboard import get_active_profile, profile_config_from_row
from ladderwatch.analyzer.rebuild import latest_snapshot_date
from ladderwatch.models.job_models import JobRun, JobType
from ladderwatch.models.leaderboard_models import (
    LastJobView,
    LatestLeaderboardView,
    LeaderboardRowView,
    ScoreProfileView,
)
from ladderwatch.models.metrics_models import NormalizedMetrics
from ladderwatch.models.roster_models import TrackedCharacter
from ladderwatch.models.snapshot_models import (
    CharacterMetricDelta,
    CharacterSnapshot,
    LeaderboardScore,
)


def _scores_for(session: Session, snapshot_date: str, score_profile_id: int):
    return session.exec(
        select(LeaderboardScore, TrackedCharacter, CharacterSnapshot)
        .join(TrackedCharacter, TrackedCharacter.id == LeaderboardScore.tracked_character_id)
        .join(CharacterSnapshot, CharacterSnapshot.id == LeaderboardScore.snapshot_id)
        .where(
            LeaderboardScore.snapshot_date == snapshot_date,
            LeaderboardScore.score_profile_id == score_profile_id,
            TrackedCharacter.active == True,  # noqa: E712
        )
    ).all()


def _rank_change(
    rank: Optional[int], character_id: int, previous_ranks: Optional[Dict[int, Optional[int]]]
):
    if previous_ranks is None or character_id not in previous_ranks:
        return "NEW"
    previous_rank = previous_ranks[character_id]
    if previous_rank is None or rank is None:
        return None
    return previous_rank - rank


def get_latest_leaderboard(session: Session) -> LatestLeaderboardView:
    last_job_row = session.exec(
        select(JobRun)
        .where(JobRun.job_type == JobType.POLL.value)
        .order_by(JobRun.started_at.desc(), JobRun.id.desc())
    ).first()
    last_job = (
        LastJobView(status=last_job_row.status, finished_at=last_job_row.finished_at)
        if last_job_row
        else None
    )

    snapshot_date = latest_snapshot_date(session)
    if snapshot_date is None:
        return LatestLeaderboardView(last_job=last_job)

    profile_row = get_active_profile(session)
    if profile_row is None:
        return LatestLeaderboardView(snapshot_date=snapshot_date, last_job=last_job)

    profile = profile_config_from_row(profile_row)
    rows = _scores_for(session, snapshot_date, profile_row.id)

    snapshot_ids = [snapshot.id for _, _, snapshot in rows]
    deltas: Dict[int, dict] = {}
    if snapshot_ids:
        for delta in session.exec(
            select(CharacterMetricDelta).where(
                CharacterMetricDelta.to_snapshot_id.in_(snapshot_ids)
            )
        ).all():
            deltas[delta.to_snapshot_id] = json.loads(delta.deltas_json)

    previous_date = session.exec(
        select(CharacterSnapshot.snapshot_date)
        .where(CharacterSnapshot.snapshot_date < snapshot_date)
        .order_by(CharacterSnapshot.snapshot_date.desc())
        .limit(1)
    ).first()
    previous_ranks = None
    if previous_date is not None:
        previous_ranks = {
            score.tracked_character_id: score.rank
            for score, _, _ in _scores_for(session, previous_date, profile_row.id)
        }

    views = []
    for score, character, snapshot in rows:
        metrics = NormalizedMetrics.model_validate_json(snapshot.normalized_json)
        delta = deltas.get(snapshot.id)
        views.append(
            LeaderboardRowView(
                tracked_character_id=character.id,
                rank=score.rank,
                character_name=character.character_name,
                portrait_url=character.portrait_url,
                faction=character.faction,
                realm_slug=character.realm_slug,
                region=character.region,
                level=metrics.level,
                item_level=metrics.average_item_level,
                mythic_plus_rating=metrics.mythic_plus_season_score,
                best_key_level=metrics.mythic_plus_best_run_level,
                completed_quest_count=metrics.completed_quest_count,
                reputation_progress_total=metrics.reputation_progress_total,
                total_score=score.total_score,
                rank_change=_rank_change(score.rank, character.id, previous_ranks),
                daily_delta=score.daily_delta,
                quest_delta=delta.get("completed_quest_count") if delta else None,
                reputation_delta=delta.get("reputation_progress_total") if delta else None,
                polled_at=snapshot.polled_at,
            )
        )

    # Unranked rows sink to the bottom
    views.sort(
        key=lambda v: (v.rank is None, v.rank or 0, -v.total_score, v.character_name)
    )

    return LatestLeaderboardView(
        snapshot_date=snapshot_date,
        rows=views,
        last_job=last_job,
        score_profile=ScoreProfileView(
            name=profile.name,
            version=profile.version,
            weights=profile.weights,
            normalization_caps=profile.normalization_caps,
        ),
    )
