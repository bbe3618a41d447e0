"""Ladderwatch — Leaderboard Rebuild Job.

Re-scores the latest snapshot date under the configured profile without
touching the provider API, then re-ranks. Run it after editing weights/caps.
"""

import json
from typing import Optional

from sqlmodel import Session, select

from ladderwatch.analyzer.job_runs import finish_job_run, start_job_run
from ladderwatch.analyzer.leaderboard import (
    previous_snapshot,
    previous_total,
    rank_leaderboard,
    upsert_active_profile,
    upsert_score,
)
from ladderwatch.analyzer.score_engine import score_metrics
from ladderwatch.core.config_loader import load_app_config
from ladderwatch.core.exceptions import error_message
from ladderwatch.core.logging import get_logger
from ladderwatch.models.config_models import ScoreProfileConfig
from ladderwatch.models.job_models import JobStatus, JobType
from ladderwatch.models.metrics_models import (
    MetricDelta,
    MetricDeltaValues,
    NormalizedMetrics,
    RebuildJobResult,
)
from ladderwatch.models.roster_models import TrackedCharacter
from ladderwatch.models.snapshot_models import CharacterMetricDelta, CharacterSnapshot

logger = get_logger("analyzer.rebuild")


def _stored_delta(session: Session, snapshot: CharacterSnapshot) -> Optional[MetricDelta]:
    row = session.exec(
        select(CharacterMetricDelta).where(
            CharacterMetricDelta.to_snapshot_id == snapshot.id
        )
    ).first()
    if row is None:
        return None
    return MetricDelta(
        deltas=MetricDeltaValues.model_validate_json(row.deltas_json),
        milestones=json.loads(row.milestones_json),
    )


def latest_snapshot_date(session: Session) -> Optional[str]:
    return session.exec(
        select(CharacterSnapshot.snapshot_date)
        .order_by(CharacterSnapshot.snapshot_date.desc())
        .limit(1)
    ).first()


async def run_rebuild(
    session: Session, profile: Optional[ScoreProfileConfig] = None
) -> RebuildJobResult:
    job_run = start_job_run(session, JobType.REBUILD_LEADERBOARD)

    try:
        if profile is None:
            _, profile = load_app_config()
        profile_row = upsert_active_profile(session, profile)

        snapshot_date = latest_snapshot_date(session)
        if snapshot_date is None:
            finish_job_run(
                session,
                job_run,
                JobStatus.SUCCESS,
                {"message": "No snapshots found. Nothing to rebuild."},
            )
            return RebuildJobResult(job_run_id=job_run.id, rebuilt=0)

        job_run.snapshot_date = snapshot_date
        snapshots = session.exec(
            select(CharacterSnapshot)
            .join(TrackedCharacter, TrackedCharacter.id == CharacterSnapshot.tracked_character_id)
            .where(
                CharacterSnapshot.snapshot_date == snapshot_date,
                TrackedCharacter.active == True,  # noqa: E712
            )
        ).all()

        for snapshot in snapshots:
            metrics = NormalizedMetrics.model_validate_json(snapshot.normalized_json)
            breakdown = score_metrics(metrics, profile)
            previous = previous_snapshot(session, snapshot.tracked_character_id, snapshot_date)
            daily_delta = round(
                breakdown.total_score
                - previous_total(
                    session, snapshot.tracked_character_id, previous, profile_row.id
                ),
                2,
            )
            upsert_score(
                session,
                snapshot,
                profile_row.id,
                breakdown,
                daily_delta,
                _stored_delta(session, snapshot),
                breakdown.warnings,
            )
        session.commit()

        rank_leaderboard(session, snapshot_date, profile_row.id)

        result = RebuildJobResult(
            job_run_id=job_run.id,
            rebuilt=len(snapshots),
            snapshot_date=snapshot_date,
            score_profile_id=profile_row.id,
        )
        finish_job_run(session, job_run, JobStatus.SUCCESS, result.model_dump(mode="json"))
        logger.info(f"🔁 Rebuilt {len(snapshots)} score(s) for {snapshot_date}")
        return result

    except Exception as e:
        session.rollback()
        finish_job_run(session, job_run, JobStatus.FAILED, {"message": error_message(e)})
        raise
