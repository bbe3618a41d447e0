"""Ladderwatch — Poll Orchestrator.

Runs the daily data flow:
  load config → activate profile → sync roster
  → per character: fetch → normalize → delta → score → store
  → rank

One character failing never aborts the others. The JobRun is created
RUNNING up front and always finalized, even when the job itself blows up.
"""

import json
from typing import Awaitable, Callable, List, Optional

from sqlmodel import Session, select

from ladderwatch.analyzer.delta_engine import build_delta
from ladderwatch.analyzer.job_runs import finish_job_run, start_job_run
from ladderwatch.analyzer.leaderboard import (
    previous_snapshot,
    previous_total,
    rank_leaderboard,
    sync_roster,
    upsert_active_profile,
    upsert_score,
)
from ladderwatch.analyzer.normalizer import extract_portrait_url, normalize_bundle
from ladderwatch.analyzer.score_engine import score_metrics
from ladderwatch.connectors.blizzard.client import BlizzardClient
from ladderwatch.connectors.blizzard.endpoints import make_bundle_fetcher
from ladderwatch.core.config_loader import load_app_config
from ladderwatch.core.dates import parse_snapshot_date, utc_now, utc_today
from ladderwatch.core.exceptions import error_message
from ladderwatch.core.logging import get_logger
from ladderwatch.models.config_models import ScoreProfileConfig, TrackedCharacterConfig
from ladderwatch.models.job_models import JobStatus, JobType
from ladderwatch.models.metrics_models import (
    NormalizedMetrics,
    PollCharacterResult,
    PollJobResult,
    RawCharacterBundle,
)
from ladderwatch.models.roster_models import TrackedCharacter
from ladderwatch.models.snapshot_models import CharacterMetricDelta, CharacterSnapshot

logger = get_logger("analyzer.pipeline")

BundleFetcher = Callable[
    [TrackedCharacterConfig, ScoreProfileConfig], Awaitable[RawCharacterBundle]
]


def derive_status(success_count: int, error_count: int) -> JobStatus:
    if error_count == 0:
        return JobStatus.SUCCESS
    if success_count > 0:
        return JobStatus.PARTIAL_FAILURE
    return JobStatus.FAILED


def _upsert_snapshot(
    session: Session,
    tracked: TrackedCharacter,
    snapshot_date: str,
    bundle: RawCharacterBundle,
    normalized: NormalizedMetrics,
) -> CharacterSnapshot:
    snapshot = session.exec(
        select(CharacterSnapshot).where(
            CharacterSnapshot.tracked_character_id == tracked.id,
            CharacterSnapshot.snapshot_date == snapshot_date,
        )
    ).first()
    if snapshot is None:
        snapshot = CharacterSnapshot(
            tracked_character_id=tracked.id, snapshot_date=snapshot_date
        )

    snapshot.polled_at = utc_now()
    snapshot.raw_profile_json = json.dumps(bundle.profile_summary, default=str)
    snapshot.raw_progress_json = json.dumps(bundle.progress_payload(), default=str)
    snapshot.normalized_json = normalized.model_dump_json()
    snapshot.source_version = normalized.schema_version
    session.add(snapshot)
    session.flush()
    return snapshot


def _upsert_delta(
    session: Session,
    tracked: TrackedCharacter,
    snapshot: CharacterSnapshot,
    previous: Optional[CharacterSnapshot],
    delta,
) -> CharacterMetricDelta:
    row = session.exec(
        select(CharacterMetricDelta).where(
            CharacterMetricDelta.to_snapshot_id == snapshot.id
        )
    ).first()
    if row is None:
        row = CharacterMetricDelta(
            tracked_character_id=tracked.id, to_snapshot_id=snapshot.id
        )
    row.from_snapshot_id = previous.id if previous else None
    row.deltas_json = delta.deltas.model_dump_json()
    row.milestones_json = json.dumps(delta.milestones)
    session.add(row)
    return row


async def _process_character(
    session: Session,
    character: TrackedCharacterConfig,
    tracked: TrackedCharacter,
    profile: ScoreProfileConfig,
    score_profile_id: int,
    snapshot_date: str,
    bundle_fetcher: BundleFetcher,
    warnings: List[str],
) -> PollCharacterResult:
    bundle = await bundle_fetcher(character, profile)
    if not bundle.profile_summary:
        raise RuntimeError(
            "Missing profile summary (character may be private/invalid). "
            f"Endpoint errors: {'; '.join(bundle.endpoint_errors.values())}"
        )

    portrait_url = extract_portrait_url(bundle.character_media)
    if portrait_url:
        tracked.portrait_url = portrait_url
        session.add(tracked)

    normalized = normalize_bundle(bundle, character, profile)
    warnings.extend(normalized.warnings)

    snapshot = _upsert_snapshot(session, tracked, snapshot_date, bundle, normalized)

    previous = previous_snapshot(session, tracked.id, snapshot_date)
    previous_metrics = (
        NormalizedMetrics.model_validate_json(previous.normalized_json)
        if previous
        else None
    )
    delta = build_delta(previous_metrics, normalized)
    _upsert_delta(session, tracked, snapshot, previous, delta)

    breakdown = score_metrics(normalized, profile)
    warnings.extend(w for w in breakdown.warnings if w not in warnings)

    daily_delta = round(
        breakdown.total_score
        - previous_total(session, tracked.id, previous, score_profile_id),
        2,
    )
    upsert_score(
        session, snapshot, score_profile_id, breakdown, daily_delta, delta, list(warnings)
    )
    session.commit()

    return PollCharacterResult(
        character=character,
        ok=True,
        snapshot_id=snapshot.id,
        score=breakdown.total_score,
        warnings=list(warnings),
    )


async def run_poll(
    session: Session,
    snapshot_date: Optional[str] = None,
    characters: Optional[List[TrackedCharacterConfig]] = None,
    profile: Optional[ScoreProfileConfig] = None,
    bundle_fetcher: Optional[BundleFetcher] = None,
) -> PollJobResult:
    """Execute one poll run for `snapshot_date` (today UTC by default)."""
    snapshot_date = parse_snapshot_date(snapshot_date) or utc_today()
    job_run = start_job_run(session, JobType.POLL, snapshot_date)
    client = None

    try:
        if characters is None or profile is None:
            loaded_characters, loaded_profile = load_app_config()
            characters = characters if characters is not None else loaded_characters
            profile = profile if profile is not None else loaded_profile

        profile_row = upsert_active_profile(session, profile)
        roster = sync_roster(session, characters)

        if bundle_fetcher is None:
            client = BlizzardClient()
            bundle_fetcher = make_bundle_fetcher(client)

        results: List[PollCharacterResult] = []
        for character in (c for c in characters if c.active):
            warnings: List[str] = []
            try:
                tracked = roster.get(character.identity_key)
                if tracked is None:
                    raise RuntimeError("Tracked character sync failed to return an ID")
                result = await _process_character(
                    session,
                    character,
                    tracked,
                    profile,
                    profile_row.id,
                    snapshot_date,
                    bundle_fetcher,
                    warnings,
                )
                logger.info(
                    f"✅ {character.label}: score {result.score}",
                    extra={"character": character.identity_key, "snapshot_date": snapshot_date},
                )
            except Exception as e:
                session.rollback()
                logger.error(
                    f"❌ {character.label}: {e}",
                    extra={"character": character.identity_key, "snapshot_date": snapshot_date},
                )
                result = PollCharacterResult(
                    character=character,
                    ok=False,
                    warnings=warnings,
                    error=error_message(e),
                )
            results.append(result)

        rank_leaderboard(session, snapshot_date, profile_row.id)

        success_count = sum(1 for r in results if r.ok)
        error_count = len(results) - success_count
        status = derive_status(success_count, error_count)
        summary = PollJobResult(
            job_run_id=job_run.id,
            status=status.value,
            snapshot_date=snapshot_date,
            processed=len(results),
            success_count=success_count,
            warning_count=sum(len(r.warnings) for r in results),
            error_count=error_count,
            results=results,
        )
        finish_job_run(session, job_run, status, summary.model_dump(mode="json"))
        logger.info(
            f"Poll complete: {success_count}/{len(results)} ok, {error_count} error(s)",
            extra={"job_run_id": job_run.id, "snapshot_date": snapshot_date},
        )
        return summary

    except Exception as e:
        session.rollback()
        finish_job_run(session, job_run, JobStatus.FAILED, {"message": error_message(e)})
        raise
    finally:
        if client is not None:
            await client.close()

