"""Ladderwatch — Leaderboard persistence shared by the poll and rebuild jobs.

Profile activation, roster sync, score upsert and the ranking pass. Each
of the multi-row writes here lands in a single commit.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlmodel import Session, select

from ladderwatch.core.logging import get_logger
from ladderwatch.models.config_models import ScoreProfileConfig, TrackedCharacterConfig
from ladderwatch.models.metrics_models import MetricDelta, ScoreBreakdown
from ladderwatch.models.roster_models import ScoreProfile, TrackedCharacter
from ladderwatch.models.snapshot_models import CharacterSnapshot, LeaderboardScore

logger = get_logger("analyzer.leaderboard")


# ─────────────────────────────────────────────
# SCORE PROFILE
# ─────────────────────────────────────────────


def profile_source_hash(profile: ScoreProfileConfig) -> str:
    canonical = json.dumps(
        profile.model_dump(by_alias=True), sort_keys=True, separators=(",", ":")
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def upsert_active_profile(session: Session, profile: ScoreProfileConfig) -> ScoreProfile:
    """Reuse or create the profile row, then make it the only active one."""
    source_hash = profile_source_hash(profile)
    row = session.exec(
        select(ScoreProfile).where(ScoreProfile.source_hash == source_hash)
    ).first()

    if row is None:
        row = ScoreProfile(
            name=profile.name,
            version=profile.version,
            source_hash=source_hash,
            weights_json=profile.weights.model_dump_json(by_alias=True),
            caps_json=profile.normalization_caps.model_dump_json(by_alias=True),
            filters_json=profile.filters.model_dump_json(by_alias=True),
            is_active=False,
        )
        session.add(row)
        session.flush()
        logger.info(f"🆕 Registered score profile '{profile.name}' v{profile.version}")

    for other in session.exec(select(ScoreProfile).where(ScoreProfile.is_active == True)).all():  # noqa: E712
        if other.id != row.id:
            other.is_active = False
            session.add(other)
    row.is_active = True
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def get_active_profile(session: Session) -> Optional[ScoreProfile]:
    return session.exec(
        select(ScoreProfile).where(ScoreProfile.is_active == True)  # noqa: E712
    ).first()


def profile_config_from_row(row: ScoreProfile) -> ScoreProfileConfig:
    return ScoreProfileConfig(
        name=row.name,
        version=row.version,
        weights=json.loads(row.weights_json),
        normalization_caps=json.loads(row.caps_json),
        filters=json.loads(row.filters_json),
    )


# ─────────────────────────────────────────────
# ROSTER
# ─────────────────────────────────────────────


def sync_roster(
    session: Session, characters: List[TrackedCharacterConfig]
) -> Dict[str, TrackedCharacter]:
    """Upsert every configured character; deactivate the ones no longer configured.

    Returns configured identity key → row.
    """
    now = datetime.now(timezone.utc)
    existing = {row.identity_key: row for row in session.exec(select(TrackedCharacter)).all()}
    configured: Dict[str, TrackedCharacter] = {}

    for character in characters:
        key = character.identity_key
        row = existing.get(key)
        if row is None:
            row = TrackedCharacter(
                region=character.region,
                realm_slug=character.realm_slug,
                character_name=character.character_name,
                character_name_lower=character.character_name.lower(),
                faction=character.faction,
                active=character.active,
                notes=character.notes,
            )
        else:
            row.character_name = character.character_name
            row.faction = character.faction
            row.active = character.active
            row.notes = character.notes
            row.updated_at = now
        session.add(row)
        configured[key] = row

    removed = 0
    for key, row in existing.items():
        if key not in configured and row.active:
            row.active = False
            row.updated_at = now
            session.add(row)
            removed += 1

    session.commit()
    for row in configured.values():
        session.refresh(row)

    if removed:
        logger.info(f"🗃️ Soft-removed {removed} character(s) no longer in config")
    return configured


# ─────────────────────────────────────────────
# SCORES
# ─────────────────────────────────────────────


def previous_snapshot(
    session: Session, tracked_character_id: int, snapshot_date: str
) -> Optional[CharacterSnapshot]:
    """Most recent snapshot strictly before `snapshot_date`."""
    return session.exec(
        select(CharacterSnapshot)
        .where(
            CharacterSnapshot.tracked_character_id == tracked_character_id,
            CharacterSnapshot.snapshot_date < snapshot_date,
        )
        .order_by(CharacterSnapshot.snapshot_date.desc())
    ).first()


def previous_total(
    session: Session,
    tracked_character_id: int,
    previous: Optional[CharacterSnapshot],
    score_profile_id: int,
) -> float:
    if previous is None:
        return 0.0
    row = session.exec(
        select(LeaderboardScore).where(
            LeaderboardScore.tracked_character_id == tracked_character_id,
            LeaderboardScore.snapshot_id == previous.id,
            LeaderboardScore.score_profile_id == score_profile_id,
        )
    ).first()
    return row.total_score if row else 0.0


def upsert_score(
    session: Session,
    snapshot: CharacterSnapshot,
    score_profile_id: int,
    breakdown: ScoreBreakdown,
    daily_delta: float,
    metric_delta: Optional[MetricDelta],
    warnings: List[str],
) -> LeaderboardScore:
    """Stage the score row for (character, snapshot, profile). Caller commits."""
    row = session.exec(
        select(LeaderboardScore).where(
            LeaderboardScore.tracked_character_id == snapshot.tracked_character_id,
            LeaderboardScore.snapshot_id == snapshot.id,
            LeaderboardScore.score_profile_id == score_profile_id,
        )
    ).first()
    if row is None:
        row = LeaderboardScore(
            tracked_character_id=snapshot.tracked_character_id,
            snapshot_id=snapshot.id,
            score_profile_id=score_profile_id,
            snapshot_date=snapshot.snapshot_date,
        )

    payload = breakdown.model_dump(mode="json")
    payload["warnings"] = warnings
    payload["metric_delta"] = metric_delta.model_dump(mode="json") if metric_delta else None

    row.total_score = breakdown.total_score
    row.daily_delta = daily_delta
    row.breakdown_json = json.dumps(payload)
    row.updated_at = datetime.now(timezone.utc)
    session.add(row)
    return row


# ─────────────────────────────────────────────
# RANKING
# ─────────────────────────────────────────────


def rank_sort_key(total_score: float, daily_delta: float, character_name: str):
    """Score desc, then daily delta desc, then name asc."""
    return (-total_score, -daily_delta, character_name.lower(), character_name)


def rank_leaderboard(session: Session, snapshot_date: str, score_profile_id: int) -> int:
    """Assign ranks 1..N among active characters for one date + profile.

    Inactive characters' rows lose their rank. All updates are committed
    together. Returns N.
    """
    rows = session.exec(
        select(LeaderboardScore, TrackedCharacter)
        .join(TrackedCharacter, TrackedCharacter.id == LeaderboardScore.tracked_character_id)
        .where(
            LeaderboardScore.snapshot_date == snapshot_date,
            LeaderboardScore.score_profile_id == score_profile_id,
        )
    ).all()

    active = [(score, character) for score, character in rows if character.active]
    active.sort(
        key=lambda pair: rank_sort_key(
            pair[0].total_score, pair[0].daily_delta, pair[1].character_name
        )
    )

    try:
        for rank, (score, _) in enumerate(active, 1):
            score.rank = rank
            session.add(score)
        for score, character in rows:
            if not character.active and score.rank is not None:
                score.rank = None
                session.add(score)
        session.commit()
    except Exception:
        session.rollback()
        raise

    logger.info(
        f"🏆 Ranked {len(active)} character(s)",
        extra={"snapshot_date": snapshot_date},
    )
    return len(active)
