"""Ladderwatch — Progression Metric Schemas.

Raw provider bundle in, normalized metrics / deltas / score breakdown out.
These are stored as JSON on the snapshot, delta, and score rows.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from ladderwatch.models.config_models import TrackedCharacterConfig


class RawCharacterBundle(BaseModel):
    """Independently fetched sub-payloads for one character.

    Any payload may be missing; `endpoint_errors` maps the sub-endpoint name
    to a human-readable reason.
    """

    fetched_at: str
    profile_summary: Optional[Any] = None
    character_media: Optional[Any] = None
    equipment_summary: Optional[Any] = None
    achievements_summary: Optional[Any] = None
    statistics_summary: Optional[Any] = None
    reputations_summary: Optional[Any] = None
    quests_completed: Optional[Any] = None
    encounters_summary: Optional[Any] = None
    mythic_keystone_profile: Optional[Any] = None
    mythic_keystone_season: Optional[Any] = None
    endpoint_errors: Dict[str, str] = {}

    def progress_payload(self) -> Dict[str, Any]:
        """Everything except the profile summary, kept for audit."""
        return self.model_dump(exclude={"profile_summary", "fetched_at"})


class ReputationMetric(BaseModel):
    faction_id: Optional[Union[int, float]] = None
    name: Optional[str] = None
    progress: float = 0.0
    raw_value: Optional[float] = None
    max_value: Optional[float] = None


class NormalizedMetrics(BaseModel):
    """Fixed-shape per-snapshot metrics record."""

    schema_version: int = 1
    fetched_at: str = ""
    region: str = ""
    realm_slug: str = ""
    character_name: str = ""
    level: float = 0.0
    average_item_level: float = 0.0
    achievement_points: float = 0.0
    statistics_composite_value: float = 0.0
    completed_quest_count: float = 0.0
    reputation_progress_total: float = 0.0
    reputation_breakdown: List[ReputationMetric] = []
    encounter_kill_score: float = 0.0
    encounter_ids_completed: List[Union[int, float]] = []
    mythic_plus_runs_count: float = 0.0
    mythic_plus_best_run_level: float = 0.0
    mythic_plus_season_score: float = 0.0
    warnings: List[str] = []


class MetricDeltaValues(BaseModel):
    level: float = 0.0
    average_item_level: float = 0.0
    achievement_points: float = 0.0
    statistics_composite_value: float = 0.0
    completed_quest_count: float = 0.0
    reputation_progress_total: float = 0.0
    encounter_kill_score: float = 0.0
    mythic_plus_runs_count: float = 0.0
    mythic_plus_best_run_level: float = 0.0
    mythic_plus_season_score: float = 0.0


class MetricDelta(BaseModel):
    from_fetched_at: Optional[str] = None
    to_fetched_at: str = ""
    deltas: MetricDeltaValues = MetricDeltaValues()
    milestones: List[str] = []


class CategoryValues(BaseModel):
    """One value per scoring category."""

    level: float = 0.0
    item_level: float = 0.0
    mythic_plus_rating: float = 0.0
    best_key: float = 0.0
    quests: float = 0.0
    reputations: float = 0.0
    encounters: float = 0.0
    achievements_statistics: float = 0.0


class ScoreBreakdown(BaseModel):
    total_score: float = 0.0
    total_weight: float = 0.0
    normalized_categories: CategoryValues = CategoryValues()
    weighted_contributions: CategoryValues = CategoryValues()
    warnings: List[str] = []


# ─────────────────────────────────────────────
# JOB RESULTS
# ─────────────────────────────────────────────


class PollCharacterResult(BaseModel):
    character: TrackedCharacterConfig
    ok: bool
    snapshot_id: Optional[int] = None
    score: Optional[float] = None
    warnings: List[str] = []
    error: Optional[str] = None


class PollJobResult(BaseModel):
    job_run_id: Optional[int] = None
    status: str = ""
    snapshot_date: str
    processed: int = 0
    success_count: int = 0
    warning_count: int = 0
    error_count: int = 0
    results: List[PollCharacterResult] = []


class RebuildJobResult(BaseModel):
    job_run_id: Optional[int] = None
    rebuilt: int = 0
    snapshot_date: Optional[str] = None
    score_profile_id: Optional[int] = None
