"""Ladderwatch — Snapshot, Delta & Leaderboard Tables.

One snapshot per character per UTC day; re-polling the same day overwrites
the row in place. Deltas hang off the "to" snapshot, scores off the
(character, snapshot, profile) triple.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class CharacterSnapshot(SQLModel, table=True):
    __tablename__ = "character_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "tracked_character_id",
            "snapshot_date",
            name="uq_character_snapshot_day",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tracked_character_id: int = Field(foreign_key="tracked_characters.id", index=True)
    snapshot_date: str = Field(index=True, description="YYYY-MM-DD (UTC)")
    polled_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raw_profile_json: str = Field(default="null", description="Profile summary payload")
    raw_progress_json: str = Field(
        default="{}", description="All other sub-payloads plus endpoint errors"
    )
    normalized_json: str = Field(default="{}", description="NormalizedMetrics")
    source_version: int = Field(default=1, description="Normalizer schema version")


class CharacterMetricDelta(SQLModel, table=True):
    __tablename__ = "character_metric_deltas"

    id: Optional[int] = Field(default=None, primary_key=True)
    tracked_character_id: int = Field(foreign_key="tracked_characters.id", index=True)
    from_snapshot_id: Optional[int] = Field(
        default=None, foreign_key="character_snapshots.id"
    )
    to_snapshot_id: int = Field(foreign_key="character_snapshots.id", unique=True)
    deltas_json: str = Field(default="{}")
    milestones_json: str = Field(default="[]")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class LeaderboardScore(SQLModel, table=True):
    """Score of one snapshot under one profile.

    `rank` is only set for characters that were active when the ranking
    pass ran for this date and profile.
    """

    __tablename__ = "leaderboard_scores"
    __table_args__ = (
        UniqueConstraint(
            "tracked_character_id",
            "snapshot_id",
            "score_profile_id",
            name="uq_leaderboard_score",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tracked_character_id: int = Field(foreign_key="tracked_characters.id", index=True)
    snapshot_id: int = Field(foreign_key="character_snapshots.id", index=True)
    score_profile_id: int = Field(foreign_key="score_profiles.id", index=True)
    snapshot_date: str = Field(index=True, description="YYYY-MM-DD (UTC)")
    total_score: float = Field(default=0.0)
    daily_delta: float = Field(default=0.0)
    breakdown_json: str = Field(default="{}")
    rank: Optional[int] = Field(default=None, index=True)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
