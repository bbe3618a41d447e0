"""Ladderwatch — Leaderboard read-view schemas."""

from datetime import datetime
from typing import List, Literal, Optional, Union
from pydantic import BaseModel

from ladderwatch.models.config_models import ScoreNormalizationCaps, ScoreWeights

# Positive = climbed. "NEW" when the character has no row on the previous date.
RankChange = Union[int, Literal["NEW"], None]


class LeaderboardRowView(BaseModel):
    tracked_character_id: int
    rank: Optional[int] = None
    character_name: str
    portrait_url: Optional[str] = None
    faction: Optional[str] = None
    realm_slug: str
    region: str
    level: float = 0.0
    item_level: float = 0.0
    mythic_plus_rating: float = 0.0
    best_key_level: float = 0.0
    completed_quest_count: float = 0.0
    reputation_progress_total: float = 0.0
    total_score: float
    rank_change: RankChange = "NEW"
    daily_delta: float = 0.0
    quest_delta: Optional[float] = None
    reputation_delta: Optional[float] = None
    polled_at: Optional[datetime] = None


class LastJobView(BaseModel):
    status: str
    finished_at: Optional[datetime] = None


class ScoreProfileView(BaseModel):
    name: str
    version: int
    weights: ScoreWeights
    normalization_caps: ScoreNormalizationCaps


class LatestLeaderboardView(BaseModel):
    snapshot_date: Optional[str] = None
    rows: List[LeaderboardRowView] = []
    last_job: Optional[LastJobView] = None
    score_profile: Optional[ScoreProfileView] = None
