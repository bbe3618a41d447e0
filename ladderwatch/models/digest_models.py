"""Ladderwatch — Digest & Automation Result Schemas."""

from typing import List, Literal, Optional
from pydantic import BaseModel


class DigestPollSummary(BaseModel):
    job_run_id: int
    status: str
    warning_count: Optional[int] = None
    error_count: Optional[int] = None


class DigestLeaderboardRow(BaseModel):
    rank: Optional[int] = None
    character_name: str
    region: str
    realm_slug: str
    total_score: float
    daily_delta: float
    level: float = 0.0
    item_level: float = 0.0
    mythic_plus_rating: float = 0.0
    best_key_level: float = 0.0

    @property
    def label(self) -> str:
        return f"{self.character_name} ({self.region}/{self.realm_slug})"


class DigestMilestoneLine(BaseModel):
    rank: Optional[int] = None
    character_name: str
    region: str
    realm_slug: str
    daily_delta: float
    text: str

    @property
    def label(self) -> str:
        return f"{self.character_name} ({self.region}/{self.realm_slug})"


class DigestData(BaseModel):
    """Everything the formatter needs; `variant` decides which sections render."""

    variant: Literal["standings", "poll_failure"]
    snapshot_date: str
    league_name: str
    poll: DigestPollSummary
    failure_message: Optional[str] = None
    score_profile_name: Optional[str] = None
    score_profile_version: Optional[int] = None
    rows: List[DigestLeaderboardRow] = []
    top_movers: List[DigestLeaderboardRow] = []
    milestones: List[DigestMilestoneLine] = []
    warnings: List[str] = []


class DigestRunResult(BaseModel):
    status: Literal["PREVIEW", "SENT", "SKIPPED_DUPLICATE"]
    mode: Literal["preview", "send"]
    snapshot_date: str
    variant: str
    message_text: str
    job_run_id: Optional[int] = None
    delivery_id: Optional[int] = None
    telegram_message_id: Optional[str] = None
    warnings: List[str] = []
    poll: Optional[DigestPollSummary] = None


class StageOutcome(BaseModel):
    """Outcome of one Daily Automation stage."""

    status: str
    result: Optional[dict] = None
    error: Optional[dict] = None


class DailyAutomationResult(BaseModel):
    # ok reflects only the digest stage; poll_ok is reported separately
    ok: bool
    poll_ok: bool
    dry_run: bool
    snapshot_date: str
    poll: StageOutcome
    digest: StageOutcome
