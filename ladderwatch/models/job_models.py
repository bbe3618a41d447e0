"""Ladderwatch — Job Audit & Delivery Tables."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class JobType(str, Enum):
    POLL = "POLL"
    DIGEST = "DIGEST"
    REBUILD_LEADERBOARD = "REBUILD_LEADERBOARD"


class JobStatus(str, Enum):
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"
    FAILED = "FAILED"


class DeliveryStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class MessageType(str, Enum):
    DAILY_DIGEST = "DAILY_DIGEST"


class JobRun(SQLModel, table=True):
    """Audit record of one job execution.

    Created RUNNING before any work; status, finished_at and details_json
    are written once when the job reaches a terminal state.
    """

    __tablename__ = "job_runs"

    id: Optional[int] = Field(default=None, primary_key=True)
    job_type: str = Field(index=True, description="POLL | DIGEST | REBUILD_LEADERBOARD")
    status: str = Field(default=JobStatus.RUNNING.value, index=True)
    snapshot_date: Optional[str] = Field(default=None, index=True)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = Field(default=None)
    details_json: str = Field(default="{}")


class TelegramDelivery(SQLModel, table=True):
    """Delivery slot: at most one SENT message per (chat, type, date)."""

    __tablename__ = "telegram_deliveries"
    __table_args__ = (
        UniqueConstraint(
            "chat_id",
            "message_type",
            "delivery_date",
            name="uq_telegram_delivery_slot",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    chat_id: str = Field(index=True)
    message_type: str = Field(default=MessageType.DAILY_DIGEST.value)
    delivery_date: str = Field(index=True, description="YYYY-MM-DD (UTC)")
    status: str = Field(default=DeliveryStatus.PENDING.value, index=True)
    job_run_id: Optional[int] = Field(default=None, foreign_key="job_runs.id")
    message_text: str = Field(default="")
    telegram_message_id: Optional[str] = Field(default=None)
    sent_at: Optional[datetime] = Field(default=None)
    error_json: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
