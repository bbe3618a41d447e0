"""Ladderwatch — Roster & Score Profile Tables."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class TrackedCharacter(SQLModel, table=True):
    """One tracked character.

    Rows are never hard-deleted: removing a character from config flips
    `active` to False so its historical snapshots stay joinable.
    """

    __tablename__ = "tracked_characters"
    __table_args__ = (
        UniqueConstraint(
            "region",
            "realm_slug",
            "character_name_lower",
            name="uq_tracked_character_identity",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    region: str = Field(index=True, description="US | EU")
    realm_slug: str = Field(index=True)
    character_name: str = Field(description="Display name as configured")
    character_name_lower: str = Field(index=True)
    faction: str = Field(description="HORDE | ALLIANCE")
    active: bool = Field(default=True, index=True)
    portrait_url: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def identity_key(self) -> str:
        return f"{self.region}:{self.realm_slug}:{self.character_name_lower}"

    @property
    def label(self) -> str:
        return f"{self.character_name} ({self.region}/{self.realm_slug})"


class ScoreProfile(SQLModel, table=True):
    """Append-only weight/cap/filter profile.

    `source_hash` is the sha256 of the canonical profile JSON, so an identical
    profile file maps onto the existing row instead of a new one.
    """

    __tablename__ = "score_profiles"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    version: int = Field(default=1)
    source_hash: str = Field(unique=True, index=True)
    weights_json: str = Field(default="{}")
    caps_json: str = Field(default="{}")
    filters_json: str = Field(default="{}")
    is_active: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
