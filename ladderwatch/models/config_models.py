"""Ladderwatch — Static Config Schemas (roster + score profile).

Files on disk use camelCase keys; Python code uses snake_case. Both spellings
are accepted when parsing.
"""

from typing import List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    PositiveInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

Region = Literal["US", "EU"]
Faction = Literal["HORDE", "ALLIANCE"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrackedCharacterConfig(_CamelModel):
    """One roster entry."""

    region: Region
    realm_slug: str = Field(min_length=1)
    character_name: str = Field(min_length=1)
    faction: Faction
    active: bool = True
    notes: Optional[str] = None

    @field_validator("realm_slug")
    @classmethod
    def _normalize_realm(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise ValueError("realmSlug must not be blank")
        return value

    @field_validator("character_name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("characterName must not be blank")
        return value

    @field_validator("notes")
    @classmethod
    def _check_notes(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if len(value) > 500:
            raise ValueError("notes must be at most 500 characters")
        return value

    @property
    def identity_key(self) -> str:
        return f"{self.region}:{self.realm_slug}:{self.character_name.lower()}"

    @property
    def label(self) -> str:
        return f"{self.character_name} ({self.region}/{self.realm_slug})"


class TrackedCharactersFile(_CamelModel):
    """`tracked-characters.json` — rejects duplicate identity keys."""

    version: PositiveInt = 1
    characters: List[TrackedCharacterConfig]

    @model_validator(mode="after")
    def _reject_duplicates(self) -> "TrackedCharactersFile":
        seen: set[str] = set()
        for index, character in enumerate(self.characters):
            key = character.identity_key
            if key in seen:
                raise ValueError(
                    f"Duplicate tracked character entry at characters[{index}]: {key}"
                )
            seen.add(key)
        return self


class ScoreWeights(_CamelModel):
    """Closed set of category weights (non-negative)."""

    level: float = Field(default=40, ge=0)
    item_level: float = Field(default=30, ge=0)
    mythic_plus_rating: float = Field(default=20, ge=0)
    best_key: float = Field(default=10, ge=0)
    quests: float = Field(default=0, ge=0)
    reputations: float = Field(default=0, ge=0)
    encounters: float = Field(default=0, ge=0)
    achievements_statistics: float = Field(default=0, ge=0)


class ScoreNormalizationCaps(_CamelModel):
    """Value at which each metric counts as 100% (positive)."""

    level: float = Field(default=90, gt=0)
    completed_quest_count: float = Field(default=1500, gt=0)
    reputation_progress_total: float = Field(default=250000, gt=0)
    average_item_level: float = Field(default=700, gt=0)
    encounter_kill_score: float = Field(default=500, gt=0)
    mythic_plus_season_score: float = Field(default=4000, gt=0)
    mythic_plus_best_run_level: float = Field(default=20, gt=0)
    achievement_points: float = Field(default=45000, gt=0)
    statistics_composite_value: float = Field(default=25000, gt=0)

    @model_validator(mode="before")
    @classmethod
    def _legacy_aliases(cls, data):
        # Older profile files used maxLevel / maxItemLevel
        if isinstance(data, dict):
            data = dict(data)
            legacy_level = data.pop("maxLevel", None)
            legacy_ilvl = data.pop("maxItemLevel", None)
            if legacy_level is not None and "level" not in data:
                data["level"] = legacy_level
            if (
                legacy_ilvl is not None
                and "averageItemLevel" not in data
                and "average_item_level" not in data
            ):
                data["averageItemLevel"] = legacy_ilvl
        return data


class ScoreFilters(_CamelModel):
    """Allow-lists of provider IDs. Empty list = no filtering."""

    quest_ids: List[NonNegativeInt] = []
    faction_ids: List[NonNegativeInt] = []
    encounter_ids: List[NonNegativeInt] = []
    mythic_season_ids: List[NonNegativeInt] = []
    statistic_ids: List[NonNegativeInt] = []


class ScoreProfileConfig(_CamelModel):
    """`score-profile.json` — weights, caps, and filters in effect."""

    name: str = Field(min_length=1)
    version: PositiveInt = 1
    weights: ScoreWeights = ScoreWeights()
    normalization_caps: ScoreNormalizationCaps = ScoreNormalizationCaps()
    filters: ScoreFilters = ScoreFilters()


DEFAULT_SCORE_PROFILE = ScoreProfileConfig(name="Midnight Default", version=2)
