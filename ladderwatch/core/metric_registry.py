"""Ladderwatch — Unified Metric Registry.

Defines the canonical progression metrics and the closed set of scoring
categories. The delta engine, score engine and digest all read from here so
a metric is named in exactly one place.
"""

from enum import Enum
from typing import Dict, Tuple


class MetricType(str, Enum):
    """How a metric is categorised."""

    CHARACTER = "character"  # level, item level
    COLLECTION = "collection"  # achievements, statistics, quests
    REPUTATION = "reputation"
    ENCOUNTER = "encounter"  # raid / dungeon boss kills
    MYTHIC_PLUS = "mythic_plus"  # ranked-dungeon ladder


class MetricDefinition:
    """Describes a single metric."""

    def __init__(
        self, name: str, metric_type: MetricType, unit: str = "", description: str = ""
    ):
        self.name = name
        self.metric_type = metric_type
        self.unit = unit
        self.description = description

    def __repr__(self) -> str:
        return f"<Metric {self.name} ({self.metric_type.value})>"


# ─────────────────────────────────────────────
# PROGRESSION METRICS — fields of NormalizedMetrics
# ─────────────────────────────────────────────

PROGRESSION_METRICS: Dict[str, MetricDefinition] = {
    "level": MetricDefinition("level", MetricType.CHARACTER, "level", "Character level"),
    "average_item_level": MetricDefinition(
        "average_item_level", MetricType.CHARACTER, "ilvl", "Equipped item level"
    ),
    "achievement_points": MetricDefinition(
        "achievement_points", MetricType.COLLECTION, "points", "Achievement points"
    ),
    "statistics_composite_value": MetricDefinition(
        "statistics_composite_value",
        MetricType.COLLECTION,
        "count",
        "Sum of tracked statistic values",
    ),
    "completed_quest_count": MetricDefinition(
        "completed_quest_count", MetricType.COLLECTION, "count", "Completed quests"
    ),
    "reputation_progress_total": MetricDefinition(
        "reputation_progress_total",
        MetricType.REPUTATION,
        "rep",
        "Summed standing progress across factions",
    ),
    "encounter_kill_score": MetricDefinition(
        "encounter_kill_score", MetricType.ENCOUNTER, "kills", "Encounter kill score"
    ),
    "mythic_plus_runs_count": MetricDefinition(
        "mythic_plus_runs_count", MetricType.MYTHIC_PLUS, "count", "Best-run entries"
    ),
    "mythic_plus_best_run_level": MetricDefinition(
        "mythic_plus_best_run_level", MetricType.MYTHIC_PLUS, "level", "Best key level"
    ),
    "mythic_plus_season_score": MetricDefinition(
        "mythic_plus_season_score", MetricType.MYTHIC_PLUS, "rating", "Season rating"
    ),
}

# Order in which deltas are computed and stored
DELTA_METRICS: Tuple[str, ...] = tuple(PROGRESSION_METRICS.keys())


# ─────────────────────────────────────────────
# SCORE CATEGORIES — weight key → cap key(s)
# ─────────────────────────────────────────────

SCORE_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "level": ("level",),
    "item_level": ("average_item_level",),
    "mythic_plus_rating": ("mythic_plus_season_score",),
    "best_key": ("mythic_plus_best_run_level",),
    "quests": ("completed_quest_count",),
    "reputations": ("reputation_progress_total",),
    "encounters": ("encounter_kill_score",),
    # Averaged from two independently normalized percentages
    "achievements_statistics": ("achievement_points", "statistics_composite_value"),
}
