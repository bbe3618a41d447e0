"""Ladderwatch — Delta Engine.

Diffs two consecutive NormalizedMetrics for one character. A first-ever
observation is diffed against an all-zero baseline, so its deltas equal the
current values; milestones are only raised against a real previous
snapshot. Thresholds are one-sided: regressions show up numerically only.
"""

import math
from typing import List, Optional

from ladderwatch.core.metric_registry import DELTA_METRICS
from ladderwatch.models.metrics_models import MetricDelta, MetricDeltaValues, NormalizedMetrics

ITEM_LEVEL_MILESTONE = 5
QUEST_MILESTONE = 10
REPUTATION_MILESTONE = 1000
ENCOUNTER_MILESTONE = 1
BEST_KEY_MILESTONE = 1
RATING_MILESTONE = 50
ACHIEVEMENT_MILESTONE = 5


def _round2(value: float) -> float:
    return round(value, 2)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _fmt(value: float) -> str:
    """12.0 → '12', 12.5 → '12.5'."""
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def milestones_for(deltas: MetricDeltaValues) -> List[str]:
    lines: List[str] = []
    if deltas.level > 0:
        lines.append(f"Level +{_fmt(deltas.level)}")
    if deltas.average_item_level >= ITEM_LEVEL_MILESTONE:
        lines.append(f"Item level +{deltas.average_item_level:.1f}")
    if deltas.completed_quest_count >= QUEST_MILESTONE:
        lines.append(f"Completed quests +{_fmt(deltas.completed_quest_count)}")
    if deltas.reputation_progress_total >= REPUTATION_MILESTONE:
        lines.append(
            f"Reputation progress +{_round_half_up(deltas.reputation_progress_total)}"
        )
    if deltas.encounter_kill_score >= ENCOUNTER_MILESTONE:
        lines.append(f"Encounter progress +{_fmt(deltas.encounter_kill_score)}")
    if deltas.mythic_plus_best_run_level >= BEST_KEY_MILESTONE:
        lines.append(f"Mythic+ best key +{_fmt(deltas.mythic_plus_best_run_level)}")
    if deltas.mythic_plus_season_score >= RATING_MILESTONE:
        lines.append(f"Mythic+ rating +{_round_half_up(deltas.mythic_plus_season_score)}")
    if deltas.achievement_points >= ACHIEVEMENT_MILESTONE:
        lines.append(f"Achievement points +{_fmt(deltas.achievement_points)}")
    return lines


def build_delta(
    previous: Optional[NormalizedMetrics], current: NormalizedMetrics
) -> MetricDelta:
    values = {}
    for name in DELTA_METRICS:
        before = getattr(previous, name) if previous is not None else 0
        values[name] = _round2(getattr(current, name) - before)
    deltas = MetricDeltaValues(**values)

    return MetricDelta(
        from_fetched_at=previous.fetched_at if previous is not None else None,
        to_fetched_at=current.fetched_at,
        deltas=deltas,
        milestones=milestones_for(deltas) if previous is not None else [],
    )
