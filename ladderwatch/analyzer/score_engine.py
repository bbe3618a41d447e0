"""Ladderwatch — Score Engine.

Maps NormalizedMetrics + a score profile onto a 0–100 composite:

    pct_c   = clamp(value / cap × 100, 0, 100)
    total   = round(Σ(pct_c / 100 × w_c) / Σw × 100, 2)

Pure; always returns a breakdown.
"""

import math

from ladderwatch.core.metric_registry import SCORE_CATEGORIES
from ladderwatch.models.config_models import ScoreProfileConfig
from ladderwatch.models.metrics_models import (
    CategoryValues,
    NormalizedMetrics,
    ScoreBreakdown,
)

ZERO_WEIGHT_WARNING = "Score profile total weight is zero. Returning zero score."


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalized_percent(value: float, cap: float) -> float:
    """Percent of cap reached, in [0, 100]. Non-positive or non-finite cap → 0."""
    if not math.isfinite(value) or not math.isfinite(cap) or cap <= 0:
        return 0.0
    return clamp(value / cap * 100, 0, 100)


def score_metrics(metrics: NormalizedMetrics, profile: ScoreProfileConfig) -> ScoreBreakdown:
    warnings = list(metrics.warnings)
    caps = profile.normalization_caps
    weights = profile.weights

    categories = {}
    for category, cap_keys in SCORE_CATEGORIES.items():
        percents = [
            normalized_percent(getattr(metrics, key), getattr(caps, key))
            for key in cap_keys
        ]
        categories[category] = clamp(sum(percents) / len(percents), 0, 100)

    contributions = {
        category: pct / 100 * getattr(weights, category)
        for category, pct in categories.items()
    }

    total_weight = sum(getattr(weights, category) for category in SCORE_CATEGORIES)
    if total_weight <= 0:
        warnings.append(ZERO_WEIGHT_WARNING)
        total_score = 0.0
    else:
        total_score = round(sum(contributions.values()) / total_weight * 100, 2)

    return ScoreBreakdown(
        total_score=total_score,
        total_weight=total_weight,
        normalized_categories=CategoryValues(**categories),
        weighted_contributions=CategoryValues(**contributions),
        warnings=warnings,
    )
