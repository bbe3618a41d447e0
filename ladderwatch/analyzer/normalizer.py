"""Ladderwatch — Metric Normalizer.

Turns a RawCharacterBundle into NormalizedMetrics. Provider payloads drift
between characters and expansions, so every extractor walks the payload as
plain dicts/lists and checks field-name variants in a fixed priority order.

Never raises: missing or malformed fields degrade to 0 / empty, and every
failed sub-endpoint becomes a warning string.
"""

import math
from typing import Any, Iterable, List, Optional, Set

from ladderwatch.config import settings
from ladderwatch.models.config_models import ScoreProfileConfig, TrackedCharacterConfig
from ladderwatch.models.metrics_models import (
    NormalizedMetrics,
    RawCharacterBundle,
    ReputationMetric,
)

# ─────────────────────────────────────────────
# FIELD-NAME PRIORITY LISTS
# ─────────────────────────────────────────────

LEVEL_FIELDS = ("level", "character_level", "effective_level")
ITEM_LEVEL_FIELDS = (
    "average_item_level",
    "equipped_item_level",
    "averageItemLevel",
    "equippedItemLevel",
)
ITEM_LEVEL_OBJECT_FIELDS = (
    ("average_item_level", "averageItemLevel"),
    ("equipped_item_level", "equippedItemLevel"),
)
ACHIEVEMENT_POINT_FIELDS = ("total_points", "totalPoints", "points")
QUEST_TOTAL_FIELDS = ("total_quests", "completed_quests", "total_completed")
REPUTATION_RAW_FIELDS = ("raw", "value")
REPUTATION_MAX_FIELDS = ("max", "max_value")
ENCOUNTER_COUNT_FIELDS = (
    "completed_count",
    "completedCount",
    "count",
    "kills",
    "total_count",
)
ENCOUNTER_TIMESTAMP_FIELDS = ("last_kill_timestamp", "lastKillTimestamp")
MYTHIC_RATING_FIELDS = ("current_mythic_rating_rating", "mythic_rating")
MYTHIC_RUN_LISTS = (
    "best_runs",
    "current_period_best_runs",
    "season_best_runs",
    "best_keystone_runs",
)
PORTRAIT_PREFERRED_KEYS = (
    "avatar",
    "avatar-raw",
    "avatar-large",
    "avatar-medium",
    "avatar-small",
    "inset",
    "main",
    "main-raw",
)

ENCOUNTER_MAX_DEPTH = 8
STATISTICS_FALLBACK_LIMIT = 200


# ─────────────────────────────────────────────
# GENERIC HELPERS
# ─────────────────────────────────────────────


def as_record(value: Any) -> Optional[dict]:
    return value if isinstance(value, dict) else None


def as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def num(value: Any) -> Optional[float]:
    """Coerce a native number or numeric string; anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            parsed = float(text)
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def first_num(*values: Any) -> Optional[float]:
    """First value that coerces to a number, in priority order."""
    for value in values:
        parsed = num(value)
        if parsed is not None:
            return parsed
    return None


def _fields(record: Optional[dict], names: Iterable[str]) -> List[Any]:
    if record is None:
        return []
    return [record.get(name) for name in names]


def _non_empty_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _collect_numbers(value: Any, out: List[float]) -> None:
    # Depth-first, dict insertion order
    if isinstance(value, bool):
        return
    if isinstance(value, (int, float)):
        if math.isfinite(value):
            out.append(value)
        return
    if isinstance(value, list):
        for item in value:
            _collect_numbers(item, out)
    elif isinstance(value, dict):
        for child in value.values():
            _collect_numbers(child, out)


# ─────────────────────────────────────────────
# EXTRACTORS
# ─────────────────────────────────────────────


def extract_level(profile_summary: Any) -> float:
    p = as_record(profile_summary)
    if p is None:
        return 0
    return first_num(*_fields(p, LEVEL_FIELDS)) or 0


def extract_average_item_level(equipment: Any) -> float:
    eq = as_record(equipment)
    if eq is None:
        return 0

    object_values = []
    for names in ITEM_LEVEL_OBJECT_FIELDS:
        obj = next((as_record(eq.get(n)) for n in names if as_record(eq.get(n))), None)
        object_values.append(obj.get("value") if obj else None)

    direct = first_num(*_fields(eq, ITEM_LEVEL_FIELDS), *object_values)
    if direct:
        return direct

    items = as_list(eq.get("equipped_items")) or as_list(eq.get("equippedItems"))
    total = 0.0
    count = 0
    for item in items:
        record = as_record(item) or {}
        level_record = as_record(record.get("level")) or as_record(record.get("item_level")) or {}
        level = first_num(
            record.get("level"),
            record.get("item_level"),
            level_record.get("value"),
            (as_record(level_record.get("display_string")) or {}).get("value"),
        )
        if level is not None:
            total += level
            count += 1
    return total / count if count > 0 else 0


def extract_achievement_points(achievements: Any) -> float:
    a = as_record(achievements)
    if a is None:
        return 0
    return first_num(*_fields(a, ACHIEVEMENT_POINT_FIELDS)) or 0


def extract_completed_quest_count(quests: Any) -> float:
    q = as_record(quests)
    if q is None:
        return 0
    explicit = first_num(*_fields(q, QUEST_TOTAL_FIELDS))
    if explicit is not None:
        return explicit
    return len(as_list(q.get("quests")))


def extract_statistics_composite(statistics: Any, statistic_ids: List[int]) -> float:
    """Crude sum of numeric leaves unless a curated statistic-ID list exists."""
    if statistics is None:
        return 0

    if not statistic_ids:
        numbers: List[float] = []
        _collect_numbers(statistics, numbers)
        return sum(max(0, v) for v in numbers[:STATISTICS_FALLBACK_LIMIT])

    wanted = set(statistic_ids)
    total = 0.0

    def walk(node: Any) -> None:
        nonlocal total
        if isinstance(node, list):
            for child in node:
                walk(child)
            return
        record = as_record(node)
        if record is None:
            return
        stat_id = num(record.get("id"))
        if stat_id is not None and stat_id in wanted:
            total += first_num(record.get("quantity"), record.get("value")) or 0
        for child in record.values():
            walk(child)

    walk(statistics)
    return total


def extract_reputations(reputations: Any, faction_ids: List[int]) -> List[ReputationMetric]:
    entries = as_list((as_record(reputations) or {}).get("reputations"))
    allowed = set(faction_ids)

    breakdown: List[ReputationMetric] = []
    for entry in entries:
        record = as_record(entry) or {}
        faction = as_record(record.get("faction")) or {}
        standing = as_record(record.get("standing")) or {}
        faction_id = num(faction.get("id"))

        # Entries without a faction id are never filtered out
        if allowed and faction_id is not None and faction_id not in allowed:
            continue

        raw_value = first_num(
            *_fields(standing, REPUTATION_RAW_FIELDS),
            *_fields(record, REPUTATION_RAW_FIELDS),
        ) or 0
        max_value = first_num(
            *_fields(standing, REPUTATION_MAX_FIELDS), record.get("max")
        ) or 0
        if max_value > 0:
            progress = max(0, min(max_value, raw_value))
        else:
            progress = max(0, raw_value)

        name = faction.get("name")
        breakdown.append(
            ReputationMetric(
                faction_id=faction_id,
                name=name if isinstance(name, str) else None,
                progress=progress,
                raw_value=raw_value or None,
                max_value=max_value or None,
            )
        )
    return breakdown


def extract_encounters(encounters: Any, encounter_ids: List[int]) -> tuple[float, List[float]]:
    """Walk the encounter tree looking for id + kill-signal nodes.

    Each matching node adds max(1, count) to the score; only the set of
    completed IDs is deduplicated.
    """
    allowed = set(encounter_ids)
    completed: List[float] = []
    seen: Set[float] = set()
    score = 0.0

    def visit(node: Any, depth: int = 0) -> None:
        nonlocal score
        if depth > ENCOUNTER_MAX_DEPTH:
            return
        if isinstance(node, list):
            for child in node:
                visit(child, depth + 1)
            return
        record = as_record(node)
        if record is None:
            return

        encounter_id = first_num(
            record.get("id"), (as_record(record.get("encounter")) or {}).get("id")
        )
        count = first_num(*_fields(record, ENCOUNTER_COUNT_FIELDS))
        has_timestamp = any(
            record.get(name) is not None for name in ENCOUNTER_TIMESTAMP_FIELDS
        )

        if encounter_id is not None and (count is not None or has_timestamp):
            if not allowed or encounter_id in allowed:
                if encounter_id not in seen:
                    seen.add(encounter_id)
                    completed.append(encounter_id)
                score += max(1, count if count is not None else 1)

        for child in record.values():
            if isinstance(child, (dict, list)):
                visit(child, depth + 1)

    visit(encounters)
    return score, completed


def extract_mythic_plus(profile: Any, season: Any) -> tuple[float, float, float]:
    """Return (best_run_level, runs_count, season_score) across both sources."""
    best_level = 0.0
    runs_count = 0
    season_score = 0.0

    for payload in (profile, season):
        record = as_record(payload)
        if not record:
            continue

        rating = (as_record(record.get("current_mythic_rating")) or {}).get("rating")
        season_score = max(
            season_score,
            first_num(rating, *_fields(record, MYTHIC_RATING_FIELDS)) or 0,
        )

        runs = [run for key in MYTHIC_RUN_LISTS for run in as_list(record.get(key))]
        runs_count += len(runs)
        for run in runs:
            run_record = as_record(run) or {}
            level = first_num(run_record.get("keystone_level"), run_record.get("level"))
            best_level = max(best_level, level or 0)

    return best_level, runs_count, season_score


def extract_portrait_url(character_media: Any) -> Optional[str]:
    """Pick the best avatar-like asset URL from a character-media payload."""
    media = as_record(character_media)
    if media is None:
        return None

    urls_by_key: dict[str, str] = {}
    for asset_value in as_list(media.get("assets")):
        asset = as_record(asset_value)
        if asset is None:
            continue
        key = _non_empty_str(asset.get("key"))
        if not key:
            continue
        value_record = as_record(asset.get("value")) or {}
        href_record = as_record(asset.get("href")) or {}
        url = next(
            (
                candidate
                for candidate in (
                    _non_empty_str(asset.get("value")),
                    _non_empty_str(asset.get("url")),
                    _non_empty_str(value_record.get("href")),
                    _non_empty_str(value_record.get("url")),
                    _non_empty_str(href_record.get("href")),
                    _non_empty_str(href_record.get("url")),
                )
                if candidate
            ),
            None,
        )
        if url:
            urls_by_key[key.lower()] = url

    for key in PORTRAIT_PREFERRED_KEYS:
        if key in urls_by_key:
            return urls_by_key[key]
    for key, url in urls_by_key.items():
        if key.startswith("avatar"):
            return url
    return next(iter(urls_by_key.values()), None)


# ─────────────────────────────────────────────
# ENTRY POINT
# ─────────────────────────────────────────────


def normalize_bundle(
    bundle: RawCharacterBundle,
    character: TrackedCharacterConfig,
    profile: ScoreProfileConfig,
) -> NormalizedMetrics:
    """Normalize one character's raw bundle under the given profile's filters."""
    warnings = [
        message
        for message in bundle.endpoint_errors.values()
        if isinstance(message, str) and message
    ]
    filters = profile.filters

    reputation = extract_reputations(bundle.reputations_summary, filters.faction_ids)
    kill_score, encounter_ids = extract_encounters(
        bundle.encounters_summary, filters.encounter_ids
    )
    best_level, runs_count, season_score = extract_mythic_plus(
        bundle.mythic_keystone_profile, bundle.mythic_keystone_season
    )

    return NormalizedMetrics(
        schema_version=settings.normalized_schema_version,
        fetched_at=bundle.fetched_at,
        region=character.region,
        realm_slug=character.realm_slug,
        character_name=character.character_name,
        level=extract_level(bundle.profile_summary),
        average_item_level=extract_average_item_level(bundle.equipment_summary),
        achievement_points=extract_achievement_points(bundle.achievements_summary),
        statistics_composite_value=extract_statistics_composite(
            bundle.statistics_summary, filters.statistic_ids
        ),
        completed_quest_count=extract_completed_quest_count(bundle.quests_completed),
        reputation_progress_total=sum(r.progress for r in reputation),
        reputation_breakdown=reputation,
        encounter_kill_score=kill_score,
        encounter_ids_completed=encounter_ids,
        mythic_plus_runs_count=runs_count,
        mythic_plus_best_run_level=best_level,
        mythic_plus_season_score=season_score,
        warnings=warnings,
    )
