"""Ladderwatch — Static Config Loader.

Reads `tracked-characters.json` and `score-profile.json` from CONFIG_DIR.
Any problem (missing file, bad JSON, schema violation, duplicate roster
entry) is raised as ConfigValidationError, which is fatal for a poll run.
"""

import json
from pathlib import Path
from typing import Optional, Tuple

from pydantic import ValidationError

from ladderwatch.config import settings
from ladderwatch.core.exceptions import ConfigValidationError
from ladderwatch.core.logging import get_logger
from ladderwatch.models.config_models import (
    DEFAULT_SCORE_PROFILE,
    ScoreProfileConfig,
    TrackedCharacterConfig,
    TrackedCharactersFile,
)

logger = get_logger("config_loader")


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(p) for p in err.get("loc", ())) or "(root)"
        parts.append(f"{location}: {err.get('msg')}")
    return "; ".join(parts)


def _read_json(path: Path) -> object:
    if not path.exists():
        raise ConfigValidationError(
            f"Config file not found: {path}", {"path": str(path)}
        )
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigValidationError(
            f"Config file is not valid JSON: {path} ({e})", {"path": str(path)}
        )
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigValidationError(
            f"Config file could not be read: {path} ({e})", {"path": str(path)}
        )


def load_tracked_characters(path: Path) -> list[TrackedCharacterConfig]:
    raw = _read_json(path)
    try:
        parsed = TrackedCharactersFile.model_validate(raw)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Invalid tracked characters config {path.name}: "
            f"{_format_validation_error(e)}",
            {"path": str(path)},
        )
    return parsed.characters


def load_score_profile(path: Path) -> ScoreProfileConfig:
    """Load the profile; absent weights/caps/filters fall back to defaults."""
    raw = _read_json(path)
    if not isinstance(raw, dict):
        raise ConfigValidationError(
            f"Invalid score profile config {path.name}: expected a JSON object",
            {"path": str(path)},
        )
    # Missing category keys take the field defaults of the built-in profile
    merged = {"name": DEFAULT_SCORE_PROFILE.name, **raw}
    try:
        return ScoreProfileConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Invalid score profile config {path.name}: "
            f"{_format_validation_error(e)}",
            {"path": str(path)},
        )


def load_app_config(
    config_dir: Optional[str] = None,
) -> Tuple[list[TrackedCharacterConfig], ScoreProfileConfig]:
    """Load roster + score profile from the configured directory."""
    base = Path(config_dir or settings.config_dir)
    characters = load_tracked_characters(base / settings.tracked_characters_file)
    profile = load_score_profile(base / settings.score_profile_file)
    logger.info(
        f"📋 Loaded config: {len(characters)} characters, "
        f"profile '{profile.name}' v{profile.version}"
    )
    return characters, profile
