"""
Tests for roster and score-profile config loading.
"""

import json

import pytest

from ladderwatch.core.config_loader import (
    load_app_config,
    load_score_profile,
    load_tracked_characters,
)
from ladderwatch.core.dates import parse_snapshot_date
from ladderwatch.core.exceptions import ConfigValidationError, InvalidSnapshotDateError


def _write(path, payload):
    path.write_text(json.dumps(payload) if not isinstance(payload, str) else payload)
    return path


ROSTER = {
    "version": 1,
    "characters": [
        {"region": "US", "realmSlug": " Illidan ", "characterName": "Thrallzilla", "faction": "HORDE"},
        {"region": "EU", "realmSlug": "draenor", "characterName": "Lightbringr", "faction": "ALLIANCE", "active": False},
    ],
}


class TestTrackedCharacters:
    def test_camel_case_file(self, tmp_path):
        characters = load_tracked_characters(_write(tmp_path / "roster.json", ROSTER))
        assert [c.identity_key for c in characters] == [
            "US:illidan:thrallzilla",
            "EU:draenor:lightbringr",
        ]
        assert characters[0].active is True
        assert characters[1].active is False

    def test_duplicate_identity_rejected(self, tmp_path):
        roster = {
            "characters": [
                {"region": "US", "realmSlug": "illidan", "characterName": "Thrall", "faction": "HORDE"},
                {"region": "US", "realmSlug": "ILLIDAN", "characterName": "thrall", "faction": "HORDE"},
            ]
        }
        with pytest.raises(ConfigValidationError, match="Duplicate tracked character"):
            load_tracked_characters(_write(tmp_path / "roster.json", roster))

    def test_unknown_region_rejected(self, tmp_path):
        roster = {"characters": [{"region": "KR", "realmSlug": "a", "characterName": "b", "faction": "HORDE"}]}
        with pytest.raises(ConfigValidationError):
            load_tracked_characters(_write(tmp_path / "roster.json", roster))

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="not found"):
            load_tracked_characters(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        with pytest.raises(ConfigValidationError, match="not valid JSON"):
            load_tracked_characters(_write(tmp_path / "roster.json", "{nope"))

    def test_non_utf8_file(self, tmp_path):
        path = tmp_path / "roster.json"
        path.write_bytes(b"\xff\xfe{\x00")
        with pytest.raises(ConfigValidationError, match="could not be read") as exc_info:
            load_tracked_characters(path)
        assert exc_info.value.code == "INVALID_CONFIG"

    def test_directory_instead_of_file(self, tmp_path):
        path = tmp_path / "roster.json"
        path.mkdir()
        with pytest.raises(ConfigValidationError, match="could not be read"):
            load_tracked_characters(path)


class TestScoreProfile:
    def test_defaults_fill_missing_sections(self, tmp_path):
        profile = load_score_profile(_write(tmp_path / "profile.json", {"version": 4}))
        assert profile.name == "Midnight Default"
        assert profile.version == 4
        assert profile.weights.level == 40
        assert profile.normalization_caps.average_item_level == 700

    def test_legacy_cap_names(self, tmp_path):
        payload = {"name": "Old", "normalizationCaps": {"maxLevel": 80, "maxItemLevel": 650}}
        profile = load_score_profile(_write(tmp_path / "profile.json", payload))
        assert profile.normalization_caps.level == 80
        assert profile.normalization_caps.average_item_level == 650

    def test_negative_weight_rejected(self, tmp_path):
        payload = {"name": "Bad", "weights": {"level": -1}}
        with pytest.raises(ConfigValidationError, match="weights.level"):
            load_score_profile(_write(tmp_path / "profile.json", payload))

    def test_non_object_rejected(self, tmp_path):
        with pytest.raises(ConfigValidationError):
            load_score_profile(_write(tmp_path / "profile.json", [1, 2]))

    def test_load_app_config(self, tmp_path):
        _write(tmp_path / "tracked-characters.json", ROSTER)
        _write(tmp_path / "score-profile.json", {"name": "League", "weights": {"itemLevel": 50}})
        characters, profile = load_app_config(str(tmp_path))
        assert len(characters) == 2
        assert profile.name == "League"
        assert profile.weights.item_level == 50


class TestSnapshotDates:
    def test_valid_and_empty(self):
        assert parse_snapshot_date("2026-03-01") == "2026-03-01"
        assert parse_snapshot_date(None) is None
        assert parse_snapshot_date("") is None

    @pytest.mark.parametrize("value", ["2026-3-1", "2026-02-30", "yesterday", "2026-13-01"])
    def test_invalid(self, value):
        with pytest.raises(InvalidSnapshotDateError):
            parse_snapshot_date(value)
