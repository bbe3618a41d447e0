"""
Shared test fixtures for Ladderwatch tests.
"""
import pytest
from sqlmodel import Session

from ladderwatch.config import settings
from ladderwatch.database import build_engine, init_db
from ladderwatch.models.config_models import (
    DEFAULT_SCORE_PROFILE,
    TrackedCharacterConfig,
)
from ladderwatch.models.metrics_models import RawCharacterBundle


DAY_ONE = "2026-03-01"
DAY_TWO = "2026-03-02"


@pytest.fixture
def engine():
    """In-memory SQLite shared across connections for one test."""
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def profile():
    return DEFAULT_SCORE_PROFILE


@pytest.fixture
def telegram_enabled(monkeypatch):
    """Telegram send configured for the duration of a test."""
    monkeypatch.setattr(settings, "telegram_digest_enabled", True)
    monkeypatch.setattr(settings, "telegram_bot_token", "test-token")
    monkeypatch.setattr(settings, "telegram_chat_id", "-100200300")
    return settings


@pytest.fixture
def telegram_disabled(monkeypatch):
    monkeypatch.setattr(settings, "telegram_digest_enabled", False)
    monkeypatch.setattr(settings, "telegram_bot_token", None)
    monkeypatch.setattr(settings, "telegram_chat_id", None)
    return settings


def make_character(name="Thrallzilla", region="US", realm="illidan", active=True):
    return TrackedCharacterConfig(
        region=region,
        realm_slug=realm,
        character_name=name,
        faction="HORDE",
        active=active,
    )


def make_bundle(
    level=80,
    item_level=600.0,
    rating=2000.0,
    best_key=10,
    achievement_points=12000,
    with_profile=True,
    endpoint_errors=None,
    fetched_at="2026-03-01T06:00:00+00:00",
):
    """A complete provider bundle with the common progression fields set."""
    return RawCharacterBundle(
        fetched_at=fetched_at,
        profile_summary={"name": "x", "level": level} if with_profile else None,
        character_media={
            "assets": [
                {"key": "inset", "value": "https://render.example/inset.jpg"},
                {"key": "avatar", "value": "https://render.example/avatar.jpg"},
            ]
        },
        equipment_summary={"equipped_item_level": item_level},
        achievements_summary={"total_points": achievement_points},
        statistics_summary=None,
        reputations_summary={"reputations": []},
        quests_completed={"quests": []},
        encounters_summary={},
        mythic_keystone_profile={
            "current_mythic_rating": {"rating": rating},
            "best_runs": [{"keystone_level": best_key}],
        },
        endpoint_errors=endpoint_errors or {},
    )


class FakeFetcher:
    """Bundle fetcher keyed by character name. Exceptions are raised."""

    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.calls = []

    async def __call__(self, character, profile):
        self.calls.append(character.character_name)
        outcome = self.outcomes[character.character_name]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeSender:
    """Records every send and returns sequential Telegram message ids."""

    def __init__(self, error=None):
        self.calls = []
        self.error = error

    async def __call__(self, chat_id, text):
        self.calls.append((chat_id, text))
        if self.error is not None:
            raise self.error
        return str(1000 + len(self.calls))
