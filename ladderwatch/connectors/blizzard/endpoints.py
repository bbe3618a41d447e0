"""Ladderwatch — Character Progress Endpoints.

Fans out the ten per-character lookups concurrently. Each lookup fails on
its own: a failure is recorded in `endpoint_errors` and the payload is left
empty, so normalization still runs on whatever came back.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import quote

from ladderwatch.connectors.blizzard.client import BlizzardAPIError, BlizzardClient
from ladderwatch.core.logging import get_logger
from ladderwatch.models.config_models import ScoreProfileConfig, TrackedCharacterConfig
from ladderwatch.models.metrics_models import RawCharacterBundle

logger = get_logger("blizzard.endpoints")


def character_path(character: TrackedCharacterConfig, suffix: str = "") -> str:
    realm = quote(character.realm_slug.lower(), safe="")
    name = quote(character.character_name.lower(), safe="")
    return f"/profile/wow/character/{realm}/{name}{suffix}"


async def _run_optional(
    name: str, fetcher: Callable[[], Awaitable[Any]]
) -> Tuple[Optional[Any], Optional[str]]:
    try:
        return await fetcher(), None
    except Exception as e:
        return None, f"{name}: {e}"


class CharacterEndpoints:
    """Fetch a RawCharacterBundle for one tracked character."""

    def __init__(self, client: BlizzardClient):
        self.client = client

    async def _quests_with_fallback(self, character: TrackedCharacterConfig) -> Any:
        try:
            return await self.client.profile_json(
                character.region, character_path(character, "/quests/completed")
            )
        except BlizzardAPIError as e:
            if not e.is_not_found:
                raise
            return await self.client.profile_json(
                character.region, character_path(character, "/quests")
            )

    async def _season_if_configured(
        self, character: TrackedCharacterConfig, profile: ScoreProfileConfig
    ) -> Any:
        season_ids = profile.filters.mythic_season_ids
        if not season_ids or not season_ids[0]:
            return None
        return await self.client.profile_json(
            character.region,
            character_path(character, f"/mythic-keystone-profile/season/{season_ids[0]}"),
        )

    def _simple(self, character: TrackedCharacterConfig, suffix: str):
        return lambda: self.client.profile_json(
            character.region, character_path(character, suffix)
        )

    async def fetch_bundle(
        self, character: TrackedCharacterConfig, profile: ScoreProfileConfig
    ) -> RawCharacterBundle:
        fetchers: Dict[str, Callable[[], Awaitable[Any]]] = {
            "profile_summary": self._simple(character, ""),
            "character_media": self._simple(character, "/character-media"),
            "equipment_summary": self._simple(character, "/equipment"),
            "achievements_summary": self._simple(character, "/achievements"),
            "statistics_summary": self._simple(character, "/statistics"),
            "reputations_summary": self._simple(character, "/reputations"),
            "quests_completed": lambda: self._quests_with_fallback(character),
            "encounters_summary": self._simple(character, "/encounters"),
            "mythic_keystone_profile": self._simple(character, "/mythic-keystone-profile"),
            "mythic_keystone_season": lambda: self._season_if_configured(
                character, profile
            ),
        }

        outcomes = await asyncio.gather(
            *(_run_optional(name, fetch) for name, fetch in fetchers.items())
        )

        payloads: Dict[str, Any] = {}
        errors: Dict[str, str] = {}
        for name, (data, error) in zip(fetchers.keys(), outcomes):
            payloads[name] = data
            if error:
                errors[name] = error

        if errors:
            logger.warning(
                f"⚠️ {len(errors)} endpoint(s) failed for {character.label}",
                extra={"character": character.identity_key},
            )

        return RawCharacterBundle(
            fetched_at=datetime.now(timezone.utc).isoformat(),
            endpoint_errors=errors,
            **payloads,
        )


def make_bundle_fetcher(client: BlizzardClient):
    """Adapter matching the poll job's `bundle_fetcher(character, profile)` hook."""
    endpoints = CharacterEndpoints(client)
    return endpoints.fetch_bundle
