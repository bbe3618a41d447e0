"""
Tests for the Blizzard and Telegram HTTP connectors (no network).
"""

import httpx
import pytest

from ladderwatch.connectors.blizzard import client as blizzard_client
from ladderwatch.connectors.blizzard.client import BlizzardAPIError, BlizzardClient
from ladderwatch.connectors.blizzard.endpoints import CharacterEndpoints, character_path
from ladderwatch.connectors.telegram.client import TelegramAPIError, TelegramClient
from ladderwatch.models.config_models import ScoreFilters, ScoreProfileConfig

from conftest import make_character


def _blizzard(handler):
    client = BlizzardClient(client_id="id", client_secret="secret", locale="en_US")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


def _token_response():
    return httpx.Response(200, json={"access_token": "tok", "expires_in": 3600})


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(blizzard_client, "RETRY_BASE_DELAY", 0)


class TestBlizzardClient:
    async def test_token_cached_and_namespace_sent(self):
        requests = []

        def handler(request):
            requests.append(request)
            if request.url.path == "/token":
                return _token_response()
            return httpx.Response(200, json={"level": 80})

        client = _blizzard(handler)
        assert await client.profile_json("US", "/profile/wow/character/illidan/thrall") == {"level": 80}
        await client.profile_json("US", "/profile/wow/character/illidan/thrall")
        await client.close()

        token_calls = [r for r in requests if r.url.path == "/token"]
        api_calls = [r for r in requests if r.url.path != "/token"]
        assert len(token_calls) == 1
        assert api_calls[0].url.host == "us.api.blizzard.com"
        assert api_calls[0].url.params["namespace"] == "profile-us"
        assert api_calls[0].url.params["locale"] == "en_US"
        assert api_calls[0].headers["Authorization"] == "Bearer tok"

    async def test_server_error_is_retried(self):
        attempts = []

        def handler(request):
            if request.url.path == "/token":
                return _token_response()
            attempts.append(1)
            if len(attempts) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"ok": True})

        client = _blizzard(handler)
        assert await client.profile_json("EU", "/x") == {"ok": True}
        assert len(attempts) == 2

    async def test_not_found_is_not_retried(self):
        attempts = []

        def handler(request):
            if request.url.path == "/token":
                return _token_response()
            attempts.append(1)
            return httpx.Response(404, text="Not Found")

        client = _blizzard(handler)
        with pytest.raises(BlizzardAPIError) as exc_info:
            await client.profile_json("US", "/missing")
        assert exc_info.value.is_not_found
        assert len(attempts) == 1

    async def test_missing_credentials(self):
        client = BlizzardClient(client_id="", client_secret="")
        client.client_id = ""
        client.client_secret = ""
        with pytest.raises(BlizzardAPIError, match="must be set"):
            await client.profile_json("US", "/x")


class TestCharacterEndpoints:
    def test_character_path_is_lowercased_and_quoted(self):
        character = make_character("Thrallzilla", realm="Area-52")
        assert character_path(character, "/equipment") == (
            "/profile/wow/character/area-52/thrallzilla/equipment"
        )

    async def test_bundle_tolerates_endpoint_failures(self):
        paths = []

        def handler(request):
            if request.url.path == "/token":
                return _token_response()
            path = request.url.path
            paths.append(path)
            if path.endswith("/quests/completed"):
                return httpx.Response(404)
            if path.endswith("/statistics"):
                return httpx.Response(403, text="Forbidden")
            return httpx.Response(200, json={"path": path})

        client = _blizzard(handler)
        profile = ScoreProfileConfig(name="No Season")
        bundle = await CharacterEndpoints(client).fetch_bundle(make_character(), profile)

        base = "/profile/wow/character/illidan/thrallzilla"
        assert bundle.profile_summary == {"path": base}
        assert bundle.quests_completed == {"path": f"{base}/quests"}
        assert bundle.statistics_summary is None
        assert bundle.mythic_keystone_season is None
        assert list(bundle.endpoint_errors) == ["statistics_summary"]
        assert bundle.endpoint_errors["statistics_summary"].startswith("statistics_summary: ")
        assert not any("/season/" in p for p in paths)

    async def test_season_fetched_when_configured(self):
        def handler(request):
            if request.url.path == "/token":
                return _token_response()
            return httpx.Response(200, json={"path": request.url.path})

        client = _blizzard(handler)
        profile = ScoreProfileConfig(name="Season", filters=ScoreFilters(mythic_season_ids=[13]))
        bundle = await CharacterEndpoints(client).fetch_bundle(make_character(), profile)
        assert bundle.mythic_keystone_season["path"].endswith("/mythic-keystone-profile/season/13")


class TestTelegramClient:
    def _client(self, handler):
        client = TelegramClient(bot_token="123:abc", api_base="https://api.telegram.test")
        client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return client

    async def test_send_returns_message_id(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = request.content
            return httpx.Response(200, json={"ok": True, "result": {"message_id": 42}})

        client = self._client(handler)
        assert await client.send_message("-100", "hello") == "42"
        assert seen["path"] == "/bot123:abc/sendMessage"
        assert b'"chat_id":"-100"' in seen["body"].replace(b" ", b"")

    async def test_api_error_description(self):
        def handler(request):
            return httpx.Response(
                400, json={"ok": False, "error_code": 400, "description": "Bad Request: chat not found"}
            )

        client = self._client(handler)
        with pytest.raises(TelegramAPIError, match="chat not found") as exc_info:
            await client.send_message("-100", "hello")
        assert exc_info.value.status_code == 400

    async def test_missing_message_id(self):
        client = self._client(lambda request: httpx.Response(200, json={"ok": True, "result": {}}))
        with pytest.raises(TelegramAPIError, match="message_id"):
            await client.send_message("-100", "hello")
