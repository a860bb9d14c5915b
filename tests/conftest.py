"""Shared fixtures for presence_discord_bot tests."""

from types import SimpleNamespace

import pytest

from presence_discord_bot.services.api_client import ApiResponse
from presence_discord_bot.services.session_manager import SessionManager
from presence_discord_bot.services.storage import MemoryStorage

# 2024-01-07 12:00:00 UTC, a Sunday
BASE_TIME = 1704628800000

HOUR = 60 * 60 * 1000
DAY = 24 * HOUR


class FrozenClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, now=BASE_TIME):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


class RecordingApiClient:
    """Stands in for ApiClient and remembers every event it was asked to send."""

    enabled = True

    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    async def _record(self, event_type, discord_id, discord_avatar, discord_name, game_title):
        self.events.append((event_type, discord_id, discord_name, game_title))
        if self.fail:
            raise RuntimeError("events API is down")
        return ApiResponse(True)

    async def register_player_joined(self, *args):
        return await self._record("player_joined", *args)

    async def register_player_left(self, *args):
        return await self._record("player_left", *args)


class FakeResponse:
    def __init__(self):
        self.deferred = False
        self.sent = []

    async def defer(self):
        self.deferred = True

    async def send_message(self, content=None, **kwargs):
        self.sent.append((content, kwargs))


class FakeFollowup:
    def __init__(self):
        self.sent = []

    async def send(self, content=None, **kwargs):
        for file in kwargs.get("files", ()):
            file.close()
        self.sent.append((content, kwargs))


class FakeInteraction:
    """Records what a command or component sends back to Discord."""

    def __init__(self, user_id=1):
        self.user = SimpleNamespace(id=user_id)
        self.response = FakeResponse()
        self.followup = FakeFollowup()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def api_client():
    return RecordingApiClient()


@pytest.fixture
def manager(storage, api_client, clock):
    return SessionManager(storage, api_client, clock=clock)
