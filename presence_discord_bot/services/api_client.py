import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import aiohttp

from presence_discord_bot.config import Config

logger = logging.getLogger(__name__)

PLAYER_JOINED = "player_joined"
PLAYER_LEFT = "player_left"


@dataclass
class ApiResponse:
    success: bool
    message: Optional[str] = None


class ApiClient:
    """Posts player joined/left events to the external events API.

    Failures are logged and reported through ApiResponse; nothing is raised
    to the caller, so session bookkeeping never depends on the API being up.
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 session: Optional[aiohttp.ClientSession] = None, timeout: int = Config.API_TIMEOUT):
        self.base_url = base_url.rstrip('/') if base_url else None
        self.api_key = api_key or ''
        self.session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def enabled(self) -> bool:
        return self.base_url is not None

    async def register_event(self, discord_id: str, discord_avatar: str, discord_name: str,
                             game_title: str, event_type: str) -> ApiResponse:
        if not self.enabled:
            logger.debug(f"Skipping {event_type} for {discord_id}: API not configured")
            return ApiResponse(False, "API not configured")

        payload = {
            'discord_id': discord_id,
            'discord_name': discord_name,
            'discord_avatar': discord_avatar,
            'game_title': game_title,
            'event_type': event_type,
        }
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f'Bearer {self.api_key}',
        }
        url = f"{self.base_url}/api/discord/events"

        try:
            if self.session is not None:
                return await self._post(self.session, url, payload, headers)
            async with aiohttp.ClientSession() as session:
                return await self._post(session, url, payload, headers)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"[API ERROR] Exception when registering event: {e!r}")
            return ApiResponse(False, str(e) or e.__class__.__name__)

    async def _post(self, session, url, payload, headers) -> ApiResponse:
        async with session.post(url, json=payload, headers=headers, timeout=self.timeout) as response:
            if response.status < 200 or response.status >= 300:
                logger.error(
                    f"[API ERROR] Failed to register event: {response.status} {response.reason}"
                )
                return ApiResponse(False, f"HTTP {response.status}: {response.reason}")

            try:
                data = await response.json(content_type=None)
            except ValueError:
                data = None

            message = data.get('message') if isinstance(data, dict) else None
            return ApiResponse(True, message)

    async def register_player_joined(self, discord_id, discord_avatar, discord_name, game_title):
        return await self.register_event(discord_id, discord_avatar, discord_name, game_title, PLAYER_JOINED)

    async def register_player_left(self, discord_id, discord_avatar, discord_name, game_title):
        return await self.register_event(discord_id, discord_avatar, discord_name, game_title, PLAYER_LEFT)
