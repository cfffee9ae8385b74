from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

import aiohttp

from munibot.config import Settings
from munibot.services.logger_service import LoggerService


HELIX_BASE_URL = "https://api.twitch.tv/helix"


@dataclass(frozen=True)
class ChannelInfo:
    broadcaster_id: str
    game_name: str
    title: str


class TwitchApiService:
    """Thin Helix client for the few endpoints chat handlers need."""

    def __init__(self, settings: Settings, logger: LoggerService, base_url: str = HELIX_BASE_URL) -> None:
        self.settings = settings
        self.logger = logger
        self.base_url = base_url.rstrip("/")
        self._user_ids: dict[str, str] = {}

    def _headers(self) -> dict[str, str]:
        token = self.settings.twitch_token.removeprefix("oauth:")
        return {
            "Authorization": f"Bearer {token}",
            "Client-Id": self.settings.twitch_client_id,
        }

    async def _request(self, method: str, path: str, *, params: dict[str, str] | None = None, payload: Any = None) -> dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        timeout = aiohttp.ClientTimeout(total=30)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.request(method, url, headers=self._headers(), params=params, json=payload) as response:
                body = await response.text()
                if response.status >= 400:
                    raise RuntimeError(f"HTTP {response.status}: {body[:300]}")
        return json.loads(body) if body else {}

    async def get_channel_info(self, broadcaster_id: str) -> ChannelInfo | None:
        try:
            data = await self._request("GET", "channels", params={"broadcaster_id": str(broadcaster_id)})
        except (aiohttp.ClientError, RuntimeError, TimeoutError, ValueError) as exc:
            self.logger.warning("twitch.helix_failed", endpoint="channels", error=str(exc)[:300])
            return None
        rows = data.get("data", [])
        if not rows:
            return None
        row = rows[0]
        return ChannelInfo(
            broadcaster_id=str(row.get("broadcaster_id", broadcaster_id)),
            game_name=str(row.get("game_name", "")),
            title=str(row.get("title", "")),
        )

    async def get_user_id(self, login: str) -> str | None:
        login = login.lower()
        if login in self._user_ids:
            return self._user_ids[login]
        try:
            data = await self._request("GET", "users", params={"login": login})
        except (aiohttp.ClientError, RuntimeError, TimeoutError, ValueError) as exc:
            self.logger.warning("twitch.helix_failed", endpoint="users", error=str(exc)[:300])
            return None
        rows = data.get("data", [])
        if not rows:
            return None
        user_id = str(rows[0].get("id", ""))
        if user_id:
            self._user_ids[login] = user_id
        return user_id or None

    async def ban_user(self, broadcaster_id: str, user_id: str, reason: str) -> bool:
        moderator_id = await self.get_user_id(self.settings.twitch_user)
        if not moderator_id:
            return False
        try:
            await self._request(
                "POST",
                "moderation/bans",
                params={"broadcaster_id": str(broadcaster_id), "moderator_id": moderator_id},
                payload={"data": {"user_id": str(user_id), "reason": reason}},
            )
        except (aiohttp.ClientError, RuntimeError, TimeoutError, ValueError) as exc:
            self.logger.warning("twitch.ban_failed", user_id=user_id, error=str(exc)[:300])
            return False
        self.logger.log("twitch.banned", broadcaster_id=broadcaster_id, user_id=user_id, reason=reason)
        return True
