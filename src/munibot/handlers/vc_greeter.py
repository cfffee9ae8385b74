from __future__ import annotations

import discord

from munibot.handlers.base import DiscordEvent, DiscordEventHandler, EventKind
from munibot.services.logger_service import LoggerService
from munibot.utils.discord_utils import resolve_channel


class VoiceChannelGreeter(DiscordEventHandler):
    """Says hi and bye in a voice channel's text chat when members come and go."""

    name = "vc-greeter"

    def __init__(self, client: discord.Client, logger: LoggerService) -> None:
        self.client = client
        self.logger = logger

    async def handle_discord_event(self, event: DiscordEvent) -> None:
        if event.kind is not EventKind.VOICE_STATE_UPDATE or event.data.get("is_bot"):
            return
        before = event.data.get("before_channel_id")
        after = event.data.get("after_channel_id")
        if before == after:
            return
        name = str(event.data.get("display_name") or "friend")
        if before:
            await self._say(int(before), f"bye, {name}!")
        if after:
            await self._say(int(after), f"hi, {name}!")

    async def _say(self, channel_id: int, text: str) -> None:
        channel = await resolve_channel(self.client, channel_id)
        if channel is None:
            return
        try:
            await channel.send(text)
        except (discord.Forbidden, discord.HTTPException) as exc:
            self.logger.warning("vc_greeter.send_failed", channel_id=channel_id, error=str(exc)[:300])
