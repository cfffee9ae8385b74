from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Iterable, Sequence

import discord

from munibot.handlers.base import EventKind
from munibot.services.logger_service import LoggerService
from munibot.storage import DocumentStore
from munibot.utils.discord_utils import resolve_channel, truncate


LOGGING_CHANNEL_TABLE = "logging_channel"
EMBED_COLOR = discord.Colour(0xF5A9B8)
EMBED_FIELD_LIMIT = 1024
EMBED_DESCRIPTION_LIMIT = 4000


@dataclass
class ChannelPause:
    kinds: set[EventKind] = field(default_factory=set)
    reason: str = ""


class LoggingChannelService:
    def __init__(self, client: discord.Client, store: DocumentStore, logger: LoggerService) -> None:
        self.client = client
        self.store = store
        self.logger = logger
        self._pauses: dict[int, ChannelPause] = {}
        self._pause_lock = asyncio.Lock()

    async def set(self, guild_id: int, channel_id: int) -> None:
        await self.store.upsert(
            LOGGING_CHANNEL_TABLE,
            str(guild_id),
            {"guild_id": int(guild_id), "channel_id": int(channel_id)},
        )
        self.logger.log("logging.channel_set", guild_id=guild_id, channel_id=channel_id)

    async def get(self, guild_id: int) -> int | None:
        row = await self.store.select(LOGGING_CHANNEL_TABLE, str(guild_id))
        if row is None:
            return None
        return int(row["channel_id"])

    async def clear(self, guild_id: int) -> bool:
        existed = await self.store.delete(LOGGING_CHANNEL_TABLE, str(guild_id)) is not None
        if existed:
            self.logger.log("logging.channel_cleared", guild_id=guild_id)
        return existed

    async def set_pauses(self, guild_id: int, channel_id: int, kinds: Iterable[EventKind], reason: str) -> None:
        kinds = set(kinds)
        async with self._pause_lock:
            self._pauses[int(channel_id)] = ChannelPause(kinds=kinds, reason=reason)
        names = ", ".join(sorted(kind.value for kind in kinds))
        await self.send_simple_log(
            guild_id,
            "logging paused",
            f"logging of {names} in <#{channel_id}> is paused: {reason}",
        )

    async def clear_pauses(self, guild_id: int, channel_id: int) -> None:
        async with self._pause_lock:
            removed = self._pauses.pop(int(channel_id), None)
        if removed is None:
            return
        await self.send_simple_log(guild_id, "logging resumed", f"logging in <#{channel_id}> has resumed.")

    async def is_paused(self, channel_id: int | None, kind: EventKind) -> bool:
        if channel_id is None:
            return False
        async with self._pause_lock:
            pause = self._pauses.get(int(channel_id))
            return pause is not None and kind in pause.kinds

    async def send_simple_log(self, guild_id: int | None, title: str, description: str) -> bool:
        return await self.send_log(guild_id, title, description)

    async def send_log(
        self,
        guild_id: int | None,
        title: str,
        description: str,
        fields: Sequence[tuple[str, str]] = (),
    ) -> bool:
        """Post an audit embed to the guild's log channel. Returns False when nothing was sent."""
        if guild_id is None:
            return False
        channel_id = await self.get(guild_id)
        if channel_id is None:
            return False
        channel = await resolve_channel(self.client, channel_id)
        if channel is None:
            self.logger.warning("logging.channel_missing", guild_id=guild_id, channel_id=channel_id)
            return False
        embed = build_log_embed(title, description, fields)
        try:
            await channel.send(embed=embed)
        except (discord.Forbidden, discord.HTTPException) as exc:
            self.logger.warning(
                "logging.send_failed",
                guild_id=guild_id,
                channel_id=channel_id,
                error=str(exc)[:300],
            )
            return False
        return True


def build_log_embed(title: str, description: str, fields: Sequence[tuple[str, str]] = ()) -> discord.Embed:
    embed = discord.Embed(
        title=truncate(title, 256),
        description=truncate(description, EMBED_DESCRIPTION_LIMIT),
        colour=EMBED_COLOR,
        timestamp=discord.utils.utcnow(),
    )
    for name, value in fields:
        embed.add_field(name=truncate(name, 256), value=truncate(value or "(empty)", EMBED_FIELD_LIMIT), inline=False)
    return embed
