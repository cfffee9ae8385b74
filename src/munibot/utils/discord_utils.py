from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import discord


async def resolve_channel(client: discord.Client, channel_id: int) -> Any | None:
    """
    Resolve a channel by id.

    The gateway cache misses channels the bot has not seen since connecting; this helper
    tries cache and then falls back to an API fetch.
    """

    cached = client.get_channel(channel_id)
    if cached is not None:
        return cached
    try:
        return await client.fetch_channel(channel_id)
    except (discord.NotFound, discord.Forbidden, discord.HTTPException):
        return None


def snowflake_time(snowflake: int) -> datetime:
    return discord.utils.snowflake_time(int(snowflake))


def as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def display_name(user: Any) -> str:
    for attr in ("display_name", "global_name", "name"):
        value = getattr(user, attr, None)
        if value:
            return str(value)
    return "someone"


def truncate(text: str, limit: int) -> str:
    text = str(text or "")
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)] + "..."
