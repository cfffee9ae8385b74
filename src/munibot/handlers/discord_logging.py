from __future__ import annotations

from typing import Any

from munibot.handlers.base import DiscordEvent, DiscordEventHandler, EventKind
from munibot.services.logging_channel_service import LoggingChannelService


LogEntry = tuple[str, str, list[tuple[str, str]]]


class LoggingEventHandler(DiscordEventHandler):
    """Mirrors moderation-relevant gateway events into the guild's log channel."""

    name = "logging-events"

    def __init__(self, logging_channels: LoggingChannelService) -> None:
        self.logging_channels = logging_channels

    async def handle_discord_event(self, event: DiscordEvent) -> None:
        if event.guild_id is None:
            return
        entry = format_log_entry(event)
        if entry is None:
            return
        if await self.logging_channels.is_paused(event.channel_id, event.kind):
            return
        title, description, fields = entry
        await self.logging_channels.send_log(event.guild_id, title, description, fields)


def format_log_entry(event: DiscordEvent) -> LogEntry | None:
    data: dict[str, Any] = event.data
    channel = f"<#{event.channel_id}>" if event.channel_id else "an unknown channel"
    user = _user_label(data)

    if event.kind is EventKind.MESSAGE_DELETE:
        author = data.get("author")
        if author is None:
            return "message deleted", f"an uncached message was deleted in {channel}.", []
        fields = [("content", str(data.get("content") or ""))]
        if data.get("attachments"):
            fields.append(("attachments", "\n".join(data["attachments"])))
        return "message deleted", f"a message by {author} was deleted in {channel}.", fields
    if event.kind is EventKind.MESSAGE_DELETE_BULK:
        count = int(data.get("count", 0))
        return "messages bulk deleted", f"{count:,} messages were deleted in {channel}.", []
    if event.kind is EventKind.MESSAGE_EDIT:
        before = str(data.get("before") or "")
        after = str(data.get("after") or "")
        if before == after:
            return None
        description = f"{data.get('author', 'someone')} edited a message in {channel}."
        if data.get("jump_url"):
            description += f" [jump]({data['jump_url']})"
        return "message edited", description, [("before", before), ("after", after)]
    if event.kind is EventKind.MEMBER_JOIN:
        return "member joined", f"{user} joined the server.", []
    if event.kind is EventKind.MEMBER_REMOVE:
        return "member left", f"{user} left the server.", []
    if event.kind is EventKind.MEMBER_BAN:
        return "member banned", f"{user} was banned.", []
    if event.kind is EventKind.MEMBER_UNBAN:
        return "member unbanned", f"{user} was unbanned.", []
    if event.kind is EventKind.CHANNEL_CREATE:
        return "channel created", f"{channel} (`{data.get('name', '?')}`) was created.", []
    if event.kind is EventKind.CHANNEL_DELETE:
        return "channel deleted", f"`#{data.get('name', '?')}` was deleted.", []
    if event.kind is EventKind.ROLE_CREATE:
        return "role created", f"role `{data.get('name', '?')}` was created.", []
    if event.kind is EventKind.ROLE_DELETE:
        return "role deleted", f"role `{data.get('name', '?')}` was deleted.", []
    return None


def _user_label(data: dict[str, Any]) -> str:
    user_id = data.get("user_id")
    name = data.get("user")
    if user_id and name:
        return f"<@{user_id}> ({name})"
    if user_id:
        return f"<@{user_id}>"
    return str(name or "someone")
