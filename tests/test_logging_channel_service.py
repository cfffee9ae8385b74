from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace

import discord

from munibot.cogs.admin import set_log_channel_message, stop_logging_message
from munibot.handlers.base import DiscordEvent, EventKind
from munibot.handlers.discord_logging import LoggingEventHandler, format_log_entry
from munibot.services.logger_service import LoggerService
from munibot.services.logging_channel_service import LoggingChannelService
from munibot.storage import DocumentStore


class StubChannel:
    def __init__(self, channel_id: int, *, fail: bool = False) -> None:
        self.id = channel_id
        self.fail = fail
        self.embeds: list[discord.Embed] = []

    async def send(self, content: str | None = None, *, embed: discord.Embed | None = None) -> None:
        if self.fail:
            raise discord.HTTPException(SimpleNamespace(status=403, reason="Forbidden"), "missing access")
        if embed is not None:
            self.embeds.append(embed)


class StubBot:
    def __init__(self, *channels: StubChannel) -> None:
        self.channels = {channel.id: channel for channel in channels}

    def get_channel(self, channel_id: int) -> StubChannel | None:
        return self.channels.get(channel_id)

    async def fetch_channel(self, channel_id: int) -> StubChannel:
        raise discord.HTTPException(SimpleNamespace(status=404, reason="Not Found"), "unknown channel")


def _make_service(tmp_path: Path, *channels: StubChannel) -> LoggingChannelService:
    store = DocumentStore(tmp_path / "state.msgpack")
    asyncio.run(store.load())
    return LoggingChannelService(StubBot(*channels), store, LoggerService(store))


def test_set_get_clear_log_channel(tmp_path: Path) -> None:
    log_channel = StubChannel(900)
    service = _make_service(tmp_path, log_channel)

    async def scenario() -> list[str]:
        replies = [await stop_logging_message(service, 1)]
        replies.append(await set_log_channel_message(service, 1, 900))
        assert await service.get(1) == 900
        assert await service.get(2) is None
        replies.append(await stop_logging_message(service, 1))
        assert await service.get(1) is None
        return replies

    nothing, enabled, disabled = asyncio.run(scenario())

    assert nothing == "no logging channel is set for this server! nothing was done."
    assert enabled == "got it! i'll post logs in <#900> from now on."
    assert disabled == "logging has been disabled for this server."
    assert [embed.title for embed in log_channel.embeds] == ["logging enabled"]


def test_send_log_reports_whether_anything_was_sent(tmp_path: Path) -> None:
    log_channel = StubChannel(900)
    service = _make_service(tmp_path, log_channel)

    async def scenario() -> list[bool]:
        results = [
            await service.send_log(None, "t", "d"),
            await service.send_log(1, "t", "d"),
        ]
        await service.set(1, 900)
        results.append(await service.send_log(1, "member joined", "someone joined.", [("content", "")]))
        await service.set(2, 12345)
        results.append(await service.send_log(2, "t", "d"))
        return results

    assert asyncio.run(scenario()) == [False, False, True, False]
    embed = log_channel.embeds[0]
    assert embed.title == "member joined"
    assert embed.fields[0].value == "(empty)"
    assert service.store.data["logs"][-1]["event"] == "logging.channel_missing"


def test_send_failures_are_logged_not_raised(tmp_path: Path) -> None:
    service = _make_service(tmp_path, StubChannel(900, fail=True))

    async def scenario() -> bool:
        await service.set(1, 900)
        return await service.send_log(1, "t", "d")

    assert asyncio.run(scenario()) is False
    last = service.store.data["logs"][-1]
    assert last["event"] == "logging.send_failed"
    assert last["level"] == "warning"


def test_pauses_filter_only_the_paused_kinds_in_that_channel(tmp_path: Path) -> None:
    log_channel = StubChannel(900)
    service = _make_service(tmp_path, log_channel)
    handler = LoggingEventHandler(service)
    delete_in_paused = DiscordEvent(kind=EventKind.MESSAGE_DELETE, guild_id=1, channel_id=55, data={"message_id": 1})
    delete_elsewhere = DiscordEvent(kind=EventKind.MESSAGE_DELETE, guild_id=1, channel_id=56, data={"message_id": 2})
    bulk_in_paused = DiscordEvent(kind=EventKind.MESSAGE_DELETE_BULK, guild_id=1, channel_id=55, data={"count": 3})

    async def scenario() -> None:
        await service.set(1, 900)
        await service.set_pauses(1, 55, [EventKind.MESSAGE_DELETE], "sweeping")
        assert await service.is_paused(55, EventKind.MESSAGE_DELETE)
        assert not await service.is_paused(55, EventKind.MESSAGE_DELETE_BULK)
        assert not await service.is_paused(None, EventKind.MESSAGE_DELETE)

        await handler.handle_discord_event(delete_in_paused)
        await handler.handle_discord_event(delete_elsewhere)
        await handler.handle_discord_event(bulk_in_paused)

        await service.clear_pauses(1, 55)
        await service.clear_pauses(1, 55)
        await handler.handle_discord_event(delete_in_paused)

    asyncio.run(scenario())

    titles = [embed.title for embed in log_channel.embeds]
    assert titles == [
        "logging paused",
        "message deleted",
        "messages bulk deleted",
        "logging resumed",
        "message deleted",
    ]
    assert "<#56>" in log_channel.embeds[1].description
    assert "sweeping" in log_channel.embeds[0].description


def test_format_log_entry_shapes() -> None:
    cached = DiscordEvent(
        kind=EventKind.MESSAGE_DELETE,
        guild_id=1,
        channel_id=5,
        data={"author": "muni#0001", "content": "hewwo", "attachments": ["https://cdn/x.png"]},
    )
    title, description, fields = format_log_entry(cached)  # type: ignore[misc]
    assert title == "message deleted"
    assert description == "a message by muni#0001 was deleted in <#5>."
    assert fields == [("content", "hewwo"), ("attachments", "https://cdn/x.png")]

    unchanged_edit = DiscordEvent(kind=EventKind.MESSAGE_EDIT, guild_id=1, channel_id=5, data={"before": "a", "after": "a"})
    assert format_log_entry(unchanged_edit) is None

    joined = DiscordEvent(kind=EventKind.MEMBER_JOIN, guild_id=1, data={"user": "pal", "user_id": 42})
    assert format_log_entry(joined) == ("member joined", "<@42> (pal) joined the server.", [])

    assert format_log_entry(DiscordEvent(kind=EventKind.VOICE_STATE_UPDATE, guild_id=1)) is None
