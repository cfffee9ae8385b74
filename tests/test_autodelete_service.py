from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import AsyncIterator

import discord
import pytest

from munibot.cogs.autodelete import clear_autodelete_message, list_autodelete_message, set_autodelete_message
from munibot.services.autodelete_service import (
    AUTODELETE_TABLE,
    EPOCH,
    HISTORY_PAGE_SIZE,
    INITIAL_WATERMARK,
    MAXIMUM_WAIT_TIME,
    AutoDeleteMode,
    AutoDeleteService,
    AutoDeleteTimer,
    SweepResult,
)
from munibot.services.logger_service import LoggerService
from munibot.services.logging_channel_service import LoggingChannelService
from munibot.storage import DocumentStore


NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
GUILD_ID = 1
LOG_CHANNEL_ID = 900


def _http_error() -> discord.HTTPException:
    return discord.HTTPException(SimpleNamespace(status=500, reason="Internal Server Error"), "boom")


class StubMessage:
    def __init__(self, channel: "StubChannel", created_at: datetime, *, pinned: bool = False, fail_delete: bool = False) -> None:
        self.channel = channel
        self.created_at = created_at
        self.id = discord.utils.time_snowflake(created_at)
        self.pinned = pinned
        self.fail_delete = fail_delete

    async def delete(self) -> None:
        if self.fail_delete:
            raise _http_error()
        self.channel.messages.remove(self)


class StubChannel:
    def __init__(self, channel_id: int) -> None:
        self.id = channel_id
        self.messages: list[StubMessage] = []
        self.embeds: list[discord.Embed] = []
        self.history_failures = 0
        self.history_calls = 0
        self.failing_calls: set[int] = set()
        self.last_message_id: int | None = None

    def post(self, created_at: datetime, **kwargs: bool) -> StubMessage:
        message = StubMessage(self, created_at, **kwargs)
        self.messages.append(message)
        self.last_message_id = max(self.last_message_id or 0, message.id)
        return message

    async def history(
        self,
        limit: int | None = 100,
        before: object = None,
        after: object = None,
        oldest_first: bool | None = None,
    ) -> AsyncIterator[StubMessage]:
        self.history_calls += 1
        if self.history_calls in self.failing_calls:
            raise _http_error()
        if self.history_failures:
            self.history_failures -= 1
            raise _http_error()
        ordered = sorted(self.messages, key=lambda message: message.id, reverse=not oldest_first)
        if after is not None:
            ordered = [message for message in ordered if message.id > after.id]
        for message in ordered[:limit]:
            yield message

    async def send(self, content: str | None = None, *, embed: discord.Embed | None = None) -> None:
        if embed is not None:
            self.embeds.append(embed)


class StubBot:
    def __init__(self, *channels: StubChannel) -> None:
        self.channels = {channel.id: channel for channel in channels}

    def get_channel(self, channel_id: int) -> StubChannel | None:
        return self.channels.get(channel_id)

    async def fetch_channel(self, channel_id: int) -> StubChannel:
        raise _http_error()


def _make_service(tmp_path: Path, *channels: StubChannel) -> AutoDeleteService:
    store = DocumentStore(tmp_path / "state.msgpack")
    asyncio.run(store.load())
    logger = LoggerService(store)
    log_channel = StubChannel(LOG_CHANNEL_ID)
    client = StubBot(log_channel, *channels)
    logging_channels = LoggingChannelService(client, store, logger)
    asyncio.run(logging_channels.set(GUILD_ID, LOG_CHANNEL_ID))
    return AutoDeleteService(client, store, logger, logging_channels)


def _log_titles(service: AutoDeleteService) -> list[str]:
    return [embed.title for embed in service.client.get_channel(LOG_CHANNEL_ID).embeds]


def test_set_list_clear_and_persist_timers(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> None:
        await service.set_autodelete(GUILD_ID, 10, timedelta(hours=2), AutoDeleteMode.ALWAYS)
        await service.set_autodelete(GUILD_ID, 11, timedelta(hours=3))
        await service.set_autodelete(2, 12, timedelta(days=1))

        assert [timer.channel_id for timer in await service.list_timers(GUILD_ID)] == [10, 11]
        timer = await service.get_timer(10)
        assert timer is not None
        assert timer.last_message_id_cleaned == INITIAL_WATERMARK
        assert timer.should_check(NOW)

        reloaded = AutoDeleteService(service.client, service.store, service.logger, service.logging_channels)
        assert await reloaded.load() == 3
        again = await reloaded.get_timer(11)
        assert again == AutoDeleteTimer(channel_id=11, guild_id=GUILD_ID, duration=timedelta(hours=3))

        assert await service.clear_autodelete(2, 10) is False
        assert await service.clear_autodelete(GUILD_ID, 10) is True
        assert await service.clear_autodelete(GUILD_ID, 10) is False
        assert await service.get_timer(10) is None
        assert await service.store.select(AUTODELETE_TABLE, "10") is None

    asyncio.run(scenario())

    assert _log_titles(service) == [
        "autodelete timer set",
        "autodelete timer set",
        "autodelete timer removed",
    ]


def test_always_mode_deletes_only_messages_past_the_duration(tmp_path: Path) -> None:
    channel = StubChannel(10)
    old = channel.post(NOW - timedelta(hours=3))
    fresh = channel.post(NOW - timedelta(hours=1))
    service = _make_service(tmp_path, channel)

    async def scenario() -> SweepResult:
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=2), AutoDeleteMode.ALWAYS)
        return await service.clean_now(timer, NOW)

    result = asyncio.run(scenario())

    assert result == SweepResult("cleaned", deleted=1, watermark=old.id)
    assert channel.messages == [fresh]
    timer = asyncio.run(service.get_timer(10))
    assert timer is not None
    assert timer.last_cleaned == NOW
    assert timer.last_message_id_cleaned == old.id
    row = asyncio.run(service.store.select(AUTODELETE_TABLE, "10"))
    assert row is not None
    assert row["last_message_id_cleaned"] == old.id
    assert _log_titles(service)[-2:] == ["logging paused", "logging resumed"]


def test_sweep_deletes_pinned_messages_and_counts_failed_deletes(tmp_path: Path) -> None:
    channel = StubChannel(10)
    channel.post(NOW - timedelta(hours=6), pinned=True)
    stuck = channel.post(NOW - timedelta(hours=5), fail_delete=True)
    channel.post(NOW - timedelta(hours=4))
    newest_old = channel.post(NOW - timedelta(hours=3))
    service = _make_service(tmp_path, channel)

    async def scenario() -> SweepResult:
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=2), AutoDeleteMode.ALWAYS)
        return await service.clean_now(timer, NOW)

    result = asyncio.run(scenario())

    assert result == SweepResult("cleaned", deleted=3, failed=1, watermark=newest_old.id)
    assert channel.messages == [stuck]
    assert service.store.data["logs"][-1]["event"] == "autodelete.sweep_incomplete"


def test_history_errors_are_retried_then_given_up(tmp_path: Path) -> None:
    channel = StubChannel(10)
    channel.post(NOW - timedelta(hours=3))
    service = _make_service(tmp_path, channel)

    async def scenario(failures: int) -> SweepResult:
        channel.history_failures = failures
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=2), AutoDeleteMode.ALWAYS)
        return await service.clean_now(timer, NOW)

    gave_up = asyncio.run(scenario(3))
    assert gave_up.status == "no_candidates"
    assert gave_up.failed == 3
    assert len(channel.messages) == 1

    recovered = asyncio.run(scenario(2))
    assert recovered.deleted == 1
    assert recovered.failed == 2
    assert channel.messages == []


def test_history_failures_on_later_pages_do_not_drop_the_rest(tmp_path: Path) -> None:
    channel = StubChannel(10)
    for offset in range(HISTORY_PAGE_SIZE + 50):
        channel.post(NOW - timedelta(hours=3, seconds=offset))
    service = _make_service(tmp_path, channel)

    async def scenario() -> SweepResult:
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=2), AutoDeleteMode.ALWAYS)
        channel.history_calls = 0
        channel.failing_calls = {1, 2, 4, 5}
        return await service.clean_now(timer, NOW)

    result = asyncio.run(scenario())

    assert result.status == "cleaned"
    assert result.deleted == HISTORY_PAGE_SIZE + 50
    assert result.failed == 4
    assert channel.messages == []


def test_sweep_with_nothing_old_enough_still_stamps_last_cleaned(tmp_path: Path) -> None:
    channel = StubChannel(10)
    channel.post(NOW - timedelta(minutes=10))
    service = _make_service(tmp_path, channel)

    async def scenario() -> tuple[SweepResult, AutoDeleteTimer | None]:
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=2), AutoDeleteMode.ALWAYS)
        result = await service.clean_now(timer, NOW)
        return result, await service.get_timer(10)

    result, timer = asyncio.run(scenario())

    assert result == SweepResult("no_candidates")
    assert len(channel.messages) == 1
    assert timer is not None
    assert timer.last_cleaned == NOW
    assert timer.last_message_id_cleaned == INITIAL_WATERMARK
    assert "logging paused" not in _log_titles(service)


def test_after_silence_waits_for_the_channel_to_go_quiet(tmp_path: Path) -> None:
    channel = StubChannel(10)
    channel.post(NOW - timedelta(hours=5))
    channel.post(NOW - timedelta(minutes=10))
    service = _make_service(tmp_path, channel)

    async def scenario() -> tuple[SweepResult, tuple[datetime, int], dict | None, timedelta, SweepResult]:
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=1), AutoDeleteMode.AFTER_SILENCE)
        early = await service.clean_now(timer, NOW)
        row = await service.store.select(AUTODELETE_TABLE, "10")
        untouched = (timer.last_cleaned, timer.last_message_id_cleaned)
        wait = await service.check_messages(timer, NOW)
        later = await service.clean_now(timer, NOW + timedelta(hours=2))
        return early, untouched, row, wait, later

    early, untouched, row, wait, later = asyncio.run(scenario())

    assert early == SweepResult("too_early")
    assert untouched == (EPOCH, INITIAL_WATERMARK)
    assert row is not None
    assert row["last_cleaned"] == 0.0
    assert row["last_message_id_cleaned"] == INITIAL_WATERMARK
    assert abs(wait - timedelta(minutes=50)) < timedelta(seconds=1)
    assert later.status == "cleaned"
    assert later.deleted == 2
    assert channel.messages == []


def test_no_new_messages_since_last_sweep_short_circuits(tmp_path: Path) -> None:
    channel = StubChannel(10)
    channel.post(NOW - timedelta(hours=3))
    service = _make_service(tmp_path, channel)

    async def scenario() -> SweepResult:
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=2), AutoDeleteMode.ALWAYS)
        await service.clean_now(timer, NOW)
        return await service.clean_now(timer, NOW + timedelta(hours=3))

    assert asyncio.run(scenario()) == SweepResult("no_new_messages")


def test_get_next_fire(tmp_path: Path) -> None:
    channel = StubChannel(10)
    channel.post(NOW - timedelta(minutes=45))
    service = _make_service(tmp_path, channel)

    async def scenario() -> list[timedelta]:
        waits = [await service.get_next_fire(NOW)]
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=1), AutoDeleteMode.ALWAYS)
        waits.append(await service.get_next_fire(NOW))
        timer.last_cleaned = NOW - timedelta(minutes=50)
        waits.append(await service.get_next_fire(NOW))
        await service.clear_autodelete(GUILD_ID, 10)
        waits.append(await service.get_next_fire(NOW))
        return waits

    nothing, due, idle, cleared = asyncio.run(scenario())

    assert nothing == MAXIMUM_WAIT_TIME
    assert abs(due - timedelta(minutes=15)) < timedelta(seconds=1)
    assert idle == timedelta(minutes=10)
    assert cleared == MAXIMUM_WAIT_TIME


def test_fire_due_timers_bounds_concurrency_and_isolates_failures(tmp_path: Path) -> None:
    service = _make_service(tmp_path)
    in_flight = 0
    peak = 0

    async def fake_clean_now(timer: AutoDeleteTimer, now: datetime | None = None) -> SweepResult:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        if timer.channel_id == 13:
            raise RuntimeError("channel vanished")
        return SweepResult("cleaned", deleted=1)

    service.clean_now = fake_clean_now  # type: ignore[method-assign]

    async def scenario() -> dict[int, SweepResult | None]:
        for channel_id in range(10, 17):
            await service.set_autodelete(GUILD_ID, channel_id, timedelta(hours=1))
        idle = await service.get_timer(16)
        assert idle is not None
        idle.last_cleaned = NOW
        return await service.fire_due_timers(NOW)

    results = asyncio.run(scenario())

    assert sorted(results) == [10, 11, 12, 13, 14, 15]
    assert results[13] is None
    assert results[10] == SweepResult("cleaned", deleted=1)
    assert peak == 3
    failures = [row for row in service.store.data["logs"] if row["event"] == "autodelete.sweep_failed"]
    assert failures[0]["data"]["channel_id"] == 13


def test_sweep_result_for_a_removed_timer_is_not_persisted(tmp_path: Path) -> None:
    channel = StubChannel(10)
    channel.post(NOW - timedelta(hours=3))
    service = _make_service(tmp_path, channel)

    async def scenario() -> None:
        timer = await service.set_autodelete(GUILD_ID, 10, timedelta(hours=2), AutoDeleteMode.ALWAYS)
        await service.clear_autodelete(GUILD_ID, 10)
        await service.clean_now(timer, NOW)

    asyncio.run(scenario())

    assert asyncio.run(service.store.select(AUTODELETE_TABLE, "10")) is None


def test_loop_stops_promptly(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> None:
        service.start()
        await asyncio.sleep(0.05)
        await asyncio.wait_for(service.stop(), timeout=5)

    asyncio.run(scenario())

    events = [row["event"] for row in service.store.data["logs"]]
    assert "autodelete.loop_started" in events
    assert events[-1] == "autodelete.loop_stopped"


@pytest.mark.parametrize("raw", ["always", "all", "after-silence", "silence", "After Silence"])
def test_mode_parsing_accepts_aliases(raw: str) -> None:
    assert AutoDeleteMode.parse(raw) in {AutoDeleteMode.ALWAYS, AutoDeleteMode.AFTER_SILENCE}


def test_command_replies_validate_duration_and_mode(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> list[str]:
        return [
            await set_autodelete_message(service, GUILD_ID, 10, "59m"),
            await set_autodelete_message(service, GUILD_ID, 10, "soon"),
            await set_autodelete_message(service, GUILD_ID, 10, "99999999999999d", "always"),
            await set_autodelete_message(service, GUILD_ID, 10, "2h", "sometimes"),
            await set_autodelete_message(service, GUILD_ID, 11, "1h"),
            await set_autodelete_message(service, GUILD_ID, 10, "1h30m", "always"),
            await list_autodelete_message(service, GUILD_ID),
            await clear_autodelete_message(service, GUILD_ID, 10),
            await clear_autodelete_message(service, GUILD_ID, 10),
        ]

    too_short, junk, huge, bad_mode, minimum, accepted, listing, removed, missing = asyncio.run(scenario())

    assert too_short == "autodelete timers must be at least **1h** long!"
    assert minimum == "autodelete timer set! messages in <#11> will be deleted after **1h** of silence."
    assert junk.startswith("i couldn't understand `soon`")
    assert huge.startswith("i couldn't understand `99999999999999d`")
    assert bad_mode.startswith("unknown autodelete mode")
    assert accepted == (
        "autodelete timer set! messages in <#10> will be deleted when they are older than **1h 30m**."
    )
    assert listing.startswith("autodelete timers:\n- <#10>: always, 1h 30m")
    assert removed == "autodelete timer removed for <#10>."
    assert missing == "there's no autodelete timer for <#10>! nothing was done."
