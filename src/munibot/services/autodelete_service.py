from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

import discord

from munibot.handlers.base import EventKind
from munibot.services.logger_service import LoggerService
from munibot.services.logging_channel_service import LoggingChannelService
from munibot.storage import DocumentStore
from munibot.utils.discord_utils import as_utc, resolve_channel, snowflake_time
from munibot.utils.durations import format_duration


AUTODELETE_TABLE = "autodelete_timer"
MAXIMUM_WAIT_TIME = timedelta(minutes=30)
MINIMUM_TIMER_DURATION = timedelta(hours=1)
MINIMUM_LOOP_SLEEP = timedelta(seconds=1)
TICK_ERROR_BACKOFF = timedelta(minutes=1)
MAX_CONCURRENT_SWEEPS = 3
HISTORY_PAGE_SIZE = 100
MAX_STREAM_FAILURES = 3
INITIAL_WATERMARK = 1
EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)
SWEEP_PAUSE_KINDS = (EventKind.MESSAGE_DELETE, EventKind.MESSAGE_DELETE_BULK)
SWEEP_PAUSE_REASON = "cleaning up messages because an autodelete timer has fired"


class AutoDeleteMode(str, Enum):
    ALWAYS = "always"
    AFTER_SILENCE = "after_silence"

    @classmethod
    def parse(cls, raw: str) -> "AutoDeleteMode":
        key = str(raw or "").strip().lower().replace("-", "_").replace(" ", "_")
        if key in {"always", "all"}:
            return cls.ALWAYS
        if key in {"after_silence", "silence", "aftersilence"}:
            return cls.AFTER_SILENCE
        raise ValueError(f"unknown autodelete mode {raw!r}; use `always` or `after-silence`")

    def describe(self, channel_id: int, duration: timedelta) -> str:
        if self is AutoDeleteMode.ALWAYS:
            return f"messages in <#{channel_id}> will be deleted when they are older than **{format_duration(duration)}**."
        return f"messages in <#{channel_id}> will be deleted after **{format_duration(duration)}** of silence."


@dataclass
class AutoDeleteTimer:
    channel_id: int
    guild_id: int
    duration: timedelta
    mode: AutoDeleteMode = AutoDeleteMode.AFTER_SILENCE
    last_cleaned: datetime = EPOCH
    last_message_id_cleaned: int = INITIAL_WATERMARK

    def should_check(self, now: datetime) -> bool:
        return self.last_cleaned + self.duration <= now

    def remaining(self, now: datetime) -> timedelta:
        return max(timedelta(0), self.last_cleaned + self.duration - now)

    def to_record(self) -> dict[str, Any]:
        return {
            "channel_id": self.channel_id,
            "guild_id": self.guild_id,
            "duration_sec": int(self.duration.total_seconds()),
            "mode": self.mode.value,
            "last_cleaned": self.last_cleaned.timestamp(),
            "last_message_id_cleaned": self.last_message_id_cleaned,
        }

    @classmethod
    def from_record(cls, row: dict[str, Any]) -> "AutoDeleteTimer":
        return cls(
            channel_id=int(row["channel_id"]),
            guild_id=int(row["guild_id"]),
            duration=timedelta(seconds=int(row["duration_sec"])),
            mode=AutoDeleteMode(row.get("mode", AutoDeleteMode.AFTER_SILENCE.value)),
            last_cleaned=datetime.fromtimestamp(float(row.get("last_cleaned", 0.0)), tz=timezone.utc),
            last_message_id_cleaned=int(row.get("last_message_id_cleaned", INITIAL_WATERMARK)),
        )


@dataclass(frozen=True)
class SweepResult:
    status: str
    deleted: int = 0
    failed: int = 0
    watermark: int | None = None


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class AutoDeleteService:
    """Per-channel retention timers and the loop that sweeps them."""

    def __init__(
        self,
        client: discord.Client,
        store: DocumentStore,
        logger: LoggerService,
        logging_channels: LoggingChannelService,
    ) -> None:
        self.client = client
        self.store = store
        self.logger = logger
        self.logging_channels = logging_channels
        self._timers: dict[int, AutoDeleteTimer] = {}
        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def load(self) -> int:
        rows = await self.store.select_all(AUTODELETE_TABLE)
        timers: dict[int, AutoDeleteTimer] = {}
        for row in rows:
            try:
                timer = AutoDeleteTimer.from_record(row)
            except (KeyError, TypeError, ValueError) as exc:
                self.logger.warning("autodelete.bad_record", record_id=row.get("id"), error=str(exc)[:300])
                continue
            timers[timer.channel_id] = timer
        async with self._lock:
            self._timers = timers
        self.logger.log("autodelete.loaded", timers=len(timers))
        return len(timers)

    async def set_autodelete(
        self,
        guild_id: int,
        channel_id: int,
        duration: timedelta,
        mode: AutoDeleteMode = AutoDeleteMode.AFTER_SILENCE,
    ) -> AutoDeleteTimer:
        timer = AutoDeleteTimer(channel_id=int(channel_id), guild_id=int(guild_id), duration=duration, mode=mode)
        row = await self.store.upsert(AUTODELETE_TABLE, str(channel_id), timer.to_record())
        if row is None:
            raise RuntimeError(f"autodelete timer for channel {channel_id} was not returned after upsert")
        timer = AutoDeleteTimer.from_record(row)
        async with self._lock:
            self._timers[timer.channel_id] = timer
        self.logger.log(
            "autodelete.set",
            guild_id=guild_id,
            channel_id=channel_id,
            duration_sec=int(duration.total_seconds()),
            mode=mode.value,
        )
        await self.logging_channels.send_simple_log(guild_id, "autodelete timer set", mode.describe(channel_id, duration))
        return timer

    async def clear_autodelete(self, guild_id: int, channel_id: int) -> bool:
        async with self._lock:
            timer = self._timers.get(int(channel_id))
            if timer is None or timer.guild_id != int(guild_id):
                return False
            del self._timers[int(channel_id)]
        await self.store.delete(AUTODELETE_TABLE, str(channel_id))
        self.logger.log("autodelete.cleared", guild_id=guild_id, channel_id=channel_id)
        await self.logging_channels.send_simple_log(guild_id, "autodelete timer removed", f"for channel <#{channel_id}>")
        return True

    async def get_timer(self, channel_id: int) -> AutoDeleteTimer | None:
        async with self._lock:
            return self._timers.get(int(channel_id))

    async def list_timers(self, guild_id: int | None = None) -> list[AutoDeleteTimer]:
        timers = await self._snapshot()
        if guild_id is not None:
            timers = [timer for timer in timers if timer.guild_id == int(guild_id)]
        return sorted(timers, key=lambda timer: timer.channel_id)

    async def _snapshot(self) -> list[AutoDeleteTimer]:
        async with self._lock:
            return list(self._timers.values())

    async def fire_due_timers(self, now: datetime | None = None) -> dict[int, SweepResult | None]:
        checked_at = now or _utcnow()
        due = [timer for timer in await self._snapshot() if timer.should_check(checked_at)]
        if not due:
            return {}
        gate = asyncio.Semaphore(MAX_CONCURRENT_SWEEPS)

        async def sweep(timer: AutoDeleteTimer) -> SweepResult | None:
            async with gate:
                try:
                    return await self.clean_now(timer, now)
                except Exception as exc:  # noqa: BLE001
                    self.logger.error(
                        "autodelete.sweep_failed",
                        guild_id=timer.guild_id,
                        channel_id=timer.channel_id,
                        error=str(exc)[:300],
                    )
                    return None

        results = await asyncio.gather(*(sweep(timer) for timer in due))
        return {timer.channel_id: result for timer, result in zip(due, results)}

    async def get_next_fire(self, now: datetime | None = None) -> timedelta:
        now = now or _utcnow()
        smallest = MAXIMUM_WAIT_TIME
        for timer in await self._snapshot():
            if timer.should_check(now):
                try:
                    wait = await self.check_messages(timer, now)
                except Exception as exc:  # noqa: BLE001
                    self.logger.error(
                        "autodelete.check_failed",
                        guild_id=timer.guild_id,
                        channel_id=timer.channel_id,
                        error=str(exc)[:300],
                    )
                    continue
            else:
                wait = timer.remaining(now)
            smallest = min(smallest, wait)
        return smallest

    async def check_messages(self, timer: AutoDeleteTimer, now: datetime | None = None) -> timedelta:
        """Time until the next message in the channel becomes eligible for deletion."""
        now = now or _utcnow()
        channel = await self._require_channel(timer)
        if timer.mode is AutoDeleteMode.ALWAYS:
            oldest = None
            async for message in channel.history(limit=1, oldest_first=True):
                oldest = message
            if oldest is None:
                return timer.duration
            anchor = as_utc(oldest.created_at)
        else:
            last_message_id = getattr(channel, "last_message_id", None)
            if not last_message_id:
                return timer.duration
            anchor = snowflake_time(last_message_id)
        return max(timedelta(0), anchor + timer.duration - now)

    async def clean_now(self, timer: AutoDeleteTimer, now: datetime | None = None) -> SweepResult:
        now = now or _utcnow()
        channel = await self._require_channel(timer)

        last_message_id = getattr(channel, "last_message_id", None)
        if not last_message_id or int(last_message_id) == timer.last_message_id_cleaned:
            result = SweepResult("no_new_messages")
            await self._record_sweep(timer, now, result)
            return result

        cutoff = now - timer.duration
        if timer.mode is AutoDeleteMode.AFTER_SILENCE and snowflake_time(last_message_id) > cutoff:
            return SweepResult("too_early")

        candidates, stream_failures = await self._collect_candidates(channel, cutoff)
        if not candidates:
            result = SweepResult("no_candidates", failed=stream_failures)
        else:
            deleted, delete_failures, watermark = await self._delete_candidates(timer, candidates)
            result = SweepResult(
                "cleaned",
                deleted=deleted,
                failed=stream_failures + delete_failures,
                watermark=watermark,
            )
        await self._record_sweep(timer, now, result)

        if result.failed:
            self.logger.warning(
                "autodelete.sweep_incomplete",
                guild_id=timer.guild_id,
                channel_id=timer.channel_id,
                deleted=result.deleted,
                failed=result.failed,
            )
        elif result.deleted:
            self.logger.log(
                "autodelete.swept",
                guild_id=timer.guild_id,
                channel_id=timer.channel_id,
                deleted=result.deleted,
            )
        return result

    async def _require_channel(self, timer: AutoDeleteTimer) -> Any:
        channel = await resolve_channel(self.client, timer.channel_id)
        if channel is None:
            raise RuntimeError(f"channel {timer.channel_id} could not be resolved")
        return channel

    async def _collect_candidates(self, channel: Any, cutoff: datetime) -> tuple[list[Any], int]:
        candidates: list[Any] = []
        total_failures = 0
        page_failures = 0
        cursor: Any = None
        while True:
            fetched = 0
            reached_cutoff = False
            try:
                async for message in channel.history(limit=HISTORY_PAGE_SIZE, after=cursor, oldest_first=True):
                    fetched += 1
                    cursor = message
                    if as_utc(message.created_at) > cutoff:
                        reached_cutoff = True
                        break
                    candidates.append(message)
            except discord.HTTPException:
                total_failures += 1
                page_failures += 1
                if page_failures >= MAX_STREAM_FAILURES:
                    break
                continue
            page_failures = 0
            if reached_cutoff or fetched < HISTORY_PAGE_SIZE:
                break
        return candidates, total_failures

    async def _delete_candidates(self, timer: AutoDeleteTimer, candidates: list[Any]) -> tuple[int, int, int | None]:
        deleted = 0
        failed = 0
        newest: Any = None
        await self.logging_channels.set_pauses(timer.guild_id, timer.channel_id, SWEEP_PAUSE_KINDS, SWEEP_PAUSE_REASON)
        try:
            for message in candidates:
                try:
                    await message.delete()
                except discord.HTTPException:
                    failed += 1
                    continue
                deleted += 1
                if newest is None or as_utc(message.created_at) >= as_utc(newest.created_at):
                    newest = message
        finally:
            await self.logging_channels.clear_pauses(timer.guild_id, timer.channel_id)
        return deleted, failed, int(newest.id) if newest is not None else None

    async def _record_sweep(self, timer: AutoDeleteTimer, now: datetime, result: SweepResult) -> None:
        async with self._lock:
            if self._timers.get(timer.channel_id) is not timer:
                return
            timer.last_cleaned = now
            if result.watermark is not None:
                timer.last_message_id_cleaned = result.watermark
            fields = {
                "last_cleaned": timer.last_cleaned.timestamp(),
                "last_message_id_cleaned": timer.last_message_id_cleaned,
            }
        await self.store.merge(AUTODELETE_TABLE, str(timer.channel_id), fields)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self.run_loop(), name="autodelete-loop")
        return self._task

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def run_loop(self) -> None:
        self.logger.log("autodelete.loop_started")
        while not self._stop_event.is_set():
            try:
                wait = await self.get_next_fire()
                if await self._wait_for_stop(max(wait, MINIMUM_LOOP_SLEEP)):
                    break
                await self.fire_due_timers()
            except Exception as exc:  # noqa: BLE001
                self.logger.error("autodelete.tick_failed", error=str(exc)[:300])
                if await self._wait_for_stop(TICK_ERROR_BACKOFF):
                    break
        self.logger.log("autodelete.loop_stopped")

    async def _wait_for_stop(self, timeout: timedelta) -> bool:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout.total_seconds())
        except asyncio.TimeoutError:
            return False
        return True
