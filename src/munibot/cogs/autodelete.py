from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from munibot.services.autodelete_service import MINIMUM_TIMER_DURATION, AutoDeleteMode, AutoDeleteService
from munibot.utils.durations import format_duration, parse_duration

if TYPE_CHECKING:
    from munibot.bot import MuniBot


async def set_autodelete_message(
    autodelete: AutoDeleteService,
    guild_id: int,
    channel_id: int,
    raw_duration: str,
    raw_mode: str = "after-silence",
) -> str:
    try:
        duration = parse_duration(raw_duration)
    except ValueError:
        return f"i couldn't understand `{raw_duration}` as a duration! try something like `2h30m` or `1d`."
    if duration < MINIMUM_TIMER_DURATION:
        return f"autodelete timers must be at least **{format_duration(MINIMUM_TIMER_DURATION)}** long!"
    try:
        mode = AutoDeleteMode.parse(raw_mode)
    except ValueError as exc:
        return str(exc)
    await autodelete.set_autodelete(guild_id, channel_id, duration, mode)
    return f"autodelete timer set! {mode.describe(channel_id, duration)}"


async def clear_autodelete_message(autodelete: AutoDeleteService, guild_id: int, channel_id: int) -> str:
    if await autodelete.clear_autodelete(guild_id, channel_id):
        return f"autodelete timer removed for <#{channel_id}>."
    return f"there's no autodelete timer for <#{channel_id}>! nothing was done."


async def list_autodelete_message(autodelete: AutoDeleteService, guild_id: int) -> str:
    timers = await autodelete.list_timers(guild_id)
    if not timers:
        return "no autodelete timers are set in this server."
    now = datetime.now(tz=timezone.utc)
    lines = ["autodelete timers:"]
    for timer in timers:
        status = "due now" if timer.should_check(now) else f"next check in {format_duration(timer.remaining(now))}"
        lines.append(f"- <#{timer.channel_id}>: {timer.mode.value.replace('_', ' ')}, {format_duration(timer.duration)} ({status})")
    return "\n".join(lines)


class AutoDeleteCog(commands.Cog):
    def __init__(self, bot: "MuniBot") -> None:
        self.bot = bot

    @commands.group(name="autodelete", help="automatically delete old messages.", invoke_without_command=True)
    @commands.guild_only()
    async def autodelete(self, ctx: commands.Context) -> None:
        await ctx.send(await list_autodelete_message(self.bot.autodelete, ctx.guild.id))

    @autodelete.command(name="set", help="set an autodelete timer for this channel.")
    @commands.guild_only()
    @commands.has_guild_permissions(manage_messages=True)
    async def set_timer(self, ctx: commands.Context, duration: str, mode: str = "after-silence") -> None:
        await ctx.send(await set_autodelete_message(self.bot.autodelete, ctx.guild.id, ctx.channel.id, duration, mode))

    @autodelete.command(name="clear", help="remove the autodelete timer from a channel.")
    @commands.guild_only()
    @commands.has_guild_permissions(manage_messages=True)
    async def clear_timer(self, ctx: commands.Context, channel: discord.TextChannel | None = None) -> None:
        target = channel or ctx.channel
        await ctx.send(await clear_autodelete_message(self.bot.autodelete, ctx.guild.id, target.id))

    @autodelete.command(name="list", help="list the autodelete timers in this server.")
    @commands.guild_only()
    async def list_timers(self, ctx: commands.Context) -> None:
        await ctx.send(await list_autodelete_message(self.bot.autodelete, ctx.guild.id))


async def setup(bot: "MuniBot") -> None:
    await bot.add_cog(AutoDeleteCog(bot))
