from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from munibot.services.logging_channel_service import LoggingChannelService

if TYPE_CHECKING:
    from munibot.bot import MuniBot


async def set_log_channel_message(logging_channels: LoggingChannelService, guild_id: int, channel_id: int) -> str:
    await logging_channels.set(guild_id, channel_id)
    await logging_channels.send_simple_log(guild_id, "logging enabled", f"audit logs will be posted in <#{channel_id}>.")
    return f"got it! i'll post logs in <#{channel_id}> from now on."


async def stop_logging_message(logging_channels: LoggingChannelService, guild_id: int) -> str:
    if await logging_channels.clear(guild_id):
        return "logging has been disabled for this server."
    return "no logging channel is set for this server! nothing was done."


class AdminCog(commands.Cog):
    def __init__(self, bot: "MuniBot") -> None:
        self.bot = bot

    @commands.group(name="admin", help="server administration.", invoke_without_command=True)
    @commands.guild_only()
    async def admin(self, ctx: commands.Context) -> None:
        await ctx.send("usage: `admin set-log-channel [channel]` or `admin stop-logging`")

    @admin.command(name="set-log-channel", help="post audit logs to a channel.")
    @commands.guild_only()
    @commands.has_guild_permissions(manage_guild=True)
    async def set_log_channel(self, ctx: commands.Context, channel: discord.TextChannel | None = None) -> None:
        target = channel or ctx.channel
        await ctx.send(await set_log_channel_message(self.bot.logging_channels, ctx.guild.id, target.id))

    @admin.command(name="stop-logging", help="stop posting audit logs.")
    @commands.guild_only()
    @commands.has_guild_permissions(manage_guild=True)
    async def stop_logging(self, ctx: commands.Context) -> None:
        await ctx.send(await stop_logging_message(self.bot.logging_channels, ctx.guild.id))


async def setup(bot: "MuniBot") -> None:
    await bot.add_cog(AdminCog(bot))
