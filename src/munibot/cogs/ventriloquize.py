from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from munibot.config import Settings

if TYPE_CHECKING:
    from munibot.bot import MuniBot


TYPING_DELAY_PER_CHAR_SEC = 0.025


def is_ventriloquist(settings: Settings, user_id: int) -> bool:
    return int(user_id) in settings.ventriloquist_ids


def typing_delay(text: str) -> float:
    return len(text) * TYPING_DELAY_PER_CHAR_SEC


class VentriloquizeCog(commands.Cog):
    def __init__(self, bot: "MuniBot") -> None:
        self.bot = bot
        self._tasks: set[asyncio.Task] = set()

    async def cog_check(self, ctx: commands.Context) -> bool:
        return is_ventriloquist(self.bot.settings, ctx.author.id)

    @commands.command(name="ventriloquize", help="speak through the bot.", hidden=True)
    async def ventriloquize(self, ctx: commands.Context, *, message: str) -> None:
        try:
            await ctx.message.delete()
        except (discord.Forbidden, discord.HTTPException) as exc:
            self.bot.logger.warning("ventriloquize.delete_failed", channel_id=ctx.channel.id, error=str(exc)[:300])
        task = asyncio.create_task(self._speak(ctx.channel, message), name=f"ventriloquize-{ctx.channel.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _speak(self, channel: discord.abc.Messageable, message: str) -> None:
        delay = typing_delay(message)
        try:
            async with channel.typing():
                await asyncio.sleep(delay)
            await channel.send(message)
        except (discord.Forbidden, discord.HTTPException) as exc:
            self.bot.logger.warning("ventriloquize.send_failed", error=str(exc)[:300])


async def setup(bot: "MuniBot") -> None:
    await bot.add_cog(VentriloquizeCog(bot))
