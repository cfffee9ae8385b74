from __future__ import annotations

from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from munibot.ui.topic_change import TopicChangeView, topic_change_embed

if TYPE_CHECKING:
    from munibot.bot import MuniBot


class TopicChangeCog(commands.Cog):
    def __init__(self, bot: "MuniBot") -> None:
        self.bot = bot

    @commands.guild_only()
    @commands.command(name="topic_change", help="anonymously request a change of topic in this channel.")
    async def topic_change(self, ctx: commands.Context) -> None:
        # requests are anonymous
        try:
            await ctx.message.delete()
        except (discord.Forbidden, discord.HTTPException) as exc:
            self.bot.logger.warning("topic_change.delete_failed", channel_id=ctx.channel.id, error=str(exc)[:300])
        view = TopicChangeView(ctx.channel, self.bot.logger)
        try:
            await ctx.author.send(embed=topic_change_embed(), view=view)
        except (discord.Forbidden, discord.HTTPException) as exc:
            view.stop()
            self.bot.logger.warning("topic_change.prompt_failed", user_id=ctx.author.id, error=str(exc)[:300])


async def setup(bot: "MuniBot") -> None:
    await bot.add_cog(TopicChangeCog(bot))
