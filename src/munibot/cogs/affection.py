from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass

from discord.ext import commands


CHANCE_OF_TILDE = 0.25
CHANCE_OF_EXCLAMATION = 0.5
CHANCE_OF_HEART = 0.1
BOOP_ERROR_CHANCE = 0.01
BOOP_RECOVERY_DELAY_SEC = 1.0
SMOOCH_CHANCE = 0.00001
EMPTY_RESPONSE = "o///o"
BOOP_ERROR_MESSAGE = (
    "```\n"
    "Traceback (most recent call last):\n"
    "  File \"munibot/cogs/affection.py\", line 60, in boop\n"
    "RuntimeError: your boop has broken the bot!!\n"
    "```"
)
BOOP_RECOVERY_MESSAGE = "jk. i'm fine. hehe! :3"
SMOOCH_MESSAGE = "*smooches back~*"


@dataclass(frozen=True)
class Pick:
    """A pool of responses chosen with probability `chance`; an empty pool never answers."""

    options: tuple[str, ...] = ()
    chance: float = 1.0

    def choose(self, rng: random.Random) -> str | None:
        if not self.options or rng.random() >= self.chance:
            return None
        return rng.choice(self.options)


NEVER = Pick()

NUZZLE = (
    Pick(("*giggle!*", "eee hehe!", "hehehe!", "aaa!", "eep!"), 0.5),
    Pick(("nuzzle", "nuzzleeeee", "nuzzlenuzzle", "nuzzles back", "nuzznuzz")),
)
BOOP = (
    Pick(("ACK!", "ack!", "eep!", "meep!")),
    Pick(("boops back", "@~@ bzzzt"), 0.1),
)
PAT = (
    Pick(("eep!", "hehe!", "meep!")),
    Pick(("leans into pats", "happy bot noises", "purrs", "is patted")),
)
HUG = (
    Pick(("❤❤❤~", "hehe! love ya too~", "hehe~", "huggleeee~")),
    Pick(("hugs back", "returns hugs", "returns soft hugs", "snuggles", "huggles", "gibs hugs")),
)
KISS = (
    Pick(("oh!", "meep~!", "uwu~", "ehehe~", "owo~", "owo th-thank you~", "h-huh??", "oh my!"), 0.9),
    Pick(("blushes", "blushyblush", "giggles", "hides face", "/)///(\\"), 0.3),
)
BITE = (
    Pick(
        (
            "OW",
            "OWIE",
            "OUCH >.<",
            "HEY D:<",
            "ow!! i hope that was a love bite >:c",
            "OW. why do i even have pain receptors ;-;",
        )
    ),
    Pick(("lightly nomfs back", "nibbles", "aggressive nuzzle", "bites back"), 0.1),
)
LICK = (
    Pick(
        (
            "oh--",
            "uh...",
            "h-hi.",
            "c-can i help you?",
            "is there something you want?",
            "oh my...",
            "...do i taste good to you?",
            "...well i hope i at least taste good",
        )
    ),
    NEVER,
)


def affection_message(prefixes: Pick, actions: Pick, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    parts: list[str] = []
    prefix = prefixes.choose(rng)
    if prefix:
        parts.append(prefix)
    action = actions.choose(rng)
    if action:
        tilde = "~" if rng.random() < CHANCE_OF_TILDE else ""
        exclamation = "!" if rng.random() < CHANCE_OF_EXCLAMATION else ""
        heart = " <3" if rng.random() < CHANCE_OF_HEART else ""
        parts.append(f"*{action}{tilde}{exclamation}{heart}*")
    return " ".join(parts).strip() or EMPTY_RESPONSE


class AffectionCog(commands.Cog):
    def __init__(self, bot: commands.Bot, rng: random.Random | None = None) -> None:
        self.bot = bot
        self._rng = rng or random.Random()

    async def _respond(self, ctx: commands.Context, responses: tuple[Pick, Pick]) -> None:
        await ctx.send(affection_message(*responses, rng=self._rng))

    @commands.command(name="boop", help="boop the bot!")
    async def boop(self, ctx: commands.Context) -> None:
        if self._rng.random() < BOOP_ERROR_CHANCE:
            await ctx.send(BOOP_ERROR_MESSAGE)
            await asyncio.sleep(BOOP_RECOVERY_DELAY_SEC)
            await ctx.send(BOOP_RECOVERY_MESSAGE)
            return
        await self._respond(ctx, BOOP)

    @commands.command(name="nuzzle", help="nuzzle the bot!")
    async def nuzzle(self, ctx: commands.Context) -> None:
        await self._respond(ctx, NUZZLE)

    @commands.command(name="kiss", help="kiss the bot!")
    async def kiss(self, ctx: commands.Context) -> None:
        if self._rng.random() < SMOOCH_CHANCE:
            await ctx.send(SMOOCH_MESSAGE)
            return
        await self._respond(ctx, KISS)

    @commands.command(name="pat", help="pat the bot!")
    async def pat(self, ctx: commands.Context) -> None:
        await self._respond(ctx, PAT)

    @commands.command(name="hug", help="hug the bot!")
    async def hug(self, ctx: commands.Context) -> None:
        await self._respond(ctx, HUG)

    @commands.command(name="bite", help="bite the bot! >:(")
    async def bite(self, ctx: commands.Context) -> None:
        await self._respond(ctx, BITE)

    @commands.command(name="lick", help="lick the bot?")
    async def lick(self, ctx: commands.Context) -> None:
        await self._respond(ctx, LICK)


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(AffectionCog(bot))
