from __future__ import annotations

import random

import discord
from discord.ext import commands

from munibot.handlers.magical import magical_message


RESULT_PREFIXES = (
    "you roll and... it lands on ",
    "what a roll! it's a ",
    "you rolled a ",
    "it's a ",
    "",
)
CRITICAL_FAILURE_SUFFIXES = (
    ". ouch.",
    ". better luck next time >.>",
    ". this oughta be good.",
    "... \N{POPCORN}",
    ". haha. yikes.",
    " lol",
)
CRITICAL_SUCCESS_SUFFIXES = (
    "! impressive ;3",
    "! HECK YEAH",
    " LET'S GOOOOOOO",
    " WOOOOOO",
    "!! >u<",
    "!! :D",
    "!! >:D",
)
SHAKE_ADVERBS = (
    "anxiously", "boldly", "briskly", "carefully", "carelessly", "cautiously",
    "curiously", "daintily", "delicately", "doubtfully", "eagerly", "excitedly",
    "fiercely", "firmly", "gently", "gracefully", "impatiently", "nervously",
    "recklessly", "skeptically", "suspiciously", "tenderly", "vigorously", "violently",
)
EIGHT_BALL_RESPONSES = (
    "it is certain!",
    "it is decidedly so!",
    "without a doubt!",
    "yes - definitely!",
    "you may rely on it!",
    "as I see it, yes!",
    "most likely!",
    "outlook good!",
    "yes!",
    "signs point to yes!",
    "reply hazy, try again.",
    "ask again later.",
    "better not tell you now...",
    "cannot predict now.",
    "concentrate and ask again.",
    "don't count on it.",
    "my reply is no.",
    "my sources say no...",
    "outlook not so good...",
    "very doubtful.",
)
COMMON_TONE_INDICATORS = (
    ("/gen", "genuine"),
    ("/hj", "half-joking"),
    ("/j", "joking"),
    ("/lh", "lighthearted"),
    ("/lyr", "lyrics"),
    ("/nm", "not mad"),
    ("/p", "platonic"),
    ("/sarc", "sarcastic"),
    ("/srs", "serious"),
    ("/t", "teasing"),
)
UNCOMMON_TONE_INDICATORS = (
    ("/c", "copypasta"),
    ("/nbh", "nobody here targeted"),
    ("/neg", "negative"),
    ("/neu", "neutral"),
    ("/nsrs", "not serious"),
    ("/nsx", "no sexual intent"),
    ("/pos", "positive"),
    ("/q", "quote"),
    ("/r", "romantic"),
    ("/ref", "reference"),
    ("/rh", "rhetorical"),
    ("/sx", "sexual intent"),
    ("/th", "threat"),
)


def roll_for_message(sides: int, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    if sides <= 0:
        return "what."
    if sides == 1:
        return "you roll a one-sided die. it's a 1."
    result = rng.randint(1, sides)
    if sides == 2:
        return f"coin flip. it's {'heads' if result == 1 else 'tails'}!"
    prefix = rng.choice(RESULT_PREFIXES)
    if sides >= 20 and result == 1:
        suffix = rng.choice(CRITICAL_FAILURE_SUFFIXES)
    elif sides >= 20 and result == sides:
        suffix = rng.choice(CRITICAL_SUCCESS_SUFFIXES)
    else:
        suffix = "." if result <= sides // 2 else "!"
    return f"{prefix}**{result}**{suffix}"


def eight_ball_message(question: str, rng: random.Random | None = None) -> str:
    rng = rng or random.Random()
    quoted = "\n".join(f"> {line}" for line in discord.utils.escape_mentions(question).splitlines() or [""])
    return (
        f"{quoted}\n\n"
        f"*shakes eight ball {rng.choice(SHAKE_ADVERBS)}...*\n"
        f"\N{BILLIARDS} \"{rng.choice(EIGHT_BALL_RESPONSES)}\""
    )


def _fahrenheit_to_celsius(value: float) -> str:
    return f"{value:g}°F is {(value - 32.0) * 5.0 / 9.0:.1f}°C :3"


def _celsius_to_fahrenheit(value: float) -> str:
    return f"{value:g}°C is {value * 9.0 / 5.0 + 32.0:.0f}°F :3"


def convert_temperature_message(raw: str) -> str:
    """Convert `72F` / `20c` / `15` (both ways). Raises ValueError for unparseable input."""
    text = raw.strip().lower()
    number = ""
    for char in text:
        if char.isdigit() or char in ".-":
            number += char
        else:
            break
    try:
        value = float(number)
    except ValueError:
        raise ValueError(f"couldn't parse temperature {raw!r}") from None
    unit = next((char for char in text[len(number):] if char in "fc"), None)
    if unit == "f":
        return _fahrenheit_to_celsius(value)
    if unit == "c":
        return _celsius_to_fahrenheit(value)
    return f"{_celsius_to_fahrenheit(value)} or {_fahrenheit_to_celsius(value)}"


def tone_indicator_guide() -> str:
    lines = [
        "## a guide on tone indicators",
        "text doesn't have a voice. tone, inflection, and other non-verbal bits of communication are lost "
        "through text! to remedy this, we use tone indicators to specify what tone we mean to convey in our messages.",
        "don't worry about memorizing them all. i'm here to help you remember!",
        "## common indicators",
        "these are the tone indicators used most often.",
    ]
    lines.extend(f"**{tag}**: {meaning}" for tag, meaning in COMMON_TONE_INDICATORS)
    lines.append("## other indicators")
    lines.append("you may not see these tone indicators as much, but they're useful once in a while.")
    lines.extend(f"**{tag}**: {meaning}" for tag, meaning in UNCOMMON_TONE_INDICATORS)
    return "\n".join(lines)


class FunCog(commands.Cog):
    def __init__(self, bot: commands.Bot) -> None:
        self.bot = bot
        self._rng = random.Random()

    @commands.command(name="roll", help="roll a die.")
    async def roll(self, ctx: commands.Context, sides: int = 6) -> None:
        await ctx.send(roll_for_message(sides, self._rng))

    @commands.command(name="eight_ball", help="ask the magic eight ball about the future.")
    async def eight_ball(self, ctx: commands.Context, *, question: str) -> None:
        await ctx.send(eight_ball_message(question, self._rng))

    @commands.command(name="convert_temperature", help="convert between fahrenheit and celsius.")
    async def convert_temperature(self, ctx: commands.Context, *, temperature: str) -> None:
        try:
            await ctx.send(convert_temperature_message(temperature))
        except ValueError:
            await ctx.send("i couldn't read that temperature! try something like `72F` or `20C`.")

    @commands.command(name="tone-indicators", help="display a guide on tone indicators.")
    async def tone_indicators(self, ctx: commands.Context) -> None:
        await ctx.reply(tone_indicator_guide())

    @commands.command(name="magical", help="check your magicalness today.")
    async def magical(self, ctx: commands.Context) -> None:
        await ctx.send(magical_message(str(ctx.author.id), ctx.author.name))


async def setup(bot: commands.Bot) -> None:
    await bot.add_cog(FunCog(bot))
