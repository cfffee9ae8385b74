from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from munibot.services.economy_service import EconomyService, TransferRejected
from munibot.services.wallet_service import NothingToClaim, TooSoon, WalletService
from munibot.utils.discord_utils import display_name

if TYPE_CHECKING:
    from munibot.bot import MuniBot


GUILD_ONLY_REPLY = "this command only works in a server!"


async def wallet_message(wallets: WalletService, guild_id: int, user_id: int, name: str) -> str:
    wallet = await wallets.get_wallet(guild_id, user_id)
    payout = await wallets.get_payout(guild_id, user_id)
    text = f"{name} has **{wallet.balance:,}** coins in their wallet."
    if payout.balance:
        text += f" (**{payout.balance:,}** waiting to be claimed)"
    return text


async def claim_message(wallets: WalletService, guild_id: int, user_id: int, now: datetime | None = None) -> str:
    try:
        receipt = await wallets.claim(guild_id, user_id, now=now)
    except NothingToClaim:
        return "you don't have anything to claim yet! chat a bit and try again."
    except TooSoon as exc:
        return f"you can't claim yet! try again <t:{int(exc.next_payout_time.timestamp())}:R>."
    return (
        f"you claimed **{receipt.amount_claimed:,}** coins! "
        f"your wallet now has **{receipt.new_balance:,}**."
    )


async def transfer_message(
    economy: EconomyService,
    guild_id: int,
    sender_id: int,
    recipient_id: int,
    recipient_name: str,
    amount: int,
) -> str:
    try:
        receipt = await economy.transfer(guild_id, sender_id, recipient_id, amount)
    except TransferRejected as exc:
        return str(exc)
    return (
        f"transferred **{receipt.amount:,}** coins to {recipient_name}! "
        f"you now have **{receipt.sender_balance:,}** left."
    )


class EconomyCog(commands.Cog):
    def __init__(self, bot: "MuniBot") -> None:
        self.bot = bot

    @commands.command(name="wallet", help="check how many coins you (or someone else) have.")
    async def wallet(self, ctx: commands.Context, member: discord.Member | None = None) -> None:
        if ctx.guild is None:
            await ctx.send(GUILD_ONLY_REPLY)
            return
        target = member or ctx.author
        await ctx.send(await wallet_message(self.bot.wallets, ctx.guild.id, target.id, display_name(target)))

    @commands.command(name="claim", help="move your chat earnings into your wallet.")
    async def claim(self, ctx: commands.Context) -> None:
        if ctx.guild is None:
            await ctx.send(GUILD_ONLY_REPLY)
            return
        await ctx.send(await claim_message(self.bot.wallets, ctx.guild.id, ctx.author.id))

    @commands.command(name="transfer", help="give some of your coins to someone else.")
    async def transfer(self, ctx: commands.Context, recipient: discord.Member, amount: int) -> None:
        if ctx.guild is None:
            await ctx.send(GUILD_ONLY_REPLY)
            return
        await ctx.send(
            await transfer_message(
                self.bot.economy,
                ctx.guild.id,
                ctx.author.id,
                recipient.id,
                display_name(recipient),
                amount,
            )
        )


async def setup(bot: "MuniBot") -> None:
    await bot.add_cog(EconomyCog(bot))
