from __future__ import annotations

from dataclasses import dataclass

from munibot.handlers.base import DiscordEvent, DiscordEventHandler, EventKind, HandlerError
from munibot.services.logger_service import LoggerService
from munibot.services.wallet_service import InsufficientFunds, WalletService


SALARY_WORD_CAP = 10
SALARY_MIN_WORD_LEN = 3
SALARY_CEILING = 1000


def calculate_salary(text: str) -> int:
    """Salary for one chat message.

    Words containing anything but letters and digits are ignored, short words earn
    nothing and long words are capped, and the sum is squashed through a logistic curve
    so copypasta earns barely more than a normal sentence.
    """
    total = 0
    for word in text.split():
        if not word.isalnum():
            continue
        if len(word) >= SALARY_MIN_WORD_LEN:
            total += min(len(word), SALARY_WORD_CAP)
    salary = int(2000 / (1 + 1.002 ** (-total)) - 1000)
    return max(0, min(salary, SALARY_CEILING - 1))


class TransferRejected(Exception):
    """A transfer that never touched a wallet; the message is the user-facing reply."""


@dataclass(frozen=True)
class TransferReceipt:
    amount: int
    sender_balance: int
    recipient_balance: int


class EconomyService:
    def __init__(self, wallets: WalletService, logger: LoggerService) -> None:
        self.wallets = wallets
        self.logger = logger

    async def pay_salary(self, guild_id: int, user_id: int, text: str) -> int:
        salary = calculate_salary(text)
        await self.wallets.deposit_payout(guild_id, user_id, salary)
        return salary

    async def transfer(self, guild_id: int, sender_id: int, recipient_id: int, amount: int) -> TransferReceipt:
        if amount == 0:
            raise TransferRejected("you've transferred thin air.")
        if amount < 0:
            raise TransferRejected("you can't transfer a negative amount!")
        if sender_id == recipient_id:
            raise TransferRejected("you can't transfer money to yourself! >:(")

        sender = await self.wallets.get_wallet(guild_id, sender_id)
        try:
            await self.wallets.spend(sender, amount)
        except InsufficientFunds as exc:
            raise TransferRejected(
                f"you can't transfer {amount:,} when you only have {exc.balance:,} in your wallet!"
            ) from exc
        # not atomic across both wallets; a crash here loses the spent amount
        recipient = await self.wallets.get_wallet(guild_id, recipient_id)
        recipient_balance = await self.wallets.deposit(recipient, amount)
        self.logger.log(
            "economy.transfer",
            guild_id=guild_id,
            sender_id=sender_id,
            recipient_id=recipient_id,
            amount=amount,
        )
        return TransferReceipt(amount=amount, sender_balance=sender.balance, recipient_balance=recipient_balance)


class SalaryHandler(DiscordEventHandler):
    name = "economy-salary"

    def __init__(self, economy: EconomyService) -> None:
        self.economy = economy

    async def handle_discord_event(self, event: DiscordEvent) -> None:
        if event.kind is not EventKind.MESSAGE or event.guild_id is None or event.message is None:
            return
        author = event.message.author
        if getattr(author, "bot", False):
            return
        try:
            await self.economy.pay_salary(event.guild_id, int(author.id), str(event.message.content or ""))
        except RuntimeError as exc:
            raise HandlerError(self.name, str(exc)) from exc
