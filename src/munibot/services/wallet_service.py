from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from munibot.storage import DocumentStore


WALLET_TABLE = "guild_wallet"
PAYOUT_TABLE = "guild_payout"
PAYOUT_INTERVAL = timedelta(minutes=5)


class LedgerError(Exception):
    """Base for ledger outcomes that are shown to the user instead of logged."""


class InsufficientFunds(LedgerError):
    def __init__(self, requested: int, balance: int) -> None:
        super().__init__(f"requested {requested} but only {balance} available")
        self.requested = requested
        self.balance = balance


class TooSoon(LedgerError):
    def __init__(self, next_payout_time: datetime) -> None:
        super().__init__(f"next payout available at {next_payout_time.isoformat()}")
        self.next_payout_time = next_payout_time


class NothingToClaim(LedgerError):
    def __init__(self) -> None:
        super().__init__("nothing to claim")


@dataclass
class Wallet:
    guild_id: int
    user_id: int
    balance: int = 0

    @property
    def key(self) -> str:
        return ledger_key(self.guild_id, self.user_id)


@dataclass
class Payout:
    guild_id: int
    user_id: int
    balance: int
    last_payout: datetime

    @property
    def key(self) -> str:
        return ledger_key(self.guild_id, self.user_id)

    def next_payout_time(self) -> datetime:
        return self.last_payout + PAYOUT_INTERVAL


@dataclass(frozen=True)
class ClaimReceipt:
    amount_claimed: int
    new_balance: int


def ledger_key(guild_id: int, user_id: int) -> str:
    return f"{int(guild_id)}:{int(user_id)}"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def _wallet_from_row(row: dict[str, Any]) -> Wallet:
    return Wallet(guild_id=int(row["guild_id"]), user_id=int(row["user_id"]), balance=int(row.get("balance", 0)))


def _payout_from_row(row: dict[str, Any]) -> Payout:
    return Payout(
        guild_id=int(row["guild_id"]),
        user_id=int(row["user_id"]),
        balance=int(row.get("balance", 0)),
        last_payout=datetime.fromtimestamp(float(row.get("last_payout", 0.0)), tz=timezone.utc),
    )


class WalletService:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def get_wallet(self, guild_id: int, user_id: int) -> Wallet:
        row = await self.store.get_or_insert(
            WALLET_TABLE,
            ledger_key(guild_id, user_id),
            {"guild_id": int(guild_id), "user_id": int(user_id), "balance": 0},
        )
        return _wallet_from_row(row)

    async def get_payout(self, guild_id: int, user_id: int) -> Payout:
        created = _utcnow() - PAYOUT_INTERVAL
        row = await self.store.get_or_insert(
            PAYOUT_TABLE,
            ledger_key(guild_id, user_id),
            {
                "guild_id": int(guild_id),
                "user_id": int(user_id),
                "balance": 0,
                "last_payout": created.timestamp(),
            },
        )
        return _payout_from_row(row)

    async def deposit(self, wallet: Wallet, amount: int) -> int:
        if amount < 0:
            raise ValueError("deposit amount must not be negative")

        def add(row: dict[str, Any]) -> dict[str, Any]:
            row["balance"] = int(row.get("balance", 0)) + amount
            return row

        row = await self.store.update(WALLET_TABLE, wallet.key, add)
        if row is None:
            raise RuntimeError(f"wallet {wallet.key} was not returned after deposit")
        wallet.balance = int(row["balance"])
        return wallet.balance

    async def spend(self, wallet: Wallet, amount: int) -> int:
        if amount < 0:
            raise ValueError("spend amount must not be negative")

        def take(row: dict[str, Any]) -> dict[str, Any]:
            balance = int(row.get("balance", 0))
            if balance < amount:
                raise InsufficientFunds(amount, balance)
            row["balance"] = balance - amount
            return row

        try:
            row = await self.store.update(WALLET_TABLE, wallet.key, take)
        except InsufficientFunds as exc:
            wallet.balance = exc.balance
            raise
        if row is None:
            raise RuntimeError(f"wallet {wallet.key} was not returned after spend")
        wallet.balance = int(row["balance"])
        return wallet.balance

    async def deposit_payout(self, guild_id: int, user_id: int, amount: int) -> int:
        payout = await self.get_payout(guild_id, user_id)

        def add(row: dict[str, Any]) -> dict[str, Any]:
            row["balance"] = int(row.get("balance", 0)) + amount
            return row

        row = await self.store.update(PAYOUT_TABLE, payout.key, add)
        if row is None:
            raise RuntimeError(f"payout {payout.key} was not returned after deposit")
        return int(row["balance"])

    async def claim(self, guild_id: int, user_id: int, now: datetime | None = None) -> ClaimReceipt:
        now = now or _utcnow()
        payout = await self.get_payout(guild_id, user_id)
        drained: list[int] = []

        def drain(row: dict[str, Any]) -> dict[str, Any]:
            current = _payout_from_row(row)
            if current.balance <= 0:
                raise NothingToClaim()
            if now < current.next_payout_time():
                raise TooSoon(current.next_payout_time())
            drained.append(current.balance)
            row["balance"] = 0
            row["last_payout"] = now.timestamp()
            return row

        if await self.store.update(PAYOUT_TABLE, payout.key, drain) is None:
            raise RuntimeError(f"payout {payout.key} was not returned after claim")
        wallet = await self.get_wallet(guild_id, user_id)
        new_balance = await self.deposit(wallet, drained[0])
        return ClaimReceipt(amount_claimed=drained[0], new_balance=new_balance)
