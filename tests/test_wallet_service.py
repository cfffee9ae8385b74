from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from munibot.services.wallet_service import (
    PAYOUT_INTERVAL,
    ClaimReceipt,
    InsufficientFunds,
    NothingToClaim,
    TooSoon,
    WalletService,
)
from munibot.storage import DocumentStore


def _make_service(tmp_path: Path) -> WalletService:
    store = DocumentStore(tmp_path / "state.msgpack")
    asyncio.run(store.load())
    return WalletService(store)


def test_wallet_starts_empty_and_blocks_overspending(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> None:
        wallet = await service.get_wallet(1, 2)
        assert wallet.balance == 0

        assert await service.deposit(wallet, 500) == 500
        with pytest.raises(InsufficientFunds) as excinfo:
            await service.spend(wallet, 700)
        assert excinfo.value.balance == 500
        assert (await service.get_wallet(1, 2)).balance == 500

        assert await service.spend(wallet, 500) == 0
        assert (await service.get_wallet(1, 2)).balance == 0

    asyncio.run(scenario())


def test_spend_then_deposit_restores_balance(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> None:
        wallet = await service.get_wallet(1, 2)
        await service.deposit(wallet, 321)
        for amount in (0, 1, 100, 321):
            await service.spend(wallet, amount)
            await service.deposit(wallet, amount)
            assert (await service.get_wallet(1, 2)).balance == 321

    asyncio.run(scenario())


def test_deposit_order_does_not_matter(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> tuple[int, int]:
        first = await service.get_wallet(1, 10)
        second = await service.get_wallet(1, 11)
        await service.deposit(first, 40)
        await service.deposit(first, 2)
        await service.deposit(second, 2)
        await service.deposit(second, 40)
        return (await service.get_wallet(1, 10)).balance, (await service.get_wallet(1, 11)).balance

    assert asyncio.run(scenario()) == (42, 42)


def test_concurrent_deposits_are_not_lost(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> int:
        wallet = await service.get_wallet(3, 4)
        await asyncio.gather(*(service.deposit(wallet, 1) for _ in range(25)))
        return (await service.get_wallet(3, 4)).balance

    assert asyncio.run(scenario()) == 25


def test_wallets_are_scoped_per_guild(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> None:
        await service.deposit(await service.get_wallet(1, 2), 50)
        assert (await service.get_wallet(9, 2)).balance == 0

    asyncio.run(scenario())


def test_new_payout_is_backdated_one_interval(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    payout = asyncio.run(service.get_payout(1, 2))

    assert payout.balance == 0
    assert payout.next_payout_time() <= payout.last_payout + PAYOUT_INTERVAL


def test_claim_moves_payout_into_wallet(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> None:
        wallet = await service.get_wallet(1, 2)
        await service.deposit(wallet, 25)
        await service.get_payout(1, 2)
        await service.deposit_payout(1, 2, 150)

        receipt = await service.claim(1, 2)

        assert receipt == ClaimReceipt(amount_claimed=150, new_balance=175)
        assert (await service.get_payout(1, 2)).balance == 0
        assert (await service.get_wallet(1, 2)).balance == 175

    asyncio.run(scenario())


def test_claim_with_empty_payout_is_nothing_to_claim_regardless_of_time(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> None:
        payout = await service.get_payout(1, 2)
        for offset in (timedelta(0), timedelta(minutes=-4), timedelta(days=3)):
            with pytest.raises(NothingToClaim):
                await service.claim(1, 2, now=payout.last_payout + offset)
        after = await service.get_payout(1, 2)
        assert after.last_payout == payout.last_payout
        assert (await service.get_wallet(1, 2)).balance == 0

    asyncio.run(scenario())


def test_claim_interval_boundary(tmp_path: Path) -> None:
    service = _make_service(tmp_path)

    async def scenario() -> None:
        payout = await service.get_payout(1, 2)
        await service.deposit_payout(1, 2, 10)
        first = await service.claim(1, 2, now=payout.next_payout_time())
        assert first.amount_claimed == 10

        await service.deposit_payout(1, 2, 7)
        claimed = await service.get_payout(1, 2)
        with pytest.raises(TooSoon) as excinfo:
            await service.claim(1, 2, now=claimed.next_payout_time() - timedelta(seconds=1))
        assert excinfo.value.next_payout_time == claimed.next_payout_time()
        assert (await service.get_payout(1, 2)).balance == 7

        second = await service.claim(1, 2, now=claimed.next_payout_time())
        assert second == ClaimReceipt(amount_claimed=7, new_balance=17)

    asyncio.run(scenario())
