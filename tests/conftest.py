import asyncio

import pytest

from market_maker.agent import BotAgent, BotRunState
from market_maker.config import GlobalSettings, resolve_settings
from market_maker.errors import SwapFailed
from market_maker.models import Account, Receipt


class DummyBalance:
    """Balance provider returning a fixed value or raising a stored error."""

    def __init__(self, balance=1.0):
        self.balance = balance
        self.calls = []

    async def get_balance(self, address):
        self.calls.append(address)
        if isinstance(self.balance, Exception):
            raise self.balance
        return self.balance


class DummySwap:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []

    async def swap(self, secret_key, request):
        self.calls.append((secret_key, request))
        if request.direction in self.fail_on:
            raise SwapFailed("boom")
        return Receipt(
            signature=f"sig{len(self.calls)}",
            direction=request.direction,
            amount=request.amount,
            target=request.target,
        )


class FakeSleep:
    """Record requested delays and yield control without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)
        await asyncio.sleep(0)


async def never_wake(delay):
    await asyncio.Event().wait()


@pytest.fixture
def settings():
    return GlobalSettings(
        cycles_before_recycle=2,
        min_amount=0.01,
        max_amount=0.01,
        min_interval=1,
        max_interval=1,
        is_randomized=False,
        settle_delay=0,
        check_interval=0,
    )


@pytest.fixture
def account():
    return Account(id="acc1", public_key="PUBKEY1111111111", secret_key="s3cret")


@pytest.fixture
def make_agent(settings, account):
    def _make(balance=None, swap=None, **kwargs):
        run_state = BotRunState(account=account, settings=resolve_settings(settings))
        kwargs.setdefault("check_interval", 1.0)
        kwargs.setdefault("settle_delay", 5.0)
        kwargs.setdefault("sleep", FakeSleep())
        return BotAgent(
            run_state,
            balance if balance is not None else DummyBalance(),
            swap if swap is not None else DummySwap(),
            **kwargs,
        )

    return _make
