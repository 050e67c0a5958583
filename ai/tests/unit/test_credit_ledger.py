import asyncio

import pytest

from upsc_ai.credits import CreditLedger, InsufficientCreditError
from tests.fixtures.mock_redis import MockAsyncRedis


@pytest.mark.unit
def test_new_account_gets_starting_credits():
    ledger = CreditLedger(starting_credits=50)
    assert ledger.backend == 'memory'
    assert asyncio.run(ledger.get_balance('u1')) == 50


@pytest.mark.unit
def test_debit_reduces_balance():
    ledger = CreditLedger(starting_credits=20)

    async def run():
        remaining = await ledger.debit('u1', 8)
        return remaining, await ledger.get_balance('u1')

    assert asyncio.run(run()) == (12, 12)


@pytest.mark.unit
def test_insufficient_debit_leaves_balance_untouched():
    ledger = CreditLedger(starting_credits=8)

    async def run():
        with pytest.raises(InsufficientCreditError) as exc:
            await ledger.debit('u1', 10)
        return exc.value, await ledger.get_balance('u1')

    err, balance = asyncio.run(run())
    assert err.balance == 8
    assert err.required == 10
    assert balance == 8


@pytest.mark.unit
def test_zero_debit_is_noop_and_negative_rejected():
    ledger = CreditLedger(starting_credits=5)
    assert asyncio.run(ledger.debit('u1', 0)) == 5
    with pytest.raises(ValueError):
        asyncio.run(ledger.debit('u1', -1))
    with pytest.raises(ValueError):
        asyncio.run(ledger.debit('u1', 2.5))


@pytest.mark.unit
def test_concurrent_debits_never_overdraw():
    ledger = CreditLedger(starting_credits=10)

    async def attempt():
        try:
            await ledger.debit('u1', 3)
            return True
        except InsufficientCreditError:
            return False

    async def run():
        outcomes = await asyncio.gather(*[attempt() for _ in range(10)])
        return outcomes, await ledger.get_balance('u1')

    outcomes, balance = asyncio.run(run())
    assert outcomes.count(True) == 3
    assert balance == 1


@pytest.mark.unit
def test_credit_adds_to_balance():
    ledger = CreditLedger(starting_credits=0)
    assert asyncio.run(ledger.credit('u1', 25)) == 25
    with pytest.raises(ValueError):
        asyncio.run(ledger.credit('u1', -5))


@pytest.mark.unit
def test_redis_backend_debit_and_shortfall():
    redis = MockAsyncRedis()
    ledger = CreditLedger(redis_client=redis, starting_credits=8)
    assert ledger.backend == 'redis'

    async def run():
        after = await ledger.debit('u1', 5)
        with pytest.raises(InsufficientCreditError):
            await ledger.debit('u1', 10)
        return after, await ledger.get_balance('u1')

    assert asyncio.run(run()) == (3, 3)
    assert redis.store['credits:u1'] == '3'


@pytest.mark.unit
def test_redis_backend_keeps_existing_balance():
    redis = MockAsyncRedis()
    redis.store['credits:u1'] = '42'
    ledger = CreditLedger(redis_client=redis, starting_credits=500)
    assert asyncio.run(ledger.get_balance('u1')) == 42
    assert asyncio.run(ledger.credit('u1', 8)) == 50
