"""Per-user credit balances.

Every AI-backed action is paid for up front with a debit. The balance check
and the decrement happen as one indivisible step on the store: a Lua script
on Redis, or a single ``asyncio.Lock`` critical section for the in-memory
backend used when Redis is not configured. Balances never go negative.

Custom exceptions: LedgerError, InsufficientCreditError
"""
from __future__ import annotations

import os
import asyncio
from typing import Dict, Optional

from upsc_ai.utils import get_logger, get_redis, log_credit_event

LOG = get_logger()

LEDGER_STARTING_CREDITS = int(os.getenv('LEDGER_STARTING_CREDITS', '500'))
LEDGER_KEY_PREFIX = os.getenv('LEDGER_KEY_PREFIX', 'credits:')

# KEYS[1] balance key, ARGV[1] amount, ARGV[2] opening balance.
# Returns {1, new_balance} on success, {0, balance} when funds are short.
DEBIT_SCRIPT = """
local balance = redis.call('GET', KEYS[1])
if not balance then
  redis.call('SET', KEYS[1], ARGV[2])
  balance = ARGV[2]
end
balance = tonumber(balance)
local amount = tonumber(ARGV[1])
if balance < amount then
  return {0, balance}
end
return {1, redis.call('DECRBY', KEYS[1], amount)}
"""


class LedgerError(Exception):
    pass


class InsufficientCreditError(LedgerError):
    def __init__(self, balance: int, required: int):
        self.balance = balance
        self.required = required
        super().__init__(f'insufficient credit: balance {balance}, required {required}')


def _check_amount(amount) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError('amount must be an integer')
    if amount < 0:
        raise ValueError('amount must not be negative')
    return amount


class CreditLedger:
    _instance = None

    def __init__(self, redis_client=None, starting_credits: Optional[int] = None):
        self._redis = redis_client if redis_client is not None else get_redis()
        self.starting_credits = LEDGER_STARTING_CREDITS if starting_credits is None else starting_credits
        self._balances: Dict[str, int] = {}
        self._lock = asyncio.Lock()
        LOG.info('CreditLedger initialized', extra={'backend': 'redis' if self._redis is not None else 'memory', 'starting_credits': self.starting_credits})

    @classmethod
    def get_instance(cls) -> 'CreditLedger':
        if cls._instance is None:
            cls._instance = CreditLedger()
        return cls._instance

    @property
    def backend(self) -> str:
        return 'redis' if self._redis is not None else 'memory'

    def _key(self, user_id: str) -> str:
        return f'{LEDGER_KEY_PREFIX}{user_id}'

    async def ensure_account(self, user_id: str) -> int:
        """Open the account with the starting balance if it does not exist yet."""
        if not user_id:
            raise ValueError('user_id is required')
        if self._redis is not None:
            key = self._key(user_id)
            created = await self._redis.set(key, self.starting_credits, nx=True)
            if created:
                log_credit_event('credit_account_opened', user_id, self.starting_credits, balance=self.starting_credits)
            return int(await self._redis.get(key))
        async with self._lock:
            if user_id not in self._balances:
                self._balances[user_id] = self.starting_credits
                log_credit_event('credit_account_opened', user_id, self.starting_credits, balance=self.starting_credits)
            return self._balances[user_id]

    async def get_balance(self, user_id: str) -> int:
        return await self.ensure_account(user_id)

    async def debit(self, user_id: str, amount: int, request_id: Optional[str] = None) -> int:
        """Take ``amount`` credits from the user; returns the new balance.

        Raises InsufficientCreditError (leaving the balance untouched) when the
        user cannot afford it. A zero amount is a no-op.
        """
        amount = _check_amount(amount)
        if not user_id:
            raise ValueError('user_id is required')
        if amount == 0:
            return await self.get_balance(user_id)
        if self._redis is not None:
            ok, balance = await self._redis.eval(DEBIT_SCRIPT, 1, self._key(user_id), amount, self.starting_credits)
            ok, balance = int(ok), int(balance)
        else:
            async with self._lock:
                balance = self._balances.setdefault(user_id, self.starting_credits)
                ok = balance >= amount
                if ok:
                    balance -= amount
                    self._balances[user_id] = balance
        if not ok:
            log_credit_event('credit_insufficient', user_id, amount, balance=balance, request_id=request_id)
            raise InsufficientCreditError(balance, amount)
        log_credit_event('credit_debit', user_id, amount, balance=balance, request_id=request_id)
        return balance

    async def credit(self, user_id: str, amount: int, request_id: Optional[str] = None) -> int:
        """Add credits to the user's balance; returns the new balance."""
        amount = _check_amount(amount)
        await self.ensure_account(user_id)
        if self._redis is not None:
            balance = int(await self._redis.incrby(self._key(user_id), amount))
        else:
            async with self._lock:
                self._balances[user_id] += amount
                balance = self._balances[user_id]
        log_credit_event('credit_grant', user_id, amount, balance=balance, request_id=request_id)
        return balance

    async def ping(self) -> bool:
        if self._redis is None:
            return True
        return bool(await self._redis.ping())
