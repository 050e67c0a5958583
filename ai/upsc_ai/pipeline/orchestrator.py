"""Runs one credit-gated AI action end to end.

Order of operations: debit the user's credits, call the provider, parse the
response. A failed debit means the provider is never called. A provider
failure keeps the charge unless ``CREDIT_REFUND_ON_PROVIDER_FAILURE`` is set.
Every outcome is reported as an ActionResult carrying the HTTP status the
surface should return.
"""
from __future__ import annotations

import os
import time
from typing import Any, Awaitable, Callable, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from upsc_ai.credits import CreditLedger, InsufficientCreditError
from upsc_ai.providers import (
    AIResponse,
    ProviderError,
    ProviderUnconfiguredError,
    ProviderAuthError,
    ProviderRateLimitError,
)
from upsc_ai.utils import get_logger, log_credit_event

LOG = get_logger()

CREDIT_REFUND_ON_PROVIDER_FAILURE = os.getenv('CREDIT_REFUND_ON_PROVIDER_FAILURE', 'false').lower() in ('1', 'true', 'yes')

INSUFFICIENT_CREDIT_MESSAGE = 'Not enough tokens. Please upgrade your plan.'
UNCONFIGURED_MESSAGE = 'AI service not configured.'
AUTH_FAILED_MESSAGE = 'AI service authentication failed.'
RATE_LIMITED_MESSAGE = 'AI is busy right now. Please wait 30 seconds and try again.'
GENERIC_FAILURE_MESSAGE = 'Failed to generate response.'


class Parsed(NamedTuple):
    value: Any
    needs_review: bool = False


class ActionResult(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    status_code: int = 200
    data: Any = None
    error: Optional[str] = None
    details: Optional[str] = None
    tokens_used: int = 0
    model: Optional[str] = None
    credits_charged: int = 0
    needs_review: bool = False
    raw_text: Optional[str] = Field(None, exclude=True)

    def error_body(self, request_id: Optional[str] = None) -> dict:
        body = {'success': False, 'error': self.error, 'request_id': request_id}
        if self.details:
            body['details'] = self.details
        return body


def provider_error_status(error: ProviderError):
    """Map a provider failure to (http status, user-facing message)."""
    if isinstance(error, ProviderRateLimitError):
        return 429, RATE_LIMITED_MESSAGE
    if isinstance(error, ProviderUnconfiguredError):
        return 500, UNCONFIGURED_MESSAGE
    if isinstance(error, ProviderAuthError):
        return 500, AUTH_FAILED_MESSAGE
    return 500, GENERIC_FAILURE_MESSAGE


class RequestOrchestrator:
    _instance = None

    def __init__(self, ledger: Optional[CreditLedger] = None, refund_on_failure: Optional[bool] = None):
        self.ledger = ledger or CreditLedger.get_instance()
        self.refund_on_failure = CREDIT_REFUND_ON_PROVIDER_FAILURE if refund_on_failure is None else refund_on_failure

    @classmethod
    def get_instance(cls) -> 'RequestOrchestrator':
        if cls._instance is None:
            cls._instance = RequestOrchestrator()
        return cls._instance

    async def execute(self, user_id: str, action: str, cost: int, call: Callable[[], Awaitable[AIResponse]], parse: Callable[[AIResponse], Any], request_id: Optional[str] = None) -> ActionResult:
        """Charge ``cost``, run ``call`` and hand its response to ``parse``.

        ``parse`` may return a Parsed to flag output that needs review; any
        other return value is used as the result data as-is.
        """
        start = time.time()
        try:
            await self.ledger.debit(user_id, cost, request_id=request_id)
        except InsufficientCreditError as e:
            LOG.info('action_rejected_insufficient_credit', extra={'request_id': request_id, 'action': action, 'balance': e.balance, 'required': e.required})
            return ActionResult(success=False, status_code=402, error=INSUFFICIENT_CREDIT_MESSAGE, details=f'balance {e.balance}, required {e.required}')

        try:
            response = await call()
        except ProviderError as e:
            status, message = provider_error_status(e)
            charged = cost
            if self.refund_on_failure and cost > 0:
                await self.ledger.credit(user_id, cost, request_id=request_id)
                log_credit_event('credit_refund', user_id, cost, request_id=request_id)
                charged = 0
            LOG.warning('action_provider_failed', extra={'request_id': request_id, 'action': action, 'status_code': status, 'error_type': type(e).__name__, 'credits_charged': charged})
            return ActionResult(success=False, status_code=status, error=message, credits_charged=charged)

        parsed = parse(response)
        if not isinstance(parsed, Parsed):
            parsed = Parsed(parsed)
        duration_ms = int((time.time() - start) * 1000)
        LOG.info('action_complete', extra={'request_id': request_id, 'action': action, 'credits_charged': cost, 'tokens_used': response.tokens_used, 'needs_review': parsed.needs_review, 'duration_ms': duration_ms})
        return ActionResult(
            success=True,
            data=parsed.value,
            tokens_used=response.tokens_used,
            model=response.model,
            credits_charged=cost,
            needs_review=parsed.needs_review,
            raw_text=response.text,
        )
