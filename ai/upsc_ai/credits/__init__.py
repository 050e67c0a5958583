"""
Credit accounting: action pricing and the per-user ledger.
"""
from .costs import AIAction, compute_cost
from .ledger import CreditLedger, LedgerError, InsufficientCreditError

__all__ = [
	'AIAction', 'compute_cost',
	'CreditLedger', 'LedgerError', 'InsufficientCreditError',
]
