"""
Request pipeline: credit debit, provider call and parsing behind one envelope.
"""
from .orchestrator import RequestOrchestrator, ActionResult, Parsed, provider_error_status

__all__ = ['RequestOrchestrator', 'ActionResult', 'Parsed', 'provider_error_status']
