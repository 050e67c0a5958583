"""UPSC preparation AI service: credit-gated LLM study tools."""

__version__ = '1.0.0'
