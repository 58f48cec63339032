"""Utility functions for kubexec."""

from .retry import backoff_delay, with_exponential_backoff

__all__ = ["backoff_delay", "with_exponential_backoff"]
