"""Utility modules for the stock_signals package."""

from .retry import ExponentialBackoff, RetryState

__all__ = [
    "ExponentialBackoff",
    "RetryState",
]
