"""
Error recovery for transient failures.
"""

from .retry import RetryPolicy, ExponentialBackoff, FixedBackoff, MaxRetriesExceeded, RetryAttempt

__all__ = ["RetryPolicy", "ExponentialBackoff", "FixedBackoff", "MaxRetriesExceeded", "RetryAttempt"]
