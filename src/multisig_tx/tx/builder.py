"""
Unsigned envelope construction.
"""

from __future__ import annotations
from typing import Callable, Optional, Sequence
import time

from .types import (
    NETWORK_ID_LENGTH,
    Account,
    Envelope,
    Operation,
    TimeBounds,
    TransactionBody,
)

BASE_FEE = 100


def build_unsigned(
    account: Account,
    operations: Sequence[Operation],
    network_id: bytes,
    base_fee: int = BASE_FEE,
    timeout: int = 0,
    fee: Optional[int] = None,
    clock: Callable[[], float] = time.time,
) -> Envelope:
    """
    Build an unsigned envelope for the account's next sequence number.

    Args:
        account: Freshly fetched source account
        operations: Ordered operations; never reordered
        network_id: 32-byte network identifier
        base_fee: Per-operation inclusion fee
        timeout: Validity window in seconds from now; 0 means unbounded
        fee: Explicit total fee, overriding `base_fee * len(operations)`
        clock: Time source for the validity window

    Returns:
        Envelope with an empty signature set
    """
    if len(network_id) != NETWORK_ID_LENGTH:
        raise ValueError(f"Network id must be {NETWORK_ID_LENGTH} bytes")
    if timeout < 0:
        raise ValueError("Timeout must not be negative")

    operations = tuple(operations)
    if fee is None:
        fee = base_fee * len(operations)
    time_bounds = TimeBounds(max_time=int(clock()) + timeout) if timeout else TimeBounds()

    body = TransactionBody(
        source_account=account.address,
        sequence=account.next_sequence,
        fee=fee,
        time_bounds=time_bounds,
        operations=operations,
    )
    return Envelope(network_id=network_id, body=body)
