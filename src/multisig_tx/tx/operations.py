"""
Operation constructors and threshold classification.

Each constructor validates its arguments and returns an immutable
`Operation`. `operation_threshold` decides which account threshold an
operation needs; a transaction needs the highest level across its
operations.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .types import (
    MAX_WEIGHT,
    AuthorizationEntry,
    Operation,
    OperationType,
    ThresholdLevel,
    TransactionBody,
    normalize_identity,
)

# SET_OPTIONS fields that change who can sign, and therefore need HIGH
_SECURITY_FIELDS = ("master_weight", "low_threshold", "med_threshold", "high_threshold", "signer")


def _check_weight(name: str, value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= MAX_WEIGHT:
        raise ValueError(f"{name} must be an integer in [0, {MAX_WEIGHT}], got {value!r}")
    return value


def payment(destination: str, amount: int) -> Operation:
    """
    Transfer native balance to another account.

    Args:
        destination: Destination account address
        amount: Positive amount in base units
    """
    if not isinstance(amount, int) or amount <= 0:
        raise ValueError(f"Payment amount must be a positive integer, got {amount!r}")
    return Operation(
        type=OperationType.PAYMENT,
        params={"destination": normalize_identity(destination), "amount": amount},
    )


def set_options(
    *,
    master_weight: Optional[int] = None,
    low_threshold: Optional[int] = None,
    med_threshold: Optional[int] = None,
    high_threshold: Optional[int] = None,
    signer: Optional[str] = None,
    signer_weight: Optional[int] = None,
    home_domain: Optional[str] = None,
) -> Operation:
    """
    Change account settings.

    A signer weight of 0 removes the signer from the account.

    Raises:
        ValueError: If nothing is set, or a signer is given without a weight
    """
    params: Dict[str, Any] = {}
    for name, value in (("master_weight", master_weight), ("low_threshold", low_threshold),
                        ("med_threshold", med_threshold), ("high_threshold", high_threshold)):
        if value is not None:
            params[name] = _check_weight(name, value)
    if (signer is None) != (signer_weight is None):
        raise ValueError("signer and signer_weight must be given together")
    if signer is not None:
        params["signer"] = {"key": normalize_identity(signer), "weight": _check_weight("signer_weight", signer_weight)}
    if home_domain is not None:
        params["home_domain"] = home_domain
    if not params:
        raise ValueError("set_options needs at least one field")
    return Operation(type=OperationType.SET_OPTIONS, params=params)


def invoke_contract(
    contract: str,
    function: str,
    args: Sequence[Any] = (),
    auth: Iterable[AuthorizationEntry] = (),
) -> Operation:
    """
    Call a contract function.

    Authorization entries are normally left empty and filled in from
    simulation.

    Args:
        contract: Contract address
        function: Function name
        args: JSON-native call arguments
        auth: Pre-declared authorization entries
    """
    if not contract:
        raise ValueError("contract address is required")
    if not function:
        raise ValueError("function name is required")
    return Operation(
        type=OperationType.INVOKE_CONTRACT,
        params={"contract": contract, "function": function, "args": list(args)},
        auth=tuple(auth),
    )


def bump_sequence(bump_to: int) -> Operation:
    """Move the source account's sequence number forward to `bump_to`."""
    if not isinstance(bump_to, int) or bump_to < 0:
        raise ValueError(f"bump_to must be a non-negative integer, got {bump_to!r}")
    return Operation(type=OperationType.BUMP_SEQUENCE, params={"bump_to": bump_to})


def configure_multisig(
    signers: Mapping[str, int],
    *,
    low_threshold: int = 0,
    med_threshold: int,
    high_threshold: int,
    master_weight: Optional[int] = None,
) -> List[Operation]:
    """
    Operations that turn an account into a weighted multisig account.

    The first operation sets thresholds (and optionally the master key
    weight); each following operation installs one signer.

    Example:
        configure_multisig({a: 1, b: 1, c: 1}, med_threshold=2, high_threshold=2,
                           master_weight=0)
        gives a 2-of-3 account whose master key can no longer sign.
    """
    ops = [set_options(
        master_weight=master_weight,
        low_threshold=low_threshold,
        med_threshold=med_threshold,
        high_threshold=high_threshold,
    )]
    for identity, weight in signers.items():
        ops.append(set_options(signer=identity, signer_weight=weight))
    return ops


def operation_threshold(op: Operation) -> ThresholdLevel:
    """
    Threshold level an operation requires of its source account.

    BUMP_SEQUENCE is LOW; SET_OPTIONS touching signers, thresholds or the
    master weight is HIGH; everything else is MEDIUM.
    """
    if op.type == OperationType.BUMP_SEQUENCE:
        return ThresholdLevel.LOW
    if op.type == OperationType.SET_OPTIONS:
        if any(field in op.params for field in _SECURITY_FIELDS):
            return ThresholdLevel.HIGH
        return ThresholdLevel.MEDIUM
    return ThresholdLevel.MEDIUM


def required_level(body: TransactionBody) -> ThresholdLevel:
    """Highest threshold level across the body's operations."""
    return max(operation_threshold(op) for op in body.operations)


__all__ = [
    "payment",
    "set_options",
    "invoke_contract",
    "bump_sequence",
    "configure_multisig",
    "operation_threshold",
    "required_level",
]
