r"""
Signature accumulation and threshold evaluation.

Every function here is pure: it takes an envelope (and an account) and
returns a value or a new envelope. Nothing is remembered between calls, so
signers that work hours apart on different machines only need to pass the
envelope bytes along.

Weights are only ever counted for signatures that verify against the
envelope's current body hash. A signature collected for an earlier body
therefore stops counting the moment the body changes.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Union
import logging

from ..runtime.errors import AuthorizationRejected, ErrorCode, InvalidSignatureError
from ..tx.operations import required_level
from ..tx.types import Account, Envelope, SignatureEntry, ThresholdLevel
from .ed25519 import verify_signature
from .signer import Signer, SignerError

logger = logging.getLogger(__name__)


def verify_entry(digest: bytes, entry: SignatureEntry) -> bool:
    """Check one signature entry against a body hash."""
    return verify_signature(entry.identity, entry.signature, digest)


def sign(envelope: Envelope, signer: Signer) -> Envelope:
    """
    Add `signer`'s signature to an envelope.

    The body is left untouched. Signing again with an identity already in
    the set replaces that entry, so repeated signing is idempotent.

    Args:
        envelope: Envelope to sign
        signer: Signing capability

    Returns:
        New envelope with signatures ∪ {new entry}

    Raises:
        SignerError: If the signer produced a signature that does not
            verify against its own identity
    """
    digest = envelope.hash()
    signature = signer.sign_over(digest)
    entry = SignatureEntry(identity=signer.identity, signature=signature)
    if not verify_entry(digest, entry):
        raise SignerError(f"Signer {signer.identity} produced a signature that does not verify")

    replaced = envelope.signature_for(entry.identity) is not None
    logger.debug(
        f"{'Re-signed' if replaced else 'Signed'} {digest.hex()[:16]} by {entry.identity[:16]} "
        f"({len(envelope.signatures) + (0 if replaced else 1)} signatures)"
    )
    return envelope.with_signature(entry)


def verify_signatures(envelope: Envelope) -> List[str]:
    """
    Find signatures that do not verify against the current body.

    Returns:
        Identities whose signatures are invalid, in envelope order
    """
    digest = envelope.hash()
    return [entry.identity for entry in envelope.signatures if not verify_entry(digest, entry)]


def accumulated_weight(envelope: Envelope, account: Account, verify: bool = True) -> int:
    """
    Sum of the account weights of the envelope's signers.

    Signers absent from the account's weight table contribute 0. With
    `verify` (the default) signatures that do not verify against the body
    contribute 0 as well.

    Args:
        envelope: Envelope whose signatures are counted
        account: Account holding the weight table
        verify: Only count valid signatures

    Returns:
        Accumulated weight
    """
    digest = envelope.hash() if verify else None
    total = 0
    for entry in envelope.signatures:
        weight = account.weight_of(entry.identity)
        if weight == 0:
            continue
        if digest is not None and not verify_entry(digest, entry):
            logger.debug(f"Ignoring invalid signature from {entry.identity[:16]}")
            continue
        total += weight
    return total


def meets_threshold(envelope: Envelope, account: Account,
                    level: Optional[ThresholdLevel] = None, verify: bool = True) -> bool:
    """
    Check whether the envelope's signatures authorize it at `level`.

    Args:
        envelope: Envelope to evaluate
        account: Source account
        level: Threshold level; defaults to the level the body's
            operations require

    Returns:
        True if accumulated weight >= the account threshold at `level`
    """
    if level is None:
        level = required_level(envelope.body)
    return accumulated_weight(envelope, account, verify) >= account.threshold_for(level)


def merge_signatures(envelope: Envelope, other: Union[Envelope, bytes]) -> Envelope:
    """
    Fold another party's signature round into `envelope`.

    Both envelopes must describe the same body on the same network: a
    round collected over a different body hash is stale and rejected as a
    whole. Each incoming signature must verify.

    Args:
        envelope: Envelope held by the coordinator
        other: Envelope (or its wire bytes) returned by a signer

    Returns:
        Envelope carrying the union of both signature sets

    Raises:
        AuthorizationRejected: If the body hashes differ
        InvalidSignatureError: If an incoming signature does not verify
    """
    if isinstance(other, (bytes, bytearray)):
        other = Envelope.from_bytes(bytes(other), envelope.network_id)

    digest = envelope.hash()
    other_digest = other.hash()
    if envelope.network_id != other.network_id or digest != other_digest:
        raise AuthorizationRejected(
            "Signature round was collected over a different transaction body",
            code=ErrorCode.BODY_MISMATCH,
            details={"expected": digest.hex(), "actual": other_digest.hex()},
        )

    merged = envelope
    for entry in other.signatures:
        if not verify_entry(digest, entry):
            raise InvalidSignatureError(
                f"Signature from {entry.identity} does not verify against the body",
                details={"identity": entry.identity, "txHash": digest.hex()},
            )
        merged = merged.with_signature(entry)
    logger.debug(f"Merged {len(other.signatures)} signatures into {digest.hex()[:16]}")
    return merged


@dataclass
class ThresholdProgress:
    """Snapshot of how far an envelope is from authorization."""
    level: ThresholdLevel
    required: int
    accumulated: int
    contributing: List[str] = field(default_factory=list)
    non_contributing: List[str] = field(default_factory=list)

    @property
    def met(self) -> bool:
        return self.accumulated >= self.required


def threshold_progress(envelope: Envelope, account: Account,
                       level: Optional[ThresholdLevel] = None) -> ThresholdProgress:
    """
    Break down the accumulated weight per signer.

    Signers with zero weight or invalid signatures are listed as
    non-contributing.
    """
    if level is None:
        level = required_level(envelope.body)
    digest = envelope.hash()
    progress = ThresholdProgress(level=level, required=account.threshold_for(level), accumulated=0)
    for entry in envelope.signatures:
        weight = account.weight_of(entry.identity)
        if weight > 0 and verify_entry(digest, entry):
            progress.accumulated += weight
            progress.contributing.append(entry.identity)
        else:
            progress.non_contributing.append(entry.identity)
    return progress


__all__ = [
    "verify_entry",
    "sign",
    "verify_signatures",
    "accumulated_weight",
    "meets_threshold",
    "merge_signatures",
    "ThresholdProgress",
    "threshold_progress",
]
