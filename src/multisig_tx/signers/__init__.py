"""
Signers and signature accumulation.
"""

from .signer import Signer, SignerError, CallbackSigner
from .ed25519 import Ed25519Signer, verify_signature
from .multisig import (
    sign,
    verify_entry,
    verify_signatures,
    accumulated_weight,
    meets_threshold,
    merge_signatures,
    ThresholdProgress,
    threshold_progress,
)

__all__ = [
    "Signer",
    "SignerError",
    "CallbackSigner",
    "Ed25519Signer",
    "verify_signature",
    "sign",
    "verify_entry",
    "verify_signatures",
    "accumulated_weight",
    "meets_threshold",
    "merge_signatures",
    "ThresholdProgress",
    "threshold_progress",
]
