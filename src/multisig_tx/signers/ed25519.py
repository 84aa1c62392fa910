"""
ED25519 signer implementation.

Provides ED25519 signing functionality using the crypto module.
"""

from __future__ import annotations
from typing import Union

from ..crypto.ed25519 import Ed25519Error, Ed25519PrivateKey, Ed25519PublicKey
from .signer import Signer


class Ed25519Signer(Signer):
    """ED25519 signer holding a private key in memory."""

    def __init__(self, private_key: Ed25519PrivateKey):
        """
        Initialize ED25519 signer.

        Args:
            private_key: Private key to sign with
        """
        self.private_key = private_key
        self.public_key = private_key.public_key()

    @classmethod
    def from_secret(cls, secret_hex: str) -> Ed25519Signer:
        """Create a signer from a hex-encoded 32-byte seed."""
        return cls(Ed25519PrivateKey.from_hex(secret_hex))

    @classmethod
    def from_seed(cls, seed: Union[str, bytes]) -> Ed25519Signer:
        """Deterministic signer, for tests and local ledgers."""
        return cls(Ed25519PrivateKey.from_seed(seed))

    @classmethod
    def generate(cls) -> Ed25519Signer:
        return cls(Ed25519PrivateKey.generate())

    @property
    def identity(self) -> str:
        return self.public_key.to_hex()

    def sign_over(self, data: bytes) -> bytes:
        """
        Sign data with the private key.

        Args:
            data: Data to sign

        Returns:
            Raw signature bytes
        """
        return self.private_key.sign(data)


def verify_signature(identity: str, signature: bytes, data: bytes) -> bool:
    """
    Verify an ed25519 signature made by `identity` over `data`.

    Malformed identities verify as False rather than raising.
    """
    try:
        public_key = Ed25519PublicKey.from_hex(identity)
    except Ed25519Error:
        return False
    return public_key.verify(signature, data)
