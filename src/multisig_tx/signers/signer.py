r"""
Base signer interface.

A signer is an opaque per-identity capability. The core only ever asks it
for its public identity and for a signature over given bytes; private key
material stays behind this interface.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Callable

from ..runtime.errors import MultisigTxError
from ..tx.types import normalize_identity


class SignerError(MultisigTxError):
    """Base exception for signer operations."""
    pass


class Signer(ABC):
    """
    Base signer interface.

    Implementations must produce signatures that verify against the
    ed25519 public key their identity names.
    """

    @property
    @abstractmethod
    def identity(self) -> str:
        """
        Get the signer's public identity.

        Returns:
            Hex-encoded 32-byte public key
        """
        pass

    @abstractmethod
    def sign_over(self, data: bytes) -> bytes:
        """
        Sign data.

        Args:
            data: Bytes to sign (the envelope's signature payload hash)

        Returns:
            64-byte signature

        Raises:
            SignerError: If signing fails
        """
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.identity})"


class CallbackSigner(Signer):
    """
    Signer that delegates to a callable.

    For signing capabilities that live elsewhere (a hardware device, a
    signing service) and can only be reached through a function.
    """

    def __init__(self, identity: str, sign_fn: Callable[[bytes], bytes]):
        self._identity = normalize_identity(identity)
        self._sign_fn = sign_fn

    @property
    def identity(self) -> str:
        return self._identity

    def sign_over(self, data: bytes) -> bytes:
        try:
            signature = self._sign_fn(data)
        except Exception as e:
            raise SignerError(f"Signing callback failed for {self._identity}", cause=e)
        if not isinstance(signature, (bytes, bytearray)) or len(signature) != 64:
            raise SignerError(f"Signing callback for {self._identity} returned a malformed signature")
        return bytes(signature)
