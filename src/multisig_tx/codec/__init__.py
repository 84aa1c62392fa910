"""
Canonical binary codec for transaction bodies and envelopes.
"""

from .writer import BinaryWriter
from .reader import BinaryReader
from .hashes import sha256_bytes, network_id, signature_payload, transaction_hash
from .envelope_codec import (
    MAGIC,
    SCHEMA_VERSION,
    encode_body,
    decode_body,
    encode_envelope,
    decode_envelope,
)

__all__ = [
    "BinaryWriter",
    "BinaryReader",
    "sha256_bytes",
    "network_id",
    "signature_payload",
    "transaction_hash",
    "MAGIC",
    "SCHEMA_VERSION",
    "encode_body",
    "decode_body",
    "encode_envelope",
    "decode_envelope",
]
