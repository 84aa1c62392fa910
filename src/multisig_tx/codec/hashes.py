"""
Hash Functions

Network identifiers, signature payloads and transaction hashes. A signature
always covers the network id, so an envelope signed for one network can
never be replayed on another.
"""

import hashlib

from .writer import BinaryWriter

# Domain tag separating transaction payloads from any other signed data
ENVELOPE_TYPE_TX = b"MSTX-TX\x00"


def sha256_bytes(input_bytes: bytes) -> bytes:
    """
    Compute SHA-256 hash of input bytes.

    Args:
        input_bytes: Input bytes to hash

    Returns:
        SHA-256 hash as bytes (32 bytes)
    """
    return hashlib.sha256(input_bytes).digest()


def network_id(passphrase: str) -> bytes:
    """
    Derive the 32-byte network identifier from a network passphrase.

    Args:
        passphrase: Human-readable network passphrase

    Returns:
        SHA-256 of the UTF-8 passphrase
    """
    return sha256_bytes(passphrase.encode("utf-8"))


def signature_payload(net_id: bytes, body) -> bytes:
    """
    Bytes whose hash every signer signs.

    Layout: network id || type tag || canonical body encoding.

    Args:
        net_id: 32-byte network identifier
        body: TransactionBody

    Returns:
        Signature payload bytes
    """
    from .envelope_codec import encode_body

    writer = BinaryWriter()
    writer.bytes(net_id)
    writer.bytes(ENVELOPE_TYPE_TX)
    writer.bytes(encode_body(body))
    return writer.to_bytes()


def transaction_hash(net_id: bytes, body) -> bytes:
    """
    Hash of the signature payload.

    Used both as the digest handed to signers and as the transaction's
    identifier on the ledger.
    """
    return sha256_bytes(signature_payload(net_id, body))
