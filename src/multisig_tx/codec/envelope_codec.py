"""
Envelope Codec

Canonical, order-preserving binary encoding of transaction bodies and
envelopes. This is the only representation that crosses signer boundaries,
so it must round-trip byte-identically: encode(decode(b)) == b for every
accepted b.

Envelope layout:

    magic "MSTX" | u8 schema version | 32-byte network id
    | len-prefixed body | uvarint signature count
    | per signature: 32-byte identity, len-prefixed signature

Body layout:

    32-byte source | u64le sequence | uvarint fee
    | uvarint min_time | uvarint max_time
    | uvarint op count | per op: u8 type, string params, auth entries
    | u8 has-resources | resources
"""

from __future__ import annotations
from typing import List, Optional

from pydantic import ValidationError

from ..canonjson import dumps_canonical, loads_canonical
from ..runtime.errors import ErrorCode, MalformedEnvelope
from ..tx.types import (
    AuthorizationEntry,
    CredentialsType,
    Envelope,
    Operation,
    OperationType,
    ResourceData,
    SignatureEntry,
    TimeBounds,
    TransactionBody,
)
from .reader import BinaryReader
from .writer import BinaryWriter

MAGIC = b"MSTX"
SCHEMA_VERSION = 1


def _write_identity(writer: BinaryWriter, identity: str) -> None:
    writer.bytes(bytes.fromhex(identity))


def _read_identity(reader: BinaryReader) -> str:
    return reader.bytes(32).hex()


def _read_json(reader: BinaryReader):
    text = reader.string()
    try:
        return loads_canonical(text)
    except ValueError as e:
        raise MalformedEnvelope("Invalid canonical JSON field", cause=e)


def _write_strings(writer: BinaryWriter, values) -> None:
    writer.uvarint(len(values))
    for value in values:
        writer.string(value)


def _read_strings(reader: BinaryReader) -> List[str]:
    return [reader.string() for _ in range(reader.uvarint())]


def _write_auth(writer: BinaryWriter, entry: AuthorizationEntry) -> None:
    writer.string(entry.address)
    writer.uvarint(entry.nonce)
    writer.uvarint(entry.expiration_ledger)
    writer.u8(int(entry.credentials))
    writer.string(dumps_canonical(entry.invocation))


def _read_auth(reader: BinaryReader) -> AuthorizationEntry:
    address = reader.string()
    nonce = reader.uvarint()
    expiration = reader.uvarint()
    credentials_code = reader.u8()
    try:
        credentials = CredentialsType(credentials_code)
    except ValueError as e:
        raise MalformedEnvelope(f"Unknown credentials type {credentials_code}", cause=e)
    invocation = _read_json(reader)
    return AuthorizationEntry(
        address=address,
        nonce=nonce,
        expiration_ledger=expiration,
        credentials=credentials,
        invocation=invocation,
    )


def _write_operation(writer: BinaryWriter, op: Operation) -> None:
    writer.u8(int(op.type))
    writer.string(dumps_canonical(op.params))
    writer.uvarint(len(op.auth))
    for entry in op.auth:
        _write_auth(writer, entry)


def _read_operation(reader: BinaryReader) -> Operation:
    type_code = reader.u8()
    try:
        op_type = OperationType(type_code)
    except ValueError as e:
        raise MalformedEnvelope(f"Unknown operation type {type_code}", cause=e)
    params = _read_json(reader)
    auth = tuple(_read_auth(reader) for _ in range(reader.uvarint()))
    return Operation(type=op_type, params=params, auth=auth)


def _write_resources(writer: BinaryWriter, resources: Optional[ResourceData]) -> None:
    if resources is None:
        writer.u8(0)
        return
    writer.u8(1)
    _write_strings(writer, resources.read_only)
    _write_strings(writer, resources.read_write)
    writer.uvarint(resources.instructions)
    writer.uvarint(resources.read_bytes)
    writer.uvarint(resources.write_bytes)
    writer.uvarint(resources.resource_fee)


def _read_resources(reader: BinaryReader) -> Optional[ResourceData]:
    flag = reader.u8()
    if flag == 0:
        return None
    if flag != 1:
        raise MalformedEnvelope(f"Invalid resources flag {flag}")
    return ResourceData(
        read_only=tuple(_read_strings(reader)),
        read_write=tuple(_read_strings(reader)),
        instructions=reader.uvarint(),
        read_bytes=reader.uvarint(),
        write_bytes=reader.uvarint(),
        resource_fee=reader.uvarint(),
    )


def encode_body(body: TransactionBody) -> bytes:
    """
    Encode a transaction body canonically.

    Args:
        body: Body to encode

    Returns:
        Canonical body bytes
    """
    writer = BinaryWriter()
    _write_identity(writer, body.source_account)
    writer.u64le(body.sequence)
    writer.uvarint(body.fee)
    writer.uvarint(body.time_bounds.min_time)
    writer.uvarint(body.time_bounds.max_time)
    writer.uvarint(len(body.operations))
    for op in body.operations:
        _write_operation(writer, op)
    _write_resources(writer, body.resources)
    return writer.to_bytes()


def _read_body(reader: BinaryReader) -> TransactionBody:
    source = _read_identity(reader)
    sequence = reader.u64le()
    fee = reader.uvarint()
    time_bounds = TimeBounds(min_time=reader.uvarint(), max_time=reader.uvarint())
    operations = tuple(_read_operation(reader) for _ in range(reader.uvarint()))
    resources = _read_resources(reader)
    return TransactionBody(
        source_account=source,
        sequence=sequence,
        fee=fee,
        time_bounds=time_bounds,
        operations=operations,
        resources=resources,
    )


def decode_body(data: bytes) -> TransactionBody:
    """
    Decode canonical body bytes.

    Raises:
        MalformedEnvelope: If the bytes do not match the body schema
    """
    reader = BinaryReader(data)
    try:
        body = _read_body(reader)
    except ValidationError as e:
        raise MalformedEnvelope("Body fields fail validation", cause=e)
    reader.expect_eof()
    return body


def encode_envelope(envelope: Envelope) -> bytes:
    """
    Encode an envelope for transfer or submission.

    Signatures are written in insertion order and never reordered.

    Args:
        envelope: Envelope to encode

    Returns:
        Wire bytes
    """
    writer = BinaryWriter()
    writer.bytes(MAGIC)
    writer.u8(SCHEMA_VERSION)
    writer.bytes(envelope.network_id)
    writer.len_prefixed_bytes(encode_body(envelope.body))
    writer.uvarint(len(envelope.signatures))
    for entry in envelope.signatures:
        _write_identity(writer, entry.identity)
        writer.len_prefixed_bytes(entry.signature)
    return writer.to_bytes()


def decode_envelope(data: bytes, network_id: Optional[bytes] = None) -> Envelope:
    """
    Decode wire bytes into an envelope.

    Args:
        data: Wire bytes
        network_id: Expected network id; when given, an envelope for any
            other network is rejected

    Returns:
        Decoded envelope

    Raises:
        MalformedEnvelope: On wrong magic, schema version or network id,
            truncated or trailing data, or invalid field values
    """
    reader = BinaryReader(data)
    magic = reader.bytes(len(MAGIC))
    if magic != MAGIC:
        raise MalformedEnvelope("Not a transaction envelope (bad magic)", details={"magic": magic.hex()})
    version = reader.u8()
    if version != SCHEMA_VERSION:
        raise MalformedEnvelope(
            f"Unsupported envelope schema version {version}",
            code=ErrorCode.SCHEMA_VERSION,
            details={"expected": SCHEMA_VERSION, "actual": version},
        )
    net_id = reader.bytes(32)
    if network_id is not None and net_id != network_id:
        raise MalformedEnvelope(
            "Envelope was built for a different network",
            code=ErrorCode.NETWORK_MISMATCH,
            details={"expected": network_id.hex(), "actual": net_id.hex()},
        )
    body = decode_body(reader.len_prefixed_bytes())
    try:
        signatures = tuple(
            SignatureEntry(identity=_read_identity(reader), signature=reader.len_prefixed_bytes())
            for _ in range(reader.uvarint())
        )
        envelope = Envelope(network_id=net_id, body=body, signatures=signatures)
    except ValidationError as e:
        raise MalformedEnvelope("Signature set fails validation", cause=e)
    reader.expect_eof()
    return envelope
