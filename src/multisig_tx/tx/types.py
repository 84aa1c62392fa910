"""
Transaction data model.

Provides the immutable value types that flow between signing parties:
accounts with weighted signer tables, transaction bodies, signature entries,
simulation results and the envelope that pairs a body with its signatures.

All models are frozen pydantic models. Any "change" produces a new value,
which is what lets a body hash stand in for the body itself.
"""

from __future__ import annotations
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple
import base64
import binascii

from pydantic import BaseModel, Field, field_validator, model_validator

from ..canonjson import normalize
from ..runtime.errors import MalformedEnvelope

MAX_WEIGHT = 255
MAX_OPERATIONS = 100
SIGNATURE_LENGTH = 64
NETWORK_ID_LENGTH = 32


def normalize_identity(value: str) -> str:
    """
    Normalize a signer identity or account address.

    Identities are hex-encoded 32-byte ed25519 public keys, compared in
    lowercase form.

    Raises:
        ValueError: If the value is not 64 hex characters
    """
    if not isinstance(value, str):
        raise ValueError(f"Identity must be a hex string, got {type(value).__name__}")
    value = value.strip().lower()
    if len(value) != 64:
        raise ValueError(f"Identity must be 64 hex characters, got {len(value)}")
    try:
        bytes.fromhex(value)
    except ValueError as e:
        raise ValueError(f"Identity is not valid hex: {value!r}") from e
    return value


def _json_native(v: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return normalize(v)
    except TypeError as e:
        raise ValueError(str(e)) from e


class ThresholdLevel(IntEnum):
    """Named authorization levels of an account."""
    LOW = 0
    MEDIUM = 1
    HIGH = 2


class OperationType(IntEnum):
    """Operation kinds, with their wire codes."""
    PAYMENT = 1
    SET_OPTIONS = 2
    INVOKE_CONTRACT = 3
    BUMP_SEQUENCE = 4


class CredentialsType(IntEnum):
    """How an authorization entry is satisfied."""
    SOURCE_ACCOUNT = 0
    ADDRESS = 1


_FROZEN = {"frozen": True, "populate_by_name": True}


class Account(BaseModel):
    """
    Ledger account with its weighted signer table.

    `sequence` is the last sequence number the ledger accepted for this
    account; the next transaction must use `sequence + 1`.
    """
    address: str
    sequence: int = Field(ge=0)
    weights: Dict[str, int] = Field(default_factory=dict)
    thresholds: Dict[ThresholdLevel, int] = Field(default_factory=dict)
    balance: int = Field(default=0, ge=0)

    model_config = _FROZEN

    @field_validator('address')
    @classmethod
    def _check_address(cls, v: str) -> str:
        return normalize_identity(v)

    @field_validator('weights')
    @classmethod
    def _check_weights(cls, v: Dict[str, int]) -> Dict[str, int]:
        out = {}
        for identity, weight in v.items():
            if not 0 <= weight <= MAX_WEIGHT:
                raise ValueError(f"Signer weight must be in [0, {MAX_WEIGHT}], got {weight}")
            out[normalize_identity(identity)] = weight
        return out

    @field_validator('thresholds')
    @classmethod
    def _check_thresholds(cls, v: Dict[ThresholdLevel, int]) -> Dict[ThresholdLevel, int]:
        out = {level: 0 for level in ThresholdLevel}
        for level, value in v.items():
            if not 0 <= value <= MAX_WEIGHT:
                raise ValueError(f"Threshold must be in [0, {MAX_WEIGHT}], got {value}")
            out[ThresholdLevel(level)] = value
        return out

    def weight_of(self, identity: str) -> int:
        """Weight of a signer, 0 when absent from the table."""
        return self.weights.get(identity.lower(), 0)

    def threshold_for(self, level: ThresholdLevel) -> int:
        """Weight required at the given level."""
        return self.thresholds.get(ThresholdLevel(level), 0)

    @property
    def next_sequence(self) -> int:
        return self.sequence + 1


class AuthorizationEntry(BaseModel):
    """
    Pre-declared authorization discovered by simulation.

    Entries with ADDRESS credentials are signer-specific: the named address
    must itself authorize the invocation, so their validity can only be
    confirmed once signatures are attached.
    """
    address: str
    nonce: int = Field(default=0, ge=0)
    expiration_ledger: int = Field(default=0, ge=0)
    credentials: CredentialsType = CredentialsType.SOURCE_ACCOUNT
    invocation: Dict[str, Any] = Field(default_factory=dict)

    model_config = _FROZEN

    @field_validator('invocation')
    @classmethod
    def _canonical_invocation(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return _json_native(v)

    @property
    def signer_specific(self) -> bool:
        return self.credentials == CredentialsType.ADDRESS


class Operation(BaseModel):
    """
    Single operation of a transaction.

    `params` must be JSON-native (no floats, no bytes); it is stored in
    canonical form so decoding always reproduces an equal value.
    """
    type: OperationType
    params: Dict[str, Any] = Field(default_factory=dict)
    auth: Tuple[AuthorizationEntry, ...] = ()

    model_config = _FROZEN

    @field_validator('params')
    @classmethod
    def _canonical_params(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        return _json_native(v)

    @model_validator(mode='after')
    def _auth_only_on_invocations(self) -> Operation:
        if self.auth and self.type != OperationType.INVOKE_CONTRACT:
            raise ValueError(f"{self.type.name} operations cannot carry authorization entries")
        return self

    @model_validator(mode='after')
    def _invocation_target(self) -> Operation:
        if self.type == OperationType.INVOKE_CONTRACT:
            for key in ("contract", "function"):
                if not isinstance(self.params.get(key), str) or not self.params[key]:
                    raise ValueError(f"INVOKE_CONTRACT operations need a '{key}' name")
        return self


class TimeBounds(BaseModel):
    """Validity window in unix seconds. Zero means unbounded."""
    min_time: int = Field(default=0, ge=0)
    max_time: int = Field(default=0, ge=0)

    model_config = _FROZEN

    @model_validator(mode='after')
    def _ordered(self) -> TimeBounds:
        if self.max_time and self.max_time < self.min_time:
            raise ValueError("max_time must not precede min_time")
        return self

    def contains(self, now: int) -> bool:
        if now < self.min_time:
            return False
        return self.max_time == 0 or now <= self.max_time


class ResourceData(BaseModel):
    """Resource footprint and cost merged into a body by simulation."""
    read_only: Tuple[str, ...] = ()
    read_write: Tuple[str, ...] = ()
    instructions: int = Field(default=0, ge=0)
    read_bytes: int = Field(default=0, ge=0)
    write_bytes: int = Field(default=0, ge=0)
    resource_fee: int = Field(default=0, ge=0)

    model_config = _FROZEN


class TransactionBody(BaseModel):
    """
    Unsigned transaction body.

    Immutable once built. A body that carries `resources` has been through
    simulation and is ready for signing.
    """
    source_account: str
    sequence: int = Field(ge=1)
    fee: int = Field(ge=0)
    time_bounds: TimeBounds = Field(default_factory=TimeBounds)
    operations: Tuple[Operation, ...]
    resources: Optional[ResourceData] = None

    model_config = _FROZEN

    @field_validator('source_account')
    @classmethod
    def _check_source(cls, v: str) -> str:
        return normalize_identity(v)

    @field_validator('operations')
    @classmethod
    def _check_operations(cls, v: Tuple[Operation, ...]) -> Tuple[Operation, ...]:
        if not v:
            raise ValueError("A transaction needs at least one operation")
        if len(v) > MAX_OPERATIONS:
            raise ValueError(f"A transaction holds at most {MAX_OPERATIONS} operations")
        return v

    @property
    def prepared(self) -> bool:
        """True once simulation results were merged into the body."""
        return self.resources is not None

    @property
    def auth_entries(self) -> List[AuthorizationEntry]:
        return [entry for op in self.operations for entry in op.auth]


class SignatureEntry(BaseModel):
    """Signature of one identity over the envelope's signature payload."""
    identity: str
    signature: bytes

    model_config = _FROZEN

    @field_validator('identity')
    @classmethod
    def _check_identity(cls, v: str) -> str:
        return normalize_identity(v)

    @field_validator('signature')
    @classmethod
    def _check_signature(cls, v: bytes) -> bytes:
        if len(v) != SIGNATURE_LENGTH:
            raise ValueError(f"Signature must be {SIGNATURE_LENGTH} bytes, got {len(v)}")
        return v


class Envelope(BaseModel):
    """
    Wire-form pairing of a body with its current signature set.

    Signatures form a set keyed by identity. Insertion order is kept so that
    encoding is stable, but it carries no meaning.
    """
    network_id: bytes
    body: TransactionBody
    signatures: Tuple[SignatureEntry, ...] = ()

    model_config = _FROZEN

    @field_validator('network_id')
    @classmethod
    def _check_network_id(cls, v: bytes) -> bytes:
        if len(v) != NETWORK_ID_LENGTH:
            raise ValueError(f"Network id must be {NETWORK_ID_LENGTH} bytes, got {len(v)}")
        return v

    @model_validator(mode='after')
    def _unique_signers(self) -> Envelope:
        seen = set()
        for entry in self.signatures:
            if entry.identity in seen:
                raise ValueError(f"Duplicate signature entry for {entry.identity}")
            seen.add(entry.identity)
        return self

    def hash(self) -> bytes:
        """Signature payload hash; also the transaction's ledger identifier."""
        from ..codec.hashes import transaction_hash
        return transaction_hash(self.network_id, self.body)

    def hash_hex(self) -> str:
        return self.hash().hex()

    @property
    def signers(self) -> List[str]:
        return [entry.identity for entry in self.signatures]

    def signature_for(self, identity: str) -> Optional[SignatureEntry]:
        identity = identity.lower()
        for entry in self.signatures:
            if entry.identity == identity:
                return entry
        return None

    def with_signature(self, entry: SignatureEntry) -> Envelope:
        """
        Return a new envelope with `entry` in the signature set.

        An existing entry for the same identity is replaced in place.
        """
        signatures = list(self.signatures)
        for i, existing in enumerate(signatures):
            if existing.identity == entry.identity:
                signatures[i] = entry
                break
        else:
            signatures.append(entry)
        return self.model_copy(update={"signatures": tuple(signatures)})

    def with_body(self, body: TransactionBody) -> Envelope:
        """Return a new envelope for `body`. Prior signatures are dropped."""
        return Envelope(network_id=self.network_id, body=body)

    def to_bytes(self) -> bytes:
        from ..codec.envelope_codec import encode_envelope
        return encode_envelope(self)

    @classmethod
    def from_bytes(cls, data: bytes, network_id: Optional[bytes] = None) -> Envelope:
        from ..codec.envelope_codec import decode_envelope
        return decode_envelope(data, network_id)

    def to_base64(self) -> str:
        """Text form used for files and messages."""
        return base64.b64encode(self.to_bytes()).decode("ascii")

    @classmethod
    def from_base64(cls, text: str, network_id: Optional[bytes] = None) -> Envelope:
        try:
            data = base64.b64decode(text.strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedEnvelope("Envelope text is not valid base64", cause=e)
        return cls.from_bytes(data, network_id)


class SimulationResult(BaseModel):
    """Outcome of a dry run. Transient: recomputed whenever the body changes."""
    success: bool
    error: Optional[str] = None
    resources: ResourceData = Field(default_factory=ResourceData)
    auth: Tuple[AuthorizationEntry, ...] = ()
    min_resource_fee: int = Field(default=0, ge=0)
    latest_ledger: int = Field(default=0, ge=0)

    model_config = _FROZEN


class StatusKind(str, Enum):
    """Ledger-side status of a submitted transaction."""
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    NOT_FOUND = "NOT_FOUND"


class Status(BaseModel):
    """Result of a status query."""
    kind: StatusKind
    tx_hash: str
    result: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    ledger: Optional[int] = None

    model_config = _FROZEN

    @property
    def is_terminal(self) -> bool:
        return self.kind in (StatusKind.SUCCESS, StatusKind.FAILED)

    @classmethod
    def pending(cls, tx_hash: str) -> Status:
        return cls(kind=StatusKind.PENDING, tx_hash=tx_hash)

    @classmethod
    def not_found(cls, tx_hash: str) -> Status:
        return cls(kind=StatusKind.NOT_FOUND, tx_hash=tx_hash)

    @classmethod
    def success(cls, tx_hash: str, result: Optional[Dict[str, Any]] = None,
                ledger: Optional[int] = None) -> Status:
        return cls(kind=StatusKind.SUCCESS, tx_hash=tx_hash, result=result or {}, ledger=ledger)

    @classmethod
    def failed(cls, tx_hash: str, reason: str, ledger: Optional[int] = None) -> Status:
        return cls(kind=StatusKind.FAILED, tx_hash=tx_hash, reason=reason, ledger=ledger)


class SubmitStatus(str, Enum):
    """Transport-level answer to a submission."""
    PENDING = "PENDING"
    DUPLICATE = "DUPLICATE"
    TRY_AGAIN_LATER = "TRY_AGAIN_LATER"
    ERROR = "ERROR"


class SubmitResponse(BaseModel):
    """Raw response of `LedgerTransport.submit`."""
    tx_hash: str
    status: SubmitStatus
    error: Optional[str] = None
    error_code: Optional[str] = None
    latest_ledger: Optional[int] = None

    model_config = _FROZEN


class SubmissionHandle(BaseModel):
    """Reference to a transaction the network accepted for processing."""
    tx_hash: str
    sequence: int
    source_account: str
    submitted_at: float
    duplicate: bool = False

    model_config = _FROZEN


__all__ = [
    "MAX_WEIGHT",
    "MAX_OPERATIONS",
    "normalize_identity",
    "ThresholdLevel",
    "OperationType",
    "CredentialsType",
    "Account",
    "AuthorizationEntry",
    "Operation",
    "TimeBounds",
    "ResourceData",
    "TransactionBody",
    "SignatureEntry",
    "Envelope",
    "SimulationResult",
    "StatusKind",
    "Status",
    "SubmitStatus",
    "SubmitResponse",
    "SubmissionHandle",
]
