"""
In-process ledger.

A small but honest ledger behind the `LedgerTransport` interface: accounts
with weighted signers and thresholds, sequence numbers, time bounds, fees,
native payments and contracts written as Python callables. Submitted
transactions stay PENDING for a configurable number of status queries
before they are applied, and transport faults can be injected, which makes
it the workhorse of the test suite.

Contracts receive their own storage dict and must keep all state there;
simulation runs them against a copy of the ledger.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
import copy
import hashlib
import logging
import threading
import time

from ..codec.hashes import network_id as derive_network_id
from ..runtime.errors import TransportError
from ..signers.multisig import verify_entry
from ..tx.operations import required_level
from ..tx.types import (
    Account,
    AuthorizationEntry,
    CredentialsType,
    Envelope,
    Operation,
    OperationType,
    ResourceData,
    SimulationResult,
    Status,
    StatusKind,
    SubmitResponse,
    SubmitStatus,
    ThresholdLevel,
    TransactionBody,
    normalize_identity,
)
from .base import LedgerTransport

logger = logging.getLogger(__name__)

BASE_FEE = 100
BASE_RESERVE = 0


class ContractTrap(Exception):
    """Raised by contract code to abort an invocation."""


class Contract:
    """
    Contract hosted by the in-memory ledger.

    Args:
        address: Contract address
        functions: name -> callable(storage, *args) returning a JSON-native value
        auth: name -> callable(*args) returning the addresses that must
            authorize the call
    """

    def __init__(
        self,
        address: str,
        functions: Mapping[str, Callable[..., Any]],
        auth: Optional[Mapping[str, Callable[..., List[str]]]] = None,
    ):
        self.address = address
        self.functions = dict(functions)
        self.auth = dict(auth or {})

    def invoke(self, storage: Dict[str, Any], function: str, args: List[Any]) -> Any:
        fn = self.functions.get(function)
        if fn is None:
            raise ContractTrap(f"unknown function {function}")
        return fn(storage, *args)

    def required_auth(self, function: str, args: List[Any]) -> List[str]:
        fn = self.auth.get(function)
        return list(fn(*args)) if fn else []


class _OpFailure(Exception):
    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass
class _AccountRecord:
    address: str
    sequence: int
    balance: int
    weights: Dict[str, int] = field(default_factory=dict)
    thresholds: Dict[ThresholdLevel, int] = field(default_factory=lambda: {level: 0 for level in ThresholdLevel})
    home_domain: str = ""

    def snapshot(self) -> Account:
        return Account(
            address=self.address,
            sequence=self.sequence,
            weights=dict(self.weights),
            thresholds=dict(self.thresholds),
            balance=self.balance,
        )


@dataclass
class _LedgerState:
    accounts: Dict[str, _AccountRecord] = field(default_factory=dict)
    storage: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class _TxRecord:
    envelope: Envelope
    polls_remaining: int
    status: Status


def _nonce(address: str, sequence: int) -> int:
    digest = hashlib.sha256(f"{address}:{sequence}".encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "little")


class InMemoryLedger(LedgerTransport):
    """
    Ledger that lives in the current process.

    Fault injection:
        fail_submissions: the next N submits raise TransportError before
            the network sees the envelope
        lose_responses: the next N accepted submits raise TransportError
            after the envelope was accepted
        finalize_after: status queries that report PENDING before a
            transaction is applied
    """

    def __init__(
        self,
        passphrase: str = "Test Multisig Network ; 2025",
        finalize_after: int = 0,
        base_fee: int = BASE_FEE,
        clock: Callable[[], float] = time.time,
    ):
        self.passphrase = passphrase
        self.network_id = derive_network_id(passphrase)
        self.finalize_after = finalize_after
        self.base_fee = base_fee
        self.clock = clock
        self.ledger_sequence = 1
        self.fail_submissions = 0
        self.lose_responses = 0
        self.submit_calls = 0
        self.simulate_calls = 0
        self._state = _LedgerState()
        self._contracts: Dict[str, Contract] = {}
        self._transactions: Dict[str, _TxRecord] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # Setup
    # =========================================================================

    def create_account(self, address: str, balance: int = 0, sequence: int = 0) -> Account:
        """Create an account whose master key (its own address) has weight 1."""
        address = normalize_identity(address)
        with self._lock:
            if address in self._state.accounts:
                raise ValueError(f"Account {address} already exists")
            record = _AccountRecord(address=address, sequence=sequence, balance=balance, weights={address: 1})
            self._state.accounts[address] = record
            logger.debug(f"Created account {address[:16]} with balance {balance}")
            return record.snapshot()

    def fund(self, address: str, amount: int) -> Account:
        """Credit an account, creating it if needed."""
        address = normalize_identity(address)
        with self._lock:
            record = self._state.accounts.get(address)
            if record is None:
                return self.create_account(address, balance=amount)
            record.balance += amount
            return record.snapshot()

    def set_balance(self, address: str, balance: int) -> Account:
        return self._update(address, balance=balance)

    def set_sequence(self, address: str, sequence: int) -> Account:
        """Move an account's sequence number, as another client's transaction would."""
        return self._update(address, sequence=sequence)

    def _update(self, address: str, **fields: int) -> Account:
        address = normalize_identity(address)
        with self._lock:
            record = self._state.accounts.get(address)
            if record is None:
                raise ValueError(f"Account {address} does not exist")
            for name, value in fields.items():
                setattr(record, name, value)
            return record.snapshot()

    def add_contract(self, contract: Contract) -> None:
        with self._lock:
            self._contracts[contract.address] = contract
            self._state.storage.setdefault(contract.address, {})

    def contract_storage(self, address: str) -> Dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._state.storage.get(address, {}))

    # =========================================================================
    # LedgerTransport
    # =========================================================================

    def get_account(self, address: str) -> Account:
        address = normalize_identity(address)
        with self._lock:
            record = self._state.accounts.get(address)
            if record is None:
                raise TransportError(f"Account {address} not found", details={"notFound": True})
            return record.snapshot()

    def simulate(self, envelope: Envelope) -> SimulationResult:
        with self._lock:
            self.simulate_calls += 1
            body = envelope.body
            state = copy.deepcopy(self._state)
            try:
                source = self._source(state, body)
                auth = self._check_auth(state, envelope) if body.auth_entries else self._record_auth(body)
                self._execute(state, source, body)
            except _OpFailure as e:
                logger.debug(f"Simulation of {envelope.hash_hex()[:16]} failed: {e.reason}")
                return SimulationResult(success=False, error=e.reason, latest_ledger=self.ledger_sequence)

            resources = self._resources(body)
            return SimulationResult(
                success=True,
                resources=resources,
                auth=auth,
                min_resource_fee=resources.resource_fee,
                latest_ledger=self.ledger_sequence,
            )

    def submit(self, envelope: Envelope) -> SubmitResponse:
        with self._lock:
            self.submit_calls += 1
            if self.fail_submissions > 0:
                self.fail_submissions -= 1
                raise TransportError("Injected submission failure")

            tx_hash = envelope.hash_hex()
            if tx_hash in self._transactions:
                return SubmitResponse(tx_hash=tx_hash, status=SubmitStatus.DUPLICATE,
                                      latest_ledger=self.ledger_sequence)

            error = self._validate(envelope)
            if error is not None:
                logger.debug(f"Rejected {tx_hash[:16]} at submission: {error}")
                return SubmitResponse(tx_hash=tx_hash, status=SubmitStatus.ERROR, error=error,
                                      error_code=error, latest_ledger=self.ledger_sequence)

            self._transactions[tx_hash] = _TxRecord(
                envelope=envelope,
                polls_remaining=self.finalize_after,
                status=Status.pending(tx_hash),
            )
            logger.info(f"Accepted {tx_hash[:16]} (seq {envelope.body.sequence})")

            if self.lose_responses > 0:
                self.lose_responses -= 1
                raise TransportError("Injected lost response after acceptance")
            return SubmitResponse(tx_hash=tx_hash, status=SubmitStatus.PENDING,
                                  latest_ledger=self.ledger_sequence)

    def get_status(self, tx_hash: str) -> Status:
        with self._lock:
            record = self._transactions.get(tx_hash)
            if record is None:
                return Status.not_found(tx_hash)
            if record.status.kind == StatusKind.PENDING:
                if record.polls_remaining > 0:
                    record.polls_remaining -= 1
                    return record.status
                self._apply(record)
            return record.status

    def close_ledger(self) -> int:
        """Apply every pending transaction now. Returns how many were applied."""
        with self._lock:
            pending = [r for r in self._transactions.values() if r.status.kind == StatusKind.PENDING]
            pending.sort(key=lambda r: r.envelope.body.sequence)
            for record in pending:
                self._apply(record)
            return len(pending)

    # =========================================================================
    # Validation and execution
    # =========================================================================

    def _source(self, state: _LedgerState, body: TransactionBody) -> _AccountRecord:
        source = state.accounts.get(body.source_account)
        if source is None:
            raise _OpFailure("tx_no_account")
        return source

    def _validate(self, envelope: Envelope) -> Optional[str]:
        body = envelope.body
        source = self._state.accounts.get(body.source_account)
        if source is None:
            return "tx_no_account"
        if envelope.network_id != self.network_id:
            return "tx_bad_network"
        pending = any(
            r.status.kind == StatusKind.PENDING
            and r.envelope.body.source_account == body.source_account
            and r.envelope.body.sequence == body.sequence
            for r in self._transactions.values()
        )
        if body.sequence != source.sequence + 1 or pending:
            return "tx_bad_seq"
        now = int(self.clock())
        if now < body.time_bounds.min_time:
            return "tx_too_early"
        if body.time_bounds.max_time and now > body.time_bounds.max_time:
            return "tx_too_late"
        has_invocation = any(op.type == OperationType.INVOKE_CONTRACT for op in body.operations)
        if has_invocation and not body.prepared:
            return "tx_missing_resources"
        resource_fee = body.resources.resource_fee if body.resources else 0
        if body.fee < self.base_fee * len(body.operations) + resource_fee:
            return "tx_insufficient_fee"
        if not self._authorized(envelope, source, required_level(body)):
            return "tx_bad_auth"
        return None

    def _authorized(self, envelope: Envelope, record: _AccountRecord, level: ThresholdLevel) -> bool:
        digest = envelope.hash()
        weight = 0
        for entry in envelope.signatures:
            if not verify_entry(digest, entry):
                return False
            weight += record.weights.get(entry.identity, 0)
        return weight > 0 and weight >= record.thresholds[level]

    def _record_auth(self, body: TransactionBody) -> Tuple[AuthorizationEntry, ...]:
        entries = []
        for op in body.operations:
            if op.type != OperationType.INVOKE_CONTRACT:
                continue
            contract = self._contracts.get(op.params["contract"])
            if contract is None:
                raise _OpFailure(f"contract {op.params['contract']} not found")
            for address in contract.required_auth(op.params["function"], op.params["args"]):
                credentials = (CredentialsType.SOURCE_ACCOUNT if address == body.source_account
                               else CredentialsType.ADDRESS)
                entries.append(AuthorizationEntry(
                    address=address,
                    nonce=_nonce(address, body.sequence),
                    expiration_ledger=self.ledger_sequence + 100,
                    credentials=credentials,
                    invocation={"contract": op.params["contract"], "function": op.params["function"]},
                ))
        return tuple(entries)

    def _check_auth(self, state: _LedgerState, envelope: Envelope) -> Tuple[AuthorizationEntry, ...]:
        body = envelope.body
        digest = envelope.hash()
        valid = {e.identity for e in envelope.signatures if verify_entry(digest, e)}
        for entry in body.auth_entries:
            if entry.expiration_ledger and entry.expiration_ledger < self.ledger_sequence:
                raise _OpFailure(f"authorization for {entry.address} expired")
            if not entry.signer_specific:
                continue
            record = state.accounts.get(entry.address)
            if record is not None:
                weight = sum(record.weights.get(identity, 0) for identity in valid)
                if weight > 0 and weight >= record.thresholds[ThresholdLevel.MEDIUM]:
                    continue
            elif entry.address in valid:
                continue
            raise _OpFailure(f"missing authorization for {entry.address}")
        return tuple(body.auth_entries)

    def _resources(self, body: TransactionBody) -> ResourceData:
        read_only, read_write = set(), {f"account:{body.source_account}"}
        instructions = 0
        invoked = False
        for op in body.operations:
            if op.type == OperationType.PAYMENT:
                read_write.add(f"account:{op.params['destination']}")
            elif op.type == OperationType.INVOKE_CONTRACT:
                invoked = True
                read_only.add(f"contract:{op.params['contract']}")
                read_write.add(f"storage:{op.params['contract']}")
                instructions += 50_000 + 100 * len(op.params.get("args", []))
        if not invoked:
            return ResourceData(read_only=tuple(sorted(read_only)), read_write=tuple(sorted(read_write)))
        read_bytes = 128 * (len(read_only) + len(read_write))
        write_bytes = 128 * len(read_write)
        return ResourceData(
            read_only=tuple(sorted(read_only)),
            read_write=tuple(sorted(read_write)),
            instructions=instructions,
            read_bytes=read_bytes,
            write_bytes=write_bytes,
            resource_fee=instructions // 100 + read_bytes // 10 + write_bytes // 5,
        )

    def _execute(self, state: _LedgerState, source: _AccountRecord, body: TransactionBody) -> List[Any]:
        return [self._execute_op(state, source, op) for op in body.operations]

    def _execute_op(self, state: _LedgerState, source: _AccountRecord, op: Operation) -> Any:
        params = op.params
        if op.type == OperationType.PAYMENT:
            destination = state.accounts.get(params["destination"])
            if destination is None:
                raise _OpFailure("op_no_destination")
            if source.balance - params["amount"] < BASE_RESERVE:
                raise _OpFailure("op_underfunded")
            source.balance -= params["amount"]
            destination.balance += params["amount"]
            return {"paid": params["amount"]}

        if op.type == OperationType.SET_OPTIONS:
            if "master_weight" in params:
                source.weights[source.address] = params["master_weight"]
            for name, level in (("low_threshold", ThresholdLevel.LOW),
                                ("med_threshold", ThresholdLevel.MEDIUM),
                                ("high_threshold", ThresholdLevel.HIGH)):
                if name in params:
                    source.thresholds[level] = params[name]
            if "signer" in params:
                key, weight = params["signer"]["key"], params["signer"]["weight"]
                if weight == 0:
                    source.weights.pop(key, None)
                else:
                    source.weights[key] = weight
            if "home_domain" in params:
                source.home_domain = params["home_domain"]
            return {}

        if op.type == OperationType.INVOKE_CONTRACT:
            contract = self._contracts.get(params["contract"])
            if contract is None:
                raise _OpFailure(f"contract {params['contract']} not found")
            storage = state.storage.setdefault(contract.address, {})
            try:
                return {"value": contract.invoke(storage, params["function"], list(params["args"]))}
            except ContractTrap as e:
                raise _OpFailure(f"contract trap: {e}")

        if op.type == OperationType.BUMP_SEQUENCE:
            if params["bump_to"] > source.sequence:
                source.sequence = params["bump_to"]
            return {}

        raise _OpFailure(f"unsupported operation {op.type.name}")

    def _apply(self, record: _TxRecord) -> None:
        envelope = record.envelope
        body = envelope.body
        tx_hash = envelope.hash_hex()
        self.ledger_sequence += 1
        ledger = self.ledger_sequence

        source = self._state.accounts.get(body.source_account)
        if source is None or body.sequence != source.sequence + 1:
            record.status = Status.failed(tx_hash, "tx_bad_seq", ledger=ledger)
            return
        if not self._authorized(envelope, source, required_level(body)):
            record.status = Status.failed(tx_hash, "tx_bad_auth", ledger=ledger)
            return

        source.sequence = body.sequence
        fee = min(body.fee, source.balance)
        source.balance -= fee

        state = copy.deepcopy(self._state)
        try:
            if body.auth_entries:
                self._check_auth(state, envelope)
            results = self._execute(state, state.accounts[body.source_account], body)
        except _OpFailure as e:
            record.status = Status.failed(tx_hash, e.reason, ledger=ledger)
            logger.info(f"Applied {tx_hash[:16]} in ledger {ledger}: failed ({e.reason})")
            return

        self._state = state
        record.status = Status.success(tx_hash, {"feeCharged": fee, "results": results}, ledger=ledger)
        logger.info(f"Applied {tx_hash[:16]} in ledger {ledger}: success")
