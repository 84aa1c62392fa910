"""
Transaction assembly pipeline.

Drives one transaction attempt through its states:

    BUILDING -> SIMULATED -> AUTHORIZING -> THRESHOLD_MET
             -> SUBMITTING -> PENDING -> FINALIZED | FAILED

Transitions only move forward. A pipeline is a single attempt: it reads
the source account's sequence number once, in `build`, and never reuses
the body after a failure. Start a new pipeline for a new attempt.

The account's sequence number is the one piece of state shared between
attempts. Callers must serialize attempts against the same account; two
pipelines built from the same sequence number will conflict on the ledger.

Signers working on other machines only ever see the envelope bytes. Their
rounds come back through `add_signatures`, or a pipeline is rebuilt from
bytes alone with `TransactionPipeline.resume`.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union
import logging
import threading
import time

from .config import PollPolicy, Settings
from .recovery.retry import FixedBackoff, RetryPolicy
from .runtime.errors import (
    FinalizationTimeout,
    InvalidSignatureError,
    MultisigTxError,
    PipelineStateError,
    SequenceConflict,
    TransactionRejected,
)
from .signers import multisig
from .signers.multisig import ThresholdProgress, accumulated_weight, meets_threshold, sign
from .signers.signer import Signer
from .simulation.resolver import SimulationResolver
from .submission.tracker import SEQUENCE_ERROR_CODES, FinalizationTracker
from .transport.base import LedgerTransport
from .tx.builder import build_unsigned
from .tx.types import Account, Envelope, Operation, StatusKind, SubmissionHandle

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    BUILDING = "building"
    SIMULATED = "simulated"
    AUTHORIZING = "authorizing"
    THRESHOLD_MET = "threshold_met"
    SUBMITTING = "submitting"
    PENDING = "pending"
    FINALIZED = "finalized"
    FAILED = "failed"


_TRANSITIONS = {
    PipelineState.BUILDING: (PipelineState.SIMULATED,),
    PipelineState.SIMULATED: (PipelineState.AUTHORIZING,),
    PipelineState.AUTHORIZING: (PipelineState.THRESHOLD_MET,),
    PipelineState.THRESHOLD_MET: (PipelineState.SUBMITTING,),
    PipelineState.SUBMITTING: (PipelineState.PENDING, PipelineState.FAILED),
    PipelineState.PENDING: (PipelineState.FINALIZED, PipelineState.FAILED),
    PipelineState.FINALIZED: (),
    PipelineState.FAILED: (),
}


@dataclass
class FinalResult:
    """
    Outcome of a submission.

    A FAILED result carrying a `FinalizationTimeout` is inconclusive: the
    transaction may still finalize later and must be queried again before
    anything is rebuilt.
    """
    state: PipelineState
    tx_hash: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[MultisigTxError] = None
    ledger: Optional[int] = None

    @property
    def succeeded(self) -> bool:
        return self.state == PipelineState.FINALIZED

    @property
    def inconclusive(self) -> bool:
        return isinstance(self.error, FinalizationTimeout)

    @property
    def reason(self) -> Optional[str]:
        if isinstance(self.error, TransactionRejected):
            return self.error.reason
        return None


class TransactionPipeline:
    """
    State machine for a single transaction attempt.

    Example:
        ```python
        pipeline = TransactionPipeline(transport, settings)
        pipeline.build(source, [payment(dest, 500)])
        pipeline.simulate_and_prepare()
        pipeline.sign(signer_a)
        pipeline.sign(signer_b)
        result = pipeline.submit()
        ```

    Not thread-safe; one flow drives one pipeline.
    """

    def __init__(self, transport: LedgerTransport, settings: Optional[Settings] = None,
                 network_id: Optional[bytes] = None):
        self.transport = transport
        self.settings = settings or Settings()
        self.network_id = network_id or self.settings.network.network_id
        self.resolver = SimulationResolver(transport, self.settings.pipeline.second_pass)
        self.tracker = FinalizationTracker(transport)

        self._state = PipelineState.BUILDING
        self._history: List[PipelineState] = [PipelineState.BUILDING]
        self._envelope: Optional[Envelope] = None
        self._account: Optional[Account] = None
        self._handle: Optional[SubmissionHandle] = None
        self._failure: Optional[MultisigTxError] = None
        self._result: Optional[FinalResult] = None
        self._second_pass = False

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def history(self) -> List[PipelineState]:
        return list(self._history)

    @property
    def envelope(self) -> Optional[Envelope]:
        return self._envelope

    @property
    def account(self) -> Optional[Account]:
        return self._account

    @property
    def handle(self) -> Optional[SubmissionHandle]:
        return self._handle

    @property
    def failure(self) -> Optional[MultisigTxError]:
        """Error that ended the attempt, or the last simulation failure."""
        return self._failure

    @property
    def result(self) -> Optional[FinalResult]:
        return self._result

    @property
    def second_pass_required(self) -> bool:
        return self._second_pass

    def _transition(self, target: PipelineState) -> None:
        if target not in _TRANSITIONS[self._state]:
            raise PipelineStateError(
                f"Cannot move from {self._state.value} to {target.value}",
                details={"state": self._state.value, "target": target.value},
            )
        tx = self._envelope.hash_hex()[:16] if self._envelope is not None else "-"
        logger.info(f"Pipeline {tx}: {self._state.value} -> {target.value}")
        self._state = target
        self._history.append(target)

    def _require(self, *states: PipelineState, action: str) -> None:
        if self._state not in states:
            raise PipelineStateError(
                f"Cannot {action} in state {self._state.value}",
                details={"state": self._state.value, "action": action},
            )

    def _fail(self, error: MultisigTxError) -> None:
        self._failure = error
        self._transition(PipelineState.FAILED)
        tx_hash = self._envelope.hash_hex() if self._envelope is not None else None
        self._result = FinalResult(state=PipelineState.FAILED, tx_hash=tx_hash, error=error)
        logger.warning(f"Attempt failed: {error}")

    # =========================================================================
    # BUILDING
    # =========================================================================

    def build(self, source: str, operations: Iterable[Operation], fee: Optional[int] = None) -> Envelope:
        """
        Build the unsigned body from a freshly fetched account.

        Args:
            source: Source account address
            operations: Ordered operations
            fee: Explicit fee; defaults to base fee per operation

        Returns:
            Unsigned envelope

        Raises:
            PipelineStateError: If this pipeline already built a body
            TransportError: If the account cannot be fetched
        """
        self._require(PipelineState.BUILDING, action="build")
        if self._envelope is not None:
            raise PipelineStateError("Body already built; start a new pipeline for a new attempt")

        account = self.transport.get_account(source)
        config = self.settings.pipeline
        self._envelope = build_unsigned(
            account,
            list(operations),
            self.network_id,
            base_fee=config.base_fee,
            timeout=config.tx_timeout,
            fee=fee,
        )
        self._account = account
        logger.info(
            f"Built {self._envelope.hash_hex()[:16]} for {account.address[:16]} "
            f"(seq {self._envelope.body.sequence}, {len(self._envelope.body.operations)} ops)"
        )
        return self._envelope

    def simulate_and_prepare(self) -> Envelope:
        """
        Run the first simulation and merge its result into the body.

        On failure the pipeline stays in BUILDING, the error is recorded as
        `failure` and re-raised. Nothing is retried.

        Raises:
            SimulationError: If the dry run reports failure
            TransportError: If the transport fails
        """
        self._require(PipelineState.BUILDING, action="simulate")
        if self._envelope is None:
            raise PipelineStateError("Nothing to simulate; call build() first")

        try:
            prepared = self.resolver.prepare(self._envelope)
        except MultisigTxError as e:
            self._failure = e
            raise

        self._failure = None
        self._envelope = prepared
        self._transition(PipelineState.SIMULATED)
        self._second_pass = self.resolver.requires_second_pass(prepared.body)
        self._transition(PipelineState.AUTHORIZING)
        return prepared

    # =========================================================================
    # AUTHORIZING
    # =========================================================================

    def sign(self, signer: Signer) -> Envelope:
        """
        Add one signer's signature.

        Signing after the threshold is met is allowed and keeps the state.
        """
        self._require(PipelineState.AUTHORIZING, PipelineState.THRESHOLD_MET, action="sign")
        self._envelope = sign(self._envelope, signer)
        self._check_threshold()
        return self._envelope

    def add_signatures(self, other: Union[Envelope, bytes]) -> Envelope:
        """
        Accept a signature round collected by another party.

        Raises:
            AuthorizationRejected: If the round was signed over a different
                body; the pipeline keeps its own envelope
            InvalidSignatureError: If an incoming signature does not verify
        """
        self._require(PipelineState.AUTHORIZING, PipelineState.THRESHOLD_MET, action="add signatures")
        self._envelope = multisig.merge_signatures(self._envelope, other)
        self._check_threshold()
        return self._envelope

    def progress(self) -> ThresholdProgress:
        """Per-signer breakdown of the weight collected so far."""
        if self._envelope is None or self._account is None:
            raise PipelineStateError("No envelope to evaluate")
        return multisig.threshold_progress(self._envelope, self._account)

    def meets_threshold(self) -> bool:
        """True once valid, weighted signatures reach the required level."""
        if self._envelope is None or self._account is None or not self._envelope.body.prepared:
            return False
        progress = self.progress()
        # A zero threshold still needs at least one weighted signer
        return progress.met and bool(progress.contributing)

    def _check_threshold(self) -> None:
        if self._state == PipelineState.AUTHORIZING and self.meets_threshold():
            self._transition(PipelineState.THRESHOLD_MET)

    def to_bytes(self) -> bytes:
        """Wire bytes of the current envelope, for handing to the next signer."""
        if self._envelope is None:
            raise PipelineStateError("No envelope built yet")
        return self._envelope.to_bytes()

    # =========================================================================
    # SUBMITTING / PENDING
    # =========================================================================

    def submit(
        self,
        poll_policy: Optional[PollPolicy] = None,
        cancel: Optional[threading.Event] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> FinalResult:
        """
        Submit the authorized envelope and wait for finalization.

        Runs the second-phase simulation first when one is required.

        Args:
            poll_policy: Polling bounds; defaults to the configured policy
            cancel: Event that aborts polling
            retry_policy: Policy for transport failures during submission

        Returns:
            FINALIZED result carrying the ledger result

        Raises:
            AuthorizationRejected: Second-phase simulation failed
            SequenceConflict: The sequence number is stale
            TransactionRejected: The ledger refused or failed the transaction
            MaxRetriesExceeded: Transport failures outlasted the retry policy
            FinalizationTimeout: Polling ended without a terminal status
        """
        self._require(PipelineState.THRESHOLD_MET, action="submit")
        config = self.settings.pipeline
        poll_policy = poll_policy or config.poll
        retry_policy = retry_policy or FixedBackoff(max_attempts=config.submit_retries, delay=config.retry_delay)

        self._transition(PipelineState.SUBMITTING)
        try:
            if self._second_pass:
                self.resolver.resimulate_signed(self._envelope)
            self._handle = self.tracker.submit_with_retry(self._envelope, retry_policy)
        except MultisigTxError as e:
            self._fail(e)
            raise

        self._transition(PipelineState.PENDING)
        return self.track(poll_policy, cancel)

    def track(
        self,
        poll_policy: Optional[PollPolicy] = None,
        cancel: Optional[threading.Event] = None,
    ) -> FinalResult:
        """
        Wait for the outcome of an envelope the network already holds.

        Raises:
            SequenceConflict: The ledger failed it on a stale sequence number
            TransactionRejected: The ledger failed the transaction
            FinalizationTimeout: Polling ended without a terminal status
        """
        self._require(PipelineState.PENDING, action="track")
        poll_policy = poll_policy or self.settings.pipeline.poll
        try:
            status = self.tracker.wait_for_finalization(self._handle, poll_policy, cancel)
        except FinalizationTimeout as e:
            self._fail(e)
            raise

        if status.kind == StatusKind.SUCCESS:
            self._transition(PipelineState.FINALIZED)
            self._result = FinalResult(
                state=PipelineState.FINALIZED,
                tx_hash=status.tx_hash,
                result=status.result,
                ledger=status.ledger,
            )
            return self._result

        if status.reason in SEQUENCE_ERROR_CODES:
            error = SequenceConflict(
                f"Transaction {status.tx_hash[:16]} failed on a stale sequence number",
                details={"txHash": status.tx_hash, "ledger": status.ledger, "reason": status.reason},
            )
            self._fail(error)
            raise error

        error = TransactionRejected(
            f"Transaction {status.tx_hash[:16]} failed on the ledger: {status.reason}",
            reason=status.reason,
            details={"txHash": status.tx_hash, "ledger": status.ledger},
        )
        self._fail(error)
        raise error

    # =========================================================================
    # Resumption
    # =========================================================================

    @classmethod
    def resume(cls, transport: LedgerTransport, data: Union[Envelope, bytes, str],
               settings: Optional[Settings] = None) -> TransactionPipeline:
        """
        Rebuild a pipeline from envelope bytes alone.

        The envelope must be prepared. The source account is fetched again;
        the resumed pipeline is AUTHORIZING or THRESHOLD_MET depending on
        the signatures it carries. When the account already used the
        sequence number, the envelope's own status is queried first: if
        the network knows it, the pipeline resumes in PENDING and `track`
        reports its outcome.

        Args:
            transport: Ledger transport
            data: Envelope, its wire bytes, or its base64 text
            settings: Settings; the network id must match the envelope's

        Raises:
            MalformedEnvelope: If the bytes do not decode on this network
            PipelineStateError: If the envelope was never prepared
            InvalidSignatureError: If a carried signature does not verify
            SequenceConflict: If another transaction used the sequence number
        """
        pipeline = cls(transport, settings)
        if isinstance(data, str):
            envelope = Envelope.from_base64(data, pipeline.network_id)
        elif isinstance(data, (bytes, bytearray)):
            envelope = Envelope.from_bytes(bytes(data), pipeline.network_id)
        else:
            envelope = Envelope.from_bytes(data.to_bytes(), pipeline.network_id)

        if not envelope.body.prepared:
            raise PipelineStateError("Envelope was never simulated; cannot resume it")
        invalid = multisig.verify_signatures(envelope)
        if invalid:
            raise InvalidSignatureError(
                f"{len(invalid)} signatures do not verify against the body",
                details={"identities": invalid, "txHash": envelope.hash_hex()},
            )

        account = transport.get_account(envelope.body.source_account)
        pipeline._envelope = envelope
        pipeline._account = account

        if account.sequence >= envelope.body.sequence:
            # The sequence may have been consumed by this very envelope
            tx_hash = envelope.hash_hex()
            status = transport.get_status(tx_hash)
            if status.kind == StatusKind.NOT_FOUND:
                raise SequenceConflict(
                    f"Account already moved past sequence {envelope.body.sequence}",
                    details={"txHash": tx_hash, "accountSequence": account.sequence},
                )
            pipeline._handle = SubmissionHandle(
                tx_hash=tx_hash,
                sequence=envelope.body.sequence,
                source_account=envelope.body.source_account,
                submitted_at=time.time(),
                duplicate=True,
            )
            pipeline._state = PipelineState.PENDING
            pipeline._history = [PipelineState.PENDING]
            logger.info(f"Resumed {tx_hash[:16]}: network already holds it ({status.kind.value})")
            return pipeline

        pipeline._second_pass = pipeline.resolver.requires_second_pass(envelope.body)
        pipeline._state = PipelineState.AUTHORIZING
        pipeline._history = [PipelineState.AUTHORIZING]
        logger.info(f"Resumed {envelope.hash_hex()[:16]} with {len(envelope.signatures)} signatures")
        pipeline._check_threshold()
        return pipeline


# =============================================================================
# Function interface
# =============================================================================


def simulate_and_prepare(transport: LedgerTransport, envelope: Envelope,
                         settings: Optional[Settings] = None) -> Envelope:
    """
    Simulate an unsigned envelope and return the prepared envelope.

    Raises:
        SimulationError: If the dry run reports failure
    """
    settings = settings or Settings()
    return SimulationResolver(transport, settings.pipeline.second_pass).prepare(envelope)


def submit_and_finalize(
    transport: LedgerTransport,
    envelope: Union[Envelope, bytes, str],
    poll_policy: Optional[PollPolicy] = None,
    settings: Optional[Settings] = None,
    cancel: Optional[threading.Event] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> FinalResult:
    """
    Submit a fully signed envelope and wait for its outcome.

    Never raises for failures of the attempt itself; they are reported in
    the returned `FinalResult`. Only programming errors propagate.

    Returns:
        FINALIZED result, or FAILED result carrying the error
    """
    try:
        pipeline = TransactionPipeline.resume(transport, envelope, settings)
    except MultisigTxError as e:
        return FinalResult(state=PipelineState.FAILED, error=e)

    if pipeline.state == PipelineState.PENDING:
        try:
            return pipeline.track(poll_policy, cancel)
        except MultisigTxError:
            return pipeline.result

    if pipeline.state != PipelineState.THRESHOLD_MET:
        progress = pipeline.progress()
        error = PipelineStateError(
            f"Envelope carries weight {progress.accumulated}, needs {progress.required}",
            details={"level": progress.level.name, "txHash": pipeline.envelope.hash_hex()},
        )
        return FinalResult(state=PipelineState.FAILED, tx_hash=pipeline.envelope.hash_hex(), error=error)

    try:
        return pipeline.submit(poll_policy, cancel, retry_policy)
    except MultisigTxError:
        return pipeline.result


__all__ = [
    "PipelineState",
    "FinalResult",
    "TransactionPipeline",
    "build_unsigned",
    "simulate_and_prepare",
    "sign",
    "accumulated_weight",
    "meets_threshold",
    "submit_and_finalize",
]
