"""
Submission & finalization tracker.

Submits a fully authorized envelope, polls its status until the ledger
reports a terminal outcome, and classifies what happened. Network
acceptance is not finality: a handle only says the network took the
envelope.

Resubmission after a transport failure is guarded. The envelope may have
reached the network even though the response was lost, so before sending
it again the tracker asks the ledger whether it already knows the
transaction, and whether the account's sequence number moved past it.
"""

from __future__ import annotations
from typing import Callable, Optional
import logging
import threading
import time

from ..config import PollPolicy
from ..recovery.retry import FixedBackoff, RetryPolicy
from ..runtime.errors import (
    ErrorCode,
    FinalizationTimeout,
    SequenceConflict,
    TransactionRejected,
    TransportError,
)
from ..transport.base import LedgerTransport
from ..tx.types import Envelope, Status, StatusKind, SubmissionHandle, SubmitStatus

logger = logging.getLogger(__name__)

# Error codes a ledger uses for a stale or reused sequence number
SEQUENCE_ERROR_CODES = ("tx_bad_seq", "txBadSeq", "TX_BAD_SEQ")


class FinalizationTracker:
    """
    Submission, status polling and outcome classification.

    Stateless apart from its collaborators; one tracker can serve many
    independent transactions.
    """

    def __init__(self, transport: LedgerTransport, clock: Callable[[], float] = time.monotonic):
        self.transport = transport
        self.clock = clock

    def _handle(self, envelope: Envelope, tx_hash: str, duplicate: bool = False) -> SubmissionHandle:
        return SubmissionHandle(
            tx_hash=tx_hash,
            sequence=envelope.body.sequence,
            source_account=envelope.body.source_account,
            submitted_at=time.time(),
            duplicate=duplicate,
        )

    def submit(self, envelope: Envelope) -> SubmissionHandle:
        """
        Submit an envelope once.

        Args:
            envelope: Fully authorized envelope

        Returns:
            Handle of the accepted transaction

        Raises:
            TransportError: Transient failure, including TRY_AGAIN_LATER
            SequenceConflict: The ledger reports a stale sequence number
            TransactionRejected: The ledger refused the transaction outright
        """
        tx_hash = envelope.hash_hex()
        response = self.transport.submit(envelope)

        if response.status == SubmitStatus.PENDING:
            logger.info(f"Submitted {tx_hash[:16]} (seq {envelope.body.sequence})")
            return self._handle(envelope, response.tx_hash or tx_hash)
        if response.status == SubmitStatus.DUPLICATE:
            logger.info(f"Network already holds {tx_hash[:16]}")
            return self._handle(envelope, response.tx_hash or tx_hash, duplicate=True)
        if response.status == SubmitStatus.TRY_AGAIN_LATER:
            raise TransportError(
                "Network asked to try again later",
                code=ErrorCode.TRY_AGAIN_LATER,
                details={"txHash": tx_hash},
            )

        reason = response.error_code or response.error or "unknown"
        if reason in SEQUENCE_ERROR_CODES:
            raise SequenceConflict(
                f"Sequence number {envelope.body.sequence} is stale",
                details={"txHash": tx_hash, "sequence": envelope.body.sequence},
            )
        raise TransactionRejected(
            f"Network rejected {tx_hash[:16]}: {reason}",
            reason=reason,
            details={"txHash": tx_hash},
        )

    def submit_with_retry(self, envelope: Envelope, policy: Optional[RetryPolicy] = None) -> SubmissionHandle:
        """
        Submit, retrying transport failures without ever double-submitting.

        Before every resubmission the ledger is asked about the
        transaction. If it is already known, its handle is returned as is;
        if the account's sequence number already moved past the body's,
        another transaction took the slot.

        Raises:
            MaxRetriesExceeded: If every attempt failed with a transport error
            SequenceConflict: If the sequence number was consumed meanwhile
            TransactionRejected: If the network refused the transaction
        """
        policy = policy or FixedBackoff(max_attempts=3, delay=1.0)
        tx_hash = envelope.hash_hex()

        def attempt() -> SubmissionHandle:
            if len(policy.attempts) > 1:
                recovered = self._recover(envelope, tx_hash)
                if recovered is not None:
                    return recovered
            return self.submit(envelope)

        return policy.execute(attempt)

    def _recover(self, envelope: Envelope, tx_hash: str) -> Optional[SubmissionHandle]:
        status = self.transport.get_status(tx_hash)
        if status.kind != StatusKind.NOT_FOUND:
            logger.info(f"{tx_hash[:16]} reached the network despite the failure ({status.kind.value})")
            return self._handle(envelope, tx_hash, duplicate=True)

        account = self.transport.get_account(envelope.body.source_account)
        if account.sequence >= envelope.body.sequence:
            raise SequenceConflict(
                f"Sequence number {envelope.body.sequence} was consumed by another transaction",
                details={"txHash": tx_hash, "sequence": envelope.body.sequence,
                         "accountSequence": account.sequence},
            )
        logger.debug(f"{tx_hash[:16]} unknown to the network, resubmitting")
        return None

    def poll(self, handle: SubmissionHandle) -> Status:
        """Query the current status of a submitted transaction."""
        return self.transport.get_status(handle.tx_hash)

    def wait_for_finalization(
        self,
        handle: SubmissionHandle,
        policy: Optional[PollPolicy] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Status:
        """
        Poll until the ledger reports SUCCESS or FAILED.

        NOT_FOUND and transport errors while polling count as still in
        flight: a just-submitted transaction may not be indexed yet.

        Args:
            handle: Handle returned by `submit`
            policy: Attempt, interval and duration bounds
            cancel: Event that aborts polling when set

        Returns:
            Terminal status

        Raises:
            FinalizationTimeout: If polling is exhausted or cancelled. The
                outcome is unknown, not failed.
        """
        policy = policy or PollPolicy()
        started = self.clock()
        attempts = 0

        while attempts < policy.max_attempts:
            if cancel is not None and cancel.is_set():
                raise FinalizationTimeout(
                    f"Polling for {handle.tx_hash[:16]} was cancelled",
                    tx_hash=handle.tx_hash, attempts=attempts, details={"cancelled": True},
                )
            attempts += 1
            try:
                status = self.poll(handle)
            except TransportError as e:
                logger.warning(f"Status query {attempts} for {handle.tx_hash[:16]} failed: {e}")
            else:
                logger.debug(f"Poll {attempts}/{policy.max_attempts} for {handle.tx_hash[:16]}: {status.kind.value}")
                if status.is_terminal:
                    return status

            if policy.timeout is not None and self.clock() - started >= policy.timeout:
                break
            if attempts < policy.max_attempts and policy.interval > 0:
                if cancel is not None:
                    cancel.wait(policy.interval)
                else:
                    time.sleep(policy.interval)

        logger.warning(f"Gave up polling {handle.tx_hash[:16]} after {attempts} attempts")
        raise FinalizationTimeout(
            f"No terminal status for {handle.tx_hash[:16]} after {attempts} polls; "
            f"it may still finalize, query again later",
            tx_hash=handle.tx_hash, attempts=attempts,
        )
