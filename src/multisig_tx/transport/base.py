"""
Ledger transport interface.

The pipeline talks to the ledger only through this interface. Every
method may raise TransportError for transient failures; anything else a
transport raises is a bug in the transport.
"""

from __future__ import annotations
from abc import ABC, abstractmethod

from ..tx.types import Account, Envelope, SimulationResult, Status, SubmitResponse


class LedgerTransport(ABC):
    """Simulate, submit and query transactions against a ledger."""

    @abstractmethod
    def get_account(self, address: str) -> Account:
        """
        Fetch current account state, including its sequence number.

        Raises:
            TransportError: On network failure or unknown account
        """

    @abstractmethod
    def simulate(self, envelope: Envelope) -> SimulationResult:
        """
        Dry-run an envelope against current ledger state.

        A failed dry run is reported through `SimulationResult.success`,
        not raised.
        """

    @abstractmethod
    def submit(self, envelope: Envelope) -> SubmitResponse:
        """Hand a signed envelope to the network. Transport-level accept only."""

    @abstractmethod
    def get_status(self, tx_hash: str) -> Status:
        """Query the status of a transaction by hash."""

    def close(self) -> None:
        """Release resources held by the transport."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
