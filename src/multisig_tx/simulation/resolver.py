"""
Simulation / authorization resolver.

Execution cost and authorization requirements of a transaction are only
known after a dry run against current ledger state. The resolver runs that
dry run, merges its findings into the body, and, once signatures are
attached, optionally runs a second dry run to confirm the signed envelope
still resolves to the same cost and authorization.

A failed dry run is never retried: it means the transaction as built
cannot succeed.
"""

from __future__ import annotations
from typing import List
import logging

from ..config import SecondPassPolicy
from ..runtime.errors import AuthorizationRejected, SimulationError
from ..transport.base import LedgerTransport
from ..tx.types import (
    AuthorizationEntry,
    Envelope,
    Operation,
    OperationType,
    SimulationResult,
    TransactionBody,
)

logger = logging.getLogger(__name__)


def _attach_auth(operations: List[Operation], entries) -> List[Operation]:
    """
    Hand authorization entries to the invocations they belong to.

    Invocations that already carry entries keep them. With a single open
    invocation every entry goes to it; otherwise entries are matched on
    their invocation's contract and function.
    """
    open_slots = [i for i, op in enumerate(operations)
                  if op.type == OperationType.INVOKE_CONTRACT and not op.auth]
    if not entries or not open_slots:
        return operations

    assigned = {i: [] for i in open_slots}
    for entry in entries:
        if len(open_slots) == 1:
            assigned[open_slots[0]].append(entry)
            continue
        for i in open_slots:
            params = operations[i].params
            if (entry.invocation.get("contract") == params["contract"]
                    and entry.invocation.get("function", params["function"]) == params["function"]):
                assigned[i].append(entry)
                break
        else:
            raise SimulationError(
                f"Authorization entry for {entry.address} matches no invocation",
                details={"invocation": entry.invocation},
            )

    out = list(operations)
    for i, auth in assigned.items():
        if auth:
            out[i] = operations[i].model_copy(update={"auth": tuple(auth)})
    return out


def assemble_with_authorization(body: TransactionBody, result: SimulationResult) -> TransactionBody:
    """
    Merge a simulation result into a body.

    Sets the resource footprint, raises the fee by the minimum resource fee
    and fills authorization entries into invocations that carry none.
    Re-assembling an already prepared body replaces the previous resource
    fee instead of adding to it.

    Args:
        body: Body that was simulated
        result: Successful simulation result

    Returns:
        Prepared body (a new value; signatures over `body` do not carry over)

    Raises:
        SimulationError: If the result reports failure
    """
    if not result.success:
        raise SimulationError(result.error or "Simulation failed", details={"latestLedger": result.latest_ledger})

    base_fee = body.fee - (body.resources.resource_fee if body.resources else 0)
    resources = result.resources.model_copy(update={"resource_fee": result.min_resource_fee})
    operations = _attach_auth(list(body.operations), result.auth)
    return body.model_copy(update={
        "fee": base_fee + result.min_resource_fee,
        "resources": resources,
        "operations": tuple(operations),
    })


def requires_second_pass(body: TransactionBody, policy: SecondPassPolicy = SecondPassPolicy.SIGNER_SPECIFIC) -> bool:
    """
    Decide whether the signed envelope must be simulated again.

    SIGNER_SPECIFIC re-simulates only when an authorization entry must be
    satisfied by a particular address rather than by the source account.
    """
    policy = SecondPassPolicy(policy)
    if policy == SecondPassPolicy.ALWAYS:
        return True
    if policy == SecondPassPolicy.NEVER:
        return False
    return any(entry.signer_specific for entry in body.auth_entries)


class SimulationResolver:
    """
    Runs dry runs through a transport and applies their results.

    Holds no state besides its collaborators; safe to share across
    independent transactions.
    """

    def __init__(self, transport: LedgerTransport,
                 policy: SecondPassPolicy = SecondPassPolicy.SIGNER_SPECIFIC):
        self.transport = transport
        self.policy = SecondPassPolicy(policy)

    def simulate(self, envelope: Envelope) -> SimulationResult:
        """
        Dry-run an envelope.

        Raises:
            SimulationError: If the dry run reports failure
            TransportError: If the transport fails
        """
        result = self.transport.simulate(envelope)
        if not result.success:
            logger.info(f"Simulation failed for {envelope.hash_hex()[:16]}: {result.error}")
            raise SimulationError(
                result.error or "Simulation failed",
                details={"txHash": envelope.hash_hex(), "latestLedger": result.latest_ledger},
            )
        logger.debug(
            f"Simulated {envelope.hash_hex()[:16]}: resource fee {result.min_resource_fee}, "
            f"{len(result.auth)} auth entries"
        )
        return result

    def prepare(self, envelope: Envelope) -> Envelope:
        """
        First-phase resolution: simulate and merge the result.

        Any signatures on `envelope` are dropped, since the body changes.
        """
        if envelope.signatures:
            logger.warning(f"Discarding {len(envelope.signatures)} signatures collected before simulation")
        unsigned = envelope.with_body(envelope.body)
        result = self.simulate(unsigned)
        return unsigned.with_body(assemble_with_authorization(unsigned.body, result))

    def requires_second_pass(self, body: TransactionBody) -> bool:
        return requires_second_pass(body, self.policy)

    def resimulate_signed(self, envelope: Envelope) -> SimulationResult:
        """
        Second-phase resolution of a signed, prepared envelope.

        The dry run must succeed and must not ask for more resources, a
        higher fee or new authorization; any of those would change the body
        and invalidate every collected signature.

        Raises:
            AuthorizationRejected: If the second dry run fails or disagrees
                with the prepared body
        """
        body = envelope.body
        if not body.prepared:
            raise AuthorizationRejected("Cannot re-simulate a body that was never prepared")
        try:
            result = self.simulate(envelope)
        except SimulationError as e:
            raise AuthorizationRejected(
                f"Second-phase simulation failed: {e.message}",
                details={"txHash": envelope.hash_hex()},
                cause=e,
            )

        prepared = body.resources
        if (result.min_resource_fee > prepared.resource_fee
                or set(result.resources.read_only) != set(prepared.read_only)
                or set(result.resources.read_write) != set(prepared.read_write)):
            raise AuthorizationRejected(
                "Signed transaction no longer matches its simulated resources",
                details={
                    "txHash": envelope.hash_hex(),
                    "preparedFee": prepared.resource_fee,
                    "requiredFee": result.min_resource_fee,
                },
            )
        known = set(_auth_key(e) for e in body.auth_entries)
        unknown: List[AuthorizationEntry] = [e for e in result.auth if _auth_key(e) not in known]
        if unknown:
            raise AuthorizationRejected(
                f"Second-phase simulation requires {len(unknown)} new authorization entries",
                details={"txHash": envelope.hash_hex(), "addresses": [e.address for e in unknown]},
            )
        logger.debug(f"Second-phase simulation confirmed {envelope.hash_hex()[:16]}")
        return result


def _auth_key(entry: AuthorizationEntry):
    return (entry.address, entry.credentials, entry.nonce)
