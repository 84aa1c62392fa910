"""
In-memory ledger: validation, execution and fault injection.
"""

import pytest

from helpers import mk_counter_contract, mk_envelope, mk_signer

from multisig_tx.codec.hashes import network_id
from multisig_tx.runtime.errors import TransportError
from multisig_tx.signers import sign
from multisig_tx.simulation import SimulationResolver
from multisig_tx.transport.memory import InMemoryLedger
from multisig_tx.tx.builder import build_unsigned
from multisig_tx.tx.operations import bump_sequence, invoke_contract, payment, set_options
from multisig_tx.tx.types import StatusKind, SubmitStatus, ThresholdLevel


@pytest.fixture
def owner(ledger, master):
    ledger.create_account(master.identity, balance=1_000_000)
    return master


def _signed(ledger, owner, operations, **kwargs):
    account = ledger.get_account(owner.identity)
    return sign(build_unsigned(account, operations, ledger.network_id, **kwargs), owner)


def _reason(ledger, envelope):
    response = ledger.submit(envelope)
    assert response.status == SubmitStatus.ERROR
    return response.error_code


class TestAccounts:

    def test_created_account_has_master_key(self, ledger, owner):
        account = ledger.get_account(owner.identity)
        assert account.weight_of(owner.identity) == 1
        assert account.sequence == 0
        assert all(account.threshold_for(level) == 0 for level in ThresholdLevel)

    def test_unknown_account(self, ledger):
        with pytest.raises(TransportError) as exc_info:
            ledger.get_account(mk_signer("nobody").identity)
        assert exc_info.value.details["notFound"]

    def test_duplicate_account(self, ledger, owner):
        with pytest.raises(ValueError):
            ledger.create_account(owner.identity)

    def test_fund_creates_missing_account(self, ledger):
        account = ledger.fund(mk_signer("new").identity, 50)
        assert account.balance == 50

    def test_update_missing_account(self, ledger):
        with pytest.raises(ValueError):
            ledger.set_sequence(mk_signer("nobody").identity, 3)


class TestSubmissionValidation:

    def test_payment_applies(self, ledger, owner, destination):
        envelope = _signed(ledger, owner, [payment(destination, 400)])
        assert ledger.submit(envelope).status == SubmitStatus.PENDING

        status = ledger.get_status(envelope.hash_hex())
        assert status.kind == StatusKind.SUCCESS
        assert status.result["feeCharged"] == 100
        assert ledger.get_account(destination).balance == 400
        account = ledger.get_account(owner.identity)
        assert account.sequence == 1
        assert account.balance == 1_000_000 - 400 - 100

    def test_resubmission_is_duplicate(self, ledger, owner, destination):
        envelope = _signed(ledger, owner, [payment(destination, 1)])
        ledger.submit(envelope)
        assert ledger.submit(envelope).status == SubmitStatus.DUPLICATE

    def test_unsigned_is_bad_auth(self, ledger, owner, destination):
        account = ledger.get_account(owner.identity)
        envelope = build_unsigned(account, [payment(destination, 1)], ledger.network_id)
        assert _reason(ledger, envelope) == "tx_bad_auth"

    def test_wrong_sequence(self, ledger, owner, destination):
        ledger.set_sequence(owner.identity, 5)
        envelope = _signed(ledger, owner, [payment(destination, 1)])
        ledger.set_sequence(owner.identity, 6)
        assert _reason(ledger, envelope) == "tx_bad_seq"

    def test_same_sequence_as_pending_transaction(self, ledger, owner, destination):
        ledger.finalize_after = 3
        first = _signed(ledger, owner, [payment(destination, 1)])
        second = _signed(ledger, owner, [payment(destination, 2)])
        ledger.submit(first)
        assert _reason(ledger, second) == "tx_bad_seq"

    def test_wrong_network(self, ledger, owner, destination):
        account = ledger.get_account(owner.identity)
        envelope = sign(build_unsigned(account, [payment(destination, 1)], network_id("Elsewhere")), owner)
        assert _reason(ledger, envelope) == "tx_bad_network"

    def test_low_fee(self, ledger, owner, destination):
        envelope = _signed(ledger, owner, [payment(destination, 1)], fee=99)
        assert _reason(ledger, envelope) == "tx_insufficient_fee"

    def test_expired(self, owner_ledger_clock, master, destination_on_clock):
        ledger, now = owner_ledger_clock
        envelope = _signed(ledger, master, [payment(destination_on_clock, 1)], timeout=30, clock=lambda: now)
        ledger.clock = lambda: now + 31
        assert _reason(ledger, envelope) == "tx_too_late"

    def test_unprepared_invocation(self, ledger, owner):
        ledger.add_contract(mk_counter_contract())
        envelope = _signed(ledger, owner, [invoke_contract("counter", "increment", [1])])
        assert _reason(ledger, envelope) == "tx_missing_resources"

    def test_unknown_source(self, ledger):
        assert _reason(ledger, mk_envelope()) == "tx_no_account"


@pytest.fixture
def owner_ledger_clock(master):
    now = 1_700_000_000
    ledger = InMemoryLedger(clock=lambda: now)
    ledger.create_account(master.identity, balance=1_000)
    return ledger, now


@pytest.fixture
def destination_on_clock(owner_ledger_clock):
    ledger, _ = owner_ledger_clock
    return ledger.create_account(mk_signer("destination").identity).address


class TestExecution:

    def test_finalize_after_counts_pending_polls(self, ledger, owner, destination):
        ledger.finalize_after = 2
        envelope = _signed(ledger, owner, [payment(destination, 1)])
        ledger.submit(envelope)

        kinds = [ledger.get_status(envelope.hash_hex()).kind for _ in range(3)]
        assert kinds == [StatusKind.PENDING, StatusKind.PENDING, StatusKind.SUCCESS]

    def test_close_ledger_applies_pending(self, ledger, owner, destination):
        ledger.finalize_after = 100
        envelope = _signed(ledger, owner, [payment(destination, 1)])
        ledger.submit(envelope)
        assert ledger.close_ledger() == 1
        assert ledger.get_status(envelope.hash_hex()).kind == StatusKind.SUCCESS

    def test_failed_operation_still_consumes_sequence_and_fee(self, ledger, owner, destination):
        envelope = _signed(ledger, owner, [payment(destination, 999_950)])
        ledger.submit(envelope)

        status = ledger.get_status(envelope.hash_hex())
        assert status.kind == StatusKind.FAILED
        assert status.reason == "op_underfunded"
        account = ledger.get_account(owner.identity)
        assert account.sequence == 1
        assert account.balance == 1_000_000 - 100
        assert ledger.get_account(destination).balance == 0

    def test_set_options_updates_signers_and_thresholds(self, ledger, owner):
        cosigner = mk_signer("cosigner")
        envelope = _signed(ledger, owner, [
            set_options(signer=cosigner.identity, signer_weight=2),
            set_options(med_threshold=2, high_threshold=3),
        ])
        ledger.submit(envelope)
        ledger.get_status(envelope.hash_hex())

        account = ledger.get_account(owner.identity)
        assert account.weight_of(cosigner.identity) == 2
        assert account.threshold_for(ThresholdLevel.MEDIUM) == 2
        assert account.threshold_for(ThresholdLevel.HIGH) == 3

    def test_bump_sequence(self, ledger, owner):
        envelope = _signed(ledger, owner, [bump_sequence(40)])
        ledger.submit(envelope)
        ledger.get_status(envelope.hash_hex())
        assert ledger.get_account(owner.identity).sequence == 40

    def test_contract_invocation(self, ledger, owner):
        ledger.add_contract(mk_counter_contract())
        account = ledger.get_account(owner.identity)
        unsigned = build_unsigned(account, [invoke_contract("counter", "increment", [3])], ledger.network_id)
        envelope = sign(SimulationResolver(ledger).prepare(unsigned), owner)

        ledger.submit(envelope)
        status = ledger.get_status(envelope.hash_hex())
        assert status.result["results"] == [{"value": 3}]
        assert ledger.contract_storage("counter") == {"count": 3}


class TestFaultInjection:

    def test_failed_submission_never_reaches_ledger(self, ledger, owner, destination):
        ledger.fail_submissions = 1
        envelope = _signed(ledger, owner, [payment(destination, 1)])
        with pytest.raises(TransportError):
            ledger.submit(envelope)
        assert ledger.get_status(envelope.hash_hex()).kind == StatusKind.NOT_FOUND

    def test_lost_response_still_accepted(self, ledger, owner, destination):
        ledger.lose_responses = 1
        envelope = _signed(ledger, owner, [payment(destination, 1)])
        with pytest.raises(TransportError):
            ledger.submit(envelope)
        assert ledger.get_status(envelope.hash_hex()).kind == StatusKind.SUCCESS
