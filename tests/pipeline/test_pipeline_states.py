"""
Transaction pipeline state machine.
"""

import pytest

from helpers import mk_counter_contract, mk_settings, mk_signer

from multisig_tx.pipeline import PipelineState, TransactionPipeline
from multisig_tx.runtime.errors import (
    ErrorHandler,
    AuthorizationRejected,
    FinalizationTimeout,
    PipelineStateError,
    SequenceConflict,
    SimulationError,
    TransactionRejected,
)
from multisig_tx.tx.operations import invoke_contract, payment


@pytest.fixture
def pipeline(ledger, multisig_account, destination):
    pipeline = TransactionPipeline(ledger, mk_settings())
    pipeline.build(multisig_account.address, [payment(destination, 2_500)])
    return pipeline


@pytest.fixture
def cosigner():
    return mk_signer("cosigner")


@pytest.fixture
def contract_pipeline(ledger, multisig_account, cosigner):
    ledger.add_contract(mk_counter_contract("counter", authorizers=[cosigner.identity]))
    pipeline = TransactionPipeline(ledger, mk_settings())
    pipeline.build(multisig_account.address, [invoke_contract("counter", "increment", [5])])
    pipeline.simulate_and_prepare()
    return pipeline


def test_full_run_visits_every_state(ledger, pipeline, signer_a, signer_c, destination):
    pipeline.simulate_and_prepare()
    assert pipeline.state == PipelineState.AUTHORIZING

    pipeline.sign(signer_a)
    assert pipeline.state == PipelineState.AUTHORIZING
    pipeline.sign(signer_c)
    assert pipeline.state == PipelineState.THRESHOLD_MET

    result = pipeline.submit()
    assert result.succeeded
    assert result.tx_hash == pipeline.envelope.hash_hex()
    assert pipeline.history == [
        PipelineState.BUILDING,
        PipelineState.SIMULATED,
        PipelineState.AUTHORIZING,
        PipelineState.THRESHOLD_MET,
        PipelineState.SUBMITTING,
        PipelineState.PENDING,
        PipelineState.FINALIZED,
    ]
    assert ledger.get_account(destination).balance == 2_500


def test_pending_polls_then_success(ledger, pipeline, signer_a, signer_b):
    ledger.finalize_after = 3
    pipeline.simulate_and_prepare()
    pipeline.sign(signer_a)
    pipeline.sign(signer_b)

    result = pipeline.submit()
    assert pipeline.state == PipelineState.FINALIZED
    assert result.result["results"] == [{"paid": 2_500}]
    assert result.ledger is not None


def test_poll_exhaustion_is_inconclusive(ledger, pipeline, signer_a, signer_b):
    ledger.finalize_after = 10
    pipeline.simulate_and_prepare()
    pipeline.sign(signer_a)
    pipeline.sign(signer_b)

    with pytest.raises(FinalizationTimeout):
        pipeline.submit(poll_policy=mk_settings(poll_attempts=3).pipeline.poll)
    assert pipeline.state == PipelineState.FAILED
    assert pipeline.result.inconclusive
    assert pipeline.result.tx_hash == pipeline.envelope.hash_hex()


def test_signing_after_threshold_keeps_state(pipeline, signer_a, signer_b, signer_c):
    pipeline.simulate_and_prepare()
    pipeline.sign(signer_a)
    pipeline.sign(signer_b)
    pipeline.sign(signer_c)
    assert pipeline.state == PipelineState.THRESHOLD_MET
    assert pipeline.progress().accumulated == 3


def test_outsider_signature_does_not_meet_threshold(pipeline, signer_a, outsider):
    pipeline.simulate_and_prepare()
    pipeline.sign(signer_a)
    pipeline.sign(outsider)
    assert pipeline.state == PipelineState.AUTHORIZING
    assert not pipeline.meets_threshold()
    assert pipeline.progress().non_contributing == [outsider.identity]


class TestInvalidTransitions:
    """Operations called out of order raise and change nothing."""

    def test_sign_before_simulation(self, pipeline, signer_a):
        with pytest.raises(PipelineStateError):
            pipeline.sign(signer_a)
        assert pipeline.state == PipelineState.BUILDING

    def test_submit_before_threshold(self, pipeline, signer_a):
        pipeline.simulate_and_prepare()
        pipeline.sign(signer_a)
        with pytest.raises(PipelineStateError):
            pipeline.submit()
        assert pipeline.state == PipelineState.AUTHORIZING

    def test_build_twice(self, pipeline, multisig_account, destination):
        with pytest.raises(PipelineStateError):
            pipeline.build(multisig_account.address, [payment(destination, 1)])

    def test_simulate_twice(self, pipeline):
        pipeline.simulate_and_prepare()
        with pytest.raises(PipelineStateError):
            pipeline.simulate_and_prepare()

    def test_simulate_without_body(self, ledger):
        with pytest.raises(PipelineStateError):
            TransactionPipeline(ledger, mk_settings()).simulate_and_prepare()

    def test_finished_pipeline_cannot_submit_again(self, pipeline, signer_a, signer_b):
        pipeline.simulate_and_prepare()
        pipeline.sign(signer_a)
        pipeline.sign(signer_b)
        pipeline.submit()
        with pytest.raises(PipelineStateError):
            pipeline.submit()
        with pytest.raises(PipelineStateError):
            pipeline.sign(signer_a)


def test_simulation_failure_stays_in_building(ledger, multisig_account, destination, signer_a):
    pipeline = TransactionPipeline(ledger, mk_settings())
    pipeline.build(multisig_account.address, [payment(destination, 10 ** 12)])

    with pytest.raises(SimulationError):
        pipeline.simulate_and_prepare()
    assert pipeline.state == PipelineState.BUILDING
    assert isinstance(pipeline.failure, SimulationError)
    assert pipeline.envelope.signatures == ()
    with pytest.raises(PipelineStateError):
        pipeline.sign(signer_a)


def test_signer_specific_auth_requires_second_pass(contract_pipeline):
    assert contract_pipeline.second_pass_required


def test_second_pass_failure_fails_attempt(ledger, contract_pipeline, signer_a, signer_b):
    contract_pipeline.sign(signer_a)
    contract_pipeline.sign(signer_b)
    assert contract_pipeline.state == PipelineState.THRESHOLD_MET

    with pytest.raises(AuthorizationRejected):
        contract_pipeline.submit()
    assert contract_pipeline.state == PipelineState.FAILED
    assert isinstance(contract_pipeline.result.error, AuthorizationRejected)
    assert not contract_pipeline.result.inconclusive
    assert ledger.submit_calls == 1  # only the setup transaction


def test_second_pass_success_submits(ledger, contract_pipeline, signer_a, signer_b, cosigner):
    contract_pipeline.sign(signer_a)
    contract_pipeline.sign(cosigner)
    contract_pipeline.sign(signer_b)

    result = contract_pipeline.submit()
    assert result.succeeded
    assert result.result["results"] == [{"value": 5}]
    assert ledger.contract_storage("counter") == {"count": 5}


def test_ledger_failure_reports_reason(ledger, pipeline, signer_a, signer_b, multisig_account):
    pipeline.simulate_and_prepare()
    pipeline.sign(signer_a)
    pipeline.sign(signer_b)
    # Enough for the fee but not for the payment
    ledger.set_balance(multisig_account.address, pipeline.envelope.body.fee)

    with pytest.raises(TransactionRejected) as exc_info:
        pipeline.submit()
    assert exc_info.value.reason == "op_underfunded"
    assert pipeline.state == PipelineState.FAILED
    assert pipeline.result.reason == "op_underfunded"
    assert not pipeline.result.inconclusive


def test_stale_sequence_at_apply_requires_rebuild(monkeypatch, ledger, pipeline, signer_a, signer_b,
                                                  multisig_account):
    pipeline.simulate_and_prepare()
    pipeline.sign(signer_a)
    pipeline.sign(signer_b)
    sequence = pipeline.envelope.body.sequence
    get_status = ledger.get_status

    def sequence_taken_before_apply(tx_hash):
        ledger.set_sequence(multisig_account.address, sequence)
        return get_status(tx_hash)

    monkeypatch.setattr(ledger, "get_status", sequence_taken_before_apply)

    with pytest.raises(SequenceConflict) as exc_info:
        pipeline.submit()
    assert exc_info.value.details["reason"] == "tx_bad_seq"
    assert ErrorHandler.requires_rebuild(exc_info.value)
    assert pipeline.state == PipelineState.FAILED
    assert not pipeline.result.inconclusive
