"""
Operation constructors, threshold levels and unsigned envelope building.
"""

import pytest
from pydantic import ValidationError

from helpers import mk_body, mk_identity

from multisig_tx.codec.hashes import network_id
from multisig_tx.tx.builder import build_unsigned
from multisig_tx.tx.operations import (
    bump_sequence,
    configure_multisig,
    invoke_contract,
    operation_threshold,
    payment,
    required_level,
    set_options,
)
from multisig_tx.tx.types import (
    Account,
    AuthorizationEntry,
    Operation,
    OperationType,
    ThresholdLevel,
    TimeBounds,
)

NETWORK = network_id("Test Multisig Network ; 2025")


@pytest.fixture
def account():
    return Account(address=mk_identity("source"), sequence=41,
                   weights={mk_identity("source"): 1}, thresholds={ThresholdLevel.MEDIUM: 1})


class TestOperations:

    def test_payment(self):
        op = payment(mk_identity("dest").upper(), 25)
        assert op.type == OperationType.PAYMENT
        assert op.params == {"destination": mk_identity("dest"), "amount": 25}

    @pytest.mark.parametrize("amount", [0, -3, 1.5, "10"])
    def test_payment_rejects_bad_amounts(self, amount):
        with pytest.raises(ValueError):
            payment(mk_identity("dest"), amount)

    def test_set_options_signer_needs_weight(self):
        with pytest.raises(ValueError):
            set_options(signer=mk_identity("A"))

    def test_set_options_needs_a_field(self):
        with pytest.raises(ValueError):
            set_options()

    @pytest.mark.parametrize("weight", [-1, 256, True])
    def test_set_options_weight_range(self, weight):
        with pytest.raises(ValueError):
            set_options(master_weight=weight)

    def test_configure_multisig(self):
        signers = {mk_identity("A"): 1, mk_identity("B"): 1, mk_identity("C"): 1}
        ops = configure_multisig(signers, med_threshold=2, high_threshold=2, master_weight=0)

        assert len(ops) == 4
        assert ops[0].params == {"master_weight": 0, "low_threshold": 0, "med_threshold": 2, "high_threshold": 2}
        assert [op.params["signer"]["key"] for op in ops[1:]] == list(signers)

    def test_invoke_contract_requires_names(self):
        with pytest.raises(ValueError):
            invoke_contract("", "increment")
        with pytest.raises(ValueError):
            invoke_contract("counter", "")

    def test_invoke_contract_rejects_floats(self):
        with pytest.raises(ValidationError):
            invoke_contract("counter", "increment", [1.5])

    @pytest.mark.parametrize("params", [{}, {"contract": "counter"}, {"contract": "counter", "function": 7}])
    def test_invocation_needs_contract_and_function(self, params):
        with pytest.raises(ValidationError):
            Operation(type=OperationType.INVOKE_CONTRACT, params=params)

    def test_only_invocations_carry_auth(self):
        entry = AuthorizationEntry(address=mk_identity("A"))
        with pytest.raises(ValidationError):
            Operation(type=OperationType.PAYMENT, params={}, auth=(entry,))


class TestThresholdLevels:

    @pytest.mark.parametrize("op,level", [
        (bump_sequence(5), ThresholdLevel.LOW),
        (payment(mk_identity("dest"), 1), ThresholdLevel.MEDIUM),
        (invoke_contract("counter", "increment"), ThresholdLevel.MEDIUM),
        (set_options(home_domain="example.org"), ThresholdLevel.MEDIUM),
        (set_options(med_threshold=2), ThresholdLevel.HIGH),
        (set_options(signer=mk_identity("A"), signer_weight=1), ThresholdLevel.HIGH),
        (set_options(master_weight=0), ThresholdLevel.HIGH),
    ])
    def test_operation_threshold(self, op, level):
        assert operation_threshold(op) == level

    def test_transaction_takes_highest_level(self):
        body = mk_body(operations=[bump_sequence(5), payment(mk_identity("dest"), 1)])
        assert required_level(body) == ThresholdLevel.MEDIUM
        body = mk_body(operations=[payment(mk_identity("dest"), 1), set_options(low_threshold=1)])
        assert required_level(body) == ThresholdLevel.HIGH

    def test_missing_thresholds_default_to_zero(self):
        account = Account(address=mk_identity("source"), sequence=0)
        assert all(account.threshold_for(level) == 0 for level in ThresholdLevel)
        assert account.weight_of(mk_identity("anyone")) == 0


class TestBuilder:

    def test_uses_next_sequence_and_default_fee(self, account):
        ops = [payment(mk_identity("dest"), 1), payment(mk_identity("other"), 2)]
        envelope = build_unsigned(account, ops, NETWORK)

        assert envelope.body.sequence == 42
        assert envelope.body.fee == 200
        assert envelope.body.operations == tuple(ops)
        assert envelope.body.time_bounds == TimeBounds()
        assert envelope.signatures == ()
        assert not envelope.body.prepared

    def test_explicit_fee_and_base_fee(self, account):
        ops = [payment(mk_identity("dest"), 1)]
        assert build_unsigned(account, ops, NETWORK, base_fee=300).body.fee == 300
        assert build_unsigned(account, ops, NETWORK, fee=1234).body.fee == 1234

    def test_timeout_sets_upper_bound(self, account):
        envelope = build_unsigned(account, [bump_sequence(50)], NETWORK, timeout=60, clock=lambda: 1000.7)
        assert envelope.body.time_bounds == TimeBounds(min_time=0, max_time=1060)

    def test_rejects_bad_inputs(self, account):
        ops = [bump_sequence(50)]
        with pytest.raises(ValueError):
            build_unsigned(account, ops, b"short")
        with pytest.raises(ValueError):
            build_unsigned(account, ops, NETWORK, timeout=-1)
        with pytest.raises(ValueError):
            build_unsigned(account, [], NETWORK)

    def test_same_inputs_build_same_hash(self, account):
        ops = [payment(mk_identity("dest"), 7)]
        assert build_unsigned(account, ops, NETWORK).hash() == build_unsigned(account, ops, NETWORK).hash()
