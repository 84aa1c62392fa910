"""
Error hierarchy and classification.
"""

import pytest

from multisig_tx.runtime.errors import (
    AuthorizationRejected,
    ConfigurationError,
    ErrorCode,
    ErrorHandler,
    FinalizationTimeout,
    InvalidSignatureError,
    MalformedEnvelope,
    MultisigTxError,
    PipelineStateError,
    SequenceConflict,
    SimulationError,
    TransactionRejected,
    TransportError,
)


class TestMultisigTxError:

    def test_default_codes(self):
        assert MalformedEnvelope("x").code == ErrorCode.MALFORMED_ENVELOPE
        assert InvalidSignatureError("x").code == ErrorCode.INVALID_SIGNATURE
        assert PipelineStateError("x").code == ErrorCode.INVALID_STATE
        assert ConfigurationError("x").code == ErrorCode.CONFIGURATION

    def test_explicit_code_wins(self):
        assert TransportError("slow", code=ErrorCode.TIMEOUT).code == ErrorCode.TIMEOUT

    def test_string_form(self):
        error = SimulationError("trap", details={"txHash": "ab"}, cause=ValueError("inner"))
        text = str(error)
        assert text.startswith("[SIMULATION_FAILED] trap")
        assert "Details: {'txHash': 'ab'}" in text
        assert "Caused by: inner" in text

    def test_to_dict(self):
        error = TransactionRejected("failed on ledger", reason="op_underfunded")
        assert error.to_dict() == {
            "code": ErrorCode.TRANSACTION_REJECTED.value,
            "name": "TRANSACTION_REJECTED",
            "message": "failed on ledger",
            "details": {"reason": "op_underfunded"},
        }

    def test_finalization_timeout_details(self):
        error = FinalizationTimeout("gave up", tx_hash="cd" * 32, attempts=4)
        assert error.details == {"txHash": "cd" * 32, "attempts": 4}
        assert error.attempts == 4

    def test_invalid_signature_is_authorization_failure(self):
        assert isinstance(InvalidSignatureError("x"), AuthorizationRejected)
        assert isinstance(AuthorizationRejected("x"), MultisigTxError)


@pytest.mark.parametrize("error,retryable,rebuild", [
    (TransportError("down"), True, False),
    (SimulationError("trap"), False, True),
    (AuthorizationRejected("second pass"), False, True),
    (InvalidSignatureError("forged"), False, True),
    (SequenceConflict("stale"), False, True),
    (FinalizationTimeout("gave up"), False, False),
    (MalformedEnvelope("garbage"), False, False),
    (ValueError("plain"), False, False),
])
def test_classification(error, retryable, rebuild):
    assert ErrorHandler.is_retryable(error) is retryable
    assert ErrorHandler.requires_rebuild(error) is rebuild


def test_extract_tx_hash():
    assert ErrorHandler.extract_tx_hash(SequenceConflict("stale", details={"txHash": "ef"})) == "ef"
    assert ErrorHandler.extract_tx_hash(SequenceConflict("stale")) is None
    assert ErrorHandler.extract_tx_hash(RuntimeError("other")) is None
