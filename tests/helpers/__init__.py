from .factories import (
    mk_signer,
    mk_identity,
    mk_body,
    mk_envelope,
    mk_settings,
    mk_counter_contract,
    setup_multisig,
)
from .mocks import FakeResponse, FakeSession, ScriptedTransport

__all__ = [
    "mk_signer",
    "mk_identity",
    "mk_body",
    "mk_envelope",
    "mk_settings",
    "mk_counter_contract",
    "setup_multisig",
    "FakeResponse",
    "FakeSession",
    "ScriptedTransport",
]
