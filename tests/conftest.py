"""
Shared fixtures: an in-memory ledger, three signers and a 2-of-3 account.
"""
import sys
import pathlib

import pytest

# Make the helpers package importable from every test directory
TESTS_DIR = pathlib.Path(__file__).parent
if str(TESTS_DIR) not in sys.path:
    sys.path.insert(0, str(TESTS_DIR))

from helpers import mk_settings, mk_signer, setup_multisig  # noqa: E402

from multisig_tx.transport.memory import InMemoryLedger  # noqa: E402


@pytest.fixture
def ledger():
    """Fresh in-memory ledger that finalizes on the first status query."""
    return InMemoryLedger()


@pytest.fixture
def settings():
    return mk_settings()


@pytest.fixture
def master():
    return mk_signer("master")


@pytest.fixture
def signer_a():
    return mk_signer("A")


@pytest.fixture
def signer_b():
    return mk_signer("B")


@pytest.fixture
def signer_c():
    return mk_signer("C")


@pytest.fixture
def outsider():
    """Signer that is not in any account's weight table."""
    return mk_signer("outsider")


@pytest.fixture
def destination(ledger):
    """Funded account that receives payments."""
    signer = mk_signer("destination")
    ledger.create_account(signer.identity, balance=0)
    return signer.identity


@pytest.fixture
def multisig_account(ledger, master, signer_a, signer_b, signer_c):
    """Master account converted to 2-of-3 multisig with signers A, B, C."""
    return setup_multisig(ledger, master, [signer_a, signer_b, signer_c], threshold=2)
