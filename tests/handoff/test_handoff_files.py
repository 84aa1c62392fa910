"""
Envelope handoff through files between signing parties.
"""

import pytest

from helpers import mk_envelope, mk_signer

from multisig_tx.codec.hashes import network_id
from multisig_tx.handoff import (
    CANDIDATE_FILE,
    UNSIGNED_FILE,
    HandoffDirectory,
    load_envelope,
    save_envelope,
)
from multisig_tx.runtime.errors import MalformedEnvelope
from multisig_tx.signers import sign


@pytest.fixture
def handoff(tmp_path):
    return HandoffDirectory(tmp_path / "handoff")


def test_save_and_load(tmp_path):
    envelope = sign(mk_envelope(), mk_signer("A"))
    path = save_envelope(envelope, tmp_path / "tx.b64")

    assert path.read_text().endswith("\n")
    loaded = load_envelope(path, envelope.network_id)
    assert loaded.to_bytes() == envelope.to_bytes()


def test_load_tolerates_surrounding_whitespace(tmp_path):
    envelope = mk_envelope()
    path = tmp_path / "tx.b64"
    path.write_text(f"\n  {envelope.to_base64()}  \n\n")
    assert load_envelope(path).hash() == envelope.hash()


def test_empty_file_is_malformed(tmp_path):
    path = tmp_path / "tx.b64"
    path.write_text("\n")
    with pytest.raises(MalformedEnvelope):
        load_envelope(path)


def test_wrong_network_is_malformed(tmp_path):
    path = save_envelope(mk_envelope(), tmp_path / "tx.b64")
    with pytest.raises(MalformedEnvelope):
        load_envelope(path, network_id("Another Network"))


def test_signing_chain(handoff):
    unsigned = mk_envelope()
    handoff.write_unsigned(unsigned)
    assert (handoff.path / UNSIGNED_FILE).exists()

    first = sign(handoff.read_for_signer(1), mk_signer("A"))
    handoff.write_signed(1, first)
    second = sign(handoff.read_for_signer(2), mk_signer("B"))
    handoff.write_signed(2, second)

    assert handoff.input_path(2) == handoff.signed_path(1)
    assert handoff.latest().signers == [mk_signer("A").identity, mk_signer("B").identity]
    assert handoff.latest().hash() == unsigned.hash()


def test_missing_input_names_previous_step(handoff):
    handoff.write_unsigned(mk_envelope())
    with pytest.raises(FileNotFoundError, match="sign 2"):
        handoff.read_for_signer(3)


def test_missing_unsigned_names_prepare(handoff):
    with pytest.raises(FileNotFoundError, match="prepare"):
        handoff.read_for_signer(1)
    with pytest.raises(FileNotFoundError, match="prepare"):
        handoff.latest()


def test_latest_falls_back_to_unsigned(handoff):
    unsigned = mk_envelope()
    handoff.write_unsigned(unsigned)
    assert handoff.latest().signatures == ()


def test_signer_numbers_start_at_one(handoff):
    with pytest.raises(ValueError):
        handoff.signed_path(0)


def test_cleanup_removes_every_handoff_file(handoff):
    envelope = mk_envelope()
    handoff.write_unsigned(envelope)
    handoff.write_signed(1, sign(envelope, mk_signer("A")))
    handoff.write_signed(2, sign(envelope, mk_signer("B")))
    unrelated = handoff.path / "notes.txt"
    unrelated.write_text("keep me")

    removed = handoff.cleanup()
    assert {p.name for p in removed} == {
        UNSIGNED_FILE, CANDIDATE_FILE, "signed-by-signer-1.b64", "signed-by-signer-2.b64",
    }
    assert handoff.files() == []
    assert unrelated.exists()


def test_any_subset_signs_through_latest(handoff):
    unsigned = mk_envelope()
    handoff.write_unsigned(unsigned)

    handoff.write_signed(1, sign(handoff.latest(), mk_signer("A")))
    handoff.write_signed(3, sign(handoff.latest(), mk_signer("C")))

    assert handoff.latest().signers == [mk_signer("A").identity, mk_signer("C").identity]
    assert not handoff.signed_path(2).exists()


def test_new_unsigned_discards_previous_chain(handoff):
    old = mk_envelope()
    handoff.write_unsigned(old)
    handoff.write_signed(1, sign(old, mk_signer("A")))

    new = mk_envelope(fee=999)
    handoff.write_unsigned(new)

    assert not handoff.candidate_path.exists()
    assert not handoff.signed_path(1).exists()
    assert handoff.latest().hash() == new.hash()
