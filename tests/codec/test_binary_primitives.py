"""
Binary writer/reader primitives and canonical JSON.
"""

import pytest

from multisig_tx.canonjson import dumps_canonical, loads_canonical, normalize
from multisig_tx.codec import BinaryReader, BinaryWriter
from multisig_tx.runtime.errors import MalformedEnvelope


@pytest.mark.parametrize("value,encoded", [
    (0, b"\x00"),
    (1, b"\x01"),
    (127, b"\x7f"),
    (128, b"\x80\x01"),
    (300, b"\xac\x02"),
    (2**64 - 1, b"\xff" * 9 + b"\x01"),
])
def test_uvarint_encoding(value, encoded):
    writer = BinaryWriter()
    writer.uvarint(value)
    assert writer.to_bytes() == encoded

    reader = BinaryReader(encoded)
    assert reader.uvarint() == value
    assert reader.eof


def test_uvarint_rejects_non_minimal_encoding():
    with pytest.raises(MalformedEnvelope):
        BinaryReader(b"\x80\x00").uvarint()


def test_uvarint_rejects_overflow():
    with pytest.raises(MalformedEnvelope):
        BinaryReader(b"\xff" * 9 + b"\x02").uvarint()


def test_uvarint_rejects_overlong_input():
    with pytest.raises(MalformedEnvelope):
        BinaryReader(b"\xff" * 11).uvarint()


def test_writer_range_checks():
    writer = BinaryWriter()
    with pytest.raises(ValueError):
        writer.u8(256)
    with pytest.raises(ValueError):
        writer.u64le(-1)
    with pytest.raises(ValueError):
        writer.uvarint(2**64)


def test_reader_truncation_and_trailing_data():
    with pytest.raises(MalformedEnvelope):
        BinaryReader(b"").u8()
    with pytest.raises(MalformedEnvelope):
        BinaryReader(b"\x01\x02").u64le()
    with pytest.raises(MalformedEnvelope):
        # Length prefix promises 5 bytes, only 2 follow
        BinaryReader(b"\x05ab").len_prefixed_bytes()

    reader = BinaryReader(b"\x01\x02")
    reader.u8()
    with pytest.raises(MalformedEnvelope):
        reader.expect_eof()


def test_string_round_trip_and_invalid_utf8():
    writer = BinaryWriter()
    writer.string("héllo")
    writer.u64le(7)
    reader = BinaryReader(writer.to_bytes())
    assert reader.string() == "héllo"
    assert reader.u64le() == 7
    reader.expect_eof()

    with pytest.raises(MalformedEnvelope):
        BinaryReader(b"\x02\xff\xfe").string()


def test_canonical_json_sorts_keys_without_whitespace():
    assert dumps_canonical({"b": 1, "a": [True, None, "x"]}) == '{"a":[true,null,"x"],"b":1}'


def test_canonical_json_rejects_non_canonical_text():
    assert loads_canonical('{"a":1,"b":2}') == {"a": 1, "b": 2}
    with pytest.raises(ValueError):
        loads_canonical('{"b":2,"a":1}')
    with pytest.raises(ValueError):
        loads_canonical('{"a": 1}')
    with pytest.raises(ValueError):
        loads_canonical('{"a":1.5}')


def test_normalize_rejects_unstable_types():
    assert normalize({"t": (1, 2)}) == {"t": [1, 2]}
    with pytest.raises(TypeError):
        normalize({"f": 1.5})
    with pytest.raises(TypeError):
        normalize({"b": b"raw"})
    with pytest.raises(TypeError):
        normalize({1: "int key"})
