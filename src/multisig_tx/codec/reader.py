"""
Binary Reader

Primitive decoding for the envelope wire format. Every read is bounds
checked and failures surface as MalformedEnvelope, so callers never see a
half-parsed envelope.
"""

import builtins
import struct

from ..runtime.errors import MalformedEnvelope

# 64-bit values never need more than ten ULEB128 groups
_MAX_VARINT_BYTES = 10


class BinaryReader:
    """
    Cursor over an immutable byte buffer.
    """

    def __init__(self, buf: builtins.bytes):
        """
        Initialize reader with byte buffer.

        Args:
            buf: Byte buffer to read from
        """
        self._buf = buf
        self._off = 0

    @property
    def eof(self) -> bool:
        """True once the whole buffer was consumed."""
        return self._off >= len(self._buf)

    @property
    def offset(self) -> int:
        return self._off

    def _need(self, n: int, what: str) -> None:
        if self._off + n > len(self._buf):
            raise MalformedEnvelope(
                f"Truncated input: need {n} bytes for {what} at offset {self._off}",
                details={"offset": self._off, "length": len(self._buf)},
            )

    def u8(self) -> int:
        """
        Read unsigned 8-bit integer.

        Returns:
            Unsigned 8-bit integer value
        """
        self._need(1, "u8")
        val = self._buf[self._off]
        self._off += 1
        return val

    def u64le(self) -> int:
        """
        Read unsigned 64-bit integer in little-endian format.

        Returns:
            Unsigned 64-bit integer value
        """
        self._need(8, "u64")
        val = struct.unpack("<Q", self._buf[self._off : self._off + 8])[0]
        self._off += 8
        return val

    def uvarint(self) -> int:
        """
        Read unsigned varint in ULEB128 format.

        Rejects non-minimal encodings so that every value has exactly one
        byte representation.

        Returns:
            Decoded unsigned integer value
        """
        x = 0
        s = 0
        for i in range(_MAX_VARINT_BYTES):
            b = self.u8()
            if b < 0x80:
                if i > 0 and b == 0:
                    raise MalformedEnvelope("Non-minimal varint encoding", details={"offset": self._off})
                x |= b << s
                if x > 0xFFFFFFFFFFFFFFFF:
                    raise MalformedEnvelope("Varint overflows 64 bits", details={"offset": self._off})
                return x
            x |= (b & 0x7F) << s
            s += 7
        raise MalformedEnvelope("Varint too long", details={"offset": self._off})

    def bytes(self, n: int) -> builtins.bytes:
        """
        Read n bytes from buffer.

        Args:
            n: Number of bytes to read

        Returns:
            Bytes of specified length
        """
        self._need(n, f"{n}-byte field")
        out = builtins.bytes(self._buf[self._off : self._off + n])
        self._off += n
        return out

    def len_prefixed_bytes(self) -> builtins.bytes:
        """
        Read bytes with length prefix using uvarint.

        Returns:
            Bytes with length read from uvarint prefix
        """
        n = self.uvarint()
        return self.bytes(n)

    def string(self) -> str:
        """
        Read UTF-8 string with length prefix.

        Returns:
            Decoded string
        """
        raw = self.len_prefixed_bytes()
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedEnvelope("Invalid UTF-8 string", cause=e)

    def expect_eof(self) -> None:
        """Fail if unread bytes remain."""
        if not self.eof:
            raise MalformedEnvelope(
                f"Trailing data: {len(self._buf) - self._off} unread bytes",
                details={"offset": self._off},
            )
