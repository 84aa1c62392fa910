"""
Binary Writer

Primitive encoding for the envelope wire format: fixed-width little-endian
integers, ULEB128 varints and length-prefixed byte strings.
"""

import struct
from typing import List


class BinaryWriter:
    """
    Append-only byte buffer with the primitives the envelope codec needs.
    """

    def __init__(self):
        """Initialize writer with empty byte buffer."""
        self._bb: List[int] = []

    def u8(self, v: int) -> None:
        """
        Write unsigned 8-bit integer.

        Args:
            v: Integer value to write (0-255)

        Raises:
            ValueError: If value does not fit in one byte
        """
        if not 0 <= v <= 0xFF:
            raise ValueError(f"u8 out of range: {v}")
        self._bb.append(v)

    def u64le(self, v: int) -> None:
        """
        Write unsigned 64-bit integer in little-endian format.

        Args:
            v: Integer value to write as 64-bit little-endian
        """
        if not 0 <= v <= 0xFFFFFFFFFFFFFFFF:
            raise ValueError(f"u64 out of range: {v}")
        self._bb.extend(struct.pack('<Q', v))

    def bytes(self, v: bytes) -> None:
        """
        Write raw bytes without length prefix.

        Args:
            v: Bytes to write directly
        """
        self._bb.extend(v)

    def len_prefixed_bytes(self, v: bytes) -> None:
        """
        Write bytes with length prefix using uvarint.

        Args:
            v: Bytes to write with length prefix
        """
        self.uvarint(len(v))
        self.bytes(v)

    def string(self, s: str) -> None:
        """
        Write UTF-8 string with length prefix.

        Args:
            s: String to write
        """
        self.len_prefixed_bytes(s.encode("utf-8"))

    def uvarint(self, v: int) -> None:
        """
        Write unsigned varint in ULEB128 format.

        Args:
            v: Unsigned integer value to encode as varint
        """
        if v < 0 or v > 0xFFFFFFFFFFFFFFFF:
            raise ValueError(f"uvarint out of range: {v}")
        x = v
        while x >= 0x80:
            self._bb.append((x & 0x7F) | 0x80)
            x >>= 7
        self._bb.append(x)

    def to_bytes(self) -> bytes:
        """
        Return accumulated bytes as immutable bytes object.

        Returns:
            Bytes containing all written data
        """
        return bytes(self._bb)
