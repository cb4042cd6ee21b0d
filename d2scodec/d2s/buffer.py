"""Bounds-checked little-endian byte buffer and bit sink for .d2s images."""
from __future__ import annotations

import struct

from d2scodec.d2s.errors import BufferRangeError

_UINT32 = struct.Struct("<I")
_UINT64 = struct.Struct("<Q")

_SMALL_WINDOW = 4   # values fitting in 32 bits after the bit shift
_LARGE_WINDOW = 8   # values up to 56 bits after the bit shift


class ByteBuffer:
    """Owned, growable byte sequence.

    Reads and writes are bounds-checked against the current length. A write
    never grows the buffer; only ``append`` does, and only while the buffer
    is being populated from a stream.
    """

    def __init__(self, data: bytes | bytearray = b""):
        self._data = bytearray(data)

    def __len__(self) -> int:
        return len(self._data)

    def __bytes__(self) -> bytes:
        return bytes(self._data)

    def __eq__(self, other) -> bool:
        if isinstance(other, ByteBuffer):
            return self._data == other._data
        return NotImplemented

    def to_bytes(self) -> bytes:
        return bytes(self._data)

    def view(self, start: int = 0, end: int | None = None) -> memoryview:
        """Read-only view of a byte range. Callers must not keep it past the call."""
        end = len(self._data) if end is None else end
        self._check(start, end - start)
        return memoryview(self._data)[start:end].toreadonly()

    def append(self, data: bytes | bytearray | memoryview) -> None:
        self._data.extend(data)

    def truncate(self, length: int) -> None:
        del self._data[length:]

    def find(self, marker: bytes, start: int = 0) -> int:
        return self._data.find(marker, start)

    def _check(self, offset: int, width: int) -> None:
        if offset < 0 or width < 0 or offset + width > len(self._data):
            raise BufferRangeError(offset, width, len(self._data))

    def in_range(self, offset: int, width: int) -> bool:
        return offset >= 0 and width >= 0 and offset + width <= len(self._data)

    # -- reads -----------------------------------------------------------

    def read_bits(self, byte_offset: int, bit_count: int, bit_shift: int = 0) -> int:
        """Read ``bit_count`` bits starting ``bit_shift`` bits into ``byte_offset``.

        Values that fit a 32-bit window after the shift take the small path;
        anything up to 56 bits past the shift takes the 64-bit path. Near the
        end of the buffer the window is zero-extended, so only the bytes the
        value actually covers have to exist.
        """
        if bit_count <= 0:
            return 0
        if bit_shift < 0 or bit_shift > 7 or bit_count + bit_shift > _LARGE_WINDOW * 8:
            raise ValueError(f"Unsupported bit read: {bit_count} bits at shift {bit_shift}")

        needed = (bit_shift + bit_count + 7) // 8
        self._check(byte_offset, needed)

        if bit_shift + bit_count <= _SMALL_WINDOW * 8:
            window = bytes(self._data[byte_offset:byte_offset + _SMALL_WINDOW])
            raw = _UINT32.unpack(window.ljust(_SMALL_WINDOW, b"\x00"))[0]
        else:
            window = bytes(self._data[byte_offset:byte_offset + _LARGE_WINDOW])
            raw = _UINT64.unpack(window.ljust(_LARGE_WINDOW, b"\x00"))[0]
        return (raw >> bit_shift) & ((1 << bit_count) - 1)

    def read_uint(self, offset: int, width: int) -> int:
        self._check(offset, width)
        return int.from_bytes(self._data[offset:offset + width], "little")

    def read_bytes(self, offset: int, width: int) -> bytes:
        self._check(offset, width)
        return bytes(self._data[offset:offset + width])

    # -- writes ----------------------------------------------------------

    def write_bytes(self, offset: int, width: int, value: int) -> bool:
        """Store ``value`` little-endian in ``width`` bytes. False if out of range."""
        if not self.in_range(offset, width):
            return False
        self._data[offset:offset + width] = (value & ((1 << (width * 8)) - 1)).to_bytes(width, "little")
        return True

    def write_raw(self, offset: int, data: bytes | bytearray) -> bool:
        if not self.in_range(offset, len(data)):
            return False
        self._data[offset:offset + len(data)] = data
        return True


class BitWriter:
    """Append-only LSB-first bit sink, padded to a whole byte on output."""

    def __init__(self):
        self._data = bytearray()
        self._bit_pos = 0

    @property
    def bit_length(self) -> int:
        return self._bit_pos

    def write(self, value: int, bit_count: int) -> None:
        value &= (1 << bit_count) - 1
        for i in range(bit_count):
            byte_index, bit = divmod(self._bit_pos, 8)
            if byte_index == len(self._data):
                self._data.append(0)
            if (value >> i) & 1:
                self._data[byte_index] |= 1 << bit
            self._bit_pos += 1

    def to_bytes(self) -> bytes:
        return bytes(self._data)
