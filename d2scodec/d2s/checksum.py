"""Rolling shift-and-add checksum over a complete character image."""
from __future__ import annotations

from dataclasses import dataclass

_MASK32 = 0xFFFFFFFF


def to_signed32(value: int) -> int:
    value &= _MASK32
    return value - 0x100000000 if value & 0x80000000 else value


@dataclass(slots=True)
class ChecksumState:
    """Running (accumulator, overflow) pair.

    Each byte doubles the accumulator, adds the byte plus the previous
    overflow, then takes the new sign bit as the next overflow. The scan is
    continued across segment boundaries by handing the same state to each
    segment in file order.
    """
    accumulator: int = 0
    overflow: int = 0

    def update(self, data: bytes | bytearray | memoryview, skip: range | None = None,
               base: int = 0) -> "ChecksumState":
        """Fold ``data`` in. Bytes whose absolute position (``base`` + index) is in ``skip`` count as zero."""
        acc = self.accumulator
        overflow = self.overflow
        for i, byte in enumerate(bytes(data)):
            if skip is not None and (base + i) in skip:
                byte = 0
            acc = ((acc << 1) + byte + overflow) & _MASK32
            overflow = acc >> 31
        self.accumulator = acc
        self.overflow = overflow
        return self

    @property
    def value(self) -> int:
        """Final checksum as a signed 32-bit integer."""
        return to_signed32(self.accumulator)

    @property
    def unsigned(self) -> int:
        return self.accumulator & _MASK32


def compute_checksum(image: bytes | bytearray, checksum_offset: int = 12) -> int:
    """Checksum a whole file image in one pass, zeroing the stored checksum."""
    state = ChecksumState()
    state.update(image, skip=range(checksum_offset, checksum_offset + 4))
    return state.value
