"""Item inventory segment, carried as an opaque "JM" tail."""
from __future__ import annotations

import logging
import struct

from d2scodec.d2s.checksum import ChecksumState
from d2scodec.d2s.errors import CharacterErrc, D2sError
from d2scodec.d2s.versions import FormatVersion

logger = logging.getLogger(__name__)

ITEMS_MARKER = b"JM"

_UINT16 = struct.Struct("<H")


class ItemInventory:
    """Player, corpse, mercenary and golem item lists, kept as encoded bytes."""

    def __init__(self, version: FormatVersion, data: bytes = ITEMS_MARKER + b"\x00\x00"):
        self.version = version
        self.offset = 0
        self.data = bytes(data)
        self.leading = b""     # stray bytes between the skills and "JM"

    @classmethod
    def read(cls, image: bytes | memoryview, start: int, version: FormatVersion) -> "ItemInventory":
        data = bytes(image)
        pos = data.find(ITEMS_MARKER, start)
        if pos < 0 or pos + 4 > len(data):
            raise D2sError(CharacterErrc.InvalidItemInventory, "item list marker not found")
        if pos != start:
            logger.warning("%d stray bytes before item list at %d", pos - start, pos)
        items = cls(version, data[pos:])
        items.leading = data[start:pos]
        items.offset = pos
        logger.debug("Items segment at %d, %d bytes, %d player items", pos, items.byte_size, items.item_count)
        return items

    @classmethod
    def from_bytes(cls, version: FormatVersion, data: bytes) -> "ItemInventory":
        if data[:2] != ITEMS_MARKER or len(data) < 4:
            raise D2sError(CharacterErrc.InvalidItemInventory, "item data must start with JM and a count")
        return cls(version, data)

    @property
    def item_count(self) -> int:
        return _UINT16.unpack_from(self.data, 2)[0]

    def to_bytes(self) -> bytes:
        return self.leading + self.data

    def write(self, sink: bytearray) -> int:
        data = self.to_bytes()
        sink.extend(data)
        return len(data)

    @property
    def byte_size(self) -> int:
        return len(self.leading) + len(self.data)

    def contribute_checksum(self, state: ChecksumState) -> ChecksumState:
        return state.update(self.to_bytes())
