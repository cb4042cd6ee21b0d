"""Version table: where every header field lives for each format revision."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

from d2scodec.d2s.constants import (
    APPEARANCE_LENGTH,
    D2R_APPEARANCE_LENGTH,
    HEADER_LENGTH_109,
    HEADER_LENGTH_PRE_109,
    HEADER_MAGIC,
    MIN_START_POS,
    NAME_LENGTH,
)
from d2scodec.d2s.versions import FormatVersion


@dataclass(frozen=True, slots=True)
class FieldDescriptor:
    """A field's placement for one version range."""
    offset: int
    width: int                      # bytes per element
    count: int = 1                  # >1 for fixed arrays (hotkeys)
    default: Optional[bytes] = None

    @property
    def size(self) -> int:
        return self.width * self.count

    @property
    def end(self) -> int:
        return self.offset + self.size


@dataclass(frozen=True, slots=True)
class Filler:
    """Constant bytes the game client expects; written on save, never read."""
    min_version: FormatVersion
    offset: int
    data: bytes


V100 = FormatVersion.v100
V109 = FormatVersion.v109
V100R = FormatVersion.v100R
V120 = FormatVersion.v120

# field -> [(first version using this placement, descriptor)], oldest first
_ROWS: dict[str, list[tuple[FormatVersion, FieldDescriptor]]] = {
    "magic": [(V100, FieldDescriptor(0, 4, default=HEADER_MAGIC))],
    "version": [(V100, FieldDescriptor(4, 4))],
    "file_size": [(V109, FieldDescriptor(8, 4))],
    "checksum": [(V109, FieldDescriptor(12, 4))],
    "weapon_set": [(V100, FieldDescriptor(26, 1)), (V109, FieldDescriptor(16, 4))],
    "name": [
        (V100, FieldDescriptor(8, NAME_LENGTH)),
        (V109, FieldDescriptor(20, NAME_LENGTH)),
        (V120, FieldDescriptor(267, NAME_LENGTH)),
    ],
    "status": [(V100, FieldDescriptor(24, 1)), (V109, FieldDescriptor(36, 1))],
    "title": [(V100, FieldDescriptor(25, 1)), (V109, FieldDescriptor(37, 1))],
    "class": [(V100, FieldDescriptor(34, 1)), (V109, FieldDescriptor(40, 1))],
    "level": [(V100, FieldDescriptor(36, 1, default=b"\x01")), (V109, FieldDescriptor(43, 1, default=b"\x01"))],
    "created": [(V109, FieldDescriptor(44, 4))],
    "last_played": [(V109, FieldDescriptor(48, 4))],
    "hotkeys": [
        (V100, FieldDescriptor(70, 1, count=16, default=b"\xFF")),
        (V109, FieldDescriptor(56, 4, count=16, default=b"\xFF" * 4)),
    ],
    "left_skill": [(V100, FieldDescriptor(86, 1)), (V109, FieldDescriptor(120, 4))],
    "right_skill": [(V100, FieldDescriptor(87, 1)), (V109, FieldDescriptor(124, 4))],
    "left_swap_skill": [(V109, FieldDescriptor(128, 4))],
    "right_swap_skill": [(V109, FieldDescriptor(132, 4))],
    "appearance": [
        (V100, FieldDescriptor(38, APPEARANCE_LENGTH, default=b"\xFF" * APPEARANCE_LENGTH)),
        (V109, FieldDescriptor(136, APPEARANCE_LENGTH, default=b"\xFF" * APPEARANCE_LENGTH)),
    ],
    "starting_act": [
        (V100, FieldDescriptor(88, 1)),
        (V109, FieldDescriptor(168, 1, count=3, default=b"\x80\x00\x00")),
    ],
    "map_id": [(V100, FieldDescriptor(126, 4)), (V109, FieldDescriptor(171, 4))],
    "merc_dead": [(V109, FieldDescriptor(177, 2))],
    "merc_id": [(V109, FieldDescriptor(179, 4))],
    "merc_name_id": [(V109, FieldDescriptor(183, 2))],
    "merc_type": [(V109, FieldDescriptor(185, 2))],
    "merc_experience": [(V109, FieldDescriptor(187, 4))],
    "d2r_appearance": [(V100R, FieldDescriptor(219, D2R_APPEARANCE_LENGTH))],
}

FILLERS: tuple[Filler, ...] = (
    Filler(V109, 41, b"\x10\x1E"),
    Filler(V109, 52, b"\xFF\xFF\xFF\xFF"),
    Filler(V120, 20, b"\x00" * 16),         # old name slot
)


class VersionTable:
    """Resolves logical header fields to byte placements for a version."""

    def __init__(self, rows: dict[str, list[tuple[FormatVersion, FieldDescriptor]]],
                 fillers: tuple[Filler, ...] = ()):
        self._rows = rows
        self._fillers = fillers

    def resolve(self, version: FormatVersion, name: str) -> Optional[FieldDescriptor]:
        """Return the descriptor in effect at ``version``, or None if the field is absent."""
        rows = self._rows.get(name)
        if rows is None:
            raise KeyError(f"Unknown header field: {name}")
        found = None
        for min_version, desc in rows:
            if version >= min_version:
                found = desc
        return found

    def has_field(self, version: FormatVersion, name: str) -> bool:
        return self.resolve(version, name) is not None

    def fields_for(self, version: FormatVersion) -> Iterator[tuple[str, FieldDescriptor]]:
        for name in self._rows:
            desc = self.resolve(version, name)
            if desc is not None:
                yield name, desc

    def fillers_for(self, version: FormatVersion) -> list[Filler]:
        return [f for f in self._fillers if version >= f.min_version]

    def overlapping_fields(self, version: FormatVersion) -> list[tuple[str, str]]:
        """Pairs of fields (and fillers) whose byte ranges collide at ``version``."""
        spans = [(name, d.offset, d.end) for name, d in self.fields_for(version)]
        spans += [(f"filler@{f.offset}", f.offset, f.offset + len(f.data))
                  for f in self.fillers_for(version)]
        spans.sort(key=lambda s: s[1])
        clashes = []
        for (a, _, a_end), (b, b_start, _) in zip(spans, spans[1:]):
            if b_start < a_end:
                clashes.append((a, b))
        return clashes


VERSION_TABLE = VersionTable(_ROWS, FILLERS)


def header_length(version: FormatVersion) -> int:
    return HEADER_LENGTH_109 if version >= FormatVersion.v109 else HEADER_LENGTH_PRE_109


def min_segment_start(version: FormatVersion) -> int:
    """First byte where the Acts segment search may begin."""
    return HEADER_LENGTH_109 if version >= FormatVersion.v109 else MIN_START_POS
