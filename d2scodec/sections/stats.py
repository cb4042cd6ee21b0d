"""Character attributes ("gf") and class skills ("if") segment."""
from __future__ import annotations

import logging
import struct

from d2scodec.d2s.buffer import BitWriter, ByteBuffer
from d2scodec.d2s.checksum import ChecksumState
from d2scodec.d2s.constants import NUM_OF_SKILLS
from d2scodec.d2s.errors import BufferRangeError, CharacterErrc, D2sError
from d2scodec.d2s.versions import FormatVersion

logger = logging.getLogger(__name__)

STATS_MARKER = b"gf"
SKILLS_MARKER = b"if"
STAT_END_MARKER = 0x1FF
STAT_ID_BITS = 9
STAT_MAX = 16

# Attribute names by stat id, in file order
STAT_NAMES = (
    "strength", "energy", "dexterity", "vitality",
    "unused_stats", "unused_skill_points",
    "current_hp", "max_hp", "current_mana", "max_mana",
    "current_stamina", "max_stamina",
    "level", "experience", "gold", "stashed_gold",
)
STAT_IDS = {name: i for i, name in enumerate(STAT_NAMES)}

V110_BITS_PER_STAT = (10, 10, 10, 10, 10, 8, 21, 21, 21, 21, 21, 21, 7, 32, 25, 25)

# Life, mana and stamina are stored as 8.8 fixed point
FIXED_POINT_STATS = frozenset(range(6, 12))

# Stats omitted from the file when zero
OPTIONAL_STATS = frozenset({4, 5, 6, 13, 14, 15})

GOLD_PER_LEVEL = 10000
GOLD_IN_STASH_LIMIT = 2500000

_UINT16 = struct.Struct("<H")
_UINT32 = struct.Struct("<I")


class CharacterStats:
    """Attribute values plus the 30 class-skill point bytes.

    The encoded bytes read from disk, along with any stray bytes ahead of the
    marker, are re-emitted unchanged until a value is modified, so an untouched
    segment round-trips byte for byte.
    """

    def __init__(self, version: FormatVersion):
        self.version = version
        self.offset = 0
        self.values = [0] * STAT_MAX
        self.values[STAT_IDS["level"]] = 1
        self.skills = bytearray(NUM_OF_SKILLS)
        self._raw: bytes | None = None
        self.leading = b""     # stray bytes between the NPC block and "gf"

    @property
    def dirty(self) -> bool:
        return self._raw is None

    # -- codec -----------------------------------------------------------

    @classmethod
    def read(cls, image: bytes | memoryview, start: int, version: FormatVersion) -> "CharacterStats":
        buf = ByteBuffer(image)
        stats = cls(version)
        values = [0] * STAT_MAX
        values[STAT_IDS["level"]] = 1

        pos = buf.find(STATS_MARKER, start)
        if pos < 0:
            raise D2sError(CharacterErrc.InvalidCharStats, "stats marker not found")
        if pos != start:
            logger.warning("%d stray bytes before stats at %d", pos - start, pos)
        stats.leading = buf.read_bytes(start, pos - start)
        stats.offset = pos

        try:
            if version < FormatVersion.v110:
                end = cls._read_masked(buf, pos + 2, version, values)
            else:
                end = cls._read_bitstream(buf, pos + 2, values)
        except BufferRangeError as exc:
            raise D2sError(CharacterErrc.InvalidCharStats, str(exc)) from exc

        skills_pos = buf.find(SKILLS_MARKER, end)
        if skills_pos < 0 or not buf.in_range(skills_pos + 2, NUM_OF_SKILLS):
            raise D2sError(CharacterErrc.InvalidCharSkills, "skills marker not found")
        stats.values = values
        stats.skills = bytearray(buf.read_bytes(skills_pos + 2, NUM_OF_SKILLS))
        stats._raw = buf.read_bytes(pos, skills_pos + 2 + NUM_OF_SKILLS - pos)
        logger.debug("Stats segment at %d, %d bytes (skills at %d)", pos, len(stats._raw), skills_pos)
        return stats

    @staticmethod
    def _read_masked(buf: ByteBuffer, pos: int, version: FormatVersion, values: list[int]) -> int:
        mask = buf.read_uint(pos, 2)
        pos += 2
        if version < FormatVersion.v109:
            pos += 1    # null byte
        for stat in range(STAT_MAX):
            if stat in OPTIONAL_STATS or stat in (8, 10):
                if not mask & (1 << stat):
                    continue
            values[stat] = buf.read_uint(pos, 4)
            pos += 4
        return pos

    @staticmethod
    def _read_bitstream(buf: ByteBuffer, pos: int, values: list[int]) -> int:
        bit = 0
        while True:
            stat = buf.read_bits(pos + bit // 8, STAT_ID_BITS, bit % 8)
            bit += STAT_ID_BITS
            if stat == STAT_END_MARKER:
                break
            if stat >= STAT_MAX:
                raise D2sError(CharacterErrc.InvalidCharStats, f"unknown stat id {stat}")
            width = V110_BITS_PER_STAT[stat]
            values[stat] = buf.read_bits(pos + bit // 8, width, bit % 8)
            bit += width
        return pos + (bit + 7) // 8

    def _present(self) -> list[int]:
        return [s for s in range(STAT_MAX) if s not in OPTIONAL_STATS or self.values[s] != 0]

    def _encode_stats(self) -> bytes:
        present = self._present()
        if self.version < FormatVersion.v110:
            mask = 0xFFFF
            for stat in OPTIONAL_STATS:
                if stat not in present:
                    mask &= ~(1 << stat)
            out = bytearray(_UINT16.pack(mask))
            if self.version < FormatVersion.v109:
                out.append(0)
            for stat in present:
                out += _UINT32.pack(self.values[stat] & 0xFFFFFFFF)
            return bytes(out)

        writer = BitWriter()
        for stat in present:
            writer.write(stat, STAT_ID_BITS)
            writer.write(self.values[stat], V110_BITS_PER_STAT[stat])
        writer.write(STAT_END_MARKER, STAT_ID_BITS)
        return writer.to_bytes()

    def to_bytes(self) -> bytes:
        if self._raw is not None:
            return self.leading + self._raw
        return self.leading + STATS_MARKER + self._encode_stats() + SKILLS_MARKER + bytes(self.skills)

    def write(self, sink: bytearray) -> int:
        data = self.to_bytes()
        sink.extend(data)
        return len(data)

    @property
    def byte_size(self) -> int:
        return len(self.to_bytes())

    def contribute_checksum(self, state: ChecksumState) -> ChecksumState:
        return state.update(self.to_bytes())

    # -- accessors -------------------------------------------------------

    def _max_raw(self, stat: int) -> int:
        if self.version < FormatVersion.v110:
            return 0xFFFFFFFF
        return (1 << V110_BITS_PER_STAT[stat]) - 1

    def get_stat(self, name: str) -> int:
        stat = STAT_IDS[name]
        value = self.values[stat]
        return value >> 8 if stat in FIXED_POINT_STATS else value

    def set_stat(self, name: str, value: int) -> bool:
        stat = STAT_IDS.get(name)
        if stat is None or value < 0:
            return False
        if stat == STAT_IDS["level"] and value < 1:
            return False
        if stat == STAT_IDS["gold"]:
            value = min(value, GOLD_PER_LEVEL * self.level)
        elif stat == STAT_IDS["stashed_gold"]:
            value = min(value, GOLD_IN_STASH_LIMIT)

        raw = value << 8 if stat in FIXED_POINT_STATS else value
        if stat in FIXED_POINT_STATS and (raw >> 8) == (self.values[stat] >> 8):
            return True     # keep the fractional part
        raw = min(raw, self._max_raw(stat))
        if raw != self.values[stat]:
            self.values[stat] = raw
            self._raw = None
        return True

    def get_raw_value(self, name: str) -> int:
        """Stored value as encoded in the file (8.8 fixed point for life, mana, stamina)."""
        return self.values[STAT_IDS[name]]

    def set_raw_value(self, name: str, raw: int) -> bool:
        stat = STAT_IDS.get(name)
        if stat is None or raw < 0 or (stat == STAT_IDS["level"] and raw < 1):
            return False
        raw = min(raw, self._max_raw(stat))
        if raw != self.values[stat]:
            self.values[stat] = raw
            self._raw = None
        return True

    @property
    def level(self) -> int:
        return self.values[STAT_IDS["level"]]

    def get_skills(self) -> list[int]:
        return list(self.skills)

    def set_skill(self, index: int, points: int) -> bool:
        if not 0 <= index < NUM_OF_SKILLS or not 0 <= points <= 0xFF:
            return False
        if self.skills[index] != points:
            self.skills[index] = points
            self._raw = None
        return True

    def as_dict(self) -> dict[str, int]:
        return {name: self.get_stat(name) for name in STAT_NAMES}

