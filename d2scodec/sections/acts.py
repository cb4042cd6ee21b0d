"""Quest, waypoint and NPC segment ("Woo!" / "WS" / 0x7701)."""
from __future__ import annotations

import logging
import struct
from typing import Optional

from d2scodec.d2s.checksum import ChecksumState
from d2scodec.d2s.constants import NUM_OF_DIFFICULTY, Act
from d2scodec.d2s.errors import CharacterErrc, D2sError
from d2scodec.d2s.versions import FormatVersion

logger = logging.getLogger(__name__)

QUESTS_MARKER = b"Woo!"
QUESTS_SIZE_MARKER = b"\x2A\x01"
QUESTS_VERSION = b"\x06\x00\x00\x00"
QUESTS_DATA_SIZE = 288
QUESTS_HEADER_SIZE = 10

WAYPOINTS_MARKER = b"WS"
WAYPOINTS_SIZE_MARKER = b"\x50\x00"
WAYPOINTS_VERSION = b"\x01\x00\x00\x00"
WAYPOINTS_HEADER_SIZE = 8
WAYPOINT_RECORD_MARKER = 0x0102

NPC_MARKER = b"\x01\x77"
NPC_SIZE_MARKER = b"\x34\x00"
NPC_DATA_SIZE = 48

ACTS_SEGMENT_SIZE = 430

# Per difficulty: Acts I-IV are 8 words (intro, 6 quests, completed), Act V is 16
_QUEST_STRIDE = 96
_QUEST_STRIDE_PRE_107 = 92      # 64 bytes used, 28 skipped
_WORDS_PER_ACT = 8
_ACT_V_QUEST_WORD = 4 * _WORDS_PER_ACT + 3
NUM_OF_QUESTS = 6
NUM_OF_QUESTS_ACT_IV = 3

_WAYPOINT_RECORD = struct.Struct("<HQ14s")   # marker + bits + extra
_UINT16 = struct.Struct("<H")


class ActsInfo:
    """Owns the 430-byte quest/waypoint/NPC block that follows the header."""

    def __init__(self, version: FormatVersion):
        self.version = version
        self.offset = 0
        self.quests_version = QUESTS_VERSION
        self.quests = bytearray(QUESTS_DATA_SIZE)
        self.waypoints_version = WAYPOINTS_VERSION
        self.waypoints = bytearray(
            b"".join(_WAYPOINT_RECORD.pack(WAYPOINT_RECORD_MARKER, 1 if d == 0 else 0, b"\x00" * 14)
                     for d in range(NUM_OF_DIFFICULTY))
        )
        self.npc = bytearray(NPC_DATA_SIZE)
        # bytes between sub-blocks in files that do not pack them tightly
        self._gap_waypoints = b""
        self._gap_npc = b""
        self.quests_data_corrected = False

    # -- codec -----------------------------------------------------------

    @classmethod
    def read(cls, image: bytes | memoryview, start: int, version: FormatVersion) -> "ActsInfo":
        """Locate and decode the segment at or after ``start`` in ``image``."""
        data = bytes(image)
        acts = cls(version)

        pos = data.find(QUESTS_MARKER, start)
        if pos < 0:
            raise D2sError(CharacterErrc.InvalidActsInfo, "quest marker not found")
        acts.offset = pos
        if data[pos + 8:pos + 10] != QUESTS_SIZE_MARKER:
            raise D2sError(CharacterErrc.InvalidActsInfo, f"bad quest size marker at {pos + 8}")
        quests_end = pos + QUESTS_HEADER_SIZE + QUESTS_DATA_SIZE
        if quests_end > len(data):
            raise D2sError(CharacterErrc.InvalidActsInfo, "quest data truncated")
        acts.quests_version = data[pos + 4:pos + 8]
        acts.quests = bytearray(data[pos + QUESTS_HEADER_SIZE:quests_end])

        wp = data.find(WAYPOINTS_MARKER, quests_end)
        if wp < 0:
            raise D2sError(CharacterErrc.InvalidActsInfo, "waypoint marker not found")
        if data[wp + 6:wp + 8] != WAYPOINTS_SIZE_MARKER:
            raise D2sError(CharacterErrc.InvalidActsInfo, f"bad waypoint size marker at {wp + 6}")
        wp_end = wp + WAYPOINTS_HEADER_SIZE + _WAYPOINT_RECORD.size * NUM_OF_DIFFICULTY
        if wp_end > len(data):
            raise D2sError(CharacterErrc.InvalidActsInfo, "waypoint data truncated")
        acts._gap_waypoints = data[quests_end:wp]
        acts.waypoints_version = data[wp + 2:wp + 6]
        acts.waypoints = bytearray(data[wp + WAYPOINTS_HEADER_SIZE:wp_end])

        npc = data.find(NPC_MARKER, wp_end)
        if npc < 0 or data[npc + 2:npc + 4] != NPC_SIZE_MARKER:
            raise D2sError(CharacterErrc.InvalidActsInfo, "NPC marker not found")
        npc_end = npc + 4 + NPC_DATA_SIZE
        if npc_end > len(data):
            raise D2sError(CharacterErrc.InvalidActsInfo, "NPC data truncated")
        acts._gap_npc = data[wp_end:npc]
        acts.npc = bytearray(data[npc + 4:npc_end])

        acts._correct_versions()
        logger.debug("Acts segment at %d, %d bytes", acts.offset, acts.byte_size)
        return acts

    def _correct_versions(self) -> None:
        if self.version >= FormatVersion.v107 and self.quests_version != QUESTS_VERSION:
            logger.warning("Quest block version %s normalized to %s",
                           self.quests_version.hex(), QUESTS_VERSION.hex())
            self.quests_version = QUESTS_VERSION
            self.quests_data_corrected = True
        if self.waypoints_version != WAYPOINTS_VERSION:
            logger.warning("Waypoint block version %s normalized to %s",
                           self.waypoints_version.hex(), WAYPOINTS_VERSION.hex())
            self.waypoints_version = WAYPOINTS_VERSION
            self.quests_data_corrected = True

    def to_bytes(self) -> bytes:
        return b"".join([
            QUESTS_MARKER, self.quests_version, QUESTS_SIZE_MARKER, bytes(self.quests),
            self._gap_waypoints,
            WAYPOINTS_MARKER, self.waypoints_version, WAYPOINTS_SIZE_MARKER, bytes(self.waypoints),
            self._gap_npc,
            NPC_MARKER, NPC_SIZE_MARKER, bytes(self.npc),
        ])

    def write(self, sink: bytearray) -> int:
        data = self.to_bytes()
        sink.extend(data)
        return len(data)

    @property
    def byte_size(self) -> int:
        return ACTS_SEGMENT_SIZE + len(self._gap_waypoints) + len(self._gap_npc)

    def contribute_checksum(self, state: ChecksumState) -> ChecksumState:
        return state.update(self.to_bytes())

    # -- quests ----------------------------------------------------------

    def _stride(self) -> int:
        return _QUEST_STRIDE if self.version >= FormatVersion.v107 else _QUEST_STRIDE_PRE_107

    def _quest_word_offset(self, difficulty: int, act: int, quest: int) -> Optional[int]:
        if not 0 <= difficulty < NUM_OF_DIFFICULTY:
            return None
        stride = self._stride()
        if act == Act.V:
            if self.version < FormatVersion.v107 or not 0 <= quest < NUM_OF_QUESTS:
                return None
            word = _ACT_V_QUEST_WORD + quest
        elif 0 <= act < Act.V:
            limit = NUM_OF_QUESTS_ACT_IV if act == Act.IV else NUM_OF_QUESTS
            if not 0 <= quest < limit:
                return None
            word = act * _WORDS_PER_ACT + 1 + quest
        else:
            return None
        return difficulty * stride + word * 2

    def get_quest_data(self, difficulty: int, act: int, quest: int) -> int:
        offset = self._quest_word_offset(difficulty, act, quest)
        if offset is None:
            return 0
        return _UINT16.unpack_from(self.quests, offset)[0]

    def set_quest_data(self, difficulty: int, act: int, quest: int, value: int) -> bool:
        offset = self._quest_word_offset(difficulty, act, quest)
        if offset is None:
            return False
        _UINT16.pack_into(self.quests, offset, value & 0xFFFF)
        return True

    def is_act_completed(self, difficulty: int, act: int) -> bool:
        if act == Act.V:
            return bool(self.get_quest_data(difficulty, act, NUM_OF_QUESTS - 1) & 0x0001)
        if not 0 <= act < Act.V or not 0 <= difficulty < NUM_OF_DIFFICULTY:
            return False
        stride = self._stride()
        # Act IV keeps its completed flag where a fourth quest would be
        word = act * _WORDS_PER_ACT + (1 + NUM_OF_QUESTS_ACT_IV if act == Act.IV else 7)
        return _UINT16.unpack_from(self.quests, difficulty * stride + word * 2)[0] != 0

    # -- waypoints -------------------------------------------------------

    def get_waypoints(self, difficulty: int) -> int:
        if not 0 <= difficulty < NUM_OF_DIFFICULTY:
            return 0
        return _WAYPOINT_RECORD.unpack_from(self.waypoints, difficulty * _WAYPOINT_RECORD.size)[1]

    def set_waypoints(self, difficulty: int, bits: int) -> bool:
        if not 0 <= difficulty < NUM_OF_DIFFICULTY:
            return False
        base = difficulty * _WAYPOINT_RECORD.size
        marker, _, extra = _WAYPOINT_RECORD.unpack_from(self.waypoints, base)
        _WAYPOINT_RECORD.pack_into(self.waypoints, base, marker, bits & 0xFFFFFFFFFFFFFFFF, extra)
        return True

    # -- npcs ------------------------------------------------------------

    def npc_introductions(self, difficulty: int) -> bytes:
        return bytes(self.npc[difficulty * 8:difficulty * 8 + 8])

    def npc_congrats(self, difficulty: int) -> bytes:
        base = NUM_OF_DIFFICULTY * 8 + difficulty * 8
        return bytes(self.npc[base:base + 8])

    # -- conversion ------------------------------------------------------

    def copy_for_version(self, version: FormatVersion) -> "ActsInfo":
        """Separate copy re-targeted at ``version``; per-difficulty blocks move with the stride."""
        other = ActsInfo(version)
        other.waypoints = bytearray(self.waypoints)
        other.npc = bytearray(self.npc)
        other.quests_version = self.quests_version
        other.waypoints_version = self.waypoints_version
        if version == self.version:
            other.quests = bytearray(self.quests)
            return other

        src_stride = self._stride()
        dst_stride = other._stride()
        both_expansion_capable = min(version, self.version) >= FormatVersion.v107
        length = _QUEST_STRIDE if both_expansion_capable else 4 * _WORDS_PER_ACT * 2
        for diff in range(NUM_OF_DIFFICULTY):
            block = self.quests[diff * src_stride:diff * src_stride + length]
            other.quests[diff * dst_stride:diff * dst_stride + length] = block
        return other
