"""Typed header field access with the format's own consistency rules.

All reads and writes go straight to the header ByteBuffer through the
VersionTable; nothing is cached. The derived rules kept here are the ones the
game itself enforces:

* the title never exceeds the game-complete value and never trails the
  starting act/difficulty;
* ladder exists from 1.10, expansion from 1.07 (not 1.08);
* a hardcore character never carries the died flag;
* expansion-only classes and act V require an expansion character.
"""
from __future__ import annotations

import logging
import re
from typing import Optional

from d2scodec.d2s.buffer import ByteBuffer
from d2scodec.d2s.constants import (
    ACTS_PER_DIFFICULTY_CLASSIC,
    ACTS_PER_DIFFICULTY_EXPANSION,
    DEFAULT_CLASSIC_CLASS,
    DIFFICULTY_ACT_MASK,
    DIFFICULTY_ACTIVE_FLAG,
    EXPANSION_CLASSES,
    NAME_MAX_CHARS,
    NAME_MIN_CHARS,
    NO_SKILL,
    NUM_OF_DIFFICULTY,
    NUM_OF_SKILL_HOTKEYS,
    TITLE_CLASSIC_COMPLETE,
    TITLE_EXPANSION_COMPLETE,
    Act,
    CharClass,
    CharStatus,
    Difficulty,
)
from d2scodec.d2s.layout import VERSION_TABLE, FieldDescriptor, VersionTable
from d2scodec.d2s.versions import (
    FormatVersion,
    supports_expansion,
    supports_ladder,
)

logger = logging.getLogger(__name__)

_NAME_SEPARATORS = "-_"
_ASCII_NAME_RE = re.compile(r"^[A-Za-z]+([-_][A-Za-z]+)?$")


def is_legal_name(name: str, utf8: bool = False) -> bool:
    """2-15 letters with at most one inner '-' or '_'."""
    if not NAME_MIN_CHARS <= len(name) <= NAME_MAX_CHARS:
        return False
    if not utf8:
        return _ASCII_NAME_RE.match(name) is not None
    if name[0] in _NAME_SEPARATORS or name[-1] in _NAME_SEPARATORS:
        return False
    seps = sum(1 for ch in name if ch in _NAME_SEPARATORS)
    return seps <= 1 and all(ch.isalpha() or ch in _NAME_SEPARATORS for ch in name)


def sanitize_name(text: str, utf8: bool = False) -> str:
    """Reduce arbitrary text to a legal name, or '' if nothing usable remains."""
    out: list[str] = []
    seen_sep = False
    for ch in text:
        if ch in _NAME_SEPARATORS:
            if out and not seen_sep:
                out.append(ch)
                seen_sep = True
        elif ch.isalpha() and (utf8 or ch.isascii()):
            out.append(ch)
    name = "".join(out)[:NAME_MAX_CHARS].rstrip(_NAME_SEPARATORS)
    return name if is_legal_name(name, utf8) else ""


class FieldCodec:
    """Header accessors for one character, at one format version."""

    def __init__(self, buffer: ByteBuffer, version: FormatVersion,
                 table: VersionTable = VERSION_TABLE):
        self.buffer = buffer
        self.version = version
        self.table = table

    # -- raw placement -----------------------------------------------------

    def descriptor(self, name: str) -> Optional[FieldDescriptor]:
        return self.table.resolve(self.version, name)

    def has_field(self, name: str) -> bool:
        return self.descriptor(name) is not None

    def get_int(self, name: str, index: int = 0) -> int:
        desc = self.descriptor(name)
        if desc is None or not 0 <= index < desc.count:
            return 0
        offset = desc.offset + index * desc.width
        if not self.buffer.in_range(offset, desc.width):
            return int.from_bytes(desc.default, "little") if desc.default else 0
        return self.buffer.read_bits(offset, desc.width * 8)

    def set_int(self, name: str, value: int, index: int = 0) -> bool:
        desc = self.descriptor(name)
        if desc is None or not 0 <= index < desc.count:
            return False
        if value < 0 or value >= 1 << (desc.width * 8):
            return False
        return self.buffer.write_bytes(desc.offset + index * desc.width, desc.width, value)

    def get_raw(self, name: str) -> Optional[bytes]:
        desc = self.descriptor(name)
        if desc is None:
            return None
        if not self.buffer.in_range(desc.offset, desc.size):
            return (desc.default or b"\x00")[:desc.size].ljust(desc.size, b"\x00")
        return self.buffer.read_bytes(desc.offset, desc.size)

    def set_raw(self, name: str, data: bytes) -> bool:
        desc = self.descriptor(name)
        if desc is None or len(data) != desc.size:
            return False
        return self.buffer.write_raw(desc.offset, data)

    def write_defaults(self) -> None:
        """Seed every field that has a default (used for freshly built headers)."""
        for name, desc in self.table.fields_for(self.version):
            if desc.default is not None:
                self.buffer.write_raw(desc.offset, (desc.default * desc.count)[:desc.size])

    def write_fillers(self) -> None:
        for filler in self.table.fillers_for(self.version):
            self.buffer.write_raw(filler.offset, filler.data)

    # -- integrity fields --------------------------------------------------

    def get_file_size(self) -> int:
        return self.get_int("file_size")

    def set_file_size(self, size: int) -> bool:
        return self.set_int("file_size", size)

    def get_checksum(self) -> int:
        value = self.get_int("checksum")
        return value - 0x100000000 if value & 0x80000000 else value

    def set_checksum(self, value: int) -> bool:
        return self.set_int("checksum", value & 0xFFFFFFFF)

    # -- name --------------------------------------------------------------

    @property
    def utf8_names(self) -> bool:
        return self.version >= FormatVersion.v100R

    def get_name(self) -> Optional[str]:
        """Decoded name, or None if the stored bytes are not valid for this version."""
        raw = self.get_raw("name") or b""
        raw = raw.split(b"\x00", 1)[0]
        try:
            return raw.decode("utf-8") if self.utf8_names else raw.decode("latin-1")
        except UnicodeDecodeError:
            return None

    def set_name(self, name: str) -> bool:
        if not is_legal_name(name, self.utf8_names):
            logger.warning("Rejected character name %r", name)
            return False
        encoded = name.encode("utf-8" if self.utf8_names else "ascii")
        desc = self.descriptor("name")
        if len(encoded) >= desc.size:
            return False
        return self.set_raw("name", encoded.ljust(desc.size, b"\x00"))

    # -- status ------------------------------------------------------------

    def get_status(self) -> int:
        return self.get_int("status")

    def _set_status_bit(self, bit: CharStatus, flag: bool) -> bool:
        status = self.get_status()
        status = status | int(bit) if flag else status & ~int(bit)
        return self.set_int("status", status & 0xFF)

    def is_hardcore(self) -> bool:
        return bool(self.get_status() & CharStatus.HARDCORE)

    def is_dead(self) -> bool:
        return bool(self.get_status() & CharStatus.DIED)

    def is_expansion(self) -> bool:
        return bool(self.get_status() & CharStatus.EXPANSION)

    def is_ladder(self) -> bool:
        return bool(self.get_status() & CharStatus.LADDER)

    def set_is_hardcore(self, flag: bool) -> bool:
        if flag:
            self._set_status_bit(CharStatus.DIED, False)
        return self._set_status_bit(CharStatus.HARDCORE, flag)

    def set_is_dead(self, flag: bool) -> bool:
        if flag and self.is_hardcore():
            return False
        return self._set_status_bit(CharStatus.DIED, flag)

    def set_is_ladder(self, flag: bool) -> bool:
        if flag and not supports_ladder(self.version):
            return False
        return self._set_status_bit(CharStatus.LADDER, flag)

    def set_is_expansion(self, flag: bool) -> bool:
        if flag == self.is_expansion():
            return True
        if flag and not supports_expansion(self.version):
            return False

        title = self.get_title()
        if flag:
            done, rest = divmod(title, ACTS_PER_DIFFICULTY_CLASSIC)
            new_title = done * ACTS_PER_DIFFICULTY_EXPANSION + rest
        else:
            done, rest = divmod(title, ACTS_PER_DIFFICULTY_EXPANSION)
            new_title = done * ACTS_PER_DIFFICULTY_CLASSIC + min(rest, ACTS_PER_DIFFICULTY_CLASSIC - 1)
            self._demote_expansion_class()
            if self.get_starting_act() == Act.V:
                self._store_difficulty_and_act(self.get_difficulty_last_played(), Act.IV)

        self._set_status_bit(CharStatus.EXPANSION, flag)
        self.set_int("title", min(new_title, self.get_game_complete_title()))
        self._raise_title_to_progress()
        return True

    def apply_version_rules(self) -> None:
        """Drop status bits the current version cannot carry."""
        if not supports_ladder(self.version):
            self._set_status_bit(CharStatus.LADDER, False)
        if not supports_expansion(self.version):
            self.set_is_expansion(False)
        if self.is_hardcore():
            self._set_status_bit(CharStatus.DIED, False)

    def apply_progression_rules(self) -> None:
        """Cap the title at game complete and keep expansion classes off classic characters.

        Only header bytes written directly (JSON import) can break these; the
        setters already hold them.
        """
        complete = self.get_game_complete_title()
        if self.get_title() > complete:
            logger.info("Title %d exceeds game complete (%d); capped", self.get_title(), complete)
            self.set_int("title", complete)
        if not self.is_expansion():
            self._demote_expansion_class()

    def _demote_expansion_class(self) -> None:
        if self.get_class() in EXPANSION_CLASSES:
            logger.info("Class %s requires expansion; using %s",
                        CharClass(self.get_class()).name, DEFAULT_CLASSIC_CLASS.name)
            self.set_int("class", int(DEFAULT_CLASSIC_CLASS))

    # -- class / level -----------------------------------------------------

    def get_class(self) -> int:
        return self.get_int("class")

    def set_class(self, char_class: int) -> bool:
        try:
            char_class = CharClass(char_class)
        except ValueError:
            return False
        if char_class in EXPANSION_CLASSES and not self.is_expansion():
            return False
        return self.set_int("class", int(char_class))

    def get_display_level(self) -> int:
        return self.get_int("level")

    def mirror_level(self, level: int) -> bool:
        """Display level follows the stats level; no other path writes it."""
        return self.set_int("level", max(1, min(level, 0xFF)))

    # -- title and progression ---------------------------------------------

    @property
    def acts_per_difficulty(self) -> int:
        return ACTS_PER_DIFFICULTY_EXPANSION if self.is_expansion() else ACTS_PER_DIFFICULTY_CLASSIC

    def get_game_complete_title(self) -> int:
        return TITLE_EXPANSION_COMPLETE if self.is_expansion() else TITLE_CLASSIC_COMPLETE

    def get_title(self) -> int:
        return self.get_int("title")

    def get_starting_act_title(self) -> int:
        return int(self.get_difficulty_last_played()) * self.acts_per_difficulty + int(self.get_starting_act())

    def set_title(self, title: int) -> bool:
        if title < 0:
            return False
        title = min(title, self.get_game_complete_title())
        title = max(title, min(self.get_starting_act_title(), self.get_game_complete_title()))
        return self.set_int("title", title)

    def _raise_title_to_progress(self) -> None:
        implied = min(self.get_starting_act_title(), self.get_game_complete_title())
        if implied > self.get_title():
            self.set_int("title", implied)

    def set_difficulty_complete(self, difficulty: int) -> bool:
        if not 0 <= difficulty < NUM_OF_DIFFICULTY:
            return False
        target = min((difficulty + 1) * self.acts_per_difficulty, self.get_game_complete_title())
        if target > self.get_title():
            self.set_int("title", target)
        return True

    def is_game_complete(self) -> bool:
        return self.get_title() >= self.get_game_complete_title()

    def get_difficulty_last_played_bytes(self) -> bytes:
        """Three bytes, one per difficulty, 0x80|act on the last played one."""
        if self.version >= FormatVersion.v109:
            return self.get_raw("starting_act")
        packed = self.get_int("starting_act")
        difficulty = min(packed & 0x0F, NUM_OF_DIFFICULTY - 1)
        act = (packed >> 4) & DIFFICULTY_ACT_MASK
        out = bytearray(NUM_OF_DIFFICULTY)
        out[difficulty] = DIFFICULTY_ACTIVE_FLAG | act
        return bytes(out)

    def set_difficulty_last_played_bytes(self, data: bytes) -> bool:
        if len(data) != NUM_OF_DIFFICULTY:
            return False
        difficulty = Difficulty.Normal
        act = 0
        for i, value in enumerate(data):
            if value & DIFFICULTY_ACTIVE_FLAG:
                difficulty = Difficulty(i)
                act = value & DIFFICULTY_ACT_MASK
        if act > Act.V or (act == Act.V and not self.is_expansion()):
            return False
        self._store_difficulty_and_act(difficulty, Act(act))
        self._raise_title_to_progress()
        return True

    def get_difficulty_last_played(self) -> Difficulty:
        for i, value in enumerate(self.get_difficulty_last_played_bytes()):
            if value & DIFFICULTY_ACTIVE_FLAG:
                return Difficulty(i)
        return Difficulty.Normal

    def get_starting_act(self) -> Act:
        data = self.get_difficulty_last_played_bytes()
        act = data[self.get_difficulty_last_played()] & DIFFICULTY_ACT_MASK
        return Act(min(act, Act.V))

    def set_starting_act(self, act: int) -> bool:
        if not 0 <= act <= Act.V or (act == Act.V and not self.is_expansion()):
            return False
        self._store_difficulty_and_act(self.get_difficulty_last_played(), Act(act))
        self._raise_title_to_progress()
        return True

    def set_difficulty_last_played(self, difficulty: int) -> bool:
        if not 0 <= difficulty < NUM_OF_DIFFICULTY:
            return False
        self._store_difficulty_and_act(Difficulty(difficulty), self.get_starting_act())
        self._raise_title_to_progress()
        return True

    def _store_difficulty_and_act(self, difficulty: Difficulty, act: Act) -> None:
        if self.version >= FormatVersion.v109:
            out = bytearray(NUM_OF_DIFFICULTY)
            out[difficulty] = DIFFICULTY_ACTIVE_FLAG | act
            self.set_raw("starting_act", bytes(out))
        else:
            self.set_int("starting_act", (int(act) << 4) | int(difficulty))

    # -- skills ------------------------------------------------------------

    def _no_skill(self, name: str) -> int:
        return NO_SKILL[self.descriptor(name).width]

    def get_assigned_skill(self, slot: int) -> Optional[int]:
        """Skill id bound to a hotkey slot, or None when the slot is empty."""
        if not 0 <= slot < NUM_OF_SKILL_HOTKEYS:
            return None
        value = self.get_int("hotkeys", slot)
        return None if value == self._no_skill("hotkeys") else value

    def set_assigned_skill(self, slot: int, skill_id: Optional[int]) -> bool:
        if not 0 <= slot < NUM_OF_SKILL_HOTKEYS:
            return False
        no_skill = self._no_skill("hotkeys")
        if skill_id is None:
            skill_id = no_skill
        elif skill_id >= no_skill:
            return False
        return self.set_int("hotkeys", skill_id, slot)

    def get_assigned_skills(self) -> list[Optional[int]]:
        return [self.get_assigned_skill(i) for i in range(NUM_OF_SKILL_HOTKEYS)]

    def get_skill(self, name: str) -> Optional[int]:
        """``left_skill``, ``right_skill`` or a swap slot; None when the field is absent."""
        if not self.has_field(name):
            return None
        return self.get_int(name)

    def set_skill(self, name: str, skill_id: int) -> bool:
        if not self.has_field(name):
            return False
        return self.set_int(name, skill_id)
