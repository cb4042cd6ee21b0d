"""CharacterRecord: open, edit and save a Diablo II character file."""
from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from enum import Enum
from pathlib import Path
from typing import Optional

from d2scodec.config import (
    derive_aux_paths,
    derive_backup_path,
    derive_d2s_path,
    derive_named_path,
)
from d2scodec.d2s.buffer import ByteBuffer
from d2scodec.d2s.checksum import ChecksumState
from d2scodec.d2s.constants import (
    HEADER_MAGIC,
    MAX_FILE_SIZE,
    CharClass,
)
from d2scodec.d2s.errors import CharacterErrc, D2sError, error_message
from d2scodec.d2s.fields import FieldCodec, sanitize_name
from d2scodec.d2s.layout import VERSION_TABLE, header_length, min_segment_start
from d2scodec.d2s.versions import (
    LATEST_VERSION,
    FormatVersion,
    detect_version,
    supports_checksum,
    supports_expansion,
)
from d2scodec.export.json_export import apply_projection, export_json, to_projection
from d2scodec.reference import ReferenceData, default_reference_data
from d2scodec.sections.acts import ActsInfo
from d2scodec.sections.items import ItemInventory
from d2scodec.sections.stats import CharacterStats

logger = logging.getLogger(__name__)

_CHECKSUM_DESC = VERSION_TABLE.resolve(FormatVersion.v109, "checksum")
_CHECKSUM_SPAN = range(_CHECKSUM_DESC.offset, _CHECKSUM_DESC.end)


class RecordState(Enum):
    Closed = 0
    HeaderRead = 1
    BasicInfoRead = 2
    ActsRead = 3
    StatsRead = 4
    ItemsRead = 5       # fully open


class BackupPolicy(Enum):
    NoSave = 0
    SaveOnly = 1
    SaveWithBackup = 2
    BackupOnly = 3


class CharacterRecord:
    """One character: a header buffer plus the Acts, Stats and Items segments.

    The header ByteBuffer is the only storage for header fields; every getter
    and setter goes through ``self.fields`` (a FieldCodec) onto that buffer.
    Reference tables are injected, never global.
    """

    def __init__(self, reference: Optional[ReferenceData] = None):
        self.reference: ReferenceData = reference if reference is not None else default_reference_data()
        self._last_error: Optional[CharacterErrc] = None
        self._reset()

    def _reset(self) -> None:
        self.state = RecordState.Closed
        self.path: Optional[Path] = None
        self.version: Optional[FormatVersion] = None
        self.buffer = ByteBuffer()
        self._fields: Optional[FieldCodec] = None
        self.acts: Optional[ActsInfo] = None
        self.stats: Optional[CharacterStats] = None
        self.items: Optional[ItemInventory] = None

    # -- construction ------------------------------------------------------

    @classmethod
    def new(cls, version: FormatVersion = LATEST_VERSION, char_class: int = CharClass.Amazon,
            name: str = "Hero", expansion: bool = True,
            reference: Optional[ReferenceData] = None) -> "CharacterRecord":
        """A level 1 character held in memory only (no path until saved)."""
        record = cls(reference)
        record.initialize(version)
        fields = record.fields
        if expansion:
            fields.set_is_expansion(True)
        if not fields.set_class(char_class):
            fields.set_class(CharClass.Amazon)
        fields.set_name(name)
        return record

    def initialize(self, version: FormatVersion) -> None:
        """Reset to an empty, open character at ``version``."""
        self._reset()
        self.version = version
        self.buffer = ByteBuffer(bytes(header_length(version)))
        self._fields = FieldCodec(self.buffer, version)
        self._fields.write_defaults()
        self._fields.set_int("version", int(version))
        self._fields.write_fillers()
        self.acts = ActsInfo(version)
        self.stats = CharacterStats(version)
        self.items = ItemInventory(version)
        self._fields.mirror_level(self.stats.level)
        self.state = RecordState.ItemsRead

    # -- state -------------------------------------------------------------

    def is_open(self) -> bool:
        return self.state == RecordState.ItemsRead

    def _require_open(self) -> FieldCodec:
        if self._fields is None or not self.is_open():
            raise D2sError(CharacterErrc.InvalidHeader, "character is not open")
        return self._fields

    @property
    def fields(self) -> FieldCodec:
        return self._require_open()

    def get_last_error(self) -> Optional[CharacterErrc]:
        return self._last_error

    def get_last_error_message(self) -> str:
        return error_message(self._last_error)

    def _fail(self, code: CharacterErrc, detail: Optional[str] = None) -> bool:
        self.close()
        self._last_error = code
        logger.warning("%s%s", error_message(code), f" ({detail})" if detail else "")
        return False

    def close(self) -> None:
        self._reset()

    # -- reading -----------------------------------------------------------

    def open(self, path: Path | str, validate_checksum: bool = False) -> bool:
        """Load a .d2s file. A checksum mismatch is reported but only fatal when strict."""
        path = Path(path)
        if self.state != RecordState.Closed:
            self.close()
        self._last_error = None

        try:
            size = path.stat().st_size
            if size > MAX_FILE_SIZE:
                return self._fail(CharacterErrc.CannotOpenFile, f"{size} bytes exceeds {MAX_FILE_SIZE}")
            data = path.read_bytes()
        except OSError as exc:
            return self._fail(CharacterErrc.CannotOpenFile, str(exc))

        if not self._load(data, path):
            return False
        self.path = path
        return self._finish_load(validate_checksum)

    def load_bytes(self, data: bytes, path: Optional[Path] = None,
                   validate_checksum: bool = False) -> bool:
        """Same as ``open`` for an in-memory image."""
        if self.state != RecordState.Closed:
            self.close()
        self._last_error = None
        if not self._load(data, path):
            return False
        self.path = path
        return self._finish_load(validate_checksum)

    def _load(self, data: bytes, path: Optional[Path]) -> bool:
        image = memoryview(bytes(data))
        self.buffer = ByteBuffer()
        self.buffer.append(image)
        try:
            self._read_header()
            self._read_basic_info(path)
            self.acts = ActsInfo.read(image, min_segment_start(self.version), self.version)
            self.state = RecordState.ActsRead
            stats_start = self.acts.offset + self.acts.byte_size
            self.stats = CharacterStats.read(image, stats_start, self.version)
            self.state = RecordState.StatsRead
            self.items = ItemInventory.read(
                image, stats_start + self.stats.byte_size, self.version)
        except D2sError as exc:
            return self._fail(exc.code, exc.detail)

        # from here on the buffer holds the header region only
        self.buffer.truncate(self.acts.offset)
        self.state = RecordState.ItemsRead
        logger.debug("Opened %s: version %s, header %d bytes, acts %d, stats %d, items %d",
                     path, self.version.name, len(self.buffer), self.acts.byte_size,
                     self.stats.byte_size, self.items.byte_size)
        return True

    def _read_header(self) -> None:
        if len(self.buffer) < 8 or self.buffer.read_bytes(0, 4) != HEADER_MAGIC:
            raise D2sError(CharacterErrc.InvalidHeader, "bad magic")
        self.version = detect_version(self.buffer.read_uint(4, 4))
        self._fields = FieldCodec(self.buffer, self.version)
        self.state = RecordState.HeaderRead

    def _read_basic_info(self, path: Optional[Path]) -> None:
        fields = self._fields
        if fields.get_name() is None:
            fallback = sanitize_name(path.stem, fields.utf8_names) if path is not None else ""
            logger.warning("Stored name is not valid; using %r from the file name", fallback)
            if fallback:
                fields.set_name(fallback)
        self.state = RecordState.BasicInfoRead

    def _finish_load(self, validate_checksum: bool) -> bool:
        if not self._check_checksum(validate_checksum):
            return False
        self._fields.mirror_level(self.stats.level)
        return True

    def _check_checksum(self, validate_checksum: bool) -> bool:
        if not supports_checksum(self.version):
            return True
        stored = self._fields.get_checksum()
        computed = self.calculate_checksum()
        if stored == computed:
            return True
        if self.acts.quests_data_corrected:
            logger.info("Checksum mismatch ignored; quest data was corrected and is rewritten on save")
            return True
        logger.warning("Checksum mismatch: stored %08X, computed %08X",
                       stored & 0xFFFFFFFF, computed & 0xFFFFFFFF)
        if validate_checksum:
            return self._fail(CharacterErrc.InvalidChecksum)
        self._last_error = CharacterErrc.InvalidChecksum
        return True

    def calculate_checksum(self) -> int:
        """Checksum of the current image: header, then acts, stats and items."""
        if not supports_checksum(self.version):
            return 0
        state = ChecksumState()
        state.update(self.buffer.view(), skip=_CHECKSUM_SPAN)
        self.acts.contribute_checksum(state)
        self.stats.contribute_checksum(state)
        self.items.contribute_checksum(state)
        return state.value

    # -- JSON --------------------------------------------------------------

    def open_json(self, path: Path | str, validate_checksum: bool = False) -> bool:
        path = Path(path)
        if self.state != RecordState.Closed:
            self.close()
        self._last_error = None
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            return self._fail(CharacterErrc.CannotOpenFile, str(exc))
        try:
            data = json.loads(text)
        except ValueError as exc:
            return self._fail(CharacterErrc.InvalidHeader, f"malformed JSON: {exc}")
        if not self.load_projection(data, validate_checksum=validate_checksum):
            return False
        # saving writes the binary file beside the JSON
        self.path = derive_d2s_path(path)
        return True

    def load_projection(self, data: dict, version: Optional[FormatVersion] = None,
                        validate_checksum: bool = False) -> bool:
        """Rebuild this record from either JSON shape, optionally at another version."""
        if self.state != RecordState.Closed:
            self.close()
        try:
            stored_checksum = apply_projection(self, data, version)
        except D2sError as exc:
            return self._fail(exc.code, exc.detail)
        self.refresh_integrity()
        if (validate_checksum and stored_checksum is not None
                and stored_checksum != self._fields.get_checksum()):
            return self._fail(CharacterErrc.InvalidChecksum)
        return True

    def to_json(self, serialized: bool = False) -> str:
        return export_json(self, serialized)

    def to_projection(self, serialized: bool = False) -> dict:
        return to_projection(self, serialized)

    # -- writing -----------------------------------------------------------

    def refresh_integrity(self) -> None:
        """Normalize derived header bytes, then patch file size and checksum."""
        fields = self._fields
        fields.write_fillers()
        fields.apply_version_rules()
        fields.mirror_level(self.stats.level)
        if supports_checksum(self.version):
            total = len(self.buffer) + self.acts.byte_size + self.stats.byte_size + self.items.byte_size
            fields.set_file_size(total)
            fields.set_checksum(0)
            fields.set_checksum(self.calculate_checksum())

    def to_bytes(self) -> bytes:
        """Assemble the complete file image: header, acts, stats, items."""
        self._require_open()
        self.refresh_integrity()
        sink = bytearray(self.buffer.to_bytes())
        self.acts.write(sink)
        self.stats.write(sink)
        self.items.write(sink)
        self.acts.quests_data_corrected = False
        return bytes(sink)

    def _write_file(self, target: Path, data: bytes) -> None:
        """Temp file in the target directory, then an atomic replace."""
        fd, tmp_name = tempfile.mkstemp(prefix=".d2s-", suffix=".tmp", dir=target.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, target)
        except OSError:
            if os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise

    def _backup(self, path: Path) -> Optional[Path]:
        """Best-effort copy of ``path``; failures are logged and ignored."""
        if not path.exists():
            return None
        backup = derive_backup_path(path)
        try:
            shutil.copy2(path, backup)
        except OSError as exc:
            logger.warning("Could not back up %s: %s", path, exc)
            return None
        logger.info("Backed up %s to %s", path.name, backup.name)
        return backup

    def save(self, backup: bool = False) -> bool:
        """Write back to ``self.path``, renaming files to match the character name.

        A rename never replaces another character's file: if the target name is
        taken the save fails with ``FileRenameError`` and nothing is written.
        """
        if not self.is_open() or self.path is None:
            self._last_error = CharacterErrc.NoSavePath
            logger.error("%s", error_message(CharacterErrc.NoSavePath))
            return False
        self._last_error = None
        data = self.to_bytes()

        source = self.path
        name = self._fields.get_name()
        target = source
        if name and name != source.stem:
            target = derive_named_path(source, name)
            if target.exists() and not (source.exists() and target.samefile(source)):
                self._last_error = CharacterErrc.FileRenameError
                logger.error("Cannot rename %s: %s already exists", source.name, target.name)
                return False

        if backup:
            self._backup(source)
        try:
            self._write_file(target, data)
        except OSError as exc:
            self._last_error = CharacterErrc.FileRenameError
            logger.error("Could not write %s: %s", target, exc)
            return False

        if target != source:
            aux_files = derive_aux_paths(source)
            try:
                if source.exists():
                    source.unlink()
            except OSError as exc:
                self._last_error = CharacterErrc.FileRenameError
                logger.error("Could not remove %s after rename: %s", source, exc)
                return False
            self.path = target
            logger.info("Renamed %s to %s", source.name, target.name)
            for aux in aux_files:
                try:
                    os.replace(aux, aux.with_name(target.stem + aux.suffix))
                except OSError as exc:
                    self._last_error = CharacterErrc.AuxFileRenameError
                    logger.error("Could not rename %s: %s", aux, exc)
            if self._last_error is not None:
                return False

        logger.info("Saved %s (%d bytes)", self.path, len(data))
        return True

    def _save_with_policy(self, path: Path, data_fn, policy: BackupPolicy) -> bool:
        if policy == BackupPolicy.NoSave:
            return True
        if policy in (BackupPolicy.SaveWithBackup, BackupPolicy.BackupOnly):
            self._backup(path)
        if policy == BackupPolicy.BackupOnly:
            return True
        try:
            self._write_file(path, data_fn())
        except OSError as exc:
            self._last_error = CharacterErrc.FileRenameError
            logger.error("Could not write %s: %s", path, exc)
            return False
        logger.info("Saved %s", path)
        return True

    def save_as_d2s(self, path: Path | str, backup_policy: BackupPolicy = BackupPolicy.SaveOnly) -> bool:
        if not self.is_open():
            self._last_error = CharacterErrc.NoSavePath
            return False
        self._last_error = None
        path = Path(path)
        if not self._save_with_policy(path, self.to_bytes, backup_policy):
            return False
        if backup_policy in (BackupPolicy.SaveOnly, BackupPolicy.SaveWithBackup):
            self.path = path
        return True

    def save_as_json(self, path: Path | str, serialized: bool = False,
                     backup_policy: BackupPolicy = BackupPolicy.SaveOnly) -> bool:
        if not self.is_open():
            self._last_error = CharacterErrc.NoSavePath
            return False
        self._last_error = None
        path = Path(path)
        return self._save_with_policy(
            path, lambda: export_json(self, serialized).encode("utf-8"), backup_policy)

    def converted(self, version: FormatVersion) -> "CharacterRecord":
        """A separate record holding this character re-encoded at ``version``."""
        other = CharacterRecord(self.reference)
        if not other.load_projection(to_projection(self, serialized=True), version=version):
            raise D2sError(other.get_last_error() or CharacterErrc.InvalidHeader,
                           f"conversion to {version.name} failed")
        other.path = self.path
        return other

    def save_as_version(self, path: Path | str, version: FormatVersion,
                        backup_policy: BackupPolicy = BackupPolicy.SaveOnly) -> bool:
        if not self.is_open():
            self._last_error = CharacterErrc.NoSavePath
            return False
        self._last_error = None
        try:
            temp = self.converted(version)
        except D2sError as exc:
            self._last_error = exc.code
            return False
        ok = temp.save_as_d2s(path, backup_policy)
        if not ok:
            self._last_error = temp.get_last_error()
        return ok

    def set_version(self, version: FormatVersion) -> bool:
        """Re-encode in memory at ``version``, applying that version's status rules."""
        if not self.is_open():
            return False
        if version == self.version:
            return True
        try:
            other = self.converted(version)
        except D2sError as exc:
            self._last_error = exc.code
            return False
        self.version = other.version
        self.buffer = other.buffer
        self._fields = other._fields
        self.acts, self.stats, self.items = other.acts, other.stats, other.items
        return True

    # -- accessors ---------------------------------------------------------

    def get_version(self) -> FormatVersion:
        self._require_open()
        return self.version

    def get_name(self) -> str:
        return self.fields.get_name() or ""

    def set_name(self, name: str) -> bool:
        return self.is_open() and self.fields.set_name(name)

    def get_class(self) -> CharClass:
        return CharClass(self.fields.get_class())

    def set_class(self, char_class: int) -> bool:
        return self.is_open() and self.fields.set_class(char_class)

    def get_class_name(self) -> str:
        return self.reference.class_name(self.fields.get_class())

    def get_status(self) -> int:
        return self.fields.get_status()

    def is_hardcore_character(self) -> bool:
        return self.fields.is_hardcore()

    def set_is_hardcore_character(self, flag: bool) -> bool:
        return self.is_open() and self.fields.set_is_hardcore(flag)

    def is_dead_character(self) -> bool:
        return self.fields.is_dead()

    def set_is_dead_character(self, flag: bool) -> bool:
        return self.is_open() and self.fields.set_is_dead(flag)

    def is_expansion_character(self) -> bool:
        return self.fields.is_expansion()

    def set_is_expansion_character(self, flag: bool) -> bool:
        return self.is_open() and self.fields.set_is_expansion(flag)

    def is_ladder_character(self) -> bool:
        return self.fields.is_ladder()

    def set_is_ladder_character(self, flag: bool) -> bool:
        return self.is_open() and self.fields.set_is_ladder(flag)

    def get_title(self) -> int:
        return self.fields.get_title()

    def set_title(self, title: int) -> bool:
        return self.is_open() and self.fields.set_title(title)

    def get_title_name(self) -> str:
        f = self.fields
        return self.reference.title_name(f.get_title(), f.get_class(), f.is_hardcore(), f.is_expansion())

    def get_game_complete_title(self) -> int:
        return self.fields.get_game_complete_title()

    def get_starting_act_title(self) -> int:
        return self.fields.get_starting_act_title()

    def is_game_complete(self) -> bool:
        return self.fields.is_game_complete()

    def get_difficulty_last_played_bytes(self) -> bytes:
        return self.fields.get_difficulty_last_played_bytes()

    def set_difficulty_last_played_bytes(self, data: bytes) -> bool:
        return self.is_open() and self.fields.set_difficulty_last_played_bytes(data)

    def get_difficulty_last_played(self) -> int:
        return self.fields.get_difficulty_last_played()

    def set_difficulty_last_played(self, difficulty: int) -> bool:
        return self.is_open() and self.fields.set_difficulty_last_played(difficulty)

    def get_starting_act(self) -> int:
        return self.fields.get_starting_act()

    def set_starting_act(self, act: int) -> bool:
        return self.is_open() and self.fields.set_starting_act(act)

    def set_difficulty_complete(self, difficulty: int) -> bool:
        return self.is_open() and self.fields.set_difficulty_complete(difficulty)

    def get_display_level(self) -> int:
        return self.fields.get_display_level()

    def get_level(self) -> int:
        self._require_open()
        return self.stats.level

    def get_stat(self, name: str) -> int:
        self._require_open()
        return self.stats.get_stat(name)

    def set_stat(self, name: str, value: int) -> bool:
        if not self.is_open() or not self.stats.set_stat(name, value):
            return False
        if name == "level":
            self._fields.mirror_level(self.stats.level)
        return True

    def get_checksum_bytes(self) -> int:
        """Stored checksum (signed), or 0 for versions without one."""
        return self.fields.get_checksum()

    def set_checksum_bytes(self, value: int) -> bool:
        return self.is_open() and self.fields.set_checksum(value)

    def get_file_size(self) -> int:
        return self.fields.get_file_size()

    def get_assigned_skills(self) -> list[Optional[int]]:
        return self.fields.get_assigned_skills()

    def set_assigned_skill(self, slot: int, skill_id: Optional[int]) -> bool:
        return self.is_open() and self.fields.set_assigned_skill(slot, skill_id)

    def get_bound_skill(self, slot: str) -> Optional[int]:
        """Skill on ``left_skill``, ``right_skill`` or a swap slot; None when the version lacks it."""
        return self.fields.get_skill(slot)

    def set_bound_skill(self, slot: str, skill_id: int) -> bool:
        return self.is_open() and self.fields.set_skill(slot, skill_id)

    def can_be_expansion(self) -> bool:
        return supports_expansion(self.get_version())

    def get_skills(self) -> list[int]:
        self._require_open()
        return self.stats.get_skills()

    def set_skill(self, index: int, points: int) -> bool:
        return self.is_open() and self.stats.set_skill(index, points)

    # -- mercenary (1.09+) -------------------------------------------------

    def get_merc_id(self) -> int:
        return self.fields.get_int("merc_id")

    def set_merc_id(self, merc_id: int) -> bool:
        return self.is_open() and self.fields.set_int("merc_id", merc_id)

    def get_merc_name_id(self) -> int:
        return self.fields.get_int("merc_name_id")

    def set_merc_name_id(self, name_id: int) -> bool:
        return self.is_open() and self.fields.set_int("merc_name_id", name_id)

    def get_merc_type(self) -> int:
        return self.fields.get_int("merc_type")

    def set_merc_type(self, merc_type: int) -> bool:
        return self.is_open() and self.fields.set_int("merc_type", merc_type)

    def get_merc_experience(self) -> int:
        return self.fields.get_int("merc_experience")

    def set_merc_experience(self, experience: int) -> bool:
        return self.is_open() and self.fields.set_int("merc_experience", experience)

    def is_merc_dead(self) -> bool:
        return self.fields.get_int("merc_dead") != 0

    def set_is_merc_dead(self, flag: bool) -> bool:
        return self.is_open() and self.fields.set_int("merc_dead", 1 if flag else 0)

    # -- acts and items ----------------------------------------------------

    def get_quest_data(self, difficulty: int, act: int, quest: int) -> int:
        self._require_open()
        return self.acts.get_quest_data(difficulty, act, quest)

    def set_quest_data(self, difficulty: int, act: int, quest: int, value: int) -> bool:
        return self.is_open() and self.acts.set_quest_data(difficulty, act, quest, value)

    def is_act_completed(self, difficulty: int, act: int) -> bool:
        self._require_open()
        return self.acts.is_act_completed(difficulty, act)

    def get_waypoints(self, difficulty: int) -> int:
        self._require_open()
        return self.acts.get_waypoints(difficulty)

    def set_waypoints(self, difficulty: int, bits: int) -> bool:
        return self.is_open() and self.acts.set_waypoints(difficulty, bits)

    def get_item_count(self) -> int:
        self._require_open()
        return self.items.item_count
