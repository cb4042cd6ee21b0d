"""Export and import characters as JSON.

Two shapes are supported. The compact shape keeps everything header-related
under a lower-case ``header`` object, the way community save editors lay it
out. The serialized shape uses PascalCase keys, carries the raw status byte
next to the named flags and nests attributes and skills with their segment
markers. Fields the character's version does not have are left out of either
shape, never written as null.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

from d2scodec.d2s.checksum import to_signed32
from d2scodec.d2s.constants import (
    HEADER_MAGIC,
    NUM_OF_DIFFICULTY,
    NUM_OF_SKILL_HOTKEYS,
    NUM_OF_SKILLS,
    CharClass,
    CharStatus,
    Difficulty,
)
from d2scodec.d2s.errors import CharacterErrc, D2sError
from d2scodec.d2s.fields import sanitize_name
from d2scodec.d2s.versions import FormatVersion, detect_version
from d2scodec.sections.acts import ActsInfo
from d2scodec.sections.items import ItemInventory
from d2scodec.sections.stats import (
    FIXED_POINT_STATS,
    SKILLS_MARKER,
    STAT_IDS,
    STAT_NAMES,
    STATS_MARKER,
    CharacterStats,
)

if TYPE_CHECKING:
    from d2scodec.character import CharacterRecord

logger = logging.getLogger(__name__)

COMPACT_ROOT = "header"
SERIALIZED_ROOT = "Header"

# header field -> (compact key, serialized key); only written when the version has the field
_SCALARS: tuple[tuple[str, str, str], ...] = (
    ("weapon_set", "active_arms", "ActiveWeapon"),
    ("title", "progression", "Progression"),
    ("created", "created", "Created"),
    ("last_played", "last_played", "LastPlayed"),
    ("left_skill", "left_skill", "LeftSkill"),
    ("right_skill", "right_skill", "RightSkill"),
    ("left_swap_skill", "left_swap_skill", "LeftSwapSkill"),
    ("right_swap_skill", "right_swap_skill", "RightSwapSkill"),
    ("map_id", "map_id", "MapId"),
)

# compact keys sit in "header", serialized keys in "Mercenary"
_MERC: tuple[tuple[str, str, str], ...] = (
    ("merc_dead", "dead_merc", "IsDead"),
    ("merc_id", "merc_id", "Id"),
    ("merc_name_id", "merc_name_id", "NameId"),
    ("merc_type", "merc_type", "Type"),
    ("merc_experience", "merc_experience", "Experience"),
)

_COMPACT_STATUS = (
    ("expansion", CharStatus.EXPANSION),
    ("died", CharStatus.DIED),
    ("hardcore", CharStatus.HARDCORE),
    ("ladder", CharStatus.LADDER),
)

_SERIALIZED_STATUS = (
    ("IsExpansion", CharStatus.EXPANSION),
    ("IsDead", CharStatus.DIED),
    ("IsHardcore", CharStatus.HARDCORE),
    ("IsLadder", CharStatus.LADDER),
)

_SERIALIZED_STAT_NAMES: dict[str, str] = dict(zip(STAT_NAMES, (
    "strength", "energy", "dexterity", "vitality", "statpts", "newskills",
    "hitpoints", "maxhp", "mana", "maxmana", "stamina", "maxstamina",
    "level", "experience", "gold", "goldbank",
)))
_STAT_FROM_SERIALIZED = {v: k for k, v in _SERIALIZED_STAT_NAMES.items()}


@dataclass(slots=True)
class _Snapshot:
    """Shape-independent view of one character, in file units."""
    version: int
    name: str
    status: int
    class_id: int
    class_name: str = ""
    level: int = 1
    file_size: Optional[int] = None
    checksum: Optional[int] = None
    scalars: dict[str, int] = field(default_factory=dict)
    hotkeys: list[Optional[int]] = field(default_factory=list)
    appearance: bytes = b""
    d2r_appearance: Optional[bytes] = None
    difficulty: bytes = bytes(NUM_OF_DIFFICULTY)
    stats: dict[str, int] = field(default_factory=dict)     # raw values by stat name
    skills: list[int] = field(default_factory=list)
    quests_version: bytes = b""
    quests: bytes = b""
    waypoints_version: bytes = b""
    waypoints: bytes = b""
    npc: bytes = b""
    items: bytes = b""


# -- export ------------------------------------------------------------------


def _snapshot(record: CharacterRecord) -> _Snapshot:
    fields = record.fields
    record.refresh_integrity()
    snap = _Snapshot(
        version=int(record.version),
        name=record.get_name(),
        status=fields.get_status(),
        class_id=fields.get_class(),
        class_name=record.get_class_name(),
        level=fields.get_display_level(),
    )
    if fields.has_field("checksum"):
        snap.file_size = fields.get_file_size()
        snap.checksum = fields.get_checksum()
    for name, _, _ in _SCALARS + _MERC:
        if fields.has_field(name):
            snap.scalars[name] = fields.get_int(name)
    snap.hotkeys = fields.get_assigned_skills()
    snap.appearance = fields.get_raw("appearance")
    if fields.has_field("d2r_appearance"):
        snap.d2r_appearance = fields.get_raw("d2r_appearance")
    snap.difficulty = fields.get_difficulty_last_played_bytes()

    snap.stats = {name: record.stats.get_raw_value(name) for name in STAT_NAMES}
    snap.skills = record.stats.get_skills()
    acts = record.acts
    snap.quests_version = bytes(acts.quests_version)
    snap.quests = bytes(acts.quests)
    snap.waypoints_version = bytes(acts.waypoints_version)
    snap.waypoints = bytes(acts.waypoints)
    snap.npc = bytes(acts.npc)
    snap.items = record.items.data
    return snap


def _compact_stat(name: str, raw: int) -> int | float:
    if STAT_IDS[name] in FIXED_POINT_STATS:
        return raw / 256 if raw & 0xFF else raw >> 8
    return raw


def _to_compact(snap: _Snapshot) -> dict[str, Any]:
    header: dict[str, Any] = {
        "identifier": HEADER_MAGIC.hex(),
        "version": snap.version,
    }
    if snap.checksum is not None:
        header["filesize"] = snap.file_size
        header["checksum"] = f"{snap.checksum & 0xFFFFFFFF:08x}"
    header["name"] = snap.name
    header["status"] = {key: bool(snap.status & bit) for key, bit in _COMPACT_STATUS}
    header["class"] = snap.class_name
    header["class_id"] = snap.class_id
    header["level"] = snap.level
    for name, key, _ in _SCALARS + _MERC:
        if name in snap.scalars:
            header[key] = snap.scalars[name]
    header["assigned_skills"] = list(snap.hotkeys)
    header["menu_appearance"] = snap.appearance.hex()
    if snap.d2r_appearance is not None:
        header["d2r_menu_appearance"] = snap.d2r_appearance.hex()
    header["difficulty"] = {d.name: value for d, value in zip(Difficulty, snap.difficulty)}

    return {
        COMPACT_ROOT: header,
        "attributes": {name: _compact_stat(name, raw) for name, raw in snap.stats.items()},
        "skills": list(snap.skills),
        "acts": {
            "quests_version": snap.quests_version.hex(),
            "quests": snap.quests.hex(),
            "waypoints_version": snap.waypoints_version.hex(),
            "waypoints": snap.waypoints.hex(),
            "npcs": snap.npc.hex(),
        },
        "items": {
            "count": int.from_bytes(snap.items[2:4], "little"),
            "data": snap.items.hex(),
        },
    }


def _to_serialized(snap: _Snapshot) -> dict[str, Any]:
    header: dict[str, Any] = {"Magic": HEADER_MAGIC.hex().upper(), "Version": snap.version}
    if snap.checksum is not None:
        header["Filesize"] = snap.file_size
        header["Checksum"] = snap.checksum & 0xFFFFFFFF

    out: dict[str, Any] = {SERIALIZED_ROOT: header, "Name": snap.name}
    status: dict[str, Any] = {"Flags": snap.status}
    status.update({key: bool(snap.status & bit) for key, bit in _SERIALIZED_STATUS})
    out["Status"] = status
    out["ClassId"] = snap.class_id
    out["Class"] = snap.class_name
    out["Level"] = snap.level
    for name, _, key in _SCALARS:
        if name in snap.scalars:
            out[key] = snap.scalars[name]
    out["AssignedSkills"] = list(snap.hotkeys)
    out["Appearances"] = snap.appearance.hex()
    if snap.d2r_appearance is not None:
        out["D2RAppearances"] = snap.d2r_appearance.hex()
    out["Location"] = {d.name: value for d, value in zip(Difficulty, snap.difficulty)}
    merc = {key: snap.scalars[name] for name, _, key in _MERC if name in snap.scalars}
    if merc:
        out["Mercenary"] = merc

    out["Attributes"] = {
        "Header": STATS_MARKER.decode("ascii"),
        "Stats": {_SERIALIZED_STAT_NAMES[name]: raw for name, raw in snap.stats.items()},
    }
    out["ClassSkills"] = {"Header": SKILLS_MARKER.decode("ascii"), "Skills": list(snap.skills)}
    out["Acts"] = {
        "QuestsVersion": snap.quests_version.hex(),
        "Quests": snap.quests.hex(),
        "WaypointsVersion": snap.waypoints_version.hex(),
        "Waypoints": snap.waypoints.hex(),
        "Npcs": snap.npc.hex(),
    }
    out["Items"] = {"Count": int.from_bytes(snap.items[2:4], "little"), "Data": snap.items.hex()}
    return out


def to_projection(record: CharacterRecord, serialized: bool = False) -> dict[str, Any]:
    """Build the JSON-ready dict for ``record`` in the requested shape."""
    snap = _snapshot(record)
    return _to_serialized(snap) if serialized else _to_compact(snap)


def export_json(record: CharacterRecord, serialized: bool = False) -> str:
    """Export a character as JSON string."""
    return json.dumps(to_projection(record, serialized), indent=2)


# -- import ------------------------------------------------------------------


def _parse_checksum(value: Any) -> int:
    if isinstance(value, str):
        return to_signed32(int(value, 16))
    return to_signed32(int(value))


def _status_from(flags: dict[str, Any], names: tuple[tuple[str, CharStatus], ...]) -> int:
    status = 0
    for key, bit in names:
        if flags.get(key):
            status |= int(bit)
    return status


def _difficulty_from(data: dict[str, Any]) -> bytes:
    return bytes(int(data.get(d.name, 0)) & 0xFF for d in Difficulty)


def _hotkeys_from(values: list[Any]) -> list[Optional[int]]:
    return [None if v is None else int(v) for v in values]


def _from_compact(data: dict[str, Any]) -> _Snapshot:
    header = data[COMPACT_ROOT]
    snap = _Snapshot(
        version=int(header["version"]),
        name=str(header["name"]),
        status=_status_from(header.get("status", {}), _COMPACT_STATUS),
        class_id=int(header["class_id"]),
        level=int(header.get("level", 1)),
    )
    if "checksum" in header:
        snap.checksum = _parse_checksum(header["checksum"])
        snap.file_size = int(header.get("filesize", 0))
    for name, key, _ in _SCALARS + _MERC:
        if key in header:
            snap.scalars[name] = int(header[key])
    snap.hotkeys = _hotkeys_from(header.get("assigned_skills", []))
    snap.appearance = bytes.fromhex(header["menu_appearance"])
    if "d2r_menu_appearance" in header:
        snap.d2r_appearance = bytes.fromhex(header["d2r_menu_appearance"])
    snap.difficulty = _difficulty_from(header.get("difficulty", {}))

    for name, value in data.get("attributes", {}).items():
        if name not in STAT_IDS:
            raise D2sError(CharacterErrc.InvalidCharStats, f"unknown attribute {name!r}")
        if STAT_IDS[name] in FIXED_POINT_STATS:
            snap.stats[name] = int(round(float(value) * 256))
        else:
            snap.stats[name] = int(value)
    snap.skills = [int(v) for v in data.get("skills", [])]

    acts = data["acts"]
    snap.quests_version = bytes.fromhex(acts["quests_version"])
    snap.quests = bytes.fromhex(acts["quests"])
    snap.waypoints_version = bytes.fromhex(acts["waypoints_version"])
    snap.waypoints = bytes.fromhex(acts["waypoints"])
    snap.npc = bytes.fromhex(acts["npcs"])
    snap.items = bytes.fromhex(data["items"]["data"])
    return snap


def _from_serialized(data: dict[str, Any]) -> _Snapshot:
    header = data[SERIALIZED_ROOT]
    status_data = data.get("Status", {})
    if "Flags" in status_data:
        status = int(status_data["Flags"])
    else:
        status = _status_from(status_data, _SERIALIZED_STATUS)
    snap = _Snapshot(
        version=int(header["Version"]),
        name=str(data["Name"]),
        status=status,
        class_id=int(data["ClassId"]),
        level=int(data.get("Level", 1)),
    )
    if "Checksum" in header:
        snap.checksum = _parse_checksum(header["Checksum"])
        snap.file_size = int(header.get("Filesize", 0))
    for name, _, key in _SCALARS:
        if key in data:
            snap.scalars[name] = int(data[key])
    for name, _, key in _MERC:
        if key in data.get("Mercenary", {}):
            snap.scalars[name] = int(data["Mercenary"][key])
    snap.hotkeys = _hotkeys_from(data.get("AssignedSkills", []))
    snap.appearance = bytes.fromhex(data["Appearances"])
    if "D2RAppearances" in data:
        snap.d2r_appearance = bytes.fromhex(data["D2RAppearances"])
    snap.difficulty = _difficulty_from(data.get("Location", {}))

    for key, value in data.get("Attributes", {}).get("Stats", {}).items():
        name = _STAT_FROM_SERIALIZED.get(key)
        if name is None:
            raise D2sError(CharacterErrc.InvalidCharStats, f"unknown attribute {key!r}")
        snap.stats[name] = int(value)
    snap.skills = [int(v) for v in data.get("ClassSkills", {}).get("Skills", [])]

    acts = data["Acts"]
    snap.quests_version = bytes.fromhex(acts["QuestsVersion"])
    snap.quests = bytes.fromhex(acts["Quests"])
    snap.waypoints_version = bytes.fromhex(acts["WaypointsVersion"])
    snap.waypoints = bytes.fromhex(acts["Waypoints"])
    snap.npc = bytes.fromhex(acts["Npcs"])
    snap.items = bytes.fromhex(data["Items"]["Data"])
    return snap


def _build_acts(snap: _Snapshot, source: FormatVersion) -> ActsInfo:
    acts = ActsInfo(source)
    if (len(snap.quests_version) != len(acts.quests_version)
            or len(snap.quests) != len(acts.quests)
            or len(snap.waypoints_version) != len(acts.waypoints_version)
            or len(snap.waypoints) != len(acts.waypoints)
            or len(snap.npc) != len(acts.npc)):
        raise D2sError(CharacterErrc.InvalidActsInfo, "acts data has the wrong length")
    acts.quests_version = snap.quests_version
    acts.quests = bytearray(snap.quests)
    acts.waypoints_version = snap.waypoints_version
    acts.waypoints = bytearray(snap.waypoints)
    acts.npc = bytearray(snap.npc)
    return acts


def _build_stats(snap: _Snapshot, target: FormatVersion) -> CharacterStats:
    stats = CharacterStats(target)
    if "level" not in snap.stats:
        stats.set_raw_value("level", max(1, snap.level))
    for name in STAT_NAMES:
        if name in snap.stats and not stats.set_raw_value(name, snap.stats[name]):
            raise D2sError(CharacterErrc.InvalidCharStats, f"bad value for {name}")
    if len(snap.skills) > NUM_OF_SKILLS:
        raise D2sError(CharacterErrc.InvalidCharSkills, f"{len(snap.skills)} class skills")
    for index, points in enumerate(snap.skills):
        if not stats.set_skill(index, points):
            raise D2sError(CharacterErrc.InvalidCharSkills, f"bad points for skill {index}")
    return stats


def _apply(record: CharacterRecord, snap: _Snapshot,
           version: Optional[FormatVersion]) -> Optional[int]:
    source = detect_version(snap.version)
    target = source if version is None else version
    try:
        CharClass(snap.class_id)
    except ValueError:
        raise D2sError(CharacterErrc.InvalidHeader, f"unknown class {snap.class_id}") from None

    record.initialize(target)
    fields = record.fields
    # raw status first; the version's legality rules run once everything is in place
    fields.set_int("status", snap.status & 0xFF)
    fields.set_int("class", snap.class_id)
    if not fields.set_name(snap.name):
        fallback = sanitize_name(snap.name, fields.utf8_names)
        if not fallback or not fields.set_name(fallback):
            raise D2sError(CharacterErrc.InvalidHeader, f"illegal name {snap.name!r}")
    for name, value in snap.scalars.items():
        if fields.has_field(name) and not fields.set_int(name, value):
            logger.debug("%s=%d does not fit the %s layout; left at default", name, value, target.name)
    for slot, skill in enumerate(snap.hotkeys[:NUM_OF_SKILL_HOTKEYS]):
        fields.set_assigned_skill(slot, skill)
    if not fields.set_raw("appearance", snap.appearance):
        raise D2sError(CharacterErrc.InvalidHeader, "menu appearance has the wrong length")
    if snap.d2r_appearance is not None and fields.has_field("d2r_appearance"):
        if not fields.set_raw("d2r_appearance", snap.d2r_appearance):
            raise D2sError(CharacterErrc.InvalidHeader, "D2R appearance has the wrong length")
    if not fields.set_difficulty_last_played_bytes(snap.difficulty):
        logger.warning("Ignoring invalid difficulty bytes %s", snap.difficulty.hex())

    record.acts = _build_acts(snap, source).copy_for_version(target)
    record.stats = _build_stats(snap, target)
    record.items = ItemInventory.from_bytes(target, snap.items)
    fields.apply_version_rules()
    fields.apply_progression_rules()
    logger.debug("Imported %s at %s (source %s)", snap.name, target.name, source.name)
    # a stored checksum only describes the source layout
    return snap.checksum if target == source else None


def apply_projection(record: CharacterRecord, data: Any,
                     version: Optional[FormatVersion] = None) -> Optional[int]:
    """Rebuild ``record`` from either JSON shape; return the checksum the JSON carried.

    Raises D2sError when the document is not a character.
    """
    if not isinstance(data, dict):
        raise D2sError(CharacterErrc.InvalidHeader, "JSON root is not an object")
    try:
        if SERIALIZED_ROOT in data:
            snap = _from_serialized(data)
        elif COMPACT_ROOT in data:
            snap = _from_compact(data)
        else:
            raise D2sError(CharacterErrc.InvalidHeader, "no header object")
    except D2sError:
        raise
    except KeyError as exc:
        raise D2sError(CharacterErrc.InvalidHeader, f"missing key {exc}") from exc
    except (TypeError, ValueError, AttributeError) as exc:
        raise D2sError(CharacterErrc.InvalidHeader, str(exc)) from exc
    return _apply(record, snap, version)
