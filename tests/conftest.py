"""Shared builders for synthetic character files."""
from __future__ import annotations

import struct
from pathlib import Path

import pytest

from d2scodec.character import CharacterRecord
from d2scodec.d2s.checksum import compute_checksum
from d2scodec.d2s.constants import CharClass
from d2scodec.d2s.versions import FormatVersion


def make_record(version: FormatVersion = FormatVersion.v110, char_class: int = CharClass.Sorceress,
                name: str = "Hero", expansion: bool = True) -> CharacterRecord:
    return CharacterRecord.new(version, char_class=char_class, name=name, expansion=expansion)


def make_image(version: FormatVersion = FormatVersion.v110, **kwargs) -> bytes:
    return make_record(version, **kwargs).to_bytes()


def write_character(directory: Path, version: FormatVersion = FormatVersion.v110,
                    name: str = "Hero", **kwargs) -> Path:
    path = directory / f"{name}.d2s"
    path.write_bytes(make_image(version, name=name, **kwargs))
    return path


def hand_built_v109(strength: int = 30, level: int = 5, name: bytes = b"Warrior") -> bytes:
    """A 1.09 expansion Barbarian assembled byte by byte, independent of the writer."""
    header = bytearray(335)
    header[0:4] = b"\x55\xAA\x55\xAA"
    struct.pack_into("<I", header, 4, 0x5C)
    header[20:20 + len(name)] = name
    header[36] = 0x20                       # expansion
    header[37] = 0                          # title
    header[40] = 4                          # barbarian
    header[41:43] = b"\x10\x1E"
    header[43] = level
    header[52:56] = b"\xFF\xFF\xFF\xFF"
    header[56:120] = b"\xFF" * 64           # empty hotkeys
    header[136:168] = b"\xFF" * 32          # appearance
    header[168:171] = b"\x80\x00\x00"       # normal, act I

    acts = bytearray()
    acts += b"Woo!" + b"\x06\x00\x00\x00" + b"\x2A\x01" + bytes(288)
    acts += b"WS" + b"\x01\x00\x00\x00" + b"\x50\x00"
    for difficulty in range(3):
        acts += struct.pack("<HQ14s", 0x0102, 1 if difficulty == 0 else 0, bytes(14))
    acts += b"\x01\x77\x34\x00" + bytes(48)
    assert len(acts) == 430

    # strength, energy, dexterity, vitality, max life, mana, max mana, stamina, max stamina, level
    mask = 0xFFFF & ~((1 << 4) | (1 << 5) | (1 << 6) | (1 << 13) | (1 << 14) | (1 << 15))
    values = [strength, 10, 20, 25, 55 << 8, 10 << 8, 10 << 8, 92 << 8, 92 << 8, level]
    stats = b"gf" + struct.pack("<H", mask) + b"".join(struct.pack("<I", v) for v in values)
    stats += b"if" + bytes(30)

    items = b"JM\x00\x00"

    image = bytearray(header + acts + stats + items)
    struct.pack_into("<I", image, 8, len(image))
    struct.pack_into("<I", image, 12, compute_checksum(image) & 0xFFFFFFFF)
    return bytes(image)


@pytest.fixture
def v110_file(tmp_path):
    return write_character(tmp_path, FormatVersion.v110)


@pytest.fixture
def v109_image():
    return hand_built_v109()
