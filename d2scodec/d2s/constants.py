"""Format constants for Diablo II character saves."""
from __future__ import annotations

from enum import IntEnum, IntFlag

HEADER_MAGIC = b"\x55\xAA\x55\xAA"

MIN_START_POS = 48              # earliest byte a pre-1.09 segment can start
HEADER_LENGTH_PRE_109 = 130
HEADER_LENGTH_109 = 335
MAX_FILE_SIZE = 8192

NAME_LENGTH = 16                # includes the terminating NUL
NAME_MIN_CHARS = 2
NAME_MAX_CHARS = 15

NUM_OF_SKILL_HOTKEYS = 16
NUM_OF_DIFFICULTY = 3
NUM_OF_SKILLS = 30

APPEARANCE_LENGTH = 32
D2R_APPEARANCE_LENGTH = 48

DIFFICULTY_ACTIVE_FLAG = 0x80
DIFFICULTY_ACT_MASK = 0x07

# Auxiliary files the game keeps beside a character
AUX_FILE_SUFFIXES = (".key", ".ma0", ".ma1", ".ma2", ".ma3", ".map")


class CharStatus(IntFlag):
    NONE = 0x00
    HARDCORE = 0x04
    DIED = 0x08
    EXPANSION = 0x20
    LADDER = 0x40


class CharClass(IntEnum):
    Amazon = 0
    Sorceress = 1
    Necromancer = 2
    Paladin = 3
    Barbarian = 4
    Druid = 5
    Assassin = 6


EXPANSION_CLASSES = frozenset({CharClass.Druid, CharClass.Assassin})
FEMALE_CLASSES = frozenset({CharClass.Amazon, CharClass.Sorceress, CharClass.Assassin})
DEFAULT_CLASSIC_CLASS = CharClass.Amazon


class Difficulty(IntEnum):
    Normal = 0
    Nightmare = 1
    Hell = 2


class Act(IntEnum):
    I = 0
    II = 1
    III = 2
    IV = 3
    V = 4


ACTS_PER_DIFFICULTY_CLASSIC = 4
ACTS_PER_DIFFICULTY_EXPANSION = 5

# Title byte values marking each completed difficulty
TITLE_CLASSIC_COMPLETE = ACTS_PER_DIFFICULTY_CLASSIC * NUM_OF_DIFFICULTY        # 12
TITLE_EXPANSION_COMPLETE = ACTS_PER_DIFFICULTY_EXPANSION * NUM_OF_DIFFICULTY    # 15

# "No skill" sentinel keyed by slot width
NO_SKILL = {1: 0xFF, 4: 0xFFFFFFFF}
