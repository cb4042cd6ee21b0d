"""Lookup tables injected into a CharacterRecord (class, skill and title names)."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Optional, Protocol

from d2scodec.d2s.constants import (
    ACTS_PER_DIFFICULTY_CLASSIC,
    ACTS_PER_DIFFICULTY_EXPANSION,
    FEMALE_CLASSES,
    CharClass,
)


class ReferenceData(Protocol):
    """Everything the codec needs to name things. Swap per mod."""

    def class_name(self, char_class: int) -> str: ...

    def skill_name(self, skill_id: int) -> str: ...

    def class_skill_ids(self, char_class: int) -> list[int]: ...

    def title_name(self, title: int, char_class: int, hardcore: bool, expansion: bool) -> str: ...


# First skill id of each class's 30-skill block
_CLASS_SKILL_START: dict[int, int] = {
    CharClass.Amazon: 6,
    CharClass.Sorceress: 36,
    CharClass.Necromancer: 66,
    CharClass.Paladin: 96,
    CharClass.Barbarian: 126,
    CharClass.Druid: 221,
    CharClass.Assassin: 251,
}

_GENERAL_SKILLS: dict[int, str] = {
    0: "Attack",
    1: "Kick",
    2: "Throw",
    3: "Unsummon",
    4: "Left Hand Throw",
    5: "Left Hand Swing",
    217: "Scroll of Identify",
    218: "Book of Identify",
    219: "Scroll of Townportal",
    220: "Book of Townportal",
}

# (male, female) per rank; rank 0 has no title
_CLASSIC_TITLES = [("", ""), ("Sir", "Dame"), ("Lord", "Lady"), ("Baron", "Baroness")]
_CLASSIC_HC_TITLES = [("", ""), ("Count", "Countess"), ("Duke", "Duchess"), ("King", "Queen")]
_EXPANSION_TITLES = [("", ""), ("Slayer", "Slayer"), ("Champion", "Champion"), ("Patriarch", "Matriarch")]
_EXPANSION_HC_TITLES = [("", ""), ("Destroyer", "Destroyer"), ("Conqueror", "Conqueror"), ("Guardian", "Guardian")]


class DefaultReferenceData:
    """Built-in tables for the unmodded game, optionally overridden from JSON."""

    def __init__(self):
        self.classes: dict[int, str] = {int(c): c.name for c in CharClass}
        self.skills: dict[int, str] = dict(_GENERAL_SKILLS)

    def load_from_json(self, path: Path) -> None:
        """Merge ``{"classes": {id: name}, "skills": {id: name}}`` from a file."""
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        for key, value in data.get("classes", {}).items():
            self.classes[int(key)] = str(value)
        for key, value in data.get("skills", {}).items():
            self.skills[int(key)] = str(value)

    def class_name(self, char_class: int) -> str:
        return self.classes.get(char_class, f"Class {char_class}")

    def class_skill_ids(self, char_class: int) -> list[int]:
        start = _CLASS_SKILL_START.get(char_class)
        if start is None:
            return []
        return list(range(start, start + 30))

    def skill_name(self, skill_id: int) -> str:
        name = self.skills.get(skill_id)
        if name is not None:
            return name
        for char_class, start in _CLASS_SKILL_START.items():
            if start <= skill_id < start + 30:
                return f"{self.class_name(char_class)} skill {skill_id - start + 1}"
        return f"Skill {skill_id}"

    def title_name(self, title: int, char_class: int, hardcore: bool, expansion: bool) -> str:
        per_diff = ACTS_PER_DIFFICULTY_EXPANSION if expansion else ACTS_PER_DIFFICULTY_CLASSIC
        rank = min(title // per_diff, 3)
        if expansion:
            table = _EXPANSION_HC_TITLES if hardcore else _EXPANSION_TITLES
        else:
            table = _CLASSIC_HC_TITLES if hardcore else _CLASSIC_TITLES
        male, female = table[rank]
        return female if char_class in FEMALE_CLASSES else male


def default_reference_data(path: Optional[Path] = None) -> DefaultReferenceData:
    ref = DefaultReferenceData()
    if path is not None:
        ref.load_from_json(path)
    return ref
