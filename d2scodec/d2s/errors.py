"""Error codes and exceptions raised while decoding or encoding a character."""
from __future__ import annotations

from enum import IntEnum


class CharacterErrc(IntEnum):
    InvalidHeader = 1
    CannotOpenFile = 2
    InvalidChecksum = 3
    InvalidActsInfo = 4
    InvalidCharStats = 5
    InvalidCharSkills = 6
    InvalidItemInventory = 7
    FileRenameError = 8
    AuxFileRenameError = 9
    NoSavePath = 10


ERROR_MESSAGES: dict[CharacterErrc, str] = {
    CharacterErrc.InvalidHeader: "Not a valid Diablo II character file.",
    CharacterErrc.CannotOpenFile: "Character file could not be opened.",
    CharacterErrc.InvalidChecksum: "Character file checksum is not valid.",
    CharacterErrc.InvalidActsInfo: "Character file does not contain valid quest, waypoint or NPC data.",
    CharacterErrc.InvalidCharStats: "Character file does not contain valid stats data.",
    CharacterErrc.InvalidCharSkills: "Character file does not contain valid skills data.",
    CharacterErrc.InvalidItemInventory: "Character file does not contain a valid item inventory.",
    CharacterErrc.FileRenameError: "Failed to rename the character file.",
    CharacterErrc.AuxFileRenameError: "Failed to rename one or more auxiliary character files.",
    CharacterErrc.NoSavePath: "Character has no open file to save to.",
}


def error_message(code: CharacterErrc | None) -> str:
    if code is None:
        return ""
    return ERROR_MESSAGES.get(code, f"Unknown error {int(code)}")


class D2sError(ValueError):
    """A decode or encode failure carrying a stable error code."""

    def __init__(self, code: CharacterErrc, detail: str | None = None):
        self.code = code
        self.detail = detail
        message = ERROR_MESSAGES[code]
        super().__init__(f"{message} ({detail})" if detail else message)


class BufferRangeError(IndexError):
    """Read outside the current extent of a ByteBuffer."""

    def __init__(self, offset: int, width: int, length: int):
        self.offset = offset
        self.width = width
        self.length = length
        super().__init__(f"Range {offset}+{width} exceeds buffer length {length}")
