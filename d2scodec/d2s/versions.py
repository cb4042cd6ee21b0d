"""Known .d2s format revisions and version-tag detection."""
from __future__ import annotations

from enum import IntEnum


class FormatVersion(IntEnum):
    """Ordered by release. Values are the raw tags stored at offset 4."""
    v100 = 0x47     # pre-1.07 (1.00 - 1.06)
    v107 = 0x57
    v108 = 0x59     # 1.08 classic-only client
    v109 = 0x5C
    v110 = 0x60     # 1.10 - 1.14d
    v100R = 0x61    # Resurrected baseline
    v120 = 0x62     # Resurrected 2.4
    v140 = 0x63     # Resurrected 2.5+

    @property
    def label(self) -> str:
        return VERSION_LABELS[self]


VERSION_LABELS: dict[FormatVersion, str] = {
    FormatVersion.v100: "1.00 - 1.06",
    FormatVersion.v107: "1.07",
    FormatVersion.v108: "1.08",
    FormatVersion.v109: "1.09",
    FormatVersion.v110: "1.10 - 1.14d",
    FormatVersion.v100R: "Resurrected 1.0",
    FormatVersion.v120: "Resurrected 2.4",
    FormatVersion.v140: "Resurrected 2.5+",
}

# Highest threshold first so the first match wins
_THRESHOLDS = sorted(FormatVersion, reverse=True)

LATEST_VERSION = FormatVersion.v140


def detect_version(raw: int) -> FormatVersion:
    """Map a raw version tag to the newest revision whose tag is <= ``raw``."""
    for version in _THRESHOLDS:
        if raw >= version.value:
            return version
    return FormatVersion.v100


def parse_version(name: str | int) -> FormatVersion:
    """Resolve ``"v110"``, ``"0x60"``, ``"96"`` or an int to a FormatVersion."""
    if isinstance(name, int):
        return detect_version(name)
    text = name.strip()
    if text in FormatVersion.__members__:
        return FormatVersion[text]
    try:
        return detect_version(int(text, 0))
    except ValueError:
        raise ValueError(f"Unknown format version: {name!r}") from None


def supports_checksum(version: FormatVersion) -> bool:
    return version >= FormatVersion.v109


def supports_expansion(version: FormatVersion) -> bool:
    return version >= FormatVersion.v107 and version != FormatVersion.v108


def supports_ladder(version: FormatVersion) -> bool:
    return version >= FormatVersion.v110
