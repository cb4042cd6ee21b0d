"""Paths derived from a character file location."""
from __future__ import annotations

import time
from pathlib import Path
from typing import Optional

from d2scodec.d2s.constants import AUX_FILE_SUFFIXES

D2S_SUFFIX = ".d2s"
BACKUP_SUFFIX = ".bak"


def derive_backup_path(path: Path, timestamp: Optional[int] = None) -> Path:
    """``Hero.d2s`` -> ``Hero.d2s.<unix-epoch-seconds>.bak`` in the same directory."""
    stamp = int(time.time()) if timestamp is None else int(timestamp)
    return path.with_name(f"{path.name}.{stamp}{BACKUP_SUFFIX}")


def derive_d2s_path(path: Path) -> Path:
    return path.with_suffix(D2S_SUFFIX)


def derive_named_path(path: Path, name: str) -> Path:
    """Path the file should have once the character is called ``name``."""
    return path.with_name(name + (path.suffix or D2S_SUFFIX))


def derive_aux_paths(path: Path) -> list[Path]:
    """Existing game side files (.key, .ma0-.ma3, .map) that share the character's stem."""
    paths = []
    for suffix in AUX_FILE_SUFFIXES:
        p = path.with_suffix(suffix)
        if p.exists():
            paths.append(p)
    return paths
