"""User settings for the d2s command line tool."""
from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

import click

from d2scodec.d2s.versions import FormatVersion, parse_version

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

JSON_SHAPES = ("compact", "serialized")


@dataclass
class Settings:
    backup: bool = True
    strict_checksum: bool = False
    json_shape: str = "compact"
    default_version: str | None = None

    @property
    def serialized(self) -> bool:
        return self.json_shape == "serialized"

    def target_version(self) -> FormatVersion | None:
        if self.default_version is None:
            return None
        return parse_version(self.default_version)


def get_settings_path() -> Path:
    """Return the TOML settings file path via click.get_app_dir."""
    return Path(click.get_app_dir("d2scodec")) / "config.toml"


def validate_settings(settings: Settings) -> Settings:
    """Raise click.UsageError for values the tool cannot use."""
    if settings.json_shape not in JSON_SHAPES:
        raise click.UsageError(
            f"json_shape must be one of {', '.join(JSON_SHAPES)}, not '{settings.json_shape}'"
        )
    if settings.default_version is not None:
        try:
            parse_version(settings.default_version)
        except ValueError:
            known = ", ".join(FormatVersion.__members__)
            raise click.UsageError(
                f"default_version '{settings.default_version}' is not a known version ({known})"
            ) from None
    return settings


def load_settings(path: Path | None = None) -> Settings:
    """Read TOML settings. Returns defaults if the file is missing."""
    path = path or get_settings_path()
    if not path.exists():
        return Settings()

    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as exc:
        raise click.UsageError(f"Cannot parse {path}: {exc}") from exc

    for key in ("backup", "strict_checksum"):
        if key in data and not isinstance(data[key], bool):
            raise click.UsageError(f"{key} must be true or false in {path}")

    settings = Settings(
        backup=data.get("backup", True),
        strict_checksum=data.get("strict_checksum", False),
        json_shape=str(data.get("json_shape", "compact")),
        default_version=data.get("default_version"),
    )
    return validate_settings(settings)


def save_settings(settings: Settings, path: Path | None = None) -> Path:
    """Write settings to TOML."""
    validate_settings(settings)
    path = path or get_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        f"backup = {'true' if settings.backup else 'false'}",
        f"strict_checksum = {'true' if settings.strict_checksum else 'false'}",
        f"json_shape = \"{settings.json_shape}\"",
    ]
    if settings.default_version:
        lines.append(f"default_version = \"{settings.default_version}\"")
    lines.append("")

    path.write_text("\n".join(lines), encoding="utf-8")
    return path
