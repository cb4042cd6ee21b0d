"""Click CLI for inspecting and editing Diablo II character files."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import click

from d2scodec.character import BackupPolicy, CharacterRecord
from d2scodec.config import derive_d2s_path
from d2scodec.d2s.constants import Difficulty
from d2scodec.d2s.versions import FormatVersion, parse_version, supports_checksum
from d2scodec.reference import DefaultReferenceData, default_reference_data
from d2scodec.settings import (
    JSON_SHAPES,
    Settings,
    get_settings_path,
    load_settings,
    save_settings,
    validate_settings,
)


class Context:
    """Holds settings and reference tables resolved from the options and the settings file."""

    def __init__(self, config: Path | None = None, backup: bool | None = None,
                 reference: Path | None = None):
        self._config_path = config
        self._backup = backup
        self._reference_path = reference
        self._settings: Settings | None = None
        self._reference: DefaultReferenceData | None = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = load_settings(self._config_path)
            if self._backup is not None:
                self._settings.backup = self._backup
        return self._settings

    @property
    def reference(self) -> DefaultReferenceData:
        if self._reference is None:
            try:
                self._reference = default_reference_data(self._reference_path)
            except (OSError, ValueError) as exc:
                raise click.UsageError(f"Cannot load reference tables: {exc}") from exc
        return self._reference

    @property
    def config_path(self) -> Path:
        return self._config_path or get_settings_path()

    @property
    def backup_policy(self) -> BackupPolicy:
        return BackupPolicy.SaveWithBackup if self.settings.backup else BackupPolicy.SaveOnly


pass_ctx = click.make_pass_decorator(Context)


def _version_option(ctx, param, value: Optional[str]) -> Optional[FormatVersion]:
    if value is None:
        return None
    try:
        return parse_version(value)
    except ValueError:
        known = ", ".join(FormatVersion.__members__)
        raise click.BadParameter(f"'{value}' is not a known version ({known})") from None


def _open(ctx: Context, path: Path, strict: bool | None = None) -> CharacterRecord:
    record = CharacterRecord(ctx.reference)
    strict = ctx.settings.strict_checksum if strict is None else strict
    if not record.open(path, validate_checksum=strict):
        raise click.ClickException(f"{path}: {record.get_last_error_message()}")
    if record.get_last_error() is not None:
        click.echo(f"Warning: {path.name}: {record.get_last_error_message()}", err=True)
    return record


def _fail(record: CharacterRecord, action: str):
    raise click.ClickException(f"{action} failed: {record.get_last_error_message()}")


@click.group()
@click.option(
    "--config", "config", default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Settings file (default: the per-user config.toml)",
)
@click.option("--backup/--no-backup", default=None,
              help="Back up files before overwriting them (overrides the settings file)")
@click.option(
    "--reference", "reference", default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with class and skill names for modded games",
)
@click.option("--verbose", "-v", is_flag=True, help="Log segment offsets and file operations")
@click.version_option(package_name="d2scodec")
@click.pass_context
def cli(ctx, config: Optional[Path], backup: Optional[bool], reference: Optional[Path],
        verbose: bool):
    """d2s - Diablo II character file tool.

    Read .d2s saves from every game version, edit header fields, convert
    between versions and export to JSON.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj = Context(config=config, backup=backup, reference=reference)


@cli.command()
@pass_ctx
def init(ctx: Context):
    """Write the settings file (interactive)."""
    path = ctx.config_path
    current = load_settings(path)
    if path.exists():
        click.echo(f"Current settings ({path}):")
        click.echo(f"  backup: {current.backup}")
        click.echo(f"  strict_checksum: {current.strict_checksum}")
        click.echo(f"  json_shape: {current.json_shape}")
        click.echo(f"  default_version: {current.default_version or '(none)'}")
        click.echo()
        if not click.confirm("Overwrite existing settings?", default=False):
            click.echo("Aborted.")
            return

    settings = Settings(
        backup=click.confirm("Back up character files before saving?", default=current.backup),
        strict_checksum=click.confirm("Refuse to open files with a bad checksum?",
                                      default=current.strict_checksum),
        json_shape=click.prompt("JSON shape", type=click.Choice(JSON_SHAPES),
                                default=current.json_shape),
    )
    while True:
        version = click.prompt("Default conversion version (blank for none)",
                               default=current.default_version or "", show_default=False).strip()
        settings.default_version = version or None
        try:
            validate_settings(settings)
            break
        except click.UsageError as exc:
            click.echo(exc.message)

    saved = save_settings(settings, path)
    click.echo(f"\nSettings saved to {saved}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_ctx
def info(ctx: Context, path: Path):
    """Show a summary of a character file."""
    record = _open(ctx, path)
    version = record.get_version()

    flags = [label for label, on in (
        ("expansion", record.is_expansion_character()),
        ("hardcore", record.is_hardcore_character()),
        ("dead", record.is_dead_character()),
        ("ladder", record.is_ladder_character()),
    ) if on]
    title = record.get_title_name()

    click.echo(f"Name:       {record.get_name()}")
    click.echo(f"Class:      {record.get_class_name()}")
    click.echo(f"Level:      {record.get_level()}")
    click.echo(f"Version:    {version.name} ({version.label})")
    click.echo(f"Status:     {', '.join(flags) or 'classic'}")
    click.echo(f"Title:      {record.get_title()}{f' ({title})' if title else ''}")
    click.echo(f"Location:   {Difficulty(record.get_difficulty_last_played()).name}, "
               f"act {int(record.get_starting_act()) + 1}")
    click.echo(f"Experience: {record.get_stat('experience'):,}")
    click.echo(f"Gold:       {record.get_stat('gold'):,} (stash {record.get_stat('stashed_gold'):,})")
    ref = record.reference
    allocated = [f"{ref.skill_name(skill_id)} {points}"
                 for skill_id, points in zip(ref.class_skill_ids(record.get_class()), record.get_skills())
                 if points]
    if allocated:
        click.echo(f"Skills:     {', '.join(allocated)}")
    left, right = record.get_bound_skill("left_skill"), record.get_bound_skill("right_skill")
    click.echo(f"Mouse:      {ref.skill_name(left)} / {ref.skill_name(right)}")
    click.echo(f"Items:      {record.get_item_count()}")
    if supports_checksum(version):
        click.echo(f"File size:  {record.get_file_size():,} bytes")
        click.echo(f"Checksum:   {record.get_checksum_bytes() & 0xFFFFFFFF:08X}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--fix", is_flag=True, help="Rewrite the file with the computed checksum")
@pass_ctx
def checksum(ctx: Context, path: Path, fix: bool):
    """Compare the stored checksum with a recomputation."""
    record = _open(ctx, path, strict=False)
    version = record.get_version()
    if not supports_checksum(version):
        click.echo(f"{version.name} files carry no checksum.")
        return

    stored = record.get_checksum_bytes() & 0xFFFFFFFF
    computed = record.calculate_checksum() & 0xFFFFFFFF
    click.echo(f"Stored:   {stored:08X}")
    click.echo(f"Computed: {computed:08X}")
    if stored == computed:
        click.echo("Checksum OK.")
        return
    if not fix:
        raise click.ClickException("checksum mismatch (use --fix to rewrite)")
    if not record.save_as_d2s(path, ctx.backup_policy):
        _fail(record, "Save")
    click.echo(f"Checksum rewritten: {record.get_checksum_bytes() & 0xFFFFFFFF:08X}")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", "output_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Write JSON to a file instead of stdout")
@click.option("--serialized/--compact", default=None,
              help="JSON shape (default from settings)")
@pass_ctx
def export(ctx: Context, path: Path, output_path: Optional[Path], serialized: Optional[bool]):
    """Export a character file as JSON."""
    record = _open(ctx, path)
    if serialized is None:
        serialized = ctx.settings.serialized
    if output_path is None:
        click.echo(record.to_json(serialized))
        return
    if not record.save_as_json(output_path, serialized, ctx.backup_policy):
        _fail(record, "Export")
    click.echo(f"JSON written to {output_path}")


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", "output_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Character file to write (default: beside the JSON)")
@click.option("--version", "version", default=None, callback=_version_option,
              help="Write at another format version (e.g. v110)")
@pass_ctx
def import_json(ctx: Context, path: Path, output_path: Optional[Path],
                version: Optional[FormatVersion]):
    """Build a character file from JSON (either shape)."""
    record = CharacterRecord(ctx.reference)
    if not record.open_json(path, validate_checksum=ctx.settings.strict_checksum):
        raise click.ClickException(f"{path}: {record.get_last_error_message()}")
    if version is not None and not record.set_version(version):
        _fail(record, "Conversion")

    target = output_path or derive_d2s_path(path)
    if not record.save_as_d2s(target, ctx.backup_policy):
        _fail(record, "Save")
    click.echo(f"Wrote {target} ({record.get_version().name})")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--version", "version", default=None, callback=_version_option,
              help="Target format version (default from settings)")
@click.option("--output", "-o", "output_path", type=click.Path(dir_okay=False, path_type=Path),
              default=None, help="Write here instead of overwriting the input")
@pass_ctx
def convert(ctx: Context, path: Path, version: Optional[FormatVersion],
            output_path: Optional[Path]):
    """Re-encode a character file at another format version."""
    if version is None:
        version = ctx.settings.target_version()
    if version is None:
        raise click.UsageError("No --version given and no default_version in the settings file.")

    record = _open(ctx, path)
    source = record.get_version()
    target = output_path or path
    if not record.save_as_version(target, version, ctx.backup_policy):
        _fail(record, "Conversion")
    click.echo(f"Converted {path.name} from {source.name} to {version.name}: {target}")


@cli.command("set")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", default=None, help="New character name (the file is renamed to match)")
@click.option("--level", type=click.IntRange(1, 99), default=None, help="Character level")
@click.option("--hardcore/--softcore", default=None)
@click.option("--expansion/--classic", default=None)
@click.option("--ladder/--no-ladder", default=None)
@pass_ctx
def set_fields(ctx: Context, path: Path, name: Optional[str], level: Optional[int],
               hardcore: Optional[bool], expansion: Optional[bool], ladder: Optional[bool]):
    """Edit header fields and save in place."""
    record = _open(ctx, path)
    changes = [
        ("name", name, record.set_name),
        ("level", level, lambda v: record.set_stat("level", v)),
        ("hardcore", hardcore, record.set_is_hardcore_character),
        ("expansion", expansion, record.set_is_expansion_character),
        ("ladder", ladder, record.set_is_ladder_character),
    ]
    applied = 0
    for label, value, setter in changes:
        if value is None:
            continue
        if not setter(value):
            raise click.ClickException(
                f"Cannot set {label} to {value!r} on a {record.get_version().name} character")
        applied += 1
    if not applied:
        click.echo("Nothing to change.")
        return

    if not record.save(backup=ctx.settings.backup):
        _fail(record, "Save")
    click.echo(f"Saved {record.path}")
