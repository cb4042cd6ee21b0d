"""Tests for the TOML settings file and the d2s command line."""
import json

import click
import pytest
from click.testing import CliRunner

from conftest import hand_built_v109, write_character

from d2scodec.character import CharacterRecord
from d2scodec.cli import cli
from d2scodec.d2s.versions import FormatVersion
from d2scodec.settings import Settings, load_settings, save_settings


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "config.toml"
    save_settings(Settings(backup=False), path)
    return path


def run(config, *args, input=None):
    return CliRunner().invoke(cli, ["--config", str(config), *args], input=input)


class TestSettings:
    def test_defaults_when_missing(self, tmp_path):
        settings = load_settings(tmp_path / "missing.toml")
        assert settings == Settings()

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "sub" / "config.toml"
        save_settings(Settings(backup=False, strict_checksum=True, json_shape="serialized",
                               default_version="v109"), path)
        settings = load_settings(path)
        assert settings.backup is False
        assert settings.strict_checksum is True
        assert settings.serialized
        assert settings.target_version() == FormatVersion.v109

    @pytest.mark.parametrize("text", [
        'json_shape = "yaml"\n',
        'default_version = "v999"\n',
        'backup = "yes"\n',
        'backup = \n',
    ])
    def test_invalid_values(self, tmp_path, text):
        path = tmp_path / "config.toml"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(click.UsageError):
            load_settings(path)


class TestInfo:
    def test_summary(self, tmp_path, config):
        path = tmp_path / "Warrior.d2s"
        path.write_bytes(hand_built_v109())
        result = run(config, "info", str(path))
        assert result.exit_code == 0, result.output
        assert "Warrior" in result.output
        assert "Barbarian" in result.output
        assert "v109" in result.output
        assert "Mouse:      Attack / Attack" in result.output

    def test_unreadable_file(self, tmp_path, config):
        path = tmp_path / "Junk.d2s"
        path.write_bytes(b"not a save")
        result = run(config, "info", str(path))
        assert result.exit_code == 1
        assert "Not a valid" in result.output


class TestChecksumCommand:
    def test_ok(self, tmp_path, config):
        path = write_character(tmp_path)
        result = run(config, "checksum", str(path))
        assert result.exit_code == 0
        assert "Checksum OK." in result.output

    def test_mismatch_and_fix(self, tmp_path, config):
        path = tmp_path / "Warrior.d2s"
        image = bytearray(hand_built_v109())
        image[12] ^= 0x01
        path.write_bytes(bytes(image))

        result = run(config, "checksum", str(path))
        assert result.exit_code == 1
        assert "mismatch" in result.output

        result = run(config, "checksum", "--fix", str(path))
        assert result.exit_code == 0, result.output
        assert path.read_bytes() == hand_built_v109()

    def test_old_version(self, tmp_path, config):
        path = write_character(tmp_path, FormatVersion.v107)
        result = run(config, "checksum", str(path))
        assert result.exit_code == 0
        assert "no checksum" in result.output


class TestExportImport:
    def test_export_to_stdout(self, tmp_path, config):
        path = write_character(tmp_path)
        result = run(config, "export", str(path))
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["header"]["name"] == "Hero"

    def test_export_serialized(self, tmp_path, config):
        path = write_character(tmp_path)
        result = run(config, "export", "--serialized", str(path))
        assert json.loads(result.output)["Header"]["Version"] == 0x60

    def test_export_then_import(self, tmp_path, config):
        path = write_character(tmp_path)
        out = tmp_path / "Hero.json"
        assert run(config, "export", "-o", str(out), str(path)).exit_code == 0
        assert out.exists()

        target = tmp_path / "Copy.d2s"
        result = run(config, "import", "-o", str(target), str(out))
        assert result.exit_code == 0, result.output
        assert target.read_bytes() == path.read_bytes()

    def test_import_at_version(self, tmp_path, config):
        path = write_character(tmp_path)
        out = tmp_path / "Hero.json"
        run(config, "export", "-o", str(out), str(path))
        result = run(config, "import", "--version", "v109", str(out))
        assert result.exit_code == 0, result.output
        record = CharacterRecord()
        assert record.open(tmp_path / "Hero.d2s")
        assert record.get_version() == FormatVersion.v109


class TestConvert:
    def test_convert_to_output(self, tmp_path, config):
        path = write_character(tmp_path)
        target = tmp_path / "Old.d2s"
        result = run(config, "convert", "--version", "v107", "-o", str(target), str(path))
        assert result.exit_code == 0, result.output
        record = CharacterRecord()
        assert record.open(target)
        assert record.get_version() == FormatVersion.v107

    def test_unknown_version(self, tmp_path, config):
        path = write_character(tmp_path)
        result = run(config, "convert", "--version", "v999", str(path))
        assert result.exit_code == 2

    def test_version_from_settings(self, tmp_path):
        config = tmp_path / "config.toml"
        save_settings(Settings(backup=True, default_version="v109"), config)
        path = write_character(tmp_path)
        result = run(config, "convert", str(path))
        assert result.exit_code == 0, result.output
        assert len(list(tmp_path.glob("Hero.d2s.*.bak"))) == 1
        record = CharacterRecord()
        record.open(path)
        assert record.get_version() == FormatVersion.v109

    def test_no_version(self, tmp_path, config):
        path = write_character(tmp_path)
        result = run(config, "convert", str(path))
        assert result.exit_code == 2
        assert "default_version" in result.output


class TestSet:
    def test_rename_and_level(self, tmp_path, config):
        path = write_character(tmp_path)
        result = run(config, "set", "--name", "Rogue", "--level", "12", "--hardcore", str(path))
        assert result.exit_code == 0, result.output
        record = CharacterRecord()
        assert record.open(tmp_path / "Rogue.d2s")
        assert record.get_level() == 12
        assert record.is_hardcore_character()
        assert not path.exists()

    def test_rename_onto_existing_save(self, tmp_path, config):
        path = write_character(tmp_path)
        other = write_character(tmp_path, name="Other")
        before = other.read_bytes()
        result = run(config, "set", "--name", "Other", str(path))
        assert result.exit_code == 1
        assert "Failed to rename" in result.output
        assert other.read_bytes() == before
        assert path.exists()

    def test_rejected_change(self, tmp_path, config):
        path = write_character(tmp_path, FormatVersion.v109)
        result = run(config, "set", "--ladder", str(path))
        assert result.exit_code == 1
        assert "ladder" in result.output

    def test_nothing_to_change(self, tmp_path, config):
        path = write_character(tmp_path)
        result = run(config, "set", str(path))
        assert result.exit_code == 0
        assert "Nothing to change." in result.output


class TestInit:
    def test_writes_settings(self, tmp_path):
        config = tmp_path / "fresh.toml"
        result = run(config, "init", input="n\ny\nserialized\nv110\n")
        assert result.exit_code == 0, result.output
        settings = load_settings(config)
        assert settings.backup is False
        assert settings.strict_checksum is True
        assert settings.json_shape == "serialized"
        assert settings.default_version == "v110"

    def test_keeps_existing_when_declined(self, config):
        before = config.read_text(encoding="utf-8")
        result = run(config, "init", input="n\n")
        assert result.exit_code == 0
        assert "Aborted." in result.output
        assert config.read_text(encoding="utf-8") == before
