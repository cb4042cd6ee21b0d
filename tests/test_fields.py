"""Tests for header field rules: status legality, titles, progression, names and skills."""
import pytest

from conftest import make_record

from d2scodec.d2s.constants import Act, CharClass, Difficulty
from d2scodec.d2s.fields import is_legal_name, sanitize_name
from d2scodec.d2s.versions import FormatVersion


class TestStatus:
    def test_hardcore_clears_dead(self):
        record = make_record()
        assert record.set_is_dead_character(True)
        assert record.is_dead_character()
        assert record.set_is_hardcore_character(True)
        assert not record.is_dead_character()
        assert not record.set_is_dead_character(True)
        assert not record.is_dead_character()

    def test_ladder_needs_110(self):
        assert not make_record(FormatVersion.v109).set_is_ladder_character(True)
        record = make_record(FormatVersion.v110)
        assert record.set_is_ladder_character(True)
        assert record.is_ladder_character()

    @pytest.mark.parametrize("version", [FormatVersion.v100, FormatVersion.v108])
    def test_expansion_unavailable(self, version):
        record = make_record(version)
        assert not record.is_expansion_character()
        assert not record.set_is_expansion_character(True)
        assert not record.can_be_expansion()

    def test_expansion_at_107(self):
        record = make_record(FormatVersion.v107)
        assert record.is_expansion_character()

    def test_status_bits(self):
        record = make_record()
        record.set_is_hardcore_character(True)
        record.set_is_ladder_character(True)
        assert record.get_status() == 0x04 | 0x20 | 0x40


class TestClass:
    def test_expansion_class_needs_expansion(self):
        record = make_record(expansion=False)
        assert not record.set_class(CharClass.Druid)
        assert record.set_class(CharClass.Paladin)
        assert record.get_class() == CharClass.Paladin

    def test_unknown_class_rejected(self):
        assert not make_record().set_class(9)

    def test_classic_toggle_demotes_class_and_act(self):
        record = make_record(char_class=CharClass.Druid)
        assert record.set_starting_act(Act.V)
        assert record.get_title() == 4
        assert record.set_is_expansion_character(False)
        assert record.get_class() == CharClass.Amazon
        assert record.get_starting_act() == Act.IV
        assert record.get_title() == 3


class TestTitle:
    def test_clamped_to_game_complete(self):
        record = make_record()
        assert record.set_title(20)
        assert record.get_title() == 15
        classic = make_record(expansion=False)
        classic.set_title(20)
        assert classic.get_title() == 12

    def test_never_trails_progress(self):
        record = make_record()
        record.set_starting_act(Act.III)
        assert record.get_title() == 2
        record.set_title(0)
        assert record.get_title() == 2
        record.set_difficulty_last_played(Difficulty.Hell)
        assert record.get_starting_act_title() == 12
        assert record.get_title() == 12

    def test_monotonic_under_progress(self):
        record = make_record()
        record.set_title(10)
        record.set_starting_act(Act.II)
        assert record.get_title() == 10

    def test_difficulty_complete(self):
        record = make_record()
        assert record.set_difficulty_complete(Difficulty.Normal)
        assert record.get_title() == 5
        assert record.set_difficulty_complete(Difficulty.Hell)
        assert record.get_title() == record.get_game_complete_title() == 15
        assert not record.set_difficulty_complete(3)
        assert record.is_game_complete()

    def test_expansion_toggle_converts_title(self):
        record = make_record(expansion=False)
        record.set_title(8)
        assert record.set_is_expansion_character(True)
        assert record.get_title() == 10
        assert record.set_is_expansion_character(False)
        assert record.get_title() == 8

    def test_title_names(self):
        record = make_record(char_class=CharClass.Sorceress)
        record.set_title(10)
        assert record.get_title_name() == "Champion"
        classic = make_record(char_class=CharClass.Barbarian, expansion=False)
        classic.set_is_hardcore_character(True)
        classic.set_title(12)
        assert classic.get_title_name() == "King"
        classic.set_class(CharClass.Amazon)
        assert classic.get_title_name() == "Queen"


class TestDifficulty:
    @pytest.mark.parametrize("version", [FormatVersion.v109, FormatVersion.v110, FormatVersion.v140])
    def test_new_character_marks_normal_act_i(self, version):
        record = make_record(version)
        assert record.get_difficulty_last_played_bytes() == b"\x80\x00\x00"
        assert record.fields.get_raw("starting_act") == b"\x80\x00\x00"
        assert record.get_difficulty_last_played() == Difficulty.Normal
        assert record.get_starting_act() == Act.I

    def test_new_packed_character_is_normal_act_i(self):
        record = make_record(FormatVersion.v107)
        assert record.fields.get_int("starting_act") == 0
        assert record.get_difficulty_last_played_bytes() == b"\x80\x00\x00"

    def test_array_form_from_109(self):
        record = make_record(FormatVersion.v110)
        record.set_difficulty_last_played(Difficulty.Nightmare)
        record.set_starting_act(Act.III)
        assert record.get_difficulty_last_played_bytes() == b"\x00\x82\x00"

    def test_packed_form_before_109(self):
        record = make_record(FormatVersion.v107)
        record.set_difficulty_last_played(Difficulty.Nightmare)
        record.set_starting_act(Act.II)
        assert record.fields.get_int("starting_act") == 0x11
        assert record.get_difficulty_last_played_bytes() == b"\x00\x81\x00"
        assert record.get_difficulty_last_played() == Difficulty.Nightmare
        assert record.get_starting_act() == Act.II

    def test_act_v_needs_expansion(self):
        record = make_record(expansion=False)
        assert not record.set_starting_act(Act.V)
        assert not record.set_difficulty_last_played_bytes(b"\x84\x00\x00")

    def test_bytes_setter(self):
        record = make_record()
        assert record.set_difficulty_last_played_bytes(b"\x00\x00\x84")
        assert record.get_difficulty_last_played() == Difficulty.Hell
        assert record.get_starting_act() == Act.V
        assert record.get_title() == 14


class TestName:
    @pytest.mark.parametrize("name,legal", [
        ("Hero", True),
        ("Good_Name", True),
        ("Ab-cd", True),
        ("A", False),
        ("Bad-Name-", False),
        ("-Bad", False),
        ("Ab-cd_e", False),
        ("Has Space", False),
        ("Sixteen_Letters_", False),
        ("Name1", False),
    ])
    def test_ascii_rules(self, name, legal):
        assert is_legal_name(name) is legal

    def test_utf8_names_from_resurrected(self):
        assert is_legal_name("Zoë", utf8=True)
        assert not is_legal_name("Zoë")
        record = make_record(FormatVersion.v140)
        assert record.set_name("Zoë")
        assert record.get_name() == "Zoë"
        assert not make_record(FormatVersion.v110).set_name("Zoë")

    def test_sanitize(self):
        assert sanitize_name("My Hero 2") == "MyHero"
        assert sanitize_name("--a--b--") == "a-b"
        assert sanitize_name("1") == ""

    def test_set_name_rejects_illegal(self):
        record = make_record()
        assert not record.set_name("X")
        assert record.get_name() == "Hero"


class TestSkills:
    def test_hotkeys_default_empty(self):
        assert make_record().get_assigned_skills() == [None] * 16

    def test_assign_and_clear(self):
        record = make_record()
        assert record.set_assigned_skill(3, 54)
        assert record.get_assigned_skills()[3] == 54
        assert record.set_assigned_skill(3, None)
        assert record.get_assigned_skills()[3] is None
        assert not record.set_assigned_skill(16, 1)

    def test_one_byte_slots_before_109(self):
        record = make_record(FormatVersion.v107)
        assert record.set_assigned_skill(0, 36)
        assert not record.set_assigned_skill(0, 0xFF)
        assert not record.set_assigned_skill(0, 300)

    def test_swap_skills_only_from_109(self):
        assert make_record(FormatVersion.v107).fields.get_skill("left_swap_skill") is None
        record = make_record(FormatVersion.v110)
        assert record.fields.set_skill("left_swap_skill", 40)
        assert record.fields.get_skill("left_swap_skill") == 40
