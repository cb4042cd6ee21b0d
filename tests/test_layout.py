"""Tests for version detection, the field table and the checksum engine."""
import pytest

from d2scodec.d2s.checksum import ChecksumState, compute_checksum, to_signed32
from d2scodec.d2s.layout import VERSION_TABLE, header_length, min_segment_start
from d2scodec.d2s.versions import (
    FormatVersion,
    detect_version,
    parse_version,
    supports_checksum,
    supports_expansion,
    supports_ladder,
)


class TestVersions:
    @pytest.mark.parametrize("raw,expected", [
        (0x10, FormatVersion.v100),
        (0x47, FormatVersion.v100),
        (0x57, FormatVersion.v107),
        (0x5C, FormatVersion.v109),
        (0x5D, FormatVersion.v109),
        (0x60, FormatVersion.v110),
        (0x63, FormatVersion.v140),
        (0x70, FormatVersion.v140),
    ])
    def test_detect_picks_highest_not_above(self, raw, expected):
        assert detect_version(raw) == expected

    def test_parse_version(self):
        assert parse_version("v110") == FormatVersion.v110
        assert parse_version("0x5c") == FormatVersion.v109
        assert parse_version(99) == FormatVersion.v140
        with pytest.raises(ValueError):
            parse_version("latest")

    def test_predicates(self):
        assert not supports_checksum(FormatVersion.v108)
        assert supports_checksum(FormatVersion.v109)
        assert supports_expansion(FormatVersion.v107)
        assert not supports_expansion(FormatVersion.v108)
        assert not supports_expansion(FormatVersion.v100)
        assert not supports_ladder(FormatVersion.v109)
        assert supports_ladder(FormatVersion.v110)

    def test_labels(self):
        assert FormatVersion.v110.label == "1.10 - 1.14d"


class TestVersionTable:
    @pytest.mark.parametrize("version", list(FormatVersion))
    def test_no_overlapping_fields(self, version):
        assert VERSION_TABLE.overlapping_fields(version) == []

    @pytest.mark.parametrize("version", list(FormatVersion))
    def test_fields_fit_header(self, version):
        for name, desc in VERSION_TABLE.fields_for(version):
            assert desc.end <= header_length(version), name

    def test_checksum_fields_absent_before_109(self):
        assert VERSION_TABLE.resolve(FormatVersion.v108, "checksum") is None
        assert VERSION_TABLE.resolve(FormatVersion.v108, "created") is None
        assert VERSION_TABLE.resolve(FormatVersion.v109, "checksum").offset == 12

    def test_name_moves(self):
        assert VERSION_TABLE.resolve(FormatVersion.v100, "name").offset == 8
        assert VERSION_TABLE.resolve(FormatVersion.v110, "name").offset == 20
        assert VERSION_TABLE.resolve(FormatVersion.v120, "name").offset == 267

    def test_hotkey_widths(self):
        old = VERSION_TABLE.resolve(FormatVersion.v107, "hotkeys")
        new = VERSION_TABLE.resolve(FormatVersion.v109, "hotkeys")
        assert (old.offset, old.width, old.count) == (70, 1, 16)
        assert (new.offset, new.width, new.count) == (56, 4, 16)
        assert new.end == VERSION_TABLE.resolve(FormatVersion.v109, "left_skill").offset

    def test_d2r_appearance_only_in_resurrected(self):
        assert not VERSION_TABLE.has_field(FormatVersion.v110, "d2r_appearance")
        assert VERSION_TABLE.has_field(FormatVersion.v100R, "d2r_appearance")

    def test_unknown_field(self):
        with pytest.raises(KeyError):
            VERSION_TABLE.resolve(FormatVersion.v110, "nonsense")

    def test_segment_start(self):
        assert min_segment_start(FormatVersion.v107) == 48
        assert min_segment_start(FormatVersion.v109) == 335
        assert header_length(FormatVersion.v108) == 130


class TestChecksum:
    def test_shift_and_add(self):
        state = ChecksumState().update(b"\x01\x02")
        # ((0 << 1) + 1) = 1, then ((1 << 1) + 2) = 4
        assert state.value == 4

    def test_overflow_carries_into_next_byte(self):
        state = ChecksumState(accumulator=0x80000000, overflow=1)
        state.update(b"\x00")
        assert state.unsigned == 1
        assert state.overflow == 0

    def test_sign_bit_sets_overflow(self):
        state = ChecksumState(accumulator=0x40000000)
        state.update(b"\x00")
        assert state.unsigned == 0x80000000
        assert state.overflow == 1
        assert state.value == -0x80000000

    def test_skip_range_counts_as_zero(self):
        data = bytes([1, 2, 3, 4, 5, 6])
        masked = bytes([1, 2, 0, 0, 5, 6])
        a = ChecksumState().update(data, skip=range(2, 4))
        b = ChecksumState().update(masked)
        assert a.value == b.value

    def test_split_scan_matches_single_pass(self):
        data = bytes(range(256)) * 3
        whole = ChecksumState().update(data)
        split = ChecksumState().update(data[:100]).update(data[100:500]).update(data[500:])
        assert whole.value == split.value

    def test_stored_checksum_ignored(self):
        image = bytearray(range(40))
        before = compute_checksum(image)
        image[12:16] = b"\xDE\xAD\xBE\xEF"
        assert compute_checksum(image) == before

    def test_to_signed32(self):
        assert to_signed32(0xFFFFFFFF) == -1
        assert to_signed32(0x7FFFFFFF) == 0x7FFFFFFF
