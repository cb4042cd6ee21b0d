"""Tests for ByteBuffer reads/writes and the LSB-first BitWriter."""
import pytest

from d2scodec.d2s.buffer import BitWriter, ByteBuffer
from d2scodec.d2s.errors import BufferRangeError


class TestByteBuffer:
    def test_read_uint_little_endian(self):
        buf = ByteBuffer(b"\x5C\x00\x00\x00\xFF")
        assert buf.read_uint(0, 4) == 0x5C
        assert buf.read_uint(4, 1) == 0xFF

    def test_read_out_of_range_raises(self):
        buf = ByteBuffer(bytes(4))
        with pytest.raises(BufferRangeError):
            buf.read_uint(2, 4)
        with pytest.raises(BufferRangeError):
            buf.read_bytes(-1, 1)

    def test_write_never_grows(self):
        buf = ByteBuffer(bytes(4))
        assert buf.write_bytes(2, 4, 0x01020304) is False
        assert buf.write_raw(3, b"ab") is False
        assert len(buf) == 4
        assert buf.to_bytes() == bytes(4)

    def test_write_bytes_masks_to_width(self):
        buf = ByteBuffer(bytes(2))
        assert buf.write_bytes(0, 2, 0x12345)
        assert buf.to_bytes() == b"\x45\x23"

    def test_view_is_readonly(self):
        buf = ByteBuffer(b"abcdef")
        view = buf.view(1, 3)
        assert bytes(view) == b"bc"
        with pytest.raises(TypeError):
            view[0] = 0

    def test_truncate_and_append(self):
        buf = ByteBuffer(b"abcdef")
        buf.truncate(3)
        buf.append(b"XY")
        assert bytes(buf) == b"abcXY"
        assert buf.find(b"XY") == 3


class TestReadBits:
    def test_small_window_with_shift(self):
        # 0b1011_0000 -> 3 bits at shift 4 = 0b011
        buf = ByteBuffer(b"\xB0\x00\x00\x00")
        assert buf.read_bits(0, 3, 4) == 0b011

    def test_large_window(self):
        buf = ByteBuffer(b"\x00\xFF\xFF\xFF\xFF\x01\x00\x00")
        # 32 set bits starting at bit 8, then one more at bit 40
        assert buf.read_bits(1, 33, 0) == 0x1FFFFFFFF
        assert buf.read_bits(0, 36, 7) == 0x3FFFFFFFE

    def test_window_zero_extended_at_end(self):
        buf = ByteBuffer(b"\x00\xFF")
        assert buf.read_bits(1, 8) == 0xFF

    def test_bits_past_end_rejected(self):
        buf = ByteBuffer(b"\xFF")
        with pytest.raises(BufferRangeError):
            buf.read_bits(0, 9)

    def test_bad_shift_rejected(self):
        buf = ByteBuffer(bytes(8))
        with pytest.raises(ValueError):
            buf.read_bits(0, 4, 8)


class TestBitWriter:
    def test_stats_stream_layout(self):
        writer = BitWriter()
        writer.write(0, 9)        # strength id
        writer.write(25, 10)
        writer.write(12, 9)       # level id
        writer.write(3, 7)
        writer.write(0x1FF, 9)    # end marker
        assert writer.bit_length == 44
        assert writer.to_bytes() == bytes.fromhex("00326030f80f")

    def test_values_are_masked(self):
        writer = BitWriter()
        writer.write(0xFFFF, 4)
        assert writer.to_bytes() == b"\x0F"

    def test_read_back(self):
        writer = BitWriter()
        writer.write(5, 3)
        writer.write(1234567, 25)
        buf = ByteBuffer(writer.to_bytes())
        assert buf.read_bits(0, 3) == 5
        assert buf.read_bits(0, 25, 3) == 1234567
