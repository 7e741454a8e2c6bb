# tests/test_bfast.py
"""BFast container parsing and packing."""

import numpy as np
import pytest

from vimscene.bfast import (
    BFAST_MAGIC,
    HEADER_SIZE,
    pack_bfast,
    parse_bfast,
    split_names,
)
from vimscene.errors import MalformedContainer


def _raw_container(words, descriptors, data_end, payload=b""):
    """Hand-assembled container for layout tests."""
    out = bytearray(data_end)
    out[0:HEADER_SIZE] = np.asarray(words, dtype="<i4").tobytes()
    table = np.asarray(descriptors, dtype="<i4").reshape(-1)
    out[HEADER_SIZE:HEADER_SIZE + table.nbytes] = table.tobytes()
    return out, table


class TestRoundTrip:

    @pytest.mark.parametrize("count", [0, 1, 5])
    def test_pack_then_parse(self, count):
        names = [f"buf{i}" for i in range(count)]
        buffers = [bytes(range(i * 3)) for i in range(count)]
        bfast = parse_bfast(pack_bfast(names, buffers))
        assert bfast.names == names
        assert [b.tobytes() for b in bfast.buffers] == buffers
        assert len(bfast.names) == len(bfast.buffers)
        assert bfast.header.num_arrays == len(bfast.buffers) + 1

    def test_buffers_are_views(self):
        data = bytearray(pack_bfast(["a"], [b"\x00" * 8]))
        bfast = parse_bfast(data)
        assert not bfast.buffers[0].flags["OWNDATA"]

    def test_alignment(self):
        data = pack_bfast(["x", "y"], [b"1", b"22"])
        bfast = parse_bfast(data)
        assert bfast.header.data_start % 64 == 0

    def test_get_and_to_dict(self):
        bfast = parse_bfast(pack_bfast(["a", "b"], [b"A", b"BB"]))
        assert bfast.get("b").tobytes() == b"BB"
        assert bfast.get("missing") is None
        assert set(bfast.to_dict()) == {"a", "b"}

    def test_nested_with_offset(self):
        inner = pack_bfast(["leaf"], [b"payload"])
        outer = pack_bfast(["inner"], [inner])
        child = parse_bfast(outer).buffers[0]
        assert parse_bfast(child).buffers[0].tobytes() == b"payload"

        padded = b"\xff" * 16 + inner
        bfast = parse_bfast(padded, byte_offset=16, byte_length=len(inner))
        assert bfast.names == ["leaf"]


class TestScenario:

    def test_single_named_buffer(self):
        # header, two descriptors, names "a\0" at 96, 8-byte payload at 128
        data_end = 136
        words = [BFAST_MAGIC, 0, 96, 0, data_end, 0, 2, 0]
        descriptors = [[96, 0, 98, 0], [128, 0, 136, 0]]
        out, _ = _raw_container(words, descriptors, data_end)
        out[96:98] = b"a\x00"
        out[128:136] = b"ABCDEFGH"
        bfast = parse_bfast(bytes(out))
        assert bfast.names == ["a"]
        assert [b.tobytes() for b in bfast.buffers] == [b"ABCDEFGH"]


class TestMalformed:

    def _valid(self):
        return bytearray(pack_bfast(["a"], [b"12345678"]))

    def _set_word(self, data, index, value):
        data[index * 4:index * 4 + 4] = np.asarray([value], dtype="<i4").tobytes()

    def test_too_small(self):
        with pytest.raises(MalformedContainer):
            parse_bfast(b"\x00" * 8)

    def test_bad_magic(self):
        data = self._valid()
        self._set_word(data, 0, 0x1234)
        with pytest.raises(MalformedContainer, match="magic"):
            parse_bfast(bytes(data))

    @pytest.mark.parametrize("word", [1, 3, 5, 7])
    def test_reserved_header_words(self, word):
        data = self._valid()
        self._set_word(data, word, 1)
        with pytest.raises(MalformedContainer):
            parse_bfast(bytes(data))

    @pytest.mark.parametrize("word", [9, 11])
    def test_reserved_descriptor_words(self, word):
        data = self._valid()
        self._set_word(data, word, 7)
        with pytest.raises(MalformedContainer, match="Expected 0"):
            parse_bfast(bytes(data))

    def test_begin_before_data_start(self):
        data = self._valid()
        self._set_word(data, 8, 0)
        with pytest.raises(MalformedContainer, match="start is out of range"):
            parse_bfast(bytes(data))

    def test_end_past_data_end(self):
        data = self._valid()
        self._set_word(data, 14, len(data) + 64)
        with pytest.raises(MalformedContainer, match="end is out of range"):
            parse_bfast(bytes(data))

    def test_end_before_begin(self):
        data = self._valid()
        begin = int(np.frombuffer(bytes(data[48:52]), dtype="<i4")[0])
        self._set_word(data, 14, begin - 1)
        with pytest.raises(MalformedContainer):
            parse_bfast(bytes(data))

    def test_data_end_past_buffer(self):
        data = self._valid()
        with pytest.raises(MalformedContainer):
            parse_bfast(bytes(data[:-4]))

    def test_zero_arrays(self):
        words = [BFAST_MAGIC, 0, 64, 0, 64, 0, 0, 0]
        out, _ = _raw_container(words, [], 64)
        with pytest.raises(MalformedContainer, match="at least one buffer"):
            parse_bfast(bytes(out))

    def test_names_not_utf8(self):
        data = self._valid()
        names_begin = int(np.frombuffer(bytes(data[32:36]), dtype="<i4")[0])
        data[names_begin] = 0xFF
        with pytest.raises(MalformedContainer):
            parse_bfast(bytes(data))

    def test_name_count_mismatch(self):
        data = pack_bfast(["a", "b"], [b"1", b"2"])
        bfast = parse_bfast(data)
        names_begin = bfast.header.data_start
        corrupt = bytearray(data)
        # rewrite "a\0b\0" as a single name
        corrupt[names_begin:names_begin + 4] = b"ab_\x00"
        with pytest.raises(MalformedContainer, match="number of names"):
            parse_bfast(bytes(corrupt))

    def test_bad_offset_arguments(self):
        data = pack_bfast([], [])
        with pytest.raises(MalformedContainer):
            parse_bfast(data, byte_offset=len(data) + 1)
        with pytest.raises(MalformedContainer):
            parse_bfast(data, byte_offset=0, byte_length=len(data) + 1)


class TestSplitNames:

    def test_empty(self):
        assert split_names(np.zeros(0, dtype=np.uint8)) == []

    def test_single_trailing_nul_stripped(self):
        raw = np.frombuffer(b"a\x00\x00", dtype=np.uint8)
        assert split_names(raw) == ["a", ""]

    def test_missing_trailing_nul(self):
        with pytest.raises(MalformedContainer):
            split_names(np.frombuffer(b"abc", dtype=np.uint8))

    def test_invalid_utf8(self):
        with pytest.raises(MalformedContainer, match="UTF-8") as info:
            split_names(np.frombuffer(b"\xff\x00", dtype=np.uint8))
        assert isinstance(info.value.__cause__, UnicodeDecodeError)


class TestPackValidation:

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            pack_bfast(["a"], [])

    def test_nul_in_name(self):
        with pytest.raises(ValueError):
            pack_bfast(["a\0b"], [b""])
