import pytest

from hachoir_udf import LBAddress
from hachoir_udf.errors import CharsetError
from hachoir_udf.parser.file_system.udf_directory import (
    FID_HEADER_SIZE, decode_cs0, decode_dstring, iter_file_identifiers)

from udf_image import FID_DELETED, FID_DIRECTORY, FID_HIDDEN, cs0, dstring, fid, tag_bytes


@pytest.mark.parametrize("p_compression", [8, 254])
def test_cs0_8bit(p_compression):
    assert decode_cs0(cs0("readme.txt", p_compression)) == "readme.txt"
    assert decode_cs0(cs0("caf\xe9", p_compression)) == "caf\xe9"


@pytest.mark.parametrize("p_compression", [16, 255])
def test_cs0_16bit(p_compression):
    assert decode_cs0(cs0("日本", p_compression)) == "日本"
    assert decode_cs0(b"\x10\x00A\x00B") == "AB"


def test_cs0_errors():
    with pytest.raises(CharsetError) as err:
        decode_cs0(b"\x03abc")
    assert err.value.compression_id == 3
    with pytest.raises(CharsetError):
        decode_cs0(b"")
    with pytest.raises(CharsetError):
        decode_cs0(b"\x10\x00A\x00")


def test_dstring():
    assert decode_dstring(dstring("LABEL", 32)) == "LABEL"
    assert decode_dstring(bytes(32)) == ""


def test_parent_entry():
    l_entries = list(iter_file_identifiers(fid(None, (0, 5), FID_DIRECTORY)))
    assert len(l_entries) == 1
    assert l_entries[0].is_parent
    assert l_entries[0].is_directory
    assert l_entries[0].name is None
    assert l_entries[0].icb_location == LBAddress(0, 5)


def test_padding_keeps_entries_aligned():
    l_names = ["a", "ab", "abc", "abcd", "abcde"]
    l_data = b"".join(fid(l_name, (0, l_index)) for l_index, l_name in enumerate(l_names))
    l_entries = list(iter_file_identifiers(l_data))
    assert [l_entry.name for l_entry in l_entries] == l_names
    assert sum(l_entry.size for l_entry in l_entries) == len(l_data)
    for l_entry in l_entries:
        assert l_entry.size % 4 == 0
        assert l_entry.padding == l_entry.size - (FID_HEADER_SIZE + l_entry.identifier_length
                                                  + l_entry.implementation_use_length)
        assert 0 <= l_entry.padding < 4


def test_implementation_use_before_identifier():
    l_impl_use = b"\xaa" * 6
    l_data = fid("X", (0, 9), p_impl_use=l_impl_use) + fid("Y", (0, 10))
    l_entries = list(iter_file_identifiers(l_data))
    assert l_entries[0].implementation_use == l_impl_use
    assert l_entries[0].implementation_use_length == 6
    assert l_entries[0].name == "X"
    assert l_entries[1].name == "Y"


def test_deleted_entries():
    l_data = fid("gone", (0, 1), FID_DELETED) + fid("kept", (0, 2), FID_HIDDEN)
    assert [l_entry.name for l_entry in iter_file_identifiers(l_data)] == ["kept"]
    l_entries = list(iter_file_identifiers(l_data, True))
    assert [l_entry.name for l_entry in l_entries] == ["gone", "kept"]
    assert l_entries[0].is_deleted
    assert l_entries[1].is_hidden


def test_bad_name_does_not_stop_listing():
    l_data = fid("bad", (0, 1), p_identifier=b"\x07bad") + fid("good", (0, 2))
    l_entries = list(iter_file_identifiers(l_data))
    assert len(l_entries) == 2
    assert l_entries[0].name is None
    assert isinstance(l_entries[0].name_error, CharsetError)
    assert l_entries[1].name == "good"
    assert l_entries[1].name_error is None


def test_stops_at_other_descriptor():
    l_data = fid("a", (0, 1)) + tag_bytes(261) + bytes(32) + fid("b", (0, 2))
    assert [l_entry.name for l_entry in iter_file_identifiers(l_data)] == ["a"]


def test_trailing_bytes_ignored():
    l_data = fid("a", (0, 1)) + fid("b", (0, 2)) + bytes(20)
    assert [l_entry.name for l_entry in iter_file_identifiers(l_data)] == ["a", "b"]


def test_empty_directory():
    assert list(iter_file_identifiers(b"")) == []
