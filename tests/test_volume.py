from types import SimpleNamespace

import pytest

from hachoir.stream import StringInputStream

from hachoir_udf import LBAddress, UDFVolume, list_root_directory
from hachoir_udf.errors import (
    FormatError, ShortReadError, TagMismatchError, UnresolvedReferenceError, UnsupportedFormatError)
from hachoir_udf.parser.file_system.udf_volume import (
    DirectPartition, MetadataPartition, PartitionMapTable, UnsupportedPartition,
    VolumeDescriptors, locate_anchor)

from udf_image import (
    FID_DIRECTORY, FILE_TYPE_DIRECTORY, FILE_TYPE_METADATA, PARTITION_START, ROOT_BLOCK,
    UDFImage, fid, file_entry, generic_map, metadata_map, minimal_image, type1_map, type2_map)


def descriptors(*p_partitions):
    l_result = VolumeDescriptors()
    for l_number, l_start in p_partitions:
        l_result.partitions.append(SimpleNamespace(number=l_number, start=l_start, length=1000))
    return l_result


# anchor

def test_anchor_2048_preferred_over_512():
    l_image = UDFImage(512, 1100)
    l_image.anchor(32)
    # a second anchor where a 2048 bytes sector volume would have it
    l_image.sector_size = 2048
    l_image.anchor(40)
    l_anchor = locate_anchor(l_image.stream())
    assert l_anchor.sector_size == 2048
    assert l_anchor.vds_location == 40


def test_anchor_512():
    l_image = UDFImage(512, 300)
    l_image.anchor(32)
    l_anchor = locate_anchor(l_image.stream())
    assert l_anchor.sector_size == 512
    assert l_anchor.offset == 256 * 512
    assert l_anchor.vds_length == 16


def test_anchor_4096():
    l_image = UDFImage(4096, 260)
    l_image.anchor(32)
    assert locate_anchor(l_image.stream()).sector_size == 4096


def test_anchor_vds_length_rounded_up():
    l_image = UDFImage(2048, 300)
    l_image.anchor(32, 0)
    l_offset = l_image.sector(256) + 16
    l_image.data[l_offset:l_offset + 4] = (2048 * 3 + 1).to_bytes(4, "little")
    assert locate_anchor(l_image.stream()).vds_length == 4


def test_anchor_truncated_source():
    l_stream = StringInputStream(bytes(2048 * 256 - 10))
    with pytest.raises(ShortReadError):
        locate_anchor(l_stream)


def test_anchor_missing():
    l_stream = StringInputStream(bytes(4096 * 257))
    with pytest.raises(TagMismatchError):
        locate_anchor(l_stream)


# volume descriptor sequence

def test_logical_volume_with_highest_sequence_number():
    l_image = minimal_image()
    l_image.logical_volume(35, [type1_map(0)], p_vds_number=1, p_identifier="OLD")
    l_image.logical_volume(36, [type1_map(0)], p_vds_number=5, p_identifier="NEW")
    l_image.logical_volume(37, [type1_map(0)], p_vds_number=3, p_identifier="OTHER")
    l_volume = UDFVolume(l_image.stream())
    assert l_volume.identifier == "NEW"


def test_first_partition_descriptor_wins():
    l_image = minimal_image()
    l_image.partition(35, 0, 150, 10)
    l_volume = UDFVolume(l_image.stream())
    assert l_volume.partition_maps[0].start == PARTITION_START


def test_reserve_sequence_fallback():
    l_image = minimal_image()
    # main sequence loses its logical volume descriptor
    l_image.put(l_image.sector(33), bytes(2048))
    l_image.anchor(32, 16, 64, 16)
    l_image.partition(64, 0, PARTITION_START, 100)
    l_image.logical_volume(65, [type1_map(0)], p_identifier="RESERVE")
    l_volume = UDFVolume(l_image.stream())
    assert l_volume.identifier == "RESERVE"
    assert [l_entry.name for l_entry in l_volume.root_directory()] == [None, "A"]


def test_no_logical_volume():
    l_image = minimal_image()
    l_image.put(l_image.sector(33), bytes(2048))
    with pytest.raises(TagMismatchError):
        UDFVolume(l_image.stream())


def test_verified_checksums(image):
    l_volume = UDFVolume(image.stream(), p_verify_checksum=True)
    assert [l_entry.name for l_entry in l_volume.root_directory()] == [None, "A"]


# partition map table

def test_type1_map():
    l_table = PartitionMapTable().load(type1_map(0), 1, descriptors((0, 100)))
    assert len(l_table) == 1
    assert isinstance(l_table[0], DirectPartition)
    assert l_table[0].start == 100


def test_type1_map_bad_length():
    with pytest.raises(FormatError):
        PartitionMapTable().load(type1_map(0, p_length=8), 1, descriptors((0, 100)))


@pytest.mark.parametrize("p_length", [0, 1])
def test_map_length_too_small(p_length):
    l_data = bytes([1, p_length]) + bytes(6)
    with pytest.raises(FormatError):
        PartitionMapTable().load(l_data, 1, descriptors((0, 100)))


def test_type1_map_unknown_partition():
    with pytest.raises(UnresolvedReferenceError):
        PartitionMapTable().load(type1_map(3), 1, descriptors((0, 100)))


def test_unknown_map_type_keeps_indices():
    l_data = generic_map(7, 10) + type1_map(0)
    l_table = PartitionMapTable().load(l_data, 2, descriptors((0, 100)))
    assert isinstance(l_table[0], UnsupportedPartition)
    assert isinstance(l_table[1], DirectPartition)
    l_volume = SimpleNamespace(partition_maps=l_table, sector_size=2048)
    with pytest.raises(UnsupportedFormatError):
        l_table[0].to_physical(l_volume, 0)
    assert l_table[1].to_physical(l_volume, 2) == 102 * 2048


def test_sparable_map_unsupported():
    l_data = type1_map(0) + type2_map("*UDF Sparable Partition", 0, 48)
    l_table = PartitionMapTable().load(l_data, 2, descriptors((0, 100)))
    assert isinstance(l_table[1], UnsupportedPartition)
    assert l_table[1].identifier == "*UDF Sparable Partition"


def test_metadata_map_needs_direct_base():
    with pytest.raises(UnresolvedReferenceError):
        PartitionMapTable().load(metadata_map(0, 10, 20), 1, descriptors((0, 100)))


def test_metadata_map_bad_length():
    l_data = type1_map(0) + type2_map("*UDF Metadata Partition", 0, 60)
    with pytest.raises(FormatError):
        PartitionMapTable().load(l_data, 2, descriptors((0, 100)))


def test_map_index_out_of_range():
    l_table = PartitionMapTable().load(type1_map(0), 1, descriptors((0, 100)))
    with pytest.raises(UnresolvedReferenceError):
        l_table[1]


# address translation

def test_direct_translation(image):
    l_volume = UDFVolume(image.stream())
    assert l_volume.sector_size == 2048
    assert l_volume.resolve(0, ROOT_BLOCK) == (PARTITION_START + ROOT_BLOCK) * 2048
    assert l_volume.resolve_address(LBAddress(0, 0)) == PARTITION_START * 2048


def test_unresolved_partition_reference(image):
    l_volume = UDFVolume(image.stream())
    with pytest.raises(UnresolvedReferenceError):
        l_volume.resolve(4, 0)


def metadata_image(p_extents, p_mirror_extents=None, p_file_valid=True):
    l_image = minimal_image()
    l_image.logical_volume(33, [type1_map(0), metadata_map(0, 10, 20)])

    def block(p_block):
        return l_image.sector(PARTITION_START + p_block)

    l_length = sum(l_extent[0] for l_extent in p_extents)
    if p_file_valid:
        l_image.put(block(10), file_entry(l_length, p_extents, p_file_type=FILE_TYPE_METADATA, p_extended=True))
    if p_mirror_extents is not None:
        l_length = sum(l_extent[0] for l_extent in p_mirror_extents)
        l_image.put(block(20), file_entry(l_length, p_mirror_extents, p_file_type=FILE_TYPE_METADATA,
                                          p_extended=True))
    return l_image


def test_metadata_translation():
    l_volume = UDFVolume(metadata_image([(10 * 2048, 30)]).stream())
    assert isinstance(l_volume.partition_maps[1], MetadataPartition)
    assert l_volume.resolve(1, 2) == (100 + 30 + 2) * 2048


def test_metadata_translation_several_extents():
    l_volume = UDFVolume(metadata_image([(2 * 2048, 30), (4 * 2048, 50)]).stream())
    assert l_volume.resolve(1, 1) == (100 + 30 + 1) * 2048
    assert l_volume.resolve(1, 3) == (100 + 50 + 1) * 2048
    with pytest.raises(UnresolvedReferenceError):
        l_volume.resolve(1, 6)


def test_metadata_partial_block_extent():
    l_volume = UDFVolume(metadata_image([(2048 + 1, 30), (2048, 50)]).stream())
    assert l_volume.resolve(1, 1) == (100 + 30 + 1) * 2048
    assert l_volume.resolve(1, 2) == (100 + 50) * 2048


def test_metadata_mirror_fallback():
    l_image = metadata_image([(2048, 30)], [(4 * 2048, 40)], p_file_valid=False)
    l_volume = UDFVolume(l_image.stream())
    assert l_volume.resolve(1, 3) == (100 + 40 + 3) * 2048


def test_metadata_without_file():
    l_volume = UDFVolume(metadata_image([(2048, 30)], p_file_valid=False).stream())
    with pytest.raises(TagMismatchError):
        l_volume.resolve(1, 0)


@pytest.mark.parametrize("p_entries", [
    [MetadataPartition(0, 10, 20, 30)],
    [MetadataPartition(1, 10, 20, 30), MetadataPartition(0, 10, 20, 30)],
])
def test_metadata_base_must_be_direct(p_entries):
    l_table = PartitionMapTable(p_entries)
    l_volume = SimpleNamespace(partition_maps=l_table, sector_size=2048)
    with pytest.raises(UnresolvedReferenceError):
        l_table[0].to_physical(l_volume, 0)


def test_root_directory_through_metadata_partition():
    l_image = metadata_image([(8 * 2048, 30)])

    def block(p_block):
        return l_image.sector(PARTITION_START + 30 + p_block)

    # file set, root entry and directory now live in the metadata partition
    l_image.logical_volume(33, [type1_map(0), metadata_map(0, 10, 20)], p_file_set=(1, 0))
    l_image.file_set(block(0), (1, 1))
    l_image.put(block(1), file_entry(2048, [(2048, 2)], p_file_type=FILE_TYPE_DIRECTORY))
    l_image.put(block(2), fid(None, (1, 1), FID_DIRECTORY) + fid("B", (1, 3), FID_DIRECTORY))
    l_entries = list_root_directory(l_image.stream())
    assert [l_entry.name for l_entry in l_entries] == [None, "B"]
    assert l_entries[1].is_directory
    assert l_entries[1].icb_location == LBAddress(1, 3)


# session

def test_list_root_directory(image):
    l_volume = UDFVolume(image.stream())
    assert l_volume.read_file_set().root_icb == LBAddress(0, ROOT_BLOCK)
    assert l_volume.root_entry().offset == (100 + 5) * 2048

    l_entries = list_root_directory(image.stream())
    assert len(l_entries) == 2
    assert l_entries[0].is_parent
    assert l_entries[0].name is None
    assert l_entries[1].name == "A"
    assert not l_entries[1].is_directory
    assert l_entries[1].icb_location == LBAddress(0, 7)


def test_file_set_identifiers(image):
    l_file_set = UDFVolume(image.stream()).read_file_set()
    assert l_file_set.identifier == "TESTFS"
    assert l_file_set.logical_volume_identifier == "TESTVOL"
    assert l_file_set.recording_time.year == 2026


def test_list_root_directory_512():
    l_entries = list_root_directory(minimal_image(512).stream())
    assert [l_entry.name for l_entry in l_entries] == [None, "A"]


def test_read_file_data(image):
    l_volume = UDFVolume(image.stream())
    l_file = l_volume.root_directory()
    next(l_file)
    l_entry = next(l_file)
    l_info = l_volume.read_file_entry(l_entry.icb_location)
    assert l_info.read_data(l_volume, l_entry.icb_location.partition) == b"abc"


def test_truncated_image():
    l_data = minimal_image().bytes()
    l_stream = StringInputStream(l_data[:2048 * 256 - 10])
    with pytest.raises(ShortReadError):
        list_root_directory(l_stream)


def test_metadata_map_locations():
    l_data = type1_map(0) + metadata_map(0, 10, 20, 40)
    l_table = PartitionMapTable().load(l_data, 2, descriptors((0, 100)))
    l_metadata = l_table[1]
    assert l_metadata.base_index == 0
    assert l_metadata.metadata_file_location == LBAddress(0, 10)
    assert l_metadata.metadata_mirror_location == LBAddress(0, 20)
    assert l_metadata.metadata_bitmap_block == 40


def test_unknown_map_type_does_not_block_listing():
    l_image = minimal_image()
    l_image.logical_volume(33, [type1_map(0), generic_map(7, 12)])
    l_volume = UDFVolume(l_image.stream())
    assert isinstance(l_volume.partition_maps[1], UnsupportedPartition)
    assert [l_entry.name for l_entry in l_volume.root_directory()] == [None, "A"]
    with pytest.raises(UnsupportedFormatError):
        l_volume.resolve(1, 0)
