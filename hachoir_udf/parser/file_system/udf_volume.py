"""
UDF volume session: anchor location, volume descriptor sequence scan,
partition map table and logical block address translation.

Documents:
- Standard ECMA-167 3rd edition, part 3 (volume structure)
- OSTA Universal Disk Format Specification, revision 2.60, 2.2

The partition map table is the shared context of every address
translation. A metadata partition (UDF 2.50+) has no fixed location: its
blocks live in a metadata file recorded on a direct "base" partition, so
translating an address through it reads that file's entry first, then
translates again through the base partition. The base is always a direct
partition, which bounds the recursion to one level.
"""

from hachoir.core.log import Logger

from hachoir_udf.errors import (
    ShortReadError, TagMismatchError, UnresolvedReferenceError,
    UnsupportedFormatError, CharsetError, FormatError)
from hachoir_udf.parser.file_system.udf_descriptors import (
    TAG_ANCHOR, TAG_PARTITION, TAG_LOGICAL_VOLUME, TAG_FILE_SET, TAG_NAME,
    AnchorVolumeDescriptorPointer, PartitionDescriptor, LogicalVolumeDescriptor,
    GenericPartitionMap, Type1PartitionMap, Type2PartitionMapHeader,
    MetadataPartitionMap, FileSetDescriptor, LBAddress)
from hachoir_udf.parser.file_system.udf_reader import (
    RecordCursor, read_bytes, read_record, read_tagged, peek_tag, record_size, tag_matches)
from hachoir_udf.parser.file_system.udf_icb import read_file_entry
from hachoir_udf.parser.file_system.udf_directory import iter_file_identifiers, decode_dstring

# probing order is not part of the standard, keep it stable
SECTOR_SIZES = (2048, 512, 4096)
ANCHOR_SECTOR = 256

MAP_TYPE_1 = 1
MAP_TYPE_2 = 2

TYPE1_MAP_LENGTH = record_size(Type1PartitionMap)
METADATA_MAP_LENGTH = record_size(MetadataPartitionMap)

METADATA_PARTITION_ID = "*UDF Metadata Partition"
SPARABLE_PARTITION_ID = "*UDF Sparable Partition"
VIRTUAL_PARTITION_ID = "*UDF Virtual Partition"


def sectors(p_length, p_sector_size):
    """
    Number of sectors covered by p_length bytes
    """
    return (p_length + p_sector_size - 1) // p_sector_size


class AnchorPointer:
    def __init__(self, p_sector_size, p_vds_location, p_vds_length,
                 p_reserve_location=0, p_reserve_length=0, p_offset=None):
        self.sector_size = p_sector_size
        self.vds_location = p_vds_location
        self.vds_length = p_vds_length
        self.reserve_location = p_reserve_location
        self.reserve_length = p_reserve_length
        self.offset = p_offset

    @classmethod
    def from_record(cls, p_sector_size, p_record, p_offset):
        return cls(p_sector_size,
                   p_record["main_vds/location"].value,
                   sectors(p_record["main_vds/length"].value, p_sector_size),
                   p_record["reserve_vds/location"].value,
                   sectors(p_record["reserve_vds/length"].value, p_sector_size),
                   p_offset)

    def __repr__(self):
        return "<AnchorPointer sector size %u, VDS at sector %u (%u sectors)>" % (
            self.sector_size, self.vds_location, self.vds_length)


def locate_anchor(p_stream, p_sector_sizes=SECTOR_SIZES, p_anchor_sector=ANCHOR_SECTOR, p_verify_checksum=False):
    """
    Find the Anchor Volume Descriptor Pointer, trying each sector size in
    order; the first one whose anchor tag validates wins.

    A candidate lying past the end of the stream is skipped. When no
    candidate validates, the first short read is raised if there was one.
    """
    l_short_read = None
    for l_sector_size in p_sector_sizes:
        l_offset = l_sector_size * p_anchor_sector
        try:
            l_avdp = read_record(p_stream, l_offset, AnchorVolumeDescriptorPointer, "anchor")
        except ShortReadError as err:
            if l_short_read is None:
                l_short_read = err
            continue
        if tag_matches(l_avdp["tag"], TAG_ANCHOR, p_verify_checksum):
            return AnchorPointer.from_record(l_sector_size, l_avdp, l_offset)
    if l_short_read is not None:
        raise l_short_read
    raise TagMismatchError(p_sector_sizes[0] * p_anchor_sector, TAG_ANCHOR, None)


class Partition:
    """
    Partition Descriptor found in the volume descriptor sequence
    """

    def __init__(self, p_record, p_offset):
        self.offset = p_offset
        self.number = p_record["partition_number"].value
        self.start = p_record["start"].value
        self.length = p_record["length"].value
        self.access_type = p_record["access_type"].value
        self.vds_number = p_record["vds_number"].value
        self.contents = p_record["contents/identifier"].value

    def __repr__(self):
        return "<Partition %u: %u sectors at sector %u>" % (self.number, self.length, self.start)


class LogicalVolume:
    """
    Logical Volume Descriptor with its raw partition map table
    """

    def __init__(self, p_record, p_map_table, p_offset):
        self.offset = p_offset
        self.record = p_record
        self.vds_number = p_record["vds_number"].value
        self.block_size = p_record["block_size"].value
        self.domain = p_record["domain/identifier"].value
        self.file_set_location = LBAddress.from_record(p_record["file_set/location"])
        self.file_set_length = p_record["file_set/length"].value & 0x3FFFFFFF
        self.map_count = p_record["map_count"].value
        self.map_table = p_map_table
        self.identifier_bytes = p_record["identifier"].value


class VolumeDescriptors:
    def __init__(self):
        self.partitions = []
        self.logical_volume = None

    def find_partition(self, p_number):
        """
        First Partition Descriptor numbered p_number, None if there is none
        """
        for l_partition in self.partitions:
            if l_partition.number == p_number:
                return l_partition
        return None


def scan_volume_descriptors(p_stream, p_sector_size, p_location, p_length, p_verify_checksum=False, p_debug=False):
    """
    Visit the p_length sectors of a volume descriptor sequence, collecting
    every Partition Descriptor and the prevailing Logical Volume Descriptor
    (highest sequence number, last one on ties). Other descriptors are
    skipped.
    """
    l_result = VolumeDescriptors()
    for l_index in range(p_length):
        l_offset = (p_location + l_index) * p_sector_size
        l_tag = peek_tag(p_stream, l_offset, (TAG_PARTITION, TAG_LOGICAL_VOLUME), p_verify_checksum)
        if l_tag is None:
            if p_debug:
                print("VDS sector %u: skipped" % (p_location + l_index))
            continue
        if p_debug:
            print("VDS sector %u: %s" % (p_location + l_index, TAG_NAME[l_tag["tag_id"].value]))
        if l_tag["tag_id"].value == TAG_PARTITION:
            l_record = read_record(p_stream, l_offset, PartitionDescriptor, "partition")
            l_result.partitions.append(Partition(l_record, l_offset))
        else:
            l_record = read_record(p_stream, l_offset, LogicalVolumeDescriptor, "logical_volume")
            l_current = l_result.logical_volume
            if l_current is not None and l_current.vds_number > l_record["vds_number"].value:
                continue
            l_map_table = read_bytes(p_stream, l_offset + record_size(LogicalVolumeDescriptor),
                                     l_record["map_table_length"].value)
            l_result.logical_volume = LogicalVolume(l_record, l_map_table, l_offset)
    return l_result


class DirectPartition:
    """
    Type 1 partition map entry: blocks are sectors counted from the
    partition start
    """

    def __init__(self, p_number, p_start, p_length):
        self.number = p_number
        self.start = p_start
        self.length = p_length

    def to_physical(self, p_volume, p_block):
        return (self.start + p_block) * p_volume.sector_size

    def __repr__(self):
        return "<DirectPartition %u at sector %u>" % (self.number, self.start)


class MetadataPartition:
    """
    Metadata partition map entry: blocks are located through the metadata
    file recorded on the direct partition at index base_index
    """

    def __init__(self, p_base_index, p_metadata_file, p_metadata_mirror, p_metadata_bitmap,
                 p_allocation_unit=0, p_alignment_unit=0, p_flags=0, p_number=None):
        self.base_index = p_base_index
        self.metadata_file_block = p_metadata_file
        self.metadata_mirror_block = p_metadata_mirror
        self.metadata_bitmap_block = p_metadata_bitmap
        self.allocation_unit_size = p_allocation_unit
        self.alignment_unit_size = p_alignment_unit
        self.flags = p_flags
        self.number = p_number

    @property
    def metadata_file_location(self):
        return LBAddress(self.base_index, self.metadata_file_block)

    @property
    def metadata_mirror_location(self):
        return LBAddress(self.base_index, self.metadata_mirror_block)

    def metadata_extents(self, p_volume):
        """
        Extents of the metadata file, read from the mirror file when the
        main file entry does not validate
        """
        l_locations = [self.metadata_file_location]
        if self.metadata_mirror_block != self.metadata_file_block:
            l_locations.append(self.metadata_mirror_location)
        l_error = None
        for l_location in l_locations:
            l_offset = p_volume.resolve_address(l_location)
            try:
                l_entry = read_file_entry(p_volume.stream, l_offset, p_volume.verify_checksum)
            except TagMismatchError as err:
                p_volume.warning("Metadata file entry at %r is unreadable: %s" % (l_location, err))
                l_error = err
                continue
            return l_entry.short_extents(p_volume.stream)
        raise l_error

    def to_physical(self, p_volume, p_block):
        l_base = p_volume.partition_maps.base_of(self)
        l_remaining = p_block
        for l_extent in self.metadata_extents(p_volume):
            l_count = sectors(l_extent.length, p_volume.sector_size)
            if l_remaining < l_count:
                return l_base.to_physical(p_volume, l_extent.position + l_remaining)
            l_remaining -= l_count
        raise UnresolvedReferenceError("Block %u lies outside of the metadata file" % p_block)

    def __repr__(self):
        return "<MetadataPartition on map %u, metadata file at block %u>" % (
            self.base_index, self.metadata_file_block)


class UnsupportedPartition:
    """
    Placeholder for a partition map type this reader does not implement,
    keeping the indices of the following maps right
    """

    def __init__(self, p_map_type, p_identifier, p_length):
        self.map_type = p_map_type
        self.identifier = p_identifier
        self.length = p_length

    def to_physical(self, p_volume, p_block):
        if self.identifier:
            l_kind = "%s (type %u)" % (self.identifier, self.map_type)
        else:
            l_kind = "type %u" % self.map_type
        raise UnsupportedFormatError("Partition map %s is not supported" % l_kind)

    def __repr__(self):
        return "<UnsupportedPartition type %u %s>" % (self.map_type, self.identifier or "")


class PartitionMapTable(Logger):
    """
    Partition map table of the logical volume. The index of an entry is
    the partition reference number used by logical block addresses.
    """

    def __init__(self, p_entries=None):
        self.entries = list(p_entries or ())

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def __getitem__(self, p_index):
        if not (0 <= p_index < len(self.entries)):
            raise UnresolvedReferenceError(
                "Partition reference %s outside of the partition map table (%u entries)"
                % (p_index, len(self.entries)))
        return self.entries[p_index]

    def find_direct(self, p_number):
        """
        Index of the direct partition numbered p_number, None if none
        """
        for l_index, l_entry in enumerate(self.entries):
            if isinstance(l_entry, DirectPartition) and l_entry.number == p_number:
                return l_index
        return None

    def base_of(self, p_entry):
        l_base = self[p_entry.base_index]
        if not isinstance(l_base, DirectPartition):
            raise UnresolvedReferenceError(
                "Base partition map %u of a metadata partition is not a direct partition" % p_entry.base_index)
        return l_base

    def load(self, p_map_table, p_map_count, p_descriptors):
        """
        Decode p_map_count partition maps from the raw table bytes,
        resolving type 1 maps against the Partition Descriptors.
        """
        if p_map_count == 0:
            return self
        l_cursor = RecordCursor.from_bytes(p_map_table)
        for l_index in range(p_map_count):
            l_start = l_cursor.offset
            l_header = l_cursor.peek(GenericPartitionMap, "map")
            l_type = l_header["type"].value
            l_length = l_header["length"].value
            if l_length < record_size(GenericPartitionMap):
                raise FormatError("Partition map %u declares a length of %u bytes" % (l_index, l_length))
            if l_type == MAP_TYPE_1:
                l_entry = self._load_type1(l_cursor, l_index, l_length, p_descriptors)
            elif l_type == MAP_TYPE_2:
                l_entry = self._load_type2(l_cursor, l_index, l_length)
            else:
                self.warning("Partition map %u has unsupported type %u" % (l_index, l_type))
                l_entry = UnsupportedPartition(l_type, None, l_length)
            self.entries.append(l_entry)
            # whatever the type, the next map starts after the declared length
            l_cursor.seek(l_start + l_length)
        return self

    def _load_type1(self, p_cursor, p_index, p_length, p_descriptors):
        if p_length != TYPE1_MAP_LENGTH:
            raise FormatError("Type 1 partition map %u has length %u instead of %u"
                              % (p_index, p_length, TYPE1_MAP_LENGTH))
        l_map = p_cursor.read(Type1PartitionMap, "map")
        l_number = l_map["partition_number"].value
        l_partition = p_descriptors.find_partition(l_number)
        if l_partition is None:
            raise UnresolvedReferenceError("No partition descriptor for partition %u (map %u)" % (l_number, p_index))
        return DirectPartition(l_number, l_partition.start, l_partition.length)

    def _load_type2(self, p_cursor, p_index, p_length):
        if p_length < record_size(Type2PartitionMapHeader):
            raise FormatError("Type 2 partition map %u is too short (%u bytes)" % (p_index, p_length))
        l_header = p_cursor.peek(Type2PartitionMapHeader, "map")
        l_identifier = l_header["type_id/identifier"].value
        if l_identifier in (SPARABLE_PARTITION_ID, VIRTUAL_PARTITION_ID):
            self.warning("Partition map %u: %s is not supported" % (p_index, l_identifier))
            return UnsupportedPartition(MAP_TYPE_2, l_identifier, p_length)
        if p_length != METADATA_MAP_LENGTH:
            raise FormatError("Metadata partition map %u has length %u instead of %u"
                              % (p_index, p_length, METADATA_MAP_LENGTH))
        if l_identifier != METADATA_PARTITION_ID:
            self.info("Partition map %u: identifier %r, decoded as a metadata partition" % (p_index, l_identifier))
        l_map = p_cursor.read(MetadataPartitionMap, "map")
        l_number = l_map["partition_number"].value
        l_base = self.find_direct(l_number)
        if l_base is None:
            raise UnresolvedReferenceError(
                "Metadata partition map %u refers to partition %u which has no direct map before it"
                % (p_index, l_number))
        return MetadataPartition(l_base,
                                 l_map["metadata_file"].value,
                                 l_map["metadata_mirror"].value,
                                 l_map["metadata_bitmap"].value,
                                 l_map["allocation_unit"].value,
                                 l_map["alignment_unit"].value,
                                 l_map["flags"].value,
                                 l_number)


class FileSet:
    def __init__(self, p_record, p_offset):
        self.offset = p_offset
        self.record = p_record
        self.root_icb = LBAddress.from_record(p_record["root_icb/location"])
        self.root_icb_length = p_record["root_icb/length"].value & 0x3FFFFFFF
        self.system_stream_icb = LBAddress.from_record(p_record["system_stream_icb/location"])
        self.recording_time = p_record["recording_time"].value
        self.identifier = None
        self.logical_volume_identifier = None


class UDFVolume(Logger):
    """
    Parse session over one UDF volume.

    Opening the session locates the anchor, scans the volume descriptor
    sequence (falling back to the reserve one) and builds the partition map
    table. Everything else is read on demand; nothing is cached.
    """
    DEBUG = False
    SECTOR_SIZES = SECTOR_SIZES
    ANCHOR_SECTOR = ANCHOR_SECTOR

    def __init__(self, p_stream, p_verify_checksum=False):
        self.stream = p_stream
        self.verify_checksum = p_verify_checksum
        self.anchor = locate_anchor(p_stream, self.SECTOR_SIZES, self.ANCHOR_SECTOR, p_verify_checksum)
        self.sector_size = self.anchor.sector_size
        self.descriptors = self._scan_descriptors()
        self.logical_volume = self.descriptors.logical_volume
        self.identifier = self._decode_identifier(self.logical_volume.identifier_bytes, "logical volume identifier")
        self.partition_maps = PartitionMapTable().load(
            self.logical_volume.map_table, self.logical_volume.map_count, self.descriptors)
        if self.DEBUG:
            for l_index, l_entry in enumerate(self.partition_maps):
                print("partition map %u: %r" % (l_index, l_entry))

    def _logger(self):
        return "<UDFVolume sector size %s>" % getattr(self, "sector_size", "?")

    def _scan_descriptors(self):
        l_anchor = self.anchor
        l_descriptors = scan_volume_descriptors(
            self.stream, self.sector_size, l_anchor.vds_location, l_anchor.vds_length,
            self.verify_checksum, self.DEBUG)
        if l_descriptors.logical_volume is None and l_anchor.reserve_length:
            self.warning("No logical volume descriptor in the main volume descriptor sequence, "
                         "using the reserve sequence at sector %u" % l_anchor.reserve_location)
            l_descriptors = scan_volume_descriptors(
                self.stream, self.sector_size, l_anchor.reserve_location, l_anchor.reserve_length,
                self.verify_checksum, self.DEBUG)
        if l_descriptors.logical_volume is None:
            raise TagMismatchError(l_anchor.vds_location * self.sector_size, TAG_LOGICAL_VOLUME, None)
        return l_descriptors

    def _decode_identifier(self, p_data, p_what):
        try:
            return decode_dstring(p_data)
        except CharsetError as err:
            self.warning("Unable to decode %s: %s" % (p_what, err))
            return None

    def resolve(self, p_partition, p_block):
        """
        Absolute byte offset of block p_block of the partition referenced by
        p_partition (index in the partition map table)
        """
        return self.partition_maps[p_partition].to_physical(self, p_block)

    def resolve_address(self, p_address):
        return self.resolve(p_address.partition, p_address.block)

    def read_file_set(self):
        l_offset = self.resolve_address(self.logical_volume.file_set_location)
        l_record = read_tagged(self.stream, l_offset, FileSetDescriptor, TAG_FILE_SET,
                               "file_set", self.verify_checksum)
        l_file_set = FileSet(l_record, l_offset)
        l_file_set.identifier = self._decode_identifier(
            l_record["fs_identifier"].value, "file set identifier")
        l_file_set.logical_volume_identifier = self._decode_identifier(
            l_record["lv_identifier"].value, "logical volume identifier")
        return l_file_set

    def read_file_entry(self, p_address):
        return read_file_entry(self.stream, self.resolve_address(p_address), self.verify_checksum)

    def read_directory(self, p_address, p_include_deleted=False):
        """
        Entries of the directory whose ICB is at p_address. The directory
        data is read right away, its entries are decoded lazily.
        """
        l_entry = self.read_file_entry(p_address)
        l_data = l_entry.read_data(self, p_address.partition)
        return self._check_names(iter_file_identifiers(l_data, p_include_deleted))

    def _check_names(self, p_entries):
        for l_entry in p_entries:
            if l_entry.name_error is not None:
                self.warning("Unable to decode name of entry %r: %s" % (l_entry.icb_location, l_entry.name_error))
            yield l_entry

    def root_entry(self):
        return self.read_file_entry(self.read_file_set().root_icb)

    def root_directory(self, p_include_deleted=False):
        return self.read_directory(self.read_file_set().root_icb, p_include_deleted)


def list_root_directory(p_stream, p_verify_checksum=False):
    """
    Entries of the root directory of the UDF volume in p_stream
    """
    return list(UDFVolume(p_stream, p_verify_checksum).root_directory())
