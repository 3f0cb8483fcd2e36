"""
UDF (ECMA-167) descriptor layouts.

Documents:
- Standard ECMA-167 3rd edition (june 1997)
  https://www.ecma-international.org/publications-and-standards/standards/ecma-167/
- OSTA Universal Disk Format Specification, revision 2.60
  http://www.osta.org/specs/pdf/udf260.pdf

Every record is a fixed sequence of little-endian fields, declared here field
by field with the width the standard gives it. Sizes are in bits, as
everywhere in hachoir.

Creation: 19 october 2026
"""

from datetime import datetime

from hachoir.field import (FieldSet, Enum,
                           UInt8, UInt16, UInt32, UInt64, Int16,
                           RawBytes, String)
from hachoir.core.text_handler import textHandler, hexadecimal, filesizeHandler
from hachoir.core.tools import humanDatetime

# Tag identifiers, ECMA-167 3/7.2.1 and 4/7.2.1
TAG_PRIMARY_VOLUME = 1
TAG_ANCHOR = 2
TAG_VOLUME_POINTER = 3
TAG_IMPLEMENTATION_USE = 4
TAG_PARTITION = 5
TAG_LOGICAL_VOLUME = 6
TAG_UNALLOCATED_SPACE = 7
TAG_TERMINATING = 8
TAG_LOGICAL_VOLUME_INTEGRITY = 9
TAG_FILE_SET = 256
TAG_FILE_IDENTIFIER = 257
TAG_ALLOCATION_EXTENT = 258
TAG_INDIRECT_ENTRY = 259
TAG_TERMINAL_ENTRY = 260
TAG_FILE_ENTRY = 261
TAG_EXTENDED_ATTRIBUTE_HEADER = 262
TAG_UNALLOCATED_SPACE_ENTRY = 263
TAG_SPACE_BITMAP = 264
TAG_PARTITION_INTEGRITY = 265
TAG_EXTENDED_FILE_ENTRY = 266

TAG_NAME = {
    TAG_PRIMARY_VOLUME: "Primary Volume Descriptor",
    TAG_ANCHOR: "Anchor Volume Descriptor Pointer",
    TAG_VOLUME_POINTER: "Volume Descriptor Pointer",
    TAG_IMPLEMENTATION_USE: "Implementation Use Volume Descriptor",
    TAG_PARTITION: "Partition Descriptor",
    TAG_LOGICAL_VOLUME: "Logical Volume Descriptor",
    TAG_UNALLOCATED_SPACE: "Unallocated Space Descriptor",
    TAG_TERMINATING: "Terminating Descriptor",
    TAG_LOGICAL_VOLUME_INTEGRITY: "Logical Volume Integrity Descriptor",
    TAG_FILE_SET: "File Set Descriptor",
    TAG_FILE_IDENTIFIER: "File Identifier Descriptor",
    TAG_ALLOCATION_EXTENT: "Allocation Extent Descriptor",
    TAG_INDIRECT_ENTRY: "Indirect Entry",
    TAG_TERMINAL_ENTRY: "Terminal Entry",
    TAG_FILE_ENTRY: "File Entry",
    TAG_EXTENDED_ATTRIBUTE_HEADER: "Extended Attribute Header Descriptor",
    TAG_UNALLOCATED_SPACE_ENTRY: "Unallocated Space Entry",
    TAG_SPACE_BITMAP: "Space Bitmap Descriptor",
    TAG_PARTITION_INTEGRITY: "Partition Integrity Entry",
    TAG_EXTENDED_FILE_ENTRY: "Extended File Entry",
}

ACCESS_TYPE_NAME = {
    0: "Pseudo-overwritable",
    1: "Read only",
    2: "Write once",
    3: "Rewritable",
    4: "Overwritable",
}

FILE_TYPE_NAME = {
    0: "Unspecified",
    1: "Unallocated space entry",
    2: "Partition integrity entry",
    3: "Indirect entry",
    4: "Directory",
    5: "File",
    6: "Block device",
    7: "Character device",
    8: "Extended attributes",
    9: "FIFO",
    10: "Socket",
    11: "Terminal entry",
    12: "Symbolic link",
    13: "Stream directory",
    248: "Metadata file",
    249: "Metadata mirror file",
    250: "Metadata bitmap file",
}

PARTITION_MAP_NAME = {
    0: "Undefined",
    1: "Type 1",
    2: "Type 2",
}


class DescriptorTag(FieldSet):
    """
    Descriptor tag, common 16 bytes header of every descriptor (ECMA-167 3/7.2)
    """
    static_size = 16 * 8

    def createFields(self):
        yield Enum(UInt16(self, "tag_id", "Tag identifier"), TAG_NAME)
        yield UInt16(self, "version", "Descriptor version")
        yield textHandler(UInt8(self, "checksum", "Tag checksum"), hexadecimal)
        yield RawBytes(self, "reserved", 1)
        yield UInt16(self, "serial", "Tag serial number")
        yield textHandler(UInt16(self, "crc", "Descriptor CRC"), hexadecimal)
        yield UInt16(self, "crc_length", "Descriptor CRC length")
        yield UInt32(self, "location", "Tag location")

    def compute_checksum(self):
        """
        Sum modulo 256 of the tag bytes, the checksum byte itself excluded
        """
        l_raw = self.stream.readBytes(self.absolute_address, 16)
        return (sum(l_raw[0:4]) + sum(l_raw[5:16])) & 0xFF

    def is_checksum_valid(self):
        return self.compute_checksum() == self["checksum"].value

    def createDescription(self):
        return "Tag: %s" % self["tag_id"].display


class ExtentAD(FieldSet):
    """
    Extent descriptor (ECMA-167 3/7.1)
    """
    static_size = 8 * 8

    def createFields(self):
        yield filesizeHandler(UInt32(self, "length", "Extent length (bytes)"))
        yield UInt32(self, "location", "Extent location (sector)")


class ShortAD(FieldSet):
    """
    Short allocation descriptor (ECMA-167 4/14.14.1), the two most significant
    bits of the length hold the extent type
    """
    static_size = 8 * 8

    def createFields(self):
        yield textHandler(UInt32(self, "length", "Extent length and type"), hexadecimal)
        yield UInt32(self, "position", "Extent position (logical block)")


class LBAddr(FieldSet):
    """
    Recorded address (ECMA-167 4/7.1)
    """
    static_size = 6 * 8

    def createFields(self):
        yield UInt32(self, "block", "Logical block number")
        yield UInt16(self, "partition", "Partition reference number")

    def createDescription(self):
        return "(%u, %u)" % (self["partition"].value, self["block"].value)


class LBAddress:
    """
    Logical block address: a block number within the partition whose index
    in the partition map table is self.partition
    """

    def __init__(self, p_partition, p_block):
        self.partition = p_partition
        self.block = p_block

    @classmethod
    def from_record(cls, p_addr):
        return cls(p_addr["partition"].value, p_addr["block"].value)

    def __eq__(self, p_other):
        return isinstance(p_other, LBAddress) and \
            (self.partition, self.block) == (p_other.partition, p_other.block)

    def __hash__(self):
        return hash((self.partition, self.block))

    def __repr__(self):
        return "LBAddress(%u, %u)" % (self.partition, self.block)


class LongAD(FieldSet):
    """
    Long allocation descriptor (ECMA-167 4/14.14.2)
    """
    static_size = 16 * 8

    def createFields(self):
        yield textHandler(UInt32(self, "length", "Extent length and type"), hexadecimal)
        yield LBAddr(self, "location", "Extent location")
        yield RawBytes(self, "impl_use", 6, "Implementation use")


class EntityID(FieldSet):
    """
    Entity identifier (ECMA-167 1/7.4)
    """
    static_size = 32 * 8

    def createFields(self):
        yield UInt8(self, "flags", "Flags")
        yield String(self, "identifier", 23, "Identifier", strip=" \0", charset="ISO-8859-1")
        yield RawBytes(self, "suffix", 8, "Identifier suffix")

    def createDescription(self):
        return "Entity: %s" % self["identifier"].value


class Charspec(FieldSet):
    """
    Character set specification (ECMA-167 1/7.2.1)
    """
    static_size = 64 * 8

    def createFields(self):
        yield UInt8(self, "type", "Character set type")
        yield String(self, "info", 63, "Character set information", strip=" \0", charset="ISO-8859-1")


class Timestamp(FieldSet):
    """
    Timestamp (ECMA-167 1/7.3)
    """
    static_size = 12 * 8

    def createFields(self):
        yield textHandler(UInt16(self, "type_tz", "Type and time zone"), hexadecimal)
        yield Int16(self, "year", "Year")
        yield UInt8(self, "month", "Month")
        yield UInt8(self, "day", "Day")
        yield UInt8(self, "hour", "Hour")
        yield UInt8(self, "minute", "Minute")
        yield UInt8(self, "second", "Second")
        yield UInt8(self, "centiseconds", "Centiseconds")
        yield UInt8(self, "hundreds_of_microseconds", "Hundreds of microseconds")
        yield UInt8(self, "microseconds", "Microseconds")

    def createValue(self):
        # all zero for unrecorded times
        if not (1 <= self["month"].value <= 12) or self["day"].value == 0:
            return None
        return datetime(
            self["year"].value, self["month"].value, self["day"].value,
            self["hour"].value, self["minute"].value, self["second"].value,
            self["centiseconds"].value * 10000
            + self["hundreds_of_microseconds"].value * 100
            + self["microseconds"].value)

    def createDisplay(self):
        if self.value is None:
            return "(unset)"
        return humanDatetime(self.value)


class AnchorVolumeDescriptorPointer(FieldSet):
    """
    Anchor Volume Descriptor Pointer (ECMA-167 3/10.2)
    """
    static_size = 512 * 8

    def createFields(self):
        yield DescriptorTag(self, "tag")
        yield ExtentAD(self, "main_vds", "Main volume descriptor sequence extent")
        yield ExtentAD(self, "reserve_vds", "Reserve volume descriptor sequence extent")
        yield RawBytes(self, "reserved", 480)


class PartitionDescriptor(FieldSet):
    """
    Partition Descriptor (ECMA-167 3/10.5)
    """
    static_size = 512 * 8

    def createFields(self):
        yield DescriptorTag(self, "tag")
        yield UInt32(self, "vds_number", "Volume descriptor sequence number")
        yield textHandler(UInt16(self, "flags", "Partition flags"), hexadecimal)
        yield UInt16(self, "partition_number", "Partition number")
        yield EntityID(self, "contents", "Partition contents")
        yield RawBytes(self, "contents_use", 128, "Partition contents use")
        yield Enum(UInt32(self, "access_type", "Access type"), ACCESS_TYPE_NAME)
        yield UInt32(self, "start", "Partition starting location (sector)")
        yield filesizeHandler(UInt32(self, "length", "Partition length (sectors)"))
        yield EntityID(self, "impl_id", "Implementation identifier")
        yield RawBytes(self, "impl_use", 128, "Implementation use")
        yield RawBytes(self, "reserved", 156)

    def createDescription(self):
        return "Partition %u: %u sectors at sector %u" % (
            self["partition_number"].value, self["length"].value, self["start"].value)


class LogicalVolumeDescriptor(FieldSet):
    """
    Logical Volume Descriptor (ECMA-167 3/10.6), fixed part only: the
    partition map table follows with map_table_length bytes
    """
    static_size = 440 * 8

    def createFields(self):
        yield DescriptorTag(self, "tag")
        yield UInt32(self, "vds_number", "Volume descriptor sequence number")
        yield Charspec(self, "charset", "Descriptor character set")
        yield RawBytes(self, "identifier", 128, "Logical volume identifier (dstring)")
        yield UInt32(self, "block_size", "Logical block size")
        yield EntityID(self, "domain", "Domain identifier")
        yield LongAD(self, "file_set", "File set descriptor location (logical volume contents use)")
        yield UInt32(self, "map_table_length", "Partition map table length")
        yield UInt32(self, "map_count", "Number of partition maps")
        yield EntityID(self, "impl_id", "Implementation identifier")
        yield RawBytes(self, "impl_use", 128, "Implementation use")
        yield ExtentAD(self, "integrity", "Integrity sequence extent")


class GenericPartitionMap(FieldSet):
    """
    Header shared by all partition maps (ECMA-167 3/10.7.1)
    """
    static_size = 2 * 8

    def createFields(self):
        yield Enum(UInt8(self, "type", "Partition map type"), PARTITION_MAP_NAME)
        yield UInt8(self, "length", "Partition map length")


class Type1PartitionMap(FieldSet):
    """
    Type 1 partition map (ECMA-167 3/10.7.2)
    """
    static_size = 6 * 8

    def createFields(self):
        yield Enum(UInt8(self, "type", "Partition map type"), PARTITION_MAP_NAME)
        yield UInt8(self, "length", "Partition map length")
        yield UInt16(self, "volume_sequence", "Volume sequence number")
        yield UInt16(self, "partition_number", "Partition number")


class Type2PartitionMapHeader(FieldSet):
    """
    Leading part of every Type 2 partition map (UDF 2.60 2.2.8 - 2.2.10),
    enough to tell sparable, virtual and metadata maps apart
    """
    static_size = 40 * 8

    def createFields(self):
        yield Enum(UInt8(self, "type", "Partition map type"), PARTITION_MAP_NAME)
        yield UInt8(self, "length", "Partition map length")
        yield RawBytes(self, "reserved", 2)
        yield EntityID(self, "type_id", "Partition type identifier")
        yield UInt16(self, "volume_sequence", "Volume sequence number")
        yield UInt16(self, "partition_number", "Partition number")


class MetadataPartitionMap(FieldSet):
    """
    Metadata partition map (UDF 2.60 2.2.10)
    """
    static_size = 64 * 8

    def createFields(self):
        yield Enum(UInt8(self, "type", "Partition map type"), PARTITION_MAP_NAME)
        yield UInt8(self, "length", "Partition map length")
        yield RawBytes(self, "reserved[]", 2)
        yield EntityID(self, "type_id", "Partition type identifier")
        yield UInt16(self, "volume_sequence", "Volume sequence number")
        yield UInt16(self, "partition_number", "Partition number")
        yield UInt32(self, "metadata_file", "Metadata file location (logical block)")
        yield UInt32(self, "metadata_mirror", "Metadata mirror file location (logical block)")
        yield UInt32(self, "metadata_bitmap", "Metadata bitmap file location (logical block)")
        yield UInt32(self, "allocation_unit", "Allocation unit size (blocks)")
        yield UInt16(self, "alignment_unit", "Alignment unit size (blocks)")
        yield textHandler(UInt8(self, "flags", "Flags"), hexadecimal)
        yield RawBytes(self, "reserved[]", 5)


class FileSetDescriptor(FieldSet):
    """
    File Set Descriptor (ECMA-167 4/14.1)
    """
    static_size = 512 * 8

    def createFields(self):
        yield DescriptorTag(self, "tag")
        yield Timestamp(self, "recording_time", "Recording date and time")
        yield UInt16(self, "interchange_level", "Interchange level")
        yield UInt16(self, "max_interchange_level", "Maximum interchange level")
        yield UInt32(self, "charset_list", "Character set list")
        yield UInt32(self, "max_charset_list", "Maximum character set list")
        yield UInt32(self, "file_set_number", "File set number")
        yield UInt32(self, "file_set_desc_number", "File set descriptor number")
        yield Charspec(self, "lv_charset", "Logical volume identifier character set")
        yield RawBytes(self, "lv_identifier", 128, "Logical volume identifier (dstring)")
        yield Charspec(self, "fs_charset", "File set character set")
        yield RawBytes(self, "fs_identifier", 32, "File set identifier (dstring)")
        yield RawBytes(self, "copyright", 32, "Copyright file identifier (dstring)")
        yield RawBytes(self, "abstract", 32, "Abstract file identifier (dstring)")
        yield LongAD(self, "root_icb", "Root directory ICB")
        yield EntityID(self, "domain", "Domain identifier")
        yield LongAD(self, "next_extent", "Next extent")
        yield LongAD(self, "system_stream_icb", "System stream directory ICB")
        yield RawBytes(self, "reserved", 32)


class ICBTag(FieldSet):
    """
    ICB tag (ECMA-167 4/14.6), the 3 low bits of the flags give the
    allocation descriptor type
    """
    static_size = 20 * 8

    def createFields(self):
        yield UInt32(self, "prior_entries", "Prior recorded number of direct entries")
        yield UInt16(self, "strategy_type", "Strategy type")
        yield RawBytes(self, "strategy_parameter", 2, "Strategy parameter")
        yield UInt16(self, "max_entries", "Maximum number of entries")
        yield RawBytes(self, "reserved", 1)
        yield Enum(UInt8(self, "file_type", "File type"), FILE_TYPE_NAME)
        yield LBAddr(self, "parent", "Parent ICB location")
        yield textHandler(UInt16(self, "flags", "Flags"), hexadecimal)


def file_entry_head(p_s):
    yield DescriptorTag(p_s, "tag")
    yield ICBTag(p_s, "icb_tag")
    yield UInt32(p_s, "uid", "Owner user id")
    yield UInt32(p_s, "gid", "Owner group id")
    yield textHandler(UInt32(p_s, "permissions", "Permissions"), hexadecimal)
    yield UInt16(p_s, "link_count", "File link count")
    yield UInt8(p_s, "record_format", "Record format")
    yield UInt8(p_s, "record_display", "Record display attributes")
    yield UInt32(p_s, "record_length", "Record length")
    yield filesizeHandler(UInt64(p_s, "information_length", "Information length"))


def file_entry_tail(p_s):
    yield UInt64(p_s, "unique_id", "Unique id")
    yield UInt32(p_s, "ea_length", "Length of extended attributes")
    yield UInt32(p_s, "ad_length", "Length of allocation descriptors")


class FileEntry(FieldSet):
    """
    File Entry (ECMA-167 4/14.9), fixed part only: extended attributes and
    allocation descriptors follow
    """
    static_size = 176 * 8

    def createFields(self):
        yield from file_entry_head(self)
        yield UInt64(self, "blocks_recorded", "Logical blocks recorded")
        yield Timestamp(self, "access_time", "Access time")
        yield Timestamp(self, "modification_time", "Modification time")
        yield Timestamp(self, "attribute_time", "Attribute time")
        yield UInt32(self, "checkpoint", "Checkpoint")
        yield LongAD(self, "ea_icb", "Extended attribute ICB")
        yield EntityID(self, "impl_id", "Implementation identifier")
        yield from file_entry_tail(self)


class ExtendedFileEntry(FieldSet):
    """
    Extended File Entry (ECMA-167 4/14.17), fixed part only
    """
    static_size = 216 * 8

    def createFields(self):
        yield from file_entry_head(self)
        yield filesizeHandler(UInt64(self, "object_size", "Object size"))
        yield UInt64(self, "blocks_recorded", "Logical blocks recorded")
        yield Timestamp(self, "access_time", "Access time")
        yield Timestamp(self, "modification_time", "Modification time")
        yield Timestamp(self, "creation_time", "Creation time")
        yield Timestamp(self, "attribute_time", "Attribute time")
        yield UInt32(self, "checkpoint", "Checkpoint")
        yield RawBytes(self, "reserved", 4)
        yield LongAD(self, "ea_icb", "Extended attribute ICB")
        yield LongAD(self, "stream_icb", "Stream directory ICB")
        yield EntityID(self, "impl_id", "Implementation identifier")
        yield from file_entry_tail(self)


class FileIdentifierDescriptor(FieldSet):
    """
    File Identifier Descriptor (ECMA-167 4/14.4), fixed part only:
    implementation use, file identifier and padding follow
    """
    static_size = 38 * 8

    def createFields(self):
        yield DescriptorTag(self, "tag")
        yield UInt16(self, "file_version", "File version number")
        yield textHandler(UInt8(self, "characteristics", "File characteristics"), hexadecimal)
        yield UInt8(self, "identifier_length", "Length of file identifier")
        yield LongAD(self, "icb", "ICB")
        yield UInt16(self, "impl_use_length", "Length of implementation use")
