"""
File Entry / Extended File Entry decoding (ECMA-167 4/14.9 and 4/14.17).

Both records share the fields needed to locate the data of a file or
directory: ICB tag flags, extended attribute length, allocation descriptor
length and information length.
"""

from hachoir_udf.errors import TagMismatchError, UnsupportedFormatError
from hachoir_udf.parser.file_system.udf_descriptors import (
    TAG_FILE_ENTRY, TAG_EXTENDED_FILE_ENTRY, FileEntry, ExtendedFileEntry, ShortAD)
from hachoir_udf.parser.file_system.udf_reader import (
    RecordCursor, read_bytes, read_record, read_tag, record_size)

# allocation descriptor types, ICB tag flags & 7
AD_SHORT = 0
AD_LONG = 1
AD_EXTENDED = 2
AD_EMBEDDED = 3

AD_TYPE_NAME = {
    AD_SHORT: "short allocation descriptors",
    AD_LONG: "long allocation descriptors",
    AD_EXTENDED: "extended allocation descriptors",
    AD_EMBEDDED: "embedded data",
}

# extent types, two most significant bits of an extent length
EXTENT_RECORDED = 0
EXTENT_NOT_RECORDED = 1
EXTENT_NOT_ALLOCATED = 2
EXTENT_CONTINUATION = 3

ENTRY_RECORDS = {
    TAG_FILE_ENTRY: FileEntry,
    TAG_EXTENDED_FILE_ENTRY: ExtendedFileEntry,
}


class ShortExtent:
    def __init__(self, p_length, p_position, p_type=EXTENT_RECORDED):
        self.length = p_length
        self.position = p_position
        self.type = p_type

    @classmethod
    def from_record(cls, p_ad):
        l_raw = p_ad["length"].value
        return cls(l_raw & 0x3FFFFFFF, p_ad["position"].value, l_raw >> 30)

    def __repr__(self):
        return "<ShortExtent %u bytes at block %u, type %u>" % (self.length, self.position, self.type)


class FileEntryInfo:
    """
    Decoded fixed part of a File Entry or Extended File Entry located at the
    absolute byte offset self.offset
    """

    def __init__(self, p_record, p_offset):
        self.offset = p_offset
        self.record = p_record
        self.tag_id = p_record["tag/tag_id"].value
        self.header_size = record_size(p_record.__class__)
        self.file_type = p_record["icb_tag/file_type"].value
        self.flags = p_record["icb_tag/flags"].value
        self.allocation_type = self.flags & 0x7
        self.ea_length = p_record["ea_length"].value
        self.ad_length = p_record["ad_length"].value
        self.information_length = p_record["information_length"].value
        self.modification_time = p_record["modification_time"].value

    @property
    def is_extended(self):
        return self.tag_id == TAG_EXTENDED_FILE_ENTRY

    @property
    def allocation_offset(self):
        """
        Absolute offset of the allocation descriptors, right after the
        extended attributes
        """
        return self.offset + self.header_size + self.ea_length

    def read_allocation_area(self, p_stream):
        return read_bytes(p_stream, self.allocation_offset, self.ad_length)

    def _unsupported(self):
        return UnsupportedFormatError(
            "Unsupported allocation type %u (%s) in file entry at offset %#x"
            % (self.allocation_type, AD_TYPE_NAME.get(self.allocation_type, "reserved"), self.offset))

    def short_extents(self, p_stream):
        """
        Short allocation descriptors of the entry, up to the first zero length one
        """
        if self.allocation_type != AD_SHORT:
            raise self._unsupported()
        l_extents = []
        l_cursor = RecordCursor(p_stream, self.allocation_offset, self.allocation_offset + self.ad_length)
        while l_cursor.remaining() >= record_size(ShortAD):
            l_extent = ShortExtent.from_record(l_cursor.read(ShortAD, "ad"))
            if l_extent.length == 0:
                break
            if l_extent.type == EXTENT_CONTINUATION:
                raise UnsupportedFormatError(
                    "Allocation extent continuation at block %u is not supported" % l_extent.position)
            l_extents.append(l_extent)
        return l_extents

    def read_data(self, p_volume, p_partition):
        """
        Data of the file, either embedded or gathered from the extents of
        partition p_partition, truncated to the information length
        """
        if self.allocation_type == AD_EMBEDDED:
            l_data = self.read_allocation_area(p_volume.stream)
        elif self.allocation_type == AD_SHORT:
            l_parts = []
            for l_extent in self.short_extents(p_volume.stream):
                if l_extent.type == EXTENT_RECORDED:
                    l_offset = p_volume.resolve(p_partition, l_extent.position)
                    l_parts.append(read_bytes(p_volume.stream, l_offset, l_extent.length))
                else:
                    l_parts.append(bytes(l_extent.length))
            l_data = b"".join(l_parts)
        else:
            raise self._unsupported()
        if self.information_length < len(l_data):
            l_data = l_data[:self.information_length]
        return l_data

    def __repr__(self):
        return "<FileEntryInfo at %#x, %s, %u bytes>" % (
            self.offset, AD_TYPE_NAME.get(self.allocation_type, "reserved"), self.information_length)


def read_file_entry(p_stream, p_offset, p_verify_checksum=False):
    """
    Decode the File Entry or Extended File Entry at absolute byte offset p_offset
    """
    l_tag = read_tag(p_stream, p_offset)
    l_tag_id = l_tag["tag_id"].value
    l_cls = ENTRY_RECORDS.get(l_tag_id)
    if l_cls is None or (p_verify_checksum and not l_tag.is_checksum_valid()):
        raise TagMismatchError(p_offset, tuple(ENTRY_RECORDS), l_tag_id)
    return FileEntryInfo(read_record(p_stream, p_offset, l_cls, "entry"), p_offset)
