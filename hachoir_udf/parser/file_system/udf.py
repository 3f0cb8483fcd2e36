"""
UDF (Universal Disk Format) file system parser.

Documents:
- Standard ECMA-167 3rd edition (june 1997)
- OSTA Universal Disk Format Specification, revision 2.60
  http://www.osta.org/specs/pdf/udf260.pdf

additional info taken from
http://wiki.osdev.org/UDF
https://github.com/torvalds/linux/tree/master/fs/udf

Creation: 19 october 2026

UDF descriptors are scattered over the whole volume and linked by sector or
logical block addresses, so the field list cannot be read linearly: the
volume is first walked with random access (UDFVolume), then the descriptors
found are yielded ordered by location with padding in between.
"""

from hachoir.parser import Parser
from hachoir.field import FieldSet, RawBytes
from hachoir.core.endian import LITTLE_ENDIAN

from hachoir_udf.errors import UDFError
from hachoir_udf.parser.file_system.udf_descriptors import (
    AnchorVolumeDescriptorPointer, PartitionDescriptor, LogicalVolumeDescriptor,
    GenericPartitionMap, Type1PartitionMap, MetadataPartitionMap, FileSetDescriptor)
from hachoir_udf.parser.file_system.udf_reader import record_size
from hachoir_udf.parser.file_system.udf_icb import ENTRY_RECORDS
from hachoir_udf.parser.file_system.udf_volume import (
    ANCHOR_SECTOR, SECTOR_SIZES, MAP_TYPE_1, MAP_TYPE_2, UDFVolume, locate_anchor)


class PartitionMapList(FieldSet):
    """
    Partition map table following a Logical Volume Descriptor
    """

    def __init__(self, p_parent, p_name, p_length, p_count):
        FieldSet.__init__(self, p_parent, p_name, "Partition map table", size=p_length * 8)
        self.count = p_count

    def createFields(self):
        l_index = 0
        while l_index < self.count and self.current_size + 16 <= self._size:
            l_address = self.absolute_address + self.current_size
            l_type = self.stream.readBits(l_address, 8, LITTLE_ENDIAN)
            l_length = self.stream.readBits(l_address + 8, 8, LITTLE_ENDIAN)
            if l_length < record_size(GenericPartitionMap) or self.current_size + l_length * 8 > self._size:
                break
            if l_type == MAP_TYPE_1 and l_length == record_size(Type1PartitionMap):
                yield Type1PartitionMap(self, "map[]")
            elif l_type == MAP_TYPE_2 and l_length == record_size(MetadataPartitionMap):
                yield MetadataPartitionMap(self, "map[]")
            else:
                yield RawBytes(self, "map[]", l_length, "Partition map type %u" % l_type)
            l_index += 1
        if self.current_size < self._size:
            yield RawBytes(self, "unused", (self._size - self.current_size) // 8)


class UDF(Parser):
    DEBUG = False

    endian = LITTLE_ENDIAN
    PARSER_TAGS = {
        "id": "udf",
        "category": "file_system",
        "file_ext": ("iso", "udf", "img"),
        "mime": (u"application/x-udf-image", ),
        "description": "UDF file system",
        "min_size": (ANCHOR_SECTOR + 1) * min(SECTOR_SIZES) * 8,
    }

    def validate(self):
        try:
            locate_anchor(self.stream)
        except UDFError as err:
            return "No anchor volume descriptor pointer (%s)" % err
        return True

    def get_volume(self):
        """
        New parse session over the parsed stream
        """
        return UDFVolume(self.stream)

    def collect_records(self):
        """
        Locations of the descriptors to yield, as (offset, size, factory)
        """
        l_anchor = locate_anchor(self.stream)
        l_records = [(l_anchor.offset, record_size(AnchorVolumeDescriptorPointer),
                      lambda: AnchorVolumeDescriptorPointer(self, "anchor"))]
        try:
            l_volume = self.get_volume()
        except UDFError as err:
            self.warning("Unable to open UDF volume: %s" % err)
            return l_records

        for l_partition in l_volume.descriptors.partitions:
            l_records.append((l_partition.offset, record_size(PartitionDescriptor),
                              lambda: PartitionDescriptor(self, "partition[]")))
        l_lv = l_volume.logical_volume
        l_records.append((l_lv.offset, record_size(LogicalVolumeDescriptor),
                          lambda: LogicalVolumeDescriptor(self, "logical_volume")))
        if l_lv.map_table:
            l_records.append((l_lv.offset + record_size(LogicalVolumeDescriptor), len(l_lv.map_table),
                              lambda: PartitionMapList(self, "partition_maps", len(l_lv.map_table), l_lv.map_count)))

        try:
            l_file_set = l_volume.read_file_set()
            l_records.append((l_file_set.offset, record_size(FileSetDescriptor),
                              lambda: FileSetDescriptor(self, "file_set")))
            l_root = l_volume.root_entry()
            l_records.append((l_root.offset, l_root.header_size,
                              lambda: ENTRY_RECORDS[l_root.tag_id](self, "root_entry")))
        except UDFError as err:
            self.warning("Unable to read the file set: %s" % err)
        return l_records

    def createFields(self):
        l_end = 0
        for l_offset, l_size, l_factory in sorted(self.collect_records(), key=lambda item: item[0]):
            if l_offset < l_end or (l_offset + l_size) * 8 > self._size:
                if self.DEBUG:
                    print("skipping record at %#x" % l_offset)
                continue
            if self.DEBUG:
                print("record at byte %#0.8x" % l_offset)
            l_padding = self.seekByte(l_offset)
            if l_padding:
                yield l_padding
            yield l_factory()
            l_end = l_offset + l_size

        if self.current_size < self._size:
            yield self.seekBit(self._size, "end")
