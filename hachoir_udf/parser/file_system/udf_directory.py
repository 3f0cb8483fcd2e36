"""
Directory extent decoding: File Identifier Descriptors (ECMA-167 4/14.4)
and OSTA CS0 names (UDF 2.60 2.1.1).
"""

from hachoir_udf.errors import CharsetError
from hachoir_udf.parser.file_system.udf_descriptors import (
    TAG_FILE_IDENTIFIER, FileIdentifierDescriptor, LBAddress)
from hachoir_udf.parser.file_system.udf_reader import RecordCursor, record_size

FID_HEADER_SIZE = record_size(FileIdentifierDescriptor)

# file characteristics
FID_HIDDEN = 0x01
FID_DIRECTORY = 0x02
FID_DELETED = 0x04
FID_PARENT = 0x08
FID_METADATA = 0x10


def decode_cs0(p_data):
    """
    Decode an OSTA compressed unicode string, first byte is the compression id
    """
    if not p_data:
        raise CharsetError(None, "Empty CS0 string has no compression id")
    l_compression = p_data[0]
    if l_compression in (8, 254):
        return p_data[1:].decode("latin-1")
    if l_compression in (16, 255):
        if len(p_data) % 2 != 1:
            raise CharsetError(l_compression, "Odd number of bytes in 16-bit CS0 string")
        try:
            return p_data[1:].decode("utf-16-be")
        except UnicodeDecodeError as err:
            raise CharsetError(l_compression, "Invalid UTF-16 CS0 string: %s" % err) from err
    raise CharsetError(l_compression)


def decode_dstring(p_data):
    """
    Decode a fixed size dstring, whose last byte holds the used length
    """
    if not p_data:
        return ""
    l_length = p_data[-1]
    if l_length == 0:
        return ""
    return decode_cs0(p_data[:l_length])


def align4(p_size):
    return (p_size + 3) & ~3


class DirectoryEntry:
    def __init__(self, p_record, p_identifier, p_impl_use):
        self.characteristics = p_record["characteristics"].value
        self.file_version = p_record["file_version"].value
        self.identifier_length = p_record["identifier_length"].value
        self.implementation_use_length = p_record["impl_use_length"].value
        self.icb_location = LBAddress.from_record(p_record["icb/location"])
        self.icb_length = p_record["icb/length"].value & 0x3FFFFFFF
        self.implementation_use = p_impl_use
        self.identifier = p_identifier
        l_used = FID_HEADER_SIZE + self.identifier_length + self.implementation_use_length
        self.padding = align4(l_used) - l_used
        self.name = None
        self.name_error = None
        if not self.is_parent:
            if p_identifier:
                try:
                    self.name = decode_cs0(p_identifier)
                except CharsetError as err:
                    self.name_error = err
            else:
                self.name = ""

    @property
    def size(self):
        """
        Bytes taken in the directory extent, padding included
        """
        return FID_HEADER_SIZE + self.identifier_length + self.implementation_use_length + self.padding

    @property
    def is_hidden(self):
        return bool(self.characteristics & FID_HIDDEN)

    @property
    def is_directory(self):
        return bool(self.characteristics & FID_DIRECTORY)

    @property
    def is_deleted(self):
        return bool(self.characteristics & FID_DELETED)

    @property
    def is_parent(self):
        return bool(self.characteristics & FID_PARENT)

    def __repr__(self):
        if self.is_parent:
            l_name = "<parent>"
        else:
            l_name = repr(self.name)
        return "<DirectoryEntry %s%s -> %r>" % (l_name, "/" if self.is_directory else "", self.icb_location)


def iter_file_identifiers(p_data, p_include_deleted=False):
    """
    Lazily decode the File Identifier Descriptors of a directory extent.

    Deleted entries are consumed but not returned unless p_include_deleted.
    Iteration stops at the end of the data or at the first record whose tag
    is not a File Identifier Descriptor.
    """
    if len(p_data) < FID_HEADER_SIZE:
        return
    l_cursor = RecordCursor.from_bytes(p_data)
    while l_cursor.remaining() >= FID_HEADER_SIZE:
        l_record = l_cursor.read_tagged(FileIdentifierDescriptor, TAG_FILE_IDENTIFIER, "fid")
        if l_record is None:
            break
        # implementation use comes before the identifier
        l_impl_use = l_cursor.read_bytes(l_record["impl_use_length"].value)
        l_identifier = l_cursor.read_bytes(l_record["identifier_length"].value)
        l_entry = DirectoryEntry(l_record, l_identifier, l_impl_use)
        l_cursor.skip(l_entry.padding)
        if l_entry.is_deleted and not p_include_deleted:
            continue
        yield l_entry
