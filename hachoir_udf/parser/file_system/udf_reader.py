"""
Record reader and descriptor tag validator.

A record is always read from an explicit absolute byte offset into its own
buffer, then decoded as a hachoir field set. Nothing here depends on a
position left behind by an earlier read: RecordCursor keeps its own offset
and each operation documents how far it moves it.
"""

from hachoir.field import Parser as GenericParser
from hachoir.stream import StringInputStream, InputStreamError
from hachoir.core.endian import LITTLE_ENDIAN

from hachoir_udf.errors import ShortReadError, TagMismatchError
from hachoir_udf.parser.file_system.udf_descriptors import DescriptorTag

TAG_SIZE = DescriptorTag.static_size // 8


class RecordBuffer(GenericParser):
    """
    Root field set holding exactly one record, decoded from the bytes
    given to the constructor
    """
    endian = LITTLE_ENDIAN

    def __init__(self, p_data, p_record_cls, p_name):
        self.record_cls = p_record_cls
        self.record_name = p_name
        GenericParser.__init__(self, StringInputStream(p_data))

    def createFields(self):
        yield self.record_cls(self, self.record_name)


def record_size(p_record_cls):
    return p_record_cls.static_size // 8


def stream_size(p_stream):
    """
    Size of the stream in bytes, None if unknown
    """
    l_size = p_stream.size
    if l_size is None:
        return None
    return l_size // 8


def read_bytes(p_stream, p_offset, p_length):
    """
    Read exactly p_length bytes at absolute byte offset p_offset, raise
    ShortReadError when the stream ends before
    """
    if p_length == 0:
        return b""
    l_size = stream_size(p_stream)
    if p_offset < 0 or (l_size is not None and p_offset + p_length > l_size):
        l_available = None
        if l_size is not None:
            l_available = max(0, l_size - max(p_offset, 0))
        raise ShortReadError(p_offset, p_length, l_available)
    try:
        return p_stream.readBytes(p_offset * 8, p_length)
    except InputStreamError as err:
        raise ShortReadError(p_offset, p_length) from err


def decode_record(p_data, p_record_cls, p_name="record"):
    """
    Decode a record from a byte string holding exactly its bytes
    """
    return RecordBuffer(p_data, p_record_cls, p_name)[p_name]


def read_record(p_stream, p_offset, p_record_cls, p_name="record"):
    """
    Read the record p_record_cls at absolute byte offset p_offset
    """
    l_data = read_bytes(p_stream, p_offset, record_size(p_record_cls))
    return decode_record(l_data, p_record_cls, p_name)


def tag_matches(p_tag, p_expected, p_verify_checksum):
    if p_expected is not None:
        if isinstance(p_expected, int):
            p_expected = (p_expected,)
        if p_tag["tag_id"].value not in p_expected:
            return False
    if p_verify_checksum and not p_tag.is_checksum_valid():
        return False
    return True


def read_tag(p_stream, p_offset):
    return read_record(p_stream, p_offset, DescriptorTag, "tag")


def peek_tag(p_stream, p_offset, p_expected, p_verify_checksum=False):
    """
    Return the descriptor tag at p_offset when its identifier is
    p_expected (an id or a tuple of ids), None otherwise.

    A tag that does not match is a classification failure, not an error:
    sequence scans use it to skip unrelated sectors.
    """
    l_tag = read_tag(p_stream, p_offset)
    if tag_matches(l_tag, p_expected, p_verify_checksum):
        return l_tag
    return None


def read_tagged(p_stream, p_offset, p_record_cls, p_expected, p_name="record", p_verify_checksum=False):
    """
    Read a tagged record, raise TagMismatchError when its tag is not p_expected
    """
    l_record = read_record(p_stream, p_offset, p_record_cls, p_name)
    if not tag_matches(l_record["tag"], p_expected, p_verify_checksum):
        raise TagMismatchError(p_offset, p_expected, l_record["tag/tag_id"].value)
    return l_record


class RecordCursor:
    """
    Byte position over a stream, optionally bounded by p_end.

    read(), read_tagged() and read_bytes() advance by exactly the size of
    what they return; peek() and peek_tag() never move the position.
    """

    def __init__(self, p_stream, p_offset=0, p_end=None):
        self.stream = p_stream
        self.offset = p_offset
        self.end = p_end

    @classmethod
    def from_bytes(cls, p_data):
        return cls(StringInputStream(p_data), 0, len(p_data))

    def remaining(self):
        l_end = self.end
        if l_end is None:
            l_end = stream_size(self.stream)
            if l_end is None:
                return None
        return max(0, l_end - self.offset)

    def seek(self, p_offset):
        self.offset = p_offset

    def skip(self, p_count):
        self.offset += p_count

    def _check(self, p_length):
        if self.end is not None and self.offset + p_length > self.end:
            raise ShortReadError(self.offset, p_length, max(0, self.end - self.offset))

    def read_bytes(self, p_length):
        self._check(p_length)
        l_data = read_bytes(self.stream, self.offset, p_length)
        self.offset += p_length
        return l_data

    def peek(self, p_record_cls, p_name="record"):
        self._check(record_size(p_record_cls))
        return read_record(self.stream, self.offset, p_record_cls, p_name)

    def read(self, p_record_cls, p_name="record"):
        l_record = self.peek(p_record_cls, p_name)
        self.offset += record_size(p_record_cls)
        return l_record

    def peek_tag(self, p_expected, p_verify_checksum=False):
        self._check(TAG_SIZE)
        return peek_tag(self.stream, self.offset, p_expected, p_verify_checksum)

    def read_tagged(self, p_record_cls, p_expected, p_name="record", p_verify_checksum=False):
        """
        Consume and return the record when its tag matches, return None and
        stay in place otherwise
        """
        if self.peek_tag(p_expected, p_verify_checksum) is None:
            return None
        return self.read(p_record_cls, p_name)
