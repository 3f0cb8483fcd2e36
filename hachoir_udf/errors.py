"""
Errors raised while decoding a UDF volume.

Every error is a hachoir ParserError so callers already handling hachoir
parser failures catch them too.
"""

from hachoir.field import ParserError


class UDFError(ParserError):
    """
    Parent of all UDF decoding errors
    """
    pass


class ShortReadError(UDFError):
    """
    Fewer bytes are available than the record requires.
    """
    def __init__(self, p_offset, p_length, p_available=None):
        self.offset = p_offset
        self.length = p_length
        self.available = p_available
        if p_available is None:
            l_msg = "Unable to read %u bytes at offset %#x" % (p_length, p_offset)
        else:
            l_msg = "Unable to read %u bytes at offset %#x (only %u available)" \
                    % (p_length, p_offset, p_available)
        UDFError.__init__(self, l_msg)


class TagMismatchError(UDFError):
    """
    A descriptor tag does not carry the identifier the caller expects.
    """
    def __init__(self, p_offset, p_expected, p_found):
        self.offset = p_offset
        self.expected = p_expected
        self.found = p_found
        if isinstance(p_expected, (tuple, list)):
            l_expected = "/".join("%u" % l_id for l_id in p_expected)
        else:
            l_expected = "%u" % p_expected
        if p_found is None:
            l_msg = "No descriptor with tag %s found at offset %#x" % (l_expected, p_offset)
        else:
            l_msg = "Expected descriptor tag %s at offset %#x, found %u" % (l_expected, p_offset, p_found)
        UDFError.__init__(self, l_msg)


class UnresolvedReferenceError(UDFError):
    """
    A partition number, partition map index or base partition does not resolve.
    """
    pass


class UnsupportedFormatError(UDFError):
    """
    Allocation descriptor or partition map type this reader does not implement.
    """
    pass


class CharsetError(UDFError):
    """
    Unknown OSTA CS0 compression identifier.
    """
    def __init__(self, p_compression_id, p_msg=None):
        self.compression_id = p_compression_id
        if p_msg is None:
            p_msg = "Unknown CS0 compression id %s" % p_compression_id
        UDFError.__init__(self, p_msg)


class FormatError(UDFError):
    """
    Structurally invalid descriptor (bad declared length, ...).
    """
    pass
