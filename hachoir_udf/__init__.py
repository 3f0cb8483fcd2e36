"""
Read-only UDF (ECMA-167 / OSTA UDF) volume reader built on hachoir.
"""

from hachoir_udf.errors import (UDFError, ShortReadError, TagMismatchError,  # noqa
                                UnresolvedReferenceError, UnsupportedFormatError,
                                CharsetError, FormatError)
from hachoir_udf.parser.file_system.udf_descriptors import LBAddress  # noqa
from hachoir_udf.parser.file_system.udf_volume import UDFVolume, list_root_directory  # noqa
from hachoir_udf.parser import UDF  # noqa
import hachoir_udf.metadata  # noqa

__version__ = "0.1.0"
