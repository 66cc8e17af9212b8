"""
This module defines :class:`FileHeader`, the 34 byte prologue of a CSD file.
"""

from csdio.core.baseheader import BaseHeader


class FileHeader(BaseHeader):
    """
    File information block found at the very start of a CSD file.

    Attributes
    ----------
    version: int
        Format version
    file_identifier: str
        10 byte identifier string
    timestamp: int
        Creation timestamp
    dummy: int
        Reserved
    record_position: int
        Record position hint written by the device
    """

    _necessary_attrs = (
        ("version", int),
        ("file_identifier", str),
        ("timestamp", int),
        ("dummy", int),
        ("record_position", int),
    )
