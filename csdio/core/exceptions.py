"""
Exceptions and decode issue kinds shared by the :mod:`csdio` readers.

Fatal conditions are raised as exceptions. Conditions the reader can work
around (a zeroed channel count, a truncated channel table, garbage in a text
field...) are not raised: they are reported as :class:`DecodeIssue` members
so callers can inspect what was normalized while the file stays readable.
"""

import enum


class CsdError(Exception):
    """Base class for every error raised by csdio."""


class CsdStructuralError(CsdError):
    """The file is too short to hold a file header and a protocol header."""


class CsdHeaderNotLoadedError(CsdError):
    """An operation needs decoded headers but the file is not open."""


class CsdRepairError(CsdError, ValueError):
    """A repair was requested with values that are not safe to write."""


class DecodeIssue(enum.Enum):
    # channel/sample count not positive or timestamp out of bound
    DEGRADED_HEADER = "degraded_header"
    # fewer complete channel blocks than the declared channel count
    TRUNCATED_CHANNEL_TABLE = "truncated_channel_table"
    # a requested record extends past the end of the file
    TRUNCATED_RECORD = "truncated_record"
    # a text field was not valid utf-8
    TEXT_DECODE_FAILURE = "text_decode_failure"
