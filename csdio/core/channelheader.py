"""
This module defines :class:`ChannelHeader`, the 918 byte block describing
one channel.
"""

from csdio.core.baseheader import BaseHeader


class ChannelHeader(BaseHeader):
    """
    Per channel metadata.

    ``min`` and ``max`` hold the value range stored in the file. They are the
    only header values a reader updates while the file is open, through
    :meth:`csdio.rawio.CsdRawIO.repair_channel_range`.
    ``resolution`` is the number of decimal digits used to display values.
    """

    _necessary_attrs = (
        ("pref", int),
        ("channel_description", str),
        ("sub_device_description", str),
        ("device_description", str),
        ("sensor_description", str),
        ("channel_number", int),
        ("unit", int),
        ("unit_text", str),
        ("resolution", int),
        ("min", float),
        ("max", float),
        ("device_id", int),
        ("sub_device_id", int),
        ("sensor_id", int),
        ("channel_id", int),
        ("channel_config", int),
        ("slave_address", int),
        ("device_type", int),
        ("device_unique_id", bytes),
    )
