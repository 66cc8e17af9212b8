"""
This module defines :class:`ProtocolHeader`, the 3552 byte block describing
the recording as a whole.
"""

from csdio.core.baseheader import BaseHeader


class ProtocolHeader(BaseHeader):
    """
    Recording level metadata.

    The structurally important fields are ``num_of_channels``,
    ``num_of_samples``, ``sample_rate`` (seconds per sample),
    ``time_of_first_sample`` and ``stop_time`` (milliseconds since epoch).
    Values found invalid in the file are already replaced by their defaults
    when the header is built by the decoder.
    """

    _necessary_attrs = (
        ("pref", int),
        ("device_id", int),
        ("description", str),
        ("tester_name", str),
        ("company_name", str),
        ("company_address", str),
        ("service_company_name", str),
        ("service_company_address", str),
        ("device_name", str),
        ("calibration_date", float),
        ("num_of_devices", int),
        ("num_of_channels", int),
        ("num_of_samples", int),
        ("sample_rate", int),
        ("sample_rate_factor", int),
        ("time_of_first_sample", int),
        ("stop_time", int),
        ("status", int),
        ("firmware_version", int),
        ("first_sample_pointer", int),
        ("crc", int),
        ("device_type", int),
        ("origin", int),
    )
