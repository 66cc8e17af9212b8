"""
Layout of the CSD headers and the functions decoding them.

A CSD file starts with:

  * a 34 bytes file header
  * a 3552 bytes protocol header
  * one 918 bytes channel header per channel

followed by the data records (see :mod:`csdio.rawio.csdrawio.csdrecords`).
Everything is big-endian.

Protocol header strings are raw fixed width fields, trimmed on decode.
Channel header strings are a 2 byte length followed by a fixed capacity
region. Each region keeps its own strategy, using the other one would shift
every following field.

Decoding favors availability: counts and timestamps the device wrote as zero
or garbage are replaced by defaults and reported as
:class:`csdio.core.DecodeIssue` members, they never make decoding fail. Only
a buffer too short to hold a header raises
:class:`csdio.core.CsdStructuralError`.
"""

import logging

from csdio.core import (
    FileHeader,
    ProtocolHeader,
    ChannelHeader,
    CsdStructuralError,
    DecodeIssue,
)
from csdio.rawio.utils import (
    read_be_int,
    read_be_float64,
    read_fixed_text,
    read_length_prefixed_text,
)

logger = logging.getLogger(__name__)

FILE_HEADER_LENGTH = 34
PROTOCOL_HEADER_LENGTH = 3552
CHANNEL_HEADER_LENGTH = 918

PROTOCOL_HEADER_START = FILE_HEADER_LENGTH
CHANNEL_HEADERS_START = PROTOCOL_HEADER_START + PROTOCOL_HEADER_LENGTH  # 3586

DEFAULT_NUM_CHANNELS = 9
DEFAULT_NUM_SAMPLES = 0

# +/- 100 000 000 days in ms, the range of a javascript Date
MAX_TIMESTAMP_MS = 8640000000000000

# (name, offset, width, signed) relative to the file start
file_header_ints = [
    ("version", 0, 4, True),
    ("timestamp", 14, 8, True),
    ("dummy", 22, 8, True),
    ("record_position", 30, 4, True),
]
FILE_IDENTIFIER = (4, 10)

# offsets relative to the protocol header start
protocol_header_texts = [
    ("description", 14, 128),
    ("tester_name", 144, 32),
    ("company_name", 178, 32),
    ("company_address", 212, 128),
    ("service_company_name", 342, 32),
    ("service_company_address", 376, 128),
    ("device_name", 506, 32),
]

protocol_header_ints = [
    ("pref", 0, 8, True),
    ("device_id", 8, 4, True),
    ("num_of_devices", 3012, 4, True),
    ("num_of_channels", 3016, 4, True),
    ("num_of_samples", 3020, 4, True),
    ("sample_rate", 3024, 4, True),
    ("sample_rate_factor", 3028, 4, True),
    ("time_of_first_sample", 3032, 8, True),
    ("stop_time", 3040, 8, True),
    ("status", 3048, 4, True),
    ("firmware_version", 3052, 2, True),
    ("first_sample_pointer", 3054, 4, True),
    ("crc", 3058, 2, True),
    ("device_type", 3060, 2, True),
    ("origin", 3062, 1, False),
]
CALIBRATION_DATE_OFFSET = 538

# fields patched in place by the repairer, relative to the protocol header start
NUM_OF_SAMPLES_OFFSET = 3020
STOP_TIME_OFFSET = 3040

# (name, offset of the 2 bytes length, capacity) relative to the channel header start
channel_header_texts = [
    ("channel_description", 8, 128),
    ("sub_device_description", 138, 128),
    ("device_description", 268, 19),
    ("sensor_description", 289, 19),
    # 470 reserved bytes at 310
    ("unit_text", 788, 58),
]

channel_header_ints = [
    ("pref", 0, 8, True),
    ("channel_number", 780, 4, True),
    ("unit", 784, 4, True),
    ("resolution", 848, 4, True),
    ("device_id", 868, 4, True),
    ("sub_device_id", 872, 4, True),
    ("sensor_id", 876, 4, True),
    ("channel_id", 880, 4, True),
    ("channel_config", 884, 1, False),
    ("slave_address", 885, 1, False),
    ("device_type", 886, 2, False),
]
CHANNEL_MIN_OFFSET = 852
CHANNEL_MAX_OFFSET = 860
DEVICE_UNIQUE_ID = (888, 8)
# 22 reserved bytes at 896


def protocol_field_position(field_offset):
    """Absolute file position of a protocol header field."""
    return PROTOCOL_HEADER_START + field_offset


def channel_header_position(channel_index):
    """Absolute file position of the header of channel `channel_index`."""
    return CHANNEL_HEADERS_START + CHANNEL_HEADER_LENGTH * channel_index


def is_valid_timestamp(timestamp):
    return -MAX_TIMESTAMP_MS <= timestamp <= MAX_TIMESTAMP_MS


def fit_channel_count(num_of_channels, file_size):
    """
    Channel count usable with a file of `file_size` bytes.

    A declared count whose channel table does not fit in the file is capped
    to the number of complete channel blocks, at least 1.

    Returns
    -------
    num_of_channels: int
    issues: list[DecodeIssue]
    """
    fitting = max(file_size - CHANNEL_HEADERS_START, 0) // CHANNEL_HEADER_LENGTH
    if num_of_channels <= fitting:
        return num_of_channels, []
    capped = max(1, fitting)
    logger.warning(f"Channel count {num_of_channels} does not fit in {file_size} bytes, using {capped}")
    return capped, [DecodeIssue.DEGRADED_HEADER, DecodeIssue.TRUNCATED_CHANNEL_TABLE]


def decode_file_header(buffer):
    """
    Decode the 34 bytes file header.

    Returns
    -------
    header: FileHeader
    issues: list[DecodeIssue]
    """
    if len(buffer) < FILE_HEADER_LENGTH:
        raise CsdStructuralError(
            f"File header needs {FILE_HEADER_LENGTH} bytes, only {len(buffer)} available"
        )
    issues = []
    fields = {}
    for name, offset, width, signed in file_header_ints:
        fields[name] = read_be_int(buffer, offset, width, signed=signed)
    offset, length = FILE_IDENTIFIER
    fields["file_identifier"], failed = read_fixed_text(buffer, offset, length)
    if failed:
        issues.append(DecodeIssue.TEXT_DECODE_FAILURE)
    return FileHeader(**fields), issues


def decode_protocol_header(buffer, default_num_channels=DEFAULT_NUM_CHANNELS):
    """
    Decode the 3552 bytes protocol header.

    Non positive channel count is replaced by `default_num_channels`, non
    positive sample count by 0 and timestamps out of the millisecond bound by
    0 (epoch).

    Returns
    -------
    header: ProtocolHeader
    issues: list[DecodeIssue]
    """
    if len(buffer) < PROTOCOL_HEADER_LENGTH:
        raise CsdStructuralError(
            f"Protocol header needs {PROTOCOL_HEADER_LENGTH} bytes, only {len(buffer)} available"
        )
    issues = []
    fields = {}
    for name, offset, width, signed in protocol_header_ints:
        fields[name] = read_be_int(buffer, offset, width, signed=signed)
    for name, offset, length in protocol_header_texts:
        fields[name], failed = read_fixed_text(buffer, offset, length)
        if failed and DecodeIssue.TEXT_DECODE_FAILURE not in issues:
            issues.append(DecodeIssue.TEXT_DECODE_FAILURE)
    fields["calibration_date"] = read_be_float64(buffer, CALIBRATION_DATE_OFFSET)

    degraded = False
    if fields["num_of_channels"] <= 0:
        logger.warning(
            f"Invalid channel count {fields['num_of_channels']}, using {default_num_channels}"
        )
        fields["num_of_channels"] = default_num_channels
        degraded = True
    if fields["num_of_samples"] <= 0:
        logger.warning(f"Invalid sample count {fields['num_of_samples']}, using {DEFAULT_NUM_SAMPLES}")
        fields["num_of_samples"] = DEFAULT_NUM_SAMPLES
        degraded = True
    for name in ("time_of_first_sample", "stop_time"):
        if not is_valid_timestamp(fields[name]):
            logger.warning(f"Invalid {name} {fields[name]}, using epoch")
            fields[name] = 0
            degraded = True
    if degraded:
        issues.append(DecodeIssue.DEGRADED_HEADER)

    return ProtocolHeader(**fields), issues


def decode_channel_header(buffer, channel_index):
    """
    Decode one 918 bytes channel header.

    `channel_index` is only used to build the default description
    ``"Channel <i>"`` used when the description field is empty or unreadable.

    Returns
    -------
    header: ChannelHeader
    issues: list[DecodeIssue]
    """
    if len(buffer) < CHANNEL_HEADER_LENGTH:
        raise CsdStructuralError(
            f"Channel header needs {CHANNEL_HEADER_LENGTH} bytes, only {len(buffer)} available"
        )
    defaults = {
        "channel_description": f"Channel {channel_index}",
        "unit_text": "Unknown",
    }
    issues = []
    fields = {}
    for name, offset, width, signed in channel_header_ints:
        fields[name] = read_be_int(buffer, offset, width, signed=signed)
    for name, offset, capacity in channel_header_texts:
        fields[name], failed = read_length_prefixed_text(buffer, offset, capacity, default=defaults.get(name, ""))
        if failed and DecodeIssue.TEXT_DECODE_FAILURE not in issues:
            issues.append(DecodeIssue.TEXT_DECODE_FAILURE)
    fields["min"] = read_be_float64(buffer, CHANNEL_MIN_OFFSET)
    fields["max"] = read_be_float64(buffer, CHANNEL_MAX_OFFSET)
    offset, length = DEVICE_UNIQUE_ID
    fields["device_unique_id"] = bytes(buffer[offset : offset + length])
    return ChannelHeader(**fields), issues


def decode_channel_headers(buffer, channel_count):
    """
    Decode up to `channel_count` consecutive channel headers from `buffer`,
    which starts at the first channel header.

    Decoding stops, without error, at the first block that is not complete:
    a truncated channel table only limits the number of usable channels.

    Returns
    -------
    headers: list[ChannelHeader]
    issues: list[DecodeIssue]
    """
    headers = []
    issues = []
    for channel_index in range(channel_count):
        start = channel_index * CHANNEL_HEADER_LENGTH
        block = buffer[start : start + CHANNEL_HEADER_LENGTH]
        if len(block) < CHANNEL_HEADER_LENGTH:
            logger.warning(f"Channel table truncated: {channel_index} of {channel_count} channel headers complete")
            issues.append(DecodeIssue.TRUNCATED_CHANNEL_TABLE)
            break
        header, channel_issues = decode_channel_header(block, channel_index)
        headers.append(header)
        for issue in channel_issues:
            if issue not in issues:
                issues.append(issue)
    return headers, issues
