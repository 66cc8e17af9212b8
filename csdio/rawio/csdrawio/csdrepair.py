"""
In place repair of CSD header fields.

The recording device sometimes leaves a file whose declared sample count and
stop time disagree with the number of records actually on disk, and whose
channel min/max do not match the data. These functions recompute the true
values and patch them.

Every patch opens the file in ``r+b`` mode and writes only the bytes of the
field being corrected, then flushes and fsyncs. A crash in the middle of a
patch can damage at most that field, the rest of the file is never
rewritten.
"""

import logging
import math
import os
import struct

import numpy as np

from csdio.core import CsdRepairError

from .csdheader import (
    NUM_OF_SAMPLES_OFFSET,
    STOP_TIME_OFFSET,
    CHANNEL_MIN_OFFSET,
    CHANNEL_MAX_OFFSET,
    protocol_field_position,
    channel_header_position,
)

logger = logging.getLogger(__name__)

INT32_MAX = 2**31 - 1


def recompute_sample_count(file_size, header_size, record_length):
    """
    Number of complete records that fit after the headers:
    ``floor((file_size - header_size) / record_length)``, never negative.
    """
    if record_length <= 0:
        raise ValueError(f"record_length must be positive, not {record_length}")
    return max(0, (file_size - header_size) // record_length)


def compute_stop_time(start_time, sample_count, sample_rate):
    """
    Stop time in ms: ``start_time + ceil(sample_count / sample_rate) * 1000``.

    A non positive sample rate is treated as 1.
    """
    if sample_rate <= 0:
        sample_rate = 1
    return start_time + math.ceil(sample_count / sample_rate) * 1000


def _write_fields(filename, fields):
    """Write each ``(position, bytes)`` pair in place, nothing else."""
    with open(filename, mode="r+b") as f:
        for position, data in fields:
            logger.debug(f"Patching {len(data)} bytes at {position} in {filename}")
            f.seek(position)
            f.write(data)
        f.flush()
        os.fsync(f.fileno())


def patch_sample_count(filename, sample_count, stop_time):
    """
    Write the sample count (int32) and stop time (int64) fields of the
    protocol header.
    """
    if not 0 <= sample_count <= INT32_MAX:
        raise CsdRepairError(f"Sample count {sample_count} can not be stored")
    fields = [
        (protocol_field_position(NUM_OF_SAMPLES_OFFSET), struct.pack(">i", sample_count)),
        (protocol_field_position(STOP_TIME_OFFSET), struct.pack(">q", stop_time)),
    ]
    _write_fields(filename, fields)
    logger.info(f"{filename}: sample count set to {sample_count}, stop time to {stop_time}")


def patch_channel_range(filename, channel_index, channel_min, channel_max):
    """
    Write the min and max float64 fields of the header of `channel_index`.
    """
    if channel_index < 0:
        raise CsdRepairError(f"Invalid channel index {channel_index}")
    if not (np.isfinite(channel_min) and np.isfinite(channel_max)):
        raise CsdRepairError(f"Channel range ({channel_min}, {channel_max}) is not finite")
    if channel_min > channel_max:
        raise CsdRepairError(f"Channel min {channel_min} is above max {channel_max}")
    block_position = channel_header_position(channel_index)
    fields = [
        (block_position + CHANNEL_MIN_OFFSET, struct.pack(">d", channel_min)),
        (block_position + CHANNEL_MAX_OFFSET, struct.pack(">d", channel_max)),
    ]
    _write_fields(filename, fields)
    logger.info(f"{filename}: channel {channel_index} range set to ({channel_min}, {channel_max})")
