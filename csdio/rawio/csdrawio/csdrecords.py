"""
Random access to the fixed length data records of a CSD file.

Each record is one sample::

    record_id   int32
    values      float64 * channel_count

big-endian, so the record length is ``4 + 8 * channel_count`` and record
``i`` starts at ``data_start + i * record_length``.

:class:`CsdRecordStore` reads records through an already opened file object.
Indices are clamped to ``[0, sample_count - 1]``; an empty or inverted range,
or one entirely outside the samples, gives one empty array per channel. A record cut by the end of the file stops
the read: the caller gets the records before it, never a partial record.

Down sampling for display is strict stride decimation: only the records at
``start, start + stride, start + 2 * stride ...`` are read, so a few thousand
points can be pulled out of a multi-million sample file without reading the
whole range.
"""

import logging
import math

import numpy as np

from csdio.core import DecodeIssue

from .csdheader import CHANNEL_HEADERS_START, CHANNEL_HEADER_LENGTH

RECORD_ID_LENGTH = 4
CHANNEL_VALUE_LENGTH = 8


def record_length(channel_count):
    return RECORD_ID_LENGTH + CHANNEL_VALUE_LENGTH * channel_count


def data_start(channel_headers_start, channel_header_length, channel_count):
    """File position of the first record: the end of the last channel header."""
    return channel_headers_start + channel_header_length * channel_count


def record_dtype(channel_count):
    return np.dtype([("record_id", ">i4"), ("values", ">f8", (channel_count,))])


def sample_stride(start, end, stride=1, max_points=None):
    """
    Effective stride for a sampling request.

    With `max_points` the stride is derived from the range so that at most
    `max_points` values are returned per channel, otherwise `stride` is used.
    The result is never below 1.
    """
    if max_points is not None:
        if max_points <= 0:
            raise ValueError(f"max_points must be positive, not {max_points}")
        range_samples = end - start + 1
        stride = math.ceil(range_samples / max_points)
    return max(1, int(stride))


def sample_indices(start, end, stride):
    """
    Indices selected by a stride, ``floor((end - start) / stride) + 1`` of
    them for ``start <= end``.
    """
    if end < start:
        return np.array([], dtype="int64")
    return np.arange(start, end + 1, stride, dtype="int64")


class CsdRecordStore:
    """
    Positioned reads of data records.

    Parameters
    ----------
    fid: file object
        Binary file opened for reading, owned by the caller
    channel_count: int
        Number of float64 values per record
    sample_count: int
        Number of records declared in the protocol header
    data_offset: int | None, default: None
        File position of the first record, computed from the channel count
        when None
    """

    def __init__(self, fid, channel_count, sample_count, data_offset=None):
        self.fid = fid
        self.channel_count = channel_count
        self.sample_count = sample_count
        self.record_length = record_length(channel_count)
        if data_offset is None:
            data_offset = data_start(CHANNEL_HEADERS_START, CHANNEL_HEADER_LENGTH, channel_count)
        self.data_offset = data_offset
        self.dtype = record_dtype(channel_count)
        self.issues = []
        self.logger = logging.getLogger(__name__)

    def record_position(self, index):
        return self.data_offset + index * self.record_length

    def clamp(self, start, end):
        """
        Clamp an inclusive index range to the declared samples.

        Returns None when nothing is left to read: empty or inverted range,
        or a range lying wholly before the first or after the last sample.
        """
        if self.sample_count <= 0:
            return None
        last = self.sample_count - 1
        start = int(start)
        end = int(end)
        if end < start or end < 0 or start > last:
            return None
        return max(start, 0), min(end, last)

    def empty_result(self):
        return [np.array([], dtype="float64") for _ in range(self.channel_count)]

    def _report_truncated(self, index):
        self.logger.warning(f"Record {index} extends past the end of file, stopping read")
        if DecodeIssue.TRUNCATED_RECORD not in self.issues:
            self.issues.append(DecodeIssue.TRUNCATED_RECORD)

    def iter_records(self, start, end, stride=1):
        """
        Yield ``(record_id, values)`` for the records ``start, start + stride
        ... <= end`` (after clamping), one seek and one read per record.

        `values` is a float64 array of `channel_count` values.
        """
        limits = self.clamp(start, end)
        if limits is None:
            return
        for index in sample_indices(limits[0], limits[1], max(1, stride)):
            self.fid.seek(self.record_position(index))
            buffer = self.fid.read(self.record_length)
            if len(buffer) < self.record_length:
                self._report_truncated(index)
                return
            record = np.frombuffer(buffer, dtype=self.dtype)[0]
            yield int(record["record_id"]), record["values"].astype("float64")

    def read_block(self, start, count):
        """
        Read up to `count` contiguous records from index `start` in one read.

        Returns a structured array with ``record_id`` and ``values`` fields,
        shorter than `count` when the file ends first.
        """
        if count <= 0:
            return np.zeros(0, dtype=self.dtype)
        self.fid.seek(self.record_position(start))
        buffer = self.fid.read(count * self.record_length)
        nb_records = len(buffer) // self.record_length
        if nb_records < count:
            self._report_truncated(start + nb_records)
        return np.frombuffer(buffer[: nb_records * self.record_length], dtype=self.dtype)

    def read_values(self, start, end, stride=1):
        """
        Values of the selected records as a float64 array of shape
        (n_samples, channel_count).
        """
        limits = self.clamp(start, end)
        if limits is None:
            return np.zeros((0, self.channel_count), dtype="float64")
        start, end = limits
        stride = max(1, stride)
        if stride == 1:
            records = self.read_block(start, end - start + 1)
            return records["values"].astype("float64")
        values = [values for _, values in self.iter_records(start, end, stride)]
        if len(values) == 0:
            return np.zeros((0, self.channel_count), dtype="float64")
        return np.vstack(values)

    def sample(self, start, end, stride=1, max_points=None):
        """
        Per channel values for the inclusive range ``[start, end]``.

        Parameters
        ----------
        start, end: int
            Inclusive sample index range, clamped to the declared samples
        stride: int, default: 1
            Step between read samples, values below 1 mean 1
        max_points: int | None, default: None
            When given, the stride is derived so that at most `max_points`
            values are returned per channel

        Returns
        -------
        channels: list[np.ndarray]
            One float64 array per channel, in original sample order
        """
        limits = self.clamp(start, end)
        if limits is None:
            return self.empty_result()
        start, end = limits
        stride = sample_stride(start, end, stride=stride, max_points=max_points)
        values = self.read_values(start, end, stride)
        return list(np.ascontiguousarray(values.T))
