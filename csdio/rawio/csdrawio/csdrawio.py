"""
Class for reading and repairing CSD recordings (.csd).

A CSD file is written by a measurement device as:

  * a file header (34 bytes)
  * a protocol header (3552 bytes) with the channel count, sample count,
    sample rate (seconds per sample) and start/stop times (ms since epoch)
  * one channel header (918 bytes) per channel with description, unit text,
    display resolution and the stored value range
  * fixed length records, one per sample: an int32 record id followed by one
    float64 per channel

Everything is big-endian. See :mod:`csdio.rawio.csdrawio.csdheader` for the
exact offsets.

The device is known to leave files whose sample count and stop time do not
match the number of records on disk, and whose channel ranges are wrong.
:meth:`CsdRawIO.repair` recomputes these values and patches them in place.

Usage
-----

>>> from csdio.rawio import CsdRawIO
>>> reader = CsdRawIO(filename="recording.csd")
>>> reader.parse_header()
>>> reader.get_num_channels()
9
>>> channels = reader.sample_for_display(0, reader.get_num_samples() - 1)
>>> reader.close()

"""

from collections import namedtuple
import datetime
import math
import os

import numpy as np
import quantities as pq

from csdio.core import CsdRepairError, CsdHeaderNotLoadedError
from csdio.units import unit_from_text

from ..baserawio import BaseRawIO, _signal_channel_dtype, error_header
from ..utils import get_file_size
from .csdheader import (
    FILE_HEADER_LENGTH,
    CHANNEL_HEADERS_START,
    CHANNEL_HEADER_LENGTH,
    DEFAULT_NUM_CHANNELS,
    decode_file_header,
    decode_protocol_header,
    decode_channel_headers,
    fit_channel_count,
)
from .csdrecords import CsdRecordStore, record_length, data_start
from .csdranges import scan_ranges, mask_sentinels, DEFAULT_CHUNK_SIZE
from .csdrepair import (
    recompute_sample_count,
    compute_stop_time,
    patch_sample_count,
    patch_channel_range,
)

DEFAULT_MAX_DISPLAY_POINTS = 3000

epoch = datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)

# state of an open reader, there is no partially open state
OpenedCsd = namedtuple(
    "OpenedCsd", ["fid", "file_header", "protocol_header", "channel_headers", "record_store", "header_issues"]
)

RepairReport = namedtuple("RepairReport", ["old_sample_count", "sample_count", "stop_time", "channel_ranges"])


class CsdRawIO(BaseRawIO):
    """
    Class for reading and repairing CSD recordings

    Parameters
    ----------
    filename: str | Path, default: ''
        The .csd file to load
    chunk_size: int, default: 1000
        Number of samples read at once by the full file range scan
    max_display_points: int, default: 3000
        Maximum number of points per channel returned by `sample_for_display`
    default_num_channels: int, default: 9
        Channel count used when the header holds a non positive value

    Notes
    -----
    A reader owns one open file object between `parse_header()` (or `open()`)
    and `close()`. Calls on one reader must not overlap. Several readers can
    read the same file, but a repair must not run while another reader uses
    that file.
    """

    extensions = ["csd", "CSD"]
    rawmode = "one-file"

    def __init__(
        self,
        filename="",
        chunk_size=DEFAULT_CHUNK_SIZE,
        max_display_points=DEFAULT_MAX_DISPLAY_POINTS,
        default_num_channels=DEFAULT_NUM_CHANNELS,
    ):
        BaseRawIO.__init__(self)
        self.filename = str(filename)
        self.chunk_size = chunk_size
        self.max_display_points = max_display_points
        self.default_num_channels = default_num_channels
        self._opened = None

    def _source_name(self):
        return self.filename

    def open(self):
        """Decode the headers and keep the file open, same as `parse_header()`."""
        self.parse_header()
        return self

    def _parse_header(self):
        if self._opened is not None:
            self.close()

        fid = open(self.filename, mode="rb")
        try:
            buffer = fid.read(CHANNEL_HEADERS_START)
            file_header, file_issues = decode_file_header(buffer[:FILE_HEADER_LENGTH])
            protocol_header, protocol_issues = decode_protocol_header(
                buffer[FILE_HEADER_LENGTH:], default_num_channels=self.default_num_channels
            )
            file_size = os.fstat(fid.fileno()).st_size
            nb_channel, fit_issues = fit_channel_count(protocol_header.num_of_channels, file_size)
            if fit_issues:
                protocol_header = protocol_header.replace(num_of_channels=nb_channel)
            self.logger.debug(f"{self.filename}: {nb_channel} channels, {protocol_header.num_of_samples} samples")

            table_length = min(nb_channel * CHANNEL_HEADER_LENGTH, max(file_size - CHANNEL_HEADERS_START, 0))
            channel_headers, channel_issues = decode_channel_headers(fid.read(table_length), nb_channel)

            record_store = CsdRecordStore(fid, nb_channel, protocol_header.num_of_samples)
        except Exception:
            fid.close()
            raise

        header_issues = []
        for issue in file_issues + protocol_issues + fit_issues + channel_issues:
            if issue not in header_issues:
                header_issues.append(issue)

        self._opened = OpenedCsd(
            fid=fid,
            file_header=file_header,
            protocol_header=protocol_header,
            channel_headers=channel_headers,
            record_store=record_store,
            header_issues=header_issues,
        )

        self.header = {}
        self.header["file_header"] = file_header
        self.header["protocol_header"] = protocol_header
        self.header["nb_sample"] = protocol_header.num_of_samples
        self.header["signal_channels"] = self._make_signal_channels()

    def _make_signal_channels(self):
        signal_channels = []
        names = self.get_channel_descriptions()
        units = self.get_unit_texts()
        resolutions = self.get_resolutions()
        mins = self.get_channel_mins()
        maxs = self.get_channel_maxs()
        for c in range(self._opened.protocol_header.num_of_channels):
            signal_channels.append((names[c], str(c), units[c], resolutions[c], mins[c], maxs[c]))
        return np.array(signal_channels, dtype=_signal_channel_dtype)

    def _close(self):
        if self._opened is not None:
            self._opened.fid.close()
            self._opened = None

    def _get_opened(self):
        if self._opened is None:
            raise CsdHeaderNotLoadedError(error_header)
        return self._opened

    @property
    def decode_issues(self):
        """
        :class:`csdio.core.DecodeIssue` members found since the file was
        opened: header normalizations and truncated record reads.
        """
        if self._opened is None:
            return []
        issues = list(self._opened.header_issues)
        for issue in self._opened.record_store.issues:
            if issue not in issues:
                issues.append(issue)
        return issues

    # metadata, from the decoded headers only

    def get_file_header(self):
        return self._get_opened().file_header

    def get_protocol_header(self):
        return self._get_opened().protocol_header

    def get_channel_headers(self):
        """Decoded channel headers, fewer than the channel count if the channel table is truncated."""
        return list(self._get_opened().channel_headers)

    def get_num_channels(self):
        return self._get_opened().protocol_header.num_of_channels

    def get_num_samples(self):
        return max(0, self._get_opened().protocol_header.num_of_samples)

    def get_sample_rate(self):
        """Seconds per sample, as stored in the header."""
        return self._get_opened().protocol_header.sample_rate

    def get_sampling_period(self):
        return self.get_sample_rate() * pq.s

    def get_duration(self):
        return self.get_num_samples() * self.get_sample_rate() * pq.s

    def _timestamp_to_datetime(self, timestamp):
        if timestamp <= 0:
            self.logger.warning(f"Invalid timestamp: {timestamp}, defaulting to Unix epoch")
            return epoch
        try:
            return epoch + datetime.timedelta(milliseconds=timestamp)
        except OverflowError:
            self.logger.warning(f"Invalid timestamp: {timestamp}, defaulting to Unix epoch")
            return epoch

    def get_start_time(self):
        """Time of the first sample as a UTC datetime."""
        return self._timestamp_to_datetime(self._get_opened().protocol_header.time_of_first_sample)

    def get_stop_time(self):
        """Stop time as a UTC datetime."""
        return self._timestamp_to_datetime(self._get_opened().protocol_header.stop_time)

    def _channel_values(self, attr, default):
        """
        One value per declared channel, `default(channel_index)` for channels
        missing from a truncated channel table.
        """
        opened = self._get_opened()
        values = [getattr(header, attr) for header in opened.channel_headers]
        for c in range(len(values), opened.protocol_header.num_of_channels):
            values.append(default(c))
        return values

    def get_channel_descriptions(self):
        return self._channel_values("channel_description", lambda c: f"Channel {c}")

    def get_unit_texts(self):
        return self._channel_values("unit_text", lambda c: "")

    def get_channel_units(self):
        """Channel units as quantities units, dimensionless when unknown."""
        return [unit_from_text(text) for text in self.get_unit_texts()]

    def get_resolutions(self):
        return self._channel_values("resolution", lambda c: 0)

    def get_channel_mins(self):
        return self._channel_values("min", lambda c: 0.0)

    def get_channel_maxs(self):
        return self._channel_values("max", lambda c: 0.0)

    def format_value(self, value, channel_index):
        """Format a value with the number of decimals of the channel resolution."""
        resolution = self.get_resolutions()[channel_index]
        if resolution <= 0:
            return str(int(value))
        return f"{value:.{resolution}f}"

    def get_sample_time(self, index):
        """Time of sample `index`: start time plus `index` sample periods."""
        seconds = int(index) * self.get_sample_rate()
        return self.get_start_time() + datetime.timedelta(seconds=seconds)

    def time_to_index(self, time):
        """
        Index of the sample taken at `time` (floored), not clamped to the
        recording.
        """
        sample_rate = self.get_sample_rate()
        if sample_rate <= 0:
            sample_rate = 1
        seconds = (time - self.get_start_time()).total_seconds()
        return int(math.floor(seconds / sample_rate))

    # data

    def sample(self, start, end, stride=1, max_points=None):
        """
        Per channel values for the inclusive sample range ``[start, end]``.

        Parameters
        ----------
        start, end: int
            Inclusive index range, clamped to the declared sample count
        stride: int, default: 1
            Step between returned samples
        max_points: int | None, default: None
            When given the stride is derived to return at most this many
            values per channel

        Returns
        -------
        channels: list[np.ndarray]
            One float64 array per channel. Empty arrays when the range is
            empty after clamping.
        """
        return self._get_opened().record_store.sample(start, end, stride=stride, max_points=max_points)

    def sample_for_display(self, start, end, max_points=None, masked=False):
        """
        Like `sample` with the stride derived from `max_display_points`.

        With `masked` every sentinel value (INVALID, OVERRANGE, SENSOR_CHANGE
        and UNIT_CHANGE) is replaced by NaN, see
        :func:`csdio.rawio.csdrawio.csdranges.display_limits` for matching
        axis limits.
        """
        if max_points is None:
            max_points = self.max_display_points
        channels = self.sample(start, end, max_points=max_points)
        if masked:
            channels = [mask_sentinels(values) for values in channels]
        return channels

    def get_channel_data(self, channel_index, start, end, stride=1):
        """Values of one channel for the inclusive range ``[start, end]``."""
        nb_channel = self.get_num_channels()
        if not 0 <= channel_index < nb_channel:
            raise IndexError(f"Invalid channel number {channel_index}, the file has {nb_channel} channels")
        return self.sample(start, end, stride=stride)[channel_index]

    def _get_signal_size(self):
        return self.get_num_samples()

    def _get_analogsignal_chunk(self, i_start, i_stop, channel_indexes):
        if i_stop <= i_start:
            raw_sigs = np.zeros((0, self.get_num_channels()), dtype="float64")
        else:
            raw_sigs = self._get_opened().record_store.read_values(i_start, i_stop - 1)
        if channel_indexes is not None:
            raw_sigs = raw_sigs[:, channel_indexes]
        return raw_sigs

    def scan_channel_ranges(self):
        """
        True (min, max) of every channel over the whole file, read in chunks
        of `chunk_size` samples. INVALID and OVERRANGE values are skipped, a
        channel without other values gives (0.0, 0.0).
        """
        return scan_ranges(self._get_opened().record_store, chunk_size=self.chunk_size)

    # repair

    def compute_actual_sample_count(self):
        """Number of complete records on disk, from the file size."""
        nb_channel = self.get_num_channels()
        header_size = data_start(CHANNEL_HEADERS_START, CHANNEL_HEADER_LENGTH, nb_channel)
        return recompute_sample_count(get_file_size(self.filename), header_size, record_length(nb_channel))

    def repair_sample_count(self, actual_sample_count=None):
        """
        Patch the sample count and stop time of the file, then re-read the
        headers.

        The stop time becomes ``start + ceil(count / sample_rate) * 1000`` ms.

        Parameters
        ----------
        actual_sample_count: int | None, default: None
            New sample count, computed from the file size when None

        Returns
        -------
        protocol_header: ProtocolHeader
            The header decoded from the patched file
        """
        protocol_header = self.get_protocol_header()
        if actual_sample_count is None:
            actual_sample_count = self.compute_actual_sample_count()
        if actual_sample_count < 0:
            raise CsdRepairError(f"Invalid sample count {actual_sample_count}")

        start_time = protocol_header.time_of_first_sample
        if start_time <= 0:
            start_time = int(datetime.datetime.now(datetime.timezone.utc).timestamp() * 1000)
            self.logger.warning(f"No valid start time in {self.filename}, stop time computed from now")
        stop_time = compute_stop_time(start_time, actual_sample_count, protocol_header.sample_rate)

        self._close()
        try:
            patch_sample_count(self.filename, actual_sample_count, stop_time)
        finally:
            self.parse_header()
        return self.get_protocol_header()

    def repair_channel_range(self, channel_index, channel_min, channel_max):
        """
        Patch the stored min/max of one channel and update the decoded
        channel header at once.

        Returns
        -------
        channel_header: ChannelHeader
            The updated channel header
        """
        opened = self._get_opened()
        nb_decoded = len(opened.channel_headers)
        if not 0 <= channel_index < nb_decoded:
            raise CsdRepairError(f"Channel {channel_index} has no header in the file ({nb_decoded} channel headers)")
        patch_channel_range(self.filename, channel_index, channel_min, channel_max)
        updated = opened.channel_headers[channel_index].replace(min=channel_min, max=channel_max)
        opened.channel_headers[channel_index] = updated
        self.header["signal_channels"] = self._make_signal_channels()
        return updated

    def repair(self):
        """
        Full repair: recompute the sample count from the file size, patch it
        with the stop time, scan the data for the true channel ranges and
        patch every channel header.

        Returns
        -------
        report: RepairReport
        """
        old_sample_count = self.get_num_samples()
        protocol_header = self.repair_sample_count()
        channel_ranges = self.scan_channel_ranges()
        for channel_index in range(len(self._opened.channel_headers)):
            channel_min, channel_max = channel_ranges[channel_index]
            self.repair_channel_range(channel_index, channel_min, channel_max)
        self.logger.info(
            f"{self.filename}: repaired, {old_sample_count} -> {protocol_header.num_of_samples} samples"
        )
        return RepairReport(
            old_sample_count=old_sample_count,
            sample_count=protocol_header.num_of_samples,
            stop_time=protocol_header.stop_time,
            channel_ranges=channel_ranges,
        )
