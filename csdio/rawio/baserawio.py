"""
baserawio
======

Classes
-------

BaseRawIO
abstract class which should be overridden to write a RawIO.

RawIO is the low level API in csdio that provides fast access to the raw
data of a recording. RawIOs should follow these guidelines:
  * fast reading of the header (do not read the complete file)
  * positioned reads of the requested samples only
  * decoded headers stay in memory as long as the file is open

A channel refers to one column of values of the recording. All channels of
a CSD file share the same sample clock so a chunk of samples is always
returned as a Numpy array of shape (n_samples, n_channels), or as one array
per channel.

With this API the IO has an attribute `header` with necessary keys.
This `header` attribute is done in `_parse_header(...)` method and cleared by
`close()`.

"""

from __future__ import annotations

import logging
import numpy as np

from csdio import logging_handler
from csdio.core import CsdHeaderNotLoadedError


error_header = "Header is not read yet, do parse_header() first"

_signal_channel_dtype = [
    ("name", "U128"),  # not necessarily unique
    ("id", "U64"),  # must be unique
    ("units", "U64"),
    ("resolution", "int32"),
    ("min", "float64"),
    ("max", "float64"),
]


class BaseRawIO:
    """
    Generic class to handle.

    """

    name = "BaseRawIO"
    description = ""
    extensions = []

    rawmode = None  # "one-file" for readers taking a single filename

    def __init__(self, **kargs):
        """
        init docstring should be filled out at the rawio level so the user knows
        which filename to input.

        """
        # create a logger for the IO class
        fullname = self.__class__.__module__ + "." + self.__class__.__name__
        self.logger = logging.getLogger(fullname)
        # Create a logger for 'csdio' and add a handler to it if it doesn't have one already.
        # (it will also not add one if the root logger has a handler)
        corename = self.__class__.__module__.split(".")[0]
        corelogger = logging.getLogger(corename)
        rootlogger = logging.getLogger()
        if not corelogger.handlers and not rootlogger.handlers:
            corelogger.addHandler(logging_handler)

        self.header = None
        self.is_header_parsed = False

    def parse_header(self):
        """
        Parses the header of the file to allow for faster computations
        for all other functions

        """
        # this must create
        # self.header['signal_channels']
        # self.header['nb_sample']

        self._parse_header()
        self._check_signal_channels()
        self.is_header_parsed = True

    def close(self):
        """Release the file resources, the header must be parsed again before any other call."""
        self._close()
        self.header = None
        self.is_header_parsed = False

    def __enter__(self):
        if not self.is_header_parsed:
            self.parse_header()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def source_name(self):
        """Return fancy name of file source"""
        return self._source_name()

    def __repr__(self):
        txt = f"{self.__class__.__name__}: {self.source_name()}\n"
        if self.header is not None:
            txt += f"nb_sample: {self.header['nb_sample']}\n"
            v = pprint_vector(self.header["signal_channels"]["name"])
            txt += f"signal_channels: {v}\n"

        return txt

    def _require_header(self):
        if not self.is_header_parsed:
            raise CsdHeaderNotLoadedError(error_header)

    def _check_signal_channels(self):
        signal_channels = self.header["signal_channels"]
        if signal_channels.size == 0:
            raise ValueError("A recording must have at least one signal channel")
        if np.unique(signal_channels["id"]).size != signal_channels.size:
            raise ValueError("signal_channels do not have unique ids")

    def signal_channels_count(self):
        """Return the number of signal channels of the recording."""
        self._require_header()
        return self.header["signal_channels"].size

    def channel_name_to_index(self, channel_names: list[str]):
        """
        Convert channel names to channel indexes.

        """
        self._require_header()
        names = list(self.header["signal_channels"]["name"])
        if len(set(names)) != len(names):
            raise ValueError("Channel names are not unique")
        return [names.index(name) for name in channel_names]

    def get_signal_size(self):
        """
        Retrieves the number of samples of the recording.

        Returns
        -------
        signal_size: int
            The number of samples declared by the header

        """
        self._require_header()
        return self._get_signal_size()

    def get_analogsignal_chunk(
        self,
        i_start: int | None = None,
        i_stop: int | None = None,
        channel_indexes: list[int] | None = None,
        channel_names: list[str] | None = None,
    ):
        """
        Returns a chunk of raw signal as a Numpy array.

        Parameters
        ----------
        i_start: int | None, default: None
            The index of the first sample (not time) of the desired signal
        i_stop: int | None, default: None
            The index of one past the last sample (not time) of the desired signal
        channel_indexes: list[int] | np.array[int] | slice | None, default: None
            The list of indexes of channels to retrieve
        channel_names: list[str] | None, default: None
            The list of channel names to retrieve

        Returns
        -------
        raw_chunk: np.array (n_samples, n_channels)
            The array with the float64 samples

        Notes
        -----
        Rows are the samples and columns are the channels.
        The channels are chosen either by channel_names, if provided, otherwise
        by channel_indexes, if provided, otherwise all channels are selected.

        """
        self._require_header()

        if channel_names is not None:
            channel_indexes = self.channel_name_to_index(channel_names)

        # some check on channel_indexes
        if isinstance(channel_indexes, list):
            channel_indexes = np.asarray(channel_indexes)

        if isinstance(channel_indexes, np.ndarray):
            if channel_indexes.dtype == "bool":
                if self.signal_channels_count() != channel_indexes.size:
                    raise ValueError(
                        "If channel_indexes is a boolean it must have be the same length as the "
                        f"number of channels {self.signal_channels_count()}"
                    )
                (channel_indexes,) = np.nonzero(channel_indexes)

        i_start = i_start or 0
        if i_stop is None:
            i_stop = self.get_signal_size()

        raw_chunk = self._get_analogsignal_chunk(i_start, i_stop, channel_indexes)

        return raw_chunk

    ##################

    # Functions to be implemented in IO below here

    def _parse_header(self):
        raise (NotImplementedError)

    def _source_name(self):
        raise (NotImplementedError)

    def _close(self):
        raise (NotImplementedError)

    def _get_signal_size(self):
        raise (NotImplementedError)

    def _get_analogsignal_chunk(self, i_start: int, i_stop: int, channel_indexes: list[int] | None):
        raise (NotImplementedError)

    def __del__(self):
        if getattr(self, "is_header_parsed", False):
            self._close()


def pprint_vector(vector, lim: int = 8):
    vector = np.asarray(vector)
    if vector.ndim != 1:
        raise ValueError(f"`vector` must have a dimension of 1 and not {vector.ndim}")
    if len(vector) > lim:
        part1 = ", ".join(e for e in vector[: lim // 2])
        part2 = " , ".join(e for e in vector[-lim // 2 :])
        txt = f"[{part1} ... {part2}]"
    else:
        part1 = ", ".join(e for e in vector)
        txt = f"[{part1}]"
    return txt
