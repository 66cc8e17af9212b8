"""
Sentinel codes and value range computations.

The device writes reserved float64 codes instead of measurements:

  * INVALID (-9999)
  * OVERRANGE (-8888)
  * SENSOR_CHANGE (-8887)
  * UNIT_CHANGE (-8886)

:func:`scan_ranges` computes the true per channel min/max of a whole file in
fixed size chunks, so memory stays ``O(chunk_size * channel_count)`` whatever
the file size. It skips INVALID and OVERRANGE only. The display helpers
(:func:`mask_sentinels`, :func:`display_limits`) skip all four codes.
"""

import numpy as np

DATA_INVALID = -9999.0
DATA_OVERRANGE = -8888.0
DATA_SENSOR_CHANGE = -8887.0
DATA_UNIT_CHANGE = -8886.0

ALL_SENTINELS = (DATA_INVALID, DATA_OVERRANGE, DATA_SENSOR_CHANGE, DATA_UNIT_CHANGE)
# SENSOR_CHANGE and UNIT_CHANGE are still folded into the scanned ranges
RANGE_EXCLUDED_SENTINELS = (DATA_INVALID, DATA_OVERRANGE)

DEFAULT_CHUNK_SIZE = 1000


def sentinel_mask(values, sentinels=ALL_SENTINELS):
    """Boolean mask, True where `values` holds one of `sentinels`."""
    return np.isin(values, sentinels)


def scan_ranges(record_store, chunk_size=DEFAULT_CHUNK_SIZE):
    """
    Per channel (min, max) over all declared samples of `record_store`.

    Values equal to INVALID or OVERRANGE are skipped. A channel without any
    other value gets (0.0, 0.0). The scan stops early, without error, if the
    file ends before the declared sample count.

    Parameters
    ----------
    record_store: CsdRecordStore
    chunk_size: int, default: 1000
        Number of records read at once

    Returns
    -------
    ranges: list[tuple[float, float]]
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, not {chunk_size}")
    nb_channel = record_store.channel_count
    mins = np.full(nb_channel, np.inf)
    maxs = np.full(nb_channel, -np.inf)

    for chunk_start in range(0, record_store.sample_count, chunk_size):
        count = min(chunk_size, record_store.sample_count - chunk_start)
        records = record_store.read_block(chunk_start, count)
        if records.size == 0:
            break
        values = records["values"].astype("float64")
        valid = ~sentinel_mask(values, RANGE_EXCLUDED_SENTINELS) & ~np.isnan(values)
        mins = np.minimum(mins, np.where(valid, values, np.inf).min(axis=0))
        maxs = np.maximum(maxs, np.where(valid, values, -np.inf).max(axis=0))
        if records.size < count:
            break

    ranges = []
    for chan_min, chan_max in zip(mins, maxs):
        if np.isinf(chan_min) and np.isinf(chan_max):
            ranges.append((0.0, 0.0))
        else:
            ranges.append((float(chan_min), float(chan_max)))
    return ranges


def mask_sentinels(values):
    """
    Copy of `values` as float64 with every sentinel replaced by NaN, ready for
    plotting as separate segments.
    """
    values = np.array(values, dtype="float64")
    values[sentinel_mask(values)] = np.nan
    return values


def display_limits(values, padding=0.1):
    """
    Y axis limits for displaying `values`.

    All four sentinels are ignored, the range is widened by `padding` times
    its span on both sides. Without any real value the limits are (0.0, 1.0).
    """
    values = np.asarray(values, dtype="float64")
    values = values[~sentinel_mask(values) & np.isfinite(values)]
    if values.size == 0:
        return 0.0, 1.0
    low = float(values.min())
    high = float(values.max())
    span = high - low
    return low - span * padding, high + span * padding
