"""
Conversion of the unit texts found in CSD channel headers to
:mod:`quantities` units.

The device stores a free text unit per channel ("°C", "%rH", "mbar"...).
Texts that quantities knows are converted directly, a few device spellings
are mapped by hand and anything else is dimensionless.
"""

import quantities as pq

# device spellings quantities can not parse
unit_aliases = {
    "°C": pq.degC,
    "° C": pq.degC,
    "degC": pq.degC,
    "°F": pq.degF,
    "%": pq.percent,
    "%rH": pq.percent,
    "%RH": pq.percent,
    "% rH": pq.percent,
    "ppm": pq.dimensionless,
    "m/s": pq.m / pq.s,
    "l/min": pq.L / pq.minute,
}


def unit_from_text(text):
    """
    Return the quantities unit matching a channel unit text.

    Unknown or empty texts give ``pq.dimensionless``.
    """
    text = text.strip()
    if text in unit_aliases:
        return unit_aliases[text]
    if not text or text == "Unknown":
        return pq.dimensionless
    try:
        return pq.Quantity(1.0, text).units
    except (LookupError, SyntaxError, ValueError, TypeError, AttributeError):
        return pq.dimensionless
