"""
:mod:`csdio.rawio` provides classes for reading CSD measurement recordings
with a low-level API

:attr:`csdio.rawio.rawiolist` provides a list of the rawio classes.

Functions:

.. autofunction:: csdio.rawio.get_rawio


Classes:

* :attr:`CsdRawIO`


.. autoclass:: csdio.rawio.CsdRawIO

    .. autoattribute:: extensions

"""

from pathlib import Path

from csdio.rawio.csdrawio import CsdRawIO

rawiolist = [
    CsdRawIO,
]


def get_rawio(filename):
    """
    Return a csdio.rawio class guess from file extension.

    Parameters
    ----------
    filename : str | Path
        The filename to check for file suffixes that can be read by csdio.
        The file does not need to exist.

    Returns
    -------
    rawio: csdio.RawIO | None
        The RawIO class able to read the file, None if there is none
    """
    ext = Path(filename).suffix[1:]
    for rawio in rawiolist:
        if ext in rawio.extensions:
            return rawio
    return None
