"""
:mod:`csdio.core` provides the objects decoded from the headers of a CSD
file and the exceptions raised by the readers.

Classes:

.. autoclass:: FileHeader
.. autoclass:: ProtocolHeader
.. autoclass:: ChannelHeader

Exceptions:

.. autoclass:: CsdError
.. autoclass:: CsdStructuralError
.. autoclass:: CsdHeaderNotLoadedError
.. autoclass:: CsdRepairError

"""

from csdio.core.fileheader import FileHeader
from csdio.core.protocolheader import ProtocolHeader
from csdio.core.channelheader import ChannelHeader

from csdio.core.exceptions import (
    CsdError,
    CsdStructuralError,
    CsdHeaderNotLoadedError,
    CsdRepairError,
    DecodeIssue,
)

headerlist = [FileHeader, ProtocolHeader, ChannelHeader]

headernames = [hd.__name__ for hd in headerlist]
class_by_name = dict(zip(headernames, headerlist))
