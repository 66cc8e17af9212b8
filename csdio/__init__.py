'''
csdio is a package for reading, checking and repairing CSD measurement
recordings in Python: fixed layout binary files holding a protocol header,
one header per channel and a long run of fixed length sample records.
'''
import importlib.metadata
# this need to be at the begining because some sub module will need the version
__version__ = importlib.metadata.version("csdio")

import logging

logging_handler = logging.StreamHandler()

from csdio.core import *
from csdio.rawio import *
