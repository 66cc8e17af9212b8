"""
RawIO for reading and repairing CSD recordings.

csdheader    layout of the file, protocol and channel headers and their decoders
csdrecords   random access to the fixed length sample records and down sampling
csdranges    sentinel codes and the chunked per channel range scan
csdrepair    in place patches of the sample count, stop time and channel ranges
"""

from csdio.rawio.csdrawio.csdrawio import CsdRawIO, RepairReport
