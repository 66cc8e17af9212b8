"""
Common tests for RawIOs:

Every entity is a synthetic file written in a temporary folder by
:func:`csdio.test.rawiotest.tools.write_csd_file` and checked with the
rules of :mod:`csdio.test.rawiotest.rawio_compliance`.

"""

__test__ = False

import logging
import shutil
import tempfile
from pathlib import Path

from csdio.test.rawiotest import rawio_compliance as compliance
from csdio.test.rawiotest.tools import write_csd_file


class BaseTestRawIO:
    """
    This class make common tests for all IOs.

    Basically write synthetic files and test the IO is working.

    """

    # all IO test need to modify this:
    rawioclass = None  # the IOclass to be tested

    # {filename: write_csd_file keyword arguments}
    entities_to_test = {}

    def setUp(self):
        """
        Set up the test fixture.  This is run for every test
        """
        self.shortname = self.rawioclass.__name__.lower().replace("rawio", "")
        self.local_test_dir = Path(tempfile.mkdtemp(prefix=f"{self.shortname}_"))

    def tearDown(self):
        shutil.rmtree(self.local_test_dir, ignore_errors=True)

    def get_local_path(self, sub_path):
        return str(self.local_test_dir / sub_path)

    def write_entity(self, entity_name):
        filename = self.get_local_path(entity_name)
        return write_csd_file(filename, **self.entities_to_test[entity_name])

    def test_read_all(self):
        # Read all file in self.entities_to_test

        for entity_name in self.entities_to_test:
            filename = self.write_entity(entity_name)
            reader = self.rawioclass(filename=filename)

            txt = reader.__repr__()
            assert "nb_sample" not in txt, "Before parser_header() nb_sample should NOT be known"

            reader.parse_header()

            txt = reader.__repr__()
            assert "nb_sample" in txt, "After parser_header() nb_sample should be known"

            # lanch a series of test compliance
            compliance.header_is_total(reader)
            compliance.count_element(reader)
            compliance.read_analogsignals(reader)
            compliance.sample_for_display(reader)

            reader.close()
            assert reader.header is None

            logging.getLogger().info(f"{self.shortname} {entity_name} is ok")
