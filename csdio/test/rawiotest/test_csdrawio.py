import datetime
import os
import struct
import unittest

import numpy as np
import quantities as pq

from csdio.core import (
    CsdHeaderNotLoadedError,
    CsdRepairError,
    CsdStructuralError,
    DecodeIssue,
)
from csdio.rawio import CsdRawIO, get_rawio
from csdio.rawio.csdrawio import RepairReport
from csdio.rawio.csdrawio.csdranges import display_limits
from csdio.test.rawiotest.common_rawio_test import BaseTestRawIO
from csdio.test.rawiotest.tools import (
    START_TIME_MS,
    make_channel_header,
    make_values,
    write_csd_file,
)


def make_sentinel_values():
    values = make_values(50, 3)
    values[::2, 0] = -9999.0
    values[:, 1] = -9999.0
    values[5, 1] = -8888.0
    values[7, 2] = -8887.0
    return values


start_datetime = datetime.datetime(2024, 3, 1, 12, tzinfo=datetime.timezone.utc)


class TestCsdRawIO(
    BaseTestRawIO,
    unittest.TestCase,
):
    rawioclass = CsdRawIO
    entities_to_test = {
        "regular.csd": dict(values=make_values(500, 3)),
        "nine_channels.csd": dict(values=make_values(2500, 9), sample_rate=60),
        "overdeclared.csd": dict(values=make_values(400, 9), num_of_samples=1000),
        "truncated_table.csd": dict(values=make_values(10, 4), nb_channel_header=2),
        "empty.csd": dict(values=np.zeros((0, 2))),
        "zero_header.csd": dict(values=make_values(20, 9), num_of_channels=0, start_time=0, stop_time=0),
        "sentinels.csd": dict(values=make_sentinel_values()),
    }

    def open_entity(self, entity_name, **kargs):
        reader = self.rawioclass(filename=self.write_entity(entity_name), **kargs)
        reader.parse_header()
        self.addCleanup(reader.close)
        return reader

    def test_header_values(self):
        reader = self.open_entity("regular.csd")

        self.assertEqual(reader.get_file_header().file_identifier, "CSDFILE")
        protocol_header = reader.get_protocol_header()
        self.assertEqual(protocol_header.description, "Cold store 3")
        self.assertEqual(protocol_header.device_name, "Logger 42")
        self.assertEqual(protocol_header.calibration_date, 45000.5)
        self.assertEqual(reader.get_num_channels(), 3)
        self.assertEqual(reader.get_num_samples(), 500)
        self.assertEqual(reader.get_sample_rate(), 1)
        self.assertEqual(reader.get_start_time(), start_datetime)
        self.assertEqual(reader.get_stop_time(), start_datetime + datetime.timedelta(seconds=500))

        self.assertEqual(reader.get_channel_descriptions(), ["Temperature 0", "Temperature 1", "Temperature 2"])
        self.assertEqual(reader.get_unit_texts(), ["°C"] * 3)
        self.assertIs(reader.get_channel_units()[0], pq.degC)
        self.assertEqual(reader.get_resolutions(), [2, 2, 2])
        self.assertEqual(reader.get_channel_mins(), [0.0, 0.0, 0.0])

        channel_header = reader.get_channel_headers()[1]
        self.assertEqual(channel_header.channel_number, 2)
        self.assertEqual(channel_header.sensor_description, "PT100")
        self.assertEqual(channel_header.device_unique_id, b"\x01\x02\x03\x04\x05\x06\x07\x08")

        self.assertEqual(reader.decode_issues, [])

    def test_sampling_period_and_duration(self):
        reader = self.open_entity("nine_channels.csd")
        self.assertEqual(reader.get_sampling_period().rescale(pq.s).magnitude, 60.0)
        self.assertEqual(reader.get_duration().rescale(pq.s).magnitude, 2500 * 60.0)

    def test_sample_values(self):
        values = self.entities_to_test["regular.csd"]["values"]
        reader = self.open_entity("regular.csd")

        channels = reader.sample(0, 499)
        self.assertEqual(len(channels), 3)
        for c in range(3):
            np.testing.assert_array_equal(channels[c], values[:, c])

        channels = reader.sample(10, 20, stride=5)
        np.testing.assert_array_equal(channels[1], values[[10, 15, 20], 1])

    def test_sample_clamps_range(self):
        values = self.entities_to_test["regular.csd"]["values"]
        reader = self.open_entity("regular.csd")

        channels = reader.sample(-50, 10**6)
        np.testing.assert_array_equal(channels[2], values[:, 2])

        for start, end in [(20, 10), (500, 600), (-10, -5)]:
            channels = reader.sample(start, end)
            self.assertEqual(len(channels), 3)
            for channel in channels:
                self.assertEqual(channel.size, 0)
        self.assertEqual(reader.get_channel_data(0, 700, 800).size, 0)

    def test_sample_for_display(self):
        values = self.entities_to_test["nine_channels.csd"]["values"]
        reader = self.open_entity("nine_channels.csd", max_display_points=100)

        # 2500 samples, at most 100 points: stride 25
        channels = reader.sample_for_display(0, 2499)
        self.assertEqual(len(channels), 9)
        self.assertEqual(channels[0].size, 100)
        np.testing.assert_array_equal(channels[4], values[::25, 4])

        channels = reader.sample_for_display(0, 2499, max_points=3000)
        self.assertEqual(channels[0].size, 2500)

    def test_get_channel_data(self):
        values = self.entities_to_test["regular.csd"]["values"]
        reader = self.open_entity("regular.csd")
        np.testing.assert_array_equal(reader.get_channel_data(1, 100, 199), values[100:200, 1])
        with self.assertRaises(IndexError):
            reader.get_channel_data(3, 0, 10)

    def test_analogsignal_chunk(self):
        values = self.entities_to_test["regular.csd"]["values"]
        reader = self.open_entity("regular.csd")

        np.testing.assert_array_equal(reader.get_analogsignal_chunk(0, 10), values[:10])
        raw_chunk = reader.get_analogsignal_chunk(5, 15, channel_indexes=[2, 0])
        np.testing.assert_array_equal(raw_chunk, values[5:15][:, [2, 0]])
        raw_chunk = reader.get_analogsignal_chunk(5, 15, channel_names=["Temperature 1"])
        np.testing.assert_array_equal(raw_chunk, values[5:15, 1:2])
        self.assertEqual(reader.get_analogsignal_chunk(7, 7).shape, (0, 3))

    def test_time_helpers(self):
        reader = self.open_entity("nine_channels.csd")

        sample_time = reader.get_sample_time(10)
        self.assertEqual(sample_time, start_datetime + datetime.timedelta(seconds=600))
        self.assertEqual(reader.time_to_index(sample_time), 10)
        self.assertEqual(reader.time_to_index(start_datetime + datetime.timedelta(seconds=59)), 0)

    def test_format_value(self):
        channel_headers = [make_channel_header(0, resolution=2), make_channel_header(1, resolution=0)]
        filename = write_csd_file(
            self.get_local_path("resolution.csd"), make_values(5, 2), channel_headers=channel_headers
        )
        reader = CsdRawIO(filename=filename)
        reader.parse_header()
        self.addCleanup(reader.close)

        self.assertEqual(reader.format_value(21.5, 0), "21.50")
        self.assertEqual(reader.format_value(21.5, 1), "21")

    def test_overdeclared_sample_count(self):
        reader = self.open_entity("overdeclared.csd")

        # 3586 + 9 * 918 header bytes, 400 records of 4 + 9 * 8 bytes
        self.assertEqual(os.path.getsize(reader.filename), 11848 + 400 * 76)
        self.assertEqual(reader.get_num_samples(), 1000)
        self.assertEqual(reader.compute_actual_sample_count(), 400)

        channels = reader.sample(0, 999)
        self.assertEqual(channels[0].size, 400)
        self.assertIn(DecodeIssue.TRUNCATED_RECORD, reader.decode_issues)

    def test_repair_sample_count(self):
        reader = self.open_entity("overdeclared.csd")

        protocol_header = reader.repair_sample_count()
        self.assertEqual(protocol_header.num_of_samples, 400)
        self.assertEqual(protocol_header.stop_time, START_TIME_MS + 400 * 1000)
        self.assertEqual(reader.get_num_samples(), 400)
        self.assertTrue(reader.is_header_parsed)

        with open(reader.filename, mode="rb") as f:
            data = f.read(3082)
        self.assertEqual(struct.unpack_from(">i", data, 3054)[0], 400)
        self.assertEqual(struct.unpack_from(">q", data, 3074)[0], START_TIME_MS + 400 * 1000)
        # untouched neighbours
        self.assertEqual(struct.unpack_from(">i", data, 3050)[0], 9)
        self.assertEqual(struct.unpack_from(">q", data, 3066)[0], START_TIME_MS)

    def test_repair_sample_count_partial_record(self):
        filename = write_csd_file(
            self.get_local_path("partial.csd"), make_values(400, 9), num_of_samples=1000, extra_bytes=b"\x00" * 30
        )
        reader = CsdRawIO(filename=filename)
        reader.parse_header()
        self.addCleanup(reader.close)

        self.assertEqual(reader.repair_sample_count().num_of_samples, 400)

    def test_repair_channel_range_is_visible_at_once(self):
        reader = self.open_entity("nine_channels.csd")

        channel_header = reader.repair_channel_range(2, -5.0, 37.5)
        self.assertEqual(channel_header.max, 37.5)
        self.assertEqual(reader.get_channel_maxs()[2], 37.5)
        self.assertEqual(reader.get_channel_mins()[2], -5.0)
        self.assertEqual(reader.header["signal_channels"]["max"][2], 37.5)

        # and persisted
        other = CsdRawIO(filename=reader.filename)
        other.parse_header()
        self.addCleanup(other.close)
        self.assertEqual(other.get_channel_maxs()[2], 37.5)
        self.assertEqual(other.get_channel_mins()[2], -5.0)
        self.assertEqual(other.get_channel_maxs()[1], 0.0)

    def test_repair_channel_range_errors(self):
        reader = self.open_entity("regular.csd")

        with self.assertRaises(CsdRepairError):
            reader.repair_channel_range(0, 10.0, 5.0)
        with self.assertRaises(CsdRepairError):
            reader.repair_channel_range(3, 0.0, 1.0)
        with self.assertRaises(CsdRepairError):
            reader.repair_channel_range(-1, 0.0, 1.0)
        with self.assertRaises(ValueError):
            reader.repair_channel_range(0, np.nan, 1.0)
        self.assertEqual(reader.get_channel_maxs(), [0.0, 0.0, 0.0])

    def test_scan_channel_ranges(self):
        values = self.entities_to_test["sentinels.csd"]["values"]
        reader = self.open_entity("sentinels.csd", chunk_size=7)

        ranges = reader.scan_channel_ranges()
        self.assertEqual(ranges[0], (values[1::2, 0].min(), values[1::2, 0].max()))
        # only INVALID and OVERRANGE
        self.assertEqual(ranges[1], (0.0, 0.0))
        # SENSOR_CHANGE is part of the range
        self.assertEqual(ranges[2], (-8887.0, values[:, 2].max()))

    def test_sample_for_display_masked(self):
        values = self.entities_to_test["sentinels.csd"]["values"]
        reader = self.open_entity("sentinels.csd")

        raw = reader.sample_for_display(0, 49)
        self.assertEqual(raw[0][0], -9999.0)

        channels = reader.sample_for_display(0, 49, masked=True)
        np.testing.assert_array_equal(np.isnan(channels[0]), values[:, 0] == -9999.0)
        self.assertTrue(np.all(np.isnan(channels[1])))
        # SENSOR_CHANGE is masked for display but not by the range scan
        self.assertTrue(np.isnan(channels[2][7]))
        self.assertEqual(display_limits(channels[2]), display_limits(values[:, 2]))

    def test_repair(self):
        reader = self.open_entity("sentinels.csd")

        report = reader.repair()
        self.assertIsInstance(report, RepairReport)
        self.assertEqual(report.old_sample_count, 50)
        self.assertEqual(report.sample_count, 50)
        self.assertEqual(report.stop_time, START_TIME_MS + 50 * 1000)
        self.assertEqual(report.channel_ranges[1], (0.0, 0.0))

        self.assertEqual(reader.get_channel_mins()[2], -8887.0)
        self.assertEqual(reader.get_channel_maxs()[0], report.channel_ranges[0][1])

    def test_open_close_open(self):
        filename = self.write_entity("regular.csd")
        reader = CsdRawIO(filename=filename)

        reader.open()
        protocol_header = reader.get_protocol_header()
        # opening twice reopens
        reader.open()
        reader.close()
        self.assertIsNone(reader.header)
        self.assertFalse(reader.is_header_parsed)
        reader.close()

        with CsdRawIO(filename=filename) as other:
            self.assertEqual(other.get_protocol_header(), protocol_header)
        self.assertFalse(other.is_header_parsed)

    def test_header_not_loaded(self):
        reader = CsdRawIO(filename=self.write_entity("regular.csd"))

        with self.assertRaises(CsdHeaderNotLoadedError):
            reader.get_num_channels()
        with self.assertRaises(CsdHeaderNotLoadedError):
            reader.get_analogsignal_chunk(0, 10)
        with self.assertRaises(CsdHeaderNotLoadedError):
            reader.sample(0, 10)
        with self.assertRaises(CsdHeaderNotLoadedError):
            reader.repair()
        with self.assertRaises(CsdHeaderNotLoadedError):
            reader.repair_channel_range(0, 0.0, 1.0)
        self.assertEqual(reader.decode_issues, [])

        reader.parse_header()
        reader.close()
        with self.assertRaises(CsdHeaderNotLoadedError):
            reader.get_channel_maxs()

    def test_structural_error(self):
        for size in (10, 100):
            filename = self.get_local_path(f"short_{size}.csd")
            with open(filename, mode="wb") as f:
                f.write(b"\x00" * size)
            reader = CsdRawIO(filename=filename)
            with self.assertRaises(CsdStructuralError):
                reader.parse_header()
            self.assertFalse(reader.is_header_parsed)

    def test_degraded_header(self):
        filename = self.write_entity("zero_header.csd")
        reader = CsdRawIO(filename=filename)
        with self.assertLogs("csdio", level="WARNING"):
            reader.parse_header()
        self.addCleanup(reader.close)

        self.assertEqual(reader.get_num_channels(), 9)
        self.assertIn(DecodeIssue.DEGRADED_HEADER, reader.decode_issues)
        with self.assertLogs("csdio", level="WARNING"):
            self.assertEqual(reader.get_start_time().timestamp(), 0)

    def test_truncated_channel_table(self):
        # 4 channels declared, only 2 channel headers in the file
        reader = self.open_entity("truncated_table.csd")

        self.assertEqual(reader.get_num_channels(), 2)
        self.assertEqual(reader.get_protocol_header().num_of_channels, 2)
        self.assertEqual(len(reader.get_channel_headers()), 2)
        self.assertEqual(reader.get_channel_descriptions(), ["Temperature 0", "Temperature 1"])
        self.assertEqual(reader.get_channel_maxs(), [0.0] * 2)
        self.assertIn(DecodeIssue.TRUNCATED_CHANNEL_TABLE, reader.decode_issues)
        self.assertIn(DecodeIssue.DEGRADED_HEADER, reader.decode_issues)
        with self.assertRaises(CsdRepairError):
            reader.repair_channel_range(3, 0.0, 1.0)

    def test_no_channel_header(self):
        filename = write_csd_file(self.get_local_path("no_table.csd"), make_values(10, 4), nb_channel_header=0)
        reader = CsdRawIO(filename=filename)
        with self.assertLogs("csdio", level="WARNING"):
            reader.parse_header()
        self.addCleanup(reader.close)

        self.assertEqual(reader.get_num_channels(), 1)
        self.assertEqual(reader.get_channel_headers(), [])
        self.assertEqual(reader.get_channel_descriptions(), ["Channel 0"])
        self.assertEqual(reader.sample(0, 9)[0].size, 0)

    def test_channel_count_larger_than_file(self):
        filename = self.write_entity("regular.csd")
        for declared in (2**31 - 1, 5000000):
            with open(filename, mode="r+b") as f:
                f.seek(3050)
                f.write(struct.pack(">i", declared))
            reader = CsdRawIO(filename=filename)
            with self.assertLogs("csdio", level="WARNING"):
                reader.parse_header()

            # the file holds 3 channel headers then the records
            nb_fitting = (os.path.getsize(filename) - 3586) // 918
            self.assertEqual(reader.get_num_channels(), nb_fitting)
            self.assertEqual(len(reader.get_channel_descriptions()), nb_fitting)
            self.assertEqual(
                reader.get_channel_descriptions()[:3], ["Temperature 0", "Temperature 1", "Temperature 2"]
            )
            self.assertIn(DecodeIssue.DEGRADED_HEADER, reader.decode_issues)
            reader.close()

    def test_garbage_channel_text(self):
        channel_headers = [
            make_channel_header(0, channel_description=b"", unit_text=b""),
            make_channel_header(1, channel_description=b"\xff\xfeAB\x80"),
            b"\xff" * 918,
        ]
        filename = write_csd_file(self.get_local_path("garbage.csd"), make_values(5, 3), channel_headers=channel_headers)
        reader = CsdRawIO(filename=filename)
        reader.parse_header()
        self.addCleanup(reader.close)

        self.assertEqual(reader.get_channel_descriptions(), ["Channel 0", "AB", "Channel 2"])
        self.assertEqual(reader.get_unit_texts()[0], "Unknown")
        self.assertEqual(reader.get_unit_texts()[2], "Unknown")
        self.assertIs(reader.get_channel_units()[2], pq.dimensionless)
        self.assertIn(DecodeIssue.TEXT_DECODE_FAILURE, reader.decode_issues)

    def test_repr(self):
        reader = self.open_entity("regular.csd")
        txt = repr(reader)
        self.assertIn("CsdRawIO", txt)
        self.assertIn("nb_sample: 500", txt)
        self.assertIn("Temperature 2", txt)

    def test_get_rawio(self):
        self.assertIs(get_rawio("recording.csd"), CsdRawIO)
        self.assertIs(get_rawio("RECORDING.CSD"), CsdRawIO)
        self.assertIsNone(get_rawio("recording.txt"))


if __name__ == "__main__":
    unittest.main()
