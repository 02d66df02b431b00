"""Tests for conversion outcomes and the aggregate run report."""

import unittest

from TexForge.core.grid import partition
from TexForge.core.manifest import TileFile, build_manifest
from TexForge.core.records import AggregateReport, ConversionOutcome, compression_ratio


def _ok(name, original, compressed):
    return ConversionOutcome(
        success=True, input_file=f"{name}.png", output_file=f"{name}.ktx2",
        original_size=original, compressed_size=compressed,
        compression_ratio=compression_ratio(original, compressed),
        mode="etc1s", duration_ms=5,
    )


def _failed(name):
    return ConversionOutcome.failure(
        input_file=f"{name}.png", output_file=f"{name}.ktx2", mode="etc1s",
        duration_ms=3, error="toktx exited with code 1",
    )


def _manifest():
    tiles = [TileFile.from_region(r, f"{r.id}.ktx2") for r in partition(32, 8, 8)]
    return build_manifest(32, 8, 8, tiles, fmt="ktx2")


class TestAggregateReport(unittest.TestCase):
    def test_totals_cover_successes_only(self):
        outcomes = [_ok("0_0", 4000, 1000), _failed("1_0"), _ok("2_0", 6000, 2500), _ok("3_0", 123, 100)]
        report = AggregateReport.from_outcomes(_manifest(), outcomes, manifest_path="out/metadata.json")

        original = 4000 + 6000 + 123
        compressed = 1000 + 2500 + 100
        self.assertEqual(report.total_original_size, original)
        self.assertEqual(report.total_compressed_size, compressed)
        self.assertEqual(report.total_saved, original - compressed)
        self.assertAlmostEqual(report.compression_ratio, (1 - compressed / original) * 100, places=9)
        self.assertEqual(report.failure_count, 1)
        self.assertEqual([o.input_file for o in report.succeeded], ["0_0.png", "2_0.png", "3_0.png"])
        self.assertEqual(report.conversions, outcomes)

    def test_no_successes_gives_zero_ratio(self):
        report = AggregateReport.from_outcomes(_manifest(), [_failed(f"{i}_0") for i in range(4)])
        self.assertEqual(report.total_original_size, 0)
        self.assertEqual(report.total_saved, 0)
        self.assertEqual(report.compression_ratio, 0.0)

    def test_to_dict_keys(self):
        report = AggregateReport.from_outcomes(
            _manifest(), [_ok("0_0", 100, 50)], warnings=["cleanup failed"],
        )
        data = report.to_dict()
        self.assertEqual(
            set(data),
            {"metadata", "conversions", "totalOriginalSize", "totalCompressedSize",
             "totalSaved", "compressionRatio", "warnings"},
        )
        self.assertEqual(data["totalSaved"], 50)
        self.assertEqual(data["compressionRatio"], 50.0)
        self.assertEqual(data["metadata"]["format"], "ktx2")
        self.assertEqual(data["conversions"][0]["output_file"], "0_0.ktx2")
        self.assertEqual(data["warnings"], ["cleanup failed"])


class TestConversionOutcome(unittest.TestCase):
    def test_failure_zeroes_sizes(self):
        outcome = _failed("0_0")
        self.assertFalse(outcome.success)
        self.assertEqual((outcome.original_size, outcome.compressed_size, outcome.compression_ratio), (0, 0, 0.0))
        self.assertEqual(outcome.saved_bytes, 0)

    def test_ratio_with_empty_original(self):
        self.assertEqual(compression_ratio(0, 10), 0.0)
        self.assertAlmostEqual(compression_ratio(200, 50), 75.0)


if __name__ == "__main__":
    unittest.main(verbosity=2)
