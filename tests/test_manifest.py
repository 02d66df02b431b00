"""Tests for the tile-set manifest model and its JSON persistence."""

import json
import os
import unittest
from unittest import mock

import pytest

from TexForge.core.grid import partition
from TexForge.core.manifest import (
    Manifest, TileFile, build_manifest, load_manifest, save_manifest,
)
from TexForge.errors import ManifestError, PersistenceError


def _tiles(width, height, size, ext="png"):
    return [TileFile.from_region(r, f"{r.id}.{ext}") for r in partition(width, height, size)]


class TestBuildManifest(unittest.TestCase):
    def test_fields_follow_grid(self):
        m = build_manifest(2048, 1536, 1024, _tiles(2048, 1536, 1024))
        self.assertEqual((m.chunks_x, m.chunks_y), (2, 2))
        self.assertEqual((m.chunk_width, m.chunk_height), (1024, 1024))
        self.assertEqual(m.format, "png")
        self.assertEqual(m.version, 1)
        self.assertEqual([c.id for c in m.chunks], ["0_0", "1_0", "0_1", "1_1"])

    def test_wrong_chunk_count_rejected(self):
        tiles = _tiles(2048, 1536, 1024)[:3]
        with self.assertRaises(ManifestError):
            build_manifest(2048, 1536, 1024, tiles)

    def test_unknown_format_rejected(self):
        with self.assertRaises(ManifestError):
            build_manifest(64, 64, 64, _tiles(64, 64, 64), fmt="dds")

    def test_grid_mismatch_rejected(self):
        m = build_manifest(64, 64, 32, _tiles(64, 64, 32))
        m.chunks_x = 3
        with self.assertRaises(ManifestError):
            m.validate()


class TestManifestDict(unittest.TestCase):
    def test_camel_case_keys(self):
        m = build_manifest(100, 50, 64, _tiles(100, 50, 64))
        data = m.to_dict()
        self.assertEqual(
            set(data),
            {"version", "totalWidth", "totalHeight", "chunkWidth", "chunkHeight",
             "chunksX", "chunksY", "chunks", "format"},
        )
        self.assertEqual(
            data["chunks"][1],
            {"id": "1_0", "x": 1, "y": 0, "pixelX": 64, "pixelY": 0,
             "width": 36, "height": 50, "filename": "1_0.png"},
        )

    def test_from_dict_round_trip(self):
        m = build_manifest(100, 50, 64, _tiles(100, 50, 64))
        self.assertEqual(Manifest.from_dict(m.to_dict()), m)

    def test_from_dict_missing_field(self):
        data = build_manifest(64, 64, 64, _tiles(64, 64, 64)).to_dict()
        del data["chunksX"]
        with self.assertRaises(ManifestError):
            Manifest.from_dict(data)

    def test_chunk_field_type_checked(self):
        data = build_manifest(64, 64, 64, _tiles(64, 64, 64)).to_dict()
        data["chunks"][0]["pixelX"] = "zero"
        with self.assertRaises(ManifestError):
            Manifest.from_dict(data)


class TestManifestPersistence:
    def test_save_and_load(self, tmp_dir):
        m = build_manifest(2048, 1536, 1024, _tiles(2048, 1536, 1024, "ktx2"), fmt="ktx2")
        path = save_manifest(m, tmp_dir)
        assert path == os.path.join(tmp_dir, "metadata.json")
        loaded = load_manifest(path)
        assert loaded == m
        assert loaded.chunks[3].filename == "1_1.ktx2"

    def test_save_overwrites_without_merging(self, tmp_dir):
        first = build_manifest(128, 128, 64, _tiles(128, 128, 64))
        second = build_manifest(64, 64, 64, _tiles(64, 64, 64))
        save_manifest(first, tmp_dir)
        path = save_manifest(second, tmp_dir)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        assert len(data["chunks"]) == 1
        assert data["totalWidth"] == 64
        assert os.listdir(tmp_dir) == ["metadata.json"]

    def test_custom_filename_and_missing_dir(self, tmp_dir):
        out = os.path.join(tmp_dir, "nested", "dir")
        path = save_manifest(build_manifest(8, 8, 8, _tiles(8, 8, 8)), out, "tiles.json")
        assert path == os.path.join(out, "tiles.json")
        assert os.path.isfile(path)

    def test_write_failure_raises_persistence_error(self, tmp_dir):
        m = build_manifest(8, 8, 8, _tiles(8, 8, 8))
        with mock.patch("TexForge.core.manifest.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError) as ctx:
                save_manifest(m, tmp_dir)
        assert ctx.value.phase == "finalize"
        assert "disk full" in str(ctx.value)
        assert os.listdir(tmp_dir) == []

    def test_invalid_manifest_not_written(self, tmp_dir):
        m = build_manifest(8, 8, 8, _tiles(8, 8, 8))
        m.chunks = []
        with pytest.raises(ManifestError):
            save_manifest(m, tmp_dir)
        assert not os.path.exists(os.path.join(tmp_dir, "metadata.json"))

    def test_load_malformed_json(self, tmp_dir):
        path = os.path.join(tmp_dir, "metadata.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with pytest.raises(ManifestError):
            load_manifest(path)

    def test_load_non_finite_number(self, tmp_dir):
        data = build_manifest(8, 8, 8, _tiles(8, 8, 8)).to_dict()
        for bad in (float("inf"), float("nan")):
            data["version"] = bad
            path = os.path.join(tmp_dir, "metadata.json")
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f)
            with pytest.raises(ManifestError):
                load_manifest(path)

    def test_load_missing_file(self, tmp_dir):
        with pytest.raises(FileNotFoundError):
            load_manifest(os.path.join(tmp_dir, "nope.json"))


if __name__ == "__main__":
    unittest.main(verbosity=2)
