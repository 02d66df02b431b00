"""Core building blocks -- re-exports all public symbols for convenience."""

from .grid import TileRegion, partition, grid_dimensions
from .bitmap import read_dimensions, open_source, extract_region
from .manifest import (
    TileFile,
    Manifest,
    MANIFEST_FILENAME,
    MANIFEST_VERSION,
    build_manifest,
    save_manifest,
    load_manifest,
)
from .records import ConversionOutcome, AggregateReport, compression_ratio
from .paths import (
    INTERMEDIATE_FORMAT, COMPRESSED_FORMAT,
    tile_filename, swap_extension, get_output_path,
)
from .logging import setup_logging

__all__ = [
    "TileRegion", "partition", "grid_dimensions",
    "read_dimensions", "open_source", "extract_region",
    "TileFile", "Manifest", "MANIFEST_FILENAME", "MANIFEST_VERSION",
    "build_manifest", "save_manifest", "load_manifest",
    "ConversionOutcome", "AggregateReport", "compression_ratio",
    "INTERMEDIATE_FORMAT", "COMPRESSED_FORMAT",
    "tile_filename", "swap_extension", "get_output_path",
    "setup_logging",
]
