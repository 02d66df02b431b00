"""Orchestrate map tiling and KTX2 compression end-to-end.

`TexForgePipeline` partitions a large image into a tile grid, writes the
tiles as intermediate PNGs, compresses each tile with toktx, and publishes
the final ``metadata.json`` manifest.
"""

import logging
import os
import shutil
import time
from typing import Callable, List, Optional

from .config import CompressionOptions, ForgeConfig
from .core import (
    AggregateReport, ConversionOutcome, Manifest, build_manifest, partition,
    read_dimensions, save_manifest,
)
from .core.paths import COMPRESSED_FORMAT, INTERMEDIATE_FORMAT, swap_extension
from .errors import ConfigurationError, PersistenceError, PipelineError
from .phases.compress import TileCompressor, format_bytes
from .phases.materialize import TileMaterializer

logger = logging.getLogger("texforge.pipeline")

ProgressCallback = Callable[[int, int, str, ConversionOutcome], None]


def _get_version() -> str:
    """Read version from package."""
    from . import __version__
    return __version__


class TexForgePipeline:
    """Tile a large map image and compress every tile to KTX2.

    Phases, strictly in order:
    1. partition   -- read image dimensions, compute the tile grid
    2. materialize -- write intermediate PNG tiles + intermediate manifest
    3. compress    -- convert each tile, in manifest order, one at a time
    4. finalize    -- drop intermediates, publish the KTX2 manifest
    """

    def __init__(
        self,
        config: Optional[ForgeConfig] = None,
        compressor: Optional[TileCompressor] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        self.config = config or ForgeConfig()
        self._compressor = compressor
        self._progress_callback = progress_callback
        self.phase: Optional[str] = None

    def _make_compressor(self, options: Optional[CompressionOptions]) -> TileCompressor:
        if options is None and self._compressor is not None:
            return self._compressor
        if self._compressor is not None:
            # Keep the injected runner, swap the options.
            return TileCompressor(options, runner=self._compressor.runner)
        return TileCompressor(options or self.config.compression)

    def _report_progress(self, index: int, total: int, filename: str,
                         outcome: ConversionOutcome) -> None:
        logger.debug("[progress] tile %d/%d %s success=%s", index, total, filename, outcome.success)
        if self._progress_callback is not None:
            self._progress_callback(index, total, filename, outcome)

    def run(
        self,
        input_image: str,
        output_dir: Optional[str] = None,
        tile_size: Optional[int] = None,
        options: Optional[CompressionOptions] = None,
    ) -> AggregateReport:
        """Run all four phases and return the aggregate report.

        Raises a PipelineError subclass (SourceReadError, ExtractionFailure,
        PersistenceError) for fatal problems and ConfigurationError for bad
        settings. Per-tile compression failures are reported, not raised.
        """
        cfg = self.config
        output_dir = output_dir or cfg.output_dir
        tile_size = cfg.tiling.tile_size if tile_size is None else tile_size
        start_time = time.time()

        # Fail fast on settings before touching the filesystem.
        self.phase = "partition"
        cfg.validate()
        if isinstance(tile_size, bool) or not isinstance(tile_size, int) or tile_size < 1:
            raise ConfigurationError(f"tile_size must be a positive integer, got {tile_size!r}")
        compressor = self._make_compressor(options)

        logger.info("=" * 60)
        logger.info("TEXFORGE MAP PIPELINE v%s", _get_version())
        logger.info("=" * 60)
        logger.info("Input:     %s", input_image)
        logger.info("Output:    %s", output_dir)
        logger.info("Tile size: %d", tile_size)
        logger.info(
            "Mode:      %s (quality=%d, clevel=%d, mipmaps=%s)",
            compressor.mode.value.upper(), compressor.options.quality,
            compressor.options.compression_level, compressor.options.mipmaps,
        )

        # Phase 1: partition
        width, height = read_dimensions(input_image, max_pixels=cfg.max_image_pixels)
        regions = partition(width, height, tile_size)
        logger.info(
            "Partitioned %dx%d image into %d tiles", width, height, len(regions),
        )

        # Phase 2: materialize
        self.phase = "materialize"
        temp_dir = os.path.join(output_dir, cfg.tiling.temp_dir_name)
        manifest = self._materialize(input_image, regions, temp_dir, width, height, tile_size)

        # Phase 3: compress
        self.phase = "compress"
        warnings: List[str] = []
        try:
            conversions = self._compress_tiles(compressor, manifest, temp_dir, output_dir)
        finally:
            # Intermediates go even when the compress loop is interrupted.
            self._cleanup_temp_dir(temp_dir, warnings)

        # Phase 4: finalize
        self.phase = "finalize"
        manifest.format = COMPRESSED_FORMAT
        manifest_path = save_manifest(manifest, output_dir, cfg.tiling.manifest_name)

        report = AggregateReport.from_outcomes(
            manifest, conversions, manifest_path=manifest_path, warnings=warnings,
        )
        self.phase = None
        self._log_summary(report, time.time() - start_time)
        return report

    def _materialize(self, input_image: str, regions, temp_dir: str,
                     width: int, height: int, tile_size: int) -> Manifest:
        if os.path.isdir(temp_dir):
            logger.info("Removing stale intermediate directory: %s", temp_dir)
            try:
                shutil.rmtree(temp_dir)
            except OSError as exc:
                raise PersistenceError(
                    f"Cannot clear stale intermediate directory {temp_dir}: {exc}",
                    phase="materialize", cause=exc,
                ) from exc

        materializer = TileMaterializer(max_image_pixels=self.config.max_image_pixels)
        tiles = materializer.materialize_all(input_image, regions, temp_dir, INTERMEDIATE_FORMAT)
        manifest = build_manifest(width, height, tile_size, tiles, fmt=INTERMEDIATE_FORMAT)
        try:
            save_manifest(manifest, temp_dir, self.config.tiling.manifest_name)
        except PipelineError as exc:
            exc.phase = "materialize"
            raise
        return manifest

    def _compress_tiles(self, compressor: TileCompressor, manifest: Manifest,
                        temp_dir: str, output_dir: str) -> List[ConversionOutcome]:
        conversions: List[ConversionOutcome] = []
        total = len(manifest.chunks)
        for index, chunk in enumerate(manifest.chunks, start=1):
            input_path = os.path.join(temp_dir, chunk.filename)
            compressed_name = swap_extension(chunk.filename, COMPRESSED_FORMAT)
            output_path = os.path.join(output_dir, compressed_name)

            outcome = compressor.compress(input_path, output_path)
            conversions.append(outcome)
            if outcome.success:
                chunk.filename = compressed_name
            else:
                logger.warning(
                    "Tile %s failed to compress; manifest keeps %s: %s",
                    chunk.id, chunk.filename, outcome.error,
                )
            self._report_progress(index, total, chunk.filename, outcome)
        return conversions

    @staticmethod
    def _cleanup_temp_dir(temp_dir: str, warnings: List[str]) -> None:
        """Remove intermediate tiles; a failure becomes a report warning."""
        if not os.path.isdir(temp_dir):
            return
        try:
            shutil.rmtree(temp_dir)
            logger.info("Cleaned up intermediate directory: %s", temp_dir)
        except OSError as exc:
            message = f"Failed to remove intermediate directory {temp_dir}: {exc}"
            logger.warning(message)
            warnings.append(message)

    @staticmethod
    def _log_summary(report: AggregateReport, elapsed: float) -> None:
        total = len(report.conversions)
        logger.info("=" * 60)
        logger.info(
            "Compressed %d/%d tiles in %.1fs (%d failed)",
            total - report.failure_count, total, elapsed, report.failure_count,
        )
        logger.info(
            "Size: %s -> %s (saved %s, %.1f%%)",
            format_bytes(report.total_original_size),
            format_bytes(report.total_compressed_size),
            format_bytes(max(report.total_saved, 0)),
            report.compression_ratio,
        )
        for warning in report.warnings:
            logger.warning("Warning: %s", warning)
        logger.info("Manifest: %s", report.manifest_path)
        logger.info("=" * 60)


def process_map_to_ktx2(input_image: str, output_dir: str, tile_size: int = 1024,
                        config: Optional[ForgeConfig] = None,
                        **options) -> AggregateReport:
    """Tile ``input_image`` and compress the tiles in a single call.

    Extra keyword arguments are `CompressionOptions` fields (``mode``,
    ``quality``, ``compression_level``, ``mipmaps`` ...).
    """
    return TexForgePipeline(config).run(
        input_image, output_dir, tile_size, CompressionOptions(**options),
    )


def convert(input_path: str, output_path: Optional[str] = None,
            **options) -> ConversionOutcome:
    """Convert one image to KTX2."""
    return TileCompressor(CompressionOptions(**options)).compress(input_path, output_path)


def convert_batch(input_dir: str, output_dir: Optional[str] = None,
                  on_progress: Optional[ProgressCallback] = None,
                  **options) -> List[ConversionOutcome]:
    """Convert every PNG/JPEG in ``input_dir`` to KTX2, one at a time."""
    compressor = TileCompressor(CompressionOptions(**options))
    return compressor.convert_directory(input_dir, output_dir, on_progress=on_progress)
