"""Write grid regions of a source image out as individual tile files."""

import logging
import os
from typing import List, Sequence

from PIL import Image

from ..core import bitmap
from ..core.grid import TileRegion
from ..core.manifest import TileFile
from ..core.paths import INTERMEDIATE_FORMAT, tile_filename
from ..errors import ExtractionFailure, PipelineError

logger = logging.getLogger("texforge.materialize")


class TileMaterializer:
    """Crop tiles out of a decoded source image and name them by grid cell."""

    def __init__(self, max_image_pixels: int = 0):
        self.max_image_pixels = max_image_pixels

    def materialize(
        self,
        source: Image.Image,
        region: TileRegion,
        output_dir: str,
        intermediate_format: str = INTERMEDIATE_FORMAT,
    ) -> TileFile:
        """Write one region as ``{col}_{row}.{format}`` and describe it."""
        img_w, img_h = source.size
        if (region.pixel_x < 0 or region.pixel_y < 0
                or region.width <= 0 or region.height <= 0
                or region.pixel_x + region.width > img_w
                or region.pixel_y + region.height > img_h):
            raise ExtractionFailure(
                f"Tile {region.id} ({region.pixel_x}, {region.pixel_y}, "
                f"{region.width}x{region.height}) falls outside the "
                f"{img_w}x{img_h} source image"
            )

        filename = tile_filename(region.id, intermediate_format)
        out_path = os.path.join(output_dir, filename)
        try:
            bitmap.extract_region(
                source, region.pixel_x, region.pixel_y,
                region.width, region.height, out_path,
            )
        except (OSError, ValueError) as exc:
            raise ExtractionFailure(
                f"Failed to extract tile {region.id}: {exc}", cause=exc
            ) from exc
        return TileFile.from_region(region, filename)

    def materialize_all(
        self,
        source_path: str,
        regions: Sequence[TileRegion],
        output_dir: str,
        intermediate_format: str = INTERMEDIATE_FORMAT,
    ) -> List[TileFile]:
        """Decode ``source_path`` once and write every region in order.

        The first failing tile aborts the whole batch.
        """
        os.makedirs(output_dir, exist_ok=True)
        tiles = []
        with bitmap.open_source(source_path, max_pixels=self.max_image_pixels) as source:
            for idx, region in enumerate(regions, start=1):
                try:
                    tiles.append(self.materialize(source, region, output_dir, intermediate_format))
                except PipelineError:
                    logger.error(
                        "Tile %s (%d/%d) could not be materialized; aborting.",
                        region.id, idx, len(regions),
                    )
                    raise
                logger.debug("Materialized tile %s (%d/%d)", region.id, idx, len(regions))
        logger.info("Materialized %d tiles into %s", len(tiles), output_dir)
        return tiles
