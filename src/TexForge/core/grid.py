"""Grid partitioning of an image into fixed-size tiles."""

from dataclasses import dataclass
from typing import List, Tuple
import logging

from ..errors import ConfigurationError

logger = logging.getLogger("texforge.grid")


@dataclass(frozen=True)
class TileRegion:
    """One cell of a tiling grid, in source-image pixel coordinates."""

    col: int
    row: int
    pixel_x: int
    pixel_y: int
    width: int
    height: int

    @property
    def id(self) -> str:
        return f"{self.col}_{self.row}"

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """Return the (left, top, right, bottom) crop box."""
        return (
            self.pixel_x,
            self.pixel_y,
            self.pixel_x + self.width,
            self.pixel_y + self.height,
        )

    @property
    def area(self) -> int:
        return self.width * self.height


def _require_positive_int(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def grid_dimensions(total_width: int, total_height: int, tile_size: int) -> Tuple[int, int]:
    """Return ``(columns, rows)`` needed to cover the image with tiles."""
    _require_positive_int("total_width", total_width)
    _require_positive_int("total_height", total_height)
    _require_positive_int("tile_size", tile_size)
    # Integer ceil division; avoids float rounding on very large images.
    return -(-total_width // tile_size), -(-total_height // tile_size)


def partition(total_width: int, total_height: int, tile_size: int) -> List[TileRegion]:
    """Split a ``total_width`` x ``total_height`` image into tile regions.

    Regions come back in row-major order: every column of row 0, then
    row 1, and so on. Manifest entries and compression order rely on it.
    Rightmost and bottom regions are clipped to the image, so together the
    regions cover every pixel exactly once.

    Raises ConfigurationError when any argument is not a positive integer.
    """
    cols, rows = grid_dimensions(total_width, total_height, tile_size)

    regions = []
    for row in range(rows):
        pixel_y = row * tile_size
        height = min(tile_size, total_height - pixel_y)
        for col in range(cols):
            pixel_x = col * tile_size
            width = min(tile_size, total_width - pixel_x)
            regions.append(TileRegion(
                col=col,
                row=row,
                pixel_x=pixel_x,
                pixel_y=pixel_y,
                width=width,
                height=height,
            ))

    logger.debug(
        "Partitioned %dx%d image into %dx%d grid (%d tiles, tile_size=%d)",
        total_width, total_height, cols, rows, len(regions), tile_size,
    )
    return regions
