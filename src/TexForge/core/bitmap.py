"""Pillow-backed bitmap access: header reads, region crops, tile writes."""

import logging
import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Tuple

from PIL import Image, UnidentifiedImageError

from ..errors import ExtractionFailure, SourceReadError

# Tiling exists for images far beyond Pillow's decompression bomb threshold;
# the pixel budget is checked per call in read_dimensions() instead.
Image.MAX_IMAGE_PIXELS = None

logger = logging.getLogger("texforge.bitmap")

# Modes PNG can store directly; anything else is converted before saving.
_PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


def _check_pixel_budget(path: str, width: int, height: int, max_pixels: int):
    if max_pixels > 0 and width * height > max_pixels:
        logger.warning(
            "Image %s exceeds max_pixels: %d > %d", path, width * height, max_pixels,
        )
        raise SourceReadError(
            f"Image too large: {width}x{height} = {width * height:,} pixels "
            f"(max {max_pixels:,}). Increase max_image_pixels to process it."
        )


def read_dimensions(path: str, max_pixels: int = 0) -> Tuple[int, int]:
    """Return ``(width, height)`` from the image header without decoding pixels."""
    if not os.path.isfile(path):
        raise SourceReadError(f"Source image not found: {path}")
    try:
        with Image.open(path) as img:
            width, height = img.size
    except (OSError, UnidentifiedImageError) as exc:
        logger.error("Failed to read image header '%s': %s", path, exc)
        raise SourceReadError(f"Failed to read image dimensions: {path}: {exc}", cause=exc) from exc

    if width <= 0 or height <= 0:
        raise SourceReadError(f"Image reports invalid dimensions {width}x{height}: {path}")
    _check_pixel_budget(path, width, height, max_pixels)
    logger.debug("Read dimensions %dx%d from %s", width, height, path)
    return width, height


@contextmanager
def open_source(path: str, max_pixels: int = 0) -> Iterator[Image.Image]:
    """Open and fully decode a source image once for repeated cropping."""
    read_dimensions(path, max_pixels=max_pixels)
    try:
        img = Image.open(path)
        img.load()
    except (OSError, UnidentifiedImageError) as exc:
        logger.error("Failed to decode image '%s': %s", path, exc)
        raise SourceReadError(f"Failed to decode image: {path}: {exc}", cause=exc) from exc
    try:
        yield img
    finally:
        img.close()


def _png_compatible(img: Image.Image) -> Image.Image:
    if img.mode in _PNG_MODES:
        return img
    target = "RGBA" if "A" in img.getbands() else "RGB"
    logger.debug("Converting tile from %s to %s for PNG output", img.mode, target)
    return img.convert(target)


def extract_region(image: Image.Image, x: int, y: int, width: int, height: int,
                   output_path: str) -> str:
    """Crop ``(x, y, width, height)`` out of ``image`` and write it to ``output_path``.

    Uses an atomic write (temp file + ``os.replace``) so a crash never leaves
    a truncated tile behind.
    """
    img_w, img_h = image.size
    if width <= 0 or height <= 0 or x < 0 or y < 0 or x + width > img_w or y + height > img_h:
        raise ExtractionFailure(
            f"Crop rectangle ({x}, {y}, {width}x{height}) is outside "
            f"the {img_w}x{img_h} source image"
        )

    ext = Path(output_path).suffix.lower()
    os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
    # Keep the original extension so Pillow can infer the format.
    tmp_path = f"{output_path}.tmp.{os.getpid()}.{threading.get_ident()}{ext}"
    try:
        with image.crop((x, y, x + width, y + height)) as tile:
            if ext == ".png":
                out = _png_compatible(tile)
                out.save(tmp_path)
                if out is not tile:
                    out.close()
            elif ext in (".jpg", ".jpeg") and tile.mode not in ("RGB", "L"):
                with tile.convert("RGB") as converted:
                    converted.save(tmp_path)
            else:
                tile.save(tmp_path)
        os.replace(tmp_path, output_path)
    except (OSError, ValueError) as exc:
        logger.error("Failed to write tile %s: %s", output_path, exc)
        raise ExtractionFailure(f"Failed to write tile {output_path}: {exc}", cause=exc) from exc
    finally:
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass
    logger.debug("Saved tile: %s (%dx%d at %d,%d)", output_path, width, height, x, y)
    return output_path
