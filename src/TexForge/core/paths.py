"""Tile naming and output path helpers."""

import os
from pathlib import PurePosixPath

INTERMEDIATE_FORMAT = "png"
COMPRESSED_FORMAT = "ktx2"

# Extensions the directory batch converter picks up.
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")


def tile_filename(tile_id: str, fmt: str = INTERMEDIATE_FORMAT) -> str:
    """Return the on-disk name of a tile, e.g. ``"3_1.png"``."""
    return f"{tile_id}.{fmt.lstrip('.').lower()}"


def swap_extension(filename: str, fmt: str) -> str:
    """Replace the final extension of ``filename`` with ``fmt``.

    Only the last suffix changes and any directory part is preserved, so
    ``"a.png.png"`` becomes ``"a.png.ktx2"``.
    """
    p = PurePosixPath(str(filename).replace("\\", "/"))
    if not p.name:
        raise ValueError(f"Cannot swap extension of empty filename: {filename!r}")
    return str(p.with_suffix("." + fmt.lstrip(".").lower()))


def has_extension(filename: str, fmt: str) -> bool:
    return PurePosixPath(str(filename)).suffix.lower() == "." + fmt.lstrip(".").lower()


def is_image_file(filename: str) -> bool:
    return PurePosixPath(str(filename)).suffix.lower() in IMAGE_EXTENSIONS


def get_output_path(input_path: str, output_dir: str = None,
                    fmt: str = COMPRESSED_FORMAT) -> str:
    """Return the compressed output path for ``input_path``.

    Without ``output_dir`` the output lands next to the input.
    """
    name = swap_extension(os.path.basename(input_path), fmt)
    parent = output_dir if output_dir else os.path.dirname(input_path)
    return os.path.join(parent, name)
