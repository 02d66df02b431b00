"""Tile-set manifest model and atomic ``metadata.json`` I/O."""

import json
import logging
import math
import os
import threading
import uuid
from dataclasses import dataclass, field
from typing import List, Sequence

from ..errors import ManifestError, PersistenceError
from .grid import TileRegion, grid_dimensions
from .paths import COMPRESSED_FORMAT, INTERMEDIATE_FORMAT

logger = logging.getLogger("texforge.manifest")

MANIFEST_VERSION = 1
MANIFEST_FILENAME = "metadata.json"
MANIFEST_FORMATS = (INTERMEDIATE_FORMAT, COMPRESSED_FORMAT)

# JSON key -> attribute name. Key spelling is a contract with runtime loaders.
_TILE_FIELDS = (
    ("id", "id"),
    ("x", "x"),
    ("y", "y"),
    ("pixelX", "pixel_x"),
    ("pixelY", "pixel_y"),
    ("width", "width"),
    ("height", "height"),
    ("filename", "filename"),
)
_MANIFEST_FIELDS = (
    ("version", "version"),
    ("totalWidth", "total_width"),
    ("totalHeight", "total_height"),
    ("chunkWidth", "chunk_width"),
    ("chunkHeight", "chunk_height"),
    ("chunksX", "chunks_x"),
    ("chunksY", "chunks_y"),
)


@dataclass
class TileFile:
    """A materialized tile: grid identity plus the file that holds it."""

    id: str
    x: int
    y: int
    pixel_x: int
    pixel_y: int
    width: int
    height: int
    filename: str

    @classmethod
    def from_region(cls, region: TileRegion, filename: str) -> "TileFile":
        return cls(
            id=region.id,
            x=region.col,
            y=region.row,
            pixel_x=region.pixel_x,
            pixel_y=region.pixel_y,
            width=region.width,
            height=region.height,
            filename=filename,
        )

    def to_dict(self) -> dict:
        return {key: getattr(self, attr) for key, attr in _TILE_FIELDS}

    @classmethod
    def from_dict(cls, data: dict) -> "TileFile":
        missing = [key for key, _ in _TILE_FIELDS if key not in data]
        if missing:
            raise ManifestError(f"chunk entry missing fields: {', '.join(missing)}")
        kwargs = {}
        for key, attr in _TILE_FIELDS:
            value = data[key]
            if attr in ("id", "filename"):
                kwargs[attr] = str(value)
            else:
                kwargs[attr] = _as_int(value, key)
        return cls(**kwargs)


def _as_int(value, key: str) -> int:
    if isinstance(value, bool):
        raise ManifestError(f"field '{key}' must be an integer, got {value!r}")
    if isinstance(value, float):
        if not math.isfinite(value) or value != int(value):
            raise ManifestError(f"field '{key}' must be an integer, got {value!r}")
        return int(value)
    if not isinstance(value, int):
        raise ManifestError(f"field '{key}' must be an integer, got {value!r}")
    return value


@dataclass
class Manifest:
    """Authoritative description of one tiling operation."""

    total_width: int
    total_height: int
    chunk_width: int
    chunk_height: int
    chunks_x: int
    chunks_y: int
    chunks: List[TileFile] = field(default_factory=list)
    format: str = INTERMEDIATE_FORMAT
    version: int = MANIFEST_VERSION

    def validate(self) -> "Manifest":
        """Check the grid invariant and the format tag."""
        if self.format not in MANIFEST_FORMATS:
            raise ManifestError(
                f"format must be one of {list(MANIFEST_FORMATS)}, got '{self.format}'"
            )
        try:
            cols = -(-self.total_width // self.chunk_width)
            rows = -(-self.total_height // self.chunk_height)
        except (TypeError, ZeroDivisionError) as exc:
            raise ManifestError(f"invalid manifest dimensions: {exc}") from exc
        if min(self.total_width, self.total_height, self.chunk_width, self.chunk_height) <= 0:
            raise ManifestError("manifest dimensions must be positive")
        if (self.chunks_x, self.chunks_y) != (cols, rows):
            raise ManifestError(
                f"grid {self.chunks_x}x{self.chunks_y} does not match "
                f"ceil({self.total_width}/{self.chunk_width}) x "
                f"ceil({self.total_height}/{self.chunk_height}) = {cols}x{rows}"
            )
        if len(self.chunks) != cols * rows:
            raise ManifestError(
                f"manifest has {len(self.chunks)} chunks, expected {cols * rows}"
            )
        return self

    def to_dict(self) -> dict:
        data = {key: getattr(self, attr) for key, attr in _MANIFEST_FIELDS}
        data["chunks"] = [chunk.to_dict() for chunk in self.chunks]
        data["format"] = self.format
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Manifest":
        if not isinstance(data, dict):
            raise ManifestError(f"manifest must be a JSON object, got {type(data).__name__}")
        missing = [key for key, _ in _MANIFEST_FIELDS if key not in data]
        missing += [key for key in ("chunks", "format") if key not in data]
        if missing:
            raise ManifestError(f"manifest missing fields: {', '.join(missing)}")
        if not isinstance(data["chunks"], list):
            raise ManifestError("manifest 'chunks' must be a list")
        kwargs = {attr: _as_int(data[key], key) for key, attr in _MANIFEST_FIELDS}
        chunks = []
        for idx, entry in enumerate(data["chunks"]):
            if not isinstance(entry, dict):
                raise ManifestError(f"chunk {idx} must be an object")
            try:
                chunks.append(TileFile.from_dict(entry))
            except ManifestError as exc:
                raise ManifestError(f"chunk {idx}: {exc}") from exc
        manifest = cls(chunks=chunks, format=str(data["format"]), **kwargs)
        return manifest.validate()


def build_manifest(total_width: int, total_height: int, tile_size: int,
                   tile_files: Sequence[TileFile],
                   fmt: str = INTERMEDIATE_FORMAT) -> Manifest:
    """Assemble a manifest for a square-tile grid.

    ``tile_files`` must already be in row-major order.
    """
    cols, rows = grid_dimensions(total_width, total_height, tile_size)
    manifest = Manifest(
        total_width=total_width,
        total_height=total_height,
        chunk_width=tile_size,
        chunk_height=tile_size,
        chunks_x=cols,
        chunks_y=rows,
        chunks=list(tile_files),
        format=fmt,
    )
    return manifest.validate()


def save_manifest(manifest: Manifest, output_dir: str,
                  filename: str = MANIFEST_FILENAME) -> str:
    """Write ``manifest`` to ``<output_dir>/<filename>``, replacing any previous one.

    The file is written to a temp path, fsynced, then moved into place, so
    readers only ever see a complete manifest. Returns the written path.
    """
    manifest.validate()
    path = os.path.join(output_dir, filename)
    tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}.{uuid.uuid4().hex[:8]}"
    try:
        os.makedirs(output_dir or ".", exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(manifest.to_dict(), f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        logger.error("Failed to save manifest %s: %s", path, exc)
        raise PersistenceError(f"Failed to write manifest {path}: {exc}", cause=exc) from exc
    finally:
        if os.path.exists(tmp_path):
            try:
                os.remove(tmp_path)
            except OSError:
                pass
    logger.info(
        "Manifest saved: %s (%d chunks, format=%s)", path, len(manifest.chunks), manifest.format,
    )
    return path


def load_manifest(path: str) -> Manifest:
    """Load and validate a manifest written by ``save_manifest``."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Malformed JSON manifest '{path}': {exc}") from exc
    try:
        return Manifest.from_dict(data)
    except ManifestError as exc:
        raise ManifestError(f"Invalid manifest '{path}': {exc}") from exc
