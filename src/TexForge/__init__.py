"""Provide package metadata, shared paths, and the public API for `TexForge`."""

import logging as _logging
import os as _os
from pathlib import Path as _Path

__version__ = "0.1.0"
_logger = _logging.getLogger("texforge")


def _bin_dir_candidates():
    env = _os.environ.get("TEXFORGE_BIN_DIR")
    if env:
        yield _Path(env).expanduser()

    pkg_dir = _Path(__file__).resolve().parent
    # Wheel/package-data layout (if bundled).
    yield pkg_dir / "bin"
    # Editable/repo layout: src/TexForge -> project_root/bin.
    yield pkg_dir.parent.parent / "bin"
    # Working-directory fallback for external deployments.
    yield _Path.cwd() / "bin"


def _resolve_bin_dir() -> _Path:
    for candidate in _bin_dir_candidates():
        if candidate.is_dir():
            return candidate
    # Deterministic fallback even when missing; toktx is usually on PATH.
    fallback = _Path(__file__).resolve().parent / "bin"
    _logger.debug("No bundled tool directory found. Falling back to %s.", fallback)
    return fallback


BIN_DIR = _resolve_bin_dir()

from .errors import (  # noqa: E402
    TexForgeError, ConfigurationError, ManifestError, PipelineError,
    SourceReadError, ExtractionFailure, PersistenceError, CompressionFailure,
)
from .config import CompressionMode, CompressionOptions, ForgeConfig  # noqa: E402
from .phases.compress import TileCompressor, check_tool_availability  # noqa: E402
from .pipeline import (  # noqa: E402
    TexForgePipeline, process_map_to_ktx2, convert, convert_batch,
)

__all__ = [
    "__version__", "BIN_DIR",
    "TexForgeError", "ConfigurationError", "ManifestError", "PipelineError",
    "SourceReadError", "ExtractionFailure", "PersistenceError", "CompressionFailure",
    "CompressionMode", "CompressionOptions", "ForgeConfig",
    "TileCompressor", "check_tool_availability",
    "TexForgePipeline", "process_map_to_ktx2", "convert", "convert_batch",
]
