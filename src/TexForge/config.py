"""Define typed configuration models for tiling and KTX2 compression.

Use `ForgeConfig` to load, validate, and persist runtime settings.
"""

import dataclasses
import os
import logging
import threading
import yaml
from dataclasses import dataclass, field
from enum import Enum
from typing import List

from .errors import ConfigurationError

logger = logging.getLogger("texforge.config")

DEFAULT_TILE_SIZE = 1024
DEFAULT_QUALITY = 128
DEFAULT_COMPRESSION_LEVEL = 2

# Bounds accepted by toktx for --qlevel and --clevel.
QUALITY_RANGE = (1, 255)
COMPRESSION_LEVEL_RANGE = (0, 5)


class CompressionMode(Enum):
    """Enumerate the Basis Universal encodings supported by toktx."""

    ETC1S = "etc1s"
    UASTC = "uastc"

    @classmethod
    def parse(cls, value) -> "CompressionMode":
        """Parse a mode name case-insensitively."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for mode in cls:
            if mode.value == text:
                return mode
        raise ConfigurationError(
            f"Invalid compression mode '{value}'. "
            f"Use one of: {', '.join(m.value for m in cls)}"
        )


@dataclass
class CompressionOptions:
    """Store settings for the external KTX2 encoder."""

    mode: str = CompressionMode.ETC1S.value
    quality: int = DEFAULT_QUALITY
    compression_level: int = DEFAULT_COMPRESSION_LEVEL
    mipmaps: bool = False
    normal_map: bool = False
    tool_path: str = ""
    threads: int = 0  # 0 = let toktx use every core
    tool_timeout_seconds: int = 0  # 0 = wait for the tool indefinitely

    @property
    def compression_mode(self) -> CompressionMode:
        return CompressionMode.parse(self.mode)

    def collect_errors(self, prefix: str = "") -> List[str]:
        """Return a list of human-readable problems with these options."""
        errors = []
        try:
            CompressionMode.parse(self.mode)
        except ConfigurationError as exc:
            errors.append(f"{prefix}mode: {exc}")
        lo, hi = QUALITY_RANGE
        if not isinstance(self.quality, int) or not (lo <= self.quality <= hi):
            errors.append(f"{prefix}quality must be in [{lo}, {hi}], got {self.quality!r}")
        lo, hi = COMPRESSION_LEVEL_RANGE
        if (not isinstance(self.compression_level, int)
                or not (lo <= self.compression_level <= hi)):
            errors.append(
                f"{prefix}compression_level must be in [{lo}, {hi}], "
                f"got {self.compression_level!r}"
            )
        if not isinstance(self.threads, int) or self.threads < 0:
            errors.append(f"{prefix}threads must be >= 0 (0 = all cores)")
        if not isinstance(self.tool_timeout_seconds, int) or self.tool_timeout_seconds < 0:
            errors.append(f"{prefix}tool_timeout_seconds must be >= 0 (0 = no timeout)")
        return errors

    def validate(self) -> "CompressionOptions":
        """Raise ConfigurationError on invalid options and normalize the mode."""
        errors = self.collect_errors()
        if errors:
            raise ConfigurationError(
                "Invalid compression options:\n" +
                "\n".join(f"  - {e}" for e in errors)
            )
        self.mode = CompressionMode.parse(self.mode).value
        return self


@dataclass
class TilingConfig:
    """Store grid and on-disk layout settings for map tiling."""

    tile_size: int = DEFAULT_TILE_SIZE
    temp_dir_name: str = "chunks_temp"
    manifest_name: str = "metadata.json"


_SUPPORTED_CONFIG_VERSION = 1


@dataclass
class ForgeConfig:
    """Master configuration."""

    config_version: int = 1
    output_dir: str = "./output"
    log_level: str = "INFO"
    log_to_file: bool = True
    max_image_pixels: int = 1 << 30  # 32768x32768

    tiling: TilingConfig = field(default_factory=TilingConfig)
    compression: CompressionOptions = field(default_factory=CompressionOptions)

    @classmethod
    def from_yaml(cls, path: str) -> "ForgeConfig":
        """Load configuration from YAML or return defaults."""
        if not os.path.exists(path):
            logger.info("Config file '%s' not found. Using defaults.", path)
            config = cls()
            config.validate()
            return config
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"Failed to parse YAML config '{path}': {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Config file '{path}' must contain a YAML mapping, "
                f"got {type(data).__name__}"
            )
        yaml_version = data.get("config_version", 1)
        if isinstance(yaml_version, int) and yaml_version > _SUPPORTED_CONFIG_VERSION:
            logger.warning(
                "Config file '%s' has config_version=%d, but this build only "
                "supports up to version %d. Some settings may be ignored.",
                path, yaml_version, _SUPPORTED_CONFIG_VERSION,
            )
        config = cls()
        _merge_dict_to_dataclass(config, data)
        try:
            config.validate()
        except ConfigurationError as exc:
            raise ConfigurationError(f"{path}: {exc}") from exc
        return config

    def to_yaml(self, path: str):
        """Write configuration to a YAML file."""
        data = dataclasses.asdict(self)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        ext = os.path.splitext(path)[1]
        tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}{ext}"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError:
                    pass

    def validate(self):
        """Validate configuration values. Raises ConfigurationError on invalid config."""
        errors = []

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if str(self.log_level).upper() not in valid_log_levels:
            errors.append(
                f"log_level must be one of {sorted(valid_log_levels)}, "
                f"got '{self.log_level}'"
            )
        if not self.output_dir:
            errors.append("output_dir must not be empty")
        if self.max_image_pixels < 0:
            errors.append("max_image_pixels must be >= 0 (0 = unlimited)")

        if not isinstance(self.tiling.tile_size, int) or self.tiling.tile_size < 1:
            errors.append(f"tiling.tile_size must be a positive integer, got {self.tiling.tile_size!r}")
        for key in ("temp_dir_name", "manifest_name"):
            value = getattr(self.tiling, key)
            if not value or os.path.basename(value) != value or value in (".", ".."):
                errors.append(f"tiling.{key} must be a plain file name, got '{value}'")
        if self.tiling.temp_dir_name == self.tiling.manifest_name:
            errors.append("tiling.temp_dir_name and tiling.manifest_name must differ")

        errors.extend(self.compression.collect_errors("compression."))

        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n" +
                "\n".join(f"  - {e}" for e in errors)
            )
        self.compression.mode = CompressionMode.parse(self.compression.mode).value


def _merge_dict_to_dataclass(obj, data: dict, _path: str = ""):
    for key, value in data.items():
        full_key = f"{_path}{key}"
        if not hasattr(obj, key):
            logger.warning("Unknown config key ignored: '%s'", full_key)
            continue
        field_val = getattr(obj, key)
        if dataclasses.is_dataclass(field_val) and isinstance(value, dict):
            _merge_dict_to_dataclass(field_val, value, f"{full_key}.")
            continue
        if value is None and field_val is not None:
            logger.warning(
                "Config key '%s' is null but field default is %s. Using default value.",
                full_key, type(field_val).__name__,
            )
            continue
        expected_type = type(field_val)
        # bool is an int subclass; keep them apart so `tile_size: true` is rejected.
        type_ok = isinstance(value, expected_type) and not (
            expected_type is int and isinstance(value, bool)
        )
        if (field_val is not None
                and not type_ok
                and not (expected_type is int
                         and isinstance(value, float)
                         and value == int(value))):
            logger.warning(
                "Config type mismatch for '%s': expected %s, got %s (%r). "
                "Using default value.",
                full_key, expected_type.__name__, type(value).__name__, value,
            )
            continue
        # Promote exact-integer floats to int (e.g. YAML 1024.0 -> 1024)
        if expected_type is int and isinstance(value, float):
            value = int(value)
        setattr(obj, key, value)
