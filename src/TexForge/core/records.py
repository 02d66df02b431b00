"""Result records for tile conversions and whole pipeline runs."""

from dataclasses import dataclass, asdict, field
from typing import List, Optional

from ..errors import CompressionFailure
from .manifest import Manifest


def compression_ratio(original_size: int, compressed_size: int) -> float:
    """Return the percentage saved, ``(1 - compressed/original) * 100``.

    An empty original yields 0.0 rather than dividing by zero.
    """
    if original_size <= 0:
        return 0.0
    return (1.0 - compressed_size / original_size) * 100.0


@dataclass(frozen=True)
class ConversionOutcome:
    """Result of compressing a single tile or image."""

    success: bool
    input_file: str
    output_file: str
    original_size: int
    compressed_size: int
    compression_ratio: float
    mode: str
    duration_ms: int
    error: Optional[str] = None

    @classmethod
    def failure(cls, input_file: str, output_file: str, mode: str,
                duration_ms: int, error: str) -> "ConversionOutcome":
        """Build a failed outcome. Sizes and ratio are always zero."""
        return cls(
            success=False,
            input_file=input_file,
            output_file=output_file,
            original_size=0,
            compressed_size=0,
            compression_ratio=0.0,
            mode=mode,
            duration_ms=duration_ms,
            error=error or "unknown error",
        )

    @property
    def saved_bytes(self) -> int:
        return self.original_size - self.compressed_size

    def raise_for_failure(self) -> "ConversionOutcome":
        """Raise CompressionFailure if this conversion failed."""
        if not self.success:
            raise CompressionFailure(f"{self.input_file}: {self.error}")
        return self

    def to_dict(self) -> dict:
        """Return dataclass fields as a plain dictionary."""
        return asdict(self)


@dataclass
class AggregateReport:
    """Summary of one full tiling and compression run."""

    manifest: Manifest
    conversions: List[ConversionOutcome]
    total_original_size: int = 0
    total_compressed_size: int = 0
    manifest_path: str = ""
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, manifest: Manifest, conversions: List[ConversionOutcome],
                      manifest_path: str = "",
                      warnings: Optional[List[str]] = None) -> "AggregateReport":
        """Total up successful outcomes; failures contribute nothing."""
        succeeded = [c for c in conversions if c.success]
        return cls(
            manifest=manifest,
            conversions=list(conversions),
            total_original_size=sum(c.original_size for c in succeeded),
            total_compressed_size=sum(c.compressed_size for c in succeeded),
            manifest_path=manifest_path,
            warnings=list(warnings or []),
        )

    @property
    def total_saved(self) -> int:
        return self.total_original_size - self.total_compressed_size

    @property
    def compression_ratio(self) -> float:
        return compression_ratio(self.total_original_size, self.total_compressed_size)

    @property
    def succeeded(self) -> List[ConversionOutcome]:
        return [c for c in self.conversions if c.success]

    @property
    def failed(self) -> List[ConversionOutcome]:
        return [c for c in self.conversions if not c.success]

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    def to_dict(self) -> dict:
        return {
            "metadata": self.manifest.to_dict(),
            "conversions": [c.to_dict() for c in self.conversions],
            "totalOriginalSize": self.total_original_size,
            "totalCompressedSize": self.total_compressed_size,
            "totalSaved": self.total_saved,
            "compressionRatio": self.compression_ratio,
            "warnings": list(self.warnings),
        }
