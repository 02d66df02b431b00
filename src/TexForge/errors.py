"""Exception taxonomy for tiling and compression runs."""

from typing import Optional


class TexForgeError(Exception):
    """Base class for all TexForge errors."""


class ConfigurationError(TexForgeError, ValueError):
    """Raised for invalid tile sizes, dimensions, or compression settings."""


class ManifestError(TexForgeError, ValueError):
    """Raised when a manifest violates its grid invariant or cannot be parsed."""


class PipelineError(TexForgeError, RuntimeError):
    """Fatal error that aborts a pipeline run.

    ``phase`` names the pipeline phase that failed (partition, materialize,
    compress, finalize) and ``cause`` keeps the underlying exception.
    """

    phase = "pipeline"

    def __init__(self, message: str, phase: Optional[str] = None,
                 cause: Optional[BaseException] = None):
        if phase is not None:
            self.phase = phase
        self.message = message
        self.cause = cause
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.phase}] {self.message}"


class SourceReadError(PipelineError):
    """Raised when the source image is missing or cannot be decoded."""

    phase = "partition"


class ExtractionFailure(PipelineError):
    """Raised when a tile cannot be cropped from the source and written."""

    phase = "materialize"


class PersistenceError(PipelineError):
    """Raised when a manifest write or directory cleanup fails."""

    phase = "finalize"


class CompressionFailure(PipelineError):
    """Raised on request for a failed single-file conversion.

    The pipeline itself records compression failures as data and never
    raises this.
    """

    phase = "compress"
