"""Compress image tiles to KTX2 with the external ``toktx`` encoder.

The encoder is reached only through the `ToolRunner` interface, so every
subprocess failure mode (missing binary, crash, timeout, non-zero exit) is
normalized into a failed `ConversionOutcome` instead of an exception.
"""

import logging
import os
import platform
import re
import shutil
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from ..config import CompressionMode, CompressionOptions
from ..core.paths import get_output_path
from ..core.records import ConversionOutcome, compression_ratio

logger = logging.getLogger("texforge.compress")

TOOL_NAME = "toktx"
IMAGE_PATTERN = re.compile(r"\.(png|jpe?g)$", re.IGNORECASE)

# Fixed ETC1S codebook caps and UASTC settings passed to toktx.
ETC1S_MAX_ENDPOINTS = 16128
ETC1S_MAX_SELECTORS = 16128
UASTC_QUALITY = 2
UASTC_ZSTD_LEVEL = 19

# Exit codes used for failures that never reached the tool itself
# (same conventions as POSIX shells and coreutils `timeout`).
EXIT_TIMEOUT = 124
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127

ProgressCallback = Callable[[int, int, str, ConversionOutcome], None]

# Known Windows NTSTATUS crash codes (as signed int32)
_CRASH_CODES_WIN = {
    -1073741819: "ACCESS_VIOLATION (0xC0000005)",
    -1073741795: "ILLEGAL_INSTRUCTION (0xC000001D)",
    -1073740791: "STACK_BUFFER_OVERRUN (0xC0000409)",
    -1073741571: "STACK_OVERFLOW (0xC00000FD)",
    -1073741515: "DLL_NOT_FOUND (0xC0000135)",
}


def _is_crash_code(returncode: int) -> Optional[str]:
    """Return a human-readable crash description, or None if not a crash."""
    if sys.platform == "win32":
        desc = _CRASH_CODES_WIN.get(returncode)
        if desc:
            return desc
        if returncode < 0:
            return f"NTSTATUS 0x{returncode & 0xFFFFFFFF:08X}"
        return None
    # Unix: negative returncode means killed by signal
    if returncode < 0:
        sig_num = -returncode
        try:
            return f"{signal.Signals(sig_num).name} (signal {sig_num})"
        except ValueError:
            return f"signal {sig_num}"
    return None


def _forward_output(text: str, tool_label: str, stream_name: str,
                    level: int, max_lines: int = 120) -> None:
    """Log subprocess output line-by-line at the given level."""
    if not text or not text.strip():
        return
    lines = text.splitlines()
    if len(lines) > max_lines:
        omitted = len(lines) - max_lines
        logger.log(level, "[%s] ... %d earlier %s lines omitted",
                   tool_label, omitted, stream_name)
        lines = lines[-max_lines:]
    for line in lines:
        if len(line) > 500:
            line = line[:500] + "..."
        logger.log(level, "[%s] %s: %s", tool_label, stream_name, line)


@dataclass(frozen=True)
class ToolResult:
    """Exit status and captured output of one external tool invocation."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def error_text(self, tool_label: str = TOOL_NAME) -> str:
        """Return the most useful failure description available."""
        text = (self.stderr or "").strip() or (self.stdout or "").strip()
        if text:
            return text
        crash = _is_crash_code(self.returncode)
        if crash:
            return f"{tool_label} crashed: {crash}"
        return f"{tool_label} exited with code {self.returncode}"


class ToolRunner:
    """Runs an external command and reports its exit code and output.

    Implementations must not raise for tool failures; every failure is a
    non-zero `ToolResult`.
    """

    def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> ToolResult:
        raise NotImplementedError


class SubprocessToolRunner(ToolRunner):
    """Blocking ``subprocess.run`` implementation with output forwarding."""

    def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> ToolResult:
        cmd = [str(a) for a in argv]
        tool_label = os.path.basename(cmd[0]) if cmd else TOOL_NAME
        logger.debug("Running %s: %s", tool_label, " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd, capture_output=True, timeout=timeout or None, text=True,
                encoding="utf-8", errors="replace",
            )
        except FileNotFoundError:
            logger.error("%s tool not found: %s", tool_label, cmd[0] if cmd else "")
            return ToolResult(EXIT_NOT_FOUND, stderr=f"{tool_label} not found: {cmd[0] if cmd else ''}")
        except PermissionError:
            logger.error("%s tool is not executable: %s", tool_label, cmd[0])
            return ToolResult(EXIT_NOT_EXECUTABLE, stderr=f"{tool_label} is not executable: {cmd[0]}")
        except subprocess.TimeoutExpired as e:
            logger.error("%s timed out after %ss", tool_label, timeout)
            stderr = e.stderr if isinstance(e.stderr, str) else (e.stderr or b"").decode(errors="replace")
            _forward_output(stderr, tool_label, "stderr", logging.ERROR, max_lines=10)
            return ToolResult(
                EXIT_TIMEOUT, stderr=f"{tool_label} timed out after {timeout}s",
            )
        except (OSError, ValueError, subprocess.SubprocessError) as exc:
            logger.error("%s could not be started: %s", tool_label, exc)
            return ToolResult(EXIT_NOT_EXECUTABLE, stderr=f"{tool_label} could not be started: {exc}")

        if proc.returncode == 0:
            _forward_output(proc.stdout, tool_label, "stdout", logging.DEBUG)
            _forward_output(proc.stderr, tool_label, "stderr", logging.DEBUG)
        else:
            _forward_output(proc.stdout, tool_label, "stdout", logging.ERROR)
            _forward_output(proc.stderr, tool_label, "stderr", logging.ERROR)
            crash = _is_crash_code(proc.returncode)
            if crash:
                logger.error("%s crashed: %s (exit code %d)", tool_label, crash, proc.returncode)
            else:
                logger.error("%s failed with exit code %d", tool_label, proc.returncode)
        return ToolResult(proc.returncode, proc.stdout or "", proc.stderr or "")


def resolve_tool_path(options: Optional[CompressionOptions] = None) -> str:
    """Locate ``toktx``: explicit override, then PATH, then bundled ``bin/``.

    Falls back to the bare tool name so the spawn error surfaces as a
    normal failed conversion.
    """
    if options is not None and options.tool_path:
        return options.tool_path

    tool_path = shutil.which(TOOL_NAME)
    if tool_path:
        return tool_path

    from .. import BIN_DIR
    exe_suffix = ".exe" if platform.system() == "Windows" else ""
    candidates = []
    for ktx_dir in sorted(BIN_DIR.glob("KTX-Software*"), reverse=True):
        candidates.append(ktx_dir / f"{TOOL_NAME}{exe_suffix}")
        candidates.append(ktx_dir / "bin" / f"{TOOL_NAME}{exe_suffix}")
    candidates.append(BIN_DIR / f"{TOOL_NAME}{exe_suffix}")
    for candidate in candidates:
        if candidate.is_file():
            logger.info("Using bundled KTX2 tool: %s", candidate)
            return str(candidate)

    logger.debug("%s not found on PATH or in %s", TOOL_NAME, BIN_DIR)
    return TOOL_NAME


def check_tool_availability(options: Optional[CompressionOptions] = None,
                            runner: Optional[ToolRunner] = None) -> bool:
    """Return True when ``toktx --version`` runs successfully."""
    return tool_version(options, runner) is not None


def tool_version(options: Optional[CompressionOptions] = None,
                 runner: Optional[ToolRunner] = None) -> Optional[str]:
    """Return the version string reported by ``toktx``, or None if unavailable."""
    runner = runner or SubprocessToolRunner()
    result = runner.run([resolve_tool_path(options), "--version"], timeout=30)
    if not result.ok:
        return None
    return (result.stdout or result.stderr or "").strip() or TOOL_NAME


def format_bytes(num_bytes: int) -> str:
    """Format a byte count for humans, e.g. ``"1.50 KiB"``."""
    if num_bytes < 0:
        return "n/a"
    size = float(num_bytes)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if size < 1024.0 or unit == "TiB":
            if unit == "B":
                return f"{int(size)} {unit}"
            return f"{size:.2f} {unit}"
        size /= 1024.0
    return f"{int(num_bytes)} B"


class TileCompressor:
    """Convert PNG/JPEG files to KTX2 one at a time."""

    def __init__(self, options: Optional[CompressionOptions] = None,
                 runner: Optional[ToolRunner] = None):
        self.options = (options or CompressionOptions()).validate()
        self.mode = CompressionMode.parse(self.options.mode)
        self.runner = runner or SubprocessToolRunner()
        self._tool_path: Optional[str] = None

    @property
    def tool_path(self) -> str:
        if self._tool_path is None:
            self._tool_path = resolve_tool_path(self.options)
        return self._tool_path

    def build_command(self, input_path: str, output_path: str) -> List[str]:
        """Translate the options into a toktx argument vector."""
        opts = self.options
        cmd = [self.tool_path]
        if self.mode is CompressionMode.ETC1S:
            cmd += ["--bcmp"]
            cmd += ["--clevel", str(opts.compression_level)]
            cmd += ["--qlevel", str(opts.quality)]
            cmd += ["--max_endpoints", str(ETC1S_MAX_ENDPOINTS)]
            cmd += ["--max_selectors", str(ETC1S_MAX_SELECTORS)]
        else:
            cmd += ["--uastc"]
            cmd += ["--uastc_quality", str(UASTC_QUALITY)]
            cmd += ["--zcmp", str(UASTC_ZSTD_LEVEL)]
        if opts.mipmaps:
            cmd.append("--genmipmap")
        if opts.normal_map:
            cmd.append("--normal_map")
        cmd.append("--t2")
        cmd += ["--threads", str(opts.threads)]
        cmd += [output_path, input_path]
        return cmd

    def compress(self, input_path: str, output_path: Optional[str] = None) -> ConversionOutcome:
        """Compress one file. Never raises; failures come back as outcomes."""
        start = time.perf_counter()
        output_path = output_path or get_output_path(input_path)
        mode = self.mode.value

        def _elapsed_ms() -> int:
            return int(round((time.perf_counter() - start) * 1000))

        def _fail(message: str) -> ConversionOutcome:
            logger.warning("[compress] FAILED %s -> %s: %s", input_path, output_path, message)
            return ConversionOutcome.failure(
                input_file=input_path, output_file=output_path, mode=mode,
                duration_ms=_elapsed_ms(), error=message,
            )

        if not os.path.isfile(input_path):
            return _fail(f"Input file not found: {input_path}")
        try:
            os.makedirs(os.path.dirname(output_path) or ".", exist_ok=True)
            # A stale file from an earlier run must not pass for fresh output.
            if os.path.exists(output_path):
                os.remove(output_path)
        except (OSError, ValueError) as exc:
            return _fail(f"Cannot prepare conversion: {exc}")

        cmd = self.build_command(input_path, output_path)
        timeout = self.options.tool_timeout_seconds or None
        try:
            result = self.runner.run(cmd, timeout=timeout)
        except Exception as exc:
            logger.exception("Tool runner raised for %s", input_path)
            return _fail(f"{TOOL_NAME} runner error: {exc}")
        if not result.ok:
            return _fail(result.error_text())

        # Both sizes are read after the tool has run.
        try:
            compressed_size = os.path.getsize(output_path)
        except OSError:
            return _fail(f"{TOOL_NAME} reported success but produced no output: {output_path}")
        try:
            original_size = os.path.getsize(input_path)
        except OSError as exc:
            return _fail(f"Input file disappeared during conversion: {exc}")
        if compressed_size == 0:
            return _fail(f"{TOOL_NAME} produced an empty file: {output_path}")

        outcome = ConversionOutcome(
            success=True,
            input_file=input_path,
            output_file=output_path,
            original_size=original_size,
            compressed_size=compressed_size,
            compression_ratio=compression_ratio(original_size, compressed_size),
            mode=mode,
            duration_ms=_elapsed_ms(),
        )
        logger.info(
            "[compress] OK %s -> %s, size=%s->%s (%.1f%% saved, %d ms)",
            input_path, output_path, format_bytes(original_size),
            format_bytes(compressed_size), outcome.compression_ratio, outcome.duration_ms,
        )
        return outcome

    def convert_directory(
        self,
        input_dir: str,
        output_dir: Optional[str] = None,
        pattern: "re.Pattern" = IMAGE_PATTERN,
        on_progress: Optional[ProgressCallback] = None,
    ) -> List[ConversionOutcome]:
        """Compress every matching image in ``input_dir`` sequentially.

        Files run one at a time in sorted order; toktx already spreads a single
        conversion across all cores. ``on_progress(index, total, filename,
        outcome)`` is called after each file with a 1-based index.
        """
        names = sorted(
            name for name in os.listdir(input_dir)
            if pattern.search(name) and os.path.isfile(os.path.join(input_dir, name))
        )
        if not names:
            logger.info("No image files found in %s", input_dir)
            return []
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)

        outcomes = []
        total = len(names)
        for index, name in enumerate(names, start=1):
            input_path = os.path.join(input_dir, name)
            outcome = self.compress(input_path, get_output_path(input_path, output_dir))
            outcomes.append(outcome)
            if on_progress is not None:
                on_progress(index, total, name, outcome)

        failed = sum(1 for o in outcomes if not o.success)
        logger.info(
            "Converted %d/%d files from %s (%d failed)", total - failed, total, input_dir, failed,
        )
        return outcomes
