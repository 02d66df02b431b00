"""Command-line interface for TexForge."""

import argparse
import dataclasses
import logging
import os
import sys

from tqdm import tqdm

from .config import CompressionMode, ForgeConfig
from .core import setup_logging
from .errors import ConfigurationError, PipelineError

logger = logging.getLogger("texforge")

_INSTALL_HINTS = (
    "Install toktx (KTX-Software):\n"
    "  Windows: https://github.com/KhronosGroup/KTX-Software/releases\n"
    "  macOS:   brew install ktx\n"
    "  Linux:   download from KTX-Software releases\n"
    "Or point --toktx / compression.tool_path at the binary."
)


def _add_compression_args(parser: argparse.ArgumentParser):
    parser.add_argument("--mode", "-m", type=str.lower,
                        choices=[m.value for m in CompressionMode],
                        help="Compression mode (default: etc1s)")
    parser.add_argument("--quality", "-q", type=int,
                        help="ETC1S quality level 1-255 (default: 128)")
    parser.add_argument("--compression", "-c", type=int, dest="compression_level",
                        help="ETC1S compression level 0-5 (default: 2)")
    parser.add_argument("--mipmaps", action="store_true", default=None,
                        help="Generate mipmaps")
    parser.add_argument("--normal-map", action="store_true", default=None,
                        help="Treat input as a normal map")
    parser.add_argument("--toktx", dest="tool_path",
                        help="Explicit path to the toktx binary")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="texforge",
        description="Forge textures for the GPU age - tile large maps and convert images to KTX2",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  texforge convert diffuse.png
  texforge convert ./textures -o ./textures_ktx2 --mode uastc
  texforge map world.png -o ./world_tiles --tile-size 1024
  texforge check
  texforge --generate-config --config texforge.yaml
        """
    )
    parser.add_argument("--config", help="Path to config YAML")
    parser.add_argument("--log-level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
    parser.add_argument("--generate-config", action="store_true",
                        help="Write a default config YAML and exit")
    parser.add_argument("--version", action="version",
                        version=f"%(prog)s {_get_version()}")

    sub = parser.add_subparsers(dest="command")

    p_convert = sub.add_parser("convert", help="Convert image file(s) to KTX2")
    p_convert.add_argument("input", help="Input file or directory")
    p_convert.add_argument("--output", "-o", help="Output file or directory")
    _add_compression_args(p_convert)

    p_map = sub.add_parser("map", help="Tile a large image and convert every tile to KTX2")
    p_map.add_argument("input", help="Input image (PNG/JPEG)")
    p_map.add_argument("--output", "-o", help="Output directory")
    p_map.add_argument("--tile-size", "-t", type=int, help="Tile edge length in pixels (default: 1024)")
    _add_compression_args(p_map)

    sub.add_parser("check", help="Check that toktx is installed")
    return parser


def _get_version() -> str:
    from . import __version__
    return __version__


def _load_config(args) -> ForgeConfig:
    if args.config:
        if not os.path.exists(args.config):
            logger.error("Config file not found: %s", args.config)
            print(f"Error: Config file not found: {args.config}")
            sys.exit(1)
        try:
            config = ForgeConfig.from_yaml(args.config)
        except ConfigurationError as e:
            logger.error("Invalid config file '%s': %s", args.config, e)
            print(f"Error: Invalid config: {e}")
            sys.exit(1)
    else:
        config = ForgeConfig()
    if args.log_level:
        config.log_level = args.log_level
    return config


def _compression_options(config: ForgeConfig, args):
    """Overlay CLI flags on the configured compression options."""
    overrides = {}
    for key in ("mode", "quality", "compression_level", "mipmaps", "normal_map", "tool_path"):
        value = getattr(args, key, None)
        if value is not None:
            overrides[key] = value
    options = dataclasses.replace(config.compression, **overrides)
    try:
        return options.validate()
    except ConfigurationError as e:
        logger.error(str(e))
        print(f"Error: {e}")
        sys.exit(1)


def _require_tool(options) -> None:
    from .phases.compress import check_tool_availability
    if not check_tool_availability(options):
        print("Error: toktx not found!\n")
        print(_INSTALL_HINTS)
        sys.exit(1)


def _print_result(outcome):
    from .phases.compress import format_bytes
    print(f"  Original:   {format_bytes(outcome.original_size)}")
    print(f"  Compressed: {format_bytes(outcome.compressed_size)}")
    print(f"  Saved:      {format_bytes(outcome.saved_bytes)} ({outcome.compression_ratio:.1f}%)")
    print(f"  Time:       {outcome.duration_ms}ms")


def _print_summary(succeeded: int, failed: int, original: int, compressed: int):
    from .core.records import compression_ratio
    from .phases.compress import format_bytes
    print("\nSummary:")
    print(f"  Successful: {succeeded}")
    if failed:
        print(f"  Failed: {failed}")
    print(f"  Original size:   {format_bytes(original)}")
    print(f"  Compressed size: {format_bytes(compressed)}")
    print(
        f"  Total saved:     {format_bytes(max(original - compressed, 0))} "
        f"({compression_ratio(original, compressed):.1f}%)"
    )


def _progress_bar(unit: str):
    bar = tqdm(total=0, unit=unit, dynamic_ncols=True)

    def _on_progress(index, total, filename, outcome):
        if bar.total != total:
            bar.total = total
        bar.set_postfix_str(os.path.basename(filename), refresh=False)
        bar.update(1)

    return bar, _on_progress


def cmd_check(args, config: ForgeConfig) -> int:
    from .phases.compress import resolve_tool_path, tool_version
    version = tool_version(config.compression)
    if version is None:
        print("toktx not found\n")
        print(_INSTALL_HINTS)
        return 1
    print(f"toktx is installed and ready: {resolve_tool_path(config.compression)} ({version})")
    return 0


def cmd_convert(args, config: ForgeConfig) -> int:
    from .phases.compress import TileCompressor

    options = _compression_options(config, args)
    _require_tool(options)
    compressor = TileCompressor(options)
    mode_line = f"Mode: {options.mode.upper()}, Quality: {options.quality}"

    if os.path.isfile(args.input):
        print(mode_line)
        outcome = compressor.compress(args.input, args.output)
        if not outcome.success:
            print(f"Failed: {outcome.error}")
            return 1
        print(f"Converted {os.path.basename(args.input)}")
        _print_result(outcome)
        return 0

    if not os.path.isdir(args.input):
        logger.error("Input not found: %s", args.input)
        print(f"Error: Input not found: {args.input}")
        return 1

    print(mode_line)
    bar, on_progress = _progress_bar("file")
    try:
        outcomes = compressor.convert_directory(args.input, args.output, on_progress=on_progress)
    finally:
        bar.close()
    if not outcomes:
        print("No image files found in directory")
        return 0

    succeeded = [o for o in outcomes if o.success]
    failed = len(outcomes) - len(succeeded)
    for outcome in outcomes:
        if not outcome.success:
            print(f"  FAILED {outcome.input_file}: {outcome.error}")
    _print_summary(
        len(succeeded), failed,
        sum(o.original_size for o in succeeded),
        sum(o.compressed_size for o in succeeded),
    )
    return 1 if failed else 0


def cmd_map(args, config: ForgeConfig) -> int:
    from .pipeline import TexForgePipeline

    options = _compression_options(config, args)
    output_dir = args.output or config.output_dir
    tile_size = args.tile_size if args.tile_size is not None else config.tiling.tile_size
    if config.log_to_file:
        setup_logging(config.log_level, os.path.join(output_dir, "texforge.log"))
    _require_tool(options)

    bar, on_progress = _progress_bar("tile")
    pipeline = TexForgePipeline(config, progress_callback=on_progress)
    try:
        report = pipeline.run(args.input, output_dir, tile_size, options)
    except ConfigurationError as e:
        logger.error("Invalid settings: %s", e)
        print(f"Error: {e}")
        return 1
    except PipelineError as e:
        logger.error("Pipeline aborted: %s", e)
        print(f"Error: {e}")
        return 2
    finally:
        bar.close()

    manifest = report.manifest
    print(
        f"\nTiled {manifest.total_width}x{manifest.total_height} into "
        f"{manifest.chunks_x}x{manifest.chunks_y} tiles of {manifest.chunk_width}px"
    )
    for outcome in report.failed:
        print(f"  FAILED {outcome.input_file}: {outcome.error}")
    _print_summary(
        len(report.succeeded), report.failure_count,
        report.total_original_size, report.total_compressed_size,
    )
    for warning in report.warnings:
        print(f"  Warning: {warning}")
    print(f"  Manifest: {report.manifest_path}")
    return 1 if report.failure_count else 0


_COMMANDS = {
    "check": cmd_check,
    "convert": cmd_convert,
    "map": cmd_map,
}


def main(argv=None):
    """Parse CLI arguments and dispatch to a subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        config = ForgeConfig()
        dest = args.config or "texforge.yaml"
        if os.path.isdir(dest):
            dest = os.path.join(dest, "texforge.yaml")
        config.to_yaml(dest)
        logger.info("Generated default %s", dest)
        print(f"Generated default {dest}")
        return

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = _load_config(args)
    setup_logging(config.log_level)

    try:
        code = _COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user.")
        sys.exit(130)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
