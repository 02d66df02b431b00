"""Entrypoint for `python -m TexForge`.

Usage:
  python -m TexForge convert <input> [-o OUT] [--mode etc1s|uastc]
  python -m TexForge map <image> [-o OUT] [--tile-size N]
  python -m TexForge check
"""
import logging

logger = logging.getLogger("texforge")


def _run_cli():
    from .cli import main as cli_main
    logger.debug("Dispatching to CLI entrypoint.")
    cli_main()


if __name__ == "__main__":
    _run_cli()
