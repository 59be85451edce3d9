"""CLI entrypoint for duochat."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from importlib import metadata
from pathlib import Path

from .app import DuoChatApp
from .config import ensure_config_dir, load_config


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="duochat",
        description="DuoChat - ask two AI providers at once from the terminal",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to an alternative config.toml",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Ensure configuration exists, handle CLI flags, and run the TUI."""

    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.version:
        try:
            version = metadata.version("duochat")
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        print(f"duochat {version}")
        return

    ensure_config_dir()
    app = DuoChatApp(config=load_config(args.config))
    app.run()


if __name__ == "__main__":
    main()
