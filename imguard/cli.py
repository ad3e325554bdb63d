from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .batch import run_batch
from .discovery import DiscoveryError, find_images, parse_ignore, staged_images
from .formats import FILE_TYPES
from .settings import GuardSettings


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="image-guard",
        description="Defensively compress images (lossless, only if smaller)",
    )
    p.add_argument("--dry", action="store_true", help="Report savings without changing any file")
    p.add_argument(
        "--ignore",
        default="",
        help="Comma-separated paths, folders or globs to skip (e.g. media/raw,logo.png)",
    )
    p.add_argument("--staged", action="store_true", help="Only compress images staged in git")
    p.add_argument("--quiet", action="store_true", help="Only print the summary (and errors)")
    p.add_argument("--verbose", action="store_true", help="Print debug details")
    return p


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stdout,
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    _setup_logging(bool(args.verbose))

    settings = GuardSettings(dry_run=bool(args.dry), quiet=bool(args.quiet))
    ignore = parse_ignore(args.ignore)
    root = Path.cwd()

    print(f"(Search pattern: {', '.join(FILE_TYPES)})\n")

    try:
        if args.staged:
            files = staged_images(root, ignore)
        else:
            files = find_images(root, ignore)
    except DiscoveryError as e:
        print(f"Error running Image Guard: {e}", file=sys.stderr)
        return 1

    _, summary = run_batch(files, settings)

    print()
    print(summary.message(dry_run=settings.dry_run))
    if summary.failed:
        print(f"{summary.failed} file(s) could not be compressed (see errors above).")
    return 0
