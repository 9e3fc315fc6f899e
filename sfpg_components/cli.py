import argparse
import os
import sys
from pathlib import Path
from typing import Optional, Sequence

from .core import GalleryCrawler
from .state import FailedLinkLogger, SessionFactory
from .types import CrawlOptions, SFPGDError
from .ui import TerminalUI


def non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from exc
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sfpg-downloader",
        description="Download images from a Single File PHP Gallery.",
    )
    parser.add_argument("url", help="The URL of the Single File PHP Gallery")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose printout")
    parser.add_argument(
        "-r",
        "--recursive",
        action="store_true",
        help="Descend into every subdirectory (unless --depth is given)",
    )
    parser.add_argument(
        "-d", "--depth", type=non_negative_int, default=None, help="Maximum depth of folders to traverse"
    )
    parser.add_argument(
        "-c", "--count", type=non_negative_int, default=None, help="Maximum number of images to save"
    )
    parser.add_argument(
        "-l", "--limit", type=non_negative_int, default=None, help="Maximum number of images to download"
    )
    parser.add_argument(
        "-o", "--output", default=None, help="Output directory (default: current directory)"
    )
    parser.add_argument("--timeout", type=int, default=60, help="Request timeout in seconds")
    parser.add_argument(
        "--retries", type=non_negative_int, default=0, help="Retry count for network errors"
    )
    parser.add_argument(
        "--fail-fast",
        action="store_true",
        help="Stop at the first failed request instead of skipping the item",
    )
    parser.add_argument(
        "--failed-file",
        default="failed_links.txt",
        help=(
            "Failed links log, relative to the output root; only written when an item "
            "fails ('' disables it)"
        ),
    )
    parser.add_argument("--no-pretty", action="store_true", help="Disable pretty terminal output")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def options_from_args(args: argparse.Namespace) -> CrawlOptions:
    output_root = Path(args.output) if args.output else Path(os.getcwd())
    return CrawlOptions(
        output_root=output_root,
        max_depth=args.depth,
        recursive=args.recursive,
        max_saved=args.count,
        max_downloaded=args.limit,
        verbose=args.verbose,
        timeout=max(5, args.timeout),
        retries=args.retries,
        fail_fast=args.fail_fast,
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    options = options_from_args(args)
    ui = TerminalUI(pretty=not args.no_pretty)

    failed_logger = None
    if args.failed_file:
        failed_path = Path(args.failed_file)
        if not failed_path.is_absolute():
            failed_path = options.output_root / failed_path
        failed_logger = FailedLinkLogger(failed_path)

    sessions = SessionFactory()
    crawler = GalleryCrawler(
        session=sessions.get(),
        ui=ui,
        options=options,
        failed_logger=failed_logger,
    )
    try:
        state = crawler.run(args.url)
    except (SFPGDError, OSError) as exc:
        ui.finish_progress_line()
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    finally:
        sessions.close()

    ui.info(f"Summary: {state.summary()}")
    if state.failed > 0 and failed_logger and failed_logger.path.exists():
        ui.info(f"Failed links saved to: {failed_logger.path}")
    ui.plain("Done!")
    return 0
