#!/usr/bin/env python3
# -*-coding: utf-8-*-
"""
fwpatcher - Startup Script

Reads the run configuration, sets up logging and patches the binaries
configured for the firmware update archive.
"""

import argparse
import platform
import sys
import time
from typing import Optional, Sequence

from fwpatcher.archive import INNER_PAYLOAD_NAME, ArchiveRewriter
from fwpatcher.config import get_config_path, load_config
from fwpatcher.exceptions import BaseError
from fwpatcher.logging_config import cleanup_logging, get_logger, log_system_info, setup_logging
from fwpatcher.patching import load_patch_file
from fwpatcher.version import load_version

logger = get_logger("cli")

WINDOWS_PAUSE_SECONDS = 60


def parse_arguments(argv: Optional[Sequence[str]] = None):
    """Parses command line arguments."""
    parser = argparse.ArgumentParser(
        prog="fwpatcher",
        description="fwpatcher - patch binaries inside a firmware update archive",
    )
    parser.add_argument("--config", metavar="PATH", default=None,
                        help="Run configuration file (default: ./kobopatch.yaml)")
    parser.add_argument("--validate-only", action="store_true",
                        help="Load and validate every configured patch file, then exit")
    parser.add_argument("--log-json", action="store_true", help="Write JSON log records")
    parser.add_argument("--debug", action="store_true", help="Show per-instruction output on the console")
    parser.add_argument("--no-pause", action="store_true", help="Do not wait before exiting on Windows")
    parser.add_argument("--version", action="store_true", help="Show version information")

    return parser.parse_args(argv)


def should_pause(args) -> bool:
    return platform.system() == "Windows" and not args.no_pause


def pause_before_exit(seconds: int = WINDOWS_PAUSE_SECONDS) -> None:
    """Keep a double-clicked console window open long enough to read."""
    print(f"Waiting {seconds} seconds because running on Windows")
    time.sleep(seconds)


def validate_patch_files(config) -> int:
    """Load every configured patch file without touching any archive."""
    for target, patch_file in config.patches.items():
        spec = load_patch_file(patch_file, logger)
        logger.info("%s: %d patch(es) valid for %s", patch_file, len(spec), target)
    print(f"All {len(config.patches)} patch file(s) are valid")
    return 0


def run(args) -> int:
    config_path = args.config or get_config_path()
    config = load_config(config_path)

    setup_logging(
        log_file=config.log_path,
        log_level="DEBUG" if args.debug else "INFO",
        structured_json=True if args.log_json else None,
    )
    log_system_info()
    logger.info("fwpatcher %s", load_version())
    logger.info("Loaded config %s (firmware %s)", config_path, config.version)
    logger.debug("Config: %r", config)

    if args.validate_only:
        return validate_patch_files(config)

    summary = ArchiveRewriter(config, logger=logger).run()
    for entry in summary.patched:
        logger.info("%s: %d applied, %d skipped", entry.name, len(entry.applied), len(entry.skipped))
    logger.debug("Dropped %d unpatched entries", len(summary.dropped))

    print(f"Successfully saved patched {INNER_PAYLOAD_NAME} to {summary.output_path}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function to start the application."""
    args = parse_arguments(argv)

    print(f"fwpatcher {load_version()}")
    if args.version:
        return 0

    try:
        exit_code = run(args)
    except BaseError as e:
        logger.debug("Fatal error: %s", e, extra={'error': e.to_dict()})
        print(f"Fatal: {e}", file=sys.stderr)
        exit_code = 1
    finally:
        cleanup_logging()

    if should_pause(args):
        pause_before_exit()
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
