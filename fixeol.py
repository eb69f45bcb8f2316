#!/usr/bin/env python3
"""
FixEol

Restores the line endings a file had at HEAD after an editor or tool
normalized them, keeping every local content change.
"""

import argparse
import concurrent.futures
import logging
import os
import sys
import threading
import time
from dataclasses import dataclass
from typing import List, Optional, Set

from tqdm import tqdm

from eol_engine import (
    Ending,
    FileStats,
    decode_content,
    get_stats,
    is_binary_content,
    rewrite_lines,
    split_lines,
)
from gitprovider import GitError, GitProvider

__version__ = "1.0.0"

# Returned when fixable files were found but not (all) fixed
EXIT_UNFIXED = 11

BACKUP_SUFFIX = ".backup"


# Set up logging with thread-safe handler
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(), logging.FileHandler("fixeol.log", mode="a")],
)
logger = logging.getLogger("FixEol")
# Add a thread lock for logging
log_lock = threading.Lock()


@dataclass
class FileOperation:  # pylint: disable=too-many-instance-attributes
    """Outcome of reconciling one path."""

    path: str
    is_found_in_git: bool = False
    is_binary: bool = False
    original_stats: Optional[FileStats] = None
    local_stats: Optional[FileStats] = None
    fixed_stats: Optional[FileStats] = None
    can_be_fixed: bool = False
    proceed: bool = False


@dataclass
class BatchResult:
    fixable: int = 0
    fixed: int = 0
    errors: int = 0
    skipped: int = 0


def format_report(result: FileOperation) -> str:
    """Describe HEAD, local and fixed stats of a processed file on one line."""
    original = result.original_stats or FileStats()
    local = result.local_stats or FileStats()
    fixed = result.fixed_stats or FileStats()
    return (
        f"Detect: HEAD:{original.total};{original}"
        f" => local:{local.total};{local}"
        f" => fixed:{fixed.total};{fixed}"
        f" ({local.diff(fixed)})"
    )


def execute_file(  # pylint: disable=too-many-arguments
    provider: GitProvider,
    path: str,
    execute: bool = False,
    backup: bool = False,
    fallback: Ending = Ending.LF,
) -> FileOperation:
    """
    Reconcile the line endings of one file with its HEAD revision.

    The file is only written when `execute` is set and its line endings
    differ from what the reconciliation produces. I/O errors propagate.
    """
    result = FileOperation(path)

    tip_stream = provider.get_tip_stream(path)
    if tip_stream is None:
        with log_lock:
            logger.debug("Not found at HEAD, skipping: %s", path)
        return result
    result.is_found_in_git = True

    with tip_stream:
        original_text, _ = decode_content(tip_stream.read(), path)

    with provider.open_local_file(path, "rb") as local_file:
        local_data = local_file.read()

    if is_binary_content(path, local_data):
        result.is_binary = True
        with log_lock:
            logger.debug("Skipping binary file: %s", path)
        return result

    local_text, encoding = decode_content(local_data, path)

    original_lines = split_lines(original_text)
    local_lines = split_lines(local_text)
    result.original_stats = get_stats(original_lines)
    result.local_stats = get_stats(local_lines)

    fixed_text = rewrite_lines(local_lines, original_lines, fallback)
    result.fixed_stats = get_stats(split_lines(fixed_text))

    diff = result.local_stats.diff(result.fixed_stats)
    if diff.absolute_total == 0:
        with log_lock:
            logger.debug("No changes needed for file: %s (%s)", path, format_report(result))
        return result
    result.can_be_fixed = True

    report = [path, "-----------", format_report(result)]

    if execute:
        if backup:
            provider.local_file_copy(path, path + BACKUP_SUFFIX)

        provider.write_local_file(path, fixed_text.encode(encoding))

        result.proceed = True
        report.append("File fixed!")

    with log_lock:
        logger.info("\n".join(report))
    return result


def process_files(  # pylint: disable=too-many-arguments,too-many-locals
    provider: GitProvider,
    paths: List[str],
    execute: bool = False,
    backup: bool = False,
    fallback: Ending = Ending.LF,
    max_workers: Optional[int] = None,
) -> BatchResult:
    """Reconcile many files in parallel using ThreadPoolExecutor."""
    batch = BatchResult()
    paths = unique_paths(paths)
    if not paths:
        return batch

    # Calculate optimal number of workers if not specified
    if max_workers is None:
        cpu_count: Optional[int] = os.cpu_count()
        max_workers = min((cpu_count or 2) * 2, 32, len(paths))
    else:
        max_workers = min(max_workers, 32, len(paths))

    with log_lock:
        logger.debug(
            "Using %d worker threads for processing %d files", max_workers, len(paths)
        )

    with tqdm(total=len(paths), desc="Checking files", unit="file") as pbar:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_path = {
                executor.submit(
                    execute_file, provider, path, execute, backup, fallback
                ): path
                for path in paths
            }

            for future in concurrent.futures.as_completed(future_to_path):
                path = future_to_path[future]
                try:
                    result = future.result()
                    if not result.is_found_in_git or result.is_binary:
                        batch.skipped += 1
                    batch.fixable += 1 if result.can_be_fixed else 0
                    batch.fixed += 1 if result.proceed else 0
                except Exception as e:  # pylint: disable=broad-exception-caught
                    batch.errors += 1
                    with log_lock:
                        logger.error("Error processing %s: %s", path, str(e))
                finally:
                    pbar.update(1)

    with log_lock:
        if batch.errors > 0:
            logger.warning("Encountered errors while processing %d files", batch.errors)
        logger.info(
            "Fixable: %d, Fixed: %d, Skipped: %d, Errors: %d",
            batch.fixable,
            batch.fixed,
            batch.skipped,
            batch.errors,
        )

    return batch


def unique_paths(paths: List[str], directory: str = "") -> List[str]:
    """Drop paths naming a file already listed, keeping the first spelling."""
    seen: Set[str] = set()
    unique: List[str] = []
    for path in paths:
        key = os.path.normcase(os.path.normpath(os.path.join(directory, path)))
        if key in seen:
            with log_lock:
                logger.debug("Skipping duplicate path: %s", path)
            continue
        seen.add(key)
        unique.append(path)
    return unique


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Restore the line endings of modified files to match HEAD"
    )
    parser.add_argument(
        "paths",
        nargs="*",
        help="Files to fix (default: files modified in the working tree or index)",
    )
    parser.add_argument(
        "-e",
        "--execute",
        action="store_true",
        help="Write fixed files (default: only report)",
    )
    parser.add_argument(
        "-b",
        "--backup",
        action="store_true",
        help=f"Copy each file to <file>{BACKUP_SUFFIX} before writing it",
    )
    parser.add_argument(
        "--fallback",
        choices=["lf", "crlf", "cr"],
        default="lf",
        help="Line ending for lines not found at HEAD (default: lf)",
    )
    parser.add_argument(
        "-C",
        "--directory",
        default=None,
        help="Run as if started in this directory (default: current directory)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads for parallel processing "
        "(default: auto-detect based on CPU count)",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--version",
        action="version",
        version=f"FixEol v{__version__}",
        help="Show program version and exit",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.verbose:
        logger.setLevel(logging.DEBUG)

    try:
        logger.info("FixEol v%s - Line Ending Restorer", __version__)

        if args.workers is not None and args.workers <= 0:
            logger.warning(
                "Invalid worker count (%d), using auto-detection instead", args.workers
            )
            args.workers = None

        directory: str = args.directory or os.getcwd()
        start_time: float = time.time()

        with GitProvider() as provider:
            provider.initialize_repository(directory)

            # no path specified? ask git for the modified files
            paths: List[str] = unique_paths(
                list(args.paths) or list(provider.get_pending_files()), directory
            )
            if not paths:
                logger.info("No modified files found.")
                return 0
            logger.info("Found %d files to check.", len(paths))

            batch = process_files(
                provider,
                paths,
                execute=args.execute,
                backup=args.backup,
                fallback=Ending.from_name(args.fallback),
                max_workers=args.workers,
            )

        logger.info("Done in %.2f seconds.", time.time() - start_time)

        if batch.errors > 0:
            return 1
        if batch.fixable != batch.fixed:
            if not args.execute:
                logger.info("Run again with --execute to fix %d files.", batch.fixable)
            return EXIT_UNFIXED
        return 0
    except GitError as e:
        logger.error("Git error: %s", str(e))
        return 1
    except KeyboardInterrupt:
        logger.info("Operation cancelled by user.")
        return 130
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("An unexpected error occurred: %s", str(e))
        if logger.level <= logging.DEBUG:
            import traceback  # pylint: disable=import-outside-toplevel

            logger.debug("Traceback: %s", traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
