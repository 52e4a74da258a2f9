#!/usr/bin/env python3
"""
Bucket Mirror CLI

Lists SOURCE → decides per key (size + ETag) → copies changed objects to DESTINATION
Locations: s3://bucket/prefix, file:///path or a plain directory path
"""

import argparse
import signal
import sys
import threading
from typing import List, Optional, Tuple

from . import __version__
from .core import (
    InconclusivePolicy,
    MirrorConfig,
    MirrorError,
    MirrorStats,
    configure_logging,
    get_logger,
    with_error_handling,
)
from .core.factories import Location, MirrorPipelineFactory, parse_location
from .core.models import DEFAULT_FETCH_SIZE, DEFAULT_MAX_PARALLELISM, DEFAULT_MAX_RETRIES

EXIT_OK = 0
EXIT_ERRORS = 1
EXIT_INTERRUPTED = 130


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for the mirror.

    Returns:
        An `argparse.Namespace` object containing the parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="bucket-mirror",
        description="Mirror one bucket or directory tree into another",
    )

    parser.add_argument("source", help="Source location (s3://bucket/prefix or a directory)")
    parser.add_argument("destination", help="Destination location (s3://bucket/prefix or a directory)")

    parser.add_argument("-n", "--dry-run", action="store_true", help="Decide but do not copy anything")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every per-key decision")
    parser.add_argument(
        "-r", "--max-retries", type=int, default=DEFAULT_MAX_RETRIES,
        help=f"Attempts per remote operation (default: {DEFAULT_MAX_RETRIES})",
    )
    parser.add_argument(
        "-t", "--max-threads", type=int, default=DEFAULT_MAX_PARALLELISM,
        help=f"Maximum concurrent jobs (default: {DEFAULT_MAX_PARALLELISM})",
    )
    parser.add_argument(
        "-z", "--fetch-size", type=int, default=DEFAULT_FETCH_SIZE,
        help=f"Keys per listing page (default: {DEFAULT_FETCH_SIZE})",
    )
    parser.add_argument(
        "-c", "--ctime", default=None,
        help="Only copy objects modified within this age: days, or a number with s/m/h/d/w/y",
    )
    parser.add_argument(
        "-d", "--dest-prefix", default=None,
        help="Replace the source prefix with this prefix in destination keys",
    )
    parser.add_argument(
        "-X", "--delete-removed", action="store_true",
        help="Delete destination objects that no longer exist in the source",
    )
    parser.add_argument(
        "-E", "--encrypted-destination", action="store_true",
        help="Encrypt copies server-side and tolerate unreadable ACLs",
    )
    parser.add_argument(
        "--fail-on-inconclusive", action="store_true",
        help="Count unreadable destination metadata as an error instead of skipping the key",
    )
    parser.add_argument("--endpoint", default=None, help="S3-compatible endpoint URL")
    parser.add_argument("--region", default=None, help="AWS region name")
    parser.add_argument("--profile", default=None, help="AWS credentials profile")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> Tuple[MirrorConfig, Location, Location]:
    """Turn parsed arguments into a MirrorConfig and the two locations."""
    source = parse_location(args.source)
    destination = parse_location(args.destination)
    dest_prefix = args.dest_prefix if args.dest_prefix is not None else destination.prefix

    config = MirrorConfig(
        source_container=source.container,
        dest_container=destination.container,
        prefix=source.prefix or "",
        dest_prefix=dest_prefix,
        max_retries=args.max_retries,
        max_parallelism=args.max_threads,
        fetch_size=args.fetch_size,
        dry_run=args.dry_run,
        verbose=args.verbose,
        ctime=args.ctime,
        encrypted_destination=args.encrypted_destination,
        delete_removed=args.delete_removed,
        inconclusive_policy=(
            InconclusivePolicy.FAIL if args.fail_on_inconclusive else InconclusivePolicy.SKIP
        ),
    )
    return config, source, destination


@with_error_handling
def run_mirror(args: argparse.Namespace, cancel_event: threading.Event) -> MirrorStats:
    config, source, destination = build_config(args)
    client_options = {}
    if args.endpoint:
        client_options["endpoint_url"] = args.endpoint
    if args.region:
        client_options["region_name"] = args.region
    if args.profile:
        client_options["profile_name"] = args.profile

    engine = MirrorPipelineFactory.create_engine(
        config,
        source_scheme=source.scheme,
        dest_scheme=destination.scheme,
        cancel_event=cancel_event,
        client_options=client_options,
    )
    return engine.run()


def install_signal_handlers(cancel_event: threading.Event) -> dict:
    """Turn SIGINT/SIGTERM into a graceful stop. Returns the previous handlers."""
    logger = get_logger("bucket-mirror")

    def handle(signum, frame):
        if cancel_event.is_set():
            raise KeyboardInterrupt
        logger.warning(f"received signal {signum}, finishing in-flight jobs")
        cancel_event.set()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handle)
    return previous


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the mirror.

    Parses arguments, runs the engine and maps the outcome to an exit code:
    0 for a clean run, 1 when any key failed or the run could not proceed,
    130 when interrupted.
    """
    args = parse_args(argv)
    logger = configure_logging(verbose=args.verbose)

    cancel_event = threading.Event()
    previous_handlers = install_signal_handlers(cancel_event)
    try:
        stats = run_mirror(args, cancel_event)
    except KeyboardInterrupt:
        logger.warning("Mirror interrupted by user.")
        return EXIT_INTERRUPTED
    except MirrorError as e:
        logger.error(f"Mirror failed: {e}")
        return EXIT_ERRORS
    finally:
        for signum, handler in previous_handlers.items():
            signal.signal(signum, handler)

    if cancel_event.is_set():
        return EXIT_INTERRUPTED
    if stats.has_errors:
        logger.warning(f"Mirror completed with {stats.error_count} error(s).")
        return EXIT_ERRORS
    logger.info("Mirror completed clean.")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
