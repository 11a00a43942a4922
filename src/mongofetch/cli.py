# src/mongofetch/cli.py

import argparse
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from mongofetch import config as config_module
from mongofetch import log_utils
from mongofetch.download.builds import BuildVariantKey, parse_arch, parse_edition
from mongofetch.download.catalog import LocalCatalog
from mongofetch.download.feed import ArtifactsFeed
from mongofetch.download.orchestrator import FetchOrchestrator
from mongofetch.download.version import VersionList
from mongofetch.exceptions import (
    AggregateError,
    ConfigurationError,
    MongofetchError,
)


def get_package_version() -> str:
    """Return the installed mongofetch version, or "unknown" when not installed."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version("mongofetch")
    except PackageNotFoundError:
        return "unknown"


def _add_variant_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--edition", help="Edition: base, targeted or enterprise")
    parser.add_argument("--arch", help="Architecture, e.g. x86_64")
    parser.add_argument("--target", help="Platform target, e.g. linux, osx, rhel70")
    parser.add_argument(
        "--debug-symbols",
        dest="debug_symbols",
        action="store_true",
        help="Use the debug symbols build instead of the binary archive",
    )


def _add_dir_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--dir",
        dest="directory",
        help="Artifact directory (defaults to DOWNLOAD_DIR from the config)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mongofetch - MongoDB release downloader and artifact catalog"
    )
    parser.add_argument("--config", help="Path to a mongofetch.yaml file")
    parser.add_argument("--log-level", dest="log_level", help="Console log level")
    parser.add_argument(
        "--log-dir", dest="log_dir", help="Also write logs to mongofetch.log here"
    )
    subparsers = parser.add_subparsers(dest="command")

    # Command to download release archives
    download_parser = subparsers.add_parser(
        "download", help="Download release archives from the release feed"
    )
    download_parser.add_argument(
        "releases",
        nargs="+",
        metavar="RELEASE",
        help="Exact version (3.2.6), series (3.2) or 'latest'",
    )
    _add_dir_argument(download_parser)
    _add_variant_arguments(download_parser)
    download_parser.add_argument(
        "--force-download",
        "-f",
        dest="force_download",
        action="store_true",
        help="Download even when the archive already exists",
    )
    download_parser.add_argument(
        "--workers", type=int, help="Number of parallel downloads"
    )
    download_parser.add_argument("--feed", help="Release feed URL or JSON file")

    # Command to list unpacked artifacts
    catalog_parser = subparsers.add_parser(
        "catalog", help="List artifacts unpacked in the artifact directory"
    )
    _add_dir_argument(catalog_parser)

    # Command to find one artifact
    lookup_parser = subparsers.add_parser(
        "lookup", help="Print the directory of an unpacked artifact"
    )
    lookup_parser.add_argument("version", help="Exact version, e.g. 3.2.6")
    _add_dir_argument(lookup_parser)
    _add_variant_arguments(lookup_parser)

    # Command to list versions in the feed
    versions_parser = subparsers.add_parser(
        "versions", help="List versions published in the release feed"
    )
    versions_parser.add_argument("--feed", help="Release feed URL or JSON file")
    versions_parser.add_argument(
        "--all",
        dest="include_all",
        action="store_true",
        help="Include development releases and release candidates",
    )
    versions_parser.add_argument(
        "--variants",
        action="store_true",
        help="Show the build variants published for each version",
    )

    # Command to display version
    subparsers.add_parser("version", help="Display Mongofetch version")

    return parser


def _variant_from_args(args: argparse.Namespace, config: Dict[str, Any]):
    edition = parse_edition(args.edition) if args.edition else config["EDITION"]
    arch = parse_arch(args.arch) if args.arch else config["ARCH"]
    target = args.target or config["TARGET"]
    return edition, arch, target


def _directory_from_args(args: argparse.Namespace, config: Dict[str, Any]) -> str:
    return args.directory or config["DOWNLOAD_DIR"]


def _handle_download(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    edition, arch, target = _variant_from_args(args, config)
    BuildVariantKey(target=target, arch=arch, edition=edition).validate()

    feed = ArtifactsFeed(
        source=args.feed or config["FEED_URL"], timeout=config["FEED_TIMEOUT"]
    )
    orchestrator = FetchOrchestrator(
        feed, max_workers=args.workers or config["MAX_WORKERS"]
    )
    cancel_event = threading.Event()
    directory = _directory_from_args(args, config)

    log_utils.logger.info(
        f"Fetching {', '.join(args.releases)} ({target}, {arch}, {edition}) into {directory}"
    )
    try:
        orchestrator.run(
            args.releases,
            directory,
            edition,
            arch,
            target,
            force=args.force_download or config["FORCE_DOWNLOAD"],
            debug=args.debug_symbols,
            cancel_event=cancel_event,
        )
    except KeyboardInterrupt:
        cancel_event.set()
        log_utils.logger.warning("Download interrupted")
        return 130
    except AggregateError as e:
        log_utils.logger.error(str(e))
        return 1
    return 0


def _handle_catalog(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    catalog = LocalCatalog.scan(_directory_from_args(args, config))
    for info, path in catalog.entries():
        print(f"{info}\t{path}")
    return 0


def _handle_lookup(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    edition, arch, target = _variant_from_args(args, config)
    catalog = LocalCatalog.scan(_directory_from_args(args, config))
    print(catalog.lookup(args.version, edition, target, arch, args.debug_symbols))
    return 0


def _handle_versions(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    feed = ArtifactsFeed(
        source=args.feed or config["FEED_URL"], timeout=config["FEED_TIMEOUT"]
    )
    feed.populate()

    entries = [
        v for v in feed.versions if args.include_all or v.production_release
    ]
    by_version = {v.version: v for v in entries}
    ordered = VersionList(by_version)
    ordered.sort()

    if args.variants:
        for version in ordered:
            print(by_version[str(version)])
    else:
        print(ordered)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    # Logging is automatically initialized by importing log_utils

    """
    Entry point for the Mongofetch command-line interface.

    Parses command-line arguments, loads the configuration (command-line
    options override it) and dispatches the download, catalog, lookup,
    versions and version subcommands. Exits with status 1 on errors.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    if args.command == "version":
        print(f"Mongofetch version {get_package_version()}")
        return

    try:
        config = config_module.load_config(args.config)
    except ConfigurationError as e:
        log_utils.logger.error(f"Configuration error: {e}")
        sys.exit(1)

    log_utils.set_log_level(args.log_level or str(config["LOG_LEVEL"]))
    if args.log_dir:
        log_utils.add_file_logging(Path(args.log_dir), args.log_level or "INFO")

    handlers = {
        "download": _handle_download,
        "catalog": _handle_catalog,
        "lookup": _handle_lookup,
        "versions": _handle_versions,
    }
    try:
        status = handlers[args.command](args, config)
    except MongofetchError as e:
        log_utils.logger.error(str(e))
        sys.exit(1)

    if status:
        sys.exit(status)


if __name__ == "__main__":
    main()
