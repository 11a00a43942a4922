"""
Mongofetch Download Subsystem

This package resolves MongoDB releases from the published release feed,
downloads their archives in parallel, and catalogs artifacts already unpacked
on disk.

Core Components:
- version: Version identifiers (legacy and modern numbering schemes)
- builds: Build variants and artifact name parsing
- artifacts: Feed versions and their per-variant download index
- feed: Release feed fetching and release resolution
- catalog: Local artifact catalog
- files: Transfer of a single URL to disk
- interfaces: Task lifecycle and results
- orchestrator: Download pipeline coordination
"""

from .artifacts import ArtifactDownload, ArtifactVersion, BuildTypes
from .builds import (
    Arch,
    BuildInfo,
    BuildVariantKey,
    Edition,
    derive_build_identity,
    get_version_from_filename,
)
from .catalog import LocalCatalog
from .feed import ArtifactsFeed, fetch_feed
from .files import download_to_file
from .interfaces import DownloadResult, DownloadTask, TaskState
from .orchestrator import FetchOrchestrator, FileDownloadTask
from .version import (
    LegacyVersion,
    ModernVersion,
    MongoDBVersion,
    VersionList,
    convert_version,
    create_version,
)

__all__ = [
    # Versions
    "MongoDBVersion",
    "LegacyVersion",
    "ModernVersion",
    "VersionList",
    "create_version",
    "convert_version",
    # Build variants
    "Edition",
    "Arch",
    "BuildVariantKey",
    "BuildInfo",
    "derive_build_identity",
    "get_version_from_filename",
    # Feed and index
    "ArtifactDownload",
    "ArtifactVersion",
    "BuildTypes",
    "ArtifactsFeed",
    "fetch_feed",
    # Local catalog
    "LocalCatalog",
    # Downloads
    "download_to_file",
    "DownloadResult",
    "DownloadTask",
    "TaskState",
    "FileDownloadTask",
    "FetchOrchestrator",
]
