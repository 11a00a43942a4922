"""
Constants and configuration values for Mongofetch.

This module contains all hardcoded values, URLs, timeouts, and other constants
used throughout the application.
"""

# Release feed
DEFAULT_FEED_URL = "https://downloads.mongodb.org/full.json"
FEED_REQUEST_TIMEOUT = 30
FEED_CONNECT_RETRIES = 3
FEED_BACKOFF_FACTOR = 0.3

# Artifact transfer settings (no retries: failed downloads are reported, not retried)
DEFAULT_REQUEST_TIMEOUT = 60
DEFAULT_CHUNK_SIZE = 64 * 1024

# Version numbering
# Versions at or above this numeric triple use the modern numbering scheme.
LEGACY_VERSION_CUTOVER = (4, 5, 0)
# Starting with 4.1 the feed publishes OS X builds under the "macos" target.
MACOS_TARGET_CUTOVER = (4, 1)
NO_RC_NUMBER = -1
NIGHTLY_MARKER = "~"
LATEST_RELEASE_ALIAS = "latest"

# Local artifact layout
ARTIFACT_DIR_PREFIX = "mongodb-"
ARTIFACT_BIN_DIR = "bin"
REQUIRED_BINARIES = ("mongod", "mongos")
WINDOWS_BINARY_SUFFIX = ".exe"
ARCHIVE_EXTENSIONS = (".tar.gz", ".tgz", ".zip", ".msi")
DEBUG_SYMBOLS_MARKER = "debugsymbols"
SOURCE_EDITION = "source"

# Filename heuristics
ENTERPRISE_MARKER = "enterprise"
TARGETED_DISTRO_MARKERS = (
    "rhel",
    "suse",
    "2008",
    "osx-ssl",
    "debian",
    "ubuntu",
    "amazon",
)
BASE_PLATFORM_MARKERS = ("osx", "macos", "win32", "windows", "sunos5", "linux")

# Default configuration values
DEFAULT_DOWNLOAD_DIR = "~/mongodb"
DEFAULT_EDITION = "base"
DEFAULT_ARCH = "x86_64"

# Configuration file names
APP_NAME = "mongofetch"
CONFIG_FILE_NAME = "mongofetch.yaml"

# Logging configuration
LOGGER_NAME = "mongofetch"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
INFO_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
DEBUG_LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s: %(message)s"
LOG_FILE_NAME = "mongofetch.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT = 5

# Environment variable names
LOG_LEVEL_ENV_VAR = "MONGOFETCH_LOG_LEVEL"
