"""
Custom exceptions for the Mongofetch application.

This module defines domain-specific exceptions that provide better error
categorization and more informative error messages for users and developers.
"""

from typing import Iterable, List, Optional


class MongofetchError(Exception):
    """
    Base exception for all Mongofetch errors.

    All custom exceptions in Mongofetch should inherit from this class
    to allow for easy catching of all application-specific errors.
    """

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(MongofetchError):
    """
    Exception raised when configuration is invalid or missing.

    This includes:
    - Invalid configuration values
    - Configuration file parsing errors
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when configuration file cannot be read."""

    pass


class ConfigValidationError(ConfigurationError):
    """Exception raised when configuration validation fails."""

    pass


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(MongofetchError):
    """
    Exception raised when validation fails.

    Attributes:
        field: The name of the field that failed validation.
        value: The value that failed validation.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value


class VersionError(ValidationError):
    """Exception raised when version parsing or conversion fails."""

    pass


class InvalidVersionStringError(VersionError):
    """Exception raised when a release string is not a valid version."""

    def __init__(self, value: str, details: Optional[str] = None) -> None:
        super().__init__(
            f"invalid version string '{value}'",
            field="version",
            value=value,
            details=details,
        )


class BuildOptionsError(ValidationError):
    """Exception raised when a build variant is incomplete or cannot be derived."""

    pass


class ArtifactValidationError(ValidationError):
    """
    Exception raised when an artifact directory lacks required contents.

    Attributes:
        path: The artifact directory that failed validation.
    """

    def __init__(
        self, message: str, path: Optional[str] = None, details: Optional[str] = None
    ) -> None:
        super().__init__(message, field="path", value=path, details=details)
        self.path = path


# =============================================================================
# Lookup Errors
# =============================================================================


class LookupFailure(MongofetchError):
    """Base exception for lookups that found nothing. Callers decide how to recover."""

    pass


class NoMatchingBuildError(LookupFailure):
    """Exception raised when a version has no download for the requested variant."""

    def __init__(self, target: str, arch: str, edition: str) -> None:
        super().__init__(
            f"there is no build for {target} ({arch}) in edition {edition}"
        )
        self.target = target
        self.arch = arch
        self.edition = edition


class ArtifactNotFoundError(LookupFailure):
    """Exception raised when the local catalog has no artifact for a build identity."""

    def __init__(
        self, version: str, edition: str, target: str, arch: str, root: str
    ) -> None:
        super().__init__(
            f"could not find version {version}, edition {edition}, "
            f"target {target}, arch {arch} in {root}"
        )
        self.version = version
        self.edition = edition
        self.target = target
        self.arch = arch
        self.root = root


class FeedVersionNotFoundError(LookupFailure):
    """Exception raised when a release is not present in the feed."""

    def __init__(self, release: str) -> None:
        super().__init__(f"release '{release}' is not present in the feed")
        self.release = release


class ReleaseResolutionError(LookupFailure):
    """
    Exception raised when a requested release cannot be turned into a download URL.

    Attributes:
        release: The release identifier that failed to resolve.
    """

    def __init__(self, release: str, details: Optional[str] = None) -> None:
        super().__init__(f"problem resolving release {release}", details)
        self.release = release


class DuplicateArtifactError(MongofetchError):
    """
    Exception raised when an artifact identity is already registered.

    Attributes:
        path: The path whose identity collided with an existing entry.
    """

    def __init__(self, path: str, existing: Optional[str] = None) -> None:
        details = f"already registered at {existing}" if existing else None
        super().__init__(f"path {path} exists in catalog", details)
        self.path = path
        self.existing = existing


# =============================================================================
# Feed Errors
# =============================================================================


class FeedError(MongofetchError):
    """
    Exception raised when the release feed cannot be fetched or parsed.

    Attributes:
        source: The URL or file the feed was read from.
    """

    def __init__(
        self, message: str, source: Optional[str] = None, details: Optional[str] = None
    ) -> None:
        super().__init__(message, details)
        self.source = source


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(MongofetchError):
    """
    Base exception for download-related errors.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url


class NetworkError(DownloadError):
    """
    Exception raised for network-related download failures.

    This includes:
    - Connection timeouts
    - DNS resolution failures
    - Connection refused errors
    - SSL/TLS errors
    """

    pass


class HTTPError(DownloadError):
    """
    Exception raised for HTTP-related download failures.

    Attributes:
        status_code: The HTTP status code returned by the server.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, url, details)
        self.status_code = status_code


class DownloadCancelledError(DownloadError):
    """Exception raised when a download is stopped by a cancellation signal."""

    pass


# =============================================================================
# Batch Errors
# =============================================================================


class AggregateError(MongofetchError):
    """
    A collection of errors produced by a batch operation.

    The message enumerates every contributing error along with the count so a
    failed batch can be diagnosed without rerunning it.

    Attributes:
        errors: The contributing exceptions, in the order they were collected.
    """

    def __init__(self, message: str, errors: Iterable[BaseException]) -> None:
        self.errors: List[BaseException] = list(errors)
        lines = "\n".join(f"  - {error}" for error in self.errors)
        super().__init__(
            f"{message} ({len(self.errors)} errors)",
            details=f"\n{lines}" if lines else None,
        )

    def __len__(self) -> int:
        return len(self.errors)

    def __iter__(self):
        return iter(self.errors)
