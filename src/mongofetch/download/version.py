"""
Version Identifiers for the Mongofetch Download Subsystem

This module parses MongoDB release strings into comparable version objects and
answers the common questions asked about them: is this a release candidate, a
nightly or development build, which release series does it belong to, and how
does it order against other versions.

Two numbering schemes exist. Versions below LEGACY_VERSION_CUTOVER use the
legacy scheme (LegacyVersion), versions at or above it use the modern scheme
(ModernVersion). Both implement the MongoDBVersion interface independently and
share only the pure helper functions defined here. Use create_version() to get
the right one for a string.
"""

import re
from abc import ABC, abstractmethod
from typing import Any, Iterable, NamedTuple, Optional, Tuple

from mongofetch.constants import (
    LEGACY_VERSION_CUTOVER,
    NIGHTLY_MARKER,
    NO_RC_NUMBER,
)
from mongofetch.exceptions import InvalidVersionStringError, VersionError

# Semantic version grammar (https://semver.org), numeric core plus optional
# pre-release and build metadata.
SEMVER_RX = re.compile(
    r"^(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*)"
    r"(?:\.(?:0|[1-9]\d*|\d*[A-Za-z-][0-9A-Za-z-]*))*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)
MODERN_RC_RX = re.compile(r"^rc(\d+)$")

SCHEME_LEGACY = "legacy"
SCHEME_MODERN = "modern"


class SemanticVersion(NamedTuple):
    """A parsed semantic version. Only the numeric triple takes part in ordering."""

    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    @property
    def triple(self) -> Tuple[int, int, int]:
        return (self.major, self.minor, self.patch)

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + ".".join(self.build)
        return text


def parse_semantic_version(text: str) -> SemanticVersion:
    """
    Parse a string using semantic-version rules.

    Raises:
        InvalidVersionStringError: If the string is not a valid semantic version.
    """
    match = SEMVER_RX.match(text)
    if not match:
        raise InvalidVersionStringError(text, details="not a semantic version")

    prerelease = match.group("prerelease")
    build = match.group("build")
    return SemanticVersion(
        int(match.group("major")),
        int(match.group("minor")),
        int(match.group("patch")),
        tuple(prerelease.split(".")) if prerelease else (),
        tuple(build.split(".")) if build else (),
    )


def _prepare_version_string(version: str) -> Tuple[str, bool, Optional[str]]:
    """
    Rewrite development markers so the string parses as a semantic version.

    A trailing hyphen gets a synthetic "pre-" tag (unless a "pre" tag is already
    present). A nightly marker ("~") splits the string: the prefix becomes the
    version with a synthetic "-pre-" tag and the suffix becomes the nightly tag.

    Returns:
        Tuple of (string to parse, development flag, nightly tag or None).
    """
    is_dev = False
    nightly_tag = None

    if version.endswith("-"):
        is_dev = True
        if "pre" not in version:
            version += "pre-"

    if NIGHTLY_MARKER in version:
        parts = version.split(NIGHTLY_MARKER)
        version = parts[0] + "-pre-"
        nightly_tag = "".join(parts[1:])
        is_dev = True

    return version, is_dev, nightly_tag


def _next_stable_series(major: int, minor: int) -> str:
    # Odd minors are development lines for the next even minor; x.9 rolls over.
    if minor < 9:
        return f"{major}.{minor + 1}"
    return f"{major + 1}.0"


def _is_even(value: int) -> bool:
    return value % 2 == 0


class MongoDBVersion(ABC):
    """
    Interface shared by every version numbering scheme.

    All parsing happens during construction, so individual method calls are
    cheap. Equality is identity of the source string; ordering compares only
    the numeric (major, minor, patch) triple, which is why a release candidate
    and its GA release are neither less nor greater than each other.
    """

    scheme: str

    @abstractmethod
    def __str__(self) -> str:
        """Return the source string the version was created from."""

    @property
    @abstractmethod
    def parsed(self) -> SemanticVersion:
        """Return the parsed semantic version."""

    @property
    @abstractmethod
    def tag(self) -> str:
        """Return the free-form pre-release or nightly tag ("" if none)."""

    @abstractmethod
    def series(self) -> str:
        """Return the release series, e.g. "3.2" for 3.2.6."""

    @abstractmethod
    def is_release_candidate(self) -> bool:
        """Return True for releases tagged "rc<N>"."""

    @abstractmethod
    def is_stable_series(self) -> bool:
        """Return True when the minor component is even."""

    @abstractmethod
    def is_development_series(self) -> bool:
        """Return True when the minor component is odd."""

    @abstractmethod
    def stable_release_series(self) -> str:
        """Return this series if stable, otherwise the next stable series."""

    @abstractmethod
    def is_release(self) -> bool:
        """Return True for GA releases and release candidates."""

    @abstractmethod
    def is_development_build(self) -> bool:
        """Return True for nightlies, test and development builds."""

    @abstractmethod
    def is_initial_stable_release_candidate(self) -> bool:
        """Return True for an RC of the x.y.0 release of a stable series."""

    @abstractmethod
    def rc_number(self) -> int:
        """Return the RC ordinal, or NO_RC_NUMBER when not a release candidate."""

    @abstractmethod
    def is_less_than(self, other: "MongoDBVersion") -> bool: ...

    @abstractmethod
    def is_less_than_or_equal_to(self, other: "MongoDBVersion") -> bool: ...

    @abstractmethod
    def is_greater_than(self, other: "MongoDBVersion") -> bool: ...

    @abstractmethod
    def is_greater_than_or_equal_to(self, other: "MongoDBVersion") -> bool: ...

    @abstractmethod
    def is_equal_to(self, other: "MongoDBVersion") -> bool: ...

    @abstractmethod
    def is_not_equal_to(self, other: "MongoDBVersion") -> bool: ...

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MongoDBVersion):
            return NotImplemented
        return self.is_equal_to(other)

    def __hash__(self) -> int:
        return hash(str(self))

    def __lt__(self, other: "MongoDBVersion") -> bool:
        if not isinstance(other, MongoDBVersion):
            return NotImplemented
        return self.is_less_than(other)

    def __le__(self, other: "MongoDBVersion") -> bool:
        if not isinstance(other, MongoDBVersion):
            return NotImplemented
        return self.is_less_than_or_equal_to(other)

    def __gt__(self, other: "MongoDBVersion") -> bool:
        if not isinstance(other, MongoDBVersion):
            return NotImplemented
        return self.is_greater_than(other)

    def __ge__(self, other: "MongoDBVersion") -> bool:
        if not isinstance(other, MongoDBVersion):
            return NotImplemented
        return self.is_greater_than_or_equal_to(other)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self)!r})"


class LegacyVersion(MongoDBVersion):
    """
    A version identifier under the legacy (pre-4.5) numbering scheme.

    Release-candidate and development detection follow the historical string
    conventions: any "rc" in the string marks a release candidate, and any
    other pre-release tag marks a development build.
    """

    scheme = SCHEME_LEGACY

    def __init__(self, version: str) -> None:
        self._source = version
        self._rc_number = NO_RC_NUMBER
        self._is_rc = False

        to_parse, self._is_dev, nightly_tag = _prepare_version_string(version)
        self._parsed = parse_semantic_version(to_parse)

        if "rc" in to_parse:
            self._is_rc = True

        self._tag = ""
        tag_parts = to_parse.split("-")
        if len(tag_parts) > 1:
            self._tag = "-".join(tag_parts[1:])

            if self._is_rc:
                # The RC identifier may carry build info, like 1.0.0-rc0+buildinfo
                rc_part = tag_parts[1].split("+")[0]
                try:
                    self._rc_number = int(rc_part[2:])
                except ValueError:
                    raise InvalidVersionStringError(
                        version, details=f"could not parse rc number from '{rc_part}'"
                    ) from None
                if len(tag_parts) > 2:
                    self._is_dev = True
            else:
                self._is_dev = True

        if nightly_tag is not None:
            self._tag = nightly_tag

        self._series = to_parse[:3]

    def __str__(self) -> str:
        return self._source

    @property
    def parsed(self) -> SemanticVersion:
        return self._parsed

    @property
    def tag(self) -> str:
        return self._tag

    def series(self) -> str:
        return self._series

    def is_release_candidate(self) -> bool:
        return self.is_release() and self._is_rc

    def is_stable_series(self) -> bool:
        return _is_even(self._parsed.minor)

    def is_development_series(self) -> bool:
        return not self.is_stable_series()

    def stable_release_series(self) -> str:
        if self.is_stable_series():
            return self.series()
        return _next_stable_series(self._parsed.major, self._parsed.minor)

    def is_release(self) -> bool:
        return not self._is_dev

    def is_development_build(self) -> bool:
        return self._is_dev

    def is_initial_stable_release_candidate(self) -> bool:
        if self.is_stable_series():
            return self._parsed.patch == 0 and self.is_release_candidate()
        return False

    def rc_number(self) -> int:
        return self._rc_number

    def is_less_than(self, other: MongoDBVersion) -> bool:
        return self._parsed.triple < other.parsed.triple

    def is_less_than_or_equal_to(self, other: MongoDBVersion) -> bool:
        # Numeric comparison treats an RC and its GA release as equal, so
        # textual identity has to be checked first.
        if self.is_equal_to(other):
            return True
        return self.is_less_than(other)

    def is_greater_than(self, other: MongoDBVersion) -> bool:
        return self._parsed.triple > other.parsed.triple

    def is_greater_than_or_equal_to(self, other: MongoDBVersion) -> bool:
        if self.is_equal_to(other):
            return True
        return self.is_greater_than(other)

    def is_equal_to(self, other: MongoDBVersion) -> bool:
        return str(self) == str(other)

    def is_not_equal_to(self, other: MongoDBVersion) -> bool:
        return str(self) != str(other)


class ModernVersion(MongoDBVersion):
    """
    A version identifier under the modern (4.5.0 and later) numbering scheme.

    Classification semantics match the legacy scheme, but detection is
    structural: a release candidate is a version whose first pre-release
    identifier is exactly "rc<N>", and the series is formatted from the
    numeric components so two-digit majors and minors render correctly.
    """

    scheme = SCHEME_MODERN

    def __init__(self, version: str) -> None:
        self._source = version

        to_parse, is_dev, nightly_tag = _prepare_version_string(version)
        self._parsed = parse_semantic_version(to_parse)

        prerelease = ".".join(self._parsed.prerelease)
        self._tag = nightly_tag if nightly_tag is not None else prerelease

        self._is_rc = False
        self._rc_number = NO_RC_NUMBER
        if prerelease:
            head, _, rest = prerelease.partition("-")
            rc_match = MODERN_RC_RX.match(head)
            if rc_match:
                self._is_rc = True
                self._rc_number = int(rc_match.group(1))
                if rest:
                    is_dev = True
            else:
                is_dev = True

        self._is_dev = is_dev
        self._series = f"{self._parsed.major}.{self._parsed.minor}"

    def __str__(self) -> str:
        return self._source

    @property
    def parsed(self) -> SemanticVersion:
        return self._parsed

    @property
    def tag(self) -> str:
        return self._tag

    def series(self) -> str:
        return self._series

    def is_release_candidate(self) -> bool:
        return self._is_rc and not self._is_dev

    def is_stable_series(self) -> bool:
        return _is_even(self._parsed.minor)

    def is_development_series(self) -> bool:
        return not _is_even(self._parsed.minor)

    def stable_release_series(self) -> str:
        if _is_even(self._parsed.minor):
            return self._series
        return _next_stable_series(self._parsed.major, self._parsed.minor)

    def is_release(self) -> bool:
        return not self._is_dev

    def is_development_build(self) -> bool:
        return self._is_dev

    def is_initial_stable_release_candidate(self) -> bool:
        return (
            _is_even(self._parsed.minor)
            and self._parsed.patch == 0
            and self.is_release_candidate()
        )

    def rc_number(self) -> int:
        return self._rc_number

    def is_less_than(self, other: MongoDBVersion) -> bool:
        return self._parsed.triple < other.parsed.triple

    def is_less_than_or_equal_to(self, other: MongoDBVersion) -> bool:
        return str(self) == str(other) or self._parsed.triple < other.parsed.triple

    def is_greater_than(self, other: MongoDBVersion) -> bool:
        return self._parsed.triple > other.parsed.triple

    def is_greater_than_or_equal_to(self, other: MongoDBVersion) -> bool:
        return str(self) == str(other) or self._parsed.triple > other.parsed.triple

    def is_equal_to(self, other: MongoDBVersion) -> bool:
        return str(self) == str(other)

    def is_not_equal_to(self, other: MongoDBVersion) -> bool:
        return str(self) != str(other)


def create_version(version: str) -> MongoDBVersion:
    """
    Create the version object for a release string.

    The numeric triple of the (pre-processed) string selects the scheme:
    below LEGACY_VERSION_CUTOVER the legacy scheme is used, otherwise the
    modern one.

    Parameters:
        version (str): Release string such as "3.2.6-rc0" or "3.1.0~rc0".

    Returns:
        MongoDBVersion: A LegacyVersion or ModernVersion.

    Raises:
        InvalidVersionStringError: If the string cannot be parsed.
    """
    if not isinstance(version, str) or not version:
        raise InvalidVersionStringError(str(version), details="empty version")

    to_parse, _, _ = _prepare_version_string(version)
    if parse_semantic_version(to_parse).triple < LEGACY_VERSION_CUTOVER:
        return LegacyVersion(version)
    return ModernVersion(version)


def convert_version(value: Any) -> MongoDBVersion:
    """
    Convert a version object, semantic version or string into a MongoDBVersion.

    Raises:
        VersionError: If the value's type cannot be converted.
        InvalidVersionStringError: If a string value is not a valid version.
    """
    if isinstance(value, MongoDBVersion):
        return value
    if isinstance(value, SemanticVersion):
        return create_version(str(value))
    if isinstance(value, str):
        return create_version(value)
    raise VersionError(
        f"{value!r} is not a valid version type ({type(value).__name__})",
        field="version",
        value=repr(value),
    )


class VersionList(list):
    """
    A list of versions that sorts by numeric triple and renders as a comma list.

    Sorting is stable: versions with the same numeric triple keep their
    original relative order.
    """

    def __init__(self, versions: Iterable[Any] = ()) -> None:
        super().__init__(
            v if v is None else convert_version(v) for v in versions
        )

    def sort(self, *, key=None, reverse: bool = False) -> None:  # type: ignore[override]
        if key is None:
            key = _sort_key
        super().sort(key=key, reverse=reverse)

    def __str__(self) -> str:
        # Placeholder entries (None or empty strings) are skipped.
        return ", ".join(str(v) for v in self if v is not None and str(v))


def _sort_key(version: Optional[MongoDBVersion]) -> Tuple[int, int, int]:
    if version is None:
        return (-1, -1, -1)
    return version.parsed.triple
