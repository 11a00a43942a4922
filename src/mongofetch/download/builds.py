"""
Build Variants and Artifact Name Parsing

This module defines the typed build-variant key used to look up downloads
(target, architecture, edition, debug) and the heuristics that derive a build
identity from an artifact file or directory name, e.g.
``mongodb-linux-x86_64-enterprise-rhel70-3.2.6``.
"""

import json
import os
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from mongofetch.constants import (
    ARCHIVE_EXTENSIONS,
    ARTIFACT_DIR_PREFIX,
    BASE_PLATFORM_MARKERS,
    DEBUG_SYMBOLS_MARKER,
    ENTERPRISE_MARKER,
    TARGETED_DISTRO_MARKERS,
)
from mongofetch.exceptions import BuildOptionsError


class Edition(str, Enum):
    """Distribution flavor of an artifact."""

    ENTERPRISE = "enterprise"
    COMMUNITY_TARGETED = "targeted"
    BASE = "base"

    def __str__(self) -> str:
        return self.value


class Arch(str, Enum):
    """CPU architecture of an artifact."""

    AMD64 = "x86_64"
    X86 = "i686"
    POWER = "ppc64le"
    ZSERIES = "s390x"

    def __str__(self) -> str:
        return self.value


EditionLike = Union[Edition, str]
ArchLike = Union[Arch, str]


def coerce_edition(value: EditionLike) -> EditionLike:
    """Return the Edition member for a known value, or the raw string otherwise."""
    if isinstance(value, Edition):
        return value
    try:
        return Edition(value)
    except ValueError:
        return value


def coerce_arch(value: ArchLike) -> ArchLike:
    """Return the Arch member for a known value, or the raw string otherwise."""
    if isinstance(value, Arch):
        return value
    try:
        return Arch(value)
    except ValueError:
        return value


@dataclass(frozen=True)
class BuildVariantKey:
    """
    Identifies one build flavor of a version.

    Two keys are equal only when all four fields match. Known edition and
    architecture strings are normalized to their enum members so a key built
    from feed data compares equal to one built from enums.
    """

    target: str
    arch: ArchLike
    edition: EditionLike
    debug: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "arch", coerce_arch(self.arch))
        object.__setattr__(self, "edition", coerce_edition(self.edition))

    def validate(self) -> None:
        """
        Check that the key is complete.

        Raises:
            BuildOptionsError: Listing every missing or unknown field at once.
        """
        problems: List[str] = []
        if not self.target:
            problems.append("missing target")
        if not self.arch:
            problems.append("missing arch")
        elif not isinstance(self.arch, Arch):
            problems.append(f"unknown arch '{self.arch}'")
        if not self.edition:
            problems.append("missing edition")
        elif not isinstance(self.edition, Edition):
            problems.append(f"unknown edition '{self.edition}'")

        if problems:
            raise BuildOptionsError(
                "invalid build options", details="; ".join(problems)
            )

    def with_debug(self, debug: bool) -> "BuildVariantKey":
        return BuildVariantKey(self.target, self.arch, self.edition, debug)

    def build_info(self, version: str) -> "BuildInfo":
        return BuildInfo(version=version, options=self)

    def to_json(self) -> str:
        return json.dumps(
            {
                "target": self.target,
                "arch": str(self.arch),
                "edition": str(self.edition),
                "debug": self.debug,
            }
        )

    def __str__(self) -> str:
        return self.to_json()


@dataclass(frozen=True)
class BuildInfo:
    """A resolved build identity: a version string plus its variant."""

    version: str
    options: BuildVariantKey

    def __str__(self) -> str:
        return (
            f"{self.version} (target={self.options.target}, arch={self.options.arch}, "
            f"edition={self.options.edition}, debug={self.options.debug})"
        )


# Matches the segment where the version begins, e.g. "3.2.6" or "3.1.0~rc0"
VERSION_SEGMENT_RX = re.compile(r"^\d+\.\d+\.\d+")
TARGETED_LINUX_DISTROS = ("rhel", "suse", "debian", "ubuntu", "amazon")
ARCH_ALIASES = (
    (Arch.AMD64, ("x86_64",)),
    (Arch.X86, ("i686", "i386")),
    (Arch.POWER, ("ppc64le",)),
    (Arch.ZSERIES, ("s390x",)),
)


def strip_archive_extension(name: str) -> str:
    for extension in ARCHIVE_EXTENSIONS:
        if name.endswith(extension):
            return name[: -len(extension)]
    return name


def get_version_from_filename(name: str) -> str:
    """
    Extract the version portion of an artifact name.

    The version starts at the first hyphen-separated segment that looks like a
    numeric major.minor.patch triple and runs to the end of the name, so
    release candidates ("3.2.6-rc0"), git-describe nightlies
    ("3.3.1-123-g1234abc") and "~" nightlies are kept whole.

    Raises:
        BuildOptionsError: If no segment looks like a version.
    """
    base = strip_archive_extension(os.path.basename(name.rstrip("/\\")))
    parts = base.split("-")
    for index, part in enumerate(parts):
        if index == 0:
            continue
        if VERSION_SEGMENT_RX.match(part):
            return "-".join(parts[index:])

    raise BuildOptionsError(
        f"{base} does not contain a version", field="name", value=name
    )


def _get_arch(name: str) -> Arch:
    for arch, aliases in ARCH_ALIASES:
        if any(alias in name for alias in aliases):
            return arch
    raise BuildOptionsError(
        f"path '{name}' does not contain a recognized architecture",
        field="arch",
        value=name,
    )


def _get_edition(name: str) -> Edition:
    if ENTERPRISE_MARKER in name:
        return Edition.ENTERPRISE

    if any(distro in name for distro in TARGETED_DISTRO_MARKERS):
        return Edition.COMMUNITY_TARGETED

    for platform in BASE_PLATFORM_MARKERS:
        if name.startswith(ARTIFACT_DIR_PREFIX + platform):
            return Edition.BASE

    raise BuildOptionsError(
        f"path {name} does not have a valid edition", field="edition", value=name
    )


def _get_target(name: str, arch: Arch) -> str:
    parts = name.split("-")

    if ENTERPRISE_MARKER in name:
        for platform in ("osx", "macos", "windows"):
            if platform in name:
                return platform
        if "linux" in name and ENTERPRISE_MARKER in parts:
            index = parts.index(ENTERPRISE_MARKER)
            if index < len(parts) - 1:
                return parts[index + 1]

    # community targeted linux distributions are named by their distro segment
    for part in parts:
        if part.startswith(TARGETED_LINUX_DISTROS):
            return part

    if "osx-ssl" in name:
        return "osx-ssl"
    if "macos" in name:
        return "macos"
    if "osx" in name:
        return "osx"

    if "2008plus-ssl" in name:
        return "windows_x86_64-2008plus-ssl"
    if "2008plus" in name:
        return "windows_x86_64-2008plus"
    if "win32-i386" in name or "win32-i686" in name:
        return "windows_i686"
    if "win32-x86_64" in name:
        return "windows_x86_64"

    if "linux" in name:
        return f"linux_{arch.value}"

    if "sunos5" in name:
        return "sunos5"

    raise BuildOptionsError(
        f"could not determine platform for {name}", field="target", value=name
    )


def derive_build_identity(name: str) -> BuildInfo:
    """
    Derive the version and build variant of an artifact from its name.

    Parameters:
        name (str): A file or directory name (or path); only the final path
            component is considered and archive extensions are ignored.

    Returns:
        BuildInfo: The version and variant the name describes.

    Raises:
        BuildOptionsError: If the architecture, edition, platform or version
            cannot be determined.
    """
    file_name = strip_archive_extension(os.path.basename(name.rstrip("/\\")))
    debug = DEBUG_SYMBOLS_MARKER in file_name

    arch = _get_arch(file_name)
    try:
        edition = _get_edition(file_name)
    except BuildOptionsError as e:
        raise BuildOptionsError(
            "problem resolving edition", field="edition", value=name, details=str(e)
        ) from e
    try:
        target = _get_target(file_name, arch)
    except BuildOptionsError as e:
        raise BuildOptionsError(
            "problem resolving target", field="target", value=name, details=str(e)
        ) from e
    try:
        version = get_version_from_filename(file_name)
    except BuildOptionsError as e:
        raise BuildOptionsError(
            "problem resolving version", field="version", value=name, details=str(e)
        ) from e

    return BuildInfo(
        version=version,
        options=BuildVariantKey(target=target, arch=arch, edition=edition, debug=debug),
    )


def parse_edition(value: Optional[str]) -> Edition:
    """Parse a user-supplied edition name, raising BuildOptionsError when unknown."""
    try:
        return Edition(str(value).lower())
    except ValueError:
        choices = ", ".join(e.value for e in Edition)
        raise BuildOptionsError(
            f"unknown edition '{value}'",
            field="edition",
            value=value,
            details=f"expected one of: {choices}",
        ) from None


def parse_arch(value: Optional[str]) -> Arch:
    """Parse a user-supplied architecture name, raising BuildOptionsError when unknown."""
    try:
        return Arch(str(value).lower())
    except ValueError:
        choices = ", ".join(a.value for a in Arch)
        raise BuildOptionsError(
            f"unknown arch '{value}'",
            field="arch",
            value=value,
            details=f"expected one of: {choices}",
        ) from None
