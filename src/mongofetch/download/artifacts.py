"""
Artifact Versions and the Per-Version Download Index

An ArtifactVersion mirrors one entry of the release feed's "versions" list. It
owns an index from BuildVariantKey to ArtifactDownload which callers rebuild
explicitly with build_index() after changing the download list; lookups go
through resolve(), which applies the feed's platform naming rules first.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mongofetch.constants import MACOS_TARGET_CUTOVER, SOURCE_EDITION
from mongofetch.exceptions import FeedError, NoMatchingBuildError

from .builds import (
    ArchLike,
    BuildVariantKey,
    Edition,
    EditionLike,
    coerce_arch,
    coerce_edition,
)
from .locks import ReadWriteLock
from .version import MongoDBVersion, create_version


@dataclass
class ArtifactDownload:
    """One downloadable variant of a version."""

    edition: EditionLike
    target: str
    arch: ArchLike
    archive_url: str = ""
    """URL of the binary archive (.tgz/.zip)"""

    debug_symbols_url: str = ""
    """URL of the matching debug symbols archive, when published"""

    sha256: Optional[str] = None
    packages: List[str] = field(default_factory=list)
    """Installer packages (.deb/.rpm) for this variant"""

    msi: str = ""
    """Single Windows installer, when published"""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtifactDownload":
        """
        Build a download from a feed "downloads" entry.

        Accepts both "msi" and "package" as the single-installer key.

        Raises:
            FeedError: If the entry is not a mapping.
        """
        if not isinstance(data, dict):
            raise FeedError(
                f"download entry must be an object, got {type(data).__name__}"
            )

        archive = data.get("archive") or {}
        packages = data.get("packages") or []
        if isinstance(packages, str):
            packages = [packages]

        return cls(
            edition=coerce_edition(str(data.get("edition", ""))),
            target=str(data.get("target", "")),
            arch=coerce_arch(str(data.get("arch", ""))),
            archive_url=str(archive.get("url", "")),
            debug_symbols_url=str(archive.get("debug_symbols", "")),
            sha256=archive.get("sha256"),
            packages=[str(p) for p in packages],
            msi=str(data.get("msi") or data.get("package") or ""),
        )

    def build_options(self) -> BuildVariantKey:
        return BuildVariantKey(target=self.target, arch=self.arch, edition=self.edition)

    def get_archive_url(self) -> str:
        return self.archive_url

    def get_packages(self) -> List[str]:
        """
        Return the installable packages for this variant.

        When only the single installer is published, it is the only package.
        """
        if self.msi and not self.packages:
            return [self.msi]
        return list(self.packages)


@dataclass
class BuildTypes:
    """Summary of the distinct variants a version publishes."""

    version: str
    targets: List[str] = field(default_factory=list)
    editions: List[EditionLike] = field(default_factory=list)
    architectures: List[ArchLike] = field(default_factory=list)


class ArtifactVersion:
    """
    A version entry of the release feed.

    Attributes:
        version: The release string, e.g. "3.2.6".
        githash: Git commit the release was built from.
        production_release: Whether this is a production (GA) release.
        development_release: Whether this is a development release.
        current: Whether the feed marks this as the current release.
        downloads: Ordered list of downloads. Call build_index() after changing it.
    """

    def __init__(
        self,
        version: str,
        downloads: Optional[List[ArtifactDownload]] = None,
        githash: str = "",
        production_release: bool = False,
        development_release: bool = False,
        current: bool = False,
    ) -> None:
        self.version = version
        self.downloads: List[ArtifactDownload] = list(downloads or [])
        self.githash = githash
        self.production_release = production_release
        self.development_release = development_release
        self.current = current

        self._table: Dict[BuildVariantKey, ArtifactDownload] = {}
        self._lock = ReadWriteLock()
        self._version_info: Optional[MongoDBVersion] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtifactVersion":
        """
        Build a version from a feed "versions" entry and index its downloads.

        Raises:
            FeedError: If the entry is malformed.
        """
        if not isinstance(data, dict) or not data.get("version"):
            raise FeedError("version entry must be an object with a 'version' key")

        downloads = data.get("downloads") or []
        if not isinstance(downloads, list):
            raise FeedError(f"downloads for {data['version']} must be a list")

        artifact_version = cls(
            version=str(data["version"]),
            downloads=[ArtifactDownload.from_dict(dl) for dl in downloads],
            githash=str(data.get("githash", "")),
            production_release=bool(data.get("production_release", False)),
            development_release=bool(data.get("development_release", False)),
            current=bool(data.get("current", False)),
        )
        artifact_version.build_index()
        return artifact_version

    @property
    def version_info(self) -> MongoDBVersion:
        """The parsed version identifier (raises InvalidVersionStringError if malformed)."""
        if self._version_info is None:
            self._version_info = create_version(self.version)
        return self._version_info

    def build_index(self) -> None:
        """
        Rebuild the variant index from the download list.

        Later downloads win when two share a key. The new table is swapped in
        under the write lock so readers never see a partial index.
        """
        table: Dict[BuildVariantKey, ArtifactDownload] = {}
        with self._lock.write_locked():
            for dl in self.downloads:
                table[dl.build_options()] = dl
            self._table = table

    def normalize_key(self, key: BuildVariantKey) -> BuildVariantKey:
        """
        Apply the feed's naming rules to a requested variant.

        Base-edition "linux" expands to "linux_<arch>", and from 4.1 onwards
        "osx" builds are published under the "macos" target. Debug is never part
        of the index key.
        """
        target = key.target
        if key.edition == Edition.BASE and target == "linux":
            target = f"{target}_{str(key.arch)}"

        if target == "osx":
            parsed = self.version_info.parsed
            if (parsed.major, parsed.minor) >= MACOS_TARGET_CUTOVER:
                target = "macos"

        return BuildVariantKey(target=target, arch=key.arch, edition=key.edition)

    def resolve(self, key: BuildVariantKey) -> ArtifactDownload:
        """
        Return the download for a variant.

        Raises:
            NoMatchingBuildError: If the version has no build for the variant.
        """
        lookup = self.normalize_key(key)
        with self._lock.read_locked():
            dl = self._table.get(lookup)

        if dl is None:
            raise NoMatchingBuildError(key.target, str(key.arch), str(key.edition))
        return dl

    def get_archive_url(self, key: BuildVariantKey) -> str:
        return self.resolve(key).get_archive_url()

    def get_installable_packages(self, key: BuildVariantKey) -> List[str]:
        return self.resolve(key).get_packages()

    def get_download_url(self, key: BuildVariantKey) -> str:
        """Return the debug symbols URL for debug variants, otherwise the archive URL."""
        dl = self.resolve(key)
        if key.debug:
            if not dl.debug_symbols_url:
                raise NoMatchingBuildError(
                    f"{key.target} (debug symbols)", str(key.arch), str(key.edition)
                )
            return dl.debug_symbols_url
        return dl.get_archive_url()

    def get_build_types(self) -> BuildTypes:
        """Summarize the distinct targets, editions and architectures published."""
        out = BuildTypes(version=self.version)
        for dl in self.downloads:
            if dl.edition == SOURCE_EDITION:
                continue
            if dl.target not in out.targets:
                out.targets.append(dl.target)
            if dl.edition not in out.editions:
                out.editions.append(dl.edition)
            if dl.arch not in out.architectures:
                out.architectures.append(dl.arch)
        return out

    def __str__(self) -> str:
        out = [self.version]
        for dl in self.downloads:
            if dl.edition == SOURCE_EDITION:
                continue
            out.append(
                f"\t target='{dl.target}', edition='{dl.edition}', arch='{dl.arch}'"
            )
        return "\n".join(out)

    def __repr__(self) -> str:
        return f"ArtifactVersion({self.version!r}, downloads={len(self.downloads)})"
