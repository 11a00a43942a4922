"""
Local Artifact Catalog

The catalog records artifacts that are already unpacked on disk, one per
directory named like ``mongodb-linux-x86_64-3.2.6``. Each directory must
contain a ``bin`` subdirectory with the server binaries. Lookups map a build
identity (version plus variant) back to the directory.
"""

import os
import platform
from typing import Dict, List, Optional, Tuple

from mongofetch.constants import (
    ARTIFACT_BIN_DIR,
    ARTIFACT_DIR_PREFIX,
    REQUIRED_BINARIES,
    WINDOWS_BINARY_SUFFIX,
)
from mongofetch.exceptions import (
    AggregateError,
    ArtifactNotFoundError,
    ArtifactValidationError,
    DuplicateArtifactError,
    MongofetchError,
)
from mongofetch.log_utils import logger

from .builds import (
    ArchLike,
    BuildInfo,
    BuildVariantKey,
    EditionLike,
    derive_build_identity,
)
from .locks import ReadWriteLock
from .version import create_version


def _is_windows_host() -> bool:
    return platform.system() == "Windows"


def required_binaries(windows: Optional[bool] = None) -> List[str]:
    """Return the binary names every artifact must ship, with .exe on Windows."""
    if windows is None:
        windows = _is_windows_host()
    suffix = WINDOWS_BINARY_SUFFIX if windows else ""
    return [f"{name}{suffix}" for name in REQUIRED_BINARIES]


def validate_build_artifacts(
    path: str, version: str, windows: Optional[bool] = None
) -> None:
    """
    Check that an artifact directory holds the required binaries.

    Raises:
        ArtifactValidationError: Naming every missing binary.
    """
    bin_dir = os.path.join(path, ARTIFACT_BIN_DIR)
    missing = [
        name
        for name in required_binaries(windows)
        if not os.path.isfile(os.path.join(bin_dir, name))
    ]
    if missing:
        raise ArtifactValidationError(
            f"version {version} at {path} is missing required binaries",
            path=path,
            details=", ".join(missing),
        )


class LocalCatalog:
    """
    Registry of artifacts present under one root directory.

    Readers never block each other; add() takes the write lock and excludes
    all readers while it inserts.
    """

    def __init__(self, path: str, windows: Optional[bool] = None) -> None:
        self.path = path
        self.windows = windows
        self._table: Dict[BuildInfo, str] = {}
        self._lock = ReadWriteLock()

    @classmethod
    def scan(cls, root: str, windows: Optional[bool] = None) -> "LocalCatalog":
        """
        Build a catalog from the artifact directories directly under `root`.

        Only directories whose name starts with the artifact prefix are
        considered. A candidate that cannot be identified or validated does not
        stop the scan; all such failures are raised together at the end.

        Parameters:
            root (str): Directory holding unpacked artifacts.
            windows (Optional[bool]): Validate Windows binary names; defaults
                to the host platform.

        Raises:
            MongofetchError: If `root` is missing, not a directory or empty.
            AggregateError: If any candidate failed identification or validation.
        """
        root = os.path.abspath(os.path.expanduser(root))
        if not os.path.isdir(root):
            raise MongofetchError(f"catalog path {root} is not a directory")

        names = sorted(os.listdir(root))
        if not names:
            raise MongofetchError(f"catalog path {root} is empty")

        catalog = cls(root, windows=windows)
        errors: List[BaseException] = []
        for name in names:
            candidate = os.path.join(root, name)
            if not name.startswith(ARTIFACT_DIR_PREFIX):
                continue
            if not os.path.isdir(candidate):
                continue
            try:
                catalog.add(candidate)
            except MongofetchError as e:
                logger.debug(f"Rejected catalog candidate {candidate}: {e}")
                errors.append(e)

        if errors:
            raise AggregateError(
                f"problem building build catalog from path {root}", errors
            )
        logger.info(f"Found {len(catalog)} artifacts in {root}")
        return catalog

    def add(self, path: str) -> BuildInfo:
        """
        Register one artifact directory.

        Returns:
            BuildInfo: The identity the directory was registered under.

        Raises:
            BuildOptionsError: If the name cannot be classified.
            ArtifactValidationError: If required binaries are missing.
            DuplicateArtifactError: If the identity is already registered.
        """
        info = derive_build_identity(os.path.basename(path))
        validate_build_artifacts(path, info.version, self.windows)

        with self._lock.write_locked():
            existing = self._table.get(info)
            if existing is not None:
                raise DuplicateArtifactError(path, existing)
            self._table[info] = path

        logger.debug(f"Added {info} at {path} to catalog")
        return info

    def lookup(
        self,
        version: str,
        edition: EditionLike,
        target: str,
        arch: ArchLike,
        debug: bool = False,
    ) -> str:
        """
        Return the directory of an artifact.

        Raises:
            ArtifactNotFoundError: If the catalog has no matching artifact.
        """
        info = BuildVariantKey(
            target=target, arch=arch, edition=edition, debug=debug
        ).build_info(version)

        with self._lock.read_locked():
            path = self._table.get(info)

        if path is None:
            raise ArtifactNotFoundError(
                version, str(edition), target, str(arch), self.path
            )
        return path

    def entries(self) -> List[Tuple[BuildInfo, str]]:
        """List registered artifacts, ordered by version then variant."""
        with self._lock.read_locked():
            items = list(self._table.items())

        def _order(item: Tuple[BuildInfo, str]):
            info = item[0]
            try:
                triple = create_version(info.version).parsed.triple
            except MongofetchError:
                triple = (-1, -1, -1)
            return (triple, info.version, str(info.options))

        return sorted(items, key=_order)

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._table)

    def __contains__(self, info: object) -> bool:
        with self._lock.read_locked():
            return info in self._table
