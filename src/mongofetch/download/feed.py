"""
Release Feed Access

This module fetches and parses the published release feed (a JSON document of
the shape ``{"versions": [{"version": ..., "downloads": [...]}, ...]}``) and
resolves requested releases into download URLs for a build variant.
"""

import json
import os
import queue
import re
import threading
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from mongofetch.constants import (
    DEFAULT_FEED_URL,
    FEED_BACKOFF_FACTOR,
    FEED_CONNECT_RETRIES,
    FEED_REQUEST_TIMEOUT,
    LATEST_RELEASE_ALIAS,
)
from mongofetch.exceptions import (
    FeedError,
    FeedVersionNotFoundError,
    MongofetchError,
    ReleaseResolutionError,
)
from mongofetch.log_utils import logger

from .artifacts import ArtifactVersion
from .builds import ArchLike, BuildVariantKey, EditionLike
from .version import VersionList, create_version

SERIES_RX = re.compile(r"^(\d+)\.(\d+)$")

# Marks the end of a producer queue
_END = object()


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _build_session() -> requests.Session:
    session = requests.Session()
    retry_strategy = Retry(
        total=FEED_CONNECT_RETRIES,
        connect=FEED_CONNECT_RETRIES,
        read=FEED_CONNECT_RETRIES,
        status=FEED_CONNECT_RETRIES,
        backoff_factor=FEED_BACKOFF_FACTOR,
        status_forcelist=[408, 429, 500, 502, 503, 504],
        allowed_methods=frozenset({"GET", "HEAD"}),
        raise_on_status=False,
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def parse_feed(data: Any, source: Optional[str] = None) -> List[ArtifactVersion]:
    """
    Convert a decoded feed document into ArtifactVersion objects.

    Raises:
        FeedError: If the document does not have a "versions" list or an entry
            is malformed.
    """
    if not isinstance(data, dict) or not isinstance(data.get("versions"), list):
        raise FeedError(
            "feed document must contain a 'versions' list", source=source
        )

    versions = []
    for entry in data["versions"]:
        try:
            versions.append(ArtifactVersion.from_dict(entry))
        except FeedError as e:
            raise FeedError(
                "malformed entry in feed", source=source, details=str(e)
            ) from e
    return versions


def fetch_feed(
    source: str,
    timeout: float = FEED_REQUEST_TIMEOUT,
    session: Optional[requests.Session] = None,
) -> List[ArtifactVersion]:
    """
    Fetch and parse the release feed from a URL or a local JSON file.

    Parameters:
        source (str): An http(s) URL or a path to a JSON file.
        timeout (float): Request timeout in seconds for URL sources.
        session (Optional[requests.Session]): Session to use; one with a retry
            adapter is created (and closed) when omitted.

    Returns:
        List[ArtifactVersion]: Versions in feed order, each with its index built.

    Raises:
        FeedError: If the feed cannot be read or decoded.
    """
    if not _is_url(source):
        try:
            with open(os.path.expanduser(source), "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise FeedError(
                f"could not read feed file {source}", source=source, details=str(e)
            ) from e
        return parse_feed(data, source)

    own_session = session is None
    if session is None:
        session = _build_session()
    try:
        logger.debug(f"Fetching release feed from {source}")
        response = session.get(source, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        raise FeedError(
            f"could not fetch feed from {source}", source=source, details=str(e)
        ) from e
    except ValueError as e:
        raise FeedError(
            f"feed at {source} is not valid JSON", source=source, details=str(e)
        ) from e
    finally:
        if own_session:
            session.close()

    return parse_feed(data, source)


def drain(channel: "queue.Queue[Any]") -> Iterator[Any]:
    """Yield items from a producer queue until its end marker arrives."""
    while True:
        item = channel.get()
        if item is _END:
            return
        yield item


class ArtifactsFeed:
    """
    The release feed, indexed by version string.

    The feed is fetched lazily by populate(); versions can also be supplied
    directly with add_versions() (useful for tests and offline use).
    """

    def __init__(
        self, source: str = DEFAULT_FEED_URL, timeout: float = FEED_REQUEST_TIMEOUT
    ) -> None:
        self.source = source
        self.timeout = timeout
        self._versions: Dict[str, ArtifactVersion] = {}
        self._populated = False
        self._lock = threading.Lock()

    @property
    def populated(self) -> bool:
        return self._populated

    @property
    def versions(self) -> List[ArtifactVersion]:
        return list(self._versions.values())

    def populate(self, force: bool = False) -> None:
        """Fetch the feed once (again when `force` is set)."""
        with self._lock:
            if self._populated and not force:
                return
            versions = fetch_feed(self.source, timeout=self.timeout)
            self._versions = {}
            self._add(versions)
            self._populated = True
        logger.info(f"Loaded {len(versions)} versions from release feed")

    def add_versions(self, versions: Sequence[ArtifactVersion]) -> None:
        with self._lock:
            self._add(versions)
            self._populated = True

    def _add(self, versions: Sequence[ArtifactVersion]) -> None:
        for version in versions:
            self._versions[version.version] = version

    def get_version(self, release: str) -> ArtifactVersion:
        """
        Return the feed entry for an exact release string.

        Raises:
            FeedVersionNotFoundError: If the feed has no such release.
        """
        try:
            return self._versions[release]
        except KeyError:
            raise FeedVersionNotFoundError(release) from None

    def _newest(self, candidates: List[ArtifactVersion]) -> Optional[ArtifactVersion]:
        by_version = {}
        for candidate in candidates:
            try:
                by_version[candidate.version] = candidate
                create_version(candidate.version)
            except MongofetchError:
                logger.debug(f"Ignoring unparseable feed version {candidate.version}")
                by_version.pop(candidate.version, None)
        if not by_version:
            return None
        ordered = VersionList(by_version)
        ordered.sort()
        return by_version[str(ordered[-1])]

    def get_current_version(self) -> ArtifactVersion:
        """
        Return the feed's current release, or the newest production release.

        Raises:
            FeedVersionNotFoundError: If the feed has neither.
        """
        current = [v for v in self._versions.values() if v.current]
        newest = self._newest(current) or self._newest(
            [v for v in self._versions.values() if v.production_release]
        )
        if newest is None:
            raise FeedVersionNotFoundError(LATEST_RELEASE_ALIAS)
        return newest

    def get_latest_in_series(self, series: str) -> ArtifactVersion:
        """
        Return the newest production release of a series such as "3.2".

        Raises:
            FeedVersionNotFoundError: If the series has no production release.
        """
        match = SERIES_RX.match(series)
        if not match:
            raise FeedVersionNotFoundError(series)
        wanted = (int(match.group(1)), int(match.group(2)))

        candidates = []
        for version in self._versions.values():
            if not version.production_release:
                continue
            try:
                parsed = version.version_info.parsed
            except MongofetchError:
                continue
            if (parsed.major, parsed.minor) == wanted:
                candidates.append(version)

        newest = self._newest(candidates)
        if newest is None:
            raise FeedVersionNotFoundError(series)
        return newest

    def resolve_release(self, release: str) -> ArtifactVersion:
        """Resolve an exact version, a series ("3.2") or "latest" to a feed entry."""
        if release == LATEST_RELEASE_ALIAS:
            return self.get_current_version()
        if release in self._versions:
            return self._versions[release]
        if SERIES_RX.match(release):
            return self.get_latest_in_series(release)
        raise FeedVersionNotFoundError(release)

    def get_latest_archive(self, series: str, key: BuildVariantKey) -> str:
        """Return the download URL of the newest production release of a series."""
        return self.get_latest_in_series(series).get_download_url(key)

    def get_archive_urls(
        self,
        releases: Sequence[str],
        edition: EditionLike,
        arch: ArchLike,
        target: str,
        debug: bool = False,
    ) -> Tuple["queue.Queue[Any]", "queue.Queue[Any]"]:
        """
        Resolve releases to download URLs on a background producer.

        Returns two queues: one yielding a URL per resolved release, and one
        yielding a single list of per-release resolution errors. If resolution
        stops on an unexpected exception, the error queue yields that exception
        after the list. Both queues always end with an end marker and both must
        be fully consumed (see drain()).

        Returns:
            Tuple of (url queue, error queue).
        """
        urls: "queue.Queue[Any]" = queue.Queue()
        errors: "queue.Queue[Any]" = queue.Queue()
        key = BuildVariantKey(target=target, arch=arch, edition=edition, debug=debug)

        def _produce() -> None:
            collected: List[MongofetchError] = []
            failure: Optional[Exception] = None
            try:
                for release in releases:
                    try:
                        version = self.resolve_release(release)
                        url = version.get_download_url(key)
                        if not url:
                            raise FeedError(
                                f"version {version.version} has no archive for {key}"
                            )
                    except MongofetchError as e:
                        logger.debug(f"Could not resolve release {release}: {e}")
                        collected.append(ReleaseResolutionError(release, str(e)))
                        continue
                    urls.put(url)
            except Exception as e:
                logger.error(f"Release resolution stopped: {e}")
                failure = e
            finally:
                errors.put(collected)
                if failure is not None:
                    errors.put(failure)
                errors.put(_END)
                urls.put(_END)

        producer = threading.Thread(
            target=_produce, name="mongofetch-feed-resolver", daemon=True
        )
        producer.start()
        return urls, errors
