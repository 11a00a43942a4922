import json

import platformdirs
import pytest
import requests

from mongofetch.download.artifacts import ArtifactVersion
from mongofetch.download.feed import ArtifactsFeed

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Mock requests.* or Session.request."
)


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used to group the test suite.

    Parameters:
        config: pytest.Config
            The pytest configuration object used to register markers.
    """
    config.addinivalue_line("markers", "unit: fast tests without I/O beyond tmp_path")
    config.addinivalue_line(
        "markers", "core_downloads: tests of the download subsystem"
    )


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Point platformdirs and the log level variable at an isolated temporary layout.

    Keeps tests from reading the developer's real mongofetch.yaml.
    """
    base = tmp_path_factory.mktemp("mongofetch")
    config_dir = base / "config"
    log_dir = base / "log"
    for path in (config_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_dir))
    monkeypatch.delenv("MONGOFETCH_LOG_LEVEL", raising=False)
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing HTTP entry points with blocking callables.

    Replaces common synchronous requests entry points and Session.request with a
    function that raises a RuntimeError indicating network access is blocked.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.put = _block_network
    requests.delete = _block_network
    requests.head = _block_network
    requests.patch = _block_network
    requests.options = _block_network
    requests.Session.request = _block_network


# =============================================================================
# Feed Fixtures
# =============================================================================


def _download(edition, target, arch, url, debug_symbols=None, **extra):
    archive = {"url": url}
    if debug_symbols:
        archive["debug_symbols"] = debug_symbols
    entry = {"edition": edition, "target": target, "arch": arch, "archive": archive}
    entry.update(extra)
    return entry


@pytest.fixture
def feed_document():
    """
    Provide a small release feed document in the published JSON shape.

    Contains a current 4.0 release, an older 3.2 series with a release candidate,
    a development release and a 4.2 release that publishes OS X builds as macos.
    """
    base = "https://fastdl.mongodb.org"
    return {
        "versions": [
            {
                "version": "4.2.1",
                "githash": "edf6d45851c0b9ee15548f0f847df141764a317e",
                "production_release": True,
                "development_release": False,
                "current": False,
                "downloads": [
                    _download(
                        "base",
                        "linux_x86_64",
                        "x86_64",
                        f"{base}/linux/mongodb-linux-x86_64-4.2.1.tgz",
                    ),
                    _download(
                        "base",
                        "macos",
                        "x86_64",
                        f"{base}/osx/mongodb-macos-x86_64-4.2.1.tgz",
                    ),
                ],
            },
            {
                "version": "4.0.13",
                "githash": "bda366f0b0e432ca143bc41da54d8732bd8d03c0",
                "production_release": True,
                "development_release": False,
                "current": True,
                "downloads": [
                    _download(
                        "base",
                        "linux_x86_64",
                        "x86_64",
                        f"{base}/linux/mongodb-linux-x86_64-4.0.13.tgz",
                        debug_symbols=f"{base}/linux/mongodb-linux-x86_64-debugsymbols-4.0.13.tgz",
                    ),
                    _download(
                        "base",
                        "osx",
                        "x86_64",
                        f"{base}/osx/mongodb-osx-ssl-x86_64-4.0.13.tgz",
                    ),
                    _download(
                        "enterprise",
                        "rhel70",
                        "x86_64",
                        f"{base}/linux/mongodb-linux-x86_64-enterprise-rhel70-4.0.13.tgz",
                        packages=[
                            "https://repo.mongodb.com/mongodb-enterprise-server-4.0.13.rpm",
                            "https://repo.mongodb.com/mongodb-enterprise-shell-4.0.13.rpm",
                        ],
                    ),
                    _download(
                        "base",
                        "windows_x86_64-2008plus-ssl",
                        "x86_64",
                        f"{base}/win32/mongodb-win32-x86_64-2008plus-ssl-4.0.13.zip",
                        msi=f"{base}/win32/mongodb-win32-x86_64-2008plus-ssl-4.0.13-signed.msi",
                    ),
                    _download(
                        "source",
                        "source",
                        "source",
                        f"{base}/src/mongodb-src-r4.0.13.tar.gz",
                    ),
                ],
            },
            {
                "version": "3.2.22",
                "githash": "105acca0d443f9a47c1a5bd608fd7133840a58dd",
                "production_release": True,
                "development_release": False,
                "downloads": [
                    _download(
                        "base",
                        "linux_x86_64",
                        "x86_64",
                        f"{base}/linux/mongodb-linux-x86_64-3.2.22.tgz",
                    ),
                ],
            },
            {
                "version": "3.2.6",
                "githash": "05552b562c7a0b3143a729aaa0838e558dc49b25",
                "production_release": True,
                "development_release": False,
                "downloads": [
                    _download(
                        "base",
                        "linux_x86_64",
                        "x86_64",
                        f"{base}/linux/mongodb-linux-x86_64-3.2.6.tgz",
                    ),
                ],
            },
            {
                "version": "3.2.6-rc0",
                "githash": "",
                "production_release": False,
                "development_release": False,
                "downloads": [
                    _download(
                        "base",
                        "linux_x86_64",
                        "x86_64",
                        f"{base}/linux/mongodb-linux-x86_64-3.2.6-rc0.tgz",
                    ),
                ],
            },
            {
                "version": "3.3.1",
                "githash": "",
                "production_release": False,
                "development_release": True,
                "downloads": [
                    _download(
                        "base",
                        "linux_x86_64",
                        "x86_64",
                        f"{base}/linux/mongodb-linux-x86_64-3.3.1.tgz",
                    ),
                ],
            },
        ]
    }


@pytest.fixture
def feed_versions(feed_document):
    """Parsed ArtifactVersion objects for `feed_document`."""
    return [ArtifactVersion.from_dict(entry) for entry in feed_document["versions"]]


@pytest.fixture
def feed(feed_versions):
    """An ArtifactsFeed preloaded with `feed_versions` (never fetches)."""
    artifacts_feed = ArtifactsFeed(source="https://example.invalid/full.json")
    artifacts_feed.add_versions(feed_versions)
    return artifacts_feed


@pytest.fixture
def feed_file(tmp_path, feed_document):
    """Write `feed_document` to a JSON file and return its path."""
    path = tmp_path / "full.json"
    path.write_text(json.dumps(feed_document), encoding="utf-8")
    return path


@pytest.fixture
def make_artifact_dir(tmp_path):
    """
    Provide a factory creating unpacked artifact directories.

    The factory takes a directory name and optional binary names (default
    mongod and mongos) and returns the created path.
    """

    def _make(name, binaries=("mongod", "mongos"), root=None):
        parent = root or tmp_path / "artifacts"
        artifact = parent / name
        bin_dir = artifact / "bin"
        bin_dir.mkdir(parents=True, exist_ok=True)
        for binary in binaries:
            (bin_dir / binary).write_bytes(b"")
        return artifact

    return _make
