# Test Fetch Orchestrator
#
# Unit tests for FileDownloadTask and FetchOrchestrator.

import functools
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock, patch

import pytest

from mongofetch.download.feed import ArtifactsFeed
from mongofetch.download.files import download_to_file
from mongofetch.download.interfaces import DownloadResult, TaskState
from mongofetch.download.orchestrator import FetchOrchestrator, FileDownloadTask
from mongofetch.exceptions import (
    AggregateError,
    DownloadCancelledError,
    NetworkError,
    ReleaseResolutionError,
    ValidationError,
)

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]

URL_326 = "https://fastdl.mongodb.org/linux/mongodb-linux-x86_64-3.2.6.tgz"
URL_4013 = "https://fastdl.mongodb.org/linux/mongodb-linux-x86_64-4.0.13.tgz"


class FakeTransfer:
    """Records calls and writes the URL's basename, failing for selected URLs."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, url, destination):
        with self._lock:
            self.calls.append(url)
        with open(destination, "wb") as f:
            f.write(b"partial" if url in self.failing else b"archive")
        if url in self.failing:
            raise NetworkError("connection reset", url=url)


class TestFileDownloadTask:
    def test_destination_is_url_basename(self, tmp_path):
        task = FileDownloadTask(URL_326, tmp_path)
        assert task.get_target_path() == str(tmp_path / "mongodb-linux-x86_64-3.2.6.tgz")
        assert task.state is TaskState.PENDING

    @pytest.mark.parametrize(
        "url",
        ["ftp://example.invalid/a.tgz", "not a url", "https://example.invalid/"],
    )
    def test_rejects_bad_urls(self, tmp_path, url):
        with pytest.raises(ValidationError) as exc_info:
            FileDownloadTask(url, tmp_path)
        assert exc_info.value.field == "url"

    def test_rejects_file_as_directory(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(ValidationError) as exc_info:
            FileDownloadTask(URL_326, blocker)
        assert exc_info.value.field == "directory"

    def test_downloads(self, tmp_path):
        transfer = FakeTransfer()
        task = FileDownloadTask(URL_326, tmp_path / "new", transfer=transfer)

        result = task.execute()

        assert result.state is TaskState.SUCCEEDED
        assert result.success
        assert transfer.calls == [URL_326]
        assert os.path.exists(task.get_target_path())

    def test_skips_existing_file_without_transfer(self, tmp_path):
        (tmp_path / "mongodb-linux-x86_64-3.2.6.tgz").write_bytes(b"old")
        transfer = Mock()
        task = FileDownloadTask(URL_326, tmp_path, transfer=transfer)

        assert task.validate() is False
        result = task.execute()

        assert result.state is TaskState.SKIPPED
        assert result.was_skipped
        transfer.assert_not_called()

    def test_force_downloads_existing_file(self, tmp_path):
        (tmp_path / "mongodb-linux-x86_64-3.2.6.tgz").write_bytes(b"old")
        transfer = FakeTransfer()
        task = FileDownloadTask(URL_326, tmp_path, force=True, transfer=transfer)

        assert task.execute().state is TaskState.SUCCEEDED
        assert (tmp_path / "mongodb-linux-x86_64-3.2.6.tgz").read_bytes() == b"archive"

    def test_failure_discards_partial_file(self, tmp_path):
        transfer = FakeTransfer(failing=[URL_326])
        task = FileDownloadTask(URL_326, tmp_path, transfer=transfer)

        result = task.execute()

        assert result.state is TaskState.FAILED
        assert isinstance(result.error, NetworkError)
        assert not os.path.exists(task.get_target_path())

    def test_terminal_state_is_final(self, tmp_path):
        transfer = FakeTransfer(failing=[URL_326])
        task = FileDownloadTask(URL_326, tmp_path, transfer=transfer)
        first = task.execute()
        second = task.execute()
        assert first is second
        assert transfer.calls == [URL_326]

    def test_cancelled_task_never_transfers(self, tmp_path):
        cancel_event = threading.Event()
        cancel_event.set()
        transfer = Mock()
        task = FileDownloadTask(
            URL_326, tmp_path, transfer=transfer, cancel_event=cancel_event
        )

        result = task.execute()

        assert result.state is TaskState.FAILED
        assert isinstance(result.error, DownloadCancelledError)
        transfer.assert_not_called()

    def test_mark_cancelled_keeps_terminal_state(self, tmp_path):
        (tmp_path / "mongodb-linux-x86_64-3.2.6.tgz").write_bytes(b"old")
        task = FileDownloadTask(URL_326, tmp_path, transfer=Mock())
        task.execute()
        assert task.mark_cancelled().state is TaskState.SKIPPED

    def test_unexpected_transfer_error_fails_task(self, tmp_path):
        def _broken(url, destination):
            with open(destination, "wb") as f:
                f.write(b"partial")
            raise TypeError("unexpected keyword")

        task = FileDownloadTask(URL_326, tmp_path, transfer=_broken)

        result = task.execute()

        assert result.state is TaskState.FAILED
        assert isinstance(result.error, TypeError)
        assert not os.path.exists(task.get_target_path())

    def test_failed_forced_download_keeps_untouched_file(self, tmp_path):
        existing = tmp_path / "mongodb-linux-x86_64-3.2.6.tgz"
        existing.write_bytes(b"old")
        transfer = Mock(side_effect=NetworkError("connection reset", url=URL_326))
        task = FileDownloadTask(URL_326, tmp_path, force=True, transfer=transfer)

        assert task.execute().state is TaskState.FAILED
        assert existing.read_bytes() == b"old"

    def test_mark_failed(self, tmp_path):
        task = FileDownloadTask(URL_326, tmp_path)
        error = RuntimeError("worker crashed")
        result = task.mark_failed(error)
        assert result.state is TaskState.FAILED
        assert result.error is error


class TestFetchOrchestrator:
    def test_mixed_outcomes_report_every_failure(self, feed, tmp_path):
        transfer = FakeTransfer(failing=[URL_4013])
        orchestrator = FetchOrchestrator(feed, max_workers=2, transfer=transfer)

        with pytest.raises(AggregateError) as exc_info:
            orchestrator.run(
                ["3.2.6", "9.9.9", "4.0.13"], tmp_path, "base", "x86_64", "linux"
            )

        error = exc_info.value
        assert len(error) == 2
        assert "(2 errors)" in str(error)
        assert sorted(type(e).__name__ for e in error) == [
            "NetworkError",
            "ReleaseResolutionError",
        ]
        assert (tmp_path / "mongodb-linux-x86_64-3.2.6.tgz").read_bytes() == b"archive"
        assert not (tmp_path / "mongodb-linux-x86_64-4.0.13.tgz").exists()

        states = {r.url: r.state for r in orchestrator.results}
        assert states == {URL_326: TaskState.SUCCEEDED, URL_4013: TaskState.FAILED}

    def test_success_returns_results(self, feed, tmp_path):
        transfer = FakeTransfer()
        orchestrator = FetchOrchestrator(feed, max_workers=4, transfer=transfer)

        results = orchestrator.run(
            ["3.2.6", "4.0.13", "3.2"], tmp_path, "base", "x86_64", "linux"
        )

        assert len(results) == 3
        assert all(isinstance(r, DownloadResult) and r.success for r in results)
        assert sorted(transfer.calls) == sorted(
            [
                URL_326,
                URL_4013,
                "https://fastdl.mongodb.org/linux/mongodb-linux-x86_64-3.2.22.tgz",
            ]
        )

    def test_existing_file_is_skipped_without_network(self, feed, tmp_path):
        (tmp_path / "mongodb-linux-x86_64-3.2.6.tgz").write_bytes(b"old")
        transfer = Mock()
        orchestrator = FetchOrchestrator(feed, max_workers=1, transfer=transfer)

        (result,) = orchestrator.run(["3.2.6"], tmp_path, "base", "x86_64", "linux")

        assert result.state is TaskState.SKIPPED
        transfer.assert_not_called()
        assert (tmp_path / "mongodb-linux-x86_64-3.2.6.tgz").read_bytes() == b"old"

    def test_force_redownloads(self, feed, tmp_path):
        (tmp_path / "mongodb-linux-x86_64-3.2.6.tgz").write_bytes(b"old")
        transfer = FakeTransfer()
        orchestrator = FetchOrchestrator(feed, max_workers=1, transfer=transfer)

        (result,) = orchestrator.run(
            ["3.2.6"], tmp_path, "base", "x86_64", "linux", force=True
        )

        assert result.state is TaskState.SUCCEEDED
        assert transfer.calls == [URL_326]

    def test_resolution_errors_only(self, feed, tmp_path):
        orchestrator = FetchOrchestrator(feed, max_workers=1, transfer=FakeTransfer())
        with pytest.raises(AggregateError) as exc_info:
            orchestrator.run(["1.0.0", "2.0.0"], tmp_path, "base", "x86_64", "linux")
        assert len(exc_info.value) == 2
        assert all(isinstance(e, ReleaseResolutionError) for e in exc_info.value)
        assert orchestrator.results == []

    def test_populates_feed(self, feed_file, tmp_path):
        feed = ArtifactsFeed(source=str(feed_file))
        orchestrator = FetchOrchestrator(feed, max_workers=1, transfer=FakeTransfer())
        orchestrator.run(["3.2.6"], tmp_path, "base", "x86_64", "linux")
        assert feed.populated

    def test_submission_failures_are_recorded_per_url(self, feed, tmp_path):
        class ShutDownExecutor(ThreadPoolExecutor):
            def submit(self, *args, **kwargs):
                raise RuntimeError("cannot schedule new futures after shutdown")

        transfer = FakeTransfer()
        orchestrator = FetchOrchestrator(feed, max_workers=1, transfer=transfer)
        with patch(
            "mongofetch.download.orchestrator.ThreadPoolExecutor", ShutDownExecutor
        ):
            with pytest.raises(AggregateError) as exc_info:
                orchestrator.run(
                    ["3.2.6", "4.0.13"], tmp_path, "base", "x86_64", "linux"
                )

        assert len(exc_info.value) == 2
        assert all(isinstance(e, RuntimeError) for e in exc_info.value)
        assert transfer.calls == []

    def test_cancelled_before_run(self, feed, tmp_path):
        cancel_event = threading.Event()
        cancel_event.set()
        transfer = FakeTransfer()
        orchestrator = FetchOrchestrator(feed, max_workers=1, transfer=transfer)

        with pytest.raises(AggregateError) as exc_info:
            orchestrator.run(
                ["3.2.6", "4.0.13"],
                tmp_path,
                "base",
                "x86_64",
                "linux",
                cancel_event=cancel_event,
            )

        assert all(isinstance(e, DownloadCancelledError) for e in exc_info.value)
        assert transfer.calls == []

    def test_no_new_task_starts_after_cancel(self, feed, tmp_path):
        cancel_event = threading.Event()
        transfer = FakeTransfer()

        def _cancel_after_first(url, destination):
            transfer(url, destination)
            cancel_event.set()

        orchestrator = FetchOrchestrator(
            feed, max_workers=1, transfer=_cancel_after_first
        )

        with pytest.raises(AggregateError) as exc_info:
            orchestrator.run(
                ["3.2.6", "4.0.13", "3.2"],
                tmp_path,
                "base",
                "x86_64",
                "linux",
                cancel_event=cancel_event,
            )

        assert len(transfer.calls) == 1
        assert all(isinstance(e, DownloadCancelledError) for e in exc_info.value)
        states = [r.state for r in orchestrator.results]
        assert states.count(TaskState.SUCCEEDED) == 1
        assert states.count(TaskState.FAILED) == len(states) - 1

    def test_default_pool_size_is_cpu_count(self, feed):
        with patch("mongofetch.download.orchestrator.os.cpu_count", return_value=6):
            assert FetchOrchestrator(feed).max_workers == 6

    def test_rejects_empty_pool(self, feed):
        with pytest.raises(ValueError):
            FetchOrchestrator(feed, max_workers=0)

    def test_default_transfer_is_bound_to_cancel_signal(self, feed):
        cancel_event = threading.Event()
        transfer = FetchOrchestrator(feed)._transfer_for(cancel_event)
        assert isinstance(transfer, functools.partial)
        assert transfer.func is download_to_file
        assert transfer.keywords == {"cancel_event": cancel_event}

    def test_every_transfer_failure_is_aggregated(self, feed, tmp_path):
        def _transfer(url, destination):
            with open(destination, "wb") as f:
                f.write(b"partial")
            if url == URL_326:
                raise TypeError("unexpected keyword")
            raise NetworkError("connection reset", url=url)

        orchestrator = FetchOrchestrator(feed, max_workers=2, transfer=_transfer)

        with pytest.raises(AggregateError) as exc_info:
            orchestrator.run(["3.2.6", "4.0.13"], tmp_path, "base", "x86_64", "linux")

        assert sorted(type(e).__name__ for e in exc_info.value) == [
            "NetworkError",
            "TypeError",
        ]
        assert list(tmp_path.iterdir()) == []

    def test_crashed_job_is_recorded(self, feed, tmp_path):
        orchestrator = FetchOrchestrator(feed, max_workers=2, transfer=FakeTransfer())
        with patch.object(
            FileDownloadTask, "execute", side_effect=RuntimeError("worker crashed")
        ):
            with pytest.raises(AggregateError) as exc_info:
                orchestrator.run(
                    ["3.2.6", "4.0.13"], tmp_path, "base", "x86_64", "linux"
                )

        assert len(exc_info.value) == 2
        assert all(str(e) == "worker crashed" for e in exc_info.value)
        assert [r.state for r in orchestrator.results] == [TaskState.FAILED] * 2

    def test_interrupt_stops_queued_downloads(self, feed, tmp_path):
        started = []

        def _slow_transfer(url, destination):
            started.append(url)
            time.sleep(0.3)
            with open(destination, "wb") as f:
                f.write(b"archive")

        cancel_event = threading.Event()
        orchestrator = FetchOrchestrator(
            feed, max_workers=1, transfer=_slow_transfer
        )

        with patch(
            "mongofetch.download.orchestrator.wait", side_effect=KeyboardInterrupt
        ):
            with pytest.raises(KeyboardInterrupt):
                orchestrator.run(
                    ["3.2.6", "4.0.13", "3.2"],
                    tmp_path,
                    "base",
                    "x86_64",
                    "linux",
                    cancel_event=cancel_event,
                )

        assert cancel_event.is_set()
        assert len(started) <= 1

    def test_resolver_failure_propagates(self, feed, tmp_path):
        transfer = FakeTransfer()
        orchestrator = FetchOrchestrator(feed, max_workers=1, transfer=transfer)

        with patch.object(
            feed, "resolve_release", side_effect=RuntimeError("index corrupted")
        ):
            with pytest.raises(RuntimeError, match="index corrupted"):
                orchestrator.run(
                    ["3.2.6", "4.0.13"], tmp_path, "base", "x86_64", "linux"
                )

        assert transfer.calls == []
