"""
Download Pipeline Orchestrator

This module implements the orchestration layer that resolves requested
releases to archive URLs and fetches them with a pool of worker threads.
"""

import functools
import os
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import unquote, urlparse

from mongofetch.exceptions import (
    AggregateError,
    DownloadCancelledError,
    ValidationError,
)
from mongofetch.log_utils import logger

from .builds import ArchLike, EditionLike
from .feed import ArtifactsFeed, drain
from .files import download_to_file, remove_file
from .interfaces import DownloadResult, DownloadTask, Pathish, TaskState

Transfer = Callable[[str, str], None]

# Seconds between checks of the cancellation signal while waiting on workers
CANCEL_POLL_INTERVAL = 0.2


class FileDownloadTask(DownloadTask):
    """
    Download one URL into a directory, named after the last path segment.

    The task is skipped when the file already exists (unless forced). A failed
    transfer records the error and removes the destination if the transfer
    changed it. Once the task reaches a terminal state, further calls to
    execute() return the same result.
    """

    def __init__(
        self,
        url: str,
        directory: Pathish,
        force: bool = False,
        transfer: Optional[Transfer] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError(
                f"not an http(s) URL: {url}", field="url", value=url
            )

        filename = unquote(os.path.basename(parsed.path))
        if not filename:
            raise ValidationError(
                f"URL {url} does not name a file", field="url", value=url
            )

        directory = str(directory)
        if os.path.exists(directory) and not os.path.isdir(directory):
            raise ValidationError(
                f"download directory {directory} is not a directory",
                field="directory",
                value=directory,
            )

        self.url = url
        self.directory = directory
        self.force = force
        self.transfer: Transfer = transfer or download_to_file
        self.cancel_event = cancel_event
        self.destination = os.path.join(directory, filename)
        self.result = DownloadResult(url=url, destination=self.destination)

    @property
    def state(self) -> TaskState:
        return self.result.state

    def get_target_path(self) -> str:
        return self.destination

    def validate(self) -> bool:
        """Return True when the file must be fetched, False when it can be skipped."""
        if self.force:
            return True
        return not os.path.exists(self.destination)

    def _destination_stamp(self) -> Optional[Tuple[int, int, int]]:
        try:
            st = os.stat(self.destination)
        except OSError:
            return None
        return (st.st_ino, st.st_size, st.st_mtime_ns)

    def cleanup(self) -> None:
        remove_file(self.destination)

    def _finish(
        self, state: TaskState, error: Optional[BaseException] = None
    ) -> DownloadResult:
        self.result.state = state
        self.result.error = error
        return self.result

    def mark_failed(self, error: BaseException) -> DownloadResult:
        if self.state.is_terminal:
            return self.result
        return self._finish(TaskState.FAILED, error)

    def mark_cancelled(self) -> DownloadResult:
        """Fail a task that never started because the run was cancelled."""
        if self.state.is_terminal:
            return self.result
        return self._finish(
            TaskState.FAILED,
            DownloadCancelledError("download cancelled", url=self.url),
        )

    def execute(self) -> DownloadResult:
        if self.state.is_terminal:
            return self.result

        if self.cancel_event is not None and self.cancel_event.is_set():
            return self.mark_cancelled()

        if not self.validate():
            logger.info(f"Skipped: {os.path.basename(self.destination)} (already present)")
            return self._finish(TaskState.SKIPPED)

        logger.info(f"Downloading {self.url}")
        before = self._destination_stamp()
        try:
            os.makedirs(self.directory, exist_ok=True)
            self.transfer(self.url, self.destination)
        except Exception as e:
            logger.error(f"Error downloading {self.url}: {e}")
            # A file this transfer did not touch is left in place
            after = self._destination_stamp()
            if after is not None and after != before:
                self.cleanup()
            return self._finish(TaskState.FAILED, e)

        logger.info(f"Downloaded: {os.path.basename(self.destination)}")
        return self._finish(TaskState.SUCCEEDED)


class FetchOrchestrator:
    """
    Fetches archives for a set of releases into a directory.

    Each run resolves releases through the feed, submits one FileDownloadTask
    per URL to a fresh thread pool, waits for every task to finish, and raises
    a single AggregateError covering every resolution, submission and
    download failure.
    """

    def __init__(
        self,
        feed: ArtifactsFeed,
        max_workers: Optional[int] = None,
        transfer: Optional[Transfer] = None,
    ) -> None:
        """
        Parameters:
            feed (ArtifactsFeed): Release feed used to resolve URLs; populated
                on first use.
            max_workers (Optional[int]): Pool size; defaults to the number of
                CPUs on the host.
            transfer (Optional[Transfer]): Callable fetching one URL to a path;
                defaults to download_to_file bound to the run's cancel signal.
        """
        if max_workers is not None and max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.feed = feed
        self.max_workers = max_workers or os.cpu_count() or 1
        self.transfer = transfer
        self.results: List[DownloadResult] = []

    def _transfer_for(self, cancel_event: threading.Event) -> Transfer:
        if self.transfer is not None:
            return self.transfer
        return functools.partial(download_to_file, cancel_event=cancel_event)

    def run(
        self,
        releases: Sequence[str],
        root_path: Pathish,
        edition: EditionLike,
        arch: ArchLike,
        target: str,
        force: bool = False,
        debug: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> List[DownloadResult]:
        """
        Download the archives of `releases` for one build variant into `root_path`.

        Parameters:
            releases: Exact versions, series ("3.2") or "latest".
            root_path: Directory receiving the archives.
            edition, arch, target: The build variant.
            force (bool): Download even when the file already exists.
            debug (bool): Fetch debug symbols instead of the binary archive.
            cancel_event (Optional[threading.Event]): When set, tasks not yet
                started are cancelled and in-flight transfers are asked to stop.

        Returns:
            List[DownloadResult]: One result per submitted URL, when nothing failed.

        Raises:
            AggregateError: Enumerating every failure when any release could
                not be resolved or downloaded. `self.results` still holds the
                per-task results.
            FeedError: If the feed itself could not be loaded.
            Exception: Whatever stopped release resolution outside the
                per-release errors; the run is cancelled before it propagates.
        """
        if cancel_event is None:
            cancel_event = threading.Event()
        if not self.feed.populated:
            self.feed.populate()

        errors: List[BaseException] = []
        results: List[DownloadResult] = []
        tasks: Dict["Future[DownloadResult]", FileDownloadTask] = {}
        transfer = self._transfer_for(cancel_event)

        url_queue, error_queue = self.feed.get_archive_urls(
            releases, edition, arch, target, debug=debug
        )

        executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="mongofetch-download"
        )
        try:
            for url in drain(url_queue):
                if cancel_event.is_set():
                    errors.append(DownloadCancelledError("download cancelled", url=url))
                    continue
                try:
                    task = FileDownloadTask(
                        url,
                        root_path,
                        force=force,
                        transfer=transfer,
                        cancel_event=cancel_event,
                    )
                    future = executor.submit(task.execute)
                except (ValidationError, RuntimeError) as e:
                    logger.error(f"Could not schedule download of {url}: {e}")
                    errors.append(e)
                    continue
                tasks[future] = task

            resolver_failure: Optional[BaseException] = None
            for batch in drain(error_queue):
                if isinstance(batch, BaseException):
                    resolver_failure = batch
                else:
                    errors.extend(batch)
            if resolver_failure is not None:
                raise resolver_failure

            logger.info(f"Waiting for {len(tasks)} download jobs")
            pending = set(tasks)
            while pending:
                _, pending = wait(
                    pending, timeout=CANCEL_POLL_INTERVAL, return_when=FIRST_COMPLETED
                )
                if cancel_event.is_set():
                    for future in pending:
                        future.cancel()
        except BaseException:
            # Interrupted or aborted: queued tasks must not start
            cancel_event.set()
            raise
        finally:
            executor.shutdown(wait=True, cancel_futures=cancel_event.is_set())

        for future, task in tasks.items():
            if future.cancelled():
                result = task.mark_cancelled()
            else:
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"Download job for {task.url} failed: {e}")
                    result = task.mark_failed(e)
            results.append(result)
            if result.state is TaskState.FAILED and result.error is not None:
                errors.append(result.error)

        self.results = results
        succeeded = sum(1 for r in results if r.state is TaskState.SUCCEEDED)
        skipped = sum(1 for r in results if r.state is TaskState.SKIPPED)
        logger.info(
            f"Download run complete: {succeeded} downloaded, {skipped} skipped, "
            f"{len(errors)} failed"
        )

        if errors:
            raise AggregateError("problem detected in download jobs", errors)
        return results
