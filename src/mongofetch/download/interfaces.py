"""
Core Interfaces for the Mongofetch Download Subsystem

This module defines the task lifecycle shared by download tasks and the
structured result they report to the orchestrator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

Pathish = Union[str, Path]


class TaskState(str, Enum):
    """Lifecycle state of a download task. Every state but PENDING is terminal."""

    PENDING = "pending"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not TaskState.PENDING

    def __str__(self) -> str:
        return self.value


@dataclass
class DownloadResult:
    """Result of a download task."""

    url: str
    """The URL the task was created for"""

    destination: Optional[Pathish] = None
    """Path of the file on disk (kept when skipped or succeeded)"""

    state: TaskState = TaskState.PENDING
    """Terminal state the task reached"""

    error: Optional[BaseException] = None
    """The error recorded against the URL (if failed)"""

    @property
    def success(self) -> bool:
        return self.state in (TaskState.SUCCEEDED, TaskState.SKIPPED)

    @property
    def was_skipped(self) -> bool:
        return self.state is TaskState.SKIPPED


class DownloadTask(ABC):
    """
    Abstract base class for download tasks.

    A DownloadTask represents a single download with a complete lifecycle:
    validation, execution, and cleanup. A task runs at most once.
    """

    @abstractmethod
    def validate(self) -> bool:
        """
        Determine whether the download is still needed.

        Returns:
            bool: `True` if the transfer should run, `False` if the task can be
            skipped.
        """

    @abstractmethod
    def execute(self) -> DownloadResult:
        """
        Perform the download and return a result describing its outcome.

        Returns:
            DownloadResult: The terminal state and any recorded error.
        """

    @abstractmethod
    def get_target_path(self) -> Pathish:
        """
        Provide the filesystem path where the downloaded artifact is saved.

        Returns:
            Pathish: The intended file path for the download.
        """

    @abstractmethod
    def cleanup(self) -> None:
        """Discard any partial output left by a failed transfer."""
