"""
Artifact transfer to disk.

download_to_file() is the transfer collaborator used by download tasks. It
streams a single URL to a temporary sibling of the destination and atomically
moves it into place. It never retries: a failed transfer is reported to the
caller, which records it against the task.
"""

import os
import threading
import time
from typing import Optional

import requests

from mongofetch.constants import DEFAULT_CHUNK_SIZE, DEFAULT_REQUEST_TIMEOUT
from mongofetch.exceptions import (
    DownloadCancelledError,
    DownloadError,
    HTTPError,
    NetworkError,
)
from mongofetch.log_utils import logger


def remove_file(path: str) -> bool:
    """
    Remove a file if it exists.

    Returns:
        bool: True if the file is gone afterwards, False if removal failed.
    """
    try:
        os.remove(path)
    except FileNotFoundError:
        return True
    except OSError as e:
        logger.error(f"Error removing file {path}: {e}")
        return False
    return True


def _temp_path_for(destination: str) -> str:
    return f"{destination}.tmp.{os.getpid()}.{int(time.time() * 1000)}"


def download_to_file(
    url: str,
    destination: str,
    cancel_event: Optional[threading.Event] = None,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
    session: Optional[requests.Session] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> None:
    """
    Stream a remote file to `destination`.

    Parameters:
        url (str): HTTP(S) URL to download.
        destination (str): Final path of the file.
        cancel_event (Optional[threading.Event]): Checked before the request
            and between chunks; when set the transfer stops.
        timeout (float): Connect/read timeout in seconds.
        session (Optional[requests.Session]): Session to use; a plain session
            is created and closed when omitted.
        chunk_size (int): Bytes per read.

    Raises:
        DownloadCancelledError: If `cancel_event` was set.
        HTTPError: If the server answered with an error status.
        NetworkError: For connection, timeout and other request failures.
        DownloadError: If writing the file failed.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise DownloadCancelledError("download cancelled before start", url=url)

    temp_path = _temp_path_for(destination)
    own_session = session is None
    if session is None:
        session = requests.Session()
    response = None
    completed = False
    try:
        logger.debug(f"Downloading {url} to temp path {temp_path}")
        start_time = time.time()
        response = session.get(url, stream=True, timeout=timeout)
        response.raise_for_status()

        parent_dir = os.path.dirname(destination)
        if parent_dir:
            os.makedirs(parent_dir, exist_ok=True)

        downloaded_bytes = 0
        with open(temp_path, "wb") as file:
            for chunk in response.iter_content(chunk_size=chunk_size):
                if cancel_event is not None and cancel_event.is_set():
                    raise DownloadCancelledError(
                        "download cancelled", url=url, details=destination
                    )
                if chunk:
                    file.write(chunk)
                    downloaded_bytes += len(chunk)

        os.replace(temp_path, destination)
        completed = True
        elapsed = time.time() - start_time
        logger.debug(f"Downloaded {downloaded_bytes} bytes from {url} in {elapsed:.2f}s")
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        raise HTTPError(
            f"HTTP error downloading {url}", status_code=status, url=url, details=str(e)
        ) from e
    except requests.RequestException as e:
        raise NetworkError(
            f"network error downloading {url}", url=url, details=str(e)
        ) from e
    except OSError as e:
        raise DownloadError(
            f"could not write {destination}", url=url, details=str(e)
        ) from e
    finally:
        if response is not None:
            response.close()
        if own_session:
            session.close()
        if not completed:
            remove_file(temp_path)
