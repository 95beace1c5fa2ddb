import threading
from abc import ABC, abstractmethod
from typing import List

from .entity import DownloadRequest, StorageTarget


class Engine(ABC):
    """Abstract transfer engine driven by the orchestrator.

    Implementations own everything below the orchestration layer: manifest
    resolution, parallel transfers, hash checks and uploads.
    """

    @abstractmethod
    def download(self, request: DownloadRequest) -> None:
        """Download one model or dataset. Raises on failure.

        Args:
            request: fully resolved parameters for a single attempt; when
                request.target is set, files are also uploaded there
        """

        raise NotImplementedError()

    @abstractmethod
    def cleanup_corrupted(self, cancel: threading.Event, target: StorageTarget,
                          prefix: str, connections: int) -> List[str]:
        """Delete corrupted objects under prefix and return their keys.

        Args:
            cancel: set by the caller to stop scheduling more work
            target: bucket and credentials to scan
            prefix: key prefix, always ending in "/"
            connections: number of parallel requests
        """

        raise NotImplementedError()
