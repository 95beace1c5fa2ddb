"""Drive the engine: one cleanup pass, or a bounded retry loop of downloads.

Backoff is a fixed interval. Engines retry individual requests themselves,
this loop only recovers whole-operation failures.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from .base import Engine
from .entity import Config, DownloadRequest, StorageTarget
from .errors import CleanupError, DownloadError, UsageError
from .storage import cleanup_prefix

logger = logging.getLogger(__name__)


def build_request(config: Config, target: Optional[StorageTarget]) -> DownloadRequest:
    return DownloadRequest(
        source=config.target,
        storage=config.storage,
        is_dataset=config.is_dataset,
        branch=config.branch,
        one_folder_per_filter=config.one_folder_per_filter,
        skip_sha=config.skip_sha,
        num_connections=config.num_connections,
        max_workers=config.max_workers,
        token=config.auth_token or None,
        silent=config.silent_mode,
        target=target,
        skip_local=config.skip_local,
        prefix=config.hf_prefix,
    )


def run_download(engine: Engine, config: Config, target: Optional[StorageTarget] = None, *,
                 sleep: Callable[[float], None] = time.sleep,
                 out: Callable[[str], None] = print) -> int:
    """Call engine.download until it succeeds or max_retries attempts failed.

    Returns the number of attempts used.
    """
    request = build_request(config, target)
    last_error: Optional[Exception] = None

    for attempt in range(config.max_retries):
        try:
            engine.download(request)
        except Exception as e:
            last_error = e
            out(f"Warning: attempt {attempt + 1} / {config.max_retries} failed, error: {e}")
            logger.debug("download attempt %d failed", attempt + 1, exc_info=True)
            # no wait after the last attempt, only before a next one
            if attempt + 1 < config.max_retries:
                sleep(config.retry_interval)
            continue
        out(f"\nDownload of {request.source} completed successfully")
        return attempt + 1

    raise DownloadError(
        f"failed to download {request.source} after {config.max_retries} attempts"
    ) from last_error


def run_cleanup(engine: Engine, config: Config, target: Optional[StorageTarget], *,
                cancel: Optional[threading.Event] = None,
                out: Callable[[str], None] = print) -> List[str]:
    """Single cleanup pass over the target's subfolder, never retried."""
    if target is None:
        raise UsageError("--cleanup-corrupted requires --r2")
    cancel = cancel or threading.Event()
    prefix = cleanup_prefix(target.subfolder)
    try:
        removed = engine.cleanup_corrupted(cancel, target, prefix, config.num_connections)
    except Exception as e:
        raise CleanupError(f"Failed to cleanup corrupted files: {e}") from e
    out(f"Cleanup completed, removed {len(removed)} corrupted file(s) under {target.bucket_name}/{prefix}")
    return removed
