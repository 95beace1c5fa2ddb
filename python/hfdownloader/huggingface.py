import fnmatch
import glob
import hashlib
import os
import shutil
import sys
import tempfile
import threading
from typing import Any, List, Optional, Tuple

from .base import Engine
from .entity import DownloadRequest, StorageTarget
from .utils import ensure_dir, repo_folder_name

_HASH_CHUNK = 8 * 1024 * 1024


def split_filters(source: str) -> Tuple[str, List[str]]:
    """Split ``org/model:q4_0,q5_k`` into the repo id and its file filters."""
    repo_id, _, spec = source.partition(":")
    return repo_id, [f.strip() for f in spec.split(",") if f.strip()]


def select_files(entries: List[Any], prefix: str, filters: List[str]) -> List[Any]:
    """Pick repo files under prefix whose path contains any filter (case-insensitive)."""
    prefix = prefix.strip("/")
    selected = []
    for entry in entries:
        # folders carry no size
        if not hasattr(entry, "size"):
            continue
        path = entry.path
        if prefix and not fnmatch.fnmatchcase(path, f"{glob.escape(prefix)}/*"):
            continue
        if filters and not any(f.lower() in os.path.basename(path).lower() for f in filters):
            continue
        selected.append(entry)
    return selected


def sha256_of(path: str) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def verify_files(local_dir: str, entries: List[Any]) -> int:
    """Check LFS files against the hub's sha256. Bad files are removed."""
    checked = 0
    for entry in entries:
        lfs = getattr(entry, "lfs", None)
        if lfs is None:
            continue
        local = os.path.join(local_dir, entry.path)
        digest = sha256_of(local)
        if digest != lfs.sha256:
            os.remove(local)
            raise ValueError(f"sha256 mismatch for {entry.path}: expected {lfs.sha256}, got {digest}")
        checked += 1
    return checked


class HuggingFaceEngine(Engine):
    """Engine backed by huggingface_hub for downloads and boto3 for R2.

    Files are fetched into <storage>/<repo id with "/" as "_">; with
    one_folder_per_filter each filter gets its own <folder>_<filter>.
    """

    def _ensure_hf(self):
        try:
            import huggingface_hub as _hf  # type: ignore

            return _hf
        except Exception as e:
            raise RuntimeError(
                "huggingface_hub is required for HuggingFaceEngine. Install with `pip install huggingface-hub`"
            ) from e

    def _groups(self, repo_id: str, filters: List[str], per_filter: bool) -> List[Tuple[str, List[str]]]:
        folder = repo_folder_name(repo_id)
        if filters and per_filter:
            return [(f"{folder}_{f}", [f]) for f in filters]
        return [(folder, filters)]

    def download(self, request: DownloadRequest) -> None:
        hf = self._ensure_hf()
        repo_id, filters = split_filters(request.source)
        repo_type = "dataset" if request.is_dataset else "model"

        tqdm_class = None
        if request.silent:
            hf.utils.disable_progress_bars()
        elif not sys.stderr.isatty():
            from .progress import LoggingProgressBar

            tqdm_class = LoggingProgressBar

        api = hf.HfApi()
        entries = list(api.list_repo_tree(repo_id, repo_type=repo_type, revision=request.branch,
                                          recursive=True, token=request.token))

        tmp_root: Optional[str] = None
        root = request.storage
        if request.skip_local and request.target is not None:
            tmp_root = tempfile.mkdtemp(prefix="hfdownloader-")
            root = tmp_root

        try:
            for folder_name, group_filters in self._groups(repo_id, filters, request.one_folder_per_filter):
                self._download_group(hf, request, repo_id, repo_type, entries,
                                     root, folder_name, group_filters, tqdm_class)
        finally:
            if tmp_root:
                shutil.rmtree(tmp_root, ignore_errors=True)

    def _download_group(self, hf, request: DownloadRequest, repo_id: str, repo_type: str,
                        entries: List[Any], root: str, folder_name: str, filters: List[str],
                        tqdm_class: Any = None) -> None:
        selected = select_files(entries, request.prefix, filters)
        if not selected:
            raise RuntimeError(f"no files in {repo_id}@{request.branch} match prefix={request.prefix!r} filters={filters}")

        local_dir = os.path.join(root, folder_name)
        ensure_dir(local_dir)
        print(f"[Downloader] Starting download from HuggingFace", file=sys.stderr)
        print(f"[Downloader]   Repository: {repo_id} ({repo_type})", file=sys.stderr)
        print(f"[Downloader]   Revision: {request.branch}", file=sys.stderr)
        print(f"[Downloader]   Destination: {local_dir}", file=sys.stderr)
        print(f"[Downloader]   Files: {len(selected)}", file=sys.stderr)

        hf.snapshot_download(
            repo_id=repo_id,
            repo_type=repo_type,
            revision=request.branch,
            local_dir=local_dir,
            token=request.token,
            allow_patterns=[glob.escape(e.path) for e in selected],
            max_workers=request.max_workers,
            tqdm_class=tqdm_class,
        )

        if not request.skip_sha:
            checked = verify_files(local_dir, selected)
            print(f"[Downloader] Verified sha256 of {checked} LFS files", file=sys.stderr)

        if request.target is not None:
            from . import r2

            r2.upload_folder(request.target, local_dir, folder_name, request.num_connections)

        print(f"[Downloader] Download completed: {local_dir}", file=sys.stderr)

    def cleanup_corrupted(self, cancel: threading.Event, target: StorageTarget,
                          prefix: str, connections: int) -> List[str]:
        from . import r2

        return r2.cleanup_corrupted_files(cancel, target, prefix, connections)
