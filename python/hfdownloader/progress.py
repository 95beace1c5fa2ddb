"""Progress reporting for non-TTY output (container logs, CI).

Redrawn bars turn into noise when stderr is a file or a pipe, so the tracker
writes one ``[Downloader]`` line per interval instead.
"""
import sys

from huggingface_hub.utils import tqdm as hf_tqdm

LOG_INTERVAL = 10.0
_MB = 1024 * 1024


class LoggingProgressBar(hf_tqdm):
    """Drop-in tqdm class for snapshot_download that logs instead of drawing.

    tqdm only refreshes after ``mininterval`` seconds, so display() runs at
    most once per interval plus once at start and close.
    """

    def __init__(self, *args, **kwargs):
        kwargs.setdefault("mininterval", LOG_INTERVAL)
        super().__init__(*args, **kwargs)

    def describe(self) -> str:
        desc = self.desc or "Downloading"
        percent = int(self.n * 100 / self.total) if self.total else None
        if self.unit == "B" and self.unit_scale:
            if percent is None:
                return f"{desc}: {self.n / _MB:.1f} MB downloaded"
            return f"{desc}: {self.n / _MB:.1f} / {self.total / _MB:.1f} MB ({percent}%)"
        if percent is None:
            return f"{desc}: {self.n} {self.unit}"
        return f"{desc}: {self.n}/{self.total} ({percent}%)"

    def display(self, msg=None, pos=None):
        print(f"[Downloader] {self.describe()}", file=sys.stderr)
        return True
