"""hfdownloader

Command line front end that resolves configuration, assembles the optional R2
target and drives a download engine with bounded retries.
Run as module: python -m hfdownloader
"""

VERSION = "1.4.2"

from .config import resolve_config, resolve_token  # noqa: E402
from .dispatcher import get_engine  # noqa: E402
from .orchestrator import run_cleanup, run_download  # noqa: E402

__all__ = [
    "base",
    "config",
    "entity",
    "errors",
    "huggingface",
    "install",
    "orchestrator",
    "r2",
    "storage",
    "utils",
    "VERSION",
    "get_engine",
    "resolve_config",
    "resolve_token",
    "run_cleanup",
    "run_download",
]
