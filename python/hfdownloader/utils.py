import os
from typing import Mapping, Optional


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def env_flag(environ: Mapping[str, str], key: str) -> bool:
    """Only "1" and "true" switch a flag variable on."""
    return environ.get(key, "") in ("1", "true")


def first_non_empty(*values: Optional[str]) -> str:
    for v in values:
        if v:
            return v
    return ""


def mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 8:
        return "*" * len(value)
    return value[:4] + "*" * (len(value) - 8) + value[-4:]


def repo_folder_name(repo_id: str) -> str:
    return repo_id.replace("/", "_")
