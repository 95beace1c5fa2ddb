"""Engine lookup.

The CLI asks for an engine by backend name; lazy imports keep heavy client
libraries out of the import path of modes that never transfer anything.
"""
from .base import Engine

DEFAULT_BACKEND = "hugging-face"


def get_engine(backend: str = DEFAULT_BACKEND) -> Engine:
    if not backend:
        raise RuntimeError("backend must be provided to get_engine")

    backend = backend.lower()
    if backend == "hugging-face":
        from .huggingface import HuggingFaceEngine as E

        return E()

    raise RuntimeError(f"unsupported backend: {backend}")
