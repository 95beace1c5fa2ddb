"""Configuration resolution.

Sources, in increasing precedence:

1. compiled-in defaults (``Config()``)
2. ``~/.config/hfdownloader.json``
3. ``HFDOWNLOADER_JUST_DOWNLOAD`` forcing the storage path to ``./``
4. command line flags

The auth token has its own chain (explicit > HF_TOKEN > HUGGING_FACE_HUB_TOKEN)
resolved once by :func:`resolve_token`.
"""
import json
import logging
import os
from dataclasses import asdict, replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .entity import Config
from .errors import ConfigError, UsageError
from .utils import env_flag

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "hfdownloader.json"
JUST_DOWNLOAD_ENV = "HFDOWNLOADER_JUST_DOWNLOAD"
TOKEN_ENV = "HF_TOKEN"
DEPRECATED_TOKEN_ENV = "HUGGING_FACE_HUB_TOKEN"
DEPRECATION_NOTICE = (
    "DeprecationWarning: The environment variable 'HUGGING_FACE_HUB_TOKEN' is deprecated and will be "
    "removed in a future version. Please use 'HF_TOKEN' instead."
)
RESERVED_FIELDS = ("r2_account_id", "r2_access_key", "r2_secret_key")
_LOWER_BOUNDS: Tuple[Tuple[str, int], ...] = (
    ("num_connections", 1),
    ("max_workers", 1),
    ("max_retries", 1),
    ("retry_interval", 0),
)


def default_config_path(home: Optional[str] = None) -> str:
    home = home or os.path.expanduser("~")
    return os.path.join(home, ".config", CONFIG_FILE_NAME)


def _check_types(values: Dict[str, Any]) -> Dict[str, Any]:
    defaults = asdict(Config())
    checked = {}
    for key, value in values.items():
        if key not in defaults:
            logger.debug("ignoring unknown config key %s", key)
            continue
        # null keeps the default
        if value is None:
            continue
        expected = type(defaults[key])
        # bool is a subclass of int, json true must not pass as a number
        if expected is bool:
            ok = isinstance(value, bool)
        else:
            ok = isinstance(value, expected) and not isinstance(value, bool)
        if not ok:
            raise ConfigError(
                f"config key {key!r} must be of type {expected.__name__}, got {type(value).__name__}"
            )
        checked[key] = value
    return checked


def load_file_values(path: str) -> Dict[str, Any]:
    """Read the JSON config file. A missing file yields no overrides."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"config file {path} must contain a JSON object")
    return _check_types(raw)


def load_config(path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    """Defaults, then the config file, then the just-download environment override."""
    environ = os.environ if environ is None else environ
    path = path or default_config_path()

    config = replace(Config(), **load_file_values(path))
    if env_flag(environ, JUST_DOWNLOAD_ENV):
        config = replace(config, storage="./")
    return config


def generate_config_file(path: Optional[str] = None) -> str:
    """Write the default configuration, overwriting any existing file."""
    path = path or default_config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(asdict(Config()), f, indent=2)
        f.write("\n")
    return path


def resolve_token(explicit: str, environ: Mapping[str, str],
                  warn: Callable[[str], None] = print) -> str:
    if explicit:
        return explicit
    token = environ.get(TOKEN_ENV, "")
    if token:
        return token
    token = environ.get(DEPRECATED_TOKEN_ENV, "")
    if token:
        warn(DEPRECATION_NOTICE)
    return token


def resolve_config(flags: Dict[str, Any], positional: List[str], *,
                   environ: Optional[Mapping[str, str]] = None,
                   path: Optional[str] = None,
                   warn: Callable[[str], None] = print,
                   require_target: bool = True) -> Config:
    """Build the effective configuration.

    ``flags`` holds only the options given on the command line, keyed by config
    field name; anything absent keeps the value from the file or the defaults.
    ``require_target`` is off for modes that never download, such as install.
    """
    environ = os.environ if environ is None else environ
    config = load_config(path, environ)

    unknown = set(flags) - set(Config.field_names())
    if unknown:
        raise UsageError(f"unknown options: {', '.join(sorted(unknown))}")
    config = replace(config, **flags)

    for name in RESERVED_FIELDS:
        if getattr(config, name):
            logger.warning("%s is reserved and ignored, R2 credentials are read from the environment", name)

    if config.just_download and require_target:
        if len(positional) != 1:
            raise UsageError("requires exactly one model name argument when using -j")
        config = replace(config, model_name=positional[0], dataset_name="", storage="./")

    config = replace(config, auth_token=resolve_token(config.auth_token, environ, warn))
    if require_target:
        validate(config)
    return config


def validate(config: Config) -> None:
    if not config.model_name and not config.dataset_name:
        raise UsageError("You must set either modelName or datasetName.")
    if config.model_name and config.dataset_name:
        raise UsageError("modelName and datasetName are mutually exclusive.")
    if config.requires_auth and not config.auth_token:
        raise ConfigError(f"an auth token is required, set --token or {TOKEN_ENV}")
    if config.skip_local and not config.use_r2:
        raise UsageError("--skip-local requires --r2")

    for name, minimum in _LOWER_BOUNDS:
        if getattr(config, name) < minimum:
            raise ConfigError(f"{name} must be at least {minimum}, got {getattr(config, name)}")

