"""Assemble the remote storage target from configuration and environment."""
import os
from typing import Mapping, Optional

from .entity import Config, StorageTarget
from .errors import ConfigError
from .utils import first_non_empty

ACCOUNT_ID_ENV = "R2_ACCOUNT_ID"
ACCESS_KEY_ENV = "R2_WRITE_ACCESS_KEY_ID"
SECRET_KEY_ENV = "R2_WRITE_SECRET_ACCESS_KEY"
BUCKET_ENV = "R2_BUCKET_NAME"
DEFAULT_SUBFOLDER = "hf_dataset"
AUTO_REGION = "auto"


def build_storage_target(config: Config, environ: Optional[Mapping[str, str]] = None) -> Optional[StorageTarget]:
    """Return the R2 target, or None when remote storage is off.

    Credentials come from the environment only. The bucket falls back to
    R2_BUCKET_NAME and then to the account id, so it is never empty.
    """
    if not config.use_r2:
        return None
    environ = os.environ if environ is None else environ

    account_id = environ.get(ACCOUNT_ID_ENV, "")
    access_key = environ.get(ACCESS_KEY_ENV, "")
    secret_key = environ.get(SECRET_KEY_ENV, "")
    missing = [name for name, value in ((ACCOUNT_ID_ENV, account_id),
                                        (ACCESS_KEY_ENV, access_key),
                                        (SECRET_KEY_ENV, secret_key)) if not value]
    if missing:
        raise ConfigError(f"R2 credentials not found in environment variables: {', '.join(missing)}")

    return StorageTarget(
        account_id=account_id,
        access_key_id=access_key,
        access_key_secret=secret_key,
        bucket_name=first_non_empty(config.r2_bucket_name, environ.get(BUCKET_ENV), account_id),
        region=AUTO_REGION,
        subfolder=first_non_empty(config.r2_subfolder, DEFAULT_SUBFOLDER),
    )


def cleanup_prefix(subfolder: str) -> str:
    """Key prefix for a subfolder, so "data" never matches "data2/..."."""
    return subfolder if subfolder.endswith("/") else subfolder + "/"
