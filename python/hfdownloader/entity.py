from dataclasses import dataclass, field, fields
from typing import Optional, List


@dataclass(frozen=True)
class Config:
    """Effective configuration for one invocation.

    Field names double as the keys of the JSON configuration file. Instances are
    built once by the resolver and never mutated afterwards.
    """
    num_connections: int = 5
    requires_auth: bool = False
    auth_token: str = ""
    model_name: str = ""
    dataset_name: str = ""
    branch: str = "main"
    storage: str = "./"
    one_folder_per_filter: bool = False
    skip_sha: bool = False
    max_retries: int = 3
    retry_interval: int = 5
    just_download: bool = False
    silent_mode: bool = False
    use_r2: bool = False
    r2_bucket_name: str = ""
    # reserved: credentials are read from the environment only
    r2_account_id: str = ""
    r2_access_key: str = ""
    r2_secret_key: str = ""
    skip_local: bool = False
    r2_subfolder: str = "hf_dataset"
    hf_prefix: str = ""
    max_workers: int = 16

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    @property
    def is_dataset(self) -> bool:
        return not self.model_name and bool(self.dataset_name)

    @property
    def target(self) -> str:
        """Model or dataset identifier this invocation works on."""
        return self.model_name or self.dataset_name


@dataclass(frozen=True)
class StorageTarget:
    """Remote object-storage destination (S3 compatible bucket on R2)."""
    account_id: str
    access_key_id: str
    access_key_secret: str
    bucket_name: str
    region: str = "auto"
    subfolder: str = "hf_dataset"

    @property
    def endpoint_url(self) -> str:
        return f"https://{self.account_id}.r2.cloudflarestorage.com"


@dataclass(frozen=True)
class DownloadRequest:
    """Parameters handed to a download engine for a single attempt."""
    # model or dataset id, optionally followed by ":filter1,filter2"
    source: str
    # local destination root
    storage: str = "./"
    is_dataset: bool = False
    branch: str = "main"
    one_folder_per_filter: bool = False
    skip_sha: bool = False
    num_connections: int = 5
    max_workers: int = 16
    token: Optional[str] = None
    silent: bool = False
    target: Optional[StorageTarget] = None
    skip_local: bool = False
    prefix: str = ""


@dataclass
class InstallPlan:
    source: str
    destination: str
    # discovered while executing, never known up front
    needs_elevation: bool = False
    steps: List[str] = field(default_factory=list)
