"""Cloudflare R2 helpers (S3 API): folder upload and corrupted parquet cleanup."""
import logging
import os
import sys
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Iterator, List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig

from .entity import StorageTarget

logger = logging.getLogger(__name__)

PARQUET_MAGIC = b"PAR1"
# magic at both ends plus the 4-byte footer length
MIN_PARQUET_SIZE = 12


def make_client(target: StorageTarget, connections: int = 10):
    return boto3.client(
        "s3",
        endpoint_url=target.endpoint_url,
        aws_access_key_id=target.access_key_id,
        aws_secret_access_key=target.access_key_secret,
        region_name=target.region,
        config=BotoConfig(max_pool_connections=max(connections, 1)),
    )


def _walk(local_dir: str) -> Iterator[Tuple[str, str]]:
    for root, _, files in os.walk(local_dir):
        for f in files:
            path = os.path.join(root, f)
            yield path, os.path.relpath(path, local_dir).replace(os.sep, "/")


def upload_folder(target: StorageTarget, local_dir: str, folder_name: str,
                  connections: int = 5, client: Any = None) -> List[str]:
    """Upload every file of local_dir to <subfolder>/<folder_name>/ and return the keys."""
    client = client or make_client(target, connections)
    base = "/".join(p.strip("/") for p in (target.subfolder, folder_name) if p.strip("/"))
    jobs = [(path, f"{base}/{rel}") for path, rel in _walk(local_dir)]
    print(f"[Downloader] Uploading {len(jobs)} files to r2://{target.bucket_name}/{base}", file=sys.stderr)

    uploaded = []
    with ThreadPoolExecutor(max_workers=max(connections, 1)) as pool:
        futures = {pool.submit(client.upload_file, path, target.bucket_name, key): key for path, key in jobs}
        for fut in as_completed(futures):
            fut.result()
            uploaded.append(futures[fut])
    print(f"[Downloader] Upload completed: {len(uploaded)} files", file=sys.stderr)
    return uploaded


def list_objects(client: Any, bucket: str, prefix: str) -> Iterator[dict]:
    paginator = client.get_paginator("list_objects_v2")
    for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
        for obj in page.get("Contents", []):
            yield obj


def _read_range(client: Any, bucket: str, key: str, byte_range: str) -> bytes:
    return client.get_object(Bucket=bucket, Key=key, Range=f"bytes={byte_range}")["Body"].read()


def is_parquet_intact(client: Any, bucket: str, key: str, size: int) -> bool:
    if size < MIN_PARQUET_SIZE:
        return False
    if _read_range(client, bucket, key, "0-3") != PARQUET_MAGIC:
        return False
    return _read_range(client, bucket, key, "-4") == PARQUET_MAGIC


def _check_and_delete(client: Any, bucket: str, obj: dict, cancel: threading.Event) -> Optional[str]:
    if cancel.is_set():
        return None
    key = obj["Key"]
    if is_parquet_intact(client, bucket, key, obj.get("Size", 0)):
        return None
    logger.warning("deleting corrupted object %s", key)
    client.delete_object(Bucket=bucket, Key=key)
    return key


def cleanup_corrupted_files(cancel: threading.Event, target: StorageTarget, prefix: str,
                            connections: int = 5, client: Any = None) -> List[str]:
    """Delete .parquet objects under prefix whose head or tail magic is missing."""
    client = client or make_client(target, connections)
    removed = []
    with ThreadPoolExecutor(max_workers=max(connections, 1)) as pool:
        futures = []
        for obj in list_objects(client, target.bucket_name, prefix):
            if cancel.is_set():
                break
            if obj["Key"].endswith(".parquet"):
                futures.append(pool.submit(_check_and_delete, client, target.bucket_name, obj, cancel))
        for fut in as_completed(futures):
            key = fut.result()
            if key:
                removed.append(key)
    return sorted(removed)
