from __future__ import annotations

import threading
from typing import Dict, Optional, Tuple

from bucketfs.core.settings import BucketSettings, get_settings
from bucketfs.providers.impl.client_s3 import S3ObjectStoreClient
from bucketfs.providers.impl.object_store_adapter import AdapterOptions, ObjectStorageAdapter
from bucketfs.providers.object_client import ObjectStoreClient


_AdapterKey = Tuple[str, Optional[str], bool, Optional[str]]

_cached: Dict[_AdapterKey, ObjectStorageAdapter] = {}
_cache_lock = threading.Lock()


def _adapter_key(settings: BucketSettings) -> _AdapterKey:
    return (settings.bucket, settings.directory, settings.create, settings.cache_control)


def build_storage_adapter(
    settings: Optional[BucketSettings] = None,
    client: Optional[ObjectStoreClient] = None,
) -> ObjectStorageAdapter:
    """
    Build a fresh adapter. The S3 client binding is used unless a client is
    injected.
    """
    settings = settings or get_settings()
    if not settings.bucket:
        raise RuntimeError("OBJECT_STORE_BUCKET is required for the object storage adapter")

    if client is None:
        client = S3ObjectStoreClient.from_settings(settings)

    options = AdapterOptions.from_mapping(settings.adapter_options())
    return ObjectStorageAdapter(client, settings.bucket, options)


def get_storage_adapter(
    settings: Optional[BucketSettings] = None,
    client: Optional[ObjectStoreClient] = None,
) -> ObjectStorageAdapter:
    """
    Process-wide adapter for a backend configuration.

    One adapter per (bucket, directory, create, cache_control); later calls
    with the same configuration get the same instance and its caches.
    """
    settings = settings or get_settings()
    key = _adapter_key(settings)
    with _cache_lock:
        adapter = _cached.get(key)
        if adapter is None:
            adapter = build_storage_adapter(settings, client=client)
            _cached[key] = adapter
    return adapter


def reset_storage_adapters() -> None:
    with _cache_lock:
        _cached.clear()
