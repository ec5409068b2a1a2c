from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else str(v)


def _env_optional(name: str) -> Optional[str]:
    raw = _env(name, "").strip()
    return raw or None


def _env_bool(name: str, default: bool) -> bool:
    raw = _env(name, "").strip().lower()
    if not raw:
        return default
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


def _env_float(name: str, default: float) -> float:
    raw = _env(name, "")
    if not raw.strip():
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _env_int(name: str, default: int) -> int:
    raw = _env(name, "")
    if not raw.strip():
        return default
    try:
        return int(raw)
    except Exception:
        return default


# ---------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class BucketSettings:
    """
    Object-store adapter configuration.

    bucket/directory/create/cache_control describe the adapter itself;
    the remaining fields only feed the S3 client binding.
    """
    bucket: str
    directory: Optional[str] = None
    create: bool = False
    cache_control: Optional[str] = None

    # S3 client binding
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    presign_ttl_seconds: int = 900
    http_timeout_seconds: float = 30.0
    max_attempts: int = 5

    def adapter_options(self) -> dict:
        return {
            "directory": self.directory,
            "create": self.create,
            "cache-control": self.cache_control,
        }


# ---------------------------------------------------------------------
# Loaders
# ---------------------------------------------------------------------

def load_bucket_settings() -> BucketSettings:
    bucket = _env("OBJECT_STORE_BUCKET", "").strip()
    directory = _env_optional("OBJECT_STORE_DIRECTORY")
    create = _env_bool("OBJECT_STORE_CREATE", False)
    cache_control = _env_optional("OBJECT_STORE_CACHE_CONTROL")

    region = (_env("AWS_REGION") or _env("AWS_DEFAULT_REGION") or "").strip() or None
    endpoint_url = (_env("OBJECT_STORE_ENDPOINT_URL", "") or "").strip().rstrip("/") or None

    presign_ttl_seconds = _env_int("OBJECT_STORE_PRESIGN_TTL_SECONDS", 900)
    http_timeout_seconds = _env_float("OBJECT_STORE_HTTP_TIMEOUT_SECONDS", 30.0)
    max_attempts = _env_int("OBJECT_STORE_MAX_ATTEMPTS", 5)

    presign_ttl_seconds = max(1, int(presign_ttl_seconds))
    http_timeout_seconds = max(1.0, float(http_timeout_seconds))
    max_attempts = max(1, min(int(max_attempts), 10))

    return BucketSettings(
        bucket=bucket,
        directory=directory,
        create=create,
        cache_control=cache_control,
        region=region,
        endpoint_url=endpoint_url,
        presign_ttl_seconds=presign_ttl_seconds,
        http_timeout_seconds=http_timeout_seconds,
        max_attempts=max_attempts,
    )


@lru_cache(maxsize=1)
def get_settings() -> BucketSettings:
    return load_bucket_settings()
