# bucketfs/core/errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class StorageConfigurationError(RuntimeError):
    """
    Fatal tier: the adapter cannot operate against its configured backend.

    Never caught inside the adapter. Callers see it from whichever operation
    first needed the bucket.
    """

    def __init__(self, message: str, bucket: str = ""):
        super().__init__(message)
        self.bucket = bucket


class BucketNotFoundError(StorageConfigurationError):
    pass


class BucketCreationError(StorageConfigurationError):
    pass


class ObjectStoreError(RuntimeError):
    """
    Raised by object-store clients for any backend or transport failure.

    code:   backend error code when known (e.g. "NoSuchKey", "404", "AccessDenied")
    status: HTTP status when known
    """

    def __init__(self, message: str, code: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status = status

    @property
    def is_not_found(self) -> bool:
        return self.status == 404 or self.code in ("NoSuchKey", "NoSuchBucket", "NotFound", "404")


@dataclass(frozen=True)
class OperationFailure:
    """Typed record of an operational failure that was reported as False."""
    operation: str
    key: str
    path: str
    error: Exception

    @property
    def code(self) -> str:
        return getattr(self.error, "code", "") or ""

    def __str__(self) -> str:
        return f"{self.operation} failed key={self.key!r} path={self.path!r}: {self.error}"
