from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Protocol, runtime_checkable

import httpx


PROJECT_PRIVATE_ACL = "project-private"
PUBLIC_READ_ACL = "public-read"


@dataclass(frozen=True)
class ObjectAcl:
    """Object-level access grant, e.g. allUsers/READER."""
    entity: str
    role: str


ALL_USERS_READER = ObjectAcl(entity="allUsers", role="READER")


@dataclass
class StoredObject:
    """
    Backend object descriptor.

    Used both ways: the adapter fills name/metadata/cache_control/acl before an
    upload, clients return name/size/updated/metadata for lookups and listings.
    """
    name: str
    size: int = 0
    updated: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)
    cache_control: Optional[str] = None
    acl: Optional[str] = None
    content_type: Optional[str] = None

    def renamed(self, name: str) -> "StoredObject":
        return replace(self, name=name, metadata=dict(self.metadata))


@runtime_checkable
class ObjectStoreClient(Protocol):
    """
    Bucket-oriented object store, injected into the adapter.

    Every method raises bucketfs.core.errors.ObjectStoreError on backend or
    transport failure (including "not found").
    """

    def get_bucket(self, bucket: str) -> Dict[str, Any]: ...

    def create_bucket(self, bucket: str) -> None: ...

    def get_object(self, bucket: str, path: str) -> StoredObject: ...

    def insert_object(self, bucket: str, obj: StoredObject, data: bytes) -> StoredObject: ...

    def copy_object(
        self,
        source_bucket: str,
        source_path: str,
        target_bucket: str,
        target_path: str,
        obj: StoredObject,
    ) -> StoredObject: ...

    def delete_object(self, bucket: str, path: str) -> None: ...

    def list_objects(self, bucket: str, prefix: Optional[str] = None) -> Iterable[StoredObject]: ...

    def insert_object_acl(self, bucket: str, path: str, acl: ObjectAcl) -> None: ...

    def signed_get(self, bucket: str, path: str) -> httpx.Response: ...
