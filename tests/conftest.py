import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx
import pytest

# Make the repo root importable when running pytest without an install.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from bucketfs.core.errors import ObjectStoreError  # noqa: E402
from bucketfs.providers.impl.object_store_adapter import ObjectStorageAdapter  # noqa: E402
from bucketfs.providers.object_client import ObjectAcl, StoredObject  # noqa: E402


class FakeObjectStoreClient:
    """
    In-memory object store.

    Records every call in `calls`. Set `fail[method] = ObjectStoreError(...)`
    to make that method raise.
    """

    def __init__(self, buckets: Iterable[str] = ("media",), can_create: bool = True):
        self.buckets = set(buckets)
        self.can_create = can_create
        self.objects: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[Any, ...]] = []
        self.fail: Dict[str, Exception] = {}
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    # ----------------------------
    # Test helpers
    # ----------------------------
    def seed(self, bucket: str, path: str, data: bytes, acl: Optional[str] = None) -> None:
        self._tick()
        self.objects[(bucket, path)] = {
            "data": data,
            "obj": StoredObject(name=path, size=len(data), updated=self.now, acl=acl),
        }

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)

    def stored(self, bucket: str, path: str) -> StoredObject:
        return self.objects[(bucket, path)]["obj"]

    def _tick(self) -> None:
        self.now = self.now + timedelta(seconds=1)

    def _call(self, method: str, *args: Any) -> None:
        self.calls.append((method,) + args)
        err = self.fail.get(method)
        if err is not None:
            raise err

    def _require(self, bucket: str, path: str) -> Dict[str, Any]:
        rec = self.objects.get((bucket, path))
        if rec is None:
            raise ObjectStoreError(f"No such object: {bucket}/{path}", code="NoSuchKey", status=404)
        return rec

    # ----------------------------
    # ObjectStoreClient
    # ----------------------------
    def get_bucket(self, bucket: str) -> Dict[str, Any]:
        self._call("get_bucket", bucket)
        if bucket not in self.buckets:
            raise ObjectStoreError(f"No such bucket: {bucket}", code="NoSuchBucket", status=404)
        return {"name": bucket}

    def create_bucket(self, bucket: str) -> None:
        self._call("create_bucket", bucket)
        if not self.can_create:
            raise NotImplementedError("bucket creation is not supported")
        self.buckets.add(bucket)

    def get_object(self, bucket: str, path: str) -> StoredObject:
        self._call("get_object", bucket, path)
        return replace(self._require(bucket, path)["obj"])

    def insert_object(self, bucket: str, obj: StoredObject, data: bytes) -> StoredObject:
        self._call("insert_object", bucket, obj.name)
        self._tick()
        stored = StoredObject(
            name=obj.name,
            size=len(data),
            updated=self.now,
            metadata=dict(obj.metadata),
            cache_control=obj.cache_control,
            acl=obj.acl,
        )
        self.objects[(bucket, obj.name)] = {"data": data, "obj": stored}
        return replace(stored)

    def copy_object(self, source_bucket, source_path, target_bucket, target_path, obj):
        self._call("copy_object", source_bucket, source_path, target_bucket, target_path)
        rec = self._require(source_bucket, source_path)
        self._tick()
        copied = replace(rec["obj"], name=target_path, updated=self.now, metadata=dict(rec["obj"].metadata))
        self.objects[(target_bucket, target_path)] = {"data": rec["data"], "obj": copied}
        return replace(copied)

    def delete_object(self, bucket: str, path: str) -> None:
        self._call("delete_object", bucket, path)
        self._require(bucket, path)
        del self.objects[(bucket, path)]

    def list_objects(self, bucket: str, prefix: Optional[str] = None) -> List[StoredObject]:
        self._call("list_objects", bucket, prefix)
        out = []
        for (b, path), rec in sorted(self.objects.items()):
            if b != bucket:
                continue
            if prefix and not path.startswith(prefix):
                continue
            out.append(replace(rec["obj"]))
        return out

    def insert_object_acl(self, bucket: str, path: str, acl: ObjectAcl) -> None:
        self._call("insert_object_acl", bucket, path, acl)
        rec = self._require(bucket, path)
        if acl.entity == "allUsers" and acl.role == "READER":
            rec["obj"].acl = "public-read"
        else:
            rec["obj"].acl = f"{acl.entity}:{acl.role}"

    def signed_get(self, bucket: str, path: str) -> httpx.Response:
        self._call("signed_get", bucket, path)
        rec = self.objects.get((bucket, path))
        if rec is None:
            return httpx.Response(404, content=b"<Error><Code>NoSuchKey</Code></Error>")
        return httpx.Response(200, content=rec["data"])


@pytest.fixture
def client():
    return FakeObjectStoreClient()


@pytest.fixture
def adapter(client):
    return ObjectStorageAdapter(client, "media")


@pytest.fixture
def make_adapter(client):
    def _make(options=None, bucket="media"):
        return ObjectStorageAdapter(client, bucket, options)
    return _make
