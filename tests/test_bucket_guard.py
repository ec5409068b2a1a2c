import threading
import time

import pytest

from bucketfs.core.errors import (
    BucketCreationError,
    BucketNotFoundError,
    ObjectStoreError,
    StorageConfigurationError,
)
from bucketfs.providers.impl.object_store_adapter import BucketState, ObjectStorageAdapter

from conftest import FakeObjectStoreClient


OPERATIONS = [
    ("read", ("a.txt",)),
    ("write", ("a.txt", b"x")),
    ("exists", ("a.txt",)),
    ("delete", ("a.txt",)),
    ("rename", ("a.txt", "b.txt")),
    ("keys", ()),
    ("list_keys", ()),
    ("mtime", ("a.txt",)),
    ("is_directory", ("a",)),
]


def test_bucket_probed_once(adapter, client):
    assert adapter.bucket_state is BucketState.UNKNOWN
    adapter.exists("a.txt")
    adapter.write("a.txt", b"x")
    adapter.keys()
    assert client.count("get_bucket") == 1
    assert adapter.bucket_state is BucketState.CONFIRMED


@pytest.mark.parametrize("name,args", OPERATIONS)
def test_missing_bucket_without_create_is_fatal(name, args):
    client = FakeObjectStoreClient(buckets=())
    adapter = ObjectStorageAdapter(client, "media", {"create": False})

    with pytest.raises(BucketNotFoundError, match='The configured bucket "media" does not exist.'):
        getattr(adapter, name)(*args)

    assert [c[0] for c in client.calls] == ["get_bucket"]
    assert adapter.bucket_state is BucketState.ABSENT


def test_missing_bucket_keeps_failing_and_reprobes():
    client = FakeObjectStoreClient(buckets=())
    adapter = ObjectStorageAdapter(client, "media")

    for _ in range(3):
        with pytest.raises(StorageConfigurationError):
            adapter.exists("a.txt")
    assert client.count("get_bucket") == 3


def test_missing_bucket_created_when_allowed():
    client = FakeObjectStoreClient(buckets=())
    adapter = ObjectStorageAdapter(client, "media", {"create": True})

    assert adapter.write("a.txt", b"x") == 1
    assert "media" in client.buckets
    assert client.count("create_bucket") == 1
    assert adapter.bucket_state is BucketState.CONFIRMED

    adapter.read("a.txt")
    assert client.count("get_bucket") == 1


def test_creation_unsupported_is_fatal():
    client = FakeObjectStoreClient(buckets=(), can_create=False)
    adapter = ObjectStorageAdapter(client, "media", {"create": True})

    with pytest.raises(BucketCreationError, match='Failed to create the configured bucket "media".') as info:
        adapter.keys()
    assert isinstance(info.value.__cause__, NotImplementedError)
    assert info.value.bucket == "media"


def test_creation_backend_error_is_fatal():
    client = FakeObjectStoreClient(buckets=())
    client.fail["create_bucket"] = ObjectStoreError("quota exceeded", code="TooManyBuckets")
    adapter = ObjectStorageAdapter(client, "media", {"create": True})

    with pytest.raises(BucketCreationError):
        adapter.exists("a.txt")
    assert client.count("list_objects") == 0
    assert client.count("get_object") == 0


def test_metadata_accessors_do_not_probe_bucket():
    client = FakeObjectStoreClient(buckets=())
    adapter = ObjectStorageAdapter(client, "media")
    adapter.set_metadata("a.txt", {"k": "v"})
    assert adapter.get_metadata("a.txt") == {"k": "v"}
    assert client.calls == []


class SlowProbeClient(FakeObjectStoreClient):
    def get_bucket(self, bucket):
        time.sleep(0.05)
        return super().get_bucket(bucket)


def test_concurrent_first_use_probes_once():
    client = SlowProbeClient(buckets=())
    adapter = ObjectStorageAdapter(client, "media", {"create": True})

    errors = []

    def worker(i):
        try:
            adapter.write(f"f{i}.txt", b"x")
        except Exception as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert client.count("get_bucket") == 1
    assert client.count("create_bucket") == 1
    assert len(client.objects) == 8
