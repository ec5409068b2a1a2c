from __future__ import annotations

import logging
import posixpath
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set, Union

import httpx

from bucketfs.core.errors import (
    BucketCreationError,
    BucketNotFoundError,
    ObjectStoreError,
    OperationFailure,
)
from bucketfs.providers.object_client import (
    ALL_USERS_READER,
    PROJECT_PRIVATE_ACL,
    ObjectAcl,
    ObjectStoreClient,
    StoredObject,
)
from bucketfs.providers.storage import Failure, ListKeysAware, MetadataSupporter, StorageAdapter

logger = logging.getLogger(__name__)


class BucketState(Enum):
    UNKNOWN = "unknown"
    CONFIRMED = "confirmed"
    ABSENT = "absent"


@dataclass(frozen=True)
class AdapterOptions:
    """
    Per-adapter configuration.

    directory:     optional prefix every key is placed under
    create:        create the bucket when the first probe finds it missing
    cache_control: Cache-Control header for written objects
    """
    directory: Optional[str] = None
    create: bool = False
    cache_control: Optional[str] = None

    @classmethod
    def from_mapping(cls, options: Optional[Mapping[str, Any]] = None) -> "AdapterOptions":
        opts = dict(options or {})
        cache_control = opts.get("cache-control", opts.get("cache_control"))
        return cls(
            directory=opts.get("directory"),
            create=bool(opts.get("create", False)),
            cache_control=cache_control or None,
        )


def _parent_directory(name: str) -> str:
    # "a/b/c.txt" -> "a/b", "a/b/" -> "a", "c.txt" -> "" (root)
    parent = posixpath.dirname(name.rstrip("/"))
    if parent in ("", "/"):
        return ""
    return parent


class ObjectStorageAdapter(StorageAdapter, MetadataSupporter, ListKeysAware):
    """
    Storage adapter backed by one bucket of a remote object store.

    The client is injected (see bucketfs.providers.object_client). Backend
    failures never cross this boundary: operations return False and the
    failure is kept in `last_error`. A missing bucket is the one fatal case
    and raises a StorageConfigurationError from whichever operation hits it.

    Caches:
      - metadata map (path -> metadata), local only, attached on write
      - a single-slot object lookup (last path -> descriptor) used by
        mtime/rename, dropped on delete, on writes to the cached path and
        whenever another path is looked up; a lookup that overlaps a delete
        or write is returned but not cached

    Rename is copy-then-delete. It is a move, not an atomic rename: if the
    delete does not happen, source and target both exist. Renaming a key
    onto a key that resolves to the same path leaves the object alone.
    """

    def __init__(
        self,
        client: ObjectStoreClient,
        bucket: str,
        options: Union[AdapterOptions, Mapping[str, Any], None] = None,
    ):
        bucket = (bucket or "").strip()
        if not bucket:
            raise ValueError("bucket is required for the object storage adapter")

        self.client = client
        self.bucket = bucket
        if isinstance(options, AdapterOptions):
            self.options = options
        else:
            self.options = AdapterOptions.from_mapping(options)

        self.acl: ObjectAcl = ALL_USERS_READER
        self.last_error: Optional[OperationFailure] = None

        self._bucket_state = BucketState.UNKNOWN
        self._bucket_lock = threading.Lock()

        # guards _metadata, the lookup slot and last_error; never held across I/O
        self._lock = threading.Lock()
        self._metadata: Dict[str, Dict[str, str]] = {}
        self._last_path: Optional[str] = None
        self._last_obj: Optional[StoredObject] = None
        self._lookup_generation = 0

    @property
    def bucket_state(self) -> BucketState:
        return self._bucket_state

    # ----------------------------
    # Metadata
    # ----------------------------
    def set_metadata(self, key: str, metadata: Mapping[str, str]) -> None:
        path = self.compute_path(key)
        with self._lock:
            self._metadata[path] = dict(metadata or {})

    def get_metadata(self, key: str) -> Dict[str, str]:
        return self._metadata_for(self.compute_path(key))

    # ----------------------------
    # Public API
    # ----------------------------
    def read(self, key: str) -> Union[bytes, Failure]:
        self.ensure_bucket_exists()
        path = self.compute_path(key)

        try:
            response = self.client.signed_get(self.bucket, path)
        except (ObjectStoreError, httpx.HTTPError) as exc:
            return self._fail("read", key, path, exc)

        if response.status_code != 200:
            error = ObjectStoreError(
                f"GET {path} returned HTTP {response.status_code}",
                code=str(response.status_code),
                status=response.status_code,
            )
            return self._fail("read", key, path, error)

        return response.content

    def write(self, key: str, content: bytes) -> Union[int, Failure]:
        self.ensure_bucket_exists()
        path = self.compute_path(key)

        if isinstance(content, str):
            content = content.encode("utf-8")

        obj = StoredObject(name=path, metadata=self._metadata_for(path))
        if self.options.cache_control:
            obj.cache_control = self.options.cache_control
            # Overridden by the public-read grant below; the object ends up public.
            obj.acl = PROJECT_PRIVATE_ACL

        self._forget(path)
        try:
            stored = self.client.insert_object(self.bucket, obj, content)
            if obj.acl == PROJECT_PRIVATE_ACL:
                logger.debug("[ObjectStore] %s uploaded %s, granting %s/%s next", path, obj.acl, self.acl.entity, self.acl.role)
            self.client.insert_object_acl(self.bucket, path, self.acl)
        except ObjectStoreError as exc:
            return self._fail("write", key, path, exc)

        return stored.size

    def rename(self, source_key: str, target_key: str) -> bool:
        source_path = self.compute_path(source_key)
        target_path = self.compute_path(target_key)
        self.ensure_bucket_exists()

        obj = self._get_object_data(source_path, "rename", source_key)
        if obj is None:
            return False

        # copy onto itself followed by delete would drop the only copy
        if source_path == target_path:
            return True

        try:
            self.client.copy_object(self.bucket, source_path, self.bucket, target_path, obj.renamed(target_path))
        except ObjectStoreError as exc:
            return self._fail("rename", source_key, source_path, exc)

        if not self._delete_path("rename", source_key, source_path):
            logger.warning("[ObjectStore] rename left both objects in place source=%s target=%s", source_path, target_path)
            return False

        return True

    def delete(self, key: str) -> bool:
        self.ensure_bucket_exists()
        path = self.compute_path(key)
        return self._delete_path("delete", key, path)

    def exists(self, key: str) -> bool:
        path = self.compute_path(key)
        self.ensure_bucket_exists()
        return self._exists_path(path)

    def mtime(self, key: str) -> Union[int, Failure]:
        path = self.compute_path(key)
        self.ensure_bucket_exists()

        obj = self._get_object_data(path, "mtime", key)
        if obj is None or obj.updated is None:
            return False
        return int(obj.updated.timestamp())

    def is_directory(self, key: str) -> bool:
        path = self.compute_path(key)
        self.ensure_bucket_exists()
        return self._exists_path(path + "/")

    def keys(self) -> List[str]:
        """
        Every object key plus the parent directory of every non-root object,
        sorted and without duplicates. Scoped to the configured directory,
        with the directory stripped from the returned keys.
        """
        self.ensure_bucket_exists()

        names = self._list_names("keys")
        if names is None:
            return []

        keys: Set[str] = set()
        for name in names:
            keys.add(name)
            parent = _parent_directory(name)
            if parent:
                keys.add(parent)

        return sorted(keys)

    def list_keys(self, prefix: str = "") -> Dict[str, List[str]]:
        self.ensure_bucket_exists()

        names = self._list_names("list_keys")
        if names is None:
            return {"keys": [], "dirs": []}

        keys: Set[str] = set()
        dirs: Set[str] = set()
        for name in names:
            if not name.startswith(prefix):
                continue
            keys.add(name)
            parent = _parent_directory(name)
            while parent:
                if parent.startswith(prefix):
                    dirs.add(parent)
                parent = _parent_directory(parent)

        return {"keys": sorted(keys), "dirs": sorted(dirs)}

    # ----------------------------
    # Bucket guard
    # ----------------------------
    def ensure_bucket_exists(self) -> None:
        """
        Probe the bucket once per adapter lifetime.

        Raises BucketNotFoundError when it is missing and creation is off, and
        BucketCreationError when creation fails or the client cannot create
        buckets. After a fatal outcome the next call probes again.
        """
        if self._bucket_state is BucketState.CONFIRMED:
            return

        with self._bucket_lock:
            if self._bucket_state is BucketState.CONFIRMED:
                return

            try:
                self.client.get_bucket(self.bucket)
            except ObjectStoreError as exc:
                self._bucket_state = BucketState.ABSENT
                probe_error: Optional[ObjectStoreError] = exc
            else:
                self._bucket_state = BucketState.CONFIRMED
                logger.info("[ObjectStore] bucket confirmed bucket=%s", self.bucket)
                return

            if not self.options.create:
                raise BucketNotFoundError(
                    f'The configured bucket "{self.bucket}" does not exist.',
                    bucket=self.bucket,
                ) from probe_error

            try:
                self.client.create_bucket(self.bucket)
            except (ObjectStoreError, NotImplementedError) as exc:
                raise BucketCreationError(
                    f'Failed to create the configured bucket "{self.bucket}".',
                    bucket=self.bucket,
                ) from exc

            self._bucket_state = BucketState.CONFIRMED
            logger.info("[ObjectStore] bucket created bucket=%s", self.bucket)

    # ----------------------------
    # Internal helpers
    # ----------------------------
    def compute_path(self, key: str) -> str:
        directory = self.options.directory
        if directory is None or directory == "":
            return key
        return f"{directory.strip('/')}/{key.strip('/')}"

    def _listing_prefix(self) -> Optional[str]:
        directory = self.options.directory
        if directory is None or directory == "":
            return None
        return directory.strip("/") + "/"

    def _list_names(self, operation: str) -> Optional[List[str]]:
        prefix = self._listing_prefix()
        try:
            objects = list(self.client.list_objects(self.bucket, prefix))
        except ObjectStoreError as exc:
            self._fail(operation, "", prefix or "", exc)
            return None

        names: List[str] = []
        for obj in objects:
            name = obj.name
            if prefix:
                if not name.startswith(prefix):
                    continue
                name = name[len(prefix):]
            if name:
                names.append(name)
        return names

    def _exists_path(self, path: str) -> bool:
        try:
            self.client.get_object(self.bucket, path)
        except ObjectStoreError:
            return False
        return True

    def _delete_path(self, operation: str, key: str, path: str) -> bool:
        self._clear_lookup()
        try:
            self.client.delete_object(self.bucket, path)
        except ObjectStoreError as exc:
            return self._fail(operation, key, path, exc)
        return True

    def _get_object_data(self, path: str, operation: str, key: str) -> Optional[StoredObject]:
        with self._lock:
            if self._last_obj is not None and self._last_path == path:
                logger.debug("[ObjectStore] lookup cache hit path=%s", path)
                return self._last_obj
            generation = self._lookup_generation

        try:
            obj = self.client.get_object(self.bucket, path)
        except ObjectStoreError as exc:
            self._fail(operation, key, path, exc)
            return None

        with self._lock:
            # a delete or write ran while fetching; the descriptor may predate it
            if self._lookup_generation == generation:
                self._last_path = path
                self._last_obj = obj
        return obj

    def _clear_lookup(self) -> None:
        with self._lock:
            self._lookup_generation += 1
            self._last_path = None
            self._last_obj = None

    def _forget(self, path: str) -> None:
        with self._lock:
            self._lookup_generation += 1
            if self._last_path == path:
                self._last_path = None
                self._last_obj = None

    def _metadata_for(self, path: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._metadata.get(path, {}))

    def _fail(self, operation: str, key: str, path: str, error: Exception) -> Failure:
        failure = OperationFailure(operation=operation, key=key, path=path, error=error)
        with self._lock:
            self.last_error = failure
        if isinstance(error, ObjectStoreError) and error.is_not_found:
            logger.info("[ObjectStore] %s not found bucket=%s path=%s", operation, self.bucket, path)
        else:
            logger.warning("[ObjectStore] %s failed bucket=%s path=%s error=%s", operation, self.bucket, path, error)
        return False
