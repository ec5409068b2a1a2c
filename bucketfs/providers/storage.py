from __future__ import annotations

from typing import Literal, Protocol, runtime_checkable, Dict, List, Mapping, Union

# Operational failures are reported as False, never raised.
Failure = Literal[False]


@runtime_checkable
class StorageAdapter(Protocol):
    """
    Filesystem-like storage abstraction.

    Keys are opaque strings. Every backend maps them onto its own namespace.
    Operational failures come back as False. Only configuration errors
    (bucketfs.core.errors.StorageConfigurationError) are raised.
    """

    def read(self, key: str) -> Union[bytes, Failure]: ...

    def write(self, key: str, content: bytes) -> Union[int, Failure]: ...

    def exists(self, key: str) -> bool: ...

    def delete(self, key: str) -> bool: ...

    def rename(self, source_key: str, target_key: str) -> bool: ...

    def keys(self) -> List[str]: ...

    def mtime(self, key: str) -> Union[int, Failure]: ...

    def is_directory(self, key: str) -> bool: ...


@runtime_checkable
class MetadataSupporter(Protocol):
    """Adapters that can attach key/value metadata to what they write."""

    def set_metadata(self, key: str, metadata: Mapping[str, str]) -> None: ...

    def get_metadata(self, key: str) -> Dict[str, str]: ...


@runtime_checkable
class ListKeysAware(Protocol):
    """Adapters that can list keys under a prefix, split into keys and dirs."""

    def list_keys(self, prefix: str = "") -> Dict[str, List[str]]: ...
