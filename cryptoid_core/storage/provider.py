# cryptoid_core/storage/provider.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

Value = Dict[str, Any]
UpgradeFn = Callable[["StorageProvider", int, int], None]


@dataclass
class WriteOp:
    """One step of a ``write_batch``: ``put`` a value or ``delete`` a key."""
    kind: str
    partition: str
    value: Optional[Value] = None
    key: Optional[str] = None

    @classmethod
    def put(cls, partition: str, value: Value) -> "WriteOp":
        return cls("put", partition, value=value)

    @classmethod
    def delete(cls, partition: str, key: str) -> "WriteOp":
        return cls("delete", partition, key=key)


class StorageProvider:
    """
    Versioned key-value engine.

    Values are mappings keyed inline by their partition's key path.
    ``open`` brings the schema to ``version`` by calling
    ``upgrade(provider, old_version, new_version)`` inside one transaction;
    partitions and indexes can only be created from there.
    """

    # Interface
    def open(self, name: str, version: int, upgrade: UpgradeFn) -> None: ...
    def create_partition(self, name: str, key_path: str) -> None: ...
    def create_index(self, partition: str, name: str, field: str, unique: bool = False) -> None: ...
    def partition_names(self) -> List[str]: ...
    def index_names(self, partition: str) -> List[str]: ...
    def get(self, partition: str, key: str) -> Optional[Value]: ...
    def put(self, partition: str, value: Value) -> None: ...
    def delete(self, partition: str, key: str) -> None: ...
    def scan(self, partition: str) -> List[Value]: ...
    def index_get(self, partition: str, index: str, value: Any) -> List[Value]: ...
    def write_batch(self, ops: Iterable[WriteOp]) -> None: ...
    def close(self) -> None: ...
