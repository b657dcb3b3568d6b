import threading
from typing import Any, Dict, Iterable, List, Optional
from cryptoid_core.errors import SchemaError, StorageError
from cryptoid_core.logger import get_logger
from cryptoid_core.storage.provider import StorageProvider, UpgradeFn, Value, WriteOp

log = get_logger("CryptoID.Storage.Memory")


def _clone(value: Any) -> Any:
    # containers are copied; leaves (str, datetime, key handles) are shared
    if isinstance(value, dict):
        return {k: _clone(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_clone(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return type(value)(value)
    return value


class InMemoryStorage(StorageProvider):
    def __init__(self):
        self.name = None
        self.version = 0
        self.partitions: Dict[str, Dict[str, Value]] = {}
        self.key_paths: Dict[str, str] = {}
        self.indexes: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        self._upgrading = False

    def open(self, name: str, version: int, upgrade: UpgradeFn) -> None:
        with self._lock:
            if version < self.version:
                raise SchemaError(f"{name} is at version {self.version}, cannot open as {version}")
            self.name = name
            if version == self.version:
                return
            snapshot = self._snapshot()
            self._upgrading = True
            try:
                upgrade(self, self.version, version)
                self.version = version
            except BaseException:
                self._restore(snapshot)
                raise
            finally:
                self._upgrading = False
            log.info(f"[MEM] {name} upgraded to v{version}")

    # schema
    def create_partition(self, name: str, key_path: str) -> None:
        self._require_upgrade()
        if name in self.partitions:
            raise StorageError(f"Partition already exists: {name}")
        self.partitions[name] = {}
        self.key_paths[name] = key_path
        self.indexes[name] = {}

    def create_index(self, partition: str, name: str, field: str, unique: bool = False) -> None:
        self._require_upgrade()
        self._partition(partition)
        self.indexes[partition][name] = {"field": field, "unique": unique}

    def partition_names(self) -> List[str]:
        return sorted(self.partitions)

    def index_names(self, partition: str) -> List[str]:
        self._partition(partition)
        return sorted(self.indexes[partition])

    # records
    def get(self, partition: str, key: str) -> Optional[Value]:
        with self._lock:
            rec = self._partition(partition).get(key)
            return _clone(rec) if rec is not None else None

    def put(self, partition: str, value: Value) -> None:
        with self._lock:
            self._put(partition, value)

    def delete(self, partition: str, key: str) -> None:
        with self._lock:
            self._partition(partition).pop(key, None)

    def scan(self, partition: str) -> List[Value]:
        with self._lock:
            store = self._partition(partition)
            return [_clone(store[k]) for k in sorted(store)]

    def index_get(self, partition: str, index: str, value: Any) -> List[Value]:
        with self._lock:
            field = self._index(partition, index)["field"]
            store = self._partition(partition)
            return [_clone(store[k]) for k in sorted(store) if store[k].get(field) == value]

    def write_batch(self, ops: Iterable[WriteOp]) -> None:
        with self._lock:
            snapshot = self._snapshot()
            try:
                for op in ops:
                    if op.kind == "put":
                        self._put(op.partition, op.value)
                    elif op.kind == "delete":
                        self._partition(op.partition).pop(op.key, None)
                    else:
                        raise StorageError(f"Unknown write op: {op.kind}")
            except BaseException:
                self._restore(snapshot)
                raise

    def close(self) -> None:
        return

    # helpers
    def _require_upgrade(self):
        if not self._upgrading:
            raise StorageError("Schema changes are only allowed during upgrade")

    def _partition(self, name: str) -> Dict[str, Value]:
        try:
            return self.partitions[name]
        except KeyError:
            raise StorageError(f"Unknown partition: {name}") from None

    def _index(self, partition: str, name: str) -> Dict[str, Any]:
        self._partition(partition)
        try:
            return self.indexes[partition][name]
        except KeyError:
            raise StorageError(f"Unknown index {name} on {partition}") from None

    def _put(self, partition: str, value: Value) -> None:
        store = self._partition(partition)
        key = value.get(self.key_paths[partition])
        if not isinstance(key, str):
            raise StorageError(f"{partition}: key {self.key_paths[partition]!r} must be a string")
        for idx in self.indexes[partition].values():
            if not idx["unique"]:
                continue
            f = idx["field"]
            if any(k != key and v.get(f) == value.get(f) for k, v in store.items()):
                raise StorageError(f"{partition}: unique index on {f!r} violated")
        store[key] = _clone(value)

    def _snapshot(self):
        return (
            {p: dict(s) for p, s in self.partitions.items()},
            dict(self.key_paths),
            {p: dict(i) for p, i in self.indexes.items()},
        )

    def _restore(self, snapshot) -> None:
        self.partitions, self.key_paths, self.indexes = snapshot
