from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
import json, os, re, sqlite3, threading
from cryptoid_core.crypto import export_key_handle, import_key_handle, is_key_handle
from cryptoid_core.errors import SchemaError, StorageError
from cryptoid_core.logger import get_logger
from cryptoid_core.storage.provider import StorageProvider, UpgradeFn, Value, WriteOp
from cryptoid_core.utils import b64e, b64d

log = get_logger("CryptoID.Storage.SQLite")

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _check_name(name: str) -> str:
    if not _NAME_RE.match(name):
        raise StorageError(f"Invalid name: {name!r}")
    return name


def _table(partition: str) -> str:
    return f'"p_{partition}"'


# --- value serialization ---
# Values are JSON; types JSON lacks are wrapped in single-key tagged objects.

def _default(o: Any):
    if isinstance(o, datetime):
        return {"$datetime": o.isoformat()}
    if isinstance(o, (bytes, bytearray)):
        return {"$bytes": b64e(bytes(o))}
    if isinstance(o, (set, frozenset)):
        return {"$set": list(o)}
    if is_key_handle(o):
        return {"$key": export_key_handle(o)}
    raise TypeError(f"Object of type {type(o).__name__} is not storable")


def _object_hook(d: Dict[str, Any]):
    if len(d) == 1:
        tag, v = next(iter(d.items()))
        if tag == "$datetime":
            return datetime.fromisoformat(v)
        if tag == "$bytes":
            return b64d(v)
        if tag == "$set":
            return set(v)
        if tag == "$key":
            return import_key_handle(v)
    return d


def dumps_value(value: Value) -> str:
    return json.dumps(value, default=_default, separators=(",", ":"), sort_keys=True)


def loads_value(raw: str) -> Value:
    return json.loads(raw, object_hook=_object_hook)


class SQLiteStorage(StorageProvider):
    """
    One table per partition: ``(key TEXT PRIMARY KEY, value TEXT)``.

    The schema version lives in ``PRAGMA user_version``; partition and index
    definitions are recorded in ``_partitions`` / ``_indexes``. Secondary
    indexes are expression indexes over ``json_extract(value, '$.<field>')``.
    """

    def __init__(self, path="db/cryptoid.db"):
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.path = path
        # autocommit; transactions are explicit
        self.db = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        self._lock = threading.RLock()
        self._upgrading = False
        self._init()

    def _init(self) -> None:
        with self._lock, self._transaction():
            self.db.execute("""CREATE TABLE IF NOT EXISTS _partitions(
                name TEXT PRIMARY KEY,
                key_path TEXT NOT NULL
            )""")
            self.db.execute("""CREATE TABLE IF NOT EXISTS _indexes(
                partition TEXT NOT NULL,
                name TEXT NOT NULL,
                field TEXT NOT NULL,
                is_unique INTEGER NOT NULL,
                PRIMARY KEY (partition, name)
            )""")

    @contextmanager
    def _transaction(self):
        # writes made from an upgrade step join the upgrade's transaction
        if self.db.in_transaction:
            yield
            return
        self.db.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            self.db.execute("ROLLBACK")
            raise
        else:
            self.db.execute("COMMIT")

    @property
    def version(self) -> int:
        return self.db.execute("PRAGMA user_version").fetchone()[0]

    def open(self, name: str, version: int, upgrade: UpgradeFn) -> None:
        with self._lock:
            current = self.version
            if version < current:
                raise SchemaError(f"{name} at {self.path} is at version {current}, cannot open as {version}")
            if version == current:
                return
            self._upgrading = True
            try:
                with self._transaction():
                    upgrade(self, current, version)
                    self.db.execute(f"PRAGMA user_version = {int(version)}")
            finally:
                self._upgrading = False
            log.info(f"[SQLITE] {name} upgraded v{current} -> v{version} path={self.path}")

    # --- schema ---

    def create_partition(self, name: str, key_path: str) -> None:
        self._require_upgrade()
        _check_name(name)
        if self._key_path(name, required=False):
            raise StorageError(f"Partition already exists: {name}")
        self.db.execute(f"CREATE TABLE {_table(name)} (key TEXT PRIMARY KEY, value TEXT NOT NULL)")
        self.db.execute("INSERT INTO _partitions(name, key_path) VALUES(?, ?)", (name, key_path))

    def create_index(self, partition: str, name: str, field: str, unique: bool = False) -> None:
        self._require_upgrade()
        self._key_path(partition)
        _check_name(name)
        _check_name(field)
        kind = "UNIQUE INDEX" if unique else "INDEX"
        self.db.execute(
            f'CREATE {kind} "idx_{partition}_{name}" ON {_table(partition)} '
            f"(json_extract(value, '$.{field}'))"
        )
        self.db.execute(
            "INSERT INTO _indexes(partition, name, field, is_unique) VALUES(?, ?, ?, ?)",
            (partition, name, field, int(unique)),
        )

    def partition_names(self) -> List[str]:
        cur = self.db.execute("SELECT name FROM _partitions ORDER BY name")
        return [r[0] for r in cur.fetchall()]

    def index_names(self, partition: str) -> List[str]:
        self._key_path(partition)
        cur = self.db.execute("SELECT name FROM _indexes WHERE partition=? ORDER BY name", (partition,))
        return [r[0] for r in cur.fetchall()]

    # --- records ---

    def get(self, partition: str, key: str) -> Optional[Value]:
        with self._lock:
            self._key_path(partition)
            row = self.db.execute(f"SELECT value FROM {_table(partition)} WHERE key=?", (key,)).fetchone()
        return loads_value(row[0]) if row else None

    def put(self, partition: str, value: Value) -> None:
        with self._lock, self._transaction():
            self._put(partition, value)

    def delete(self, partition: str, key: str) -> None:
        with self._lock:
            self._key_path(partition)
            self.db.execute(f"DELETE FROM {_table(partition)} WHERE key=?", (key,))

    def scan(self, partition: str) -> List[Value]:
        with self._lock:
            self._key_path(partition)
            rows = self.db.execute(f"SELECT value FROM {_table(partition)} ORDER BY key").fetchall()
        return [loads_value(r[0]) for r in rows]

    def index_get(self, partition: str, index: str, value: Any) -> List[Value]:
        with self._lock:
            self._key_path(partition)
            row = self.db.execute(
                "SELECT field FROM _indexes WHERE partition=? AND name=?", (partition, index)
            ).fetchone()
            if not row:
                raise StorageError(f"Unknown index {index} on {partition}")
            rows = self.db.execute(
                f"SELECT value FROM {_table(partition)} "
                f"WHERE json_extract(value, '$.{row[0]}') = ? ORDER BY key",
                (value,),
            ).fetchall()
        return [loads_value(r[0]) for r in rows]

    def write_batch(self, ops: Iterable[WriteOp]) -> None:
        with self._lock, self._transaction():
            for op in ops:
                if op.kind == "put":
                    self._put(op.partition, op.value)
                elif op.kind == "delete":
                    self._key_path(op.partition)
                    self.db.execute(f"DELETE FROM {_table(op.partition)} WHERE key=?", (op.key,))
                else:
                    raise StorageError(f"Unknown write op: {op.kind}")

    def close(self):
        self.db.close()

    # --- helpers ---

    def _require_upgrade(self):
        if not self._upgrading:
            raise StorageError("Schema changes are only allowed during upgrade")

    def _key_path(self, partition: str, required: bool = True) -> Optional[str]:
        row = self.db.execute("SELECT key_path FROM _partitions WHERE name=?", (partition,)).fetchone()
        if row is None and required:
            raise StorageError(f"Unknown partition: {partition}")
        return row[0] if row else None

    def _put(self, partition: str, value: Value) -> None:
        key_path = self._key_path(partition)
        key = value.get(key_path)
        if not isinstance(key, str):
            raise StorageError(f"{partition}: key {key_path!r} must be a string")
        try:
            self.db.execute(
                f"INSERT INTO {_table(partition)}(key, value) VALUES(?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, dumps_value(value)),
            )
        except sqlite3.IntegrityError as e:
            raise StorageError(f"{partition}: {e}") from e
