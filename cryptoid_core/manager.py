"""
cryptoid_core.manager
---------------------
Owns the storage engine handle for the CryptoID database.

Database structure (version 1):

- ``self``      CryptoIDs with private key material, keyed by ``identifier``
- ``others``    CryptoIDs of other people, keyed by ``identifier``
- ``profiles``  profiles keyed by ``identifier``; non-unique index ``network``

The engine is opened on first use. Concurrent first calls await the same
opening task, so the engine is opened and upgraded exactly once.
"""

from __future__ import annotations
import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import SchemaError
from .logger import get_logger
from .storage import StorageProvider, WriteOp, load_storage_provider
from .storage.provider import Value
from .transcoder import KEY_PATH

log = get_logger("CryptoID.Manager")

DB_NAME = "maskbook-crypto-id"
DB_VERSION = 1

SELF = "self"
OTHERS = "others"
PROFILES = "profiles"
PARTITIONS = (SELF, OTHERS, PROFILES)


def _v0_v1(provider: StorageProvider) -> None:
    provider.create_partition(SELF, KEY_PATH)
    provider.create_partition(OTHERS, KEY_PATH)
    provider.create_partition(PROFILES, KEY_PATH)
    provider.create_index(PROFILES, "network", "network", unique=False)


# step applied when upgrading *from* the given version
UPGRADES: Dict[int, Callable[[StorageProvider], None]] = {
    0: _v0_v1,
}


class Partition:
    """Async handle bound to one partition of the managed engine."""

    def __init__(self, manager: "StoreManager", name: str):
        self.manager = manager
        self.name = name

    async def _call(self, method: str, *args):
        provider = await self.manager.provider()
        return await asyncio.to_thread(getattr(provider, method), self.name, *args)

    async def get(self, key: str) -> Optional[Value]:
        return await self._call("get", key)

    async def put(self, value: Value) -> None:
        await self._call("put", value)

    async def delete(self, key: str) -> None:
        await self._call("delete", key)

    async def get_all_matching(self, predicate: Optional[Callable[[Value], bool]] = None) -> List[Value]:
        values = await self._call("scan")
        if predicate is None:
            return values
        return [v for v in values if predicate(v)]

    async def get_by_index(self, index: str, value: Any) -> List[Value]:
        return await self._call("index_get", index, value)

    def __repr__(self):
        return f"Partition({self.name!r})"


class StoreManager:
    def __init__(
        self,
        provider_factory: Optional[Callable[[], StorageProvider]] = None,
        config: Optional[dict] = None,
        name: str = DB_NAME,
        version: int = DB_VERSION,
        upgrades: Optional[Dict[int, Callable[[StorageProvider], None]]] = None,
    ):
        self._factory = provider_factory or (lambda: load_storage_provider(config))
        self.name = name
        self.version = version
        self.upgrades = UPGRADES if upgrades is None else upgrades
        self._provider: Optional[StorageProvider] = None
        self._opening: Optional[asyncio.Future] = None

    @property
    def ready(self) -> bool:
        return self._provider is not None

    async def provider(self) -> StorageProvider:
        if self._provider is not None:
            return self._provider
        if self._opening is None:
            self._opening = asyncio.ensure_future(self._open())
        # shielded so one cancelled caller does not abort the shared open
        return await asyncio.shield(self._opening)

    async def _open(self) -> StorageProvider:
        try:
            provider = await asyncio.to_thread(self._factory)
            try:
                await asyncio.to_thread(provider.open, self.name, self.version, self.upgrade)
            except BaseException:
                provider.close()
                raise
        except BaseException:
            self._opening = None
            log.error(f"[OPEN] {self.name} v{self.version} failed")
            raise
        self._provider = provider
        log.info(f"[OPEN] {self.name} ready", extra={"fields": {
            "version": self.version, "provider": type(provider).__name__,
        }})
        return provider

    def upgrade(self, provider: StorageProvider, old_version: int, new_version: int) -> None:
        if old_version < 0 or old_version >= new_version:
            raise SchemaError(f"Unsupported upgrade v{old_version} -> v{new_version}")
        for v in range(old_version, new_version):
            step = self.upgrades.get(v)
            if step is None:
                raise SchemaError(f"No upgrade step from version {v}")
            log.info(f"[UPGRADE] {self.name} v{v} -> v{v + 1}")
            step(provider)

    def get_partition(self, name: str) -> Partition:
        if name not in PARTITIONS:
            raise KeyError(f"Unknown partition: {name}")
        return Partition(self, name)

    async def write_batch(self, ops: Iterable[WriteOp]) -> None:
        """Apply puts/deletes across partitions in one engine transaction."""
        ops = list(ops)
        provider = await self.provider()
        await asyncio.to_thread(provider.write_batch, ops)

    async def close(self) -> None:
        if self._opening is not None and self._provider is None:
            await asyncio.shield(self._opening)
        provider, self._provider, self._opening = self._provider, None, None
        if provider is not None:
            await asyncio.to_thread(provider.close)
