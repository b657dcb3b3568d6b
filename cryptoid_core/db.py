"""
cryptoid_core.db
----------------
CRUD for CryptoID and profile records.

A CryptoID with a ``private_key`` is stored in ``self``, otherwise in
``others``; it is never present in both. Writes that may change the partition
(create, update) go through one ``write_batch`` so a record is never seen in
neither or both partitions.
"""

from __future__ import annotations
from dataclasses import fields, replace
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple, Union

from .errors import NotFoundError
from .identifiers import ECKeyIdentifier, PersonIdentifier, encode
from .logger import get_logger
from .manager import OTHERS, PROFILES, SELF, StoreManager
from .records import CryptoIDRecord, ProfileRecord
from .storage import WriteOp
from .transcoder import crypto_id_decode, crypto_id_encode, profile_decode, profile_encode

log = get_logger("CryptoID.DB")

CryptoIDQuery = Union[ECKeyIdentifier, Callable[[CryptoIDRecord], bool]]
ProfileQuery = Union[PersonIdentifier, Callable[[ProfileRecord], bool]]


class MergeMode(str, Enum):
    OVERWRITE = "overwrite"
    APPEND = "append"


def _partition_for(record: CryptoIDRecord) -> str:
    return SELF if record.private_key is not None else OTHERS


def _other(partition: str) -> str:
    return OTHERS if partition == SELF else SELF


def _check_fields(record_cls, changes: Mapping[str, Any]) -> None:
    known = {f.name for f in fields(record_cls)}
    unknown = sorted(set(changes) - known)
    if unknown:
        raise TypeError(f"{record_cls.__name__} has no field(s): {', '.join(unknown)}")


class CryptoIDDatabase:
    """
    Usage:
        db = CryptoIDDatabase()            # engine from CRYPTOID_* env vars
        await db.create_crypto_id(record)
        rec = await db.query_crypto_id(record.identifier)
    """

    def __init__(self, manager: Optional[StoreManager] = None, config: Optional[dict] = None):
        self.manager = manager or StoreManager(config=config)

    # ------------------------------------------------------------------
    # CryptoID
    # ------------------------------------------------------------------
    async def create_crypto_id(self, record: CryptoIDRecord) -> None:
        """
        Create (or overwrite) a CryptoID.
        If the record contains ``private_key`` it goes to ``self``, otherwise
        to ``others``.
        """
        target = _partition_for(record)
        value = crypto_id_encode(record)
        await self.manager.write_batch([
            WriteOp.delete(_other(target), value["identifier"]),
            WriteOp.put(target, value),
        ])
        log.debug(f"[CREATE] {value['identifier']} -> {target}")

    async def query_crypto_id(self, query: CryptoIDQuery) -> Optional[CryptoIDRecord]:
        if isinstance(query, ECKeyIdentifier):
            found = await self._locate_crypto_id(query)
            return found[1] if found else None

        for partition in (SELF, OTHERS):
            for value in await self.manager.get_partition(partition).get_all_matching():
                record = crypto_id_decode(value)
                if query(record):
                    return record
        return None

    async def update_crypto_id(
        self,
        record: Mapping[str, Any],
        mode: Union[MergeMode, str] = MergeMode.OVERWRITE,
    ) -> CryptoIDRecord:
        """
        Merge a partial record (must include ``identifier``) into the stored one.

        ``overwrite`` replaces every given field. ``append`` unions
        ``attached_profiles`` and replaces the other given fields.
        If ``private_key`` appears or disappears the record moves between
        ``self`` and ``others``.
        """
        mode = MergeMode(mode)
        changes = dict(record)
        identifier = changes.pop("identifier")
        _check_fields(CryptoIDRecord, changes)

        found = await self._locate_crypto_id(identifier)
        if found is None:
            raise NotFoundError(f"CryptoID not found: {encode(identifier)}")
        old_partition, existing = found

        if mode is MergeMode.APPEND and "attached_profiles" in changes:
            changes["attached_profiles"] = set(existing.attached_profiles) | set(changes["attached_profiles"])
        elif "attached_profiles" in changes:
            changes["attached_profiles"] = set(changes["attached_profiles"])
        merged = replace(existing, **changes)

        new_partition = _partition_for(merged)
        value = crypto_id_encode(merged)
        if new_partition == old_partition:
            await self.manager.get_partition(new_partition).put(value)
        else:
            await self.manager.write_batch([
                WriteOp.put(new_partition, value),
                WriteOp.delete(old_partition, value["identifier"]),
            ])
            log.debug("[MOVE]", extra={"fields": {
                "identifier": value["identifier"], "from": old_partition, "to": new_partition,
            }})
        return merged

    async def delete_crypto_id(self, identifier: ECKeyIdentifier) -> None:
        key = encode(identifier)
        await self.manager.write_batch([WriteOp.delete(SELF, key), WriteOp.delete(OTHERS, key)])

    async def _locate_crypto_id(self, identifier: ECKeyIdentifier) -> Optional[Tuple[str, CryptoIDRecord]]:
        key = encode(identifier)
        for partition in (SELF, OTHERS):
            value = await self.manager.get_partition(partition).get(key)
            if value is not None:
                return partition, crypto_id_decode(value)
        return None

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------
    async def create_profile(self, record: ProfileRecord) -> None:
        await self.manager.get_partition(PROFILES).put(profile_encode(record))

    async def query_profile(self, query: ProfileQuery) -> Optional[ProfileRecord]:
        profiles = self.manager.get_partition(PROFILES)
        if isinstance(query, PersonIdentifier):
            value = await profiles.get(encode(query))
            return profile_decode(value) if value is not None else None

        for value in await profiles.get_all_matching():
            record = profile_decode(value)
            if query(record):
                return record
        return None

    async def query_profiles_by_network(self, network: str) -> List[ProfileRecord]:
        values = await self.manager.get_partition(PROFILES).get_by_index("network", network)
        return [profile_decode(v) for v in values]

    async def update_profile(self, record: Mapping[str, Any]) -> ProfileRecord:
        changes = dict(record)
        identifier = changes.pop("identifier")
        _check_fields(ProfileRecord, changes)

        existing = await self.query_profile(identifier)
        if existing is None:
            raise NotFoundError(f"Profile not found: {encode(identifier)}")
        merged = replace(existing, **changes)
        await self.manager.get_partition(PROFILES).put(profile_encode(merged))
        return merged

    async def delete_profile(self, identifier: PersonIdentifier) -> None:
        await self.manager.get_partition(PROFILES).delete(encode(identifier))

    async def close(self) -> None:
        await self.manager.close()
