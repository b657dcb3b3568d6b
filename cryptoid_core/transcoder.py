"""
cryptoid_core.transcoder
------------------------
Converts records to the mapping form the storage engine keeps, and back.

The primary identifier becomes its canonical text (the partition key).
Nested identifiers are kept as plain field mappings and restored to their
variant on the way out.
"""

from __future__ import annotations
from dataclasses import fields
from typing import Any, Dict

from .identifiers import ECKeyIdentifier, PersonIdentifier, encode, restore
from .records import CryptoIDRecord, ProfileRecord

KEY_PATH = "identifier"


def _shallow_dict(record) -> Dict[str, Any]:
    # asdict() would deep-copy key handles, which cannot be copied
    return {f.name: getattr(record, f.name) for f in fields(record)}


def profile_encode(record: ProfileRecord) -> Dict[str, Any]:
    d = _shallow_dict(record)
    d[KEY_PATH] = encode(record.identifier)
    # feeds the profiles.network index
    d["network"] = record.identifier.network
    if record.linked_crypto_id is not None:
        # variant is enforced on read
        d["linked_crypto_id"] = restore(record.linked_crypto_id).to_fields()
    return d


def profile_decode(data: Dict[str, Any]) -> ProfileRecord:
    d = dict(data)
    d.pop("network", None)
    d[KEY_PATH] = restore(d[KEY_PATH], PersonIdentifier)
    if d.get("linked_crypto_id"):
        d["linked_crypto_id"] = restore(d["linked_crypto_id"], ECKeyIdentifier)
    else:
        d["linked_crypto_id"] = None
    return ProfileRecord(**d)


def crypto_id_encode(record: CryptoIDRecord) -> Dict[str, Any]:
    d = _shallow_dict(record)
    d[KEY_PATH] = encode(record.identifier)
    profiles = (restore(p, PersonIdentifier) for p in record.attached_profiles)
    d["attached_profiles"] = [p.to_fields() for p in sorted(profiles, key=encode)]
    return d


def crypto_id_decode(data: Dict[str, Any]) -> CryptoIDRecord:
    d = dict(data)
    d[KEY_PATH] = restore(d[KEY_PATH], ECKeyIdentifier)
    d["attached_profiles"] = {
        restore(p, PersonIdentifier) for p in d.get("attached_profiles") or ()
    }
    return CryptoIDRecord(**d)
