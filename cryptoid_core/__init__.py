"""
CryptoID Core Package
=====================
Persisted store for cryptographic identities (CryptoIDs) and social profiles.

Provides:
- Typed identifiers with canonical text encoding
- CryptoID / profile records and their storage transcoding
- Lazily opened, versioned storage (SQLite default, in-memory)
- Async CRUD with merge updates that keep ``self``/``others`` disjoint
"""

from .db import CryptoIDDatabase, MergeMode
from .errors import CryptoIDError, DecodeError, NotFoundError, SchemaError, StorageError
from .identifiers import ECKeyIdentifier, GroupIdentifier, Identifier, PersonIdentifier, decode, encode
from .manager import StoreManager
from .records import CryptoIDRecord, ProfileRecord

__all__ = [
    "CryptoIDDatabase",
    "MergeMode",
    "StoreManager",
    "CryptoIDRecord",
    "ProfileRecord",
    "Identifier",
    "PersonIdentifier",
    "GroupIdentifier",
    "ECKeyIdentifier",
    "encode",
    "decode",
    "CryptoIDError",
    "DecodeError",
    "NotFoundError",
    "SchemaError",
    "StorageError",
]
