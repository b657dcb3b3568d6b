# cryptoid_core/errors.py
from __future__ import annotations


class CryptoIDError(Exception):
    pass


class DecodeError(CryptoIDError, ValueError):
    """Unknown or unsupported identifier variant met while decoding."""


class NotFoundError(CryptoIDError, LookupError):
    pass


class SchemaError(CryptoIDError):
    """Schema upgrade cannot proceed (unsupported start version or downgrade)."""


class StorageError(CryptoIDError):
    pass
