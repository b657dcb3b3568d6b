# cryptoid_core/records.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Set

from .identifiers import ECKeyIdentifier, PersonIdentifier
from .utils import utcnow


@dataclass
class CryptoIDRecord:
    """
    A cryptographic identity.

    Records holding a ``private_key`` belong to the local user ("self");
    records with only a ``public_key`` belong to other people ("others").
    """
    identifier: ECKeyIdentifier
    public_key: Any
    private_key: Optional[Any] = None
    local_key: Optional[bytes] = None
    nickname: str = ""
    attached_profiles: Set[PersonIdentifier] = field(default_factory=set)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_self(self) -> bool:
        return self.private_key is not None


@dataclass
class ProfileRecord:
    """
    A social profile. Links to 0 or 1 CryptoID through ``linked_crypto_id``;
    the link is a plain identifier and may dangle.
    """
    identifier: PersonIdentifier
    nickname: Optional[str] = None
    local_key: Optional[bytes] = None
    linked_crypto_id: Optional[ECKeyIdentifier] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def network(self) -> str:
        return self.identifier.network
