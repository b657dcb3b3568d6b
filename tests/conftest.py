import pytest
from cryptoid_core.crypto import ec_generate, local_key_generate
from cryptoid_core.db import CryptoIDDatabase
from cryptoid_core.identifiers import ECKeyIdentifier, PersonIdentifier
from cryptoid_core.manager import StoreManager
from cryptoid_core.records import CryptoIDRecord, ProfileRecord
from cryptoid_core.storage import InMemoryStorage, SQLiteStorage


@pytest.fixture
def make_crypto_id():
    def _make(with_private=False, nickname="alice", attached=()):
        sk, pk = ec_generate()
        return CryptoIDRecord(
            identifier=ECKeyIdentifier.from_public_key(pk),
            public_key=pk,
            private_key=sk if with_private else None,
            local_key=local_key_generate(),
            nickname=nickname,
            attached_profiles=set(attached),
        )
    return _make


@pytest.fixture
def alice():
    return ProfileRecord(identifier=PersonIdentifier("facebook.com", "alice"), nickname="Alice")


@pytest.fixture(params=["memory", "sqlite"])
def db(request, tmp_path):
    if request.param == "memory":
        factory = InMemoryStorage
    else:
        factory = lambda: SQLiteStorage(str(tmp_path / "cryptoid.db"))
    return CryptoIDDatabase(StoreManager(provider_factory=factory))
