# tests/test_storage.py

from datetime import datetime, timezone
import pytest
from cryptoid_core.crypto import compressed_point, ec_generate
from cryptoid_core.errors import SchemaError, StorageError
from cryptoid_core.manager import StoreManager
from cryptoid_core.storage import InMemoryStorage, SQLiteStorage, WriteOp, load_storage_provider


def _upgrade(provider, old, new):
    StoreManager().upgrade(provider, old, new)


@pytest.fixture(params=["memory", "sqlite"])
def provider(request, tmp_path):
    if request.param == "memory":
        p = InMemoryStorage()
    else:
        p = SQLiteStorage(str(tmp_path / "state.db"))
    p.open("test-db", 1, _upgrade)
    yield p
    p.close()


def test_schema_v1(provider):
    assert provider.partition_names() == ["others", "profiles", "self"]
    assert provider.index_names("profiles") == ["network"]
    assert provider.index_names("self") == []


def test_put_get_delete(provider):
    provider.put("self", {"identifier": "ec_key:secp256k1/AA", "nickname": "me"})
    assert provider.get("self", "ec_key:secp256k1/AA")["nickname"] == "me"
    assert provider.get("others", "ec_key:secp256k1/AA") is None

    # upsert
    provider.put("self", {"identifier": "ec_key:secp256k1/AA", "nickname": "me2"})
    assert [v["nickname"] for v in provider.scan("self")] == ["me2"]

    provider.delete("self", "ec_key:secp256k1/AA")
    provider.delete("self", "ec_key:secp256k1/AA")
    assert provider.get("self", "ec_key:secp256k1/AA") is None


def test_index_get(provider):
    provider.put("profiles", {"identifier": "person:facebook.com/a", "network": "facebook.com"})
    provider.put("profiles", {"identifier": "person:facebook.com/b", "network": "facebook.com"})
    provider.put("profiles", {"identifier": "person:twitter.com/c", "network": "twitter.com"})
    got = provider.index_get("profiles", "network", "facebook.com")
    assert [v["identifier"] for v in got] == ["person:facebook.com/a", "person:facebook.com/b"]
    with pytest.raises(StorageError):
        provider.index_get("self", "network", "facebook.com")


def test_values_keep_rich_types(provider):
    sk, pk = ec_generate()
    now = datetime.now(timezone.utc)
    provider.put("self", {
        "identifier": "k",
        "public_key": pk,
        "private_key": sk,
        "local_key": b"\x00\x01secret",
        "created_at": now,
        "attached_profiles": [{"type": "person", "network": "n", "user_id": "u"}],
    })
    got = provider.get("self", "k")
    assert compressed_point(got["public_key"]) == compressed_point(pk)
    assert compressed_point(got["private_key"].public_key()) == compressed_point(pk)
    assert got["local_key"] == b"\x00\x01secret"
    assert got["created_at"] == now
    assert got["attached_profiles"] == [{"type": "person", "network": "n", "user_id": "u"}]


def test_stored_value_is_a_copy(provider):
    value = {"identifier": "k", "tags": ["a"]}
    provider.put("others", value)
    value["tags"].append("b")
    got = provider.get("others", "k")
    got["tags"].append("c")
    assert provider.get("others", "k")["tags"] == ["a"]


def test_write_batch_is_atomic(provider):
    provider.put("others", {"identifier": "k", "nickname": "old"})
    with pytest.raises(StorageError):
        provider.write_batch([
            WriteOp.delete("others", "k"),
            WriteOp.put("self", {"identifier": "k", "nickname": "new"}),
            WriteOp.put("nowhere", {"identifier": "k"}),
        ])
    assert provider.get("others", "k")["nickname"] == "old"
    assert provider.get("self", "k") is None

    provider.write_batch([
        WriteOp.delete("others", "k"),
        WriteOp.put("self", {"identifier": "k", "nickname": "new"}),
    ])
    assert provider.get("others", "k") is None
    assert provider.get("self", "k")["nickname"] == "new"


def test_contract_misuse(provider):
    with pytest.raises(StorageError):
        provider.get("nowhere", "k")
    with pytest.raises(StorageError):
        provider.put("self", {"identifier": 123})
    with pytest.raises(StorageError):
        provider.create_partition("extra", "identifier")


def test_open_same_version_skips_upgrade(provider):
    calls = []
    provider.open("test-db", 1, lambda *a: calls.append(a))
    assert calls == []


def test_open_older_version_is_schema_error(provider):
    with pytest.raises(SchemaError):
        provider.open("test-db", 0, _upgrade)


def test_failed_upgrade_leaves_version(tmp_path):
    def broken(p, old, new):
        p.create_partition("self", "identifier")
        raise RuntimeError("boom")

    for p in (InMemoryStorage(), SQLiteStorage(str(tmp_path / "b.db"))):
        with pytest.raises(RuntimeError):
            p.open("test-db", 1, broken)
        assert p.version == 0
        assert p.partition_names() == []


def test_sqlite_persists_across_reopen(tmp_path):
    path = str(tmp_path / "state.db")
    s = SQLiteStorage(path)
    s.open("test-db", 1, _upgrade)
    s.put("profiles", {"identifier": "person:facebook.com/a", "network": "facebook.com"})
    s.close()

    s = SQLiteStorage(path)
    s.open("test-db", 1, lambda *a: pytest.fail("upgrade must not run again"))
    assert s.version == 1
    assert s.get("profiles", "person:facebook.com/a")["network"] == "facebook.com"
    cur = s.db.execute("PRAGMA index_list('p_profiles')")
    assert any(row[1] == "idx_profiles_network" for row in cur.fetchall())
    s.close()


def test_unique_index(tmp_path):
    def up(p, old, new):
        p.create_partition("things", "identifier")
        p.create_index("things", "by_name", "name", unique=True)

    for p in (InMemoryStorage(), SQLiteStorage(str(tmp_path / "u.db"))):
        p.open("u", 1, up)
        p.put("things", {"identifier": "a", "name": "x"})
        p.put("things", {"identifier": "a", "name": "x"})
        with pytest.raises(StorageError):
            p.put("things", {"identifier": "b", "name": "x"})


def test_storage_factory_modes(monkeypatch, tmp_path):
    monkeypatch.delenv("CRYPTOID_STORAGE_PROVIDER", raising=False)
    monkeypatch.setenv("CRYPTOID_DB_PATH", str(tmp_path / "env.db"))
    s = load_storage_provider()
    assert isinstance(s, SQLiteStorage) and s.path == str(tmp_path / "env.db")
    s.close()

    monkeypatch.setenv("CRYPTOID_STORAGE_PROVIDER", "memory")
    assert isinstance(load_storage_provider(), InMemoryStorage)

    s = load_storage_provider({"provider": "sqlite", "sqlite_path": tmp_path / "cfg.db"})
    assert isinstance(s, SQLiteStorage)
    s.close()

    with pytest.raises(ValueError):
        load_storage_provider({"provider": "postgres"})


def test_upgrade_step_can_migrate_data(tmp_path):
    def up(p, old, new):
        if old < 1:
            _upgrade(p, 0, 1)
        p.put("profiles", {"identifier": "person:localhost/$unknown", "network": "localhost"})
        p.write_batch([WriteOp.put("others", {"identifier": "k"})])
        p.delete("others", "k")

    for p in (InMemoryStorage(), SQLiteStorage(str(tmp_path / "m.db"))):
        p.open("m", 1, up)
        assert p.version == 1
        assert [v["identifier"] for v in p.scan("profiles")] == ["person:localhost/$unknown"]
        assert p.scan("others") == []
        # the connection is back to autocommit
        p.put("self", {"identifier": "after"})
        assert p.get("self", "after") is not None
        p.close()


def test_failed_migration_rolls_back_data(tmp_path):
    def up(p, old, new):
        _upgrade(p, old, new)
        p.put("profiles", {"identifier": "person:localhost/x", "network": "localhost"})
        raise RuntimeError("boom")

    path = str(tmp_path / "r.db")
    with pytest.raises(RuntimeError):
        SQLiteStorage(path).open("r", 1, up)
    s = SQLiteStorage(path)
    assert s.version == 0
    assert s.partition_names() == []
    s.close()
