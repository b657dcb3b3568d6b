from cryptography.hazmat.primitives.asymmetric import ec
from cryptoid_core.crypto import (
    compressed_point, compute_pubkey_fingerprint, ec_generate, export_key_handle,
    import_key_handle, is_key_handle, local_key_generate,
)
from cryptoid_core.utils import b64d
import pytest


def test_generate_and_compress():
    sk, pk = ec_generate()
    assert isinstance(sk, ec.EllipticCurvePrivateKey)
    point = b64d(compressed_point(pk))
    assert len(point) == 33 and point[0] in (2, 3)


def test_fingerprint_is_stable():
    _, pk = ec_generate()
    p = compressed_point(pk)
    assert compute_pubkey_fingerprint(p) == compute_pubkey_fingerprint(p)
    assert len(compute_pubkey_fingerprint(p)) == 32


def test_key_handle_export_import():
    sk, pk = ec_generate()
    sk2 = import_key_handle(export_key_handle(sk))
    pk2 = import_key_handle(export_key_handle(pk))
    assert compressed_point(sk2.public_key()) == compressed_point(pk)
    assert compressed_point(pk2) == compressed_point(pk)
    assert is_key_handle(sk2) and is_key_handle(pk2)


def test_unsupported_inputs():
    with pytest.raises(ValueError):
        ec_generate("curve25519")
    with pytest.raises(TypeError):
        export_key_handle(b"raw")
    assert len(local_key_generate()) == 32
    assert not is_key_handle(local_key_generate())
