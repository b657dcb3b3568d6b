"""
cryptoid_core.crypto
--------------------
Key material helpers for CryptoID records:

- secp256k1 key pairs: the public/private handles carried by a CryptoID
- compressed point + fingerprint: the basis of ECKeyIdentifier
- AES-GCM local keys: the symmetric ``local_key`` of records
- DER export/import: how the SQLite provider persists key handles

Callers treat key objects as opaque; only the storage layer extracts them.
"""

from __future__ import annotations
from typing import Tuple, Any, Dict
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives import serialization
import hashlib
from .utils import b64e, b64d

DEFAULT_CURVE = "secp256k1"

_CURVES = {
    "secp256k1": ec.SECP256K1,
    "secp256r1": ec.SECP256R1,
}

# --------- EC key pairs ----------
def ec_generate(curve: str = DEFAULT_CURVE) -> Tuple[ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey]:
    try:
        curve_cls = _CURVES[curve]
    except KeyError:
        raise ValueError(f"Unsupported curve: {curve}") from None
    sk = ec.generate_private_key(curve_cls())
    return sk, sk.public_key()

def curve_name(public_key: ec.EllipticCurvePublicKey) -> str:
    return public_key.curve.name

def compressed_point(public_key: ec.EllipticCurvePublicKey) -> str:
    raw = public_key.public_bytes(
        serialization.Encoding.X962,
        serialization.PublicFormat.CompressedPoint,
    )
    return b64e(raw)

def compute_pubkey_fingerprint(point_b64: str) -> str:
    """
    Compute a stable fingerprint for an EC public key.

    - Input: base64-encoded compressed point
    - Output: hex-encoded SHA256 hash truncated to 32 chars
    """
    digest = hashlib.sha256(b64d(point_b64)).hexdigest()
    return digest[:32]

# --------- Local symmetric keys ----------
def local_key_generate() -> bytes:
    return AESGCM.generate_key(bit_length=256)

# --------- Persisting key handles ----------
def export_key_handle(key: Any) -> Dict[str, str]:
    if isinstance(key, ec.EllipticCurvePrivateKey):
        der = key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        return {"kind": "ec_private", "der": b64e(der)}
    if isinstance(key, ec.EllipticCurvePublicKey):
        der = key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return {"kind": "ec_public", "der": b64e(der)}
    raise TypeError(f"Cannot export key handle of type {type(key).__name__}")

def import_key_handle(data: Dict[str, str]) -> Any:
    kind = data.get("kind")
    der = b64d(data["der"])
    if kind == "ec_private":
        return serialization.load_der_private_key(der, password=None)
    if kind == "ec_public":
        return serialization.load_der_public_key(der)
    raise ValueError(f"Unknown key handle kind: {kind}")

def is_key_handle(value: Any) -> bool:
    return isinstance(value, (ec.EllipticCurvePrivateKey, ec.EllipticCurvePublicKey))
