"""
cryptoid_core.identifiers
-------------------------
Typed identifiers and their canonical text form.

Every identifier renders to ``<type>:<body>``; the type tag selects the
concrete class on decode, so a decoded value always carries the behavior of
its variant (e.g. ``ECKeyIdentifier.fingerprint``).

Nested identifiers inside stored records use the plain mapping form from
``to_fields()``, restored with ``identifier_from_fields()``.
"""

from __future__ import annotations
from dataclasses import dataclass, fields
from typing import Any, ClassVar, Dict, Mapping, Optional, Type, TypeVar, Union

from .crypto import compressed_point, compute_pubkey_fingerprint, curve_name
from .errors import DecodeError

IdentT = TypeVar("IdentT", bound="Identifier")

_REGISTRY: Dict[str, Type["Identifier"]] = {}


def register(cls):
    _REGISTRY[cls.type] = cls
    return cls


@dataclass(frozen=True)
class Identifier:
    type: ClassVar[str] = ""

    def _body(self) -> str:
        raise NotImplementedError

    @classmethod
    def _from_body(cls: Type[IdentT], body: str) -> IdentT:
        raise NotImplementedError

    def to_text(self) -> str:
        return f"{self.type}:{self._body()}"

    def to_fields(self) -> Dict[str, str]:
        """Plain mapping form used for identifiers nested in stored values."""
        d = {"type": self.type}
        for f in fields(self):
            d[f.name] = getattr(self, f.name)
        return d

    @staticmethod
    def from_text(text: str) -> "Identifier":
        return decode(text)

    def __str__(self) -> str:
        return self.to_text()

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.to_text() == other.to_text()

    def __hash__(self) -> int:
        return hash(self.to_text())


def _split_body(body: str) -> tuple:
    head, sep, tail = body.partition("/")
    if not sep or not head or not tail:
        raise DecodeError(f"malformed identifier body: {body!r}")
    return head, tail


def _check_parts(ident, head: str, tail: str) -> None:
    # the body is split at the first "/", so only the tail may contain one
    h, t = getattr(ident, head), getattr(ident, tail)
    if not isinstance(h, str) or not h or "/" in h:
        raise ValueError(f"{ident.type}: {head} must be a non-empty string without '/', got {h!r}")
    if not isinstance(t, str) or not t:
        raise ValueError(f"{ident.type}: {tail} must be a non-empty string, got {t!r}")


@register
@dataclass(frozen=True, eq=False)
class PersonIdentifier(Identifier):
    """Stable handle to a social profile: ``person:<network>/<user_id>``."""
    type: ClassVar[str] = "person"

    network: str
    user_id: str

    def __post_init__(self):
        _check_parts(self, "network", "user_id")

    UNKNOWN_NETWORK: ClassVar[str] = "localhost"
    UNKNOWN_USER: ClassVar[str] = "$unknown"

    def _body(self) -> str:
        return f"{self.network}/{self.user_id}"

    @classmethod
    def _from_body(cls, body: str) -> "PersonIdentifier":
        network, user_id = _split_body(body)
        return cls(network, user_id)

    @classmethod
    def unknown(cls) -> "PersonIdentifier":
        return cls(cls.UNKNOWN_NETWORK, cls.UNKNOWN_USER)

    @property
    def is_unknown(self) -> bool:
        return self.network == self.UNKNOWN_NETWORK and self.user_id == self.UNKNOWN_USER

    def friendly_to_text(self) -> str:
        return f"{self.user_id}@{self.network}"


@register
@dataclass(frozen=True, eq=False)
class GroupIdentifier(Identifier):
    type: ClassVar[str] = "group"

    network: str
    group_id: str

    def __post_init__(self):
        _check_parts(self, "network", "group_id")

    def _body(self) -> str:
        return f"{self.network}/{self.group_id}"

    @classmethod
    def _from_body(cls, body: str) -> "GroupIdentifier":
        network, group_id = _split_body(body)
        return cls(network, group_id)


@register
@dataclass(frozen=True, eq=False)
class ECKeyIdentifier(Identifier):
    """Key-based identity: ``ec_key:<curve>/<base64 compressed point>``."""
    type: ClassVar[str] = "ec_key"

    curve: str
    compressed_point: str

    def __post_init__(self):
        _check_parts(self, "curve", "compressed_point")

    def _body(self) -> str:
        return f"{self.curve}/{self.compressed_point}"

    @classmethod
    def _from_body(cls, body: str) -> "ECKeyIdentifier":
        curve, point = _split_body(body)
        return cls(curve, point)

    @classmethod
    def from_public_key(cls, public_key) -> "ECKeyIdentifier":
        return cls(curve_name(public_key), compressed_point(public_key))

    @property
    def fingerprint(self) -> str:
        return compute_pubkey_fingerprint(self.compressed_point)


def encode(identifier: Identifier) -> str:
    if not isinstance(identifier, Identifier):
        raise TypeError(f"Expected an Identifier, got {type(identifier).__name__}")
    return identifier.to_text()


def decode(text: str) -> Identifier:
    tag, sep, body = str(text).partition(":")
    cls = _REGISTRY.get(tag)
    if not sep or cls is None:
        raise DecodeError(f"unknown identifier type: {text!r}")
    return cls._from_body(body)


def identifier_from_fields(data: Mapping[str, Any]) -> Identifier:
    cls = _REGISTRY.get(data.get("type"))
    if cls is None:
        raise DecodeError(f"unknown identifier type: {data.get('type')!r}")
    try:
        return cls(**{f.name: data[f.name] for f in fields(cls)})
    except KeyError as e:
        raise DecodeError(f"{cls.type} identifier missing field {e.args[0]!r}") from None
    except ValueError as e:
        raise DecodeError(str(e)) from e


def restore(value: Union[Identifier, Mapping[str, Any], str], expected: Optional[Type[IdentT]] = None) -> IdentT:
    """
    Turn any stored form of an identifier back into its variant.

    Accepts an identifier instance, its field mapping, or its canonical text.
    If ``expected`` is given the result must be of that variant.
    """
    if isinstance(value, Identifier):
        ident = value
    elif isinstance(value, Mapping):
        ident = identifier_from_fields(value)
    elif isinstance(value, str):
        ident = decode(value)
    else:
        raise DecodeError(f"cannot restore identifier from {type(value).__name__}")

    if expected is not None and not isinstance(ident, expected):
        raise DecodeError(f"unknown type of identifier: expected {expected.type}, got {ident.type}")
    return ident
