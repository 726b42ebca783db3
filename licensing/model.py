"""License document model.

A `LicenseRecord` is an immutable value describing one license: what a
customer is entitled to (kind, quantity, expiration, product features,
additional attributes) and any nested sub-licenses. Signing never mutates a
record; it produces a new one.

Records reconstructed from persisted text also own `raw_body`: the canonical
bytes of the parsed document with the top-level ``Signature`` element removed.
Signatures are always checked against those bytes, never against a
re-serialization of the fields.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from licensing.builder import LicenseBuilder

# =============================================================================
# Constants
# =============================================================================

NIL_ID = uuid.UUID(int=0)

# Sentinel meaning "never expires". Serialized as "Fri, 31 Dec 9999 23:59:59 GMT";
# an explicit far-future date of the same instant is indistinguishable from it.
NEVER_EXPIRES = datetime(9999, 12, 31, 23, 59, 59, tzinfo=timezone.utc)


class LicenseKind(Enum):
    """License category."""
    NONE = "None"
    TRIAL = "Trial"
    STANDARD = "Standard"
    UNRESTRICTED = "Unrestricted"

    @classmethod
    def parse(cls, token: str) -> "LicenseKind":
        """Parse a kind token, ignoring case."""
        wanted = (token or "").strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        raise ValueError(f"Unknown license kind: {token!r}")


# =============================================================================
# Helpers
# =============================================================================

def normalize_expiration(value: Optional[datetime]) -> Optional[datetime]:
    """Bring an expiration to UTC, second precision.

    Naive datetimes are taken as UTC. The wire format carries whole seconds
    only, so microseconds are dropped here to keep round-trips exact.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise TypeError(f"expiration must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        value = value.astimezone(timezone.utc)
    except OverflowError as ex:
        raise ValueError(f"expiration out of range: {value!r}") from ex
    return value.replace(microsecond=0)


def _frozen_mapping(name: str, value: Optional[Mapping[str, str]]) -> Optional[Mapping[str, str]]:
    if not value:
        return None
    out = {}
    for k, v in value.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise TypeError(f"{name} entries must map str to str, got {k!r}: {v!r}")
        out[k] = v
    return MappingProxyType(out)


def _items(value: Optional[Mapping[str, str]]) -> Optional[frozenset]:
    return None if value is None else frozenset(value.items())


def _non_negative(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")
    return value


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class Customer:
    """License holder. Both fields are optional."""
    name: Optional[str] = None
    email: Optional[str] = None

    def __post_init__(self) -> None:
        # Empty strings are never written, so treat them as absent.
        if self.name == "":
            object.__setattr__(self, "name", None)
        if self.email == "":
            object.__setattr__(self, "email", None)


@dataclass(frozen=True)
class LicenseRecord:
    """The signed unit.

    Zero/default values (`NIL_ID`, `LicenseKind.NONE`, quantity 0, no customer,
    no expiration, version 0) are omitted from the canonical form.
    """
    id: uuid.UUID = NIL_ID
    kind: LicenseKind = LicenseKind.NONE
    quantity: int = 0
    expiration: Optional[datetime] = None
    customer: Optional[Customer] = None
    additional_attributes: Optional[Mapping[str, str]] = None
    product_features: Optional[Mapping[str, str]] = None
    sublicenses: Tuple["LicenseRecord", ...] = ()
    version: int = 0
    signature: Optional[str] = None
    raw_body: Optional[bytes] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.id, uuid.UUID):
            raise TypeError(f"id must be a UUID, got {type(self.id).__name__}")
        if not isinstance(self.kind, LicenseKind):
            raise TypeError(f"kind must be a LicenseKind, got {type(self.kind).__name__}")
        if self.customer is not None and not isinstance(self.customer, Customer):
            raise TypeError(f"customer must be a Customer, got {type(self.customer).__name__}")
        _non_negative("quantity", self.quantity)
        _non_negative("version", self.version)
        object.__setattr__(self, "expiration", normalize_expiration(self.expiration))
        object.__setattr__(
            self, "additional_attributes",
            _frozen_mapping("additional_attributes", self.additional_attributes),
        )
        object.__setattr__(
            self, "product_features",
            _frozen_mapping("product_features", self.product_features),
        )
        subs = tuple(self.sublicenses or ())
        for sub in subs:
            if not isinstance(sub, LicenseRecord):
                raise TypeError(f"sublicenses must be LicenseRecord values, got {type(sub).__name__}")
        object.__setattr__(self, "sublicenses", subs)
        if self.signature == "":
            object.__setattr__(self, "signature", None)
        if self.raw_body is not None and not isinstance(self.raw_body, bytes):
            raise TypeError(f"raw_body must be bytes, got {type(self.raw_body).__name__}")

    def __hash__(self) -> int:
        return hash((
            self.id, self.kind, self.quantity, self.expiration, self.customer,
            _items(self.additional_attributes), _items(self.product_features),
            self.sublicenses, self.version, self.signature,
        ))

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def expires_at(self) -> datetime:
        """Expiration, with the never-expires sentinel when none was set."""
        return self.expiration if self.expiration is not None else NEVER_EXPIRES

    @property
    def never_expires(self) -> bool:
        return self.expires_at == NEVER_EXPIRES

    @property
    def is_signed(self) -> bool:
        return self.signature is not None

    @property
    def is_verifiable(self) -> bool:
        """True when the record has both a signature and a retained raw body."""
        return self.signature is not None and self.raw_body is not None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the license has expired at `now` (default: current UTC time)."""
        if self.never_expires:
            return False
        now = normalize_expiration(now or datetime.now(timezone.utc))
        return self.expires_at < now

    # -------------------------------------------------------------------------
    # Construction / persistence
    # -------------------------------------------------------------------------

    @staticmethod
    def new() -> "LicenseBuilder":
        """Start building a new license."""
        from licensing.builder import LicenseBuilder

        return LicenseBuilder()

    @classmethod
    def load(cls, text: Any) -> "LicenseRecord":
        """Parse a persisted license document (str or bytes)."""
        from licensing.canonical import loads

        return loads(text)

    def to_xml(self, pretty: bool = True) -> str:
        """Persisted text form, including the signature when present."""
        from licensing.canonical import dumps

        return dumps(self, pretty=pretty)

    def __str__(self) -> str:
        return self.to_xml(pretty=True)


__all__ = [
    "NIL_ID",
    "NEVER_EXPIRES",
    "LicenseKind",
    "Customer",
    "LicenseRecord",
    "normalize_expiration",
]
