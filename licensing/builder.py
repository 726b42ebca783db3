"""Fluent license builder.

`LicenseBuilder` accumulates license fields and materializes an immutable
`LicenseRecord` with `create()`. Setters overwrite earlier values; the feature
and attribute maps and the sub-license list also support adding one entry at
a time. Only type constraints are checked: whether a feature set makes sense
for a given kind is the caller's business.

Example:
    record = (
        LicenseRecord.new()
        .with_unique_identifier(uuid.uuid4())
        .of_kind(LicenseKind.STANDARD)
        .with_maximum_utilization(5)
        .licensed_to("Jane Doe", "jane@example.com")
        .expires_at(datetime(2030, 1, 1, tzinfo=timezone.utc))
        .add_product_feature("seats", "5")
        .create_and_sign(private_pem, passphrase)
    )
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from licensing.keys import PrivateKeyLike, Signer
from licensing.model import (
    NEVER_EXPIRES,
    NIL_ID,
    Customer,
    LicenseKind,
    LicenseRecord,
)
from licensing.signing import sign


# Characters outside the XML 1.0 Char production.
_XML_ILLEGAL_RE = re.compile(r"[^\u0009\u000A\u000D\u0020-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]")


def _require_str(name: str, value: object) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    bad = _XML_ILLEGAL_RE.search(value)
    if bad:
        raise ValueError(f"{name} contains a character not allowed in XML: {bad.group()!r}")
    return value


class LicenseBuilder:
    """Mutable accumulator for a new license. Not shared between threads."""

    def __init__(self) -> None:
        self._id: uuid.UUID = NIL_ID
        self._kind: Optional[LicenseKind] = None
        self._quantity: int = 0
        self._expiration: Optional[datetime] = None
        self._customer: Optional[Customer] = None
        self._version: int = 0
        self._product_features: Dict[str, str] = {}
        self._additional_attributes: Dict[str, str] = {}
        self._sublicenses: List[LicenseRecord] = []

    # -------------------------------------------------------------------------
    # Accumulated state
    # -------------------------------------------------------------------------

    @property
    def id(self) -> uuid.UUID:
        return self._id

    @property
    def kind(self) -> Optional[LicenseKind]:
        return self._kind

    @property
    def quantity(self) -> int:
        return self._quantity

    @property
    def expiration(self) -> Optional[datetime]:
        return self._expiration

    @property
    def customer(self) -> Optional[Customer]:
        return self._customer

    @property
    def version(self) -> int:
        return self._version

    @property
    def product_features(self) -> Mapping[str, str]:
        return MappingProxyType(self._product_features)

    @property
    def additional_attributes(self) -> Mapping[str, str]:
        return MappingProxyType(self._additional_attributes)

    @property
    def sublicenses(self) -> Tuple[LicenseRecord, ...]:
        return tuple(self._sublicenses)

    # -------------------------------------------------------------------------
    # Setters
    # -------------------------------------------------------------------------

    def with_unique_identifier(self, license_id: Union[uuid.UUID, str]) -> "LicenseBuilder":
        """Set the license id (a UUID or its string form)."""
        if isinstance(license_id, str):
            license_id = uuid.UUID(license_id)
        if not isinstance(license_id, uuid.UUID):
            raise TypeError(f"license id must be a UUID, got {type(license_id).__name__}")
        self._id = license_id
        return self

    def expires_at(self, date: datetime) -> "LicenseBuilder":
        """Set the expiration. Naive datetimes are taken as UTC."""
        if not isinstance(date, datetime):
            raise TypeError(f"expiration must be a datetime, got {type(date).__name__}")
        self._expiration = date
        return self

    def of_kind(self, kind: Union[LicenseKind, str]) -> "LicenseBuilder":
        if isinstance(kind, str):
            kind = LicenseKind.parse(kind)
        if not isinstance(kind, LicenseKind):
            raise TypeError(f"kind must be a LicenseKind, got {type(kind).__name__}")
        self._kind = kind
        return self

    def with_maximum_utilization(self, quantity: int) -> "LicenseBuilder":
        """Set the seat/usage count."""
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise TypeError(f"quantity must be an int, got {type(quantity).__name__}")
        if quantity < 0:
            raise ValueError(f"quantity must be non-negative, got {quantity}")
        self._quantity = quantity
        return self

    def licensed_to(self, name: Optional[str], email: Optional[str] = None) -> "LicenseBuilder":
        """Set the license holder, replacing any previous one."""
        if name is not None:
            _require_str("customer name", name)
        if email is not None:
            _require_str("customer email", email)
        self._customer = Customer(name=name, email=email)
        return self

    def with_version(self, version: int) -> "LicenseBuilder":
        """Set the document version; 0 leaves it unset."""
        if isinstance(version, bool) or not isinstance(version, int):
            raise TypeError(f"version must be an int, got {type(version).__name__}")
        if version < 0:
            raise ValueError(f"version must be non-negative, got {version}")
        self._version = version
        return self

    def with_product_features(self, features: Mapping[str, str]) -> "LicenseBuilder":
        """Replace all product features."""
        self._product_features.clear()
        for name, value in features.items():
            self.add_product_feature(name, value)
        return self

    def add_product_feature(self, name: str, value: str) -> "LicenseBuilder":
        self._product_features[_require_str("feature name", name)] = _require_str("feature value", value)
        return self

    def with_additional_attributes(self, attributes: Mapping[str, str]) -> "LicenseBuilder":
        """Replace all additional attributes."""
        self._additional_attributes.clear()
        for name, value in attributes.items():
            self.add_additional_attribute(name, value)
        return self

    def add_additional_attribute(self, name: str, value: str) -> "LicenseBuilder":
        self._additional_attributes[_require_str("attribute name", name)] = _require_str("attribute value", value)
        return self

    def with_sublicenses(self, sublicenses: Iterable[LicenseRecord]) -> "LicenseBuilder":
        """Replace all sub-licenses."""
        self._sublicenses.clear()
        for sub in sublicenses:
            self.add_sublicense(sub)
        return self

    def add_sublicense(self, sublicense: LicenseRecord) -> "LicenseBuilder":
        """Attach a complete (usually already signed) license as a child."""
        if not isinstance(sublicense, LicenseRecord):
            raise TypeError(f"sublicense must be a LicenseRecord, got {type(sublicense).__name__}")
        self._sublicenses.append(sublicense)
        return self

    # -------------------------------------------------------------------------
    # Materialization
    # -------------------------------------------------------------------------

    def create(self) -> LicenseRecord:
        """Materialize an unsigned record.

        An unset expiration becomes the never-expires sentinel and is written
        explicitly; an unset kind becomes `LicenseKind.NONE`; empty maps are
        absent from the document.
        """
        return LicenseRecord(
            id=self._id,
            kind=self._kind or LicenseKind.NONE,
            quantity=self._quantity,
            expiration=self._expiration or NEVER_EXPIRES,
            customer=self._customer,
            additional_attributes=dict(self._additional_attributes) or None,
            product_features=dict(self._product_features) or None,
            sublicenses=tuple(self._sublicenses),
            version=self._version,
        )

    def create_and_sign(
        self,
        private_key: PrivateKeyLike,
        passphrase: Optional[str] = None,
        signer: Optional[Signer] = None,
    ) -> LicenseRecord:
        """`create()` followed by `licensing.signing.sign()`."""
        return sign(self.create(), private_key, passphrase, signer=signer)


__all__ = ["LicenseBuilder"]
