"""Canonical license document form.

The canonical form is the compatibility contract of the whole system: the
bytes produced here are what gets signed, and any drift in element order,
sparsity or date formatting breaks every license issued before the change.

Element order (each only when present):
    Id, Type, Quantity, Customer, LicenseAttributes, Expiration,
    ProductFeatures, Sublicenses, [Signature]
plus a ``version`` attribute on ``License`` when version > 0.

Canonical bytes (`canonical_bytes`) match the compact form used by existing
issuers, so licenses they signed keep verifying:
- UTF-8, no XML declaration, no indentation
- empty containers as ``<Tag />``; value elements (Id, Type, Quantity, Name,
  Email, Expiration, Feature, Attribute, Signature) always carry an explicit
  end tag, even when their text is empty
- text escapes ``& < >``; attributes escape ``& < > "`` and tab/LF/CR as
  character references

Parsing drops whitespace-only text between elements (pretty-printed and
compact documents therefore yield the same signed bytes), refuses entity
expansion and network access, and is all-or-nothing: a malformed sub-license
fails the parse of its parent.
"""

from __future__ import annotations

import copy
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from lxml import etree

from licensing.errors import MalformedRecord
from licensing.model import (
    NIL_ID,
    Customer,
    LicenseKind,
    LicenseRecord,
    normalize_expiration,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

LICENSE_TAG = "License"
SIGNATURE_TAG = "Signature"

_VALUE_ELEMENTS = frozenset({
    "Id", "Type", "Quantity", "Name", "Email", "Expiration",
    "Feature", "Attribute", SIGNATURE_TAG,
})

_DAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_RFC1123_RE = re.compile(
    r"^(?P<dow>Mon|Tue|Wed|Thu|Fri|Sat|Sun), (?P<day>\d{2}) "
    r"(?P<mon>Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec) (?P<year>\d{4}) "
    r"(?P<h>\d{2}):(?P<m>\d{2}):(?P<s>\d{2}) GMT$"
)
_UINT_RE = re.compile(r"^[0-9]+$")


def _parser() -> etree.XMLParser:
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        remove_blank_text=True,
        huge_tree=False,
    )


# =============================================================================
# RFC-1123 dates
# =============================================================================

def format_rfc1123(value: datetime) -> str:
    """Format as ``ddd, dd MMM yyyy HH:mm:ss GMT`` (English names, UTC)."""
    dt = normalize_expiration(value)
    return (
        f"{_DAYS[dt.weekday()]}, {dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year:04d} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def parse_rfc1123(text: str) -> datetime:
    """Parse the exact format produced by `format_rfc1123`.

    Any other shape, an impossible date, or a weekday that does not match the
    date raises `MalformedRecord` rather than guessing.
    """
    m = _RFC1123_RE.match(text or "")
    if not m:
        raise MalformedRecord("Expiration", f"not an RFC-1123 date: {text!r}")
    try:
        dt = datetime(
            int(m.group("year")),
            _MONTHS.index(m.group("mon")) + 1,
            int(m.group("day")),
            int(m.group("h")),
            int(m.group("m")),
            int(m.group("s")),
            tzinfo=timezone.utc,
        )
    except ValueError as ex:
        raise MalformedRecord("Expiration", f"invalid date {text!r}: {ex}") from ex
    if _DAYS[dt.weekday()] != m.group("dow"):
        raise MalformedRecord("Expiration", f"day of week does not match date: {text!r}")
    return dt


# =============================================================================
# Record -> tree
# =============================================================================

def _value_element(parent: etree._Element, tag: str, value: str) -> etree._Element:
    el = etree.SubElement(parent, tag)
    try:
        el.text = value
    except ValueError as ex:
        raise MalformedRecord(tag, f"value is not valid XML text: {value!r}") from ex
    return el


def _named_block(parent: etree._Element, block_tag: str, item_tag: str, items: Dict[str, str]) -> None:
    block = etree.SubElement(parent, block_tag)
    for name, value in items.items():
        el = _value_element(block, item_tag, value)
        try:
            el.set("name", name)
        except ValueError as ex:
            raise MalformedRecord(block_tag, f"name is not valid XML text: {name!r}") from ex


def embedded_element(record: LicenseRecord) -> etree._Element:
    """Element used when `record` is nested as a sub-license.

    A parsed child contributes its retained raw body verbatim; a built child
    contributes its fresh canonical form. Either way the child's own signature
    travels with it.
    """
    if record.raw_body is not None:
        el = parse_document(record.raw_body)
    else:
        el = to_element(record, include_signature=False)
    if record.signature is not None:
        _value_element(el, SIGNATURE_TAG, record.signature)
    return el


def to_element(record: LicenseRecord, include_signature: bool = False) -> etree._Element:
    """Build the canonical tree for `record` from its fields."""
    root = etree.Element(LICENSE_TAG)

    if record.id != NIL_ID:
        _value_element(root, "Id", str(record.id))

    if record.kind != LicenseKind.NONE:
        _value_element(root, "Type", record.kind.value)

    if record.quantity:
        _value_element(root, "Quantity", str(record.quantity))

    if record.customer is not None:
        customer = etree.SubElement(root, "Customer")
        if record.customer.name:
            _value_element(customer, "Name", record.customer.name)
        if record.customer.email:
            _value_element(customer, "Email", record.customer.email)

    if record.additional_attributes:
        _named_block(root, "LicenseAttributes", "Attribute", dict(record.additional_attributes))

    if record.expiration is not None:
        _value_element(root, "Expiration", format_rfc1123(record.expiration))

    if record.product_features:
        _named_block(root, "ProductFeatures", "Feature", dict(record.product_features))

    if record.sublicenses:
        block = etree.SubElement(root, "Sublicenses")
        for sub in record.sublicenses:
            block.append(embedded_element(sub))

    if record.version > 0:
        root.set("version", str(record.version))

    if include_signature and record.signature is not None:
        _value_element(root, SIGNATURE_TAG, record.signature)

    logger.debug(f"canonicalized license id={record.id} elements={len(root)}")
    return root


def persisted_element(record: LicenseRecord) -> etree._Element:
    """Tree used for persistence: the raw body when parsed, else the fields."""
    return embedded_element(record)


# =============================================================================
# Tree -> record
# =============================================================================

def _text(el: etree._Element) -> str:
    return "".join(el.itertext())


def _check_plain(root: etree._Element) -> None:
    for el in root.iter():
        if el.tag is etree.Entity:
            raise MalformedRecord(LICENSE_TAG, f"entity reference not supported: {el.text}")
        if isinstance(el.tag, str) and el.tag.startswith("{"):
            raise MalformedRecord(LICENSE_TAG, f"namespaced element not supported: {el.tag}")
        for key in el.attrib:
            if key.startswith("{"):
                raise MalformedRecord(LICENSE_TAG, f"namespaced attribute not supported: {key}")


def _uint(field: str, text: Optional[str]) -> int:
    s = (text or "").strip()
    if not _UINT_RE.match(s):
        raise MalformedRecord(field, f"expected a non-negative integer, got {text!r}")
    return int(s)


def _named_items(block: Optional[etree._Element], block_tag: str, item_tag: str) -> Optional[Dict[str, str]]:
    if block is None:
        return None
    out: Dict[str, str] = {}
    for el in block.findall(item_tag):
        name = el.get("name")
        if name is None:
            raise MalformedRecord(block_tag, f"{item_tag} without a name attribute")
        if name in out:
            raise MalformedRecord(block_tag, f"duplicate {item_tag} name: {name!r}")
        out[name] = _text(el)
    return out


def from_element(element: etree._Element) -> LicenseRecord:
    """Parse a ``License`` element into a record.

    `element` is left untouched; the record keeps the canonical bytes of the
    element minus its top-level Signature as `raw_body`.
    """
    if not isinstance(element.tag, str) or element.tag != LICENSE_TAG:
        raise MalformedRecord(LICENSE_TAG, f"expected <{LICENSE_TAG}> root, got {element.tag!r}")

    body = copy.deepcopy(element)
    body.tail = None
    _check_plain(body)

    id_el = body.find("Id")
    if id_el is None:
        record_id = NIL_ID
    else:
        try:
            record_id = uuid.UUID(_text(id_el).strip())
        except ValueError as ex:
            raise MalformedRecord("Id", f"not a valid identifier: {_text(id_el)!r}") from ex

    version_attr = body.get("version")
    version = 0 if version_attr is None else _uint("version", version_attr)

    type_el = body.find("Type")
    if type_el is None:
        kind = LicenseKind.NONE
    else:
        try:
            kind = LicenseKind.parse(_text(type_el))
        except ValueError as ex:
            raise MalformedRecord("Type", str(ex)) from ex

    quantity_el = body.find("Quantity")
    quantity = 0 if quantity_el is None else _uint("Quantity", _text(quantity_el))

    expiration_el = body.find("Expiration")
    expiration = None
    if expiration_el is not None and _text(expiration_el):
        expiration = parse_rfc1123(_text(expiration_el))

    product_features = _named_items(body.find("ProductFeatures"), "ProductFeatures", "Feature")
    additional_attributes = _named_items(body.find("LicenseAttributes"), "LicenseAttributes", "Attribute")

    sublicenses: List[LicenseRecord] = []
    block = body.find("Sublicenses")
    if block is not None:
        for i, child in enumerate(block.findall(LICENSE_TAG)):
            try:
                sublicenses.append(from_element(child))
            except MalformedRecord as ex:
                raise ex.nested(f"Sublicenses[{i}]") from ex

    customer = None
    customer_el = body.find("Customer")
    if customer_el is not None:
        name_el = customer_el.find("Name")
        email_el = customer_el.find("Email")
        customer = Customer(
            name=_text(name_el) if name_el is not None else None,
            email=_text(email_el) if email_el is not None else None,
        )

    signature_els = body.findall(SIGNATURE_TAG)
    if len(signature_els) > 1:
        raise MalformedRecord(SIGNATURE_TAG, "more than one top-level signature")
    signature = None
    if signature_els:
        signature = _text(signature_els[0]).strip() or None
        body.remove(signature_els[0])

    record = LicenseRecord(
        id=record_id,
        kind=kind,
        quantity=quantity,
        expiration=expiration,
        customer=customer,
        additional_attributes=additional_attributes,
        product_features=product_features,
        sublicenses=tuple(sublicenses),
        version=version,
        signature=signature,
        raw_body=canonical_bytes(body),
    )
    logger.debug(f"parsed license id={record.id} signed={record.is_signed} sublicenses={len(sublicenses)}")
    return record


# =============================================================================
# Text
# =============================================================================

def parse_document(text: Union[str, bytes]) -> etree._Element:
    """Parse persisted text into a tree."""
    data = text.encode("utf-8") if isinstance(text, str) else text
    try:
        return etree.fromstring(data, _parser())
    except etree.XMLSyntaxError as ex:
        raise MalformedRecord(LICENSE_TAG, f"unparsable document: {ex}") from ex


def loads(text: Union[str, bytes]) -> LicenseRecord:
    """Parse persisted license text."""
    return from_element(parse_document(text))


def dumps(record: LicenseRecord, pretty: bool = True) -> str:
    """Persisted license text, signature included."""
    el = persisted_element(record)
    if not pretty:
        return canonical_bytes(el).decode("utf-8")
    return etree.tostring(el, pretty_print=True, encoding="unicode")


# =============================================================================
# Canonical bytes
# =============================================================================

def _escape_text(s: str) -> str:
    return s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;").replace("\r", "&#xD;")


def _escape_attr(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("\t", "&#x9;")
        .replace("\n", "&#xA;")
        .replace("\r", "&#xD;")
    )


def _write(el: etree._Element, out: List[str]) -> None:
    tag = el.tag
    if tag is etree.Comment:
        out.append(f"<!--{el.text or ''}-->")
        return
    if tag is etree.ProcessingInstruction:
        out.append(f"<?{el.target} {el.text}?>" if el.text else f"<?{el.target}?>")
        return
    if tag is etree.Entity:
        out.append(el.text)
        return

    out.append(f"<{tag}")
    for key, value in el.attrib.items():
        out.append(f' {key}="{_escape_attr(value)}"')

    if not el.text and len(el) == 0 and tag not in _VALUE_ELEMENTS:
        out.append(" />")
        return

    out.append(">")
    if el.text:
        out.append(_escape_text(el.text))
    for child in el:
        _write(child, out)
        if child.tail:
            out.append(_escape_text(child.tail))
    out.append(f"</{tag}>")


def canonical_bytes(element: etree._Element) -> bytes:
    """Deterministic UTF-8 bytes of `element` (the signing input)."""
    out: List[str] = []
    _write(element, out)
    return "".join(out).encode("utf-8")


__all__ = [
    "LICENSE_TAG",
    "SIGNATURE_TAG",
    "canonical_bytes",
    "dumps",
    "embedded_element",
    "format_rfc1123",
    "from_element",
    "loads",
    "parse_document",
    "parse_rfc1123",
    "persisted_element",
    "to_element",
]
