"""License signing and verification.

Signing input is the canonical bytes of the license with the top-level
``Signature`` element removed. The two directions are deliberately asymmetric:

- `sign` canonicalizes the record's fields (there is nothing else to go on).
- `verify` re-serializes the *retained raw body* of a parsed record, never a
  fresh canonicalization of its fields. A record that was built but never
  parsed cannot be verified.

Sub-licenses are not verified as part of their parent. Each child carries its
own signature over its own body, and nothing binds a child to the parent it is
embedded in; callers walk `record.sublicenses` (see
`licensing.validation.iter_sublicenses`) and verify each child themselves.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from licensing.canonical import (
    SIGNATURE_TAG,
    canonical_bytes,
    loads,
    to_element,
)
from licensing.errors import (
    KeyFormatError,
    MalformedRecord,
    MissingRawBody,
    MissingSignature,
    SigningError,
    VerificationError,
)
from licensing.keys import (
    DEFAULT_SIGNER,
    SIGNATURE_ALGORITHM,
    PrivateKeyLike,
    PublicKeyLike,
    Signer,
    load_private_key,
    load_public_key,
)
from licensing.model import LicenseRecord

logger = logging.getLogger(__name__)


class SignatureStatus(Enum):
    """Outcome of a signature check."""
    VALID = "valid"
    MISMATCH = "mismatch"
    MISSING_SIGNATURE = "missing_signature"
    MISSING_RAW_BODY = "missing_raw_body"
    ERROR = "error"


@dataclass
class SignatureCheck:
    status: SignatureStatus
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status == SignatureStatus.VALID


def signing_input(record: LicenseRecord) -> bytes:
    """The exact bytes covered by the record's signature.

    Parsed records use their retained raw body; built records their canonical form.
    """
    if record.raw_body is not None:
        return record.raw_body
    return canonical_bytes(to_element(record, include_signature=False))


def sign(
    record: LicenseRecord,
    private_key: PrivateKeyLike,
    passphrase: Optional[str] = None,
    *,
    signer: Optional[Signer] = None,
) -> LicenseRecord:
    """Sign `record` and return the signed record.

    The input is never modified. Any signature it already carries is replaced.
    The result is re-parsed from the signed document, so it retains its raw
    body and verifies immediately.
    """
    signer = signer or DEFAULT_SIGNER
    try:
        key = load_private_key(private_key, passphrase)
    except KeyFormatError as ex:
        raise SigningError(f"cannot load signing key: {ex}") from ex

    try:
        body = to_element(record, include_signature=False)
    except MalformedRecord as ex:
        raise SigningError(f"cannot canonicalize license: {ex}") from ex
    message = canonical_bytes(body)
    try:
        signature = signer.sign(SIGNATURE_ALGORITHM, key, message)
    except Exception as ex:
        raise SigningError(f"signer failed: {ex}") from ex

    sig_el = body.makeelement(SIGNATURE_TAG, {})
    sig_el.text = base64.b64encode(signature).decode("ascii")
    body.append(sig_el)

    signed = loads(canonical_bytes(body))
    logger.info(f"signed license id={signed.id} bytes={len(message)}")
    return signed


def _decode_signature(signature: str) -> bytes:
    try:
        return base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError) as ex:
        raise VerificationError(f"signature is not valid base64: {ex}") from ex


def verify(
    record: LicenseRecord,
    public_key: PublicKeyLike,
    *,
    signer: Optional[Signer] = None,
    strict: bool = False,
) -> bool:
    """Verify the record's own signature against its retained raw body.

    Returns False for a record without a signature or raw body (unless
    `strict`, which raises `MissingSignature` / `MissingRawBody`) and for a
    signature that does not match. Malformed keys or signature encodings raise
    `VerificationError`.
    """
    if record.signature is None:
        if strict:
            raise MissingSignature(f"license {record.id} is not signed")
        logger.debug(f"license id={record.id} has no signature")
        return False
    if record.raw_body is None:
        if strict:
            raise MissingRawBody(f"license {record.id} was not parsed from a document")
        logger.debug(f"license id={record.id} has no raw body to verify against")
        return False

    signer = signer or DEFAULT_SIGNER
    try:
        key = load_public_key(public_key)
    except KeyFormatError as ex:
        raise VerificationError(f"cannot load verification key: {ex}") from ex

    signature = _decode_signature(record.signature)
    message = record.raw_body
    try:
        ok = signer.verify(SIGNATURE_ALGORITHM, key, message, signature)
    except ValueError as ex:
        raise VerificationError(str(ex)) from ex

    if not ok:
        logger.warning(f"signature mismatch for license id={record.id}")
    return ok


def check_signature(
    record: LicenseRecord,
    public_key: PublicKeyLike,
    *,
    signer: Optional[Signer] = None,
) -> SignatureCheck:
    """Non-raising variant of `verify` that reports why a check failed."""
    if record.signature is None:
        return SignatureCheck(SignatureStatus.MISSING_SIGNATURE, "license is not signed")
    if record.raw_body is None:
        return SignatureCheck(SignatureStatus.MISSING_RAW_BODY, "license was not parsed from a document")
    try:
        ok = verify(record, public_key, signer=signer)
    except VerificationError as ex:
        return SignatureCheck(SignatureStatus.ERROR, str(ex))
    if ok:
        return SignatureCheck(SignatureStatus.VALID)
    return SignatureCheck(SignatureStatus.MISMATCH, "signature does not match license body")


__all__ = [
    "SignatureCheck",
    "SignatureStatus",
    "check_signature",
    "sign",
    "signing_input",
    "verify",
]
