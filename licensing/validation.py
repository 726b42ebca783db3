"""License validation helpers.

`validate_license` applies the checks a consuming application usually runs
before trusting a license: not expired, and (given a public key) a valid
signature of the license itself. It never looks inside sub-licenses; use
`iter_sublicenses` to walk them and check each one on its own.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from licensing.canonical import format_rfc1123
from licensing.keys import PublicKeyLike, Signer
from licensing.model import LicenseRecord
from licensing.signing import SignatureStatus, check_signature


@dataclass
class ValidationFailure:
    code: str
    message: str
    how_to_resolve: str = ""


def validate_license(
    record: LicenseRecord,
    public_key: Optional[PublicKeyLike] = None,
    *,
    now: Optional[datetime] = None,
    signer: Optional[Signer] = None,
) -> List[ValidationFailure]:
    """Validate a license. Returns a list of failures (empty means valid)."""
    failures: List[ValidationFailure] = []

    if record.is_expired(now):
        failures.append(ValidationFailure(
            code="expired",
            message=f"License expired on {format_rfc1123(record.expires_at)}",
            how_to_resolve="Obtain a renewed license from the issuer.",
        ))

    if public_key is not None:
        check = check_signature(record, public_key, signer=signer)
        if check.status == SignatureStatus.MISMATCH:
            failures.append(ValidationFailure(
                code="invalid_signature",
                message="License signature does not match its contents",
                how_to_resolve="The license has been modified or was issued for another key; request a new one.",
            ))
        elif not check.ok:
            failures.append(ValidationFailure(
                code=check.status.value,
                message=check.error,
                how_to_resolve="Load the license from its signed document and supply a well-formed public key.",
            ))

    return failures


def iter_sublicenses(record: LicenseRecord, prefix: str = "") -> Iterator[Tuple[str, LicenseRecord]]:
    """Depth-first walk of nested sub-licenses.

    Yields ``(path, child)`` where path looks like ``"1"`` or ``"1/0"``
    (indices into `sublicenses` at each level). The root itself is not yielded.
    """
    for i, child in enumerate(record.sublicenses):
        path = f"{prefix}/{i}" if prefix else str(i)
        yield path, child
        yield from iter_sublicenses(child, path)


__all__ = [
    "ValidationFailure",
    "iter_sublicenses",
    "validate_license",
]
