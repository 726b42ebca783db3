"""Exception taxonomy for license parsing, signing and verification.

A signature that simply does not match is *not* an error: `verify()` returns
False for it. Everything below describes input the caller has to fix.
"""

from __future__ import annotations

from typing import Optional


class LicensingError(Exception):
    """Base class for all licensing errors."""
    pass


class MalformedRecord(LicensingError, ValueError):
    """Structural or parse failure of a license document.

    `field` names the offending element (a dotted path for sub-licenses,
    e.g. ``Sublicenses[1].Quantity``).
    """

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

    def nested(self, prefix: str) -> "MalformedRecord":
        """Return a copy whose field path is prefixed (used for sub-licenses)."""
        return MalformedRecord(f"{prefix}.{self.field}", self.message)


class MissingSignature(LicensingError):
    """Verification was requested for a record that carries no signature."""
    pass


class MissingRawBody(LicensingError):
    """Verification was requested for a record that was never parsed.

    Only parsed records retain the original signed body; a freshly built record
    has no canonical byte history to check against.
    """
    pass


class KeyFormatError(LicensingError):
    """Key material could not be decoded or has the wrong type."""
    pass


class VerificationError(LicensingError):
    """Key or signature encoding is malformed (distinct from a mismatch)."""
    pass


class SigningError(LicensingError):
    """The signer failed to produce a signature."""
    pass


class ConfigError(LicensingError):
    """Configuration error."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key
