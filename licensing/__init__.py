"""Signed license documents.

Build a license with `LicenseRecord.new()`, sign it with an EC private key,
persist it as XML and verify it later against the retained signed body.
"""

__version__ = "0.1.0"

from licensing.builder import LicenseBuilder
from licensing.canonical import canonical_bytes, dumps, loads
from licensing.errors import (
    ConfigError,
    KeyFormatError,
    LicensingError,
    MalformedRecord,
    MissingRawBody,
    MissingSignature,
    SigningError,
    VerificationError,
)
from licensing.keys import (
    SIGNATURE_ALGORITHM,
    EcdsaSigner,
    KeyPair,
    Signer,
    generate_key_pair,
    load_private_key,
    load_public_key,
)
from licensing.model import NEVER_EXPIRES, NIL_ID, Customer, LicenseKind, LicenseRecord
from licensing.signing import SignatureCheck, SignatureStatus, check_signature, sign, verify
from licensing.validation import ValidationFailure, iter_sublicenses, validate_license

__all__ = [
    "__version__",
    "ConfigError",
    "Customer",
    "EcdsaSigner",
    "KeyFormatError",
    "KeyPair",
    "LicenseBuilder",
    "LicenseKind",
    "LicenseRecord",
    "LicensingError",
    "MalformedRecord",
    "MissingRawBody",
    "MissingSignature",
    "NEVER_EXPIRES",
    "NIL_ID",
    "SIGNATURE_ALGORITHM",
    "SignatureCheck",
    "SignatureStatus",
    "Signer",
    "SigningError",
    "ValidationFailure",
    "VerificationError",
    "canonical_bytes",
    "check_signature",
    "dumps",
    "generate_key_pair",
    "iter_sublicenses",
    "load_private_key",
    "load_public_key",
    "loads",
    "sign",
    "validate_license",
    "verify",
]
