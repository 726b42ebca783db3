"""Signer capability and EC key handling.

The signing protocol only talks to a `Signer`; `EcdsaSigner` is the default
implementation (ECDSA over SHA-512, DER-encoded signatures) built on
`cryptography`.

Key strings are accepted in two shapes:
- PEM (``-----BEGIN ...``), private keys optionally passphrase-encrypted
- bare base64 of the DER encoding (PKCS#8 / SubjectPublicKeyInfo), as
  exchanged with other license tooling
"""

from __future__ import annotations

import base64
import binascii
import logging
import pathlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from licensing.errors import KeyFormatError

logger = logging.getLogger(__name__)

# ecdsa-with-SHA512 (ANSI X9.62)
SIGNATURE_ALGORITHM = "1.2.840.10045.4.3.4"

KeyText = Union[str, bytes]
PrivateKeyLike = Union[ec.EllipticCurvePrivateKey, KeyText]
PublicKeyLike = Union[ec.EllipticCurvePublicKey, KeyText]


# =============================================================================
# Signer capability
# =============================================================================

class Signer(ABC):
    """Produces and checks signatures over raw message bytes."""

    @abstractmethod
    def sign(self, algorithm: str, private_key: ec.EllipticCurvePrivateKey, message: bytes) -> bytes:
        """Return signature bytes over `message`."""

    @abstractmethod
    def verify(
        self,
        algorithm: str,
        public_key: ec.EllipticCurvePublicKey,
        message: bytes,
        signature: bytes,
    ) -> bool:
        """Return True when `signature` matches `message` under `public_key`."""


class EcdsaSigner(Signer):
    """ECDSA with SHA-512. Stateless; safe to share across threads."""

    def _check(self, algorithm: str) -> None:
        if algorithm != SIGNATURE_ALGORITHM:
            raise ValueError(f"Unsupported signature algorithm: {algorithm!r}")

    def sign(self, algorithm: str, private_key: ec.EllipticCurvePrivateKey, message: bytes) -> bytes:
        self._check(algorithm)
        return private_key.sign(message, ec.ECDSA(hashes.SHA512()))

    def verify(
        self,
        algorithm: str,
        public_key: ec.EllipticCurvePublicKey,
        message: bytes,
        signature: bytes,
    ) -> bool:
        self._check(algorithm)
        try:
            public_key.verify(signature, message, ec.ECDSA(hashes.SHA512()))
        except InvalidSignature:
            return False
        return True


DEFAULT_SIGNER: Signer = EcdsaSigner()


# =============================================================================
# Key loading
# =============================================================================

def _as_bytes(text: KeyText) -> bytes:
    if isinstance(text, bytes):
        return text.strip()
    return text.strip().encode("ascii", errors="strict")


def _is_pem(data: bytes) -> bool:
    return data.startswith(b"-----BEGIN")


def _der(data: bytes) -> bytes:
    try:
        return base64.b64decode(b"".join(data.split()), validate=True)
    except (binascii.Error, ValueError) as ex:
        raise KeyFormatError("key is neither PEM nor base64 DER") from ex


def load_private_key(text: PrivateKeyLike, passphrase: Optional[str] = None) -> ec.EllipticCurvePrivateKey:
    """Load an EC private key from PEM or base64 DER text."""
    if isinstance(text, ec.EllipticCurvePrivateKey):
        return text
    password = passphrase.encode("utf-8") if passphrase else None
    try:
        data = _as_bytes(text)
        if _is_pem(data):
            key = serialization.load_pem_private_key(data, password=password)
        else:
            key = serialization.load_der_private_key(_der(data), password=password)
    except KeyFormatError:
        raise
    except (ValueError, TypeError, UnsupportedAlgorithm) as ex:
        raise KeyFormatError(f"cannot load private key: {ex}") from ex
    if not isinstance(key, ec.EllipticCurvePrivateKey):
        raise KeyFormatError(f"expected an EC private key, got {type(key).__name__}")
    return key


def load_public_key(text: PublicKeyLike) -> ec.EllipticCurvePublicKey:
    """Load an EC public key from PEM or base64 DER text."""
    if isinstance(text, ec.EllipticCurvePublicKey):
        return text
    try:
        data = _as_bytes(text)
        if _is_pem(data):
            key = serialization.load_pem_public_key(data)
        else:
            key = serialization.load_der_public_key(_der(data))
    except KeyFormatError:
        raise
    except (ValueError, TypeError, UnsupportedAlgorithm) as ex:
        raise KeyFormatError(f"cannot load public key: {ex}") from ex
    if not isinstance(key, ec.EllipticCurvePublicKey):
        raise KeyFormatError(f"expected an EC public key, got {type(key).__name__}")
    return key


# =============================================================================
# Key generation
# =============================================================================

@dataclass(frozen=True)
class KeyPair:
    """PEM-encoded key pair. The private half may be passphrase-encrypted."""
    private_pem: str
    public_pem: str

    def write(self, private_path: Union[str, pathlib.Path], public_path: Union[str, pathlib.Path]) -> None:
        """Write both halves to disk (UTF-8)."""
        for path, text in ((private_path, self.private_pem), (public_path, self.public_pem)):
            p = pathlib.Path(path)
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(text, encoding="utf-8")

    @classmethod
    def from_files(
        cls,
        private_path: Union[str, pathlib.Path],
        public_path: Union[str, pathlib.Path],
    ) -> "KeyPair":
        return cls(
            private_pem=pathlib.Path(private_path).read_text(encoding="utf-8"),
            public_pem=pathlib.Path(public_path).read_text(encoding="utf-8"),
        )


def generate_key_pair(
    passphrase: Optional[str] = None,
    curve: Optional[ec.EllipticCurve] = None,
) -> KeyPair:
    """Generate a new EC key pair (P-256 unless another curve is given)."""
    priv = ec.generate_private_key(curve or ec.SECP256R1())

    if passphrase:
        encryption = serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
    else:
        encryption = serialization.NoEncryption()

    private_pem = priv.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    ).decode("ascii")
    public_pem = priv.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")

    logger.debug(f"generated {priv.curve.name} key pair (encrypted={bool(passphrase)})")
    return KeyPair(private_pem=private_pem, public_pem=public_pem)


def public_key_to_base64_der(key: PublicKeyLike) -> str:
    """Public key as bare base64 of its SubjectPublicKeyInfo DER."""
    pub = load_public_key(key)
    der = pub.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return base64.b64encode(der).decode("ascii")


__all__ = [
    "SIGNATURE_ALGORITHM",
    "DEFAULT_SIGNER",
    "EcdsaSigner",
    "KeyPair",
    "Signer",
    "generate_key_pair",
    "load_private_key",
    "load_public_key",
    "public_key_to_base64_der",
]
