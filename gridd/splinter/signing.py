"""gridd.splinter.signing

secp256k1 signing for transaction and batch headers.

Profile / invariants:
- private keys are 32-byte scalars, hex encoded (the first line of a
  ``.priv`` key file)
- public keys are 33-byte compressed SEC1 points, hex encoded
- a signature is ECDSA over SHA-256 of the message, encoded as the compact
  64-byte ``r || s`` form (128 hex characters) with S normalised to the lower
  half of the curve order, which is what the validator's secp256k1 verifier
  accepts

Malformed key material is reported as ``SigningError``; nothing in this
module aborts the process.
"""

from __future__ import annotations

import logging
import pathlib
from dataclasses import dataclass
from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)

from gridd.splinter.errors import (
    KeyFileError,
    SigningError,
    from_crypto_error,
    from_os_error,
)

logger = logging.getLogger(__name__)

DEFAULT_KEY_DIR = pathlib.Path("/etc/grid/keys")

# Order of the secp256k1 group
_CURVE_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_SCALAR_BYTES = 32


# ---------------------------------------------------------------------------
# Key material
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Keys:
    """Hex-encoded key pair loaded once at startup and shared read-only."""
    public_key: str
    private_key: str

    def __repr__(self) -> str:
        return f"Keys(public_key={self.public_key!r}, private_key=<redacted>)"


def read_key_from_file(path: Union[str, pathlib.Path]) -> str:
    """Return the first line of a key file.

    Raises:
        KeyFileError: if the file is missing, unreadable, or its first line
            is empty.
    """
    path = pathlib.Path(path)
    if not path.exists():
        raise KeyFileError(f"No such key file: {path}")
    try:
        contents = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise from_os_error(exc, KeyFileError, f"Failed to read key file {path}") from exc
    except UnicodeDecodeError as exc:
        raise KeyFileError(f"Key file is not valid UTF-8: {path}", cause=exc) from exc

    lines = contents.splitlines()
    key = lines[0].strip() if lines else ""
    if not key:
        raise KeyFileError(f"Empty key file: {path}")
    return key


def load_keys(
    key_name: str, key_dir: Union[str, pathlib.Path] = DEFAULT_KEY_DIR
) -> Keys:
    """Load ``{key_dir}/{key_name}.priv`` and ``{key_dir}/{key_name}.pub``."""
    key_dir = pathlib.Path(key_dir)
    private_path = key_dir / f"{key_name}.priv"
    public_path = key_dir / f"{key_name}.pub"

    if not private_path.exists():
        raise KeyFileError(f"No such private key file: {private_path}")
    if not public_path.exists():
        raise KeyFileError(f"No such public key file: {public_path}")

    keys = Keys(
        public_key=read_key_from_file(public_path),
        private_key=read_key_from_file(private_path),
    )
    logger.debug(f"Loaded key pair '{key_name}' from {key_dir}")
    return keys


# ---------------------------------------------------------------------------
# Signature encoding
# ---------------------------------------------------------------------------


def _compact_from_der(der: bytes) -> bytes:
    r, s = decode_dss_signature(der)
    if s > _CURVE_ORDER // 2:
        s = _CURVE_ORDER - s
    return r.to_bytes(_SCALAR_BYTES, "big") + s.to_bytes(_SCALAR_BYTES, "big")


def _der_from_compact(compact: bytes) -> bytes:
    if len(compact) != 2 * _SCALAR_BYTES:
        raise ValueError(f"compact signature must be 64 bytes, got {len(compact)}")
    r = int.from_bytes(compact[:_SCALAR_BYTES], "big")
    s = int.from_bytes(compact[_SCALAR_BYTES:], "big")
    return encode_dss_signature(r, s)


def _private_key_from_hex(private_key_hex: str) -> ec.EllipticCurvePrivateKey:
    try:
        raw = bytes.fromhex(private_key_hex)
    except ValueError as exc:
        raise from_crypto_error(exc, SigningError, "Private key is not valid hex") from exc
    if len(raw) != _SCALAR_BYTES:
        raise SigningError(f"Private key must be {_SCALAR_BYTES} bytes, got {len(raw)}")
    scalar = int.from_bytes(raw, "big")
    if not 0 < scalar < _CURVE_ORDER:
        raise SigningError("Private key is out of range")
    try:
        return ec.derive_private_key(scalar, ec.SECP256K1())
    except ValueError as exc:
        raise from_crypto_error(exc, SigningError, "Private key is out of range") from exc


def public_key_from_hex(public_key_hex: str) -> ec.EllipticCurvePublicKey:
    """Parse a hex-encoded SEC1 point (compressed or uncompressed)."""
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(
            ec.SECP256K1(), bytes.fromhex(public_key_hex)
        )
    except ValueError as exc:
        raise from_crypto_error(exc, SigningError, "Public key is malformed") from exc


def verify(public_key_hex: str, message: bytes, signature_hex: str) -> bool:
    """Return True if ``signature_hex`` is a valid signature of ``message``."""
    public_key = public_key_from_hex(public_key_hex)
    try:
        der = _der_from_compact(bytes.fromhex(signature_hex))
        public_key.verify(der, message, ec.ECDSA(hashes.SHA256()))
    except (InvalidSignature, ValueError):
        return False
    return True


# ---------------------------------------------------------------------------
# Signer
# ---------------------------------------------------------------------------


class Signer:
    """Signs canonical header bytes with one private key.

    Example:
        signer = Signer.from_keys(keys)
        signature = signer.sign(header_bytes)
        assert verify(signer.public_key_hex(), header_bytes, signature)
    """

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        self._private_key = private_key
        self._public_key_hex = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.X962,
            format=serialization.PublicFormat.CompressedPoint,
        ).hex()

    @classmethod
    def from_private_key_hex(cls, private_key_hex: str) -> "Signer":
        """Create a signer from a hex scalar.

        Raises:
            SigningError: if the key material is malformed.
        """
        return cls(_private_key_from_hex(private_key_hex.strip()))

    @classmethod
    def from_keys(cls, keys: Keys) -> "Signer":
        signer = cls.from_private_key_hex(keys.private_key)
        if keys.public_key and keys.public_key.lower() != signer.public_key_hex():
            logger.warning(
                "Public key file does not match the private key; "
                "signing with the key derived from the private key"
            )
        return signer

    @classmethod
    def generate(cls) -> "Signer":
        """Create a signer for a fresh random key."""
        return cls(ec.generate_private_key(ec.SECP256K1()))

    def private_key_hex(self) -> str:
        scalar = self._private_key.private_numbers().private_value
        return scalar.to_bytes(_SCALAR_BYTES, "big").hex()

    def public_key_hex(self) -> str:
        return self._public_key_hex

    def sign(self, message: bytes) -> str:
        """Return the hex compact signature of ``message``."""
        try:
            der = self._private_key.sign(bytes(message), ec.ECDSA(hashes.SHA256()))
        except (TypeError, ValueError) as exc:
            raise from_crypto_error(exc, SigningError, "Failed to sign message") from exc
        return _compact_from_der(der).hex()
