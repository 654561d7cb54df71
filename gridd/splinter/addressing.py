"""
Sabre and Settings State Addressing

Pure functions computing the 70-hex-character global state addresses that
Sabre transactions declare as inputs and outputs.

    namespace registry   00ec00 + sha512(namespace[:6])[:64]
    contract registry    00ec01 + sha512(name)[:64]
    contract             00ec02 + sha512(name + "," + version)[:64]
    settings             000000 + sha256(part)[:16] x 4

Addresses depend only on their arguments.
"""

from __future__ import annotations

from gridd.core import sha256_hex, sha512_hex
from gridd.splinter.errors import AddressError

# Global state prefixes
NAMESPACE_REGISTRY_PREFIX = "00ec00"
CONTRACT_REGISTRY_PREFIX = "00ec01"
CONTRACT_PREFIX = "00ec02"
SMART_PERMISSION_PREFIX = "00ec03"
SETTINGS_PREFIX = "000000"

# Pike owns the organization/agent namespace every Grid family reads from
PIKE_PREFIX = "cad11d"

ADDRESS_LENGTH = 70
_HASH_CHARS = ADDRESS_LENGTH - len(NAMESPACE_REGISTRY_PREFIX)

_SETTINGS_KEY_PARTS = 4
_SETTINGS_PART_CHARS = 16


def namespace_registry_address(namespace: str) -> str:
    """Return the state address of the namespace registry for ``namespace``.

    Only the first six characters of the namespace are hashed.

    Raises:
        AddressError: if ``namespace`` is shorter than six characters.
    """
    if len(namespace) < 6:
        raise AddressError(
            f"Namespace must be at least 6 characters long: {namespace!r}"
        )
    return NAMESPACE_REGISTRY_PREFIX + sha512_hex(namespace[:6])[:_HASH_CHARS]


def contract_registry_address(name: str) -> str:
    """Return the state address of the contract registry for ``name``."""
    return CONTRACT_REGISTRY_PREFIX + sha512_hex(name)[:_HASH_CHARS]


def contract_address(name: str, version: str) -> str:
    """Return the state address of contract ``name`` at ``version``."""
    return CONTRACT_PREFIX + sha512_hex(f"{name},{version}")[:_HASH_CHARS]


def settings_address(key: str) -> str:
    """Return the settings-namespace address of a dotted setting key.

    The key is split on the first three dots; each part (missing parts are
    empty strings) contributes the first 16 hex characters of its SHA-256.
    """
    parts = key.split(".", _SETTINGS_KEY_PARTS - 1)
    parts.extend([""] * (_SETTINGS_KEY_PARTS - len(parts)))
    return SETTINGS_PREFIX + "".join(
        sha256_hex(part)[:_SETTINGS_PART_CHARS] for part in parts
    )


# Setting listing the public keys allowed to manage Sabre registries
ADMINISTRATORS_SETTING_KEY = "sawtooth.swa.administrators"
ADMINISTRATORS_SETTING_ADDRESS = settings_address(ADMINISTRATORS_SETTING_KEY)
