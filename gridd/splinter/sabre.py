"""
Sabre Contract Provisioning Transactions

Builds the signed Sabre transactions that install one Grid contract family on
a scabbard service. For every ``ContractSpec`` four transactions are built,
always in this order:

    1. CreateContractRegistry            name, owners=[signer]
    2. CreateContract                    name, version, inputs/outputs, .scar bytes
    3. CreateNamespaceRegistry           namespace=prefix, owners=[signer]
    4. CreateNamespaceRegistryPermission namespace=prefix, read=True, write=False

Every transaction header names the Sabre family (``sabre``/``0.4``), not the
contract family being installed, and uses the signer's public key both as
signer and as batcher key.
"""

from __future__ import annotations

import logging
import pathlib
import secrets
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple, Union

from google.protobuf.message import EncodeError

from gridd.core import sha512_hex
from gridd.splinter import protocol
from gridd.splinter.addressing import (
    ADMINISTRATORS_SETTING_ADDRESS,
    PIKE_PREFIX,
    SMART_PERMISSION_PREFIX,
    contract_address,
    contract_registry_address,
    namespace_registry_address,
)
from gridd.splinter.errors import (
    AssemblyError,
    ContractLoadError,
    from_os_error,
    from_protobuf_error,
)
from gridd.splinter.signing import Signer

logger = logging.getLogger(__name__)

SABRE_FAMILY_NAME = "sabre"
SABRE_FAMILY_VERSION = "0.4"

DEFAULT_SCAR_DIR = pathlib.Path("/usr/share/scar")


# =============================================================================
# CONTRACT SPECS
# =============================================================================

@dataclass(frozen=True)
class ContractSpec:
    """Static descriptor of one contract family to provision."""
    name: str
    version: str
    prefix: str  # six hex characters owning the family's state namespace
    contract_filename: str
    scar_dir: pathlib.Path = DEFAULT_SCAR_DIR

    @property
    def contract_path(self) -> pathlib.Path:
        return pathlib.Path(self.scar_dir) / self.contract_filename

    def load_contract(self) -> bytes:
        """Read the .scar artifact.

        Raises:
            ContractLoadError: if the artifact cannot be read.
        """
        path = self.contract_path
        try:
            return path.read_bytes()
        except OSError as exc:
            raise from_os_error(exc, ContractLoadError, f"Failed to load contract {path}") from exc


PIKE_FAMILY_NAME = "pike"
PIKE_FAMILY_VERSION = "0.1"
PIKE_CONTRACT_FILENAME = "grid-pike_0.1.0-dev.scar"

PRODUCT_FAMILY_NAME = "grid_product"
PRODUCT_FAMILY_VERSION = "1.0"
PRODUCT_PREFIX = "621dee"
PRODUCT_CONTRACT_FILENAME = "grid-product_0.1.0-dev.scar"


def default_contract_specs(
    scar_dir: Union[str, pathlib.Path] = DEFAULT_SCAR_DIR,
) -> Tuple[ContractSpec, ...]:
    """Pike and Product, in the order they must be provisioned."""
    scar_dir = pathlib.Path(scar_dir)
    return (
        ContractSpec(
            name=PIKE_FAMILY_NAME,
            version=PIKE_FAMILY_VERSION,
            prefix=PIKE_PREFIX,
            contract_filename=PIKE_CONTRACT_FILENAME,
            scar_dir=scar_dir,
        ),
        ContractSpec(
            name=PRODUCT_FAMILY_NAME,
            version=PRODUCT_FAMILY_VERSION,
            prefix=PRODUCT_PREFIX,
            contract_filename=PRODUCT_CONTRACT_FILENAME,
            scar_dir=scar_dir,
        ),
    )


# =============================================================================
# ACTIONS
# =============================================================================

@dataclass(frozen=True)
class CreateContractRegistry:
    name: str
    owners: Tuple[str, ...]


@dataclass(frozen=True)
class CreateContract:
    name: str
    version: str
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...]
    contract: bytes = field(repr=False)


@dataclass(frozen=True)
class CreateNamespaceRegistry:
    namespace: str
    owners: Tuple[str, ...]


@dataclass(frozen=True)
class CreateNamespaceRegistryPermission:
    namespace: str
    contract_name: str
    read: bool
    write: bool


Action = Union[
    CreateContractRegistry,
    CreateContract,
    CreateNamespaceRegistry,
    CreateNamespaceRegistryPermission,
]


def encode_payload(action: Action):
    """Return the ``SabrePayload`` message carrying ``action``."""
    payload = protocol.SabrePayload()
    if isinstance(action, CreateContractRegistry):
        payload.action = protocol.CREATE_CONTRACT_REGISTRY
        payload.create_contract_registry.name = action.name
        payload.create_contract_registry.owners.extend(action.owners)
    elif isinstance(action, CreateContract):
        payload.action = protocol.CREATE_CONTRACT
        body = payload.create_contract
        body.name = action.name
        body.version = action.version
        body.inputs.extend(action.inputs)
        body.outputs.extend(action.outputs)
        body.contract = action.contract
    elif isinstance(action, CreateNamespaceRegistry):
        payload.action = protocol.CREATE_NAMESPACE_REGISTRY
        payload.create_namespace_registry.namespace = action.namespace
        payload.create_namespace_registry.owners.extend(action.owners)
    elif isinstance(action, CreateNamespaceRegistryPermission):
        payload.action = protocol.CREATE_NAMESPACE_REGISTRY_PERMISSION
        body = payload.create_namespace_registry_permission
        body.namespace = action.namespace
        body.contract_name = action.contract_name
        body.read = action.read
        body.write = action.write
    else:
        raise AssemblyError(f"Unsupported Sabre action: {type(action).__name__}")
    return payload


def _union(*groups: Sequence[str]) -> List[str]:
    """Concatenate address groups, dropping repeats and keeping first positions."""
    seen = set()
    out: List[str] = []
    for group in groups:
        for address in group:
            if address not in seen:
                seen.add(address)
                out.append(address)
    return out


def create_nonce() -> str:
    return secrets.token_hex(16)


# =============================================================================
# TRANSACTION BUILDER
# =============================================================================

class TransactionBuilder:
    """Builds signed Sabre transactions for contract families.

    Example:
        builder = TransactionBuilder(signer)
        txns = builder.build_for_spec(spec)   # four transactions
    """

    def __init__(
        self,
        signer: Signer,
        nonce_factory: Optional[Callable[[], str]] = None,
    ):
        self._signer = signer
        self._nonce_factory = nonce_factory or create_nonce

    def build_for_spec(self, spec: ContractSpec) -> List:
        """Build the four provisioning transactions of ``spec`` in order."""
        txns = [
            self.make_contract_registry_txn(spec.name),
            self.make_upload_contract_txn(spec),
            self.make_namespace_registry_txn(spec.prefix),
            self.make_namespace_permissions_txn(spec.name, spec.prefix),
        ]
        logger.debug(f"Built {len(txns)} transactions for contract family {spec.name}")
        return txns

    def make_contract_registry_txn(self, name: str):
        action = CreateContractRegistry(
            name=name, owners=(self._signer.public_key_hex(),)
        )
        addresses = [
            contract_registry_address(name),
            ADMINISTRATORS_SETTING_ADDRESS,
        ]
        return self.create_txn(addresses, action)

    def make_upload_contract_txn(self, spec: ContractSpec):
        contract = spec.load_contract()
        action_addresses = (SMART_PERMISSION_PREFIX, PIKE_PREFIX, spec.prefix)
        action = CreateContract(
            name=spec.name,
            version=spec.version,
            inputs=action_addresses,
            outputs=action_addresses,
            contract=contract,
        )
        addresses = _union(
            action_addresses,
            [
                contract_registry_address(spec.name),
                contract_address(spec.name, spec.version),
            ],
        )
        return self.create_txn(addresses, action)

    def make_namespace_registry_txn(self, prefix: str):
        action = CreateNamespaceRegistry(
            namespace=prefix, owners=(self._signer.public_key_hex(),)
        )
        addresses = [
            namespace_registry_address(prefix),
            ADMINISTRATORS_SETTING_ADDRESS,
        ]
        return self.create_txn(addresses, action)

    def make_namespace_permissions_txn(self, name: str, prefix: str):
        action = CreateNamespaceRegistryPermission(
            namespace=prefix, contract_name=name, read=True, write=False
        )
        addresses = _union(
            [namespace_registry_address(PIKE_PREFIX)],
            [namespace_registry_address(prefix)],
            [ADMINISTRATORS_SETTING_ADDRESS],
        )
        return self.create_txn(addresses, action)

    def create_txn(self, addresses: Sequence[str], action: Action):
        """Wrap ``action`` in a signed transaction touching ``addresses``."""
        try:
            payload_bytes = protocol.to_bytes(encode_payload(action))
        except EncodeError as exc:
            raise from_protobuf_error(exc, AssemblyError, "Failed to serialize Sabre payload") from exc

        public_key = self._signer.public_key_hex()
        header = protocol.TransactionHeader(
            family_name=SABRE_FAMILY_NAME,
            family_version=SABRE_FAMILY_VERSION,
            nonce=self._nonce_factory(),
            signer_public_key=public_key,
            batcher_public_key=public_key,
            inputs=list(addresses),
            outputs=list(addresses),
            payload_sha512=sha512_hex(payload_bytes),
        )
        try:
            header_bytes = protocol.to_bytes(header)
        except EncodeError as exc:
            raise from_protobuf_error(
                exc, AssemblyError, "Failed to serialize transaction header to bytes"
            ) from exc

        return protocol.Transaction(
            header=header_bytes,
            header_signature=self._signer.sign(header_bytes),
            payload=payload_bytes,
        )
