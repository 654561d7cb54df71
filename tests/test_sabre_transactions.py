"""
Sabre provisioning transactions: order, headers, addresses and signatures.
"""

import hashlib
import itertools

import pytest

from gridd.splinter import protocol
from gridd.splinter.addressing import (
    ADMINISTRATORS_SETTING_ADDRESS,
    PIKE_PREFIX,
    SMART_PERMISSION_PREFIX,
    contract_address,
    contract_registry_address,
    namespace_registry_address,
)
from gridd.splinter.errors import ContractLoadError, ErrorOrigin
from gridd.splinter.sabre import (
    PRODUCT_PREFIX,
    ContractSpec,
    TransactionBuilder,
)
from gridd.splinter.signing import verify

from conftest import PIKE_SCAR_BYTES, PRODUCT_SCAR_BYTES


def _header(txn):
    header = protocol.TransactionHeader()
    header.ParseFromString(txn.header)
    return header


def _payload(txn):
    payload = protocol.SabrePayload()
    payload.ParseFromString(txn.payload)
    return payload


@pytest.fixture
def builder(signer):
    return TransactionBuilder(signer)


@pytest.fixture
def pike(specs):
    return specs[0]


@pytest.fixture
def product(specs):
    return specs[1]


class TestBuildForSpec:

    def test_four_transactions_in_provisioning_order(self, builder, product):
        txns = builder.build_for_spec(product)
        actions = [_payload(t).action for t in txns]
        assert actions == [
            protocol.CREATE_CONTRACT_REGISTRY,
            protocol.CREATE_CONTRACT,
            protocol.CREATE_NAMESPACE_REGISTRY,
            protocol.CREATE_NAMESPACE_REGISTRY_PERMISSION,
        ]

    def test_headers_name_sabre_family_and_signer(self, builder, product, signer):
        for txn in builder.build_for_spec(product):
            header = _header(txn)
            assert header.family_name == "sabre"
            assert header.family_version == "0.4"
            assert header.signer_public_key == signer.public_key_hex()
            assert header.batcher_public_key == signer.public_key_hex()
            assert list(header.inputs) == list(header.outputs)
            assert header.payload_sha512 == hashlib.sha512(txn.payload).hexdigest()

    def test_header_signatures_verify(self, builder, product, signer):
        for txn in builder.build_for_spec(product):
            assert verify(signer.public_key_hex(), txn.header, txn.header_signature)

    def test_nonces_are_unique(self, builder, product):
        nonces = [_header(t).nonce for t in builder.build_for_spec(product)]
        assert len(set(nonces)) == len(nonces)
        assert all(len(n) == 32 for n in nonces)

    def test_nonce_factory_is_used(self, signer, product):
        counter = itertools.count()
        builder = TransactionBuilder(signer, nonce_factory=lambda: f"nonce-{next(counter)}")
        nonces = [_header(t).nonce for t in builder.build_for_spec(product)]
        assert nonces == ["nonce-0", "nonce-1", "nonce-2", "nonce-3"]


class TestTransactionContents:

    def test_contract_registry(self, builder, product, signer):
        txn = builder.make_contract_registry_txn(product.name)
        payload = _payload(txn)
        assert payload.create_contract_registry.name == "grid_product"
        assert list(payload.create_contract_registry.owners) == [signer.public_key_hex()]
        assert list(_header(txn).inputs) == [
            contract_registry_address("grid_product"),
            ADMINISTRATORS_SETTING_ADDRESS,
        ]

    def test_upload_contract_product(self, builder, product):
        txn = builder.make_upload_contract_txn(product)
        body = _payload(txn).create_contract
        assert body.name == "grid_product"
        assert body.version == "1.0"
        assert body.contract == PRODUCT_SCAR_BYTES
        assert list(body.inputs) == [SMART_PERMISSION_PREFIX, PIKE_PREFIX, PRODUCT_PREFIX]
        assert list(body.outputs) == list(body.inputs)
        assert list(_header(txn).inputs) == [
            SMART_PERMISSION_PREFIX,
            PIKE_PREFIX,
            PRODUCT_PREFIX,
            contract_registry_address("grid_product"),
            contract_address("grid_product", "1.0"),
        ]

    def test_upload_contract_pike_drops_repeated_prefix(self, builder, pike):
        txn = builder.make_upload_contract_txn(pike)
        assert _payload(txn).create_contract.contract == PIKE_SCAR_BYTES
        assert list(_header(txn).inputs) == [
            SMART_PERMISSION_PREFIX,
            PIKE_PREFIX,
            contract_registry_address("pike"),
            contract_address("pike", "0.1"),
        ]

    def test_namespace_registry(self, builder, signer):
        txn = builder.make_namespace_registry_txn(PRODUCT_PREFIX)
        body = _payload(txn).create_namespace_registry
        assert body.namespace == PRODUCT_PREFIX
        assert list(body.owners) == [signer.public_key_hex()]
        assert list(_header(txn).inputs) == [
            namespace_registry_address(PRODUCT_PREFIX),
            ADMINISTRATORS_SETTING_ADDRESS,
        ]

    def test_namespace_permission_read_only(self, builder):
        txn = builder.make_namespace_permissions_txn("grid_product", PRODUCT_PREFIX)
        body = _payload(txn).create_namespace_registry_permission
        assert body.namespace == PRODUCT_PREFIX
        assert body.contract_name == "grid_product"
        assert body.read is True
        assert body.write is False
        assert list(_header(txn).inputs) == [
            namespace_registry_address(PIKE_PREFIX),
            namespace_registry_address(PRODUCT_PREFIX),
            ADMINISTRATORS_SETTING_ADDRESS,
        ]

    def test_namespace_permission_for_pike_lists_registry_once(self, builder):
        txn = builder.make_namespace_permissions_txn("pike", PIKE_PREFIX)
        assert list(_header(txn).inputs) == [
            namespace_registry_address(PIKE_PREFIX),
            ADMINISTRATORS_SETTING_ADDRESS,
        ]


class TestContractLoading:

    def test_missing_artifact_raises_contract_load_error(self, builder, tmp_path):
        spec = ContractSpec(
            name="grid_product",
            version="1.0",
            prefix=PRODUCT_PREFIX,
            contract_filename="missing.scar",
            scar_dir=tmp_path,
        )
        with pytest.raises(ContractLoadError) as exc_info:
            builder.build_for_spec(spec)
        assert exc_info.value.origin == ErrorOrigin.FILESYSTEM
        assert isinstance(exc_info.value.__cause__, OSError)

    def test_contract_path(self, product, scar_dir):
        assert product.contract_path == scar_dir / "grid-product_0.1.0-dev.scar"
