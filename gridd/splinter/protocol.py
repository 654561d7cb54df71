"""
Ledger and Sabre Wire Messages

Protobuf message classes for the transaction/batch envelope understood by the
scabbard service and for the Sabre contract-management payload it executes.
The classes are generated at import time from descriptors registered in a
private pool, so no ``protoc`` step is needed and the field numbers below are
the single source of truth for the wire format.

Envelope (transaction.proto / batch.proto):

    TransactionHeader  batcher_public_key=1 dependencies=2 family_name=3
                       family_version=4 inputs=5 nonce=6 outputs=7
                       payload_sha512=9 signer_public_key=10
    Transaction        header=1 header_signature=2 payload=3
    BatchHeader        signer_public_key=1 transaction_ids=2
    Batch              header=1 header_signature=2 transactions=3 trace=4
    BatchList          batches=1

Sabre payload (payload.proto):

    SabrePayload       action=1 create_contract=2 create_contract_registry=5
                       create_namespace_registry=8
                       create_namespace_registry_permission=11
"""

from __future__ import annotations

from typing import Iterable, Tuple

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory
from google.protobuf.message import Message

_F = descriptor_pb2.FieldDescriptorProto

_STRING = _F.TYPE_STRING
_BYTES = _F.TYPE_BYTES
_BOOL = _F.TYPE_BOOL
_MESSAGE = _F.TYPE_MESSAGE
_ENUM = _F.TYPE_ENUM

_OPTIONAL = _F.LABEL_OPTIONAL
_REPEATED = _F.LABEL_REPEATED

# (name, number, type, label, type_name)
FieldSpec = Tuple[str, int, int, int, str]

_pool = descriptor_pool.DescriptorPool()


def _add_message(
    file_proto: descriptor_pb2.FileDescriptorProto,
    name: str,
    fields: Iterable[FieldSpec],
) -> descriptor_pb2.DescriptorProto:
    message = file_proto.message_type.add(name=name)
    for field_name, number, field_type, label, type_name in fields:
        field = message.field.add(
            name=field_name, number=number, type=field_type, label=label
        )
        if type_name:
            field.type_name = type_name
    return message


def _ledger_file() -> descriptor_pb2.FileDescriptorProto:
    fp = descriptor_pb2.FileDescriptorProto(
        name="gridd/sawtooth/ledger.proto", package="sawtooth", syntax="proto3"
    )
    _add_message(fp, "TransactionHeader", [
        ("batcher_public_key", 1, _STRING, _OPTIONAL, ""),
        ("dependencies", 2, _STRING, _REPEATED, ""),
        ("family_name", 3, _STRING, _OPTIONAL, ""),
        ("family_version", 4, _STRING, _OPTIONAL, ""),
        ("inputs", 5, _STRING, _REPEATED, ""),
        ("nonce", 6, _STRING, _OPTIONAL, ""),
        ("outputs", 7, _STRING, _REPEATED, ""),
        ("payload_sha512", 9, _STRING, _OPTIONAL, ""),
        ("signer_public_key", 10, _STRING, _OPTIONAL, ""),
    ])
    _add_message(fp, "Transaction", [
        ("header", 1, _BYTES, _OPTIONAL, ""),
        ("header_signature", 2, _STRING, _OPTIONAL, ""),
        ("payload", 3, _BYTES, _OPTIONAL, ""),
    ])
    _add_message(fp, "BatchHeader", [
        ("signer_public_key", 1, _STRING, _OPTIONAL, ""),
        ("transaction_ids", 2, _STRING, _REPEATED, ""),
    ])
    _add_message(fp, "Batch", [
        ("header", 1, _BYTES, _OPTIONAL, ""),
        ("header_signature", 2, _STRING, _OPTIONAL, ""),
        ("transactions", 3, _MESSAGE, _REPEATED, ".sawtooth.Transaction"),
        ("trace", 4, _BOOL, _OPTIONAL, ""),
    ])
    _add_message(fp, "BatchList", [
        ("batches", 1, _MESSAGE, _REPEATED, ".sawtooth.Batch"),
    ])
    return fp


# SabrePayload.Action enum values
ACTION_UNSET = 0
CREATE_CONTRACT = 1
DELETE_CONTRACT = 2
EXECUTE_CONTRACT = 3
CREATE_CONTRACT_REGISTRY = 4
DELETE_CONTRACT_REGISTRY = 5
UPDATE_CONTRACT_REGISTRY_OWNERS = 6
CREATE_NAMESPACE_REGISTRY = 7
DELETE_NAMESPACE_REGISTRY = 8
UPDATE_NAMESPACE_REGISTRY_OWNERS = 9
CREATE_NAMESPACE_REGISTRY_PERMISSION = 10
DELETE_NAMESPACE_REGISTRY_PERMISSION = 11

_ACTION_VALUES = {
    "ACTION_UNSET": ACTION_UNSET,
    "CREATE_CONTRACT": CREATE_CONTRACT,
    "DELETE_CONTRACT": DELETE_CONTRACT,
    "EXECUTE_CONTRACT": EXECUTE_CONTRACT,
    "CREATE_CONTRACT_REGISTRY": CREATE_CONTRACT_REGISTRY,
    "DELETE_CONTRACT_REGISTRY": DELETE_CONTRACT_REGISTRY,
    "UPDATE_CONTRACT_REGISTRY_OWNERS": UPDATE_CONTRACT_REGISTRY_OWNERS,
    "CREATE_NAMESPACE_REGISTRY": CREATE_NAMESPACE_REGISTRY,
    "DELETE_NAMESPACE_REGISTRY": DELETE_NAMESPACE_REGISTRY,
    "UPDATE_NAMESPACE_REGISTRY_OWNERS": UPDATE_NAMESPACE_REGISTRY_OWNERS,
    "CREATE_NAMESPACE_REGISTRY_PERMISSION": CREATE_NAMESPACE_REGISTRY_PERMISSION,
    "DELETE_NAMESPACE_REGISTRY_PERMISSION": DELETE_NAMESPACE_REGISTRY_PERMISSION,
}


def _sabre_file() -> descriptor_pb2.FileDescriptorProto:
    fp = descriptor_pb2.FileDescriptorProto(
        name="gridd/sabre/payload.proto", package="sabre", syntax="proto3"
    )
    _add_message(fp, "CreateContractAction", [
        ("name", 1, _STRING, _OPTIONAL, ""),
        ("version", 2, _STRING, _OPTIONAL, ""),
        ("inputs", 3, _STRING, _REPEATED, ""),
        ("outputs", 4, _STRING, _REPEATED, ""),
        ("contract", 5, _BYTES, _OPTIONAL, ""),
    ])
    _add_message(fp, "CreateContractRegistryAction", [
        ("name", 1, _STRING, _OPTIONAL, ""),
        ("owners", 2, _STRING, _REPEATED, ""),
    ])
    _add_message(fp, "CreateNamespaceRegistryAction", [
        ("namespace", 1, _STRING, _OPTIONAL, ""),
        ("owners", 2, _STRING, _REPEATED, ""),
    ])
    _add_message(fp, "CreateNamespaceRegistryPermissionAction", [
        ("namespace", 1, _STRING, _OPTIONAL, ""),
        ("contract_name", 2, _STRING, _OPTIONAL, ""),
        ("read", 3, _BOOL, _OPTIONAL, ""),
        ("write", 4, _BOOL, _OPTIONAL, ""),
    ])
    payload = _add_message(fp, "SabrePayload", [
        ("action", 1, _ENUM, _OPTIONAL, ".sabre.SabrePayload.Action"),
        ("create_contract", 2, _MESSAGE, _OPTIONAL, ".sabre.CreateContractAction"),
        ("create_contract_registry", 5, _MESSAGE, _OPTIONAL,
         ".sabre.CreateContractRegistryAction"),
        ("create_namespace_registry", 8, _MESSAGE, _OPTIONAL,
         ".sabre.CreateNamespaceRegistryAction"),
        ("create_namespace_registry_permission", 11, _MESSAGE, _OPTIONAL,
         ".sabre.CreateNamespaceRegistryPermissionAction"),
    ])
    action_enum = payload.enum_type.add(name="Action")
    for value_name, number in sorted(_ACTION_VALUES.items(), key=lambda kv: kv[1]):
        action_enum.value.add(name=value_name, number=number)
    return fp


_pool.Add(_ledger_file())
_pool.Add(_sabre_file())


def _message_class(full_name: str):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(full_name))


TransactionHeader = _message_class("sawtooth.TransactionHeader")
Transaction = _message_class("sawtooth.Transaction")
BatchHeader = _message_class("sawtooth.BatchHeader")
Batch = _message_class("sawtooth.Batch")
BatchList = _message_class("sawtooth.BatchList")

CreateContractAction = _message_class("sabre.CreateContractAction")
CreateContractRegistryAction = _message_class("sabre.CreateContractRegistryAction")
CreateNamespaceRegistryAction = _message_class("sabre.CreateNamespaceRegistryAction")
CreateNamespaceRegistryPermissionAction = _message_class(
    "sabre.CreateNamespaceRegistryPermissionAction"
)
SabrePayload = _message_class("sabre.SabrePayload")


def to_bytes(message: Message) -> bytes:
    """Serialize ``message`` deterministically (map and unknown-field order fixed)."""
    return message.SerializeToString(deterministic=True)
