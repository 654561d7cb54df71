import pytest

from gridd.splinter import protocol
from gridd.splinter.batch import BatchAssembler
from gridd.splinter.errors import AssemblyError
from gridd.splinter.sabre import TransactionBuilder
from gridd.splinter.signing import verify


def test_empty_batch_rejected(signer):
    with pytest.raises(AssemblyError):
        BatchAssembler().assemble([], signer)


def test_batch_lists_transaction_ids_in_order(signer, specs):
    builder = TransactionBuilder(signer)
    txns = builder.build_for_spec(specs[0]) + builder.build_for_spec(specs[1])

    batch = BatchAssembler().assemble(txns, signer)

    header = protocol.BatchHeader()
    header.ParseFromString(batch.header)
    assert header.signer_public_key == signer.public_key_hex()
    assert list(header.transaction_ids) == [t.header_signature for t in txns]
    assert [t.header_signature for t in batch.transactions] == list(header.transaction_ids)
    assert verify(signer.public_key_hex(), batch.header, batch.header_signature)


def test_wrap_holds_exactly_one_batch(signer, specs):
    assembler = BatchAssembler()
    batch = assembler.assemble(TransactionBuilder(signer).build_for_spec(specs[1]), signer)

    batch_list = assembler.wrap(batch)

    assert len(batch_list.batches) == 1
    assert batch_list.batches[0].header_signature == batch.header_signature

    decoded = protocol.BatchList()
    decoded.ParseFromString(protocol.to_bytes(batch_list))
    assert len(decoded.batches[0].transactions) == 4
