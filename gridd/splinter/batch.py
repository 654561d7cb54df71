"""
Batch Assembly

Groups signed transactions into one signed batch and wraps the batch into the
batch list the scabbard batch endpoint accepts. A batch is applied atomically:
the ledger accepts or rejects all of its transactions together.

The batch header lists the transaction ids (their header signatures) in the
same order as the transactions themselves.
"""

from __future__ import annotations

import logging
from typing import Sequence

from google.protobuf.message import EncodeError

from gridd.splinter import protocol
from gridd.splinter.errors import AssemblyError, SigningError, from_protobuf_error
from gridd.splinter.signing import Signer

logger = logging.getLogger(__name__)


class BatchAssembler:
    """Builds signed batches and batch lists."""

    def assemble(self, transactions: Sequence, signer: Signer):
        """Return a ``Batch`` of ``transactions`` signed by ``signer``.

        Raises:
            AssemblyError: if ``transactions`` is empty or signing fails.
        """
        if not transactions:
            raise AssemblyError("A batch must contain at least one transaction")

        try:
            public_key = signer.public_key_hex()
            header = protocol.BatchHeader(
                signer_public_key=public_key,
                transaction_ids=[txn.header_signature for txn in transactions],
            )
            header_bytes = protocol.to_bytes(header)
            signature = signer.sign(header_bytes)
        except SigningError as exc:
            raise AssemblyError("Failed to sign batch header", cause=exc) from exc
        except EncodeError as exc:
            raise from_protobuf_error(
                exc, AssemblyError, "Failed to serialize batch header to bytes"
            ) from exc

        batch = protocol.Batch(
            header=header_bytes,
            header_signature=signature,
            transactions=list(transactions),
        )
        logger.debug(f"Assembled batch {signature[:16]}... with {len(transactions)} transactions")
        return batch

    def wrap(self, batch):
        """Return a ``BatchList`` holding exactly ``batch``."""
        return protocol.BatchList(batches=[batch])
