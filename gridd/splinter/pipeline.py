"""
Provisioning Pipeline

Turns a matched circuit/service into one submitted batch:

    ContractSpec x N ──► TransactionBuilder ──► 4N transactions (spec order)
                                                     │
                          BatchAssembler ◄───────────┘
                                │ 1 batch ─► 1 batch list
                                ▼
                          Submitter ──► POST .../scabbard/{circuit}/{service}/batches

The first error stops the run; a partial batch is never submitted.

``ProvisioningWorker`` runs the pipeline off the listener thread. It is fed
through a one-slot queue and holds an in-flight marker, so at most one run
executes at a time and the listener never blocks on the network.
"""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from gridd.splinter.batch import BatchAssembler
from gridd.splinter.events import ServiceScope
from gridd.splinter.observability import correlation_scope
from gridd.splinter.sabre import ContractSpec, TransactionBuilder
from gridd.splinter.signing import Keys, Signer
from gridd.splinter.submitter import SubmissionReceipt, Submitter

logger = logging.getLogger(__name__)


class ProvisioningPipeline:
    """Builds, signs, batches and submits the provisioning transactions.

    Keys, specs and the endpoint are fixed at construction and shared
    read-only by every run.
    """

    def __init__(
        self,
        keys: Keys,
        specs: Sequence[ContractSpec],
        endpoint: str,
        submitter: Optional[Submitter] = None,
        assembler: Optional[BatchAssembler] = None,
        builder_factory: Callable[[Signer], TransactionBuilder] = TransactionBuilder,
    ):
        self.keys = keys
        self.specs = tuple(specs)
        self.endpoint = endpoint
        self._submitter = submitter or Submitter()
        self._assembler = assembler or BatchAssembler()
        self._builder_factory = builder_factory

    def build_transactions(self, signer: Signer) -> List:
        """All transactions of all specs, in spec order then per-spec order."""
        builder = self._builder_factory(signer)
        txns: List = []
        for spec in self.specs:
            txns.extend(builder.build_for_spec(spec))
        return txns

    def provision(self, scope: Optional[ServiceScope]) -> SubmissionReceipt:
        """Run one provisioning pass for ``scope``.

        Raises:
            SigningError, AddressError, ContractLoadError, AssemblyError,
            SubmissionError: the first failure encountered.
        """
        signer = Signer.from_keys(self.keys)
        txns = self.build_transactions(signer)
        batch = self._assembler.assemble(txns, signer)
        batch_list = self._assembler.wrap(batch)
        logger.info(
            f"Provisioning {len(self.specs)} contract families "
            f"({len(txns)} transactions) on {scope or 'unscoped endpoint'}"
        )
        return self._submitter.submit(batch_list, self.endpoint, scope)


def provision(
    keys: Keys,
    specs: Sequence[ContractSpec],
    endpoint: str,
    scope: Optional[ServiceScope],
    submitter: Optional[Submitter] = None,
) -> SubmissionReceipt:
    """Functional form of ``ProvisioningPipeline(...).provision(scope)``."""
    return ProvisioningPipeline(keys, specs, endpoint, submitter=submitter).provision(scope)


# =============================================================================
# BACKGROUND WORKER
# =============================================================================

@dataclass
class WorkerMetrics:
    accepted: int = 0
    rejected: int = 0
    succeeded: int = 0
    failed: int = 0


class ProvisioningWorker:
    """
    Single background thread running one provisioning request at a time.

    ``offer`` never blocks: it fills the single pending slot or, when a run
    is in flight and a request is already pending, rejects the request.

    Example:
        worker = ProvisioningWorker(pipeline)
        worker.start()
        worker.offer(ServiceScope("01234-ABCDE", "gsAA"))
        worker.drain(timeout=60)
        worker.stop()
    """

    def __init__(
        self,
        pipeline: ProvisioningPipeline,
        on_provisioned: Optional[Callable[[ServiceScope], None]] = None,
        name: str = "grid-provisioning",
    ):
        self._pipeline = pipeline
        self._on_provisioned = on_provisioned
        self._name = name
        self._queue: "queue.Queue[ServiceScope]" = queue.Queue(maxsize=1)
        self._in_flight = threading.Event()
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._metrics = WorkerMetrics()

    @property
    def in_flight(self) -> bool:
        return self._in_flight.is_set()

    @property
    def metrics(self) -> WorkerMetrics:
        with self._lock:
            return WorkerMetrics(**vars(self._metrics))

    def start(self) -> None:
        if self._running.is_set():
            return
        self._running.set()
        self._thread = threading.Thread(target=self._process_loop, daemon=True, name=self._name)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop accepting requests and finish the in-flight and pending runs."""
        self._running.clear()
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(f"{self._name} still running after {timeout}s")
                return
            self._thread = None

    def offer(self, scope: ServiceScope) -> bool:
        """Queue ``scope`` for provisioning; False if the slot is taken or the worker stopped."""
        if not self._running.is_set():
            with self._lock:
                self._metrics.rejected += 1
            logger.error(f"Provisioning for {scope} rejected: the worker is not running")
            return False
        try:
            self._queue.put_nowait(scope)
        except queue.Full:
            with self._lock:
                self._metrics.rejected += 1
            logger.error(
                f"Provisioning for {scope} rejected: a run is in flight and another is pending"
            )
            return False
        with self._lock:
            self._metrics.accepted += 1
        logger.debug(f"Provisioning for {scope} queued")
        return True

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait until no request is pending or in flight."""
        with self._queue.all_tasks_done:
            return self._queue.all_tasks_done.wait_for(
                lambda: self._queue.unfinished_tasks == 0, timeout
            )

    def run_once(self, scope: ServiceScope) -> bool:
        """Run the pipeline for ``scope`` on the calling thread."""
        self._in_flight.set()
        try:
            with correlation_scope() as cid:
                logger.info(f"Provisioning run {cid} started for {scope}")
                try:
                    receipt = self._pipeline.provision(scope)
                except Exception as exc:
                    with self._lock:
                        self._metrics.failed += 1
                    logger.error(f"Failed to provision {scope}: {exc}")
                    return False

                with self._lock:
                    self._metrics.succeeded += 1
                logger.info(
                    f"Provisioning run {cid} for {scope} accepted (HTTP {receipt.status_code})"
                )
                if self._on_provisioned:
                    try:
                        self._on_provisioned(scope)
                    except Exception as exc:
                        logger.error(f"Post-provisioning hook failed for {scope}: {exc}")
                return True
        finally:
            self._in_flight.clear()

    def _process_loop(self) -> None:
        while self._running.is_set() or not self._queue.empty():
            try:
                scope = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            try:
                self.run_once(scope)
            finally:
                self._queue.task_done()
