"""
Daemon Wiring

Connects the admin event listener to the provisioning worker:

    splinterd ── ws /ws/admin/register/grid ──► EventListener
                                                   │ AdminEvent
                                                   ▼
                                           AdminEventHandler ── node in roster? ──► ProvisioningWorker
                                                                                         │
                                           POST /scabbard/{circuit}/{service}/batches ◄──┘

The node id is resolved once at startup from ``GET {url}/status``.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

import requests

from gridd.core import join_url, websocket_url
from gridd.splinter.config import DaemonConfig
from gridd.splinter.errors import NodeLookupError, ReconnectExhaustedError, from_http_error
from gridd.splinter.events import AdminEvent, ServiceScope, find_local_service
from gridd.splinter.listener import ConnectFn, EventListener
from gridd.splinter.pipeline import ProvisioningPipeline, ProvisioningWorker
from gridd.splinter.sabre import ContractSpec, default_contract_specs
from gridd.splinter.signing import Keys
from gridd.splinter.submitter import Submitter

logger = logging.getLogger(__name__)

ADMIN_EVENT_ROUTE = "ws/admin/register/grid"
STATUS_ROUTE = "status"
NODE_LOOKUP_TIMEOUT_S = 10.0


def get_node_id(splinterd_url: str, session: Optional[requests.Session] = None) -> str:
    """Return the id of the node serving ``splinterd_url``.

    Raises:
        NodeLookupError: if the endpoint is unreachable, answers with an
            error status or a non-JSON body, or the body has no string
            ``node_id``.
    """
    session = session or requests.Session()
    url = join_url(splinterd_url, STATUS_ROUTE)

    try:
        response = session.get(url, timeout=NODE_LOOKUP_TIMEOUT_S)
        response.raise_for_status()
    except requests.RequestException as exc:
        raise from_http_error(exc, NodeLookupError, f"Unable to fetch node status from {url}") from exc

    try:
        body = response.json()
    except ValueError as exc:
        raise from_http_error(exc, NodeLookupError, f"Node status from {url} is not JSON") from exc

    if not isinstance(body, dict) or "node_id" not in body:
        raise NodeLookupError(f"Node status from {url} has no node_id")
    node_id = body["node_id"]
    if not isinstance(node_id, str):
        raise NodeLookupError(
            f"Node status from {url} has a non-string node_id: {node_id!r}"
        )
    return node_id


class AdminEventHandler:
    """Offers a provisioning request for every ready circuit this node serves."""

    def __init__(self, node_id: str, worker: ProvisioningWorker):
        self.node_id = node_id
        self._worker = worker

    def __call__(self, event: AdminEvent) -> Optional[ServiceScope]:
        return self.handle(event)

    def handle(self, event: AdminEvent) -> Optional[ServiceScope]:
        logger.debug(f"Received admin event at {event.timestamp}: {type(event.payload).__name__}")
        scope = find_local_service(event, self.node_id)
        if scope is None:
            return None
        logger.info(f"Circuit {scope.circuit_id} is ready; provisioning service {scope.service_id}")
        self._worker.offer(scope)
        return scope


def run(
    config: DaemonConfig,
    keys: Keys,
    session: Optional[requests.Session] = None,
    connect: Optional[ConnectFn] = None,
    specs: Optional[Sequence[ContractSpec]] = None,
    on_provisioned: Optional[Callable[[ServiceScope], None]] = None,
) -> None:
    """Run the daemon on the calling thread until the listener closes.

    Raises:
        NodeLookupError: if the node id cannot be resolved.
        ReconnectExhaustedError: if the listener gave up reconnecting.
    """
    session = session or requests.Session()
    node_id = get_node_id(config.splinterd_url, session=session)
    logger.info(f"Running as node {node_id} against {config.splinterd_url}")

    pipeline = ProvisioningPipeline(
        keys,
        specs if specs is not None else default_contract_specs(config.scar_dir),
        config.splinterd_url,
        submitter=Submitter(session=session, timeout_seconds=config.submit_timeout_seconds),
    )
    worker = ProvisioningWorker(pipeline, on_provisioned=on_provisioned)
    listener = EventListener(
        join_url(websocket_url(config.splinterd_url), ADMIN_EVENT_ROUTE),
        AdminEventHandler(node_id, worker),
        config.listener,
        connect=connect,
    )

    worker.start()
    try:
        listener.run()
    except ReconnectExhaustedError:
        logger.error(f"Admin event listener for {listener.url} gave up reconnecting")
        raise
    finally:
        if worker.in_flight:
            logger.info("Waiting for the in-flight provisioning run to finish")
        worker.stop()
