"""
Splinter Admin Events

Decoding of the messages pushed on the admin event WebSocket
(``/ws/admin/register/grid``) and the filter deciding whether a ready circuit
concerns this node.

Wire shape (one JSON object per message):

    {
      "timestamp": 1589309224000,
      "eventType": "CircuitReady",
      "message": {
        "circuit_id": "01234-ABCDE",
        "circuit": {
          "roster": [
            {"service_id": "gsAA", "allowed_nodes": ["alpha-node-000"], ...}
          ],
          ...
        },
        ...
      }
    }

An event is a timestamp plus a sum type with exactly two cases:
``CircuitReady`` (handled) and ``UnhandledEvent`` (every other tag, a no-op).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional, Tuple, Union

import jsonschema
from jsonschema.exceptions import best_match

from gridd.splinter.errors import ProtocolDecodeError

_U64_MAX = 2 ** 64 - 1

ADMIN_EVENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["timestamp", "eventType"],
    "properties": {
        "timestamp": {"type": "integer", "minimum": 0, "maximum": _U64_MAX},
        "eventType": {"type": "string", "minLength": 1},
        "message": {},
    },
}

CIRCUIT_READY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["circuit_id", "circuit"],
    "properties": {
        "circuit_id": {"type": "string", "minLength": 1},
        "circuit": {
            "type": "object",
            "required": ["roster"],
            "properties": {
                "roster": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["service_id", "allowed_nodes"],
                        "properties": {
                            "service_id": {"type": "string", "minLength": 1},
                            "allowed_nodes": {
                                "type": "array",
                                "items": {"type": "string"},
                            },
                        },
                    },
                },
            },
        },
    },
}

_EVENT_VALIDATOR = jsonschema.Draft7Validator(ADMIN_EVENT_SCHEMA)
_CIRCUIT_READY_VALIDATOR = jsonschema.Draft7Validator(CIRCUIT_READY_SCHEMA)

CIRCUIT_READY = "CircuitReady"


# =============================================================================
# EVENT MODEL
# =============================================================================

@dataclass(frozen=True)
class Service:
    """A service of a circuit roster and the nodes allowed to run it."""
    service_id: str
    allowed_nodes: FrozenSet[str]


@dataclass(frozen=True)
class CircuitReady:
    circuit_id: str
    roster: Tuple[Service, ...]


@dataclass(frozen=True)
class UnhandledEvent:
    event_type: str


AdminEventPayload = Union[CircuitReady, UnhandledEvent]


@dataclass(frozen=True)
class AdminEvent:
    timestamp: int
    payload: AdminEventPayload


@dataclass(frozen=True)
class ServiceScope:
    """The circuit/service a provisioning run submits to."""
    circuit_id: str
    service_id: str

    def __str__(self) -> str:
        return f"{self.circuit_id}::{self.service_id}"


# =============================================================================
# DECODING
# =============================================================================

def _first_error(validator: jsonschema.Draft7Validator, instance: Any) -> Optional[str]:
    error = best_match(validator.iter_errors(instance))
    if error is None:
        return None
    location = "/".join(str(p) for p in error.absolute_path) or "<root>"
    return f"{location}: {error.message}"


def decode_admin_event(raw: Union[str, bytes]) -> AdminEvent:
    """Decode one admin event message.

    Raises:
        ProtocolDecodeError: if the message is not JSON or does not have the
            admin event shape.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as exc:
        raise ProtocolDecodeError("Admin event is not valid JSON", cause=exc) from exc

    problem = _first_error(_EVENT_VALIDATOR, data)
    if problem:
        raise ProtocolDecodeError(f"Malformed admin event: {problem}")

    timestamp = int(data["timestamp"])
    event_type = data["eventType"]
    if event_type != CIRCUIT_READY:
        return AdminEvent(timestamp=timestamp, payload=UnhandledEvent(event_type=event_type))

    message = data.get("message")
    problem = _first_error(_CIRCUIT_READY_VALIDATOR, message)
    if problem:
        raise ProtocolDecodeError(f"Malformed {CIRCUIT_READY} event: {problem}")

    roster = tuple(
        Service(
            service_id=service["service_id"],
            allowed_nodes=frozenset(service["allowed_nodes"]),
        )
        for service in message["circuit"]["roster"]
    )
    return AdminEvent(
        timestamp=timestamp,
        payload=CircuitReady(circuit_id=message["circuit_id"], roster=roster),
    )


def find_local_service(event: AdminEvent, node_id: str) -> Optional[ServiceScope]:
    """Return the first roster service ``node_id`` may run, if the event is CircuitReady."""
    payload = event.payload
    if not isinstance(payload, CircuitReady):
        return None
    for service in payload.roster:
        if node_id in service.allowed_nodes:
            return ServiceScope(circuit_id=payload.circuit_id, service_id=service.service_id)
    return None
