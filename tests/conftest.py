import json
import pathlib
import sys
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
import websocket


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import gridd`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


PIKE_SCAR_BYTES = b"\x00asm-pike-contract"
PRODUCT_SCAR_BYTES = b"\x00asm-product-contract"


# ---------------------------------------------------------------------------
# Keys and contract artifacts
# ---------------------------------------------------------------------------


@pytest.fixture
def signer():
    from gridd.splinter.signing import Signer
    return Signer.generate()


@pytest.fixture
def key_dir(tmp_path: pathlib.Path, signer) -> pathlib.Path:
    d = tmp_path / "keys"
    d.mkdir()
    (d / "gridd.priv").write_text(signer.private_key_hex() + "\n", encoding="utf-8")
    (d / "gridd.pub").write_text(signer.public_key_hex() + "\n", encoding="utf-8")
    return d


@pytest.fixture
def keys(key_dir: pathlib.Path):
    from gridd.splinter.signing import load_keys
    return load_keys("gridd", key_dir)


@pytest.fixture
def scar_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    from gridd.splinter.sabre import PIKE_CONTRACT_FILENAME, PRODUCT_CONTRACT_FILENAME

    d = tmp_path / "scar"
    d.mkdir()
    (d / PIKE_CONTRACT_FILENAME).write_bytes(PIKE_SCAR_BYTES)
    (d / PRODUCT_CONTRACT_FILENAME).write_bytes(PRODUCT_SCAR_BYTES)
    return d


@pytest.fixture
def specs(scar_dir: pathlib.Path):
    from gridd.splinter.sabre import default_contract_specs
    return default_contract_specs(scar_dir)


# ---------------------------------------------------------------------------
# Admin events
# ---------------------------------------------------------------------------


def circuit_ready_json(
    circuit_id: str = "01234-ABCDE",
    roster: Optional[List[Dict[str, Any]]] = None,
    timestamp: int = 1589309224000,
) -> str:
    if roster is None:
        roster = [
            {"service_id": "gsAA", "service_type": "scabbard", "allowed_nodes": ["alpha-node-000"]},
            {"service_id": "gsBB", "service_type": "scabbard", "allowed_nodes": ["beta-node-000"]},
        ]
    return json.dumps({
        "timestamp": timestamp,
        "eventType": "CircuitReady",
        "message": {
            "circuit_id": circuit_id,
            "authorization_type": "Trust",
            "circuit": {
                "circuit_id": circuit_id,
                "roster": roster,
                "members": [],
            },
        },
    })


def unhandled_event_json(event_type: str = "ProposalSubmitted", timestamp: int = 1) -> str:
    return json.dumps({"timestamp": timestamp, "eventType": event_type, "message": {}})


@pytest.fixture
def make_circuit_ready() -> Callable[..., str]:
    return circuit_ready_json


@pytest.fixture
def make_unhandled_event() -> Callable[..., str]:
    return unhandled_event_json


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

_NO_JSON = object()


class FakeResponse:
    def __init__(self, status_code: int = 202, json_body: Any = _NO_JSON, text: str = ""):
        self.status_code = status_code
        self._json = json_body
        self.text = text if text or json_body is _NO_JSON else json.dumps(json_body)

    def json(self) -> Any:
        if self._json is _NO_JSON:
            raise ValueError("response body is not JSON")
        return self._json

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class FakeSession:
    """Records requests and answers with canned responses or exceptions."""

    def __init__(
        self,
        post_response: Any = None,
        get_response: Any = None,
    ):
        self.post_response = post_response if post_response is not None else FakeResponse(
            202, {"link": "/scabbard/batch_statuses?ids=abc"}
        )
        self.get_response = get_response if get_response is not None else FakeResponse(
            200, {"node_id": "alpha-node-000"}
        )
        self.posts: List[Dict[str, Any]] = []
        self.gets: List[Dict[str, Any]] = []

    def post(self, url, data=None, headers=None, timeout=None):
        self.posts.append({"url": url, "data": data, "headers": headers, "timeout": timeout})
        if isinstance(self.post_response, BaseException):
            raise self.post_response
        return self.post_response

    def get(self, url, timeout=None):
        self.gets.append({"url": url, "timeout": timeout})
        if isinstance(self.get_response, BaseException):
            raise self.get_response
        return self.get_response


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_response() -> Callable[..., FakeResponse]:
    return FakeResponse


@pytest.fixture
def make_session() -> Callable[..., FakeSession]:
    return FakeSession


# ---------------------------------------------------------------------------
# WebSocket
# ---------------------------------------------------------------------------


class FakeConnection:
    """A scripted WebSocket connection.

    Script items are returned by ``recv`` in order; exception instances are
    raised and callables are invoked before moving on to the next item. When
    the script runs out the connection reports that the server closed it.
    """

    def __init__(self, script: List[Any]):
        self._script = list(script)
        self.closed = False

    def recv(self):
        while self._script:
            item = self._script.pop(0)
            if isinstance(item, BaseException):
                raise item
            if callable(item):
                item()
                continue
            return item
        raise websocket.WebSocketConnectionClosedException("script exhausted")

    def close(self) -> None:
        self.closed = True


class ScriptedConnector:
    """Stands in for ``websocket.create_connection``.

    Each call consumes one entry: a list becomes a ``FakeConnection``, an
    exception instance is raised. Once the entries run out every call is
    refused.
    """

    def __init__(self, *entries: Any):
        self._entries = list(entries)
        self.calls: List[Dict[str, Any]] = []
        self.connections: List[FakeConnection] = []

    def __call__(self, url, timeout=None):
        self.calls.append({"url": url, "timeout": timeout})
        if not self._entries:
            raise ConnectionRefusedError("connection refused")
        entry = self._entries.pop(0)
        if isinstance(entry, BaseException):
            raise entry
        conn = FakeConnection(entry)
        self.connections.append(conn)
        return conn


@pytest.fixture
def make_connector() -> Callable[..., ScriptedConnector]:
    return ScriptedConnector


@pytest.fixture
def fast_listener_config():
    """Listener settings without backoff delays."""
    from gridd.splinter.config import ListenerConfig

    def _make(**kwargs):
        kwargs.setdefault("reconnect_base_delay_seconds", 0.0)
        kwargs.setdefault("reconnect_max_delay_seconds", 0.0)
        kwargs.setdefault("idle_timeout_seconds", 1.0)
        return ListenerConfig(**kwargs)

    return _make
