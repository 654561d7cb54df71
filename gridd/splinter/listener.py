"""
Admin Event Listener

Long-lived WebSocket subscription to splinterd's admin event stream with
bounded automatic reconnection.

State machine
─────────────

    DISCONNECTED ──► CONNECTING ──► CONNECTED
                        ▲   │           │ timeout / transport error /
                        │   │ failure   │ malformed message
                        │   ▼           ▼
                        └── RECONNECT_WAIT ──(limit exceeded)──► CLOSED

- Every transport failure (connect error, idle timeout, receive error)
  counts toward the reconnect limit.
- A malformed message closes the connection and takes the reconnect path
  without counting. Sessions ended this way have their own consecutive
  count, held to the same limit.
- A successfully parsed message resets the failure count.
- ``close()`` moves the listener to CLOSED from any state.

Messages are decoded and dispatched on the listener thread. Dispatch must not
block; the daemon's handler only hands work to the provisioning worker.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable, Optional

import websocket

from gridd.splinter.config import ListenerConfig
from gridd.splinter.errors import (
    ProtocolDecodeError,
    ReconnectExhaustedError,
    from_transport_error,
)
from gridd.splinter.events import AdminEvent, decode_admin_event
from gridd.splinter.resilience import ReconnectPolicy

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (websocket.WebSocketException, OSError)


class ListenerState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECT_WAIT = "reconnect_wait"
    CLOSED = "closed"


EventCallback = Callable[[AdminEvent], None]
ConnectFn = Callable[..., Any]


class EventListener:
    """
    Subscription client for the admin event WebSocket.

    Example:
        listener = EventListener(url, handler.handle, ListenerConfig(reconnect_limit=10))
        listener.run()            # blocks until close() or exhaustion

        # or in the background
        listener.start()
        ...
        listener.close()
        listener.wait()
    """

    def __init__(
        self,
        url: str,
        on_event: EventCallback,
        config: ListenerConfig = ListenerConfig(),
        connect: Optional[ConnectFn] = None,
        policy: Optional[ReconnectPolicy] = None,
        decoder: Callable[[Any], AdminEvent] = decode_admin_event,
        on_state_change: Optional[Callable[[ListenerState, ListenerState], None]] = None,
    ):
        self.url = url
        self.config = config
        self._on_event = on_event
        self._connect = connect or websocket.create_connection
        self._policy = policy or ReconnectPolicy(
            limit=config.reconnect_limit,
            enabled=config.reconnect,
            base_delay_seconds=config.reconnect_base_delay_seconds,
            max_delay_seconds=config.reconnect_max_delay_seconds,
        )
        self._decode = decoder
        self._on_state_change = on_state_change

        self._state = ListenerState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._closing = threading.Event()
        self._conn: Optional[Any] = None
        self._conn_lock = threading.Lock()
        self._error: Optional[ReconnectExhaustedError] = None
        self._thread: Optional[threading.Thread] = None
        self.connection_attempts = 0
        self.messages_received = 0
        self._malformed_sessions = 0

    # ------------------------------------------------------------------
    # state
    # ------------------------------------------------------------------

    @property
    def state(self) -> ListenerState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._policy.failures

    @property
    def error(self) -> Optional[ReconnectExhaustedError]:
        """The exhaustion error once the listener closed because of it."""
        return self._error

    def _set_state(self, state: ListenerState) -> None:
        with self._state_lock:
            old_state = self._state
            if old_state == state:
                return
            self._state = state
        logger.debug(f"Admin event listener: {old_state.value} -> {state.value}")
        if self._on_state_change:
            self._on_state_change(old_state, state)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Listen until ``close()`` is called or reconnection is exhausted.

        Raises:
            ReconnectExhaustedError: if the listener closed because it
                exceeded the reconnect limit.
        """
        if self._state == ListenerState.CLOSED:
            return
        self._set_state(ListenerState.CONNECTING)

        try:
            while not self._closing.is_set():
                state = self._state
                if state == ListenerState.CONNECTING:
                    self._connect_and_receive()
                elif state == ListenerState.RECONNECT_WAIT:
                    delay = self._policy.next_delay()
                    logger.info(
                        f"Reconnecting to {self.url} in {delay:.1f}s "
                        f"(failure {self._policy.failures} of limit {self._policy.limit})"
                    )
                    if self._closing.wait(delay):
                        break
                    self._set_state(ListenerState.CONNECTING)
                else:
                    break
        finally:
            self._close_connection()
            self._set_state(ListenerState.CLOSED)

        if self._error is not None:
            raise self._error

    def start(self) -> None:
        """Run the listener on a background thread."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run_in_thread, daemon=True, name="admin-event-listener"
        )
        self._thread.start()

    def wait(self, timeout: Optional[float] = None) -> None:
        """Join the background thread and re-raise its exhaustion error."""
        if self._thread is not None:
            self._thread.join(timeout=timeout)
        if self._error is not None:
            raise self._error

    def close(self) -> None:
        """Stop listening; a running ``run()`` returns without error."""
        self._closing.set()
        self._close_connection()
        if self._thread is None and self._state != ListenerState.CONNECTED:
            self._set_state(ListenerState.CLOSED)

    def _run_in_thread(self) -> None:
        try:
            self.run()
        except ReconnectExhaustedError as exc:
            logger.error(f"Admin event listener closed: {exc}")

    # ------------------------------------------------------------------
    # connection
    # ------------------------------------------------------------------

    def _connect_and_receive(self) -> None:
        self.connection_attempts += 1
        logger.debug(f"Connecting to {self.url} (attempt {self.connection_attempts})")
        try:
            conn = self._connect(self.url, timeout=self.config.idle_timeout_seconds)
        except TRANSPORT_ERRORS as exc:
            self._fail(exc, f"Failed to connect to {self.url}")
            return

        with self._conn_lock:
            self._conn = conn
        if self._closing.is_set():
            return

        self._set_state(ListenerState.CONNECTED)
        logger.info(f"Listening for admin events on {self.url}")
        self._receive(conn)

    def _receive(self, conn: Any) -> None:
        while not self._closing.is_set():
            try:
                raw = conn.recv()
            except websocket.WebSocketTimeoutException as exc:
                self._fail(exc, f"No message received within {self.config.idle_timeout_seconds}s")
                return
            except TRANSPORT_ERRORS as exc:
                if self._closing.is_set():
                    return
                self._fail(exc, "Admin event connection failed")
                return

            if raw is None or raw in ("", b""):
                self._fail(
                    websocket.WebSocketConnectionClosedException("Connection closed by server"),
                    "Admin event connection closed",
                )
                return

            try:
                event = self._decode(raw)
            except ProtocolDecodeError as exc:
                logger.error(f"Protocol error, closing connection: {exc}")
                self._fail(exc, "Malformed admin event", counts=False)
                return

            self.messages_received += 1
            self._policy.reset()
            self._malformed_sessions = 0
            self._dispatch(event)

    def _dispatch(self, event: AdminEvent) -> None:
        try:
            self._on_event(event)
        except Exception as exc:
            logger.error(f"Failed to process admin event: {exc}", exc_info=True)

    def _fail(self, exc: BaseException, reason: str, counts: bool = True) -> None:
        """Drop the connection and move to RECONNECT_WAIT or CLOSED."""
        self._close_connection()
        if self._closing.is_set():
            return

        if counts or not self._policy.enabled:
            failures = self._policy.record_failure()
            exhausted = self._policy.exhausted
        else:
            self._malformed_sessions += 1
            failures = self._malformed_sessions
            exhausted = failures > self._policy.limit
        logger.warning(f"{reason}: {exc}")

        if exhausted:
            if not counts and self._policy.enabled:
                message = (
                    f"Giving up on {self.url} after {failures} consecutive sessions "
                    f"ended by malformed messages"
                )
            elif self._policy.enabled:
                message = (
                    f"Failed to reconnect to {self.url} after {failures} consecutive failures"
                )
            else:
                message = f"Connection to {self.url} lost and reconnect is disabled"
            self._error = from_transport_error(exc, message, attempts=failures)
            self._set_state(ListenerState.CLOSED)
            self._closing.set()
            return

        self._set_state(ListenerState.RECONNECT_WAIT)

    def _close_connection(self) -> None:
        with self._conn_lock:
            conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except TRANSPORT_ERRORS as exc:
            logger.debug(f"Error while closing admin event connection: {exc}")
