"""
Grid Daemon Error Types

Every failure the daemon can surface is a ``GridDaemonError``. Each subclass
names one error kind; each instance records which external system it came
from (``origin``) and the exception that caused it (``cause``, also chained
as ``__cause__``), so that log lines keep the underlying diagnostics.

Foreign exceptions are converted at the seam where they are caught, using
the ``from_*`` functions at the bottom of this module:

    try:
        data = path.read_bytes()
    except OSError as exc:
        raise from_os_error(exc, ContractLoadError, f"failed to load contract {path}") from exc
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Type, TypeVar


class ErrorOrigin(Enum):
    """External system an error originated from."""
    ADDRESSING = "addressing"
    LEDGER_SDK = "ledger_sdk"
    CRYPTO = "crypto"
    FILESYSTEM = "filesystem"
    HTTP = "http"
    TRANSPORT = "transport"
    PROTOCOL = "protocol"
    CONFIG = "config"


class GridDaemonError(Exception):
    """Base exception for all daemon failures."""

    default_origin = ErrorOrigin.LEDGER_SDK

    def __init__(
        self,
        message: str,
        *,
        origin: Optional[ErrorOrigin] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message
        self.origin = origin or self.default_origin
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


# =============================================================================
# PROVISIONING ERRORS
# =============================================================================

class AddressError(GridDaemonError):
    """A state address could not be computed from the given input."""
    default_origin = ErrorOrigin.ADDRESSING


class ContractLoadError(GridDaemonError):
    """A contract artifact could not be read."""
    default_origin = ErrorOrigin.FILESYSTEM


class SigningError(GridDaemonError):
    """Private key material is malformed or signing failed."""
    default_origin = ErrorOrigin.CRYPTO


class AssemblyError(GridDaemonError):
    """A transaction, batch or batch list could not be constructed."""
    default_origin = ErrorOrigin.LEDGER_SDK


class SubmissionError(GridDaemonError):
    """The ledger did not accept a batch list."""
    default_origin = ErrorOrigin.HTTP

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        origin: Optional[ErrorOrigin] = None,
        cause: Optional[BaseException] = None,
    ):
        self.status_code = status_code
        super().__init__(message, origin=origin, cause=cause)


# =============================================================================
# STARTUP ERRORS
# =============================================================================

class KeyFileError(GridDaemonError):
    """A key file is missing, unreadable, or empty."""
    default_origin = ErrorOrigin.FILESYSTEM


class NodeLookupError(GridDaemonError):
    """The node status endpoint is unreachable or returned no usable id."""
    default_origin = ErrorOrigin.HTTP


class ConfigError(GridDaemonError):
    """Configuration could not be loaded or failed validation."""
    default_origin = ErrorOrigin.CONFIG


# =============================================================================
# EVENT STREAM ERRORS
# =============================================================================

class ProtocolDecodeError(GridDaemonError):
    """An inbound admin event message is malformed."""
    default_origin = ErrorOrigin.PROTOCOL


class ReconnectExhaustedError(GridDaemonError):
    """The listener closed after exceeding its reconnect limit."""
    default_origin = ErrorOrigin.TRANSPORT

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        origin: Optional[ErrorOrigin] = None,
        cause: Optional[BaseException] = None,
    ):
        self.attempts = attempts
        super().__init__(message, origin=origin, cause=cause)


# =============================================================================
# CONVERSIONS
# =============================================================================

E = TypeVar("E", bound=GridDaemonError)


def from_os_error(exc: OSError, kind: Type[E], message: str) -> E:
    """Convert a filesystem error into ``kind``."""
    return kind(message, origin=ErrorOrigin.FILESYSTEM, cause=exc)


def from_http_error(exc: Exception, kind: Type[E], message: str) -> E:
    """Convert a ``requests`` exception (or a bad response body) into ``kind``."""
    return kind(message, origin=ErrorOrigin.HTTP, cause=exc)


def from_transport_error(
    exc: Optional[BaseException], message: str, attempts: int = 0
) -> ReconnectExhaustedError:
    """Convert the last WebSocket transport failure into an exhaustion error."""
    return ReconnectExhaustedError(
        message, attempts=attempts, origin=ErrorOrigin.TRANSPORT, cause=exc
    )


def from_crypto_error(exc: Exception, kind: Type[E], message: str) -> E:
    """Convert a ``cryptography`` failure into ``kind``."""
    return kind(message, origin=ErrorOrigin.CRYPTO, cause=exc)


def from_protobuf_error(exc: Exception, kind: Type[E], message: str) -> E:
    """Convert a ``protobuf`` encode/decode failure into ``kind``."""
    return kind(message, origin=ErrorOrigin.LEDGER_SDK, cause=exc)
