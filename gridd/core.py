"""Core primitives for the Grid daemon.

This module provides the foundational utilities used throughout the daemon:
- Cryptographic hashing (SHA-256, SHA-512) as lowercase hex
- YAML loading with consistent encoding
- URL joining for the splinterd REST and WebSocket routes

Design principles:
- Pure functions
- No global mutable state
"""

from __future__ import annotations

import hashlib
import pathlib
from typing import Any, Union

import yaml


def sha256_hex(data: Union[str, bytes]) -> str:
    """Compute SHA-256 hash, returning lowercase hex string."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def sha512_hex(data: Union[str, bytes]) -> str:
    """Compute SHA-512 hash, returning the 128-character lowercase hex string."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha512(data).hexdigest()


def load_yaml(path: pathlib.Path) -> Any:
    """Load YAML file with UTF-8 encoding."""
    return yaml.safe_load(pathlib.Path(path).read_text(encoding="utf-8"))


def join_url(base: str, *parts: str) -> str:
    """Join a base URL and path segments without doubling slashes."""
    url = str(base).rstrip("/")
    for part in parts:
        url += "/" + str(part).strip("/")
    return url


def websocket_url(base: str) -> str:
    """Map an http(s) base URL onto its ws(s) equivalent.

    URLs that already use a ws scheme, or carry no scheme at all, are
    returned unchanged.
    """
    if base.startswith("https://"):
        return "wss://" + base[len("https://"):]
    if base.startswith("http://"):
        return "ws://" + base[len("http://"):]
    return base
