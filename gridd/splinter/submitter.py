"""
Batch Submission

Posts a serialized ``BatchList`` to splinterd. With a ``ServiceScope`` the
request goes to the scabbard service of that circuit:

    POST {url}/scabbard/{circuit_id}/{service_id}/batches

Without one it goes to the unscoped ``{url}/batches`` route. The body is the
protobuf encoding of the batch list. Any 2xx status (scabbard answers 202
Accepted) means the batches were accepted for processing.

The submitter never retries; retry policy belongs to its caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import requests
from google.protobuf.message import EncodeError

from gridd.core import join_url
from gridd.splinter import protocol
from gridd.splinter.errors import SubmissionError, from_http_error, from_protobuf_error
from gridd.splinter.events import ServiceScope

logger = logging.getLogger(__name__)

HTTP_TIMEOUT_S = 30.0
OCTET_STREAM = "application/octet-stream"


@dataclass(frozen=True)
class SubmissionReceipt:
    """Acceptance returned by the batch endpoint."""
    status_code: int
    batch_ids: Tuple[str, ...]
    link: Optional[str] = None


def batches_url(endpoint: str, scope: Optional[ServiceScope]) -> str:
    if scope is None:
        return join_url(endpoint, "batches")
    return join_url(endpoint, "scabbard", scope.circuit_id, scope.service_id, "batches")


def _status_link(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        link = body.get("link")
        return str(link) if link else None
    if isinstance(body, str):
        return body
    return None


class Submitter:
    """Sends batch lists to splinterd over HTTP."""

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        timeout_seconds: float = HTTP_TIMEOUT_S,
    ):
        self._session = session or requests.Session()
        self._timeout = timeout_seconds

    def submit(
        self,
        batch_list,
        endpoint: str,
        scope: Optional[ServiceScope] = None,
    ) -> SubmissionReceipt:
        """Submit ``batch_list`` and wait for the endpoint's answer.

        Raises:
            SubmissionError: on serialization failure, network failure, or a
                non-2xx response.
        """
        try:
            body = protocol.to_bytes(batch_list)
        except EncodeError as exc:
            raise from_protobuf_error(exc, SubmissionError, "Failed to serialize batch list") from exc

        url = batches_url(endpoint, scope)
        batch_ids = tuple(batch.header_signature for batch in batch_list.batches)
        logger.info(f"Submitting {len(batch_ids)} batch(es) to {url}")

        try:
            response = self._session.post(
                url,
                data=body,
                headers={"Content-Type": OCTET_STREAM},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise from_http_error(exc, SubmissionError, f"Failed to submit batches to {url}") from exc

        if not 200 <= response.status_code < 300:
            detail = (response.text or "").strip()[:500]
            raise SubmissionError(
                f"Batch submission to {url} was rejected with HTTP "
                f"{response.status_code}: {detail}",
                status_code=response.status_code,
            )

        receipt = SubmissionReceipt(
            status_code=response.status_code,
            batch_ids=batch_ids,
            link=_status_link(response),
        )
        logger.info(f"Batches accepted by {url} (HTTP {response.status_code})")
        return receipt
