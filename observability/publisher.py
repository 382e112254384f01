"""
Audit Publisher

Fire-and-forget sink for sending audit events to an observability
platform over HTTP.

DESIGN RULES (NON-NEGOTIABLE):
- HTTP POST only (no reads)
- Short timeout (≤ 500ms)
- Never raise exceptions
- Log failures as warnings only

This module exists solely to forward facts about execution.
It must NEVER influence execution.
"""

import json
import logging
import socket
import threading
import urllib.error
import urllib.request
from typing import Any, Dict

from observability.audit import ExecutionAuditEvent, StepAuditEvent
from observability.sink import AuditSink

logger = logging.getLogger(__name__)

STEP_ENDPOINT = "/ingest/audit/step"
EXECUTION_ENDPOINT = "/ingest/audit/execution"


class HttpAuditSink(AuditSink):
    """
    POSTs each audit event as JSON.
    """

    def __init__(self, base_url: str, timeout_ms: int = 500):
        """
        Args:
            base_url: Ingestion service root, e.g. http://localhost:8001
            timeout_ms: Per-request timeout in milliseconds
        """
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_ms / 1000.0

    def emit_step(self, event: StepAuditEvent) -> None:
        self._dispatch(STEP_ENDPOINT, event.to_dict())

    def emit_execution(self, event: ExecutionAuditEvent) -> None:
        self._dispatch(EXECUTION_ENDPOINT, event.to_dict())

    def _dispatch(self, endpoint: str, payload: Dict[str, Any]) -> None:
        """Send on a daemon thread so the event loop never waits on the network."""
        try:
            threading.Thread(target=self._post, args=(endpoint, payload), daemon=True).start()
        except Exception as e:
            logger.warning(f"[AUDIT] Failed to dispatch {endpoint}: {e}")

    def _post(self, endpoint: str, payload: Dict[str, Any]) -> None:
        """
        POST payload to the ingestion endpoint.

        GUARANTEES:
        - Never raises exceptions
        - Returns within timeout
        - Logs failures as warnings
        """
        url = f"{self._base_url}{endpoint}"

        try:
            data = json.dumps(payload, default=str).encode("utf-8")
            req = urllib.request.Request(
                url,
                data=data,
                headers={"Content-Type": "application/json"},
                method="POST",
            )

            with urllib.request.urlopen(req, timeout=self._timeout_seconds) as response:
                # Response body is irrelevant
                _ = response.read()

        except urllib.error.URLError as e:
            logger.warning(f"[AUDIT] Failed to POST to {endpoint}: {e}")
        except socket.timeout:
            logger.warning(f"[AUDIT] Timeout posting to {endpoint}")
        except Exception as e:
            logger.warning(f"[AUDIT] Unexpected error posting to {endpoint}: {e}")
