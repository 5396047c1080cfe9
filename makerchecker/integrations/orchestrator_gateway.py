"""
Workflow Orchestrator Gateway.

The only outbound call this service makes is "complete this user task
with these variables", issued after a checker approves a sheet.  The
orchestrator exposes a process-engine REST API:

    POST {ORCHESTRATOR_URL}/runtime/tasks/{task_id}
    {"action": "complete", "variables": [{"name": ..., "value": ...}]}

  - Basic auth when ORCHESTRATOR_USERNAME is configured
  - Retry: max 2 retries on 5xx / network errors, backoff 1 s → 4 s
  - 4xx is not retried (task unknown, already completed, bad variables)
  - Exhausted or rejected calls raise OrchestratorError

Testability: pass a mock `session` to OrchestratorGateway() in tests, or
place a stub gateway in ``app.extensions["orchestrator_gateway"]``.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests
from flask import current_app

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]    # sleep[0] after 1st fail, sleep[1] after 2nd

# ── Default request timeout ────────────────────────────────────────────────
_DEFAULT_TIMEOUT = 30

_EXTENSION_KEY = "orchestrator_gateway"


class OrchestratorError(Exception):
    """Raised when the orchestrator rejects or never acknowledges a call.

    Attributes:
        status_code: Last HTTP status seen (None for network-level failures).
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class OrchestratorGateway:
    """Process-engine REST API gateway.

    Usage:
        gateway = get_gateway()
        gateway.complete_task(task_id, {"productDecision": "APPROVE"})
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth: tuple[str, str] | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth = auth
        self.timeout = timeout
        # Inject custom session for testing; create real one lazily otherwise.
        self._session: requests.Session | None = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    # ── Core request dispatcher ───────────────────────────────────────────────

    def request(
        self, method: str, path: str, *, json_body: Any = None, timeout: int | None = None,
    ) -> requests.Response:
        """Execute a request with retries.

        ``timeout`` overrides the gateway default for this call only.

        Raises:
            OrchestratorError: 4xx response, or 5xx / network failure on
                every attempt.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        last_error = "Unknown error"
        last_status: int | None = None
        timeout = timeout or self.timeout

        for attempt in range(_RETRY_MAX + 1):  # 0, 1, 2
            try:
                resp = self.session.request(
                    method, url,
                    json=json_body, headers=headers, auth=self.auth, timeout=timeout,
                )
                last_status = resp.status_code
                if resp.ok:
                    return resp

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                if resp.status_code < 500:
                    logger.warning("Orchestrator rejected %s %s: %s", method, url, last_error)
                    raise OrchestratorError(last_error, status_code=resp.status_code)

                logger.warning(
                    "Orchestrator request failed attempt=%d/%d status=%d url=%s",
                    attempt + 1, _RETRY_MAX + 1, resp.status_code, url,
                )

            except requests.Timeout:
                last_error = f"Request timed out after {timeout}s"
                logger.warning(
                    "Orchestrator request timed out attempt=%d/%d url=%s",
                    attempt + 1, _RETRY_MAX + 1, url,
                )

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                logger.warning(
                    "Orchestrator network error attempt=%d/%d url=%s error=%s",
                    attempt + 1, _RETRY_MAX + 1, url, last_error,
                )

            if attempt < _RETRY_MAX:
                sleep_s = _RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)]
                logger.info("Retrying orchestrator request in %ss (attempt %d)", sleep_s, attempt + 2)
                time.sleep(sleep_s)

        raise OrchestratorError(last_error, status_code=last_status)

    # ── Task operations ───────────────────────────────────────────────────────

    def complete_task(self, task_id: str, variables: dict | None = None, *, timeout: int | None = None) -> None:
        """Complete a user task, passing ``variables`` to the process."""
        body = {
            "action": "complete",
            "variables": [{"name": k, "value": v} for k, v in (variables or {}).items()],
        }
        self.request("POST", f"runtime/tasks/{task_id}", json_body=body, timeout=timeout)
        logger.info("Completed orchestrator task %s with %s", task_id, sorted((variables or {}).keys()))


def build_gateway(config) -> OrchestratorGateway:
    """Create a gateway from a Flask config mapping."""
    username = config.get("ORCHESTRATOR_USERNAME")
    auth = (username, config.get("ORCHESTRATOR_PASSWORD") or "") if username else None
    return OrchestratorGateway(
        config["ORCHESTRATOR_URL"],
        auth=auth,
        timeout=config.get("ORCHESTRATOR_TIMEOUT", _DEFAULT_TIMEOUT),
    )


def get_gateway() -> OrchestratorGateway:
    """Return the app's gateway, creating it on first use."""
    gateway = current_app.extensions.get(_EXTENSION_KEY)
    if gateway is None:
        gateway = build_gateway(current_app.config)
        current_app.extensions[_EXTENSION_KEY] = gateway
    return gateway
