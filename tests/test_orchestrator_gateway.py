"""Unit tests for makerchecker.integrations.orchestrator_gateway.

A MagicMock stands in for requests.Session and time.sleep is patched, so
no network traffic or real back-off happens.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from makerchecker.integrations import orchestrator_gateway as gw_module
from makerchecker.integrations.orchestrator_gateway import (
    OrchestratorError,
    OrchestratorGateway,
    build_gateway,
    get_gateway,
)

BASE_URL = "http://orchestrator.test/service/"


def _response(status_code=200, text=""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 300
    resp.text = text
    return resp


def _gateway(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    return OrchestratorGateway(BASE_URL, auth=("svc", "secret"), timeout=5, session=session), session


def test_complete_task_posts_variables():
    gateway, session = _gateway(_response(200))

    gateway.complete_task("task-7", {"productDecision": "APPROVE"})

    session.request.assert_called_once()
    args, kwargs = session.request.call_args
    assert args == ("POST", "http://orchestrator.test/service/runtime/tasks/task-7")
    assert kwargs["json"] == {
        "action": "complete",
        "variables": [{"name": "productDecision", "value": "APPROVE"}],
    }
    assert kwargs["auth"] == ("svc", "secret")
    assert kwargs["timeout"] == 5


def test_complete_task_timeout_override_applies_to_every_attempt():
    gateway, session = _gateway(_response(503, "busy"), _response(204))

    with patch.object(gw_module.time, "sleep"):
        gateway.complete_task("task-7", {}, timeout=2)

    assert [c.kwargs["timeout"] for c in session.request.call_args_list] == [2, 2]


@patch.object(gw_module.time, "sleep")
def test_server_error_is_retried(mock_sleep):
    gateway, session = _gateway(_response(503, "busy"), _response(204))

    gateway.complete_task("task-7", {})

    assert session.request.call_count == 2
    mock_sleep.assert_called_once_with(1)


@patch.object(gw_module.time, "sleep")
def test_client_error_is_not_retried(mock_sleep):
    gateway, session = _gateway(_response(404, "no such task"))

    with pytest.raises(OrchestratorError) as exc:
        gateway.complete_task("missing", {})

    assert exc.value.status_code == 404
    assert session.request.call_count == 1
    mock_sleep.assert_not_called()


@patch.object(gw_module.time, "sleep")
def test_network_errors_exhaust_retries(mock_sleep):
    gateway, session = _gateway(
        requests.ConnectionError("refused"),
        requests.Timeout("slow"),
        requests.ConnectionError("refused"),
    )

    with pytest.raises(OrchestratorError) as exc:
        gateway.complete_task("task-7", {})

    assert exc.value.status_code is None
    assert session.request.call_count == 3
    assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 4]


def test_build_gateway_reads_config():
    gateway = build_gateway({
        "ORCHESTRATOR_URL": "http://engine/api",
        "ORCHESTRATOR_USERNAME": "svc",
        "ORCHESTRATOR_PASSWORD": "pw",
        "ORCHESTRATOR_TIMEOUT": 12,
    })
    assert gateway.base_url == "http://engine/api"
    assert gateway.auth == ("svc", "pw")
    assert gateway.timeout == 12


def test_build_gateway_without_credentials():
    gateway = build_gateway({"ORCHESTRATOR_URL": "http://engine/api"})
    assert gateway.auth is None


def test_get_gateway_is_cached_per_app(app):
    app.extensions.pop("orchestrator_gateway", None)
    first = get_gateway()
    assert first is get_gateway()
    assert first.base_url == app.config["ORCHESTRATOR_URL"]
    app.extensions.pop("orchestrator_gateway", None)
