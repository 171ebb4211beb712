"""Shared fixtures: mocked Kubernetes APIs and backend records."""

import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes.client.exceptions import ApiException

from cloudself.models.website import BackendRecord


def api_error(status, message=None):
    error = ApiException(status=status, reason={404: "Not Found", 409: "Conflict"}.get(status, "Error"))
    if message:
        error.body = json.dumps({"kind": "Status", "message": message})
    return error


def make_record(record_id=7, name="demo", html="<h1>hi</h1>", user_id="u1"):
    return BackendRecord.model_validate(
        {
            "id": record_id,
            "userId": user_id,
            "websiteName": name,
            "htmlContent": html,
            "status": "pending",
            "podIpAddress": None,
            "errorMessage": None,
            "createdAt": "2024-01-01T00:00:00.000Z",
            "updatedAt": "2024-01-01T00:00:00.000Z",
        }
    )


def make_website(name="demo", backend_id=7, status=None, namespace="default"):
    body = {
        "apiVersion": "websites.cloudself.dev/v1",
        "kind": "Website",
        "metadata": {"name": name, "namespace": namespace, "uid": f"uid-{name}"},
        "spec": {
            "websiteName": name,
            "htmlContent": "<h1>hi</h1>",
            "userId": "u1",
            "backendId": backend_id,
        },
    }
    if status is not None:
        body["status"] = status
    return body


def live_pod(phase):
    return SimpleNamespace(status=SimpleNamespace(phase=phase))


def live_service(node_port):
    return SimpleNamespace(
        spec=SimpleNamespace(ports=[SimpleNamespace(port=80, node_port=node_port)])
    )


@pytest.fixture
def core_api():
    api = MagicMock()
    api.create_namespaced_config_map.return_value = MagicMock()
    api.create_namespaced_pod.return_value = live_pod("Pending")
    api.create_namespaced_service.return_value = live_service(None)
    return api


@pytest.fixture
def custom_api():
    return MagicMock()


@pytest.fixture
def backend():
    return MagicMock()
