"""Fakes for the three clients secret-reflector talks to, plus fixtures."""
from __future__ import annotations

import base64
import copy
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, Optional

import pytest
from google.api_core.exceptions import NotFound
from kubernetes import client
from kubernetes.client.rest import ApiException

# Make the package importable when running from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from secret_reflector.sink import KubernetesSecretSink  # noqa: E402
from secret_reflector.vault import ENGINE_TYPE_KV, ENGINE_TYPE_KV_V2  # noqa: E402

NAMESPACE = "default"


# ---------------------------------------------------------------------------
# Mock Vault client
# ---------------------------------------------------------------------------

class MockVaultClient:
    """Mock for hvac.Client.read.

    ``engine_mounts`` maps the first path component to the engine mounted
    there, so writes are stored in the shape that engine returns.
    """

    def __init__(self, engine_mounts: Optional[Dict[str, str]] = None):
        self.engine_mounts = engine_mounts or {"secrets": ENGINE_TYPE_KV_V2}
        self.contents: Dict[str, dict] = {}
        self.read_error: Optional[Exception] = None
        self.reads = []

    def read(self, path: str) -> Optional[dict]:
        self.reads.append(path)
        if self.read_error is not None:
            raise self.read_error
        # the real client returns None when nothing is at the path
        return copy.deepcopy(self.contents.get(path))

    def write(self, path: str, data: Dict[str, Any]) -> dict:
        engine = self.engine_mounts.get(path.split("/")[0])
        if engine == ENGINE_TYPE_KV:
            response = {"request_id": "mock-req", "data": dict(data)}
        elif engine == ENGINE_TYPE_KV_V2:
            response = {
                "request_id": "mock-req",
                "data": {"data": dict(data), "metadata": {"version": 1}},
            }
        else:
            raise ValueError(f"unknown engine: {engine}")
        self.contents[path] = response
        return response


# ---------------------------------------------------------------------------
# Mock Secret Manager client
# ---------------------------------------------------------------------------

class MockGSMClient:
    """Mock for SecretManagerServiceClient.access_secret_version."""

    def __init__(self, secrets: Optional[Dict[str, bytes]] = None):
        self.secrets = dict(secrets or {})
        self.error: Optional[Exception] = None

    def access_secret_version(self, request: dict):
        name = request["name"]
        if self.error is not None:
            raise self.error
        if name not in self.secrets:
            raise NotFound(f"Secret Version [{name}] not found.")
        return SimpleNamespace(name=name, payload=SimpleNamespace(data=self.secrets[name]))


# ---------------------------------------------------------------------------
# Mock Kubernetes CoreV1Api
# ---------------------------------------------------------------------------

def _matches(labels: Optional[Dict[str, str]], selector: Optional[str]) -> bool:
    if not selector:
        return True
    labels = labels or {}
    for term in selector.split(","):
        key, _, value = term.partition("=")
        if labels.get(key.strip()) != value.strip():
            return False
    return True


class MockCoreV1Api:
    """In-memory stand-in for the Secret calls of kubernetes.client.CoreV1Api."""

    def __init__(self):
        self.secrets: Dict[str, Dict[str, Any]] = {}  # namespace -> name -> V1Secret
        self.fail: Dict[str, Exception] = {}  # operation -> exception to raise
        self.calls = []

    def _check(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail:
            raise self.fail[op]

    def _ns(self, namespace: str) -> Dict[str, Any]:
        return self.secrets.setdefault(namespace, {})

    def list_namespaced_secret(self, namespace: str, label_selector: Optional[str] = None, **kwargs):
        self._check("list")
        items = [
            copy.deepcopy(s) for s in self._ns(namespace).values()
            if _matches(s.metadata.labels, label_selector)
        ]
        return client.V1SecretList(items=items)

    def read_namespaced_secret(self, name: str, namespace: str, **kwargs):
        self._check("read")
        if name not in self._ns(namespace):
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(self._ns(namespace)[name])

    def create_namespaced_secret(self, namespace: str, body, **kwargs):
        self._check("create")
        if body.metadata.name in self._ns(namespace):
            raise ApiException(status=409, reason="Conflict")
        self._ns(namespace)[body.metadata.name] = copy.deepcopy(body)
        return body

    def replace_namespaced_secret(self, name: str, namespace: str, body, **kwargs):
        self._check("replace")
        if name not in self._ns(namespace):
            raise ApiException(status=404, reason="Not Found")
        self._ns(namespace)[name] = copy.deepcopy(body)
        return body

    def delete_namespaced_secret(self, name: str, namespace: str, **kwargs):
        self._check("delete")
        if name not in self._ns(namespace):
            raise ApiException(status=404, reason="Not Found")
        del self._ns(namespace)[name]


def decoded(secret) -> Dict[str, bytes]:
    """Base64-decode the data of a V1Secret."""
    return {k: base64.b64decode(v) for k, v in (secret.data or {}).items()}


def put_secret(api: MockCoreV1Api, name: str, labels: Dict[str, str], data: Dict[str, bytes]) -> None:
    """Create a Secret directly, bypassing the reflector."""
    api.create_namespaced_secret(
        NAMESPACE,
        client.V1Secret(
            metadata=client.V1ObjectMeta(name=name, namespace=NAMESPACE, labels=labels),
            data={k: base64.b64encode(v).decode() for k, v in data.items()},
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def k8s_api() -> MockCoreV1Api:
    return MockCoreV1Api()


@pytest.fixture
def sink(k8s_api) -> KubernetesSecretSink:
    return KubernetesSecretSink(k8s_api, NAMESPACE)


@pytest.fixture
def gsm_client() -> MockGSMClient:
    return MockGSMClient()


@pytest.fixture(params=[ENGINE_TYPE_KV, ENGINE_TYPE_KV_V2])
def engine_type(request) -> str:
    return request.param


@pytest.fixture
def vault_client(engine_type) -> MockVaultClient:
    return MockVaultClient({"secrets": engine_type})
