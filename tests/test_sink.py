"""Tests for the Kubernetes Secret sink."""
from __future__ import annotations

import base64

import pytest
from kubernetes.client.rest import ApiException
from urllib3.exceptions import MaxRetryError, ReadTimeoutError

from conftest import NAMESPACE, decoded, put_secret
from secret_reflector.errors import (
    DestinationListError,
    DestinationNotFound,
    DestinationWriteError,
)
from secret_reflector.sink import SecretObject, build_secret


def secret(name="foo", data=None, labels=None) -> SecretObject:
    return SecretObject(
        name=name,
        namespace=NAMESPACE,
        labels=labels if labels is not None else {"secret-reflector": "test"},
        data=data if data is not None else {"k": b"v"},
    )


class TestBuildSecret:

    def test_fields(self):
        body = build_secret(SecretObject(
            name="tls", namespace="apps", labels={"a": "b"},
            secret_type="kubernetes.io/tls", data={"tls.crt": b"\x00cert"},
        ))
        assert body.metadata.name == "tls"
        assert body.metadata.namespace == "apps"
        assert body.metadata.labels == {"a": "b"}
        assert body.type == "kubernetes.io/tls"
        assert body.data == {"tls.crt": base64.b64encode(b"\x00cert").decode()}


class TestKubernetesSecretSink:

    def test_list_names_filters_by_label(self, k8s_api, sink):
        put_secret(k8s_api, "mine", {"secret-reflector": "test"}, {})
        put_secret(k8s_api, "theirs", {"secret-reflector": "other"}, {})
        put_secret(k8s_api, "plain", {}, {})

        assert sink.list_names("secret-reflector", "test") == {"mine"}

    def test_list_error(self, k8s_api, sink):
        k8s_api.fail["list"] = ApiException(status=403, reason="Forbidden")
        with pytest.raises(DestinationListError, match="403"):
            sink.list_names("secret-reflector", "test")

    def test_create_then_update(self, k8s_api, sink):
        sink.create(secret(data={"k": b"one"}))
        sink.update(secret(data={"k": b"two"}))

        assert decoded(k8s_api.read_namespaced_secret("foo", NAMESPACE)) == {"k": b"two"}

    def test_create_conflict(self, sink):
        sink.create(secret())
        with pytest.raises(DestinationWriteError, match="error creating secret foo: 409"):
            sink.create(secret())

    def test_update_missing(self, sink):
        with pytest.raises(DestinationWriteError, match="error updating secret foo: 404"):
            sink.update(secret())

    def test_delete(self, k8s_api, sink):
        sink.create(secret())
        sink.delete("foo")
        assert k8s_api.secrets[NAMESPACE] == {}

    def test_delete_missing(self, sink):
        with pytest.raises(DestinationNotFound) as exc:
            sink.delete("foo")
        assert exc.value.name == "foo"

    def test_delete_error(self, k8s_api, sink):
        k8s_api.fail["delete"] = ApiException(status=500, reason="Internal Server Error")
        with pytest.raises(DestinationWriteError, match="error deleting secret foo: 500"):
            sink.delete("foo")


class TestTransportErrors:
    """Connection-level failures from urllib3 surface as sink errors."""

    def test_list(self, k8s_api, sink):
        k8s_api.fail["list"] = MaxRetryError(None, "/api/v1/namespaces/default/secrets", "connection refused")
        with pytest.raises(DestinationListError, match="transport error"):
            sink.list_names("secret-reflector", "test")

    def test_create(self, k8s_api, sink):
        k8s_api.fail["create"] = ReadTimeoutError(None, "/api/v1/namespaces/default/secrets", "read timed out")
        with pytest.raises(DestinationWriteError, match="error creating secret foo: transport error"):
            sink.create(secret())

    def test_update(self, k8s_api, sink):
        k8s_api.fail["replace"] = MaxRetryError(None, "/api/v1/namespaces/default/secrets/foo", "refused")
        with pytest.raises(DestinationWriteError, match="error updating secret foo"):
            sink.update(secret())

    def test_delete_is_not_treated_as_gone(self, k8s_api, sink):
        k8s_api.fail["delete"] = MaxRetryError(None, "/api/v1/namespaces/default/secrets/foo", "refused")
        with pytest.raises(DestinationWriteError, match="error deleting secret foo"):
            sink.delete("foo")
