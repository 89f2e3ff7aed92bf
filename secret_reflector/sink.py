"""Where reflected secrets end up: Kubernetes Secrets in one namespace."""
from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Dict, Set

from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from secret_reflector.errors import (
    DestinationListError,
    DestinationNotFound,
    DestinationWriteError,
)


@dataclass
class SecretObject:
    name: str
    namespace: str
    labels: Dict[str, str] = field(default_factory=dict)
    secret_type: str = "Opaque"
    data: Dict[str, bytes] = field(default_factory=dict)


class DestinationSink:
    """Operations the reflector needs from the destination store."""

    def list_names(self, label_key: str, label_value: str) -> Set[str]:
        raise NotImplementedError

    def create(self, secret: SecretObject) -> None:
        raise NotImplementedError

    def update(self, secret: SecretObject) -> None:
        raise NotImplementedError

    def delete(self, name: str) -> None:
        """Delete ``name``; raise DestinationNotFound if it is already gone."""
        raise NotImplementedError


def build_secret(secret: SecretObject):
    """Construct a V1Secret.  The API wants the data base64-encoded."""
    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(
            name=secret.name,
            namespace=secret.namespace,
            labels=dict(secret.labels),
        ),
        type=secret.secret_type,
        data={k: base64.b64encode(v).decode("ascii") for k, v in secret.data.items()},
    )


def describe(e: Exception) -> str:
    if isinstance(e, ApiException):
        return f"{e.status} {e.reason}"
    # urllib3 transport failure: nothing reached the API server
    return f"transport error: {e}"


class KubernetesSecretSink(DestinationSink):
    """DestinationSink backed by a ``kubernetes.client.CoreV1Api``."""

    def __init__(self, api, namespace: str):
        self.api = api
        self.namespace = namespace

    def list_names(self, label_key: str, label_value: str) -> Set[str]:
        selector = f"{label_key}={label_value}"
        try:
            secrets = self.api.list_namespaced_secret(self.namespace, label_selector=selector)
        except (ApiException, HTTPError) as e:
            raise DestinationListError(
                selector, f"error listing secrets in {self.namespace} ({selector}): {describe(e)}"
            ) from e
        return {s.metadata.name for s in secrets.items or []}

    def create(self, secret: SecretObject) -> None:
        try:
            self.api.create_namespaced_secret(namespace=self.namespace, body=build_secret(secret))
        except (ApiException, HTTPError) as e:
            raise DestinationWriteError(
                secret.name, f"error creating secret {secret.name}: {describe(e)}"
            ) from e

    def update(self, secret: SecretObject) -> None:
        try:
            self.api.replace_namespaced_secret(
                name=secret.name, namespace=self.namespace, body=build_secret(secret),
            )
        except (ApiException, HTTPError) as e:
            raise DestinationWriteError(
                secret.name, f"error updating secret {secret.name}: {describe(e)}"
            ) from e

    def delete(self, name: str) -> None:
        try:
            self.api.delete_namespaced_secret(name=name, namespace=self.namespace)
        except (ApiException, HTTPError) as e:
            if isinstance(e, ApiException) and e.status == 404:
                raise DestinationNotFound(name) from e
            raise DestinationWriteError(
                name, f"error deleting secret {name}: {describe(e)}"
            ) from e
