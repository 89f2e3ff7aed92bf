"""HashiCorp Vault key/value source."""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

import requests
from hvac.exceptions import VaultError

from secret_reflector.errors import (
    MalformedPayload,
    SourceFetchError,
    SourceNotFound,
    UnsupportedEngineVariant,
)
from secret_reflector.sources import SourceAdapter

if TYPE_CHECKING:
    from secret_reflector.config import Mapping

# Secrets engine flavours.  kv-v2 nests the fields one level deeper, under
# "data", next to a "metadata" block.
ENGINE_TYPE_KV = "kv"
ENGINE_TYPE_KV_V2 = "kv-v2"
ENGINE_TYPES = (ENGINE_TYPE_KV, ENGINE_TYPE_KV_V2)

# How the entry point authenticates the hvac client.
AUTH_TYPE_TOKEN = "token"
AUTH_TYPE_GCP_DEFAULT = "gcp-default"
AUTH_TYPES = (AUTH_TYPE_TOKEN, AUTH_TYPE_GCP_DEFAULT)


class VaultSource(SourceAdapter):
    """Reads secrets through an authenticated ``hvac.Client``."""

    source_type = "vault"

    def __init__(self, client):
        self.client = client

    def read(self, mapping: "Mapping") -> Dict[str, Any]:
        return self.fetch(mapping.path, mapping.vault_engine_type)

    def fetch(self, path: str, engine_type: str) -> Dict[str, Any]:
        """Return the field map stored at ``path``.

        Values are handed back as Vault returned them; coercion to bytes
        (and rejecting anything that is not text or bytes) is left to
        ``normalize``.
        """
        if engine_type not in ENGINE_TYPES:
            raise UnsupportedEngineVariant(path, f"unknown vault engine type: {engine_type!r}")

        try:
            response = self.client.read(path)
        except (VaultError, requests.RequestException) as e:
            raise SourceFetchError(path, f"error reading vault key '{path}': {e}") from e

        # hvac returns None for a path with nothing behind it
        if response is None:
            raise SourceNotFound(path)

        data = response.get("data") if isinstance(response, dict) else None
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise MalformedPayload(path, f"vault response for '{path}' has non-map data")

        if engine_type == ENGINE_TYPE_KV:
            return data

        unwrapped = data.get("data")
        if not isinstance(unwrapped, dict):
            raise MalformedPayload(
                path,
                f"key/value v2 secret '{path}' did not have expected extra wrapping",
            )
        return unwrapped
