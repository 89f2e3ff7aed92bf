"""Configuration model: defaults and validation happen here, once, before a
reflection pass starts.  The engine itself never reads these defaults.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from secret_reflector.errors import ConfigError
from secret_reflector.gsm import ENCODING_TYPE_STRING, ENCODING_TYPES
from secret_reflector.vault import (
    AUTH_TYPE_TOKEN,
    AUTH_TYPES,
    ENGINE_TYPE_KV_V2,
    ENGINE_TYPES,
)

# Label attached to every Secret this tool writes.
LABEL_KEY = "secret-reflector"

DEFAULT_LABEL_VALUE = "default"
DEFAULT_NAMESPACE = "default"
DEFAULT_SECRET_TYPE = "Opaque"
DEFAULT_ENGINE_TYPE = ENGINE_TYPE_KV_V2
DEFAULT_GCP_AUTH_PATH = "gcp"

SOURCE_TYPE_VAULT = "vault"
SOURCE_TYPE_GSM = "gsm"
SOURCE_TYPES = (SOURCE_TYPE_VAULT, SOURCE_TYPE_GSM)

# DNS-1123 subdomain, which is what the API server accepts for Secret names.
_SECRET_NAME_RE = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*")
_SECRET_NAME_MAX = 253


def _str_dict(value: Any, what: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{what} must be a mapping, got {type(value).__name__}")
    return {str(k): str(v) for k, v in value.items()}


@dataclass(frozen=True)
class Mapping:
    """One source secret and the Kubernetes Secret it is reflected into."""

    path: str = ""
    secret_name: str = ""
    source_type: str = ""
    secret_type: str = ""
    vault_engine_type: str = ""
    gsm_encoding_type: str = ""
    gsm_secret_key_value: str = ""
    additional_labels: Dict[str, str] = field(default_factory=dict)
    # deprecated spelling of `path`, only ever read by set_defaults/validate
    vault_path: str = ""

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Mapping":
        if not isinstance(d, dict):
            raise ConfigError(f"mapping entries must be mappings, got {type(d).__name__}")
        return cls(
            path=str(d.get("path") or ""),
            secret_name=str(d.get("secretName") or ""),
            source_type=str(d.get("sourceType") or ""),
            secret_type=str(d.get("secretType") or ""),
            vault_engine_type=str(d.get("vaultEngineType") or ""),
            gsm_encoding_type=str(d.get("gsmEncodingType") or ""),
            gsm_secret_key_value=str(d.get("gsmSecretKeyValue") or ""),
            additional_labels=_str_dict(d.get("additionalSecretLabels"), "additionalSecretLabels"),
            vault_path=str(d.get("vaultPath") or ""),
        )

    @property
    def source_path(self) -> str:
        return self.path or self.vault_path

    def with_defaults(self, default_engine_type: str) -> "Mapping":
        source_type = self.source_type or SOURCE_TYPE_VAULT
        path = self.source_path
        changes: Dict[str, Any] = {
            "path": path,
            "vault_path": "",
            "source_type": source_type,
            "secret_type": self.secret_type or DEFAULT_SECRET_TYPE,
        }
        if source_type == SOURCE_TYPE_VAULT:
            changes["vault_engine_type"] = self.vault_engine_type or default_engine_type
        elif source_type == SOURCE_TYPE_GSM:
            changes["gsm_encoding_type"] = self.gsm_encoding_type or ENCODING_TYPE_STRING
            if path and "/versions/" not in path:
                changes["path"] = f"{path.rstrip('/')}/versions/latest"
        return replace(self, **changes)

    def problems(self) -> Optional[str]:
        """Return a description of the first thing wrong with this mapping."""
        label = self.secret_name or self.source_path or "<unnamed>"
        if not self.source_path:
            return f"mapping {label}: path is required"
        if self.source_type not in ("",) + SOURCE_TYPES:
            return f"mapping {label}: unknown source type {self.source_type!r}"
        if not self.secret_name:
            return f"mapping {label}: secretName is required"
        if len(self.secret_name) > _SECRET_NAME_MAX or not _SECRET_NAME_RE.fullmatch(self.secret_name):
            return f"mapping {label}: secretName {self.secret_name!r} is not a valid Kubernetes name"
        if self.vault_engine_type and self.vault_engine_type not in ENGINE_TYPES:
            return f"mapping {label}: unknown vault engine type {self.vault_engine_type!r}"
        if self.gsm_encoding_type and self.gsm_encoding_type not in ENCODING_TYPES:
            return f"mapping {label}: unknown GSM encoding type {self.gsm_encoding_type!r}"
        return None


@dataclass
class VaultConfig:
    url: str = ""
    auth_type: str = ""
    auth_path: str = ""
    role: str = ""
    token: str = ""
    default_engine_type: str = ""
    tls: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "VaultConfig":
        d = d or {}
        if not isinstance(d, dict):
            raise ConfigError("vault must be a mapping")
        tls = d.get("tls") or {}
        if not isinstance(tls, dict):
            raise ConfigError("vault.tls must be a mapping")
        return cls(
            url=str(d.get("url") or ""),
            auth_type=str(d.get("authType") or ""),
            auth_path=str(d.get("authPath") or ""),
            role=str(d.get("role") or ""),
            token=str(d.get("token") or ""),
            default_engine_type=str(d.get("defaultEngineType") or ""),
            tls=dict(tls),
        )


@dataclass
class Config:
    vault: VaultConfig = field(default_factory=VaultConfig)
    namespace: str = ""
    label: str = ""
    mappings: List[Mapping] = field(default_factory=list)

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "Config":
        d = d or {}
        if not isinstance(d, dict):
            raise ConfigError("configuration must be a mapping at the top level")
        raw_mappings = d.get("mappings") or []
        if not isinstance(raw_mappings, list):
            raise ConfigError("mappings must be a list")
        return cls(
            vault=VaultConfig.from_dict(d.get("vault")),
            namespace=str(d.get("namespace") or ""),
            label=str(d.get("label") or ""),
            mappings=[Mapping.from_dict(m) for m in raw_mappings],
        )

    def source_types(self) -> List[str]:
        return sorted({m.source_type or SOURCE_TYPE_VAULT for m in self.mappings})

    def set_defaults(self) -> None:
        """Fill in everything the file left out.  Never clobbers set values."""
        if not self.namespace:
            self.namespace = DEFAULT_NAMESPACE
        if not self.label:
            self.label = DEFAULT_LABEL_VALUE
        if not self.vault.auth_type:
            self.vault.auth_type = AUTH_TYPE_TOKEN
        if not self.vault.auth_path:
            self.vault.auth_path = DEFAULT_GCP_AUTH_PATH
        if not self.vault.default_engine_type:
            self.vault.default_engine_type = DEFAULT_ENGINE_TYPE
        self.mappings = [m.with_defaults(self.vault.default_engine_type) for m in self.mappings]

    def validate(self) -> None:
        if not self.mappings:
            raise ConfigError("no mappings provided")
        for m in self.mappings:
            problem = m.problems()
            if problem:
                raise ConfigError(problem)
        if self.vault.default_engine_type and self.vault.default_engine_type not in ENGINE_TYPES:
            raise ConfigError(f"unknown vault default engine type {self.vault.default_engine_type!r}")
        if SOURCE_TYPE_VAULT in self.source_types():
            if self.vault.auth_type and self.vault.auth_type not in AUTH_TYPES:
                raise ConfigError(f"unsupported vault auth type {self.vault.auth_type!r}")
