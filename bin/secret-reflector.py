#!/usr/bin/env python3
"""
secret-reflector: copy Vault / Google Secret Manager secrets into Kubernetes.

Usage:
    secret-reflector.py <config.yaml>

Runs a single reflection pass and exits; schedule it as a Kubernetes Job or
CronJob to keep the Secrets in sync.

Exit codes:
    0   success
    10  wrong command-line arguments
    20  configuration file could not be read
    21  configuration file could not be parsed
    22  configuration is invalid
    30  could not build the Vault client
    31  could not build the Kubernetes client
    32  could not build the Secret Manager client
    40  the reflection pass failed (or was interrupted)

Design note: gcp-default Vault auth
    The role defaults to the local part of the default service account's
    email.  An identity JWT for audience "<vault host>/vault/<role>" is
    fetched from the GCE metadata server and exchanged at
    auth/<authPath>/login for a Vault token.
"""
from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import hvac
import requests
import yaml
from hvac.exceptions import VaultError
from kubernetes import client as k8s_client, config as k8s_config


def project_root() -> Path:
    """Return the directory containing this script's parent (repo root)."""
    return Path(__file__).resolve().parent.parent


# Running straight from a checkout: make the package next to bin/ importable.
sys.path.insert(0, str(project_root()))

from secret_reflector import Reflector, __version__  # noqa: E402
from secret_reflector.config import SOURCE_TYPE_GSM, SOURCE_TYPE_VAULT, Config, VaultConfig  # noqa: E402
from secret_reflector.errors import ConfigError, ReflectorError  # noqa: E402
from secret_reflector.gsm import GSMSource  # noqa: E402
from secret_reflector.log import log  # noqa: E402
from secret_reflector.sink import KubernetesSecretSink  # noqa: E402
from secret_reflector.vault import AUTH_TYPE_GCP_DEFAULT, AUTH_TYPE_TOKEN, VaultSource  # noqa: E402

EXIT_OK = 0
EXIT_USAGE = 10
EXIT_CONFIG_READ = 20
EXIT_CONFIG_PARSE = 21
EXIT_CONFIG_INVALID = 22
EXIT_VAULT_CLIENT = 30
EXIT_K8S_CLIENT = 31
EXIT_GSM_CLIENT = 32
EXIT_REFLECT = 40

METADATA_URL = "http://metadata.google.internal/computeMetadata/v1"
METADATA_TIMEOUT = 10

# ---------------------------------------------------------------------------
# Configuration file
# ---------------------------------------------------------------------------

def load_config(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


# ---------------------------------------------------------------------------
# Vault client
# ---------------------------------------------------------------------------

def tls_options(tls: Dict[str, Any]) -> Dict[str, Any]:
    """Translate the vault.tls block into hvac.Client keyword arguments."""
    opts: Dict[str, Any] = {}
    if tls.get("insecure"):
        opts["verify"] = False
    elif tls.get("caCert") or tls.get("caPath"):
        opts["verify"] = tls.get("caCert") or tls.get("caPath")
    if tls.get("clientCert"):
        if tls.get("clientKey"):
            opts["cert"] = (tls["clientCert"], tls["clientKey"])
        else:
            opts["cert"] = tls["clientCert"]
    return opts


def metadata_get(path: str, params: Optional[Dict[str, str]] = None) -> str:
    """GET a value from the GCE metadata server."""
    resp = requests.get(
        f"{METADATA_URL}/{path}",
        params=params,
        headers={"Metadata-Flavor": "Google"},
        timeout=METADATA_TIMEOUT,
    )
    resp.raise_for_status()
    return resp.text


def get_role_via_gcp() -> str:
    email = metadata_get("instance/service-accounts/default/email")
    return email.split("@")[0]


def set_vault_token_via_gcp(client, vault_url: str, role: str, auth_path: str) -> None:
    audience = f"{urlparse(vault_url).hostname}/vault/{role}"
    jwt = metadata_get(
        "instance/service-accounts/default/identity",
        params={"audience": audience, "format": "full"},
    )
    # hvac stores the returned client token on the client
    client.auth.gcp.login(role=role, jwt=jwt, mount_point=auth_path)


def get_vault_client(vault_cfg: VaultConfig):
    if not vault_cfg.url:
        raise ValueError("vault.url is required for vault mappings")

    client = hvac.Client(url=vault_cfg.url, **tls_options(vault_cfg.tls))

    if vault_cfg.auth_type == AUTH_TYPE_TOKEN:
        token = vault_cfg.token or os.environ.get("VAULT_TOKEN", "")
        if not token:
            raise ValueError("vault.token (or $VAULT_TOKEN) is required for token auth")
        client.token = token
    elif vault_cfg.auth_type == AUTH_TYPE_GCP_DEFAULT:
        role = vault_cfg.role
        if not role:
            try:
                role = get_role_via_gcp()
            except requests.RequestException as e:
                raise ValueError(f"error getting role from gcp: {e}") from e
        try:
            set_vault_token_via_gcp(client, vault_cfg.url, role, vault_cfg.auth_path)
        except (requests.RequestException, VaultError) as e:
            raise ValueError(f"unable to set token via gcp: {e}") from e
    else:
        raise ValueError(f"unsupported vault auth type: {vault_cfg.auth_type}")

    return client


# ---------------------------------------------------------------------------
# Kubernetes / Secret Manager clients
# ---------------------------------------------------------------------------

def get_k8s_api():
    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        k8s_config.load_kube_config()
    return k8s_client.CoreV1Api()


def get_gsm_client():
    try:
        from google.cloud import secretmanager
    except ImportError:
        raise SystemExit("google-cloud-secret-manager is required. Run: pip install google-cloud-secret-manager")
    return secretmanager.SecretManagerServiceClient()


def install_signal_handlers(cancel: threading.Event) -> None:
    def _handler(signum, frame):
        log(f"caught signal {signal.Signals(signum).name}, stopping after the current secret")
        cancel.set()
        # a second signal kills the process the usual way
        signal.signal(signal.SIGINT, signal.SIG_DFL)
        signal.signal(signal.SIGTERM, signal.SIG_DFL)

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="secret-reflector",
        description="Reflect Vault and Google Secret Manager secrets into Kubernetes Secrets.",
    )
    parser.add_argument("config", help="Path to the YAML configuration file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return EXIT_OK if e.code in (0, None) else EXIT_USAGE

    cancel = threading.Event()
    if threading.current_thread() is threading.main_thread():
        install_signal_handlers(cancel)

    config_path = Path(args.config)
    try:
        raw = load_config(config_path)
    except OSError as e:
        log(f"error opening configuration file: {e}")
        return EXIT_CONFIG_READ
    except yaml.YAMLError as e:
        log(f"error parsing configuration file: {e}")
        return EXIT_CONFIG_PARSE

    try:
        config = Config.from_dict(raw)
        config.set_defaults()
        config.validate()
    except ConfigError as e:
        log(f"configuration error: {e}")
        return EXIT_CONFIG_INVALID

    source_types = config.source_types()
    sources = {}

    if SOURCE_TYPE_VAULT in source_types:
        try:
            sources[SOURCE_TYPE_VAULT] = VaultSource(get_vault_client(config.vault))
        except (ValueError, VaultError, requests.RequestException) as e:
            log(f"unable to get vault client: {e}")
            return EXIT_VAULT_CLIENT

    try:
        api = get_k8s_api()
    except (k8s_config.ConfigException, OSError) as e:
        log(f"unable to get kubernetes client: {e}")
        return EXIT_K8S_CLIENT

    gsm_client = None
    if SOURCE_TYPE_GSM in source_types:
        from google.auth.exceptions import GoogleAuthError

        try:
            gsm_client = get_gsm_client()
        except (GoogleAuthError, OSError, ValueError) as e:
            log(f"unable to get GSM client: {e}")
            return EXIT_GSM_CLIENT
        sources[SOURCE_TYPE_GSM] = GSMSource(gsm_client)

    reflector = Reflector(
        sources,
        KubernetesSecretSink(api, config.namespace),
        config.namespace,
        config.label,
    )

    try:
        reflector.reflect(config.mappings, cancel=cancel)
    except ReflectorError as e:
        log(f"error reflecting secrets into kubernetes: {e}")
        return EXIT_REFLECT
    finally:
        if gsm_client is not None:
            gsm_client.transport.close()

    log(f"reflected {len(config.mappings)} secret(s) into namespace {config.namespace}")
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
