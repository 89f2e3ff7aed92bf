"""secret-reflector: mirror Vault and Google Secret Manager secrets into
Kubernetes Secrets.
"""
from secret_reflector.config import DEFAULT_LABEL_VALUE, LABEL_KEY, Config, Mapping
from secret_reflector.gsm import GSMSource
from secret_reflector.reflector import Reflector
from secret_reflector.sink import KubernetesSecretSink
from secret_reflector.vault import VaultSource

__version__ = "0.1.0"

__all__ = [
    "Config",
    "DEFAULT_LABEL_VALUE",
    "GSMSource",
    "KubernetesSecretSink",
    "LABEL_KEY",
    "Mapping",
    "Reflector",
    "VaultSource",
]
