"""The reflection pass: copy every mapped secret into Kubernetes, then prune
Secrets this label owns that were not part of the pass.
"""
from __future__ import annotations

import threading
from typing import Dict, Iterable, List, Optional, Set

from secret_reflector.config import (
    DEFAULT_LABEL_VALUE,
    DEFAULT_SECRET_TYPE,
    LABEL_KEY,
    SOURCE_TYPE_VAULT,
    Mapping,
)
from secret_reflector.errors import DestinationNotFound, ReflectCancelled, UnsupportedSourceType
from secret_reflector.log import log, warn
from secret_reflector.normalize import normalize
from secret_reflector.sink import DestinationSink, SecretObject
from secret_reflector.sources import SourceAdapter


def stale_secrets(owned: Set[str], touched: Set[str]) -> List[str]:
    """Names owned before the pass that the pass did not write."""
    return sorted(owned - touched)


def secret_labels(mapping: Mapping, label_value: str) -> Dict[str, str]:
    labels = dict(mapping.additional_labels)
    if labels.get(LABEL_KEY, label_value) != label_value:
        warn(
            f"ignoring additional label {LABEL_KEY}={labels[LABEL_KEY]!r} "
            f"on secret {mapping.secret_name}"
        )
    labels[LABEL_KEY] = label_value
    return labels


class Reflector:
    """Moves secrets from Vault / Secret Manager into Kubernetes.

    ``sources`` maps a mapping's source type ("vault", "gsm") to the adapter
    that reads it.  The reflector keeps no state between passes, so one
    instance can run ``reflect`` any number of times.
    """

    def __init__(
        self,
        sources: Dict[str, SourceAdapter],
        sink: DestinationSink,
        namespace: str,
        label_value: str = DEFAULT_LABEL_VALUE,
    ):
        self.sources = dict(sources)
        self.sink = sink
        self.namespace = namespace
        self.label_value = label_value

    def reflect(self, mappings: Iterable[Mapping], cancel: Optional[threading.Event] = None) -> None:
        """Run one pass.  The first failure aborts it and is raised as-is.

        Nothing already written is rolled back, by a failure or by ``cancel``.
        """
        owned = self.sink.list_names(LABEL_KEY, self.label_value)
        touched: Set[str] = set()

        for mapping in mappings:
            _check_cancelled(cancel)
            self._reflect_one(mapping, owned, touched)

        _check_cancelled(cancel)

        # The default label is shared by anyone who didn't pick one, so we
        # can't tell our Secrets apart from theirs.
        if self.label_value == DEFAULT_LABEL_VALUE:
            log(f"label is {DEFAULT_LABEL_VALUE!r}, skipping reconciliation")
            return
        self.reconcile(owned, touched)

    def _reflect_one(self, mapping: Mapping, owned: Set[str], touched: Set[str]) -> None:
        source_type = mapping.source_type or SOURCE_TYPE_VAULT
        source = self.sources.get(source_type)
        if source is None:
            raise UnsupportedSourceType(
                mapping.path, f"no secret source configured for type {source_type!r}"
            )

        raw = source.read(mapping)
        data = normalize(mapping, raw)

        secret = SecretObject(
            name=mapping.secret_name,
            namespace=self.namespace,
            labels=secret_labels(mapping, self.label_value),
            secret_type=mapping.secret_type or DEFAULT_SECRET_TYPE,
            data=data,
        )

        # A name written earlier in this pass exists now even if it wasn't
        # owned at the start; later mappings for it replace it.
        if mapping.secret_name in owned or mapping.secret_name in touched:
            self.sink.update(secret)
        else:
            self.sink.create(secret)

        touched.add(mapping.secret_name)
        log(
            f"reflected {source_type} secret {mapping.path} to kubernetes secret "
            f"{mapping.secret_name} (type {secret.secret_type})"
        )

    def reconcile(self, owned: Set[str], touched: Set[str]) -> List[str]:
        """Delete owned-but-untouched Secrets.  Returns the names removed."""
        removed: List[str] = []
        for name in stale_secrets(owned, touched):
            try:
                self.sink.delete(name)
            except DestinationNotFound:
                log(f"kubernetes secret {name} was already gone")
            else:
                log(f"deleted kubernetes secret {name} (no longer mapped)")
            removed.append(name)
        return removed


def _check_cancelled(cancel: Optional[threading.Event]) -> None:
    if cancel is not None and cancel.is_set():
        raise ReflectCancelled("reflection cancelled")
