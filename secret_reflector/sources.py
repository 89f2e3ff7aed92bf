"""The contract every secret source implements.

A source turns a mapping into raw secret material.  What "raw" means is
source-specific; `secret_reflector.normalize` knows how to flatten each kind.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from secret_reflector.config import Mapping


class SourceAdapter:
    """Base class for secret sources.

    Subclasses set ``source_type`` to the value mappings use to select them
    and implement ``read``.
    """

    source_type = ""

    def read(self, mapping: "Mapping") -> Any:
        raise NotImplementedError
