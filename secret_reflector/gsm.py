"""Google Secret Manager source."""
from __future__ import annotations

from typing import TYPE_CHECKING

from google.api_core.exceptions import GoogleAPIError, NotFound

from secret_reflector.errors import SourceFetchError, SourceNotFound
from secret_reflector.sources import SourceAdapter

if TYPE_CHECKING:
    from secret_reflector.config import Mapping

# "string": the whole payload lands under one key.
# "json":   the payload is a JSON object; each top-level key becomes a field.
ENCODING_TYPE_STRING = "string"
ENCODING_TYPE_JSON = "json"
ENCODING_TYPES = (ENCODING_TYPE_STRING, ENCODING_TYPE_JSON)


class GSMSource(SourceAdapter):
    """Reads secret versions through a ``SecretManagerServiceClient``.

    ``path`` must be a fully-qualified version name, e.g.
    ``projects/p/secrets/s/versions/3``.  Aliases such as a bare secret name
    are expanded while the configuration is defaulted, not here.
    """

    source_type = "gsm"

    def __init__(self, client):
        self.client = client

    def read(self, mapping: "Mapping") -> bytes:
        return self.fetch(mapping.path)

    def fetch(self, path: str) -> bytes:
        try:
            response = self.client.access_secret_version(request={"name": path})
        except NotFound as e:
            raise SourceNotFound(path) from e
        except GoogleAPIError as e:
            # API errors and exhausted retries; anything else is a bug
            raise SourceFetchError(path, f"error accessing GSM secret {path!r}: {e}") from e
        return bytes(response.payload.data)
