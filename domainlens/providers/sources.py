"""
Catalog sources: where the raw catalog document comes from.

The source only fetches; validation happens in the parser so a bad
document never reaches readers.
"""
import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from ..errors import CatalogSourceError
from .defaults import DEFAULT_CATALOG

logger = logging.getLogger("providers.sources")


class CatalogSource(Protocol):
    """Anything that can return the raw catalog document."""

    name: str

    def fetch(self) -> Any:
        """
        Return the parsed JSON document.

        Raises:
            CatalogSourceError: if the document cannot be obtained
        """
        ...


class StaticCatalogSource:
    """Serves an in-process document (the built-in catalog by default)."""

    def __init__(self, document: Optional[Dict[str, Any]] = None, name: str = "builtin"):
        self._document = DEFAULT_CATALOG if document is None else document
        self.name = name

    def fetch(self) -> Any:
        return copy.deepcopy(self._document)


class JsonFileCatalogSource:
    """Reads the catalog from a JSON file on every fetch."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.name = f"file:{self.path}"

    def fetch(self) -> Any:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            raise CatalogSourceError(f"Catalog file not found: {self.path}", source=self.name)
        except (OSError, json.JSONDecodeError) as e:
            raise CatalogSourceError(f"Could not read catalog file {self.path}: {e}", source=self.name)


class HttpCatalogSource:
    """
    Fetches the catalog from a config endpoint over HTTP.

    Connection errors and timeouts are retried with exponential backoff;
    HTTP error statuses and malformed bodies are not.
    """

    def __init__(self, url: str, timeout: float = 10.0, headers: Optional[Dict[str, str]] = None):
        self.url = url
        self.timeout = timeout
        self.headers = headers or {"Accept": "application/json"}
        self.name = f"http:{url}"

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
        reraise=True,
    )
    def _get(self) -> requests.Response:
        response = requests.get(self.url, headers=self.headers, timeout=self.timeout)
        response.raise_for_status()
        return response

    def fetch(self) -> Any:
        try:
            response = self._get()
        except requests.RequestException as e:
            raise CatalogSourceError(f"Catalog request to {self.url} failed: {e}", source=self.name)

        try:
            return response.json()
        except ValueError as e:
            raise CatalogSourceError(f"Catalog response from {self.url} is not JSON: {e}", source=self.name)


def build_catalog_source(location: Optional[str]) -> CatalogSource:
    """
    Pick a source from a settings value.

    - None / "" / "builtin" -> built-in catalog
    - http(s)://...         -> HTTP endpoint
    - anything else         -> path to a JSON file
    """
    if not location or location == "builtin":
        return StaticCatalogSource()
    if location.startswith(("http://", "https://")):
        return HttpCatalogSource(location)
    return JsonFileCatalogSource(Path(location))
