"""Dienst-Interface und HTTP-Implementierung für den Instance-Metadata-Service.

Dieses Modul definiert:
- die Ergebnis-Typen `MetadataValue`, `MetadataAbsent` und `MetadataTransportError`,
  von denen jeder Abruf genau einen zurückgibt.
- `MetadataService` (Abstraktes Interface).
- `MetadataHttpService` als konkrete Implementierung über `httpx`.

Ein 404 ist kein Fehler, sondern bedeutet "Feld auf dieser Plattform nicht
vorhanden". Jeder Fehler beim Abruf selbst (Timeout, Verbindungs- oder DNS-Fehler,
kaputtes Content-Encoding, zu viele Redirects) wird als `MetadataTransportError`
gemeldet. Es gibt keine Retries.
"""
from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Optional, Union

import httpx
from pydantic import BaseModel, ConfigDict

from metadata_client.paths import MetadataPath

logger = logging.getLogger(__name__)

DEFAULT_METADATA_ENDPOINT = "http://169.254.169.254/latest/meta-data/"
DEFAULT_TIMEOUT_S = 1.0


class MetadataValue(BaseModel):
    """Der Endpoint hat geantwortet; `value` ist der komplette Response-Body."""
    model_config = ConfigDict(frozen=True)

    path: str
    value: str


class MetadataAbsent(BaseModel):
    """Der Endpoint hat mit 404 geantwortet."""
    model_config = ConfigDict(frozen=True)

    path: str


class MetadataTransportError(BaseModel):
    """Der Abruf ist fehlgeschlagen, es liegt keine verwertbare Antwort vor."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    path: str
    error: httpx.RequestError


MetadataResult = Union[MetadataValue, MetadataAbsent, MetadataTransportError]


def value_or_empty(result: MetadataResult) -> str:
    """Best-effort Auflösung: Wert bei Erfolg, sonst leerer String."""
    if isinstance(result, MetadataValue):
        return result.value
    return ""


def _as_path(path: Union[MetadataPath, str]) -> str:
    if isinstance(path, MetadataPath):
        return path.value
    return path.lstrip("/")


class MetadataService(ABC):
    """Abstraktes Interface für den Zugriff auf Instanz-Metadaten."""

    @abstractmethod
    def get_metadata(self, path: Union[MetadataPath, str]) -> MetadataResult:
        """Einen einzelnen Metadaten-Pfad abfragen.

        Args:
            path: Pfad relativ zum Metadata-Endpoint, z.B. `instance-id`.

        Returns:
            Genau eines von `MetadataValue`, `MetadataAbsent` oder
            `MetadataTransportError`. Es wird nie eine Exception geworfen.
        """
        raise NotImplementedError

    def close(self) -> None:  # pragma: no cover - trivial default
        """Standard-Implementierung: keine Aktion."""
        return None

    def __enter__(self) -> "MetadataService":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class MetadataHttpService(MetadataService):
    """Fragt den Metadata-Service per HTTP GET ab, ein Request pro Pfad.

    `timeout` gilt für den kompletten Request inklusive Body, nicht nur pro
    Phase wie bei `httpx.Timeout`.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_METADATA_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT_S,
        client: Optional[httpx.Client] = None,
    ) -> None:
        # Validierungen
        if base_url is None:
            raise ValueError("base_url darf nicht None sein")
        if not isinstance(base_url, str):
            raise TypeError("base_url muss vom Typ str sein")

        # trailing slash, damit "hostname" unterhalb von ".../meta-data/" landet
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = float(timeout)

        # Ein extern übergebener Client wird nicht von uns geschlossen
        self._external_client = client is not None
        if client is None:
            self._client = httpx.Client(timeout=self.timeout)
        else:
            self._client = client

    def url_for(self, path: Union[MetadataPath, str]) -> str:
        return self.base_url + _as_path(path)

    def get_metadata(self, path: Union[MetadataPath, str]) -> MetadataResult:
        relative_path = _as_path(path)
        url = self.url_for(relative_path)
        deadline = time.monotonic() + self.timeout
        try:
            with self._client.stream("GET", url, timeout=self.timeout) as response:
                if response.status_code == 404:
                    logger.debug("metadata endpoint %s not found", url)
                    return MetadataAbsent(path=relative_path)
                body = self._read_body(response, deadline)
        except httpx.RequestError as e:
            logger.error("error requesting metadata from %s: %s", url, e)
            return MetadataTransportError(path=relative_path, error=e)

        return MetadataValue(path=relative_path, value=body)

    def _read_body(self, response: httpx.Response, deadline: float) -> str:
        chunks = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if time.monotonic() > deadline:
                raise httpx.ReadTimeout(
                    f"response not complete within {self.timeout:.1f}s", request=response.request
                )
        return b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")

    def close(self) -> None:
        """Schliesse den internen HTTP-Client, falls er intern erstellt wurde."""
        if not getattr(self, "_external_client", False):
            try:
                self._client.close()
            except Exception:
                logger.exception("Fehler beim Schliessen des HTTP-Clients")
