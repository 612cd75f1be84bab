"""Konfiguration des Exporters.

Reihenfolge (spätere Quellen überschreiben frühere):
1. YAML (`configs/default.yaml`, optional `configs/<ENV_NAME>.yaml`), Abschnitt `exporter`
2. Umgebungsvariablen (siehe `ENV_OVERRIDES`)
3. Kommandozeilen-Flags
"""
import os
from pathlib import Path
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from metadata_client.metadata_service import DEFAULT_METADATA_ENDPOINT, DEFAULT_TIMEOUT_S
from utils.ConfigLoader import ConfigLoader

CONFIG_SECTION = "exporter"

# Umgebungsvariable -> Feld in ExporterConfiguration
ENV_OVERRIDES: Dict[str, str] = {
    "METADATA_ENDPOINT": "metadata_endpoint",
    "METADATA_TIMEOUT_S": "metadata_timeout_s",
    "EXPORTER_BIND_ADDR": "listen_address",
    "EXPORTER_PORT": "listen_port",
    "LOG_LEVEL": "log_level",
}


class ExporterConfiguration(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    metadata_endpoint: str = DEFAULT_METADATA_ENDPOINT
    metadata_timeout_s: float = Field(default=DEFAULT_TIMEOUT_S, gt=0)
    listen_address: str = "0.0.0.0"
    listen_port: int = Field(default=9189, ge=1, le=65535)
    log_level: str = "INFO"
    register_default_collectors: bool = True

    @field_validator("metadata_endpoint")
    @classmethod
    def _endpoint_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("metadata_endpoint must be an http(s) URL")
        return v

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v}")
        return level


def load_configuration(
        config_path: Optional[Path] = None,
        env: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        overrides: Optional[Mapping[str, object]] = None,
        base_dir: Optional[Path] = None,
) -> ExporterConfiguration:
    """Baut die `ExporterConfiguration` aus YAML, Umgebung und expliziten Overrides.

    Args:
        config_path: Optionale YAML-Datei anstelle von `configs/default.yaml`.
        env: Umgebungsname für `configs/<env>.yaml` (Standard: `ENV_NAME`).
        environ: Umgebungsvariablen (Standard: `os.environ`).
        overrides: Werte aus der Kommandozeile; `None`-Werte werden ignoriert.
        base_dir: Basisverzeichnis für relative Pfade (Standard: cwd).

    Raises:
        pydantic.ValidationError: bei ungültigen Werten.
    """
    environ = os.environ if environ is None else environ
    if env is None:
        env = environ.get("ENV_NAME")

    values: Dict[str, object] = dict(
        ConfigLoader(base_dir=base_dir).load_section(CONFIG_SECTION, cfg_path=config_path, env=env or "")
    )
    for env_name, field in ENV_OVERRIDES.items():
        if environ.get(env_name):
            values[field] = environ[env_name]
    for field, value in (overrides or {}).items():
        if value is not None:
            values[field] = value

    return ExporterConfiguration(**values)
