import os
from pathlib import Path
from typing import Dict, Optional, Union

import yaml


class ConfigLoader:
    """Lädt eine YAML-Konfiguration plus optionales Umgebungs-Overlay `configs/<env>.yaml`."""

    def __init__(self, base_dir: Optional[Path] = None, default_config: str = "configs/default.yaml"):
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self.default_config = default_config

    def _deep_update(self, base: Dict, override: Dict) -> Dict:
        for k, v in override.items():
            if isinstance(v, dict) and isinstance(base.get(k), dict):
                base[k] = self._deep_update(base[k], v)
            else:
                base[k] = v
        return base

    def _read(self, path: Path) -> Dict:
        if not path.is_absolute():
            path = self.base_dir / path
        if not path.exists():
            # optionale Dateien dürfen fehlen
            return {}
        with path.open("r", encoding="utf-8") as f:
            content = yaml.safe_load(f) or {}
        if not isinstance(content, dict):
            raise ValueError(f"Config file {path} must contain a mapping at top level")
        return content

    def load(self, cfg_path: Optional[Union[str, Path]] = None, env: Optional[str] = None) -> Dict:
        """
        Lädt `cfg_path` (Standard: `default_config`) und legt bei gesetztem `env`
        die Datei configs/<env>.yaml darüber, falls sie existiert.
        """
        config = self._read(Path(cfg_path if cfg_path is not None else self.default_config))
        if env:
            config = self._deep_update(config, self._read(Path("configs") / f"{env}.yaml"))
        return config

    def load_section(self, section: str, cfg_path: Optional[Union[str, Path]] = None,
                     env: Optional[str] = None) -> Dict:
        """Gibt nur den Abschnitt `section` zurück (leer, falls nicht vorhanden)."""
        env = env if env is not None else os.environ.get("ENV_NAME")
        part = self.load(cfg_path=cfg_path, env=env).get(section) or {}
        if not isinstance(part, dict):
            raise ValueError(f"Config section '{section}' must be a mapping")
        return part
