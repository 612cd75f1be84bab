from pathlib import Path

import pytest
from pydantic import ValidationError

from termination_collector.configuration import ExporterConfiguration, load_configuration
from utils.ConfigLoader import ConfigLoader


def _write(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_defaults_without_any_config(tmp_path: Path):
    cfg = load_configuration(base_dir=tmp_path, environ={})

    assert cfg == ExporterConfiguration()
    assert cfg.metadata_endpoint == "http://169.254.169.254/latest/meta-data/"
    assert cfg.metadata_timeout_s == 1.0
    assert cfg.listen_port == 9189


def test_yaml_then_env_overlay(tmp_path: Path):
    _write(tmp_path / "configs" / "default.yaml", "exporter:\n  listen_port: 9000\n  log_level: info\n")
    _write(tmp_path / "configs" / "staging.yaml", "exporter:\n  listen_port: 9100\n")

    cfg = load_configuration(base_dir=tmp_path, environ={"ENV_NAME": "staging"})

    assert cfg.listen_port == 9100
    assert cfg.log_level == "INFO"


def test_precedence_yaml_env_flags(tmp_path: Path):
    _write(tmp_path / "configs" / "default.yaml",
           "exporter:\n  metadata_endpoint: http://yaml.test/\n  listen_port: 9000\n  listen_address: 127.0.0.1\n")
    environ = {"METADATA_ENDPOINT": "http://env.test/", "EXPORTER_PORT": "9001"}

    cfg = load_configuration(base_dir=tmp_path, environ=environ, overrides={"listen_port": 9002, "log_level": None})

    assert cfg.metadata_endpoint == "http://env.test/"
    assert cfg.listen_port == 9002
    assert cfg.listen_address == "127.0.0.1"
    assert cfg.log_level == "INFO"


def test_explicit_config_file(tmp_path: Path):
    config_file = _write(tmp_path / "other.yaml", "exporter:\n  metadata_timeout_s: 0.5\n")

    cfg = load_configuration(config_path=config_file, base_dir=tmp_path, environ={})

    assert cfg.metadata_timeout_s == 0.5


@pytest.mark.parametrize("environ", [
    {"EXPORTER_PORT": "70000"},
    {"EXPORTER_PORT": "not-a-port"},
    {"METADATA_ENDPOINT": "169.254.169.254/latest"},
    {"METADATA_TIMEOUT_S": "0"},
    {"LOG_LEVEL": "chatty"},
])
def test_invalid_values_are_rejected(tmp_path: Path, environ):
    with pytest.raises(ValidationError):
        load_configuration(base_dir=tmp_path, environ=environ)


def test_unknown_keys_are_rejected(tmp_path: Path):
    _write(tmp_path / "configs" / "default.yaml", "exporter:\n  listen_prot: 9000\n")
    with pytest.raises(ValidationError):
        load_configuration(base_dir=tmp_path, environ={})


def test_config_loader_deep_merges_env_overlay(tmp_path: Path):
    _write(tmp_path / "configs" / "default.yaml", "exporter:\n  listen_port: 1\n  log_level: DEBUG\nother: x\n")
    _write(tmp_path / "configs" / "prod.yaml", "exporter:\n  listen_port: 2\n")

    config = ConfigLoader(base_dir=tmp_path).load(env="prod")

    assert config == {"exporter": {"listen_port": 2, "log_level": "DEBUG"}, "other": "x"}


def test_config_loader_rejects_non_mapping(tmp_path: Path):
    _write(tmp_path / "configs" / "default.yaml", "- just\n- a list\n")
    with pytest.raises(ValueError):
        ConfigLoader(base_dir=tmp_path).load()
