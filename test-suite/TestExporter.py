import logging

import httpx
from prometheus_client import generate_latest

from metadata_client.metadata_service import MetadataHttpService
from termination_collector.collector import TerminationCollector
from termination_collector.configuration import ExporterConfiguration
from termination_collector.exporter import build_registry, configuration_from_args, parse_args
from utils.LoggingUtils import build_logging_config


def _collector(handler) -> TerminationCollector:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return TerminationCollector(service=MetadataHttpService(base_url="http://metadata.test/", client=client))


def test_registry_exposes_termination_metrics():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/instance-id":
            return httpx.Response(200, text="i-0abc")
        return httpx.Response(404)

    registry = build_registry(ExporterConfiguration(register_default_collectors=False), _collector(handler))
    output = generate_latest(registry).decode("utf-8")

    assert "# TYPE aws_instance_termination_imminent gauge" in output
    assert 'instance_action=""' in output
    assert 'instance_id="i-0abc"' in output
    assert "aws_instance_termination_in{" not in output


def test_registration_does_not_scrape():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404)

    build_registry(ExporterConfiguration(register_default_collectors=False), _collector(handler))
    assert calls == []


def test_default_collectors_are_registered():
    registry = build_registry(ExporterConfiguration(), _collector(lambda r: httpx.Response(404)))
    output = generate_latest(registry).decode("utf-8")

    assert "python_info" in output


def test_action_transport_error_serves_no_termination_samples():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/spot/instance-action":
            raise httpx.ConnectError("down")
        return httpx.Response(200, text="x")

    registry = build_registry(ExporterConfiguration(register_default_collectors=False), _collector(handler))
    output = generate_latest(registry).decode("utf-8")

    assert "aws_instance_termination" not in output


def test_flags_override_configuration(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for name in ("ENV_NAME", "METADATA_ENDPOINT", "EXPORTER_PORT", "EXPORTER_BIND_ADDR", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)

    args = parse_args(["--metadata-endpoint", "http://localhost:1338/latest/meta-data/",
                       "--listen-port", "9999", "--log-level", "debug"])
    cfg = configuration_from_args(args)

    assert cfg.metadata_endpoint == "http://localhost:1338/latest/meta-data/"
    assert cfg.listen_port == 9999
    assert cfg.log_level == "DEBUG"
    assert cfg.listen_address == "0.0.0.0"


def test_logging_config_level_and_quiet_httpx():
    config = build_logging_config(logging.DEBUG)

    assert config["root"]["level"] == "DEBUG"
    assert config["loggers"]["httpx"]["level"] == "WARNING"
    assert build_logging_config("warning")["root"]["level"] == "WARNING"
