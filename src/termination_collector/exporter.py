"""
Prometheus exporter entrypoint.
Registers the termination collector and serves /metrics until SIGTERM/SIGINT.
Every scrape runs one collection cycle against the metadata service.
"""
import argparse
import logging
import signal
from pathlib import Path
from threading import Event
from typing import List, Optional

from prometheus_client import CollectorRegistry, platform_collector, process_collector, start_http_server

from termination_collector.collector import TerminationCollector
from termination_collector.configuration import ExporterConfiguration, load_configuration
from utils.LoggingUtils import configure_logging

logger = logging.getLogger(__name__)

stop_event = Event()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export spot instance termination notices as Prometheus metrics")
    parser.add_argument("--config", type=Path, default=None, help="YAML config file (default: configs/default.yaml)")
    parser.add_argument("--env", default=None, help="Environment name, loads configs/<env>.yaml on top")
    parser.add_argument("--metadata-endpoint", default=None, help="Base URL of the instance metadata service")
    parser.add_argument("--listen-address", default=None, help="Address to serve metrics on")
    parser.add_argument("--listen-port", type=int, default=None, help="Port to serve metrics on")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    return parser.parse_args(argv)


def configuration_from_args(args: argparse.Namespace) -> ExporterConfiguration:
    return load_configuration(
        config_path=args.config,
        env=args.env,
        overrides={
            "metadata_endpoint": args.metadata_endpoint,
            "listen_address": args.listen_address,
            "listen_port": args.listen_port,
            "log_level": args.log_level,
        },
    )


def build_registry(configuration: ExporterConfiguration, collector: TerminationCollector) -> CollectorRegistry:
    registry = CollectorRegistry()
    if configuration.register_default_collectors:
        platform_collector.PlatformCollector(registry=registry)
        process_collector.ProcessCollector(registry=registry)
    registry.register(collector)
    return registry


def main(argv: Optional[List[str]] = None):
    configuration = configuration_from_args(parse_args(argv))
    listener = configure_logging(configuration.log_level)

    collector = TerminationCollector(
        endpoint=configuration.metadata_endpoint,
        timeout=configuration.metadata_timeout_s,
    )
    registry = build_registry(configuration, collector)

    logger.info('Using metadata endpoint %s', configuration.metadata_endpoint)
    logger.info('Starting HTTP metrics server on %s:%d', configuration.listen_address, configuration.listen_port)
    server, server_thread = start_http_server(configuration.listen_port, addr=configuration.listen_address,
                                              registry=registry)

    def _signal_handler(signum, frame):
        logger.info('Signal received: %s, shutting down', signum)
        stop_event.set()

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    try:
        while not stop_event.is_set():
            stop_event.wait(0.5)
    except KeyboardInterrupt:
        stop_event.set()

    server.shutdown()
    server_thread.join(timeout=5)
    collector.close()
    logger.info('Exporter shutdown complete')
    listener.stop()


if __name__ == '__main__':
    main()
