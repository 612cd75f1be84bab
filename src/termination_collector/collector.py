"""
Collector for spot instance termination notices.
Queries the instance metadata service on every scrape and yields the
`aws_instance_termination_imminent` and `aws_instance_termination_in` gauges.
Nothing is cached between scrapes.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional, Union

from prometheus_client.core import GaugeMetricFamily
from pydantic import ValidationError

from metadata_client.metadata_service import (
    DEFAULT_TIMEOUT_S,
    MetadataAbsent,
    MetadataHttpService,
    MetadataResult,
    MetadataService,
    MetadataTransportError,
    MetadataValue,
    value_or_empty,
)
from metadata_client.paths import MetadataPath
from metadata_shared.models_v1 import InstanceActionV1, InstanceAttributesV1
from termination_collector.descriptors import init_descriptors

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TerminationCollector:
    def __init__(
            self,
            endpoint: Optional[str] = None,
            timeout: float = DEFAULT_TIMEOUT_S,
            service: Optional[MetadataService] = None,
            now: Callable[[], datetime] = _utcnow,
    ):
        if service is None:
            if endpoint is None:
                raise ValueError("either endpoint or service must be given")
            service = MetadataHttpService(base_url=endpoint, timeout=timeout)
        self._service = service
        self._now = now
        self._descriptors = init_descriptors()

    def describe(self):
        return self._descriptors.families()

    def get_metadata(self, path: Union[MetadataPath, str]) -> MetadataResult:
        return self._service.get_metadata(path)

    def fetch_attributes(self) -> InstanceAttributesV1:
        # best effort: a missing or unreachable field becomes an empty label
        return InstanceAttributesV1(
            availability_zone=value_or_empty(self.get_metadata(MetadataPath.AVAILABILITY_ZONE)),
            hostname=value_or_empty(self.get_metadata(MetadataPath.HOSTNAME)),
            instance_id=value_or_empty(self.get_metadata(MetadataPath.INSTANCE_ID)),
            instance_type=value_or_empty(self.get_metadata(MetadataPath.INSTANCE_TYPE)),
        )

    def collect(self) -> Iterator[GaugeMetricFamily]:
        logger.info("Fetching termination data from metadata-service")

        labels = self.fetch_attributes().label_values()
        action_result = self.get_metadata(MetadataPath.INSTANCE_ACTION)

        if isinstance(action_result, MetadataTransportError):
            logger.error("Failed to fetch data from metadata service: %s", action_result.error)
            return

        if isinstance(action_result, MetadataAbsent) or not action_result.value:
            logger.debug("instance-action endpoint not found")
            yield self._indicator(labels, 0, "")
            return

        instance_action = self._decode_action(action_result)
        if instance_action is None:
            yield self._indicator(labels, 0, "")
            return

        logger.info("instance-action endpoint available, termination time: %s", instance_action.time.isoformat())
        yield self._indicator(labels, 1, instance_action.action)

        delta = (instance_action.time - self._now()).total_seconds()
        if delta > 0:
            family = self._descriptors.time_remaining.family()
            family.add_metric(list(labels), delta)
            yield family

    def close(self) -> None:
        self._service.close()

    def _indicator(self, labels, value: float, action: str) -> GaugeMetricFamily:
        family = self._descriptors.indicator.family()
        family.add_metric(list(labels) + [action], value)
        return family

    @staticmethod
    def _decode_action(result: MetadataValue) -> Optional[InstanceActionV1]:
        # value may be present but not be a time according to AWS docs,
        # so a parse error is not fatal
        try:
            return InstanceActionV1.model_validate_json(result.value)
        except ValidationError as e:
            # the payload itself is not logged
            problems = ["%s:%s" % (".".join(str(p) for p in err["loc"]) or "<root>", err["type"]) for err in e.errors()]
            logger.error("Couldn't parse instance-action metadata (%d bytes): %s", len(result.value), ", ".join(problems))
            return None
