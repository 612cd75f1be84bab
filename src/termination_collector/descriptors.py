from typing import Iterable, NamedTuple, Tuple

from prometheus_client.core import GaugeMetricFamily

INSTANCE_LABELS: Tuple[str, ...] = (
    "availability_zone",
    "hostname",
    "instance_id",
    "instance_type",
)
INSTANCE_ACTION_LABEL = "instance_action"


class MetricDescriptor(NamedTuple):
    """Fixed name, help text and label names of one gauge family."""
    name: str
    documentation: str
    labels: Tuple[str, ...]

    def family(self) -> GaugeMetricFamily:
        return GaugeMetricFamily(self.name, self.documentation, labels=list(self.labels))


class TerminationDescriptors(NamedTuple):
    indicator: MetricDescriptor
    time_remaining: MetricDescriptor

    def families(self) -> Iterable[GaugeMetricFamily]:
        return [self.indicator.family(), self.time_remaining.family()]


def init_descriptors(labels: Iterable[str] = INSTANCE_LABELS) -> TerminationDescriptors:
    base_labels = tuple(labels)
    return TerminationDescriptors(
        indicator=MetricDescriptor(
            name="aws_instance_termination_imminent",
            documentation="Instance is about to be terminated",
            labels=base_labels + (INSTANCE_ACTION_LABEL,),
        ),
        time_remaining=MetricDescriptor(
            name="aws_instance_termination_in",
            documentation="Instance will be terminated in",
            labels=base_labels,
        ),
    )
