import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Union

import httpx
import pytest

from metadata_client.metadata_service import MetadataHttpService
from termination_collector.collector import TerminationCollector

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)

ATTRIBUTES = {
    "placement/availability-zone": "eu-central-1b",
    "hostname": "ip-10-0-1-17.eu-central-1.compute.internal",
    "instance-id": "i-0abc123def4567890",
    "instance-type": "m5.large",
}
BASE_LABELS = {
    "availability_zone": "eu-central-1b",
    "hostname": "ip-10-0-1-17.eu-central-1.compute.internal",
    "instance_id": "i-0abc123def4567890",
    "instance_type": "m5.large",
}

Reply = Union[str, int, Exception, httpx.Response]


class FakeMetadata:
    """Antwortet pro Pfad mit Body (str), Statuscode (int), fertiger Response oder wirft eine Exception."""

    def __init__(self, replies: Dict[str, Reply]):
        self.replies = replies
        self.requested: List[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path[len("/latest/meta-data/"):]
        self.requested.append(path)
        reply = self.replies.get(path, 404)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, httpx.Response):
            return reply
        if isinstance(reply, int):
            return httpx.Response(reply)
        return httpx.Response(200, text=reply)


def _collector(replies: Dict[str, Reply], now=lambda: NOW) -> TerminationCollector:
    client = httpx.Client(transport=httpx.MockTransport(FakeMetadata(replies)))
    service = MetadataHttpService(base_url="http://metadata.test/latest/meta-data/", client=client)
    return TerminationCollector(service=service, now=now)


def _samples(collector: TerminationCollector) -> Dict[str, list]:
    result: Dict[str, list] = {}
    for family in collector.collect():
        result.setdefault(family.name, []).extend(family.samples)
    return result


def _action(action: str, when: datetime) -> str:
    return json.dumps({"action": action, "time": when.isoformat().replace("+00:00", "Z")})


def test_notice_absent_emits_zero_indicator_only():
    samples = _samples(_collector(dict(ATTRIBUTES)))

    assert list(samples) == ["aws_instance_termination_imminent"]
    (sample,) = samples["aws_instance_termination_imminent"]
    assert sample.value == 0
    assert sample.labels == dict(BASE_LABELS, instance_action="")


def test_future_notice_emits_indicator_and_time_remaining():
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = _action("terminate", NOW + timedelta(seconds=120))

    samples = _samples(_collector(replies))

    (indicator,) = samples["aws_instance_termination_imminent"]
    assert indicator.value == 1
    assert indicator.labels == dict(BASE_LABELS, instance_action="terminate")

    (remaining,) = samples["aws_instance_termination_in"]
    assert remaining.labels == BASE_LABELS
    assert remaining.value == pytest.approx(120.0)


def test_time_remaining_uses_real_clock_by_default():
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = _action("stop", datetime.now(timezone.utc) + timedelta(minutes=2))
    client = httpx.Client(transport=httpx.MockTransport(FakeMetadata(replies)))
    collector = TerminationCollector(service=MetadataHttpService(base_url="http://metadata.test/latest/meta-data/",
                                                                 client=client))

    (remaining,) = _samples(collector)["aws_instance_termination_in"]
    assert remaining.value == pytest.approx(120.0, abs=5.0)


@pytest.mark.parametrize("offset", [timedelta(seconds=-30), timedelta(0)])
def test_past_notice_suppresses_time_remaining(offset):
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = _action("hibernate", NOW + offset)

    samples = _samples(_collector(replies))

    (indicator,) = samples["aws_instance_termination_imminent"]
    assert indicator.value == 1
    assert indicator.labels["instance_action"] == "hibernate"
    assert "aws_instance_termination_in" not in samples


def test_non_utc_offset_is_honoured():
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = json.dumps({"action": "terminate", "time": "2026-10-19T14:01:00+02:00"})

    (remaining,) = _samples(_collector(replies))["aws_instance_termination_in"]
    assert remaining.value == pytest.approx(60.0)


@pytest.mark.parametrize("payload", [
    "2026-10-19T12:02:00Z",
    "not json at all",
    json.dumps({"action": "terminate"}),
    json.dumps({"time": "2026-10-19T12:02:00Z"}),
    json.dumps({"action": "terminate", "time": "soon"}),
    json.dumps({"action": "terminate", "time": "2026-10-19T12:02:00"}),
    json.dumps({"action": 3, "time": "2026-10-19T12:02:00Z"}),
    json.dumps(["terminate", "2026-10-19T12:02:00Z"]),
    json.dumps({"action": "terminate", "time": 1792411320}),
    json.dumps({"action": "terminate", "time": "1792411320"}),
    json.dumps({"action": "terminate", "time": "2026-10-19"}),
])
def test_malformed_notice_degrades_to_no_notice(payload, caplog):
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = payload

    with caplog.at_level(logging.DEBUG):
        samples = _samples(_collector(replies))

    assert list(samples) == ["aws_instance_termination_imminent"]
    (indicator,) = samples["aws_instance_termination_imminent"]
    assert indicator.value == 0
    assert indicator.labels == dict(BASE_LABELS, instance_action="")

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert any("Couldn't parse instance-action" in r.getMessage() for r in errors)
    assert not any("Failed to fetch data" in r.getMessage() for r in errors)


def test_decode_error_does_not_log_payload(caplog):
    secret = json.dumps({"action": "terminate", "time": "secret-value-123"})
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = secret

    with caplog.at_level(logging.DEBUG):
        _samples(_collector(replies))

    assert "secret-value-123" not in caplog.text


def test_empty_notice_body_counts_as_absent():
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = ""

    samples = _samples(_collector(replies))

    (indicator,) = samples["aws_instance_termination_imminent"]
    assert indicator.value == 0
    assert indicator.labels["instance_action"] == ""


def test_transport_error_on_action_aborts_cycle(caplog):
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = httpx.ConnectError("metadata service unreachable")

    with caplog.at_level(logging.ERROR):
        samples = _samples(_collector(replies))

    assert samples == {}
    assert any("Failed to fetch data from metadata service" in r.getMessage() for r in caplog.records)


def test_timeout_on_action_aborts_cycle():
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = httpx.ReadTimeout("timed out")

    assert _samples(_collector(replies)) == {}


@pytest.mark.parametrize("path,label", [
    ("placement/availability-zone", "availability_zone"),
    ("hostname", "hostname"),
    ("instance-id", "instance_id"),
    ("instance-type", "instance_type"),
])
@pytest.mark.parametrize("failure", [404, httpx.ConnectError("down")], ids=["absent", "transport"])
def test_label_fetch_failure_yields_empty_label(path, label, failure):
    replies: Dict[str, Reply] = dict(ATTRIBUTES)
    replies[path] = failure
    replies["spot/instance-action"] = _action("terminate", NOW + timedelta(seconds=90))

    samples = _samples(_collector(replies))

    expected = dict(BASE_LABELS)
    expected[label] = ""
    (indicator,) = samples["aws_instance_termination_imminent"]
    (remaining,) = samples["aws_instance_termination_in"]
    assert indicator.labels == dict(expected, instance_action="terminate")
    assert remaining.labels == expected


def test_all_labels_unavailable_still_emits():
    samples = _samples(_collector({}))

    (indicator,) = samples["aws_instance_termination_imminent"]
    assert indicator.labels == {
        "availability_zone": "",
        "hostname": "",
        "instance_id": "",
        "instance_type": "",
        "instance_action": "",
    }


def test_fetches_are_sequential_and_in_order():
    fake = FakeMetadata(dict(ATTRIBUTES))
    client = httpx.Client(transport=httpx.MockTransport(fake))
    collector = TerminationCollector(service=MetadataHttpService(base_url="http://metadata.test/latest/meta-data/",
                                                                 client=client), now=lambda: NOW)

    list(collector.collect())

    assert fake.requested == [
        "placement/availability-zone",
        "hostname",
        "instance-id",
        "instance-type",
        "spot/instance-action",
    ]


def test_repeated_collect_only_time_remaining_changes():
    clock = iter([NOW, NOW + timedelta(seconds=10)])
    replies = dict(ATTRIBUTES)
    replies["spot/instance-action"] = _action("terminate", NOW + timedelta(seconds=120))
    collector = _collector(replies, now=lambda: next(clock))

    first = _samples(collector)
    second = _samples(collector)

    assert first["aws_instance_termination_imminent"] == second["aws_instance_termination_imminent"]
    (r1,) = first["aws_instance_termination_in"]
    (r2,) = second["aws_instance_termination_in"]
    assert r1.labels == r2.labels
    assert r2.value < r1.value
    assert r1.value - r2.value == pytest.approx(10.0)


def test_describe_is_stable_and_has_no_samples():
    collector = _collector(dict(ATTRIBUTES))

    first = [(f.name, f.type, f.documentation) for f in collector.describe()]
    for _ in range(3):
        families = list(collector.describe())
        assert [(f.name, f.type, f.documentation) for f in families] == first
        assert all(f.samples == [] for f in families)

    assert first == [
        ("aws_instance_termination_imminent", "gauge", "Instance is about to be terminated"),
        ("aws_instance_termination_in", "gauge", "Instance will be terminated in"),
    ]


def test_describe_does_not_query_metadata():
    fake = FakeMetadata(dict(ATTRIBUTES))
    client = httpx.Client(transport=httpx.MockTransport(fake))
    collector = TerminationCollector(service=MetadataHttpService(base_url="http://metadata.test/", client=client))

    list(collector.describe())
    assert fake.requested == []


def test_requires_endpoint_or_service():
    with pytest.raises(ValueError):
        TerminationCollector()


def test_endpoint_builds_http_service():
    collector = TerminationCollector(endpoint="http://169.254.169.254/latest/meta-data")
    try:
        assert collector._service.base_url == "http://169.254.169.254/latest/meta-data/"
        assert collector._service.timeout == 1.0
    finally:
        collector.close()


def _broken_gzip() -> httpx.Response:
    return httpx.Response(200, stream=httpx.ByteStream(b"not gzip at all"), headers={"Content-Encoding": "gzip"})


def test_undecodable_action_response_aborts_cycle_without_raising():
    replies: Dict[str, Reply] = dict(ATTRIBUTES)
    replies["spot/instance-action"] = _broken_gzip()

    assert _samples(_collector(replies)) == {}


def test_undecodable_label_response_yields_empty_label():
    replies: Dict[str, Reply] = dict(ATTRIBUTES)
    replies["hostname"] = _broken_gzip()

    (indicator,) = _samples(_collector(replies))["aws_instance_termination_imminent"]
    assert indicator.labels == dict(BASE_LABELS, hostname="", instance_action="")
