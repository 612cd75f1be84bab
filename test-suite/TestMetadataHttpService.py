import time

import httpx
import pytest

from metadata_client.metadata_service import (
    MetadataAbsent,
    MetadataHttpService,
    MetadataTransportError,
    MetadataValue,
    value_or_empty,
)
from metadata_client.paths import MetadataPath


def _service(handler) -> MetadataHttpService:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return MetadataHttpService(base_url="http://metadata.test/latest/meta-data", client=client)


def test_value_is_full_response_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text="i-0123456789abcdef0")

    result = _service(handler).get_metadata(MetadataPath.INSTANCE_ID)

    assert isinstance(result, MetadataValue)
    assert result.value == "i-0123456789abcdef0"
    assert seen[0].method == "GET"
    assert str(seen[0].url) == "http://metadata.test/latest/meta-data/instance-id"


def test_nested_path_is_resolved_below_base_url():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/latest/meta-data/placement/availability-zone"
        return httpx.Response(200, text="eu-central-1a")

    result = _service(handler).get_metadata("/placement/availability-zone")
    assert value_or_empty(result) == "eu-central-1a"


def test_404_is_absent_not_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, text="Not Found")

    result = _service(handler).get_metadata(MetadataPath.INSTANCE_ACTION)

    assert isinstance(result, MetadataAbsent)
    assert result.path == "spot/instance-action"
    assert value_or_empty(result) == ""


def test_other_status_returns_body():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="internal error")

    result = _service(handler).get_metadata(MetadataPath.HOSTNAME)

    assert isinstance(result, MetadataValue)
    assert result.value == "internal error"


@pytest.mark.parametrize("error", [
    httpx.ConnectError("connection refused"),
    httpx.ReadTimeout("read timeout"),
    httpx.ConnectTimeout("connect timeout"),
])
def test_transport_errors_are_reported(error):
    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    result = _service(handler).get_metadata(MetadataPath.HOSTNAME)

    assert isinstance(result, MetadataTransportError)
    assert result.error is error
    assert value_or_empty(result) == ""


def test_only_one_request_per_fetch():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("down")

    _service(handler).get_metadata(MetadataPath.INSTANCE_TYPE)
    assert len(calls) == 1


def test_external_client_is_not_closed():
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    with MetadataHttpService(base_url="http://metadata.test/", client=client):
        pass
    assert not client.is_closed


def test_internal_client_is_closed():
    service = MetadataHttpService(base_url="http://metadata.test/")
    service.close()
    assert service._client.is_closed


def test_invalid_base_url_rejected():
    with pytest.raises(ValueError):
        MetadataHttpService(base_url=None)
    with pytest.raises(TypeError):
        MetadataHttpService(base_url=42)


class TrickleStream(httpx.SyncByteStream):
    """Liefert den Body Byte für Byte mit Pause dazwischen."""

    def __init__(self, body: bytes, delay: float):
        self.body = body
        self.delay = delay

    def __iter__(self):
        for i in range(len(self.body)):
            time.sleep(self.delay)
            yield self.body[i:i + 1]


def test_broken_content_encoding_is_reported_as_failed_fetch():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not gzip at all", headers={"Content-Encoding": "gzip"})

    result = _service(handler).get_metadata(MetadataPath.HOSTNAME)

    assert isinstance(result, MetadataTransportError)
    assert isinstance(result.error, httpx.DecodingError)
    assert value_or_empty(result) == ""


def test_too_many_redirects_is_reported_as_failed_fetch():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(302, headers={"Location": str(request.url)})

    client = httpx.Client(transport=httpx.MockTransport(handler), follow_redirects=True, max_redirects=2)
    service = MetadataHttpService(base_url="http://metadata.test/", client=client)

    result = service.get_metadata(MetadataPath.INSTANCE_ID)

    assert isinstance(result, MetadataTransportError)
    assert isinstance(result.error, httpx.TooManyRedirects)


def test_trickling_response_is_cut_off_at_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=TrickleStream(b"ip-10-0-1-17", delay=0.2))

    client = httpx.Client(transport=httpx.MockTransport(handler))
    service = MetadataHttpService(base_url="http://metadata.test/", timeout=0.5, client=client)

    started = time.monotonic()
    result = service.get_metadata(MetadataPath.HOSTNAME)
    elapsed = time.monotonic() - started

    assert isinstance(result, MetadataTransportError)
    assert isinstance(result.error, httpx.ReadTimeout)
    assert elapsed < 1.2


def test_slow_but_complete_response_within_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=TrickleStream(b"abc", delay=0.05))

    client = httpx.Client(transport=httpx.MockTransport(handler))
    service = MetadataHttpService(base_url="http://metadata.test/", timeout=1.0, client=client)

    assert service.get_metadata(MetadataPath.HOSTNAME) == MetadataValue(path="hostname", value="abc")


def test_results_compare_by_value():
    assert MetadataAbsent(path="hostname") == MetadataAbsent(path="hostname")
    assert MetadataValue(path="hostname", value="a") != MetadataValue(path="hostname", value="b")
