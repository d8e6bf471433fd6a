"""Unit tests for the reachability probe."""

import httpx
import pytest

from services.sync_service.connectivity import ConnectivityProbe


def make_probe(handler, probe_url="http://store.test/health"):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ConnectivityProbe(probe_url=probe_url, client=client)


@pytest.mark.asyncio
async def test_unknown_reachability_counts_as_online():
    """Without a probe URL the probe never blocks a flush."""
    probe = ConnectivityProbe(probe_url=None)

    assert await probe.is_online() is True
    await probe.aclose()


@pytest.mark.asyncio
async def test_any_response_means_online():
    probe = make_probe(lambda request: httpx.Response(503))

    assert await probe.is_online() is True


@pytest.mark.asyncio
async def test_transport_failure_means_offline():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network unreachable", request=request)

    probe = make_probe(handler)

    assert await probe.is_online() is False


@pytest.mark.asyncio
async def test_timeout_means_offline():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    probe = make_probe(handler)

    assert await probe.is_online() is False


@pytest.mark.asyncio
async def test_probe_uses_head_request():
    methods = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        return httpx.Response(200)

    probe = make_probe(handler)
    await probe.is_online()

    assert methods == ["HEAD"]
