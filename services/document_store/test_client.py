"""Unit tests for the document store client."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from services.document_store.client import DocumentStoreClient, SERVER_TIMESTAMP
from services.document_store.errors import DocumentStoreError
from services.document_store.rate_limit import extract_retry_after


def make_client(handler):
    """Create a DocumentStoreClient whose HTTP traffic goes to ``handler``."""
    http_client = httpx.AsyncClient(
        base_url="http://store.test/v1",
        transport=httpx.MockTransport(handler)
    )
    return DocumentStoreClient(base_url="http://store.test/v1", client=http_client)


class TestDocumentStoreClient:
    """Tests for DocumentStoreClient class."""

    @pytest.mark.asyncio
    async def test_create_returns_server_id(self):
        """Test creating a record with server-assigned timestamps."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201, json={"id": "doc123"})

        client = make_client(handler)

        record_id = await client.create("users/p1/reminders", {
            "type": "Medicine",
            "medicine_name": "Paracetamol",
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        })

        assert record_id == "doc123"
        assert len(requests) == 1
        assert requests[0].method == "POST"
        assert requests[0].url.path == "/v1/documents/users/p1/reminders"

        body = json.loads(requests[0].content)
        assert body["fields"] == {"type": "Medicine", "medicine_name": "Paracetamol"}
        assert sorted(body["server_timestamps"]) == ["created_at", "updated_at"]

    @pytest.mark.asyncio
    async def test_update_sends_patch(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={})

        client = make_client(handler)

        await client.update("users/p1/reminders/r1", {"notes": "with water"})

        assert requests[0].method == "PATCH"
        assert requests[0].url.path == "/v1/documents/users/p1/reminders/r1"
        assert json.loads(requests[0].content)["fields"] == {"notes": "with water"}

    @pytest.mark.asyncio
    async def test_delete_sends_delete(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        client = make_client(handler)

        await client.delete("users/p1/reminders/r1")

        assert requests[0].method == "DELETE"

    @pytest.mark.asyncio
    async def test_delete_of_missing_record_succeeds(self):
        """Test that replaying a delete is harmless."""
        client = make_client(lambda request: httpx.Response(404, json={"error": "not found"}))

        await client.delete("users/p1/reminders/gone")

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(DocumentStoreError) as exc_info:
            await client.update("users/p1/reminders/r1", {"notes": ""})

        assert exc_info.value.status_code == 500
        assert exc_info.value.path == "users/p1/reminders/r1"

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)

        with pytest.raises(DocumentStoreError) as exc_info:
            await client.create("users/p1/documents", {"name": "scan.pdf"})

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_create_without_id_raises(self):
        client = make_client(lambda request: httpx.Response(201, json={"ok": True}))

        with pytest.raises(DocumentStoreError):
            await client.create("users/p1/documents", {"name": "scan.pdf"})


class TestRateLimitHandling:
    """Tests for the rate limit retry decorator."""

    @pytest.mark.asyncio
    async def test_retries_after_rate_limit(self):
        """Test that a 429 is retried after the advertised delay."""
        responses = iter([
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(201, json={"id": "doc1"}),
        ])
        client = make_client(lambda request: next(responses))

        with patch("services.document_store.rate_limit.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            record_id = await client.create("users/p1/documents", {"name": "x"})

        assert record_id == "doc1"
        mock_sleep.assert_awaited_once_with(2.0)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(429, json={"retry_after": 0.5})

        client = make_client(handler)

        with patch("services.document_store.rate_limit.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(DocumentStoreError) as exc_info:
                await client.update("users/p1/reminders/r1", {})

        assert exc_info.value.is_rate_limited
        assert len(calls) == 4  # initial attempt + 3 retries

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": "bad field"})

        client = make_client(handler)

        with pytest.raises(DocumentStoreError):
            await client.update("users/p1/reminders/r1", {})

        assert len(calls) == 1

    def test_extract_retry_after_from_header(self):
        response = httpx.Response(429, headers={"Retry-After": "3.5"})
        assert extract_retry_after(response) == 3.5

    def test_extract_retry_after_from_body(self):
        response = httpx.Response(429, json={"retry_after": 4})
        assert extract_retry_after(response) == 4.0

    def test_extract_retry_after_missing(self):
        response = httpx.Response(429, text="slow down")
        assert extract_retry_after(response) is None
