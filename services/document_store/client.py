"""Document store client - handles record creation, updates and deletes."""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from services.document_store.errors import DocumentStoreError
from services.document_store.rate_limit import handle_rate_limit, extract_retry_after

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    """Sentinel asking the store to fill a field with its own commit time."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class DocumentStoreClient:
    """Handles writing records to the remote document store over HTTP."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the document store client.

        Args:
            base_url: Root URL of the document store API
            api_key: Optional bearer token
            timeout: Request timeout in seconds
            client: Pre-built HTTP client (tests inject one with a mock transport)
        """
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout
        )

    async def aclose(self):
        await self.client.aclose()

    @handle_rate_limit(max_retries=3)
    async def create(self, collection_path: str, record: Dict[str, Any]) -> str:
        """
        Create a new record in a collection.

        Args:
            collection_path: Collection path, e.g. ``users/p1/reminders``
            record: Field values; ``SERVER_TIMESTAMP`` values are assigned by the store

        Returns:
            The server-assigned record id

        Raises:
            DocumentStoreError: If the store rejects the write or is unreachable
        """
        logger.info(f"Creating record in {collection_path}")
        response = await self._request("POST", collection_path, json=self._encode_record(record))

        try:
            record_id = response.json()["id"]
        except (ValueError, KeyError, TypeError):
            raise DocumentStoreError(
                "Create response did not include a record id",
                status_code=response.status_code,
                path=collection_path
            )

        logger.info(f"Successfully created record {collection_path}/{record_id}")
        return record_id

    @handle_rate_limit(max_retries=3)
    async def update(self, path: str, partial_record: Dict[str, Any]) -> None:
        """
        Merge fields into an existing record.

        Args:
            path: Record path, e.g. ``users/p1/reminders/r1``
            partial_record: Fields to overwrite

        Raises:
            DocumentStoreError: If the store rejects the write or is unreachable
        """
        logger.info(f"Updating record {path}")
        await self._request("PATCH", path, json=self._encode_record(partial_record))
        logger.info(f"Successfully updated record {path}")

    @handle_rate_limit(max_retries=3)
    async def delete(self, path: str) -> None:
        """
        Delete a record. Deleting a record that no longer exists succeeds.

        Args:
            path: Record path

        Raises:
            DocumentStoreError: If the store rejects the delete or is unreachable
        """
        logger.info(f"Deleting record {path}")
        try:
            await self._request("DELETE", path)
        except DocumentStoreError as e:
            if e.status_code != 404:
                raise
            logger.info(f"Record {path} already absent")
            return
        logger.info(f"Successfully deleted record {path}")

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"/documents/{path.strip('/')}"
        try:
            response = await self.client.request(method, url, json=json)
        except httpx.HTTPError as e:
            logger.error(f"Document store request {method} {path} failed: {e}")
            raise DocumentStoreError(f"Request failed: {e}", path=path) from e

        if response.status_code >= 400:
            retry_after = extract_retry_after(response) if response.status_code == 429 else None
            logger.error(f"Document store error {response.status_code} on {method} {path}")
            raise DocumentStoreError(
                f"Document store returned {response.status_code}: {response.text}",
                status_code=response.status_code,
                path=path,
                retry_after=retry_after
            )
        return response

    @staticmethod
    def _encode_record(record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Split a record into plain fields and server-timestamp field names.

        Args:
            record: Record with optional ``SERVER_TIMESTAMP`` values

        Returns:
            Request body with ``fields`` and ``server_timestamps`` keys
        """
        fields, server_timestamps = _split_server_timestamps(record)
        return {"fields": fields, "server_timestamps": server_timestamps}


def _split_server_timestamps(record: Dict[str, Any]) -> Tuple[Dict[str, Any], List[str]]:
    fields = {}
    server_timestamps = []
    for name, value in record.items():
        if value is SERVER_TIMESTAMP:
            server_timestamps.append(name)
        else:
            fields[name] = value
    return fields, server_timestamps
