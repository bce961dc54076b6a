"""Remote API client for access records and diagnostics."""

import logging
from datetime import datetime
from typing import List, Dict, Optional, Any
import httpx
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from gatesync.config import settings

logger = logging.getLogger(__name__)


class RemoteAPIError(Exception):
    """Error reported in the body of an otherwise successful response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteGateway:
    """Client for the remote access-record REST API.

    Any non-2xx answer or transport failure surfaces as an exception;
    callers decide how to classify it.
    """

    ACCESS_ENDPOINT = "/api/transactions"
    DIAGNOSTIC_ENDPOINT = "/api/exception-logs"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        """Initialize remote gateway.

        Args:
            base_url: Remote API base URL (defaults to settings.remote_api_url).
            api_key: Optional API key (defaults to settings.remote_api_key).
            timeout: Request timeout in seconds (defaults to settings.remote_timeout_seconds).
        """
        self.base_url = (base_url or settings.remote_api_url).rstrip('/')
        self.api_key = api_key or settings.remote_api_key
        self.timeout = timeout if timeout is not None else settings.remote_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Async context manager entry."""
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["X-Api-Key"] = self.api_key

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=headers
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get the open HTTP client.

        Raises:
            RuntimeError: If client is not initialized (use async context manager).
        """
        if self._client is None:
            raise RuntimeError("RemoteGateway must be used as async context manager")
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError)),
        reraise=True
    )
    async def _make_request(
        self,
        method: str,
        endpoint: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Make HTTP request to the remote API with retry logic.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE).
            endpoint: API endpoint path.
            json_data: JSON request body (optional).
            params: Query parameters (optional).

        Returns:
            Response JSON data.

        Raises:
            httpx.HTTPError: If request fails after retries.
            RemoteAPIError: If the server reports an error in the body.
        """
        client = self._get_client()

        try:
            response = await client.request(
                method=method,
                url=endpoint,
                json=json_data,
                params=params
            )

            response.raise_for_status()

            data = response.json()

            # The API answers errors as {error: "...", status: 404} with HTTP 200
            if isinstance(data, dict) and data.get("error"):
                error_msg = data["error"]
                status = data.get("status")
                logger.error(f"Remote API error for {method} {endpoint}: {status} {error_msg}")
                raise RemoteAPIError(f"HTTP {status}: {error_msg}" if status else error_msg, status_code=status)

            return data

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error {e.response.status_code} for {method} {endpoint}: {e.response.text}")
            raise
        except httpx.TimeoutException:
            logger.error(f"Timeout for {method} {endpoint}")
            raise
        except httpx.NetworkError as e:
            logger.error(f"Network error for {method} {endpoint}: {e}")
            raise

    @staticmethod
    def _unwrap(data: Any) -> Any:
        """Return the ``data`` member of list/detail responses."""
        if isinstance(data, dict) and "data" in data:
            return data["data"]
        return data

    async def health_check(self) -> bool:
        """Check if the remote API is reachable.

        Returns:
            True if service is healthy, False otherwise.
        """
        try:
            await self._make_request("GET", settings.connectivity_probe_path)
            return True
        except Exception as e:
            logger.warning(f"Remote API health check failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    async def create_diagnostic(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a diagnostic record remotely.

        Args:
            payload: Wire payload, see :func:`diagnostic_payload`.

        Returns:
            Dictionary with ``id`` and ``message``.
        """
        logger.debug(f"Creating remote diagnostic {payload.get('id')}")
        return await self._make_request("POST", self.DIAGNOSTIC_ENDPOINT, json_data=payload)

    async def get_diagnostic(self, record_id: str) -> Dict[str, Any]:
        """Get a remote diagnostic record by id."""
        return self._unwrap(await self._make_request("GET", f"{self.DIAGNOSTIC_ENDPOINT}/{record_id}"))

    async def list_diagnostics(self) -> List[Dict[str, Any]]:
        """List all remote diagnostic records."""
        return self._unwrap(await self._make_request("GET", self.DIAGNOSTIC_ENDPOINT))

    async def list_diagnostics_by_door(self, door_id: str) -> List[Dict[str, Any]]:
        """List remote diagnostic records for a door."""
        return self._unwrap(await self._make_request("GET", f"{self.DIAGNOSTIC_ENDPOINT}/door/{door_id}"))

    async def list_unsynced_diagnostics(self) -> List[Dict[str, Any]]:
        """List remote diagnostic records flagged as not synced."""
        return self._unwrap(await self._make_request("GET", f"{self.DIAGNOSTIC_ENDPOINT}/sync/pending"))

    async def update_diagnostic(self, record_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update a remote diagnostic record."""
        return await self._make_request("PATCH", f"{self.DIAGNOSTIC_ENDPOINT}/{record_id}", json_data=updates)

    async def delete_diagnostic(self, record_id: str) -> Dict[str, Any]:
        """Delete a remote diagnostic record."""
        return await self._make_request("DELETE", f"{self.DIAGNOSTIC_ENDPOINT}/{record_id}")

    # ------------------------------------------------------------------
    # Access records
    # ------------------------------------------------------------------

    async def create_access_record(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create an access record remotely.

        Args:
            payload: Wire payload, see :func:`access_payload`.

        Returns:
            Dictionary with ``id`` and ``message``.
        """
        logger.debug(f"Creating remote access record {payload.get('id')}")
        return await self._make_request("POST", self.ACCESS_ENDPOINT, json_data=payload)

    async def get_access_record(self, record_id: str) -> Dict[str, Any]:
        """Get a remote access record by id."""
        return self._unwrap(await self._make_request("GET", f"{self.ACCESS_ENDPOINT}/{record_id}"))

    async def list_access_records(self) -> List[Dict[str, Any]]:
        """List all remote access records."""
        return self._unwrap(await self._make_request("GET", self.ACCESS_ENDPOINT))

    async def list_access_records_by_status(self, status: str) -> List[Dict[str, Any]]:
        """List remote access records in a status."""
        return self._unwrap(
            await self._make_request("GET", f"{self.ACCESS_ENDPOINT}/status/{WIRE_STATUS[status]}")
        )

    async def list_unsynced_access_records(self) -> List[Dict[str, Any]]:
        """List remote access records flagged as not synced."""
        return self._unwrap(await self._make_request("GET", f"{self.ACCESS_ENDPOINT}/sync/pending"))

    async def update_access_record(self, record_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        """Update a remote access record's status or sync flag."""
        body = dict(updates)
        if "status" in body:
            body["status"] = WIRE_STATUS[body["status"]]
        return await self._make_request("PATCH", f"{self.ACCESS_ENDPOINT}/{record_id}", json_data=body)

    async def delete_access_record(self, record_id: str) -> Dict[str, Any]:
        """Delete a remote access record."""
        return await self._make_request("DELETE", f"{self.ACCESS_ENDPOINT}/{record_id}")


# Local status names to the remote API's status values
WIRE_STATUS = {
    "Entering": "IN",
    "Exiting": "OUT",
    "Pending": "PENDING",
}


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def diagnostic_payload(record, timestamp: str) -> Dict[str, Any]:
    """Build the wire payload for a diagnostic record.

    Args:
        record: DiagnosticRecord to send.
        timestamp: Already-normalized ISO 8601 timestamp.
    """
    return {
        "id": record.id,
        "message": record.message or "Unknown error",
        "serviceName": record.service_name or "UnknownService",
        "errorType": record.error_kind or "Error",
        "code": record.code or "UNKNOWN",
        "timestamp": timestamp,
        "parkingDoorNumber": record.door_id or "N/A",
        "isSynced": False,
    }


def access_payload(record) -> Dict[str, Any]:
    """Build the wire payload for an access record."""
    return {
        "id": record.id,
        "userName": record.user_name or "",
        "status": WIRE_STATUS[record.status],
        "subject": list(record.subjects or []),
        "organization": list(record.organizations or []),
        "licensePlateNumber": record.vehicle_plate or "",
        "phoneNumber": record.phone_number or "",
        "parkingDoorNumber": record.door_id or "N/A",
        "entryTime": _isoformat(record.entry_time) or "",
        "exitTime": _isoformat(record.exit_time) or "",
        "files": [
            {"fileCategory": f.get("category"), "fileBase64": f.get("content")}
            for f in (record.attached_files or [])
        ],
        "isSynced": False,
    }
