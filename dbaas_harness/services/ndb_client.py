"""
NDB API client.

Thin async wrapper over the NDB REST API using httpx with basic authentication.
"""
import ssl
from typing import Any, Callable, Dict, Optional

import httpx

from dbaas_harness.config.logging import get_logger
from dbaas_harness.exceptions import NDBApiError, NotFoundError
from dbaas_harness.models.ndb import DatabaseResponse, SnapshotCollection, TimeMachineResponse

logger = get_logger(__name__)


class NDBClient:
    """
    Client for the NDB control plane.

    Use as an async context manager so the underlying connection pool is closed.
    """

    def __init__(
        self,
        username: str,
        password: str,
        endpoint: str,
        ca_cert: Optional[str] = None,
        skip_verify: bool = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            username: NDB username
            password: NDB password
            endpoint: NDB API base URL, e.g. https://10.0.0.1:8443/era/v0.9
            ca_cert: PEM encoded CA certificate to trust
            skip_verify: Skip TLS certificate verification
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.endpoint = endpoint.rstrip('/')

        verify: Any = True
        if skip_verify:
            verify = False
        elif ca_cert:
            verify = ssl.create_default_context(cadata=ca_cert)

        self.client = httpx.AsyncClient(
            base_url=self.endpoint + '/',
            auth=(username, password),
            verify=verify,
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json; charset=utf-8"},
            transport=transport,
        )

    async def __aenter__(self) -> "NDBClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.aclose()

    async def _get(self, path: str, operation: str, params: Optional[Dict[str, str]] = None) -> Any:
        try:
            response = await self.client.get(path, params=params)
        except httpx.HTTPError as e:
            logger.error("ndb_http_error", path=path, error=str(e))
            raise NDBApiError(f"GET {path} failed: {e}", operation=operation) from e

        if response.status_code != httpx.codes.OK:
            logger.error("ndb_unexpected_status", path=path, status_code=response.status_code)
            raise NDBApiError(
                f"GET {path} responded with {response.status_code}",
                operation=operation,
                status_code=response.status_code,
                details={"body": response.text},
            )

        logger.debug("ndb_get", path=path, status_code=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise NDBApiError(f"GET {path} returned an undecodable body: {e}", operation=operation) from e

    async def get_database_by_id(self, database_id: str) -> DatabaseResponse:
        """Fetch a database by its NDB id."""
        # An empty id would turn this into a list-all request
        if not database_id:
            raise NDBApiError("database id is empty", operation="get_database_by_id")
        data = await self._get(f"databases/{database_id}", "get_database_by_id", {"detailed": "true"})
        return DatabaseResponse.model_validate(data)

    async def get_database_by_name(self, name: str) -> DatabaseResponse:
        """Fetch a database by name."""
        if not name:
            raise NDBApiError("database name is empty", operation="get_database_by_name")
        data = await self._get(f"databases/name/{name}", "get_database_by_name", {"detailed": "true"})
        if not data:
            raise NotFoundError("NDB database", name, operation="get_database_by_name")
        return DatabaseResponse.model_validate(data)

    async def get_clone_by_id(self, clone_id: str) -> DatabaseResponse:
        """Fetch a clone by its NDB id."""
        if not clone_id:
            raise NDBApiError("clone id is empty", operation="get_clone_by_id")
        data = await self._get(f"clones/{clone_id}", "get_clone_by_id", {"detailed": "true"})
        return DatabaseResponse.model_validate(data)

    async def get_time_machine_by_id(self, time_machine_id: str) -> TimeMachineResponse:
        """Fetch a time machine, including its schedule and SLA."""
        if not time_machine_id:
            raise NDBApiError("time machine id is empty", operation="get_time_machine_by_id")
        data = await self._get(f"tms/{time_machine_id}", "get_time_machine_by_id")
        return TimeMachineResponse.model_validate(data)

    async def get_snapshots_for_time_machine(self, time_machine_id: str) -> SnapshotCollection:
        """Fetch the snapshots of a time machine grouped by cluster."""
        if not time_machine_id:
            raise NDBApiError("time machine id is empty", operation="get_snapshots_for_time_machine")
        data = await self._get(f"tms/{time_machine_id}/snapshots", "get_snapshots_for_time_machine")
        return SnapshotCollection.model_validate(data)


# Builds an NDB client from keyword arguments matching NDBClient.__init__
NDBClientFactory = Callable[..., NDBClient]
