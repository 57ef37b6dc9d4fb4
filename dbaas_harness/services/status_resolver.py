"""
Resolution of the NDB-side view of a provisioned database or clone.
"""
from typing import Any, Optional, Tuple

from dbaas_harness.config.logging import get_logger
from dbaas_harness.config.settings import Settings, settings as default_settings
from dbaas_harness.exceptions import (
    ConfigurationError,
    HarnessError,
    InvalidCredentialError,
    NotFoundError,
)
from dbaas_harness.models.ndb import DatabaseResponse, TimeMachineResponse
from dbaas_harness.models.resources import (
    CredentialRecord,
    DatabaseMode,
    DatabaseRecord,
    ResourceBundle,
    ServerRegistration,
)
from dbaas_harness.services.ndb_client import NDBClient, NDBClientFactory
from dbaas_harness.services.resource_store import ResourceStore


class StatusResolver:
    """Fetches what NDB reports for the database of a bundle."""

    def __init__(
        self,
        store: ResourceStore,
        client_factory: NDBClientFactory = NDBClient,
        settings: Optional[Settings] = None,
        logger: Optional[Any] = None,
    ):
        self.store = store
        self.client_factory = client_factory
        self.settings = settings or default_settings
        self.logger = logger if logger is not None else get_logger(__name__)

    async def _fetch(self, record_cls, namespace: str, name: str, operation: str):
        try:
            return await self.store.get_record(record_cls, namespace, name)
        except NotFoundError as e:
            self.logger.error(f"{operation}() failed! {e}", kind=record_cls.resource_kind.value, name=name)
            raise NotFoundError(
                record_cls.resource_kind.value, f"{namespace}/{name}", operation=operation,
                details={"error": str(e)},
            ) from e
        except HarnessError as e:
            self.logger.error(f"{operation}() failed! {e}", kind=record_cls.resource_kind.value, name=name)
            raise

    async def _connect(self, bundle: ResourceBundle, operation: str) -> Tuple[DatabaseRecord, NDBClient]:
        """Re-read the bundle's records and build a client for the NDB server they name."""
        if bundle is None or bundle.server_registration is None or bundle.database is None:
            raise ConfigurationError("bundle needs a server registration and a database", operation=operation)

        namespace = bundle.namespace(self.settings.default_namespace)
        server = await self._fetch(
            ServerRegistration,
            bundle.server_registration.namespace or namespace,
            bundle.server_registration.name,
            operation,
        )
        database = await self._fetch(
            DatabaseRecord, bundle.database.namespace or namespace, bundle.database.name, operation
        )

        secret_namespace = database.namespace or namespace
        try:
            secret = await self.store.get_record(
                CredentialRecord, secret_namespace, server.spec.credential_secret
            )
        except HarnessError as e:
            self.logger.error(f"{operation}() failed! {e}", secret=server.spec.credential_secret)
            raise InvalidCredentialError(
                f"could not read credential record '{server.spec.credential_secret}': {e.cause}",
                operation=operation,
            ) from e

        username, password = secret.credentials()
        if not username or not password:
            self.logger.error(
                f"{operation}() failed! credential record has no username or password",
                secret=server.spec.credential_secret,
            )
            raise InvalidCredentialError(
                f"credential record '{server.spec.credential_secret}' is missing username or password",
                operation=operation,
            )

        client = self.client_factory(
            username=username,
            password=password,
            endpoint=server.spec.server,
            ca_cert=None,
            skip_verify=server.spec.skip_certificate_verification,
            timeout=self.settings.ndb_request_timeout_seconds,
        )
        return database, client

    async def resolve_status(self, bundle: ResourceBundle) -> DatabaseResponse:
        """
        Fetch the NDB response for the bundle's database or clone.

        Dispatches on the record's mode: clones are looked up through the clone
        endpoint, instances through the database endpoint, both by ``status.id``.
        """
        database, client = await self._connect(bundle, "resolve_status")
        async with client:
            if database.mode is DatabaseMode.CLONE:
                response = await client.get_clone_by_id(database.status.id)
            else:
                response = await client.get_database_by_id(database.status.id)

        self.logger.info(
            "database_status_resolved",
            database=database.name,
            mode=database.mode.value,
            ndb_id=response.id,
            status=response.status,
        )
        return response

    async def resolve_time_machine(self, bundle: ResourceBundle) -> TimeMachineResponse:
        """Fetch the time machine NDB attached to the bundle's database instance."""
        database, client = await self._connect(bundle, "resolve_time_machine")
        if database.mode is not DatabaseMode.INSTANCE:
            await client.close()
            raise ConfigurationError(
                f"database {database.name} is a clone; time machines are checked on instances",
                operation="resolve_time_machine",
            )

        async with client:
            response = await client.get_database_by_id(database.status.id)
            time_machine = await client.get_time_machine_by_id(response.time_machine_id)

        self.logger.info(
            "time_machine_resolved",
            database=database.name,
            time_machine_id=time_machine.id,
            sla=time_machine.sla.name,
        )
        return time_machine
