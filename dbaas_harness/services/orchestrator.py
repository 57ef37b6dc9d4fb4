"""
Provision-or-clone and deprovision-or-declone workflows.

A workflow run creates (or deletes) the resources of a ResourceBundle in a fixed
order, tolerating absent members, then waits for the database and the
verification workload with bounded polling. Store failures are logged and
recorded in the run's WorkflowReport; they never stop the remaining steps.
"""
import asyncio
import uuid
from typing import Any, Awaitable, Callable, Optional

import structlog

from dbaas_harness.config.logging import get_logger
from dbaas_harness.config.settings import Settings, settings as default_settings
from dbaas_harness.exceptions import (
    CloneSpecError,
    ConfigurationError,
    HarnessError,
    InvalidCredentialError,
    NotFoundError,
    NotReadyError,
    ProvisioningError,
)
from dbaas_harness.models.report import StepOutcome, WorkflowReport
from dbaas_harness.models.resources import (
    SECRET_KEY_PASSWORD,
    SECRET_KEY_USERNAME,
    CloneSpec,
    CredentialRecord,
    DatabaseMode,
    DatabaseRecord,
    Record,
    ResourceBundle,
    ResourceKind,
    VerificationWorkload,
)
from dbaas_harness.services.ndb_client import NDBClient, NDBClientFactory
from dbaas_harness.services.resource_store import ResourceStore
from dbaas_harness.services.snapshot_selector import select_snapshot_id
from dbaas_harness.utils.retry import retry_until_success


def _describe(kind: ResourceKind, name: str) -> str:
    return f"{kind.value}/{name}"


class WorkflowOrchestrator:
    """
    Drives provisioning, cloning and teardown of a resource bundle.

    Args:
        store: Resource store the bundle is created in
        settings: Environment values and poll tuning (defaults to the global settings)
        client_factory: Builds NDB clients for clone preparation
        logger: structlog logger (defaults to this module's logger)
        sleep: Awaitable sleep used between poll attempts
    """

    def __init__(
        self,
        store: ResourceStore,
        settings: Optional[Settings] = None,
        client_factory: NDBClientFactory = NDBClient,
        logger: Optional[Any] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.settings = settings or default_settings
        self.client_factory = client_factory
        self.logger = logger if logger is not None else get_logger(__name__)
        self.sleep = sleep

    def _check_preconditions(self, bundle: Optional[ResourceBundle], operation: str) -> None:
        if bundle is None or self.store is None:
            error = ConfigurationError("bundle and resource store are required", operation=operation)
            self.logger.error(error.message)
            raise error

    # Provisioning

    async def provision(self, bundle: ResourceBundle) -> WorkflowReport:
        """
        Create the bundle's resources and wait for them to become ready.

        Returns:
            The per-step report of the run

        Raises:
            ConfigurationError: If the bundle or store is missing
            ProvisioningError: If a readiness poll ran out of attempts; the
                report is attached
        """
        self._check_preconditions(bundle, "provision")
        run_id = uuid.uuid4().hex[:8]
        report = WorkflowReport(workflow="provision", run_id=run_id)

        with structlog.contextvars.bound_contextvars(workflow="provision", run_id=run_id):
            namespace = bundle.namespace(self.settings.default_namespace)
            self.logger.info("provision_started", namespace=namespace)

            missing_env = self.settings.missing_required_env()
            if missing_env:
                self.logger.warning("required_env_missing", variables=missing_env)

            await self._create_credentials(bundle, namespace, report)
            await self._create_server_registration(bundle, namespace, report)
            database_created = await self._create_database(bundle, namespace, report)
            workload_created = await self._create_workload(bundle, namespace, report)

            poll_errors = []
            if database_created:
                error = await self._wait_for_database(bundle, namespace, report)
                if error is not None:
                    poll_errors.append(error)
            if workload_created:
                error = await self._wait_for_workload(bundle, namespace, report)
                if error is not None:
                    poll_errors.append(error)

            self.logger.info(
                "provision_finished",
                steps=len(report.steps),
                failed=[s.step for s in report.failed_steps],
            )

            if poll_errors:
                raise ProvisioningError(poll_errors[0].cause, report=report) from poll_errors[0]
            return report

    async def _create(
        self, report: WorkflowReport, step: str, record: Record, namespace: str
    ) -> Optional[Record]:
        """Create one record; log and record a failure instead of raising it."""
        target = record.namespace or namespace
        resource = _describe(record.resource_kind, record.name)
        try:
            created = await self.store.create_record(record, target)
        except HarnessError as e:
            self.logger.error(f"{step}() failed! {e}", resource=resource, namespace=target)
            report.record(step, resource, StepOutcome.FAILED, error=str(e))
            return None

        self.logger.info("resource_created", resource=resource, namespace=target)
        report.record(step, resource, StepOutcome.CREATED)
        return created

    def _skip(self, report: WorkflowReport, step: str, kind: ResourceKind) -> None:
        self.logger.info("resource_absent_skipped", step=step, kind=kind.value)
        report.record(step, kind.value, StepOutcome.SKIPPED)

    async def _create_credentials(self, bundle: ResourceBundle, namespace: str, report: WorkflowReport) -> None:
        if bundle.database_credential is not None:
            secret = bundle.database_credential
            if self.settings.db_secret_password is not None:
                secret.string_data[SECRET_KEY_PASSWORD] = self.settings.db_secret_password
            await self._create(report, "create_database_credential", secret, namespace)
        else:
            self._skip(report, "create_database_credential", ResourceKind.SECRET)

        if bundle.control_plane_credential is not None:
            secret = bundle.control_plane_credential
            if self.settings.ndb_secret_username is not None:
                secret.string_data[SECRET_KEY_USERNAME] = self.settings.ndb_secret_username
            if self.settings.ndb_secret_password is not None:
                secret.string_data[SECRET_KEY_PASSWORD] = self.settings.ndb_secret_password
            await self._create(report, "create_control_plane_credential", secret, namespace)
        else:
            self._skip(report, "create_control_plane_credential", ResourceKind.SECRET)

    async def _create_server_registration(
        self, bundle: ResourceBundle, namespace: str, report: WorkflowReport
    ) -> None:
        if bundle.server_registration is None:
            self._skip(report, "create_server_registration", ResourceKind.NDB_SERVER)
            return

        if self.settings.ndb_server:
            bundle.server_registration.spec.server = self.settings.ndb_server
        created = await self._create(report, "create_server_registration", bundle.server_registration, namespace)
        if created is not None:
            bundle.server_registration = created

    async def _create_database(self, bundle: ResourceBundle, namespace: str, report: WorkflowReport) -> bool:
        if bundle.database is None:
            self._skip(report, "create_database", ResourceKind.DATABASE)
            return False

        database = bundle.database
        mode_spec = database.mode_spec
        cluster_id = (
            self.settings.ndb_cluster_id if database.mode is DatabaseMode.CLONE else self.settings.cluster_id
        )
        if cluster_id:
            mode_spec.cluster_id = cluster_id

        if database.mode is DatabaseMode.CLONE:
            if mode_spec.missing_fields():
                try:
                    await self.prepare_clone(bundle)
                except HarnessError as e:
                    self.logger.error(f"prepare_clone() failed! {e}", database=database.name)

            missing = mode_spec.missing_fields()
            if missing:
                error = CloneSpecError(missing, operation="create_database")
                self.logger.error(error.message, database=database.name)
                report.record(
                    "create_database",
                    _describe(ResourceKind.DATABASE, database.name),
                    StepOutcome.FAILED,
                    error=str(error),
                )
                return False

        self.logger.info("submitting_database", database=database.name, mode=database.mode.value)
        created = await self._create(report, "create_database", database, namespace)
        if created is None:
            return False
        bundle.database = created
        return True

    async def _create_workload(self, bundle: ResourceBundle, namespace: str, report: WorkflowReport) -> bool:
        if bundle.workload is None:
            self._skip(report, "create_workload", ResourceKind.POD)
            return False

        created = await self._create(report, "create_workload", bundle.workload, namespace)
        if created is None:
            return False
        bundle.workload = created
        return True

    async def _check_database_ready(self, database: DatabaseRecord, namespace: str) -> DatabaseRecord:
        current = await self.store.get_record(DatabaseRecord, database.namespace or namespace, database.name)
        label = "Clone" if current.mode is DatabaseMode.CLONE else "Database"
        if not current.is_ready:
            raise NotReadyError(label, current.name, current.status.status, operation="wait_database_ready")
        self.logger.info("database_ready", database=current.name, status=current.status.status)
        return current

    async def _check_workload_running(
        self, workload: VerificationWorkload, namespace: str
    ) -> VerificationWorkload:
        current = await self.store.get_record(VerificationWorkload, workload.namespace or namespace, workload.name)
        if not current.is_running:
            raise NotReadyError("Pod", current.name, current.status.phase, operation="wait_workload_running")
        self.logger.info("workload_running", pod=current.name)
        return current

    async def _wait_for_database(
        self, bundle: ResourceBundle, namespace: str, report: WorkflowReport
    ) -> Optional[HarnessError]:
        database = bundle.database
        resource = _describe(ResourceKind.DATABASE, database.name)
        try:
            bundle.database = await retry_until_success(
                self.settings.database_poll_interval_seconds,
                self.settings.database_poll_attempts,
                lambda: self._check_database_ready(database, namespace),
                sleep=self.sleep,
                log=self.logger,
            )
        except HarnessError as e:
            self.logger.error(f"wait_database_ready() failed! {e.cause}", database=database.name)
            report.record("wait_database_ready", resource, StepOutcome.FAILED, error=str(e))
            return e

        report.record("wait_database_ready", resource, StepOutcome.READY)
        return None

    async def _wait_for_workload(
        self, bundle: ResourceBundle, namespace: str, report: WorkflowReport
    ) -> Optional[HarnessError]:
        workload = bundle.workload
        resource = _describe(ResourceKind.POD, workload.name)
        try:
            bundle.workload = await retry_until_success(
                self.settings.workload_poll_interval_seconds,
                self.settings.workload_poll_attempts,
                lambda: self._check_workload_running(workload, namespace),
                sleep=self.sleep,
                log=self.logger,
            )
        except HarnessError as e:
            self.logger.error(f"wait_workload_running() failed! {e.cause}", pod=workload.name)
            report.record("wait_workload_running", resource, StepOutcome.FAILED, error=str(e))
            return e

        report.record("wait_workload_running", resource, StepOutcome.READY)
        return None

    # Clone preparation

    async def prepare_clone(self, bundle: ResourceBundle) -> CloneSpec:
        """
        Fill in the source database, cluster and snapshot of a clone record.

        The source is the NDB database configured for the clone's engine type.
        Only empty fields are filled; values carried by the template win.

        Raises:
            ConfigurationError: If the bundle has no clone-mode database, lacks
                the control-plane records, or no source is configured for the type
            InvalidCredentialError: If the control-plane credential is incomplete
            NotFoundError: If the source or a usable snapshot does not exist
            NDBApiError: If an NDB call fails
        """
        operation = "prepare_clone"
        database = bundle.database
        if database is None or database.mode is not DatabaseMode.CLONE:
            raise ConfigurationError("bundle has no clone-mode database", operation=operation)
        if bundle.server_registration is None or bundle.control_plane_credential is None:
            raise ConfigurationError(
                "clone preparation needs the server registration and control-plane credential",
                operation=operation,
            )

        clone = database.mode_spec
        source_name = self.settings.clone_source_name(clone.type)
        if not source_name:
            raise ConfigurationError(f"no clone source configured for type '{clone.type}'", operation=operation)

        username, password = self._control_plane_credentials(bundle.control_plane_credential)
        server = bundle.server_registration.spec
        client = self.client_factory(
            username=username,
            password=password,
            endpoint=self.settings.ndb_server or server.server,
            ca_cert=None,
            skip_verify=server.skip_certificate_verification,
            timeout=self.settings.ndb_request_timeout_seconds,
        )
        async with client:
            source = await client.get_database_by_name(source_name)
            if not clone.snapshot_id:
                snapshots = await client.get_snapshots_for_time_machine(source.time_machine_id)
                clone.snapshot_id = select_snapshot_id(snapshots, source.nx_cluster_id)

        if not clone.source_database_id:
            clone.source_database_id = source.id
        if not clone.cluster_id:
            clone.cluster_id = source.nx_cluster_id

        self.logger.info(
            "clone_prepared",
            database=database.name,
            source=source_name,
            source_database_id=clone.source_database_id,
            cluster_id=clone.cluster_id,
            snapshot_id=clone.snapshot_id,
        )
        return clone

    def _control_plane_credentials(self, secret: CredentialRecord):
        username = self.settings.ndb_secret_username or secret.value(SECRET_KEY_USERNAME)
        password = self.settings.ndb_secret_password or secret.value(SECRET_KEY_PASSWORD)
        if not username or not password:
            raise InvalidCredentialError(
                f"credential record '{secret.name}' is missing username or password",
                operation="prepare_clone",
            )
        return username, password

    # Teardown

    async def deprovision(self, bundle: ResourceBundle) -> WorkflowReport:
        """
        Delete the bundle's resources, best-effort, in reverse dependency order.

        Every deletion is attempted whatever happened to the previous ones.

        Raises:
            ConfigurationError: If the bundle or store is missing
        """
        self._check_preconditions(bundle, "deprovision")
        run_id = uuid.uuid4().hex[:8]
        report = WorkflowReport(workflow="deprovision", run_id=run_id)

        with structlog.contextvars.bound_contextvars(workflow="deprovision", run_id=run_id):
            namespace = bundle.namespace(self.settings.default_namespace)
            self.logger.info("deprovision_started", namespace=namespace)

            database = bundle.database
            if database is not None:
                db_namespace = database.namespace or namespace
                await self._delete(report, "delete_service", ResourceKind.SERVICE, db_namespace, database.service_name)
                await self._delete(report, "delete_database", ResourceKind.DATABASE, db_namespace, database.name)
                await self._wait_for_database_deleted(database, db_namespace, report)
            else:
                self._skip(report, "delete_service", ResourceKind.SERVICE)
                self._skip(report, "delete_database", ResourceKind.DATABASE)

            registration = bundle.server_registration
            if registration is not None:
                await self._delete(
                    report,
                    "delete_server_registration",
                    ResourceKind.NDB_SERVER,
                    registration.namespace or namespace,
                    registration.name,
                )
            else:
                self._skip(report, "delete_server_registration", ResourceKind.NDB_SERVER)

            for step, secret in (
                ("delete_database_credential", bundle.database_credential),
                ("delete_control_plane_credential", bundle.control_plane_credential),
            ):
                if secret is not None:
                    await self._delete(report, step, ResourceKind.SECRET, secret.namespace or namespace, secret.name)
                else:
                    self._skip(report, step, ResourceKind.SECRET)

            if bundle.workload is not None:
                await self._delete(
                    report, "delete_workload", ResourceKind.POD, bundle.workload.namespace or namespace, bundle.workload.name
                )
            else:
                self._skip(report, "delete_workload", ResourceKind.POD)

            self.logger.info(
                "deprovision_finished",
                steps=len(report.steps),
                failed=[s.step for s in report.failed_steps],
            )
            return report

    async def _delete(
        self, report: WorkflowReport, step: str, kind: ResourceKind, namespace: str, name: str
    ) -> None:
        resource = _describe(kind, name)
        try:
            await self.store.delete(kind, namespace, name)
        except NotFoundError as e:
            self.logger.info("resource_already_absent", resource=resource, namespace=namespace)
            report.record(step, resource, StepOutcome.SKIPPED, error=str(e))
            return
        except HarnessError as e:
            self.logger.error(f"{step}() failed! {e}", resource=resource, namespace=namespace)
            report.record(step, resource, StepOutcome.FAILED, error=str(e))
            return

        self.logger.info("resource_deleted", resource=resource, namespace=namespace)
        report.record(step, resource, StepOutcome.DELETED)

    async def _check_database_deleted(self, database: DatabaseRecord, namespace: str) -> None:
        try:
            current = await self.store.get_record(DatabaseRecord, namespace, database.name)
        except HarnessError:
            # Any failed read counts as gone
            return None
        if current.is_empty:
            self.logger.info("database_record_empty", database=database.name)
            return None
        raise NotReadyError("Database", database.name, "not yet deleted", operation="wait_database_deleted")

    async def _wait_for_database_deleted(
        self, database: DatabaseRecord, namespace: str, report: WorkflowReport
    ) -> None:
        resource = _describe(ResourceKind.DATABASE, database.name)
        try:
            await retry_until_success(
                self.settings.deletion_poll_interval_seconds,
                self.settings.deletion_poll_attempts,
                lambda: self._check_database_deleted(database, namespace),
                sleep=self.sleep,
                log=self.logger,
            )
        except HarnessError as e:
            self.logger.error(f"wait_database_deleted() failed! {e.cause}", database=database.name)
            report.record("wait_database_deleted", resource, StepOutcome.FAILED, error=str(e))
            return
        report.record("wait_database_deleted", resource, StepOutcome.DELETED)
