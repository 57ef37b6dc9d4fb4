"""
Pytest configuration and fixtures.
"""
import copy
from typing import Any, Dict, List, Optional, Tuple

import pytest

from dbaas_harness.config.settings import Settings
from dbaas_harness.exceptions import HarnessError, NotFoundError, ResourceStoreError
from dbaas_harness.models.ndb import DatabaseResponse, SnapshotCollection, TimeMachineResponse
from dbaas_harness.models.resources import (
    CredentialRecord,
    DatabaseRecord,
    ResourceBundle,
    ResourceKind,
    ServerRegistration,
    VerificationWorkload,
)
from dbaas_harness.services.resource_store import ResourceStore


class FakeResourceStore(ResourceStore):
    """In-memory resource store with scripted status transitions."""

    def __init__(self):
        self.objects: Dict[Tuple[ResourceKind, str, str], Dict[str, Any]] = {}
        self.calls: List[Tuple[str, ResourceKind, str, str]] = []
        self.failures: Dict[Tuple[str, ResourceKind], HarnessError] = {}
        self.status_scripts: Dict[Tuple[ResourceKind, str], List[Dict[str, Any]]] = {}
        self.keep_after_delete: bool = False

    def fail(self, verb: str, kind: ResourceKind, error: Optional[HarnessError] = None) -> None:
        self.failures[(verb, kind)] = error or ResourceStoreError("boom", operation=verb, status=500)

    def script_status(self, kind: ResourceKind, name: str, *statuses: Dict[str, Any]) -> None:
        """Each get of the resource applies the next status; the last one sticks."""
        self.status_scripts[(kind, name)] = list(statuses)

    def calls_for(self, verb: str) -> List[Tuple[ResourceKind, str]]:
        return [(kind, name) for v, kind, _, name in self.calls if v == verb]

    def _check_failure(self, verb: str, kind: ResourceKind) -> None:
        if (verb, kind) in self.failures:
            raise self.failures[(verb, kind)]

    async def create(self, kind: ResourceKind, namespace: str, body: Dict[str, Any]) -> Dict[str, Any]:
        name = body["metadata"]["name"]
        self.calls.append(("create", kind, namespace, name))
        self._check_failure("create", kind)
        key = (kind, namespace, name)
        if key in self.objects:
            raise ResourceStoreError(f"{kind.value} {namespace}/{name}: AlreadyExists", operation="create", status=409)
        stored = copy.deepcopy(body)
        stored["metadata"]["namespace"] = namespace
        self.objects[key] = stored
        return copy.deepcopy(stored)

    async def get(self, kind: ResourceKind, namespace: str, name: str) -> Dict[str, Any]:
        self.calls.append(("get", kind, namespace, name))
        self._check_failure("get", kind)
        key = (kind, namespace, name)
        if key not in self.objects:
            raise NotFoundError(kind.value, f"{namespace}/{name}", operation="get")
        script = self.status_scripts.get((kind, name))
        if script:
            status = script.pop(0) if len(script) > 1 else script[0]
            self.objects[key]["status"] = status
        return copy.deepcopy(self.objects[key])

    async def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        self.calls.append(("delete", kind, namespace, name))
        self._check_failure("delete", kind)
        key = (kind, namespace, name)
        if key not in self.objects:
            raise NotFoundError(kind.value, f"{namespace}/{name}", operation="delete")
        if not self.keep_after_delete:
            del self.objects[key]


class FakeNDBClient:
    """Stands in for NDBClient; responses are set per test."""

    def __init__(self):
        self.databases_by_id: Dict[str, DatabaseResponse] = {}
        self.databases_by_name: Dict[str, DatabaseResponse] = {}
        self.clones_by_id: Dict[str, DatabaseResponse] = {}
        self.time_machines: Dict[str, TimeMachineResponse] = {}
        self.snapshots: Dict[str, SnapshotCollection] = {}
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    async def __aenter__(self) -> "FakeNDBClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        self.closed = True

    def _lookup(self, table: Dict[str, Any], key: str, method: str, resource: str):
        self.calls.append((method, key))
        if key not in table:
            raise NotFoundError(resource, key, operation=method)
        return table[key]

    async def get_database_by_id(self, database_id: str) -> DatabaseResponse:
        return self._lookup(self.databases_by_id, database_id, "get_database_by_id", "NDB database")

    async def get_database_by_name(self, name: str) -> DatabaseResponse:
        return self._lookup(self.databases_by_name, name, "get_database_by_name", "NDB database")

    async def get_clone_by_id(self, clone_id: str) -> DatabaseResponse:
        return self._lookup(self.clones_by_id, clone_id, "get_clone_by_id", "NDB clone")

    async def get_time_machine_by_id(self, time_machine_id: str) -> TimeMachineResponse:
        return self._lookup(self.time_machines, time_machine_id, "get_time_machine_by_id", "time machine")

    async def get_snapshots_for_time_machine(self, time_machine_id: str) -> SnapshotCollection:
        return self._lookup(self.snapshots, time_machine_id, "get_snapshots_for_time_machine", "snapshots")


class RecordingSleep:
    """Awaitable sleep that records requested delays without waiting."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

    @property
    def total(self) -> float:
        return sum(self.delays)


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the process environment and any .env file."""
    return Settings(
        _env_file=None,
        environment="testing",
        db_secret_password="db-pass",
        ndb_secret_username="admin",
        ndb_secret_password="ndb-pass",
        ndb_server="https://ndb.example.com:8443/era/v0.9",
        cluster_id="cluster-instance",
        ndb_cluster_id="cluster-clone",
        database_poll_interval_seconds=1,
        database_poll_attempts=5,
        workload_poll_interval_seconds=1,
        workload_poll_attempts=5,
        deletion_poll_interval_seconds=1,
        deletion_poll_attempts=3,
    )


@pytest.fixture
def store() -> FakeResourceStore:
    return FakeResourceStore()


@pytest.fixture
def ndb_client() -> FakeNDBClient:
    return FakeNDBClient()


@pytest.fixture
def client_factory(ndb_client):
    """Factory returning the shared fake client and remembering its arguments."""

    def factory(**kwargs):
        factory.kwargs.append(kwargs)
        return ndb_client

    factory.kwargs = []
    return factory


@pytest.fixture
def recorded_sleep() -> RecordingSleep:
    return RecordingSleep()


def make_database(name: str = "db-pg-si", is_clone: bool = False, **sub_spec: Any) -> DatabaseRecord:
    spec: Dict[str, Any] = {"ndbRef": "ndb-pg-si", "isClone": is_clone}
    if is_clone:
        spec["clone"] = {"name": name, "type": "postgres", "credentialSecret": "db-secret", **sub_spec}
    else:
        spec["databaseInstance"] = {"name": name, "type": "postgres", "credentialSecret": "db-secret", **sub_spec}
    return DatabaseRecord.model_validate(
        {"apiVersion": "ndb.nutanix.com/v1alpha1", "kind": "Database", "metadata": {"name": name}, "spec": spec}
    )


def make_bundle(database: Optional[DatabaseRecord] = None, workload: bool = True) -> ResourceBundle:
    return ResourceBundle(
        database_credential=CredentialRecord.model_validate(
            {"metadata": {"name": "db-secret"}, "stringData": {"password": ""}}
        ),
        control_plane_credential=CredentialRecord.model_validate(
            {"metadata": {"name": "ndb-secret"}, "stringData": {"username": "", "password": ""}}
        ),
        server_registration=ServerRegistration.model_validate(
            {
                "apiVersion": "ndb.nutanix.com/v1alpha1",
                "kind": "NDBServer",
                "metadata": {"name": "ndb-pg-si"},
                "spec": {"credentialSecret": "ndb-secret", "server": "", "skipCertificateVerification": True},
            }
        ),
        database=database,
        workload=VerificationWorkload.model_validate(
            {
                "metadata": {"name": "app-pg-si"},
                "spec": {"containers": [{"name": "app", "image": "app:latest", "ports": [{"containerPort": 3000}]}]},
            }
        )
        if workload
        else None,
    )


@pytest.fixture
def database_factory():
    return make_database


@pytest.fixture
def bundle_factory():
    return make_bundle
