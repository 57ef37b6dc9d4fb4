"""
Tests for resolving the NDB view of a bundle's database.
"""
import base64

import pytest

from dbaas_harness.exceptions import ConfigurationError, InvalidCredentialError, NotFoundError, ResourceStoreError
from dbaas_harness.models.ndb import DatabaseResponse, TimeMachineResponse
from dbaas_harness.models.resources import ResourceBundle, ResourceKind
from dbaas_harness.services.status_resolver import StatusResolver


def _b64(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


async def _seed(store, bundle, ndb_id="ndb-1", username="admin", password="secret"):
    """Store the bundle as the API server would hold it after provisioning."""
    await store.create_record(bundle.server_registration, "default")
    await store.create_record(bundle.database, "default")
    store.objects[(ResourceKind.DATABASE, "default", bundle.database.name)]["status"] = {
        "id": ndb_id,
        "status": "READY",
    }
    store.objects[(ResourceKind.SECRET, "default", "ndb-secret")] = {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": "ndb-secret", "namespace": "default"},
        "data": {"username": _b64(username), "password": _b64(password)},
    }


@pytest.fixture
def resolver(store, client_factory, test_settings):
    return StatusResolver(store, client_factory=client_factory, settings=test_settings)


@pytest.mark.asyncio
async def test_instance_resolves_through_database_endpoint(
    resolver, store, ndb_client, client_factory, bundle_factory, database_factory
):
    bundle = bundle_factory(database_factory())
    bundle.server_registration.spec.server = "https://ndb.local/era/v0.9"
    await _seed(store, bundle)
    ndb_client.databases_by_id["ndb-1"] = DatabaseResponse(id="ndb-1", name="db-pg-si", status="READY")

    response = await resolver.resolve_status(bundle)

    assert response.status == "READY"
    assert ndb_client.calls == [("get_database_by_id", "ndb-1")]
    assert client_factory.kwargs[0]["username"] == "admin"
    assert client_factory.kwargs[0]["password"] == "secret"
    assert client_factory.kwargs[0]["endpoint"] == "https://ndb.local/era/v0.9"
    assert ndb_client.closed


@pytest.mark.asyncio
async def test_clone_resolves_through_clone_endpoint(resolver, store, ndb_client, bundle_factory, database_factory):
    bundle = bundle_factory(database_factory("clone-pg-si", is_clone=True))
    await _seed(store, bundle, ndb_id="clone-1")
    ndb_client.clones_by_id["clone-1"] = DatabaseResponse(id="clone-1", clone=True, status="READY")

    response = await resolver.resolve_status(bundle)

    assert response.id == "clone-1"
    assert ndb_client.calls == [("get_clone_by_id", "clone-1")]


@pytest.mark.asyncio
async def test_missing_database_record_is_not_found(resolver, store, bundle_factory, database_factory):
    bundle = bundle_factory(database_factory())
    await store.create_record(bundle.server_registration, "default")

    with pytest.raises(NotFoundError) as exc_info:
        await resolver.resolve_status(bundle)
    assert exc_info.value.message.startswith("resolve_status() failed!")


@pytest.mark.asyncio
async def test_transient_store_failure_is_not_reported_as_missing(resolver, store, bundle_factory, database_factory):
    bundle = bundle_factory(database_factory())
    await _seed(store, bundle)
    store.fail("get", ResourceKind.DATABASE)

    with pytest.raises(ResourceStoreError) as exc_info:
        await resolver.resolve_status(bundle)
    assert not isinstance(exc_info.value, NotFoundError)
    assert exc_info.value.status == 500


@pytest.mark.asyncio
async def test_missing_credential_record_is_invalid_credential(resolver, store, bundle_factory, database_factory):
    bundle = bundle_factory(database_factory())
    await _seed(store, bundle)
    del store.objects[(ResourceKind.SECRET, "default", "ndb-secret")]

    with pytest.raises(InvalidCredentialError):
        await resolver.resolve_status(bundle)


@pytest.mark.asyncio
async def test_empty_password_is_invalid_credential(resolver, store, ndb_client, bundle_factory, database_factory):
    bundle = bundle_factory(database_factory())
    await _seed(store, bundle, password="")

    with pytest.raises(InvalidCredentialError):
        await resolver.resolve_status(bundle)
    assert ndb_client.calls == []


@pytest.mark.asyncio
async def test_bundle_without_database_is_rejected(resolver):
    with pytest.raises(ConfigurationError):
        await resolver.resolve_status(ResourceBundle())


@pytest.mark.asyncio
async def test_resolve_time_machine(resolver, store, ndb_client, bundle_factory, database_factory):
    bundle = bundle_factory(database_factory())
    await _seed(store, bundle)
    ndb_client.databases_by_id["ndb-1"] = DatabaseResponse(id="ndb-1", time_machine_id="tm-1")
    ndb_client.time_machines["tm-1"] = TimeMachineResponse.model_validate(
        {"id": "tm-1", "name": "db-pg-si_TM", "sla": {"name": "GOLD"}}
    )

    time_machine = await resolver.resolve_time_machine(bundle)

    assert time_machine.sla.name == "GOLD"
    assert ndb_client.calls == [("get_database_by_id", "ndb-1"), ("get_time_machine_by_id", "tm-1")]


@pytest.mark.asyncio
async def test_resolve_time_machine_rejects_clones(resolver, store, ndb_client, bundle_factory, database_factory):
    bundle = bundle_factory(database_factory("clone-pg-si", is_clone=True))
    await _seed(store, bundle)

    with pytest.raises(ConfigurationError):
        await resolver.resolve_time_machine(bundle)
    assert ndb_client.closed
