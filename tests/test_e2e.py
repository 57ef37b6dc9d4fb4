"""
End-to-end provisioning against a live cluster and NDB server.

Runs only with DBAAS_HARNESS_E2E=1 and the usual environment variables
(DB_SECRET_PASSWORD, NDB_SECRET_USERNAME, NDB_SECRET_PASSWORD, NDB_SERVER,
CLUSTER_ID, KUBECONFIG).
"""
import os

import pytest
import pytest_asyncio

from dbaas_harness.config.settings import Settings
from dbaas_harness.services.orchestrator import WorkflowOrchestrator
from dbaas_harness.services.resource_store import KubernetesResourceStore
from dbaas_harness.services.schedule_validator import validate_schedule
from dbaas_harness.services.status_resolver import StatusResolver
from dbaas_harness.services.templates import load_bundle

pytestmark = pytest.mark.skipif(
    os.getenv("DBAAS_HARNESS_E2E") != "1", reason="set DBAAS_HARNESS_E2E=1 to run against a live cluster"
)


@pytest_asyncio.fixture
async def live_store():
    store = await KubernetesResourceStore.from_kubeconfig(os.getenv("KUBECONFIG"))
    yield store
    await store.close()


@pytest.mark.asyncio
async def test_postgres_instance_lifecycle(live_store):
    live_settings = Settings()
    bundle = load_bundle("./templates/postgres-si", live_settings)
    orchestrator = WorkflowOrchestrator(live_store, settings=live_settings)

    try:
        report = await orchestrator.provision(bundle)
        assert report.ok, report.failed_steps

        resolver = StatusResolver(live_store, settings=live_settings)
        response = await resolver.resolve_status(bundle)
        assert response.status == "READY"

        time_machine = await resolver.resolve_time_machine(bundle)
        assert validate_schedule(bundle.database.spec.instance.time_machine, time_machine) == []
    finally:
        await orchestrator.deprovision(bundle)
