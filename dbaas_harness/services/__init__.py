"""
Workflow services: resource store, NDB client, orchestrator and verification helpers.

Import directly from submodules, e.g.
from dbaas_harness.services.orchestrator import WorkflowOrchestrator
"""
