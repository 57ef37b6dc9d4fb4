from dbaas_harness.models.ndb import (
    DatabaseResponse,
    ScheduleReport,
    SnapshotCollection,
    TimeMachineResponse,
)
from dbaas_harness.models.report import StepOutcome, StepResult, WorkflowReport
from dbaas_harness.models.resources import (
    CredentialRecord,
    DatabaseMode,
    DatabaseRecord,
    ResourceBundle,
    ResourceKind,
    ServerRegistration,
    TimeMachineInfo,
    VerificationWorkload,
)

__all__ = [
    "CredentialRecord",
    "DatabaseMode",
    "DatabaseRecord",
    "DatabaseResponse",
    "ResourceBundle",
    "ResourceKind",
    "ScheduleReport",
    "ServerRegistration",
    "SnapshotCollection",
    "StepOutcome",
    "StepResult",
    "TimeMachineInfo",
    "TimeMachineResponse",
    "VerificationWorkload",
    "WorkflowReport",
]
