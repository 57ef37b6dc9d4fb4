"""
Pydantic models for NDB API responses.
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NDBModel(BaseModel):
    """Base model for NDB payloads; unknown fields are dropped."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class DatabaseServer(NDBModel):
    id: str = ""
    name: str = ""
    ip_addresses: List[str] = Field(default_factory=list)
    nx_cluster_id: str = ""


class DatabaseNode(NDBModel):
    id: str = ""
    name: str = ""
    database_server_id: str = Field(default="", alias="dbServerId")
    db_server: DatabaseServer = Field(default_factory=DatabaseServer, alias="dbserver")


class Property(NDBModel):
    name: str = ""
    value: str = ""


class DatabaseResponse(NDBModel):
    """A database or clone as reported by NDB."""

    id: str = ""
    name: str = ""
    status: str = ""
    type: str = ""
    clone: bool = False
    time_machine_id: str = ""
    database_nodes: List[DatabaseNode] = Field(default_factory=list)
    properties: List[Property] = Field(default_factory=list)

    @property
    def nx_cluster_id(self) -> str:
        """Cluster hosting the first database node, or an empty string."""
        if not self.database_nodes:
            return ""
        return self.database_nodes[0].db_server.nx_cluster_id


class SnapshotTimeOfDay(NDBModel):
    hours: int = 0
    minutes: int = 0
    seconds: int = 0


class ContinuousSchedule(NDBModel):
    enabled: bool = False
    log_backup_interval: int = 0
    snapshots_per_day: int = 0


class WeeklySchedule(NDBModel):
    enabled: bool = False
    day_of_week: str = ""


class MonthlySchedule(NDBModel):
    enabled: bool = False
    day_of_month: int = 0


class QuarterlySchedule(NDBModel):
    enabled: bool = False
    start_month: str = ""


class TimeMachineSchedule(NDBModel):
    id: str = ""
    name: str = ""
    snapshot_time_of_day: SnapshotTimeOfDay = Field(default_factory=SnapshotTimeOfDay)
    continuous_schedule: ContinuousSchedule = Field(default_factory=ContinuousSchedule)
    weekly_schedule: WeeklySchedule = Field(default_factory=WeeklySchedule)
    monthly_schedule: MonthlySchedule = Field(default_factory=MonthlySchedule)
    quarterly_schedule: QuarterlySchedule = Field(default_factory=QuarterlySchedule)


class TimeMachineSla(NDBModel):
    id: str = ""
    name: str = ""


class TimeMachineResponse(NDBModel):
    """Time machine of a database, including the schedule it actually runs."""

    id: str = ""
    name: str = ""
    description: str = ""
    status: str = ""
    database_id: str = ""
    clone: bool = False
    sla: TimeMachineSla = Field(default_factory=TimeMachineSla)
    schedule: TimeMachineSchedule = Field(default_factory=TimeMachineSchedule)


# The control plane's report of a recurring backup policy
ScheduleReport = TimeMachineResponse


class SnapshotInfo(NDBModel):
    id: str = ""
    name: str = ""
    status: str = ""
    type: str = ""
    snapshot_timestamp: Optional[str] = Field(default=None, alias="snapshotTimeStamp")


class SnapshotGroup(NDBModel):
    """Snapshots of one schedule type (daily, continuous or manual)."""

    type: str = ""
    snapshots: List[SnapshotInfo] = Field(default_factory=list)


class SnapshotCollection(NDBModel):
    """Snapshots of a time machine grouped by cluster id, then by schedule type."""

    snapshots_per_nx_cluster: Dict[str, List[SnapshotGroup]] = Field(default_factory=dict)
