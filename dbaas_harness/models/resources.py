"""
Pydantic models for the cluster resources a workflow run moves together.

Each record mirrors the Kubernetes manifest it is created from, so templates
load with ``model_validate`` and submit with ``to_manifest``.
"""
import base64
import binascii
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


NDB_API_VERSION = "ndb.nutanix.com/v1alpha1"

DATABASE_STATUS_READY = "READY"
POD_PHASE_RUNNING = "Running"

SECRET_KEY_USERNAME = "username"
SECRET_KEY_PASSWORD = "password"

# Policy names meaning "no backup policy requested"
NO_SLA_NAMES = ("", "NONE")


class ResourceKind(str, Enum):
    """Resource kinds the harness creates, reads and deletes."""

    SECRET = "Secret"
    NDB_SERVER = "NDBServer"
    DATABASE = "Database"
    POD = "Pod"
    SERVICE = "Service"


class DatabaseMode(str, Enum):
    """Whether a database record provisions a fresh instance or a clone."""

    INSTANCE = "instance"
    CLONE = "clone"


class ManifestModel(BaseModel):
    """Base model with camelCase aliases matching Kubernetes manifests."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ObjectMeta(ManifestModel):
    """Subset of Kubernetes object metadata the harness relies on."""

    name: str = ""
    namespace: Optional[str] = None
    labels: Optional[Dict[str, str]] = None
    annotations: Optional[Dict[str, str]] = None


class Record(ManifestModel):
    """A named, namespaced cluster resource."""

    resource_kind: ClassVar[ResourceKind]

    api_version: str = "v1"
    kind: str = ""
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> Optional[str]:
        return self.metadata.namespace

    @property
    def is_empty(self) -> bool:
        """True for a default record, as returned once a resource is gone."""
        return not self.metadata.name

    def to_manifest(self, include_status: bool = False) -> Dict[str, Any]:
        """Serialize to a manifest body suitable for the resource store."""
        exclude = None if include_status else {"status"}
        return self.model_dump(by_alias=True, exclude_none=True, exclude=exclude, mode="json")

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any]):
        return cls.model_validate(manifest)


class CredentialRecord(Record):
    """Secret holding a username/password pair."""

    resource_kind: ClassVar[ResourceKind] = ResourceKind.SECRET

    kind: str = "Secret"
    type: Optional[str] = "Opaque"
    string_data: Dict[str, str] = Field(default_factory=dict)
    data: Dict[str, str] = Field(default_factory=dict)

    def value(self, key: str) -> str:
        """
        Read a value, preferring base64 ``data`` (what the API server returns)
        over ``stringData`` (what templates carry).
        """
        encoded = self.data.get(key)
        if encoded:
            try:
                return base64.b64decode(encoded).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError):
                return ""
        return self.string_data.get(key, "")

    def credentials(self) -> Tuple[str, str]:
        return self.value(SECRET_KEY_USERNAME), self.value(SECRET_KEY_PASSWORD)


class ServerRegistrationSpec(ManifestModel):
    server: str = ""
    credential_secret: str = ""
    skip_certificate_verification: bool = True


class ServerRegistration(Record):
    """NDBServer record: the control-plane endpoint and its credential record."""

    resource_kind: ClassVar[ResourceKind] = ResourceKind.NDB_SERVER

    api_version: str = NDB_API_VERSION
    kind: str = "NDBServer"
    spec: ServerRegistrationSpec = Field(default_factory=ServerRegistrationSpec)
    status: Optional[Dict[str, Any]] = None


class TimeMachineInfo(ManifestModel):
    """Requested backup policy of an instance-mode database."""

    name: str = ""
    description: str = ""
    sla_name: str = Field(default="NONE", alias="sla")
    daily_snapshot_time: str = ""
    snapshots_per_day: int = 0
    log_catch_up_frequency: int = 0
    weekly_snapshot_day: str = ""
    monthly_snapshot_day: int = 0
    quarterly_snapshot_month: str = ""

    @property
    def policy_requested(self) -> bool:
        return self.sla_name not in NO_SLA_NAMES


class InstanceSpec(ManifestModel):
    cluster_id: str = ""
    name: str = ""
    description: str = ""
    database_names: List[str] = Field(default_factory=list)
    credential_secret: str = ""
    size: int = 10
    timezone: str = "UTC"
    type: str = ""
    profiles: Optional[Dict[str, Any]] = None
    additional_arguments: Optional[Dict[str, str]] = None
    time_machine: Optional[TimeMachineInfo] = None
    is_high_availability: bool = False
    # HA node layout; ignored by NDB unless is_high_availability is set
    nodes: Optional[List[Dict[str, Any]]] = None


class CloneSpec(ManifestModel):
    name: str = ""
    type: str = ""
    description: str = ""
    cluster_id: str = ""
    credential_secret: str = ""
    timezone: str = "UTC"
    profiles: Optional[Dict[str, Any]] = None
    source_database_id: str = ""
    snapshot_id: str = ""
    additional_arguments: Optional[Dict[str, str]] = None

    def missing_fields(self) -> List[str]:
        """Names of the fields a clone cannot be submitted without."""
        required = {
            "sourceDatabaseId": self.source_database_id,
            "clusterId": self.cluster_id,
            "snapshotId": self.snapshot_id,
        }
        return [field for field, value in required.items() if not value]


class DatabaseSpec(ManifestModel):
    ndb_ref: str = ""
    is_clone: bool = False
    instance: Optional[InstanceSpec] = Field(default=None, alias="databaseInstance")
    clone: Optional[CloneSpec] = None


class DatabaseStatus(ManifestModel):
    id: str = ""
    status: str = ""
    ip_address: str = ""
    db_server_id: str = Field(default="", alias="dbServerId")
    type: str = ""


class DatabaseRecord(Record):
    """Database record in either instance or clone mode."""

    resource_kind: ClassVar[ResourceKind] = ResourceKind.DATABASE

    api_version: str = NDB_API_VERSION
    kind: str = "Database"
    spec: DatabaseSpec = Field(default_factory=DatabaseSpec)
    status: DatabaseStatus = Field(default_factory=DatabaseStatus)

    @property
    def mode(self) -> DatabaseMode:
        return DatabaseMode.CLONE if self.spec.is_clone else DatabaseMode.INSTANCE

    @property
    def mode_spec(self) -> Union[InstanceSpec, CloneSpec]:
        """The sub-spec of the active mode, created empty when the template has none."""
        if self.mode is DatabaseMode.CLONE:
            if self.spec.clone is None:
                self.spec.clone = CloneSpec()
            return self.spec.clone
        if self.spec.instance is None:
            self.spec.instance = InstanceSpec()
        return self.spec.instance

    @property
    def is_ready(self) -> bool:
        return self.status.status == DATABASE_STATUS_READY

    @property
    def service_name(self) -> str:
        """Name of the network-exposure service fronting this database."""
        return f"{self.metadata.name}-svc"


class PodStatus(ManifestModel):
    phase: str = ""


class VerificationWorkload(Record):
    """Disposable pod used to prove network reachability to the database."""

    resource_kind: ClassVar[ResourceKind] = ResourceKind.POD

    kind: str = "Pod"
    spec: Dict[str, Any] = Field(default_factory=dict)
    status: PodStatus = Field(default_factory=PodStatus)

    @property
    def is_running(self) -> bool:
        return self.status.phase == POD_PHASE_RUNNING

    @property
    def container_port(self) -> Optional[int]:
        """Port declared by the first container, if any."""
        containers = self.spec.get("containers") or []
        if not containers:
            return None
        ports = containers[0].get("ports") or []
        if not ports:
            return None
        return ports[0].get("containerPort")


class ResourceBundle(BaseModel):
    """Desired state of one workflow run; every member is optional."""

    database_credential: Optional[CredentialRecord] = None
    control_plane_credential: Optional[CredentialRecord] = None
    server_registration: Optional[ServerRegistration] = None
    database: Optional[DatabaseRecord] = None
    workload: Optional[VerificationWorkload] = None

    def namespace(self, default: str) -> str:
        """Target namespace: the database's, else ``default``."""
        if self.database is not None and self.database.namespace:
            return self.database.namespace
        return default
