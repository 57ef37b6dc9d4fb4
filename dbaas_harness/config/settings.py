"""
Harness configuration using Pydantic Settings.
Loads configuration from environment variables (and an optional .env file) with validation.
"""
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Environment variables a provisioning or cloning run cannot do without
REQUIRED_ENV_VARS = (
    "DB_SECRET_PASSWORD",
    "NDB_SECRET_USERNAME",
    "NDB_SECRET_PASSWORD",
    "NDB_SERVER",
)


class Settings(BaseSettings):
    """Harness settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="dbaas-harness", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(default="development", description="Environment (development/testing/production)")
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Force JSON log output outside production")

    # Credentials injected into the credential records at workflow start
    db_secret_password: Optional[str] = Field(default=None, description="Password for the database credential record")
    ndb_secret_username: Optional[str] = Field(default=None, description="NDB control-plane username")
    ndb_secret_password: Optional[str] = Field(default=None, description="NDB control-plane password")

    # NDB control plane
    ndb_server: Optional[str] = Field(
        default=None, description="NDB endpoint, e.g. https://10.0.0.1:8443/era/v0.9"
    )
    cluster_id: Optional[str] = Field(default=None, description="Nutanix cluster id for fresh instances")
    ndb_cluster_id: Optional[str] = Field(default=None, description="Nutanix cluster id for clones")
    ndb_request_timeout_seconds: float = Field(default=30.0, gt=0, description="NDB HTTP request timeout")

    # Kubernetes
    kubeconfig: Optional[str] = Field(default=None, description="Path to kubeconfig file (None for in-cluster)")
    default_namespace: str = Field(default="default", description="Namespace used when a record names none")

    # Resource templates
    templates_dir: str = Field(default="./templates/postgres-si", description="Directory holding the bundle templates")
    ndb_server_template: str = Field(default="ndb.yaml", description="NDBServer template file")
    database_template: str = Field(default="database.yaml", description="Database template file")
    db_secret_template: str = Field(default="db-secret.yaml", description="Database credential template file")
    ndb_secret_template: str = Field(default="ndb-secret.yaml", description="NDB credential template file")
    app_pod_template: str = Field(default="pod.yaml", description="Verification pod template file")

    # Readiness polling
    database_poll_interval_seconds: float = Field(default=60.0, ge=0, description="Database readiness poll interval")
    database_poll_attempts: int = Field(default=80, ge=1, description="Database readiness poll attempts")
    workload_poll_interval_seconds: float = Field(default=1.0, ge=0, description="Verification pod poll interval")
    workload_poll_attempts: int = Field(default=300, ge=1, description="Verification pod poll attempts")
    deletion_poll_interval_seconds: float = Field(default=60.0, ge=0, description="Database deletion poll interval")
    deletion_poll_attempts: int = Field(default=10, ge=1, description="Database deletion poll attempts")

    # Clone sources, looked up by database type
    mongo_si_cloning_name: str = Field(default="operator-mongo", description="Source database for MongoDB clones")
    mssql_si_cloning_name: str = Field(default="operator-mssql", description="Source database for MSSQL clones")
    mysql_si_cloning_name: str = Field(default="operator-mysql", description="Source database for MySQL clones")
    postgres_si_cloning_name: str = Field(
        default="operator-postgres", description="Source database for PostgreSQL clones"
    )

    # App connectivity check
    app_local_port: int = Field(default=3000, ge=1, le=65535, description="Local port for the port-forward")
    port_forward_wait_seconds: float = Field(default=2.0, ge=0, description="Wait for kubectl port-forward to start")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment."""
        valid_envs = ["development", "testing", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    def clone_source_name(self, database_type: str) -> Optional[str]:
        """Name of the NDB database a clone of ``database_type`` is taken from."""
        return {
            "mongodb": self.mongo_si_cloning_name,
            "mssql": self.mssql_si_cloning_name,
            "mysql": self.mysql_si_cloning_name,
            "postgres": self.postgres_si_cloning_name,
        }.get((database_type or "").lower())

    def missing_required_env(self) -> List[str]:
        """Return the required environment variables that are not set."""
        return [name for name in REQUIRED_ENV_VARS if not getattr(self, name.lower())]


# Global settings instance
settings = Settings()
