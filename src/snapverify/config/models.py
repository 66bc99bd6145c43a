"""
Configuration Data Models.

Defines all configuration schemas using Pydantic for validation
and type safety. Everything is validated once at startup; components
receive the sections they need through their constructors.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

PRODUCTION_ENVIRONMENTS = frozenset({"prod", "production"})


class LogLevel(str, Enum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ClusterConfig(BaseModel):
    """Connection settings for the cluster HTTP API.

    Attributes:
        url: Base URL of the cluster API
        username: Basic-auth user (optional)
        password: Basic-auth password (optional)
        auth_file: File containing ``user:password`` (overrides username/password)
        http_timeout_seconds: Per-request timeout
        verify_tls: Verify TLS certificates
    """

    url: str = Field(
        default="http://localhost:9200",
        description="Cluster API base URL",
    )
    username: Optional[str] = Field(default=None, description="Basic-auth user")
    password: Optional[SecretStr] = Field(default=None, description="Basic-auth password")
    auth_file: Optional[str] = Field(
        default=None,
        description="Path to a user:password file",
        examples=["/etc/elasticsearch/htpasswd"],
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP request timeout",
    )
    verify_tls: bool = Field(default=True)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an http(s) URL and drop the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Cluster URL must start with http:// or https://: {v}")
        return v.rstrip("/")

    @model_validator(mode="after")
    def load_auth_file(self) -> "ClusterConfig":
        """Read credentials from auth_file when one is configured."""
        if self.auth_file:
            path = Path(self.auth_file)
            if not path.exists():
                raise ValueError(f"Auth file not found: {self.auth_file}")
            user, sep, password = path.read_text().strip().partition(":")
            if not sep or not user:
                raise ValueError(f"Auth file must contain user:password: {self.auth_file}")
            self.username = user
            self.password = SecretStr(password)
        return self

    @property
    def basic_auth(self) -> tuple[str, str] | None:
        """Credentials tuple for httpx, or None when unauthenticated."""
        if self.username is None:
            return None
        password = self.password.get_secret_value() if self.password else ""
        return (self.username, password)


class RepositoryConfig(BaseModel):
    """Settings for the monthly snapshot repositories.

    Attributes:
        type: Repository plugin type
        bucket: Object storage bucket
        region: Bucket region (optional)
        base_path_prefix: Leading path segment inside the bucket
        server_side_encryption: Ask the store to encrypt at rest
        max_snapshot_bytes_per_sec: Snapshot throughput cap
        max_restore_bytes_per_sec: Restore throughput cap
    """

    type: str = Field(default="s3", description="Repository type")
    bucket: str = Field(..., description="Storage bucket", examples=["backups.example.com"])
    region: Optional[str] = Field(default=None)
    base_path_prefix: str = Field(default="elasticsearch")
    server_side_encryption: bool = Field(default=True)
    max_snapshot_bytes_per_sec: str = Field(default="100mb")
    max_restore_bytes_per_sec: str = Field(default="500mb")

    def repository_body(self, base_path: str) -> dict[str, Any]:
        """Build the create-repository request body.

        Args:
            base_path: Path inside the bucket for this repository

        Returns:
            Request body for PUT _snapshot/{name}
        """
        settings: dict[str, Any] = {
            "bucket": self.bucket,
            "base_path": base_path,
            "server_side_encryption": self.server_side_encryption,
            "max_snapshot_bytes_per_sec": self.max_snapshot_bytes_per_sec,
            "max_restore_bytes_per_sec": self.max_restore_bytes_per_sec,
        }
        if self.region:
            settings["region"] = self.region
        return {"type": self.type, "settings": settings}


class ProbeConfig(BaseModel):
    """Settings for the synthetic probe dataset.

    Attributes:
        test_size: Number of probe documents per run
        index_prefix: Prefix of the probe index name
        restore_prefix: Prefix of the scratch restore index name
    """

    test_size: int = Field(default=100, ge=0, description="Probe document count")
    index_prefix: str = Field(default="backup_test_")
    restore_prefix: str = Field(default="restore_test_")

    @model_validator(mode="after")
    def validate_prefixes(self) -> "ProbeConfig":
        """Prefixes must be non-empty and must not shadow each other."""
        if not self.index_prefix or not self.restore_prefix:
            raise ValueError("Probe index prefixes must not be empty")
        if self.index_prefix.startswith(self.restore_prefix) or self.restore_prefix.startswith(
            self.index_prefix
        ):
            raise ValueError("index_prefix and restore_prefix must not overlap")
        return self


class TimeoutsConfig(BaseModel):
    """Deadlines and poll intervals for bounded waits.

    Attributes:
        backup_timeout_seconds: Deadline for snapshot and restore completion
        snapshot_poll_interval_seconds: Pause between snapshot/restore status checks
        snapshot_settle_seconds: Pause before the first snapshot status check
        index_online_timeout_seconds: Deadline for the scratch index shards to start
        index_poll_interval_seconds: Pause between shard/document checks
        document_visibility_timeout_seconds: Deadline for one restored document to appear
    """

    backup_timeout_seconds: float = Field(default=3600.0, gt=0)
    snapshot_poll_interval_seconds: float = Field(default=15.0, ge=0)
    snapshot_settle_seconds: float = Field(default=5.0, ge=0)
    index_online_timeout_seconds: float = Field(default=600.0, gt=0)
    index_poll_interval_seconds: float = Field(default=1.0, ge=0)
    document_visibility_timeout_seconds: float = Field(default=120.0, gt=0)


class RetentionConfig(BaseModel):
    """Retention window for monthly repositories."""

    months: int = Field(default=3, ge=1, description="Months of repositories to keep")


class NotificationConfig(BaseModel):
    """On-call paging and error tracking.

    Attributes:
        pagerduty_api_key: PagerDuty Events API routing key
        pagerduty_events_url: Events API endpoint
        sentry_dsn: Sentry DSN (error tracking disabled when unset)
    """

    pagerduty_api_key: Optional[SecretStr] = Field(default=None)
    pagerduty_events_url: str = Field(default="https://events.pagerduty.com/v2/enqueue")
    sentry_dsn: Optional[SecretStr] = Field(default=None)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Minimum level for the snapverify logger
        file: Log file path (stream only when unset)
        format: Record format
    """

    level: LogLevel = Field(default=LogLevel.INFO)
    file: Optional[str] = Field(default=None, examples=["/var/log/s3_backup.log"])
    format: str = Field(default="%(asctime)s [snapverify] %(levelname)s: %(message)s")


class SnapverifyConfig(BaseModel):
    """Root configuration for a verification run.

    Attributes:
        node_name: This node's name as reported by _cat/master
        cluster_name: Cluster name, used in repository base paths
        environment: Deployment environment label
        cluster: Cluster connection settings
        repository: Snapshot repository settings
        probe: Probe dataset settings
        timeouts: Bounded-wait settings
        retention: Retention window
        notifications: Paging and error tracking
        logging: Logging settings
    """

    node_name: str = Field(..., min_length=1)
    cluster_name: str = Field(..., min_length=1)
    environment: str = Field(default="development")
    cluster: ClusterConfig = Field(default_factory=ClusterConfig)
    repository: RepositoryConfig
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    retention: RetentionConfig = Field(default_factory=RetentionConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def is_production(self) -> bool:
        """Whether failures should page on-call."""
        return self.environment.lower() in PRODUCTION_ENVIRONMENTS

    def repository_base_path(self, repository: str) -> str:
        """Object storage path for a monthly repository."""
        prefix = self.repository.base_path_prefix.strip("/")
        return f"/{prefix}/{self.cluster_name}/{self.environment}/{repository}"

    def to_display_dict(self) -> dict[str, Any]:
        """Dictionary for printing, with secrets masked."""
        return self.model_dump(mode="json")
