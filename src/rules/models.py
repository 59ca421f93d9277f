from pydantic import BaseModel, Field, field_validator


class ProjectRules(BaseModel):
    slug: str
    rules_version: str


class StorageRules(BaseModel):
    db_path: str = "data/telemetry.db"
    state_path: str = "data/state.json"


class PipelineRules(BaseModel):
    batch_size: int = Field(default=500, gt=0)
    max_url_length: int = Field(default=2048, gt=0)
    max_duration_ms: int = Field(default=600_000, gt=0)
    max_size_bytes: int = Field(default=1024 * 1024 * 1024, gt=0)
    timezone: str = "UTC"
    collector_queue_size: int = Field(default=10_000, gt=0)
    third_party_markers: list[str] = Field(
        default_factory=lambda: ["google", "facebook", "twitter", "analytics", "cdn"]
    )

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value


class SyncRules(BaseModel):
    enabled: bool = True
    base_url: str = ""
    api_key: str | None = None
    interval_seconds: int = Field(default=300, gt=0)
    batch_size: int = Field(default=1000, gt=0)
    analytics_batch_size: int = Field(default=100, gt=0)
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    health_timeout_seconds: float = Field(default=5.0, gt=0)
    sync_on_login: bool = True
    sync_after_inserts: int = Field(default=0, ge=0)


class MaintenanceRules(BaseModel):
    interval_hours: float = Field(default=6, gt=0)
    vacuum_threshold_mb: int = Field(default=100, gt=0)
    skipped_retention_days: int = Field(default=7, gt=0)


class LoggingRules(BaseModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def _upper(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level


class Rules(BaseModel):
    project: ProjectRules
    storage: StorageRules = Field(default_factory=StorageRules)
    pipeline: PipelineRules = Field(default_factory=PipelineRules)
    sync: SyncRules = Field(default_factory=SyncRules)
    maintenance: MaintenanceRules = Field(default_factory=MaintenanceRules)
    logging: LoggingRules = Field(default_factory=LoggingRules)
