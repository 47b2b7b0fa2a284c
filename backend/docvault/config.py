from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str

    redis_url: str = "redis://redis:6379"
    log_level: str = "INFO"
    run_migrations_on_startup: bool = True

    # Storage strategy (full snapshot vs delta against last full)
    version_full_interval: int = 10
    version_delta_threshold: float = 0.3  # change ratio above which a full snapshot is stored
    version_min_delta_saving: int = 20  # percent; below this a delta is not worth it
    version_delta_storage: bool = False
    version_max_content_bytes: int = 5 * 1024 * 1024

    # Retention
    retention_scheduler_enabled: bool = True
    version_keep_all_days: int = 30
    version_daily_window_days: int = 90
    version_retention_days: int = 365
    version_daily_snapshot_hour: int = 0  # UTC
    version_thinning_hour: int = 3
    version_purge_hour: int = 4
    version_job_lock_ttl: int = 3600

    cors_origins: str = "http://localhost,http://localhost:3000"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
