from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Used by timers and sweeps (no request context)

    # OpenStack
    openstack_default_region: str = "RegionOne"
    openstack_timeout_seconds: float = 30.0
    openstack_compute_api_version: str = "compute 2.8"  # remote-consoles needs >= 2.6
    openstack_project_id_ttl_seconds: int = 300

    # Instance sync
    sync_concurrency: int = 4
    sync_interval_seconds: int = 300  # 0 disables the periodic sweep

    # Console sessions
    session_ttl_seconds: int = Field(default=3600, gt=0)
    session_token_secret: str = "change-me-session-secret-0123456789abcdef"
    session_token_algorithm: str = "HS256"
    session_cleanup_interval_seconds: int = 3600  # 0 disables the periodic cleanup

    # Lockout
    lockout_schedule_partial_windows: bool = False

    # App
    app_name: str = "wiretap"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:5010,http://127.0.0.1:5010"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
