from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration settings.
    """
    model_config = SettingsConfigDict(env_prefix="FAX_EXECUTOR_", env_file=".env", extra="ignore")

    # Service Info
    service_name: str = "fax-plan-executor"
    environment: str = "local"
    log_level: str = "INFO"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Execution
    max_concurrency: int = 5
    step_timeout_seconds: float = 30.0
    run_timeout_seconds: float = 300.0
    state_retention_seconds: float = 300.0

    # Retry
    retry_max_retries: int = 3
    retry_base_delay_ms: float = 1000.0
    retry_backoff_multiplier: float = 2.0
    retry_max_delay_ms: float = 10000.0

    # Audit
    audit_sink: str = "console"  # console | json | none
    audit_verbose: bool = True
    audit_http_enabled: bool = False
    audit_http_base_url: Optional[str] = None
    audit_http_timeout_ms: int = 500

    # Tools: "package.module" or "package.module:function" register_tools hooks
    tool_modules: List[str] = []

settings = Settings()
