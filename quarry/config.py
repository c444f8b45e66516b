from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class QuarrySettings(BaseSettings):
    database_url: str = "sqlite://"
    echo_sql: bool = False
    log_level: str = "INFO"

    # What happens when a relation that was not eager-loaded is touched
    lazy_load: Literal["allow", "warn", "raise"] = "warn"

    # Relative costs used by explain()
    scan_cost: float = 100.0
    lookup_cost: float = 10.0
    range_cost: float = 30.0

    # Read QUARRY_* variables, optionally from a .env file
    model_config = SettingsConfigDict(env_prefix="QUARRY_", env_file=".env", extra="ignore")


# Shared instance for callers that don't pass their own
settings = QuarrySettings()
