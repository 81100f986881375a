"""Application configuration and settings management."""

from datetime import time
from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FUMY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Fumy Limp Dispatch API"
    api_prefix: str = "/api"
    log_level: str = "INFO"
    data_root: Path = Field(default=Path("data"), description="Root directory for static data files and exports.")
    hotels_file: Path = Field(
        default=Path("data/hotels.json"),
        description="Hotel directory used when the database is not configured.",
    )
    agents_file: Path = Field(
        default=Path("data/agents.json"),
        description="Delivery agent directory used when the database is not configured.",
    )
    storage_backend: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Where services and routes are stored.",
    )
    minutes_per_stop: int = Field(default=45, ge=1, description="Planned minutes spent at every hotel stop.")
    route_start_time: time = Field(default=time(8, 0), description="Start of the first stop time slot.")
    delivery_percentage_tolerance: int = Field(
        default=1,
        ge=0,
        description="Accepted gap (points) between a reported delivery percentage and the bag ratio.",
    )
    export_routes: bool = Field(default=False, description="Write JSON/CSV exports for every generated plan.")
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("data_root", "hotels_file", "agents_file", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
