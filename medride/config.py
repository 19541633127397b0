"""Centralised client settings loaded from environment / .env file."""

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="MEDRIDE_", extra="ignore"
    )

    # Backend
    backend_url: str = "http://localhost:3000"
    request_timeout_seconds: float = 15.0

    # Directions / routing
    google_maps_api_key: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "MEDRIDE_GOOGLE_MAPS_API_KEY",
            "GOOGLE_MAPS_API_KEY",
            "EXPO_PUBLIC_GOOGLE_MAPS_API_KEY",
        ),
    )
    directions_url: str = "https://maps.googleapis.com/maps/api/directions/json"
    route_url: str = "https://router.project-osrm.org/route/v1/driving"
    urban_speed_km_per_min: float = 0.666  # 40 km/h
    accepted_ride_cache_ttl_seconds: float = 600.0
    ride_list_cache_ttl_seconds: float = 300.0

    # Search duty cycle
    search_active_seconds: float = 30.0
    search_pause_seconds: float = 270.0  # 4.5 min
    search_max_seconds: float = 900.0  # 15 min
    search_poll_interval_seconds: float = 10.0

    # Driver lifecycle
    auth_check_delay_seconds: float = 1.0
    completion_refresh_delay_seconds: float = 0.5

    # Patient tracking
    tracking_poll_interval_seconds: float = 10.0

    # Session storage: "memory" or "redis"
    session_store: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "medride:"

    log_level: str = "INFO"


settings = Settings()
