"""
Configuration management using Pydantic models loaded from YAML.
"""

import logging
from datetime import time
from pathlib import Path
from typing import Dict, List

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import AvailabilityWindow, Service


class SchedulingDefaults(BaseModel):
    """Tunables of the scheduling core."""
    slot_granularity_minutes: int = 30
    booking_horizon_days: int = 90
    reschedule_limit: int = 2
    max_block_days: int = 366
    lock_timeout_seconds: float = 10.0

    @field_validator(
        "slot_granularity_minutes", "booking_horizon_days", "max_block_days", "lock_timeout_seconds"
    )
    @classmethod
    def validate_positive(cls, value):
        """Ensure the value is greater than zero."""
        if value <= 0:
            raise ValueError(f"Value must be greater than zero, got {value}")
        return value

    @field_validator("reschedule_limit")
    @classmethod
    def validate_reschedule_limit(cls, value: int) -> int:
        if value < 0:
            raise ValueError(f"reschedule_limit must not be negative, got {value}")
        return value


class ServiceConfig(BaseModel):
    """A bookable service declared in the catalog."""
    id: str
    name: str
    duration_minutes: int
    price: int = 0
    active: bool = True

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure service duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    @field_validator("price")
    @classmethod
    def validate_price(cls, value: int) -> int:
        if value < 0:
            raise ValueError("price must not be negative")
        return value

    def to_service(self) -> Service:
        return Service(
            id=self.id,
            name=self.name,
            duration_minutes=self.duration_minutes,
            price=self.price,
            active=self.active,
        )


class WindowConfig(BaseModel):
    """One recurring weekly availability window (0=Sunday, 6=Saturday)."""
    day_of_week: int
    start_time: time
    end_time: time
    is_available: bool = True

    @field_validator("day_of_week")
    @classmethod
    def validate_day(cls, value: int) -> int:
        """Validate day is between 0 and 6."""
        if value not in range(7):
            raise ValueError(f"day_of_week must be between 0 and 6, got {value}")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "WindowConfig":
        """Ensure the window opens before it closes."""
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time must be later than start_time "
                f"({self.start_time.isoformat()} - {self.end_time.isoformat()})"
            )
        return self

    def to_window(self) -> AvailabilityWindow:
        return AvailabilityWindow(
            day_of_week=self.day_of_week,
            start_time=self.start_time,
            end_time=self.end_time,
            is_available=self.is_available,
        )


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "Europe/Budapest"
    database_url: str = "sqlite:///appointments.db"
    log_level: str = "INFO"
    scheduling: SchedulingDefaults = Field(default_factory=SchedulingDefaults)
    services: List[ServiceConfig] = Field(default_factory=list)
    availability: List[WindowConfig] = Field(default_factory=list)

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        try:
            pendulum.timezone(value)
        except Exception as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("services")
    @classmethod
    def validate_services(cls, value: List[ServiceConfig]) -> List[ServiceConfig]:
        """Ensure service identifiers are unique."""
        seen: set[str] = set()
        for service in value:
            if service.id in seen:
                raise ValueError(f"Duplicate service id detected: {service.id}")
            seen.add(service.id)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    def service_catalog(self) -> Dict[str, Service]:
        """Services keyed by identifier."""
        return {service.id: service.to_service() for service in self.services}

    def availability_windows(self) -> List[AvailabilityWindow]:
        return [window.to_window() for window in self.availability]


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
