"""
Configuration schema for the partition engine.

This module defines the engine's tunables: reconciliation fan-out width,
the opacity used when a partition is dimmed, the sheet column names records
are loaded from, and logging.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
import yaml


@dataclass(frozen=True)
class EngineConfig:
    """
    Main configuration for PartitionEngine and ReconciliationCoordinator.

    Loaded from YAML and validated at construction.
    Immutable after construction (frozen dataclass).
    """

    # Reconciliation
    fetch_workers: int = 8
    ready_timeout: Optional[float] = None  # None = wait for the canvas indefinitely

    # Presentation
    dimmed_opacity: float = 0.2

    # Sheet columns
    id_field: str = "RecId"
    lat_field: str = "Lat"
    long_field: str = "Long"

    # Logging
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate engine configuration."""
        if not 1 <= self.fetch_workers <= 64:
            raise ValueError(
                f"fetch_workers must be in [1, 64], got {self.fetch_workers}"
            )

        if self.ready_timeout is not None and self.ready_timeout <= 0:
            raise ValueError(
                f"ready_timeout must be positive or null, got {self.ready_timeout}"
            )

        if not 0.0 <= self.dimmed_opacity <= 1.0:
            raise ValueError(
                f"dimmed_opacity must be in [0.0, 1.0], got {self.dimmed_opacity}"
            )

        for name in ("id_field", "lat_field", "long_field"):
            if not getattr(self, name):
                raise ValueError(f"{name} cannot be empty")

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if self.log_level.upper() not in valid_levels:
            raise ValueError(
                f"Invalid log_level: {self.log_level}. "
                f"Must be one of {valid_levels}"
            )

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper())

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "EngineConfig":
        data = data or {}
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "EngineConfig":
        """
        Load configuration from YAML file.

        Example YAML:
            fetch_workers: 8
            ready_timeout: 30
            dimmed_opacity: 0.2
            id_field: "RecId"
            lat_field: "Lat"
            long_field: "Long"
            log_level: "INFO"
        """
        with open(yaml_path) as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data)
