"""
Configuration management.
"""

import os
from dataclasses import dataclass, field


@dataclass
class Config:
    """
    Application configuration.

    Loads from environment variables with sensible defaults.
    """

    # Server
    host: str = field(default_factory=lambda: os.getenv("HOST", "127.0.0.1"))
    port: int = field(default_factory=lambda: int(os.getenv("PORT", "8000")))
    debug: bool = field(default_factory=lambda: os.getenv("DEBUG", "false").lower() == "true")
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())

    # Adjustments
    measurement_system: str = field(
        default_factory=lambda: os.getenv("MEASUREMENT_SYSTEM", "imperial").lower()
    )

    # Presets
    preset_persist_path: str = field(
        default_factory=lambda: os.getenv("PRESET_PERSIST_PATH", "data/adjustment_presets.json")
    )
    preset_debounce_seconds: float = field(
        default_factory=lambda: float(os.getenv("PRESET_DEBOUNCE_SECONDS", "1.0"))
    )
    preset_flush_interval: float = field(
        default_factory=lambda: float(os.getenv("PRESET_FLUSH_INTERVAL", "0.5"))
    )

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment."""
        return cls()

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "host": self.host,
            "port": self.port,
            "debug": self.debug,
            "log_level": self.log_level,
            "measurement_system": self.measurement_system,
            "preset_persist_path": self.preset_persist_path,
            "preset_debounce_seconds": self.preset_debounce_seconds,
            "preset_flush_interval": self.preset_flush_interval,
        }
