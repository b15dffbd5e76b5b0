"""
Tests for environment configuration.
"""

from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from utils.config import Config


class TestConfig:
    """Tests for Config loading."""

    def test_defaults(self, monkeypatch):
        for name in ("MEASUREMENT_SYSTEM", "PRESET_PERSIST_PATH", "PRESET_DEBOUNCE_SECONDS", "LOG_LEVEL"):
            monkeypatch.delenv(name, raising=False)

        config = Config.load()

        assert config.measurement_system == "imperial"
        assert config.preset_persist_path == "data/adjustment_presets.json"
        assert config.preset_debounce_seconds == 1.0
        assert config.log_level == "INFO"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MEASUREMENT_SYSTEM", "Metric")
        monkeypatch.setenv("PRESET_DEBOUNCE_SECONDS", "2.5")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        config = Config.load()

        assert config.measurement_system == "metric"
        assert config.to_dict()["preset_debounce_seconds"] == 2.5
        assert config.log_level == "DEBUG"
