"""Tests for topoindex.config module."""

from topoindex.config import Settings, get_settings


class TestSettings:
    """Tests for Settings defaults and environment overrides."""

    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.neighbor_directions == 8
        assert settings.vertical_resolution == 1.0
        assert settings.validate_order is True
        assert settings.export_enabled is False
        assert settings.export_path == "logtanbeta.asc"
        assert settings.export_field == "log_inv_tanbeta"

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("VERTICAL_RESOLUTION", "0.1")
        monkeypatch.setenv("EXPORT_ENABLED", "true")
        settings = Settings(_env_file=None)
        assert settings.vertical_resolution == 0.1
        assert settings.export_enabled is True

    def test_get_settings_cached(self):
        assert get_settings() is get_settings()
