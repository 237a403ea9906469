"""
Tests for environment-driven configuration.
"""

import pytest

from finbot.config import AppSettings, ServerSettings, StorageSettings, get_settings, validate_all_settings


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    """Run every test away from any local .env file."""
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSections:
    """Tests for individual settings sections."""

    def test_server_defaults(self):
        """Test the default listen address and data file."""
        server = ServerSettings()
        assert server.port == 4000
        assert server.data_file == "data.json"
        assert server.cors_origins_list == ["*"]

    def test_server_env_override(self, monkeypatch):
        """Test that prefixed variables override defaults."""
        monkeypatch.setenv("FINBOT_SERVER_PORT", "8080")
        monkeypatch.setenv("FINBOT_SERVER_CORS_ORIGINS", "http://a.test, http://b.test,")
        server = get_settings().server
        assert server.port == 8080
        assert server.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_storage_backend_choice(self, monkeypatch):
        """Test that only known backends are accepted."""
        monkeypatch.setenv("FINBOT_STORAGE_BACKEND", "memory")
        assert StorageSettings().backend == "memory"
        monkeypatch.setenv("FINBOT_STORAGE_BACKEND", "redis")
        with pytest.raises(ValueError):
            StorageSettings()

    def test_app_upload_limits(self, monkeypatch):
        """Test the derived upload properties."""
        monkeypatch.setenv("MAX_UPLOAD_SIZE_MB", "2")
        monkeypatch.setenv("SUPPORTED_IMAGE_FORMATS", "PNG, jpg")
        app = AppSettings()
        assert app.max_upload_size_bytes == 2 * 1024 * 1024
        assert app.supported_formats_list == ["png", "jpg"]


class TestValidateAll:
    """Tests for validate_all_settings."""

    def test_missing_gemini_key(self, monkeypatch):
        """Test that a missing API key marks only the Gemini section invalid."""
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        results = validate_all_settings()
        assert results["gemini"] is False
        assert "gemini_error" in results
        assert results["storage"] is True
        assert results["server"] is True
        assert results["app"] is True

    def test_gemini_key_present(self, monkeypatch):
        """Test a configured Gemini section."""
        monkeypatch.setenv("GEMINI_API_KEY", "test-key")
        assert validate_all_settings()["gemini"] is True
