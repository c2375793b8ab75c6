"""
Unit tests for runtime settings
"""

import pytest
from pydantic import ValidationError

from spse_sync.config import Settings

PORTAL_VARIABLES = [
    "SPSE_BASE_URL",
    "SPSE_AUTH_ENDPOINT",
    "SPSE_REFERER",
    "SPSE_ACTIVE_INSTANSI",
    "SPSE_ACTIVE_YEAR",
    "SPSE_PERENCANAAN_ENDPOINT",
    "SPSE_PERSIAPAN_ENDPOINT",
    "SPSE_PEMILIHAN_ENDPOINT",
    "SPSE_HASIL_PEMILIHAN_ENDPOINT",
    "SPSE_KONTRAK_ENDPOINT",
    "SPSE_SERAH_TERIMA_ENDPOINT",
    "SIRUP_DETAIL_URL",
    "HTTP_TIMEOUT",
    "HTTP_MAX_RETRIES",
]


@pytest.fixture
def clean_env(monkeypatch):
    # setenv first so values loaded from .env files are undone after the test
    for name in PORTAL_VARIABLES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


@pytest.mark.unit
class TestFromEnv:

    def test_defaults_without_environment(self, clean_env, registry):
        settings = Settings.from_env(registry)

        assert settings.base_url == "https://spse.inaproc.id"
        assert settings.endpoints == {}
        assert settings.max_retries == 3
        assert "{kode_rup}" in settings.detail_url

    def test_endpoints_read_from_mapping_variables(self, clean_env, registry):
        clean_env.setenv("SPSE_PERENCANAAN_ENDPOINT", "/sumedangkab/dt/perencanaan")
        clean_env.setenv("SPSE_HASIL_PEMILIHAN_ENDPOINT", "/sumedangkab/dt/hasil")

        settings = Settings.from_env(registry)

        assert settings.endpoints == {
            "perencanaan": "/sumedangkab/dt/perencanaan",
            "hasilpemilihan": "/sumedangkab/dt/hasil",
        }
        assert settings.endpoint_for("kontrak") is None

    def test_scalar_overrides(self, clean_env, registry):
        clean_env.setenv("SPSE_BASE_URL", "http://portal.local")
        clean_env.setenv("SPSE_ACTIVE_YEAR", "2024")
        clean_env.setenv("HTTP_TIMEOUT", "12.5")
        clean_env.setenv("HTTP_MAX_RETRIES", "5")

        settings = Settings.from_env(registry)

        assert settings.base_url == "http://portal.local"
        assert settings.active_year == "2024"
        assert settings.timeout == 12.5
        assert settings.max_retries == 5

    def test_env_file(self, clean_env, registry, tmp_path):
        env_file = tmp_path / "portal.env"
        env_file.write_text("SPSE_KONTRAK_ENDPOINT=/x/dt/kontrak\nSPSE_ACTIVE_INSTANSI=D200\n")

        settings = Settings.from_env(registry, env_file=env_file)

        assert settings.endpoint_for("kontrak") == "/x/dt/kontrak"
        assert settings.active_instansi == "D200"

    def test_process_environment_wins_over_env_file(self, clean_env, registry, tmp_path):
        env_file = tmp_path / "portal.env"
        env_file.write_text("SPSE_ACTIVE_YEAR=2023\n")
        clean_env.setenv("SPSE_ACTIVE_YEAR", "2025")

        assert Settings.from_env(registry, env_file=env_file).active_year == "2025"

    def test_invalid_retry_count(self, clean_env, registry):
        clean_env.setenv("HTTP_MAX_RETRIES", "0")

        with pytest.raises(ValidationError):
            Settings.from_env(registry)


@pytest.mark.unit
class TestUrls:

    @pytest.mark.parametrize("base,path,expected", [
        ("http://portal.test", "/dt/kontrak", "http://portal.test/dt/kontrak"),
        ("http://portal.test/", "dt/kontrak", "http://portal.test/dt/kontrak"),
        ("http://portal.test", "https://other.test/x", "https://other.test/x"),
    ])
    def test_url_for(self, base, path, expected):
        assert Settings(base_url=base).url_for(path) == expected
