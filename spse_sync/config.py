"""
Runtime settings for the portal client and enrichment pass.

Values come from the process environment, optionally seeded from a .env
file. Database settings are read by DatabaseConnectionPool itself.
"""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class Settings(BaseModel):
    """
    Source portal and HTTP settings.

    Attributes:
        base_url: Portal root (SPSE_BASE_URL)
        auth_endpoint: Path of the token-bearing page (SPSE_AUTH_ENDPOINT)
        referer: Referer header for endpoint POSTs (SPSE_REFERER)
        active_instansi: Organization code sent with every POST (SPSE_ACTIVE_INSTANSI)
        active_year: Budget year sent with every POST (SPSE_ACTIVE_YEAR)
        endpoints: Table identifier -> endpoint path
        detail_url: Detail page template with a {kode_rup} placeholder (SIRUP_DETAIL_URL)
        timeout: Per-request timeout in seconds (HTTP_TIMEOUT)
        max_retries: Attempts per request (HTTP_MAX_RETRIES)
        retry_delay: Base backoff delay for bulk endpoints
        detail_retry_delay: Base backoff delay for detail pages
        detail_min_interval: Minimum seconds between detail requests
    """

    base_url: str = "https://spse.inaproc.id"
    auth_endpoint: str = "/sumedangkab/amel"
    referer: str = "https://spse.inaproc.id/sumedangkab/amel"
    active_instansi: str = "D118"
    active_year: str = "2025"
    endpoints: dict[str, str] = Field(default_factory=dict)
    detail_url: str = "https://sirup.inaproc.id/sirup/rup/detailPaketPenyedia2020?idPaket={kode_rup}"
    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = Field(30.0, gt=0)
    max_retries: int = Field(3, ge=1)
    retry_delay: float = Field(1.0, ge=0)
    detail_retry_delay: float = Field(2.0, ge=0)
    detail_min_interval: float = Field(1.0, ge=0)

    def endpoint_for(self, table_name: str) -> str | None:
        return self.endpoints.get(table_name)

    def url_for(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return self.base_url.rstrip("/") + "/" + path.lstrip("/")

    @classmethod
    def from_env(cls, registry=None, env_file: str | Path | None = None) -> "Settings":
        """
        Build settings from the environment.

        Args:
            registry: FieldSchemaRegistry whose mappings name the endpoint
                      environment variables (defaults to the bundled one)
            env_file: Optional .env file loaded before reading (existing
                      variables win)
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)
        else:
            load_dotenv(override=False)

        if registry is None:
            from spse_sync.core.schema import get_registry
            registry = get_registry()

        endpoints = {}
        for mapping in registry:
            if mapping.endpoint_env and os.getenv(mapping.endpoint_env):
                endpoints[mapping.table_name] = os.environ[mapping.endpoint_env]

        values = {
            "base_url": os.getenv("SPSE_BASE_URL"),
            "auth_endpoint": os.getenv("SPSE_AUTH_ENDPOINT"),
            "referer": os.getenv("SPSE_REFERER"),
            "active_instansi": os.getenv("SPSE_ACTIVE_INSTANSI"),
            "active_year": os.getenv("SPSE_ACTIVE_YEAR"),
            "detail_url": os.getenv("SIRUP_DETAIL_URL"),
            "timeout": os.getenv("HTTP_TIMEOUT"),
            "max_retries": os.getenv("HTTP_MAX_RETRIES"),
        }
        return cls(endpoints=endpoints, **{k: v for k, v in values.items() if v})
