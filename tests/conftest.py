"""
Pytest configuration and fixtures for spse-sync tests

This module provides shared fixtures for unit, integration, and E2E tests.
"""
import gzip
import io
import json
import os
from typing import Generator

from unittest.mock import MagicMock
from urllib.parse import urlparse

import pytest
import requests
from testcontainers.postgres import PostgresContainer

from spse_sync.config import Settings
from spse_sync.core.schema import FieldSchemaRegistry
from spse_sync.warehouse.connection import DatabaseConnectionPool
from spse_sync.warehouse.schema_mgmt import SchemaManager


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests that test the full pipeline"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# HTTP HELPERS
# =======================

TOKEN_PAGE = """
<html><body>
<form><input type="hidden" name="authenticityToken" value="tok-123"></form>
</body></html>
"""


def make_response(
    status: int = 200,
    body: bytes | str = b"",
    url: str = "http://portal.test/",
    gzipped: bool = False,
) -> requests.Response:
    """Build a real requests.Response without touching the network."""
    if isinstance(body, str):
        body = body.encode("utf-8")
    if gzipped:
        body = gzip.compress(body)

    response = requests.Response()
    response.status_code = status
    response._content = body
    response._content_consumed = True
    response.raw = io.BytesIO(body)
    response.url = url
    response.encoding = "utf-8"
    return response


def json_response(payload, status: int = 200, gzipped: bool = False) -> requests.Response:
    return make_response(status=status, body=json.dumps(payload), gzipped=gzipped)


class FakePortal:
    """
    Stand-in for the portal behind a mocked requests.Session

    GET on the token page returns TOKEN_PAGE, POSTs are answered from
    `payloads` (path -> JSON payload or Response) and other GETs from
    `pages` (url -> HTML). Anything else is a 404.
    """

    def __init__(self):
        self.payloads: dict = {}
        self.pages: dict[str, str] = {}
        self.session = MagicMock(spec=requests.Session)
        self.session.headers = {}
        self.session.request.side_effect = self._route

    def _route(self, method, url, **kwargs):
        path = urlparse(url).path
        if method == "GET" and path.endswith("/amel"):
            return make_response(body=TOKEN_PAGE, url=url)
        if method == "POST" and path in self.payloads:
            payload = self.payloads[path]
            if isinstance(payload, requests.Response):
                return payload
            return json_response(payload)
        if method == "GET" and url in self.pages:
            return make_response(body=self.pages[url], url=url)
        return make_response(status=404, url=url)

    def posts(self) -> list[str]:
        return [c.args[1] for c in self.session.request.call_args_list if c.args[0] == "POST"]


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session")
def registry() -> FieldSchemaRegistry:
    """Registry built from the bundled field mappings"""
    return FieldSchemaRegistry.from_yaml()


@pytest.fixture
def settings() -> Settings:
    """Portal settings pointing at a fake host, with endpoints for every table"""
    return Settings(
        base_url="http://portal.test",
        auth_endpoint="/sumedangkab/amel",
        referer="http://portal.test/sumedangkab/amel",
        active_instansi="D118",
        active_year="2025",
        endpoints={
            "perencanaan": "/dt/perencanaan",
            "persiapan": "/dt/persiapan",
            "pemilihan": "/dt/pemilihan",
            "hasilpemilihan": "/dt/hasilpemilihan",
            "kontrak": "/dt/kontrak",
            "serahterima": "/dt/serahterima",
        },
        detail_url="http://sirup.test/detail?idPaket={kode_rup}",
        timeout=5,
        max_retries=3,
        retry_delay=1.0,
        detail_retry_delay=2.0,
        detail_min_interval=1.0,
    )


@pytest.fixture(scope="session")
def test_data_dir() -> str:
    """
    Get path to test data fixtures directory

    Returns:
        Path to tests/fixtures directory
    """
    return os.path.join(os.path.dirname(__file__), "fixtures")


@pytest.fixture(scope="session")
def detail_page_html(test_data_dir) -> str:
    with open(os.path.join(test_data_dir, "sirup_detail.html"), encoding="utf-8") as f:
        return f.read()


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Yields:
        PostgresContainer instance
    """
    with PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_spse",
        password="test_password",
        dbname="test_spse",
    ) as postgres:
        yield postgres


@pytest.fixture(scope="session")
def db_pool(postgres_container, registry) -> Generator[DatabaseConnectionPool, None, None]:
    """
    Open pool against the test container with every managed table created

    Yields:
        DatabaseConnectionPool
    """
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_spse",
        user="test_spse",
        password="test_password",
    )
    pool.open()
    SchemaManager(pool, registry).ensure_all()

    yield pool

    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool, registry) -> DatabaseConnectionPool:
    """
    Provide a clean database by truncating all managed tables before each test

    Returns:
        DatabaseConnectionPool over empty tables
    """
    SchemaManager(db_pool, registry).truncate_all()
    return db_pool


@pytest.fixture
def response_factory():
    """Build fake HTTP responses: response_factory(status, body, gzipped=False)"""
    return make_response


@pytest.fixture
def json_response_factory():
    """Build fake JSON responses: json_response_factory(payload, status=200, gzipped=False)"""
    return json_response


@pytest.fixture
def fake_portal() -> FakePortal:
    return FakePortal()
