"""
Client for the procurement portal.

Owns one long-lived requests.Session (and so one cookie jar) shared by the
token page and every endpoint POST. Requests are retried on transport errors
and 5xx responses with a linearly growing delay.
"""

import gzip
import json
import re
import time
from typing import Any, Callable

import requests

from spse_sync.config import Settings
from spse_sync.core.models import RawItem
from spse_sync.observability import metrics
from spse_sync.observability.logger import get_logger

from .errors import MalformedResponseError, SourceUnavailableError, TokenNotFoundError

logger = get_logger(__name__)

GZIP_MAGIC = b"\x1f\x8b"

# Tried in order, first match wins
TOKEN_PATTERNS = [
    re.compile(r"""name=["']authenticityToken["'][^>]*value=["']([^"']+)["']"""),
    re.compile(r"""d\.authenticityToken\s*=\s*['"]([^'"]+)['"]"""),
    re.compile(r"""<input[^>]*name=["']authenticityToken["'][^>]*value=["']([^"']+)["']"""),
    re.compile(r"""<input[^>]*value=["']([^"']+)["'][^>]*name=["']authenticityToken["']"""),
    re.compile(r"""authenticityToken["']?\s*[:=]\s*["']([^"']+)["']"""),
    re.compile(r"""csrf[_-]?token["']?\s*[:=]\s*["']([^"']+)["']"""),
]


def find_token(page: str) -> str | None:
    """Return the first authenticity token embedded in a page, if any."""
    for pattern in TOKEN_PATTERNS:
        match = pattern.search(page)
        if match:
            return match.group(1)
    return None


def decompress(body: bytes) -> bytes:
    """Gunzip a body the transport left compressed; pass others through."""
    if body[:2] == GZIP_MAGIC:
        try:
            return gzip.decompress(body)
        except (OSError, EOFError) as e:
            raise MalformedResponseError(f"Corrupt gzip body: {e}") from e
    return body


def unwrap_envelope(payload: Any) -> list[Any]:
    """
    Locate the item list under the "data" key of a response.

    Accepted shapes:
      {"data": [...]}                    the list itself
      {"data": {"rows": [...], ...}}     the first list-valued member
      {"data": {...}}                    a single item
      no "data" key, or null             no items

    Raises:
        MalformedResponseError: If the body is not an object or "data" is a scalar
    """
    if not isinstance(payload, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )

    data = payload.get("data")
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for value in data.values():
            if isinstance(value, list):
                return value
        return [data]

    raise MalformedResponseError(
        f"'data' holds {type(data).__name__}, expected a list or object"
    )


class SourceClient:
    """
    Authenticated access to the portal's bulk endpoints and detail pages.

    Args:
        settings: Portal and HTTP settings
        session: Session to use (a new requests.Session by default)
        sleep: Function used for backoff delays
    """

    def __init__(
        self,
        settings: Settings,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": settings.user_agent,
            "Accept-Language": "id-ID,id;q=0.9,en;q=0.5",
        })
        self._sleep = sleep
        self.token: str | None = None

    def close(self) -> None:
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def acquire_token(self) -> str:
        """
        Fetch the token page and extract the authenticity token.

        Raises:
            TokenNotFoundError: If no pattern matches the page
            SourceUnavailableError: If the page cannot be fetched
        """
        url = self.settings.url_for(self.settings.auth_endpoint)
        response = self._request(
            "GET",
            url,
            target="token",
            base_delay=self.settings.retry_delay,
            headers={"Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"},
        )
        page = self._text(response)

        token = find_token(page)
        if token is None:
            raise TokenNotFoundError(f"Authenticity token not found on {url}")

        self.token = token
        logger.debug("Authenticity token acquired", extra={"url": url})
        return token

    def fetch_endpoint(self, endpoint: str, form_params: dict[str, str] | None = None) -> list[RawItem]:
        """
        POST to a bulk endpoint and return its items, tagged by shape.

        Args:
            endpoint: Endpoint path (or absolute URL)
            form_params: Extra form fields, merged over the defaults

        Raises:
            SourceUnavailableError: Retries exhausted or a non-200 response
            MalformedResponseError: Body is not JSON or holds no list
        """
        if self.token is None:
            self.acquire_token()

        form = {
            "authenticityToken": self.token,
            "activeSatker": "",
            "activeInstansi": self.settings.active_instansi,
            "activeYear": self.settings.active_year,
        }
        form.update(form_params or {})

        url = self.settings.url_for(endpoint)
        response = self._request(
            "POST",
            url,
            target="endpoint",
            base_delay=self.settings.retry_delay,
            data=form,
            headers={
                "X-Requested-With": "XMLHttpRequest",
                "Accept": "application/json",
                "Referer": self.settings.referer,
            },
        )
        self._ensure_ok(response, url)

        body = decompress(response.content)
        try:
            payload = json.loads(body)
        except ValueError as e:
            raise MalformedResponseError(f"Response from {url} is not valid JSON: {e}") from e

        items = unwrap_envelope(payload)
        logger.info("Endpoint fetched", extra={"url": url, "items": len(items)})
        return [RawItem.classify(item) for item in items]

    def fetch_page(self, url: str) -> str:
        """
        GET an HTML page with the detail-page retry policy.

        Raises:
            SourceUnavailableError: Retries exhausted or a non-200 response
        """
        response = self._request(
            "GET",
            url,
            target="detail",
            base_delay=self.settings.detail_retry_delay,
            headers={"Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"},
        )
        self._ensure_ok(response, url)
        return self._text(response)

    def _request(self, method: str, url: str, target: str, base_delay: float, **kwargs) -> requests.Response:
        attempts = self.settings.max_retries
        last_error: Exception | None = None
        last_status: int | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = self.session.request(method, url, timeout=self.settings.timeout, **kwargs)
            except requests.RequestException as e:
                last_error = e
                last_status = None
            else:
                if response.status_code < 500:
                    metrics.http_requests_total.labels(target=target, outcome="ok").inc()
                    return response
                last_error = None
                last_status = response.status_code
                response.close()

            if attempt < attempts:
                delay = attempt * base_delay
                metrics.http_requests_total.labels(target=target, outcome="retry").inc()
                logger.warning(
                    "Request failed, retrying",
                    extra={
                        "url": url,
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "delay_seconds": delay,
                        "status_code": last_status,
                        "error": str(last_error) if last_error else None,
                    },
                )
                self._sleep(delay)

        metrics.http_requests_total.labels(target=target, outcome="exhausted").inc()
        reason = f"HTTP {last_status}" if last_status else str(last_error)
        raise SourceUnavailableError(
            f"{method} {url} failed after {attempts} attempts: {reason}",
            url=url,
            attempts=attempts,
            status_code=last_status,
        )

    @staticmethod
    def _ensure_ok(response: requests.Response, url: str) -> None:
        if response.status_code != 200:
            raise SourceUnavailableError(
                f"HTTP {response.status_code} from {url}",
                url=url,
                attempts=1,
                status_code=response.status_code,
            )

    @staticmethod
    def _text(response: requests.Response) -> str:
        body = decompress(response.content)
        return body.decode(response.encoding or "utf-8", errors="replace")
