"""
HTTP plumbing shared by the catalog connectors.
"""

import logging
import time
from typing import Callable, Optional, Type

try:
    import requests
except ImportError:
    requests = None

from ..core.exceptions import CatalogSyncError
from ..utils.retry import (
    RetryConfig,
    TransientError,
    is_retryable_status,
    parse_retry_after,
    retry_with_backoff,
)


logger = logging.getLogger(__name__)


class HttpClient:
    """
    Thin wrapper over a requests.Session.

    Supports:
    - Retries with exponential backoff on 429, 5xx and dropped connections
    - Retry-After on throttled responses
    - Conversion of final failures into the caller's error type
    """

    def __init__(
        self,
        name: str,
        error_class: Type[CatalogSyncError],
        timeout: int = 30,
        retry_config: Optional[RetryConfig] = None,
        user_agent: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the HTTP client.

        Args:
            name: Client name used in log messages
            error_class: Exception raised when a request finally fails (takes status_code)
            timeout: Request timeout in seconds
            retry_config: Retry/backoff settings
            user_agent: Custom User-Agent header
            sleep: Sleep function used between retries
        """
        if requests is None:
            raise ImportError(
                "requests library is required for catalog connectors. "
                "Install with: pip install requests"
            )

        self.name = name
        self.error_class = error_class
        self.timeout = timeout
        self.retry_config = retry_config or RetryConfig()
        self.sleep = sleep
        self.session = requests.Session()
        self.session.headers["User-Agent"] = user_agent or "CatalogSync/0.1"
        self.session.headers["Accept"] = "application/json"

    def request(
        self,
        method: str,
        url: str,
        raise_for_status: bool = True,
        **kwargs,
    ):
        """
        Send a request, retrying transient failures.

        Args:
            method: HTTP method
            url: Absolute URL
            raise_for_status: Raise ``error_class`` on a final 4xx/5xx
            **kwargs: Passed to ``requests.Session.request``

        Returns:
            requests.Response

        Raises:
            error_class: If retries are exhausted or the response is an error
        """
        method = method.upper()

        def send():
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except (
                requests.exceptions.ConnectionError,
                requests.exceptions.Timeout,
                requests.exceptions.ChunkedEncodingError,
            ) as e:
                raise TransientError(f"{method} {url}: {e}") from e

            if is_retryable_status(response.status_code):
                raise TransientError(
                    f"{method} {url} returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    retry_after=parse_retry_after(response.headers.get("Retry-After")),
                )
            return response

        result = retry_with_backoff(
            send,
            self.retry_config,
            operation_name=f"{self.name} {method} {url}",
            sleep=self.sleep,
        )

        if not result.success:
            raise self.error_class(
                f"{method} {url} failed after {result.attempts} attempts: {result.error}",
                status_code=getattr(result.error, "status_code", None),
            )

        response = result.result
        if raise_for_status and response.status_code >= 400:
            raise self.error_class(
                f"{method} {url} returned HTTP {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        return response

    def close(self) -> None:
        """Close the session."""
        if self.session:
            self.session.close()
