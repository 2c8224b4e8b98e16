"""Base API client with common functionality."""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


def _adapter_retry_count(response: requests.Response) -> int:
    """Number of attempts the urllib3 Retry adapter made before this response."""
    retries = getattr(response.raw, "retries", None)
    return len(getattr(retries, "history", None) or ())


@dataclass
class RequestMetrics:
    """Metrics for API requests."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_retries: int = 0
    total_duration_ms: float = 0
    request_durations: list[float] = field(default_factory=list)

    def record_request(self, duration_ms: float, success: bool) -> None:
        """Record a request."""
        self.total_requests += 1
        self.total_duration_ms += duration_ms
        self.request_durations.append(duration_ms)
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1

    def record_retry(self) -> None:
        """Record a retry."""
        self.total_retries += 1

    @property
    def avg_duration_ms(self) -> float:
        """Average request duration."""
        if not self.request_durations:
            return 0
        return sum(self.request_durations) / len(self.request_durations)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "total_retries": self.total_retries,
            "total_duration_ms": round(self.total_duration_ms, 2),
            "avg_duration_ms": round(self.avg_duration_ms, 2),
        }


class BaseAPIClient(ABC):
    """Base class for API clients with retry and rate limiting support."""

    def __init__(
        self,
        base_url: str,
        timeout: int = 30,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        rate_limit_requests: int = 600,
        rate_limit_period: int = 60,
    ):
        """Initialize base API client.

        Args:
            base_url: Base URL for the API
            timeout: Request timeout in seconds
            max_retries: Maximum retry attempts for failed requests
            backoff_factor: Exponential backoff factor
            rate_limit_requests: Max requests per period
            rate_limit_period: Rate limit period in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.rate_limit_requests = rate_limit_requests
        self.rate_limit_period = rate_limit_period

        # Request tracking for rate limiting
        self._request_timestamps: list[float] = []

        self.metrics = RequestMetrics()

        # Setup session with retry strategy
        self.session = requests.Session()
        retry_strategy = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["GET", "POST"],
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    @abstractmethod
    def get_auth_form(self) -> dict:
        """Get authentication fields merged into every form body."""
        pass

    def _wait_for_rate_limit(self) -> None:
        """Wait if necessary to respect rate limits."""
        now = time.time()

        # Remove timestamps outside the rate limit window
        self._request_timestamps = [
            ts for ts in self._request_timestamps
            if now - ts < self.rate_limit_period
        ]

        if len(self._request_timestamps) >= self.rate_limit_requests:
            oldest = min(self._request_timestamps)
            wait_time = self.rate_limit_period - (now - oldest)

            if wait_time > 0:
                logger.warning(
                    f"Rate limit reached, waiting {wait_time:.2f}s",
                    extra={"wait_seconds": wait_time}
                )
                time.sleep(wait_time)

        self._request_timestamps.append(time.time())

    def _make_request(
        self,
        method: str,
        endpoint: str = "",
        params: Optional[dict] = None,
        data: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> requests.Response:
        """Make HTTP request with rate limiting, timing, and logging.

        Retries on 429/5xx are handled by the session's urllib3 adapter; the
        attempts it made are read back from the response and counted in
        ``metrics.total_retries``.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: Path joined with base_url (empty for single-endpoint APIs)
            params: Query parameters
            data: Form-encoded body fields (auth fields are added)
            headers: Additional headers

        Returns:
            Response object

        Raises:
            requests.HTTPError: On non-2xx responses
            requests.exceptions.RetryError: When the adapter ran out of retries
        """
        self._wait_for_rate_limit()

        url = f"{self.base_url}/{endpoint.lstrip('/')}" if endpoint else self.base_url

        form = {**(data or {}), **self.get_auth_form()}
        content = (data or {}).get("content", endpoint)

        start_time = time.time()

        logger.debug(
            f"Making {method} request",
            extra={"url": url, "content": content}
        )

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                data=form,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            self.metrics.record_request(duration_ms, success=False)

            # Exhausted status retries leave no response to read the history from
            retry_count = self.max_retries if isinstance(e, requests.exceptions.RetryError) else 0
            for _ in range(retry_count):
                self.metrics.record_retry()

            logger.error(
                "API request failed",
                extra={
                    "method": method,
                    "content": content,
                    "error": str(e),
                    "duration_ms": round(duration_ms, 2),
                    "retry_count": retry_count,
                }
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        retry_count = _adapter_retry_count(response)
        for _ in range(retry_count):
            self.metrics.record_retry()
        self.metrics.record_request(duration_ms, success=response.ok)

        log = logger.info if response.ok else logger.error
        log(
            "API request completed" if response.ok else "API request failed",
            extra={
                "method": method,
                "content": content,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "retry_count": retry_count,
                "response_size_bytes": len(response.content),
            }
        )

        response.raise_for_status()
        return response

    def post(
        self,
        data: dict,
        endpoint: str = "",
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        """Make form POST request and return JSON response."""
        response = self._make_request(
            "POST", endpoint, params=params, data=data, headers=headers
        )
        return response.json()

    @abstractmethod
    def paginate(
        self,
        data: dict,
        record_ids: list,
        block_size: int,
    ) -> Generator[list[dict], None, None]:
        """Split an export over blocks of record ids.

        Yields the records returned for each block.
        """
        pass
