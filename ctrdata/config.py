"""REDCap connection settings."""

import logging
import os
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# First day of CTR data collection, used as default lower bound for date filters
DEFAULT_ORIGIN_DATE = "2022-06-09"


class ConfigurationError(ValueError):
    """Raised when required configuration or table columns are missing."""


@dataclass
class RedcapConfig:
    """Settings needed to talk to one REDCap project.

    Replaces the global ``RC_API_URL`` / ``RC_API_TOKEN`` environment state:
    build one explicitly or read it once with :meth:`from_env`, then pass it
    to :class:`ctrdata.clients.RedcapClient`.
    """

    api_url: str
    api_token: str
    timeout: int = 30
    max_retries: int = 3
    backoff_factor: float = 0.5
    rate_limit_requests: int = 600
    rate_limit_period: int = 60
    block_size: int = 5000
    origin_date: str = DEFAULT_ORIGIN_DATE

    def __post_init__(self):
        if not self.api_url:
            raise ConfigurationError("REDCap API URL is required")
        if not self.api_token:
            raise ConfigurationError("REDCap API token is required")
        if self.block_size < 1:
            raise ConfigurationError("block_size must be a positive integer")

    @classmethod
    def from_env(
        cls,
        api_url: Optional[str] = None,
        api_token: Optional[str] = None,
        **kwargs,
    ) -> "RedcapConfig":
        """Build configuration from arguments or environment.

        Args:
            api_url: REDCap API URL (or from env: RC_API_URL)
            api_token: REDCap project token (or from env: RC_API_TOKEN)
            **kwargs: Any other RedcapConfig field

        Returns:
            RedcapConfig instance

        Raises:
            ConfigurationError: If URL or token cannot be resolved
        """
        api_url = api_url or os.getenv("RC_API_URL")
        if not api_url:
            raise ConfigurationError("RC_API_URL is required")

        api_token = api_token or os.getenv("RC_API_TOKEN")
        if not api_token:
            raise ConfigurationError("RC_API_TOKEN is required")

        logger.debug("REDCap configuration loaded", extra={"api_url": api_url})
        return cls(api_url=api_url, api_token=api_token, **kwargs)

    def __repr__(self) -> str:
        return (
            f"RedcapConfig(api_url={self.api_url!r}, api_token='***', "
            f"block_size={self.block_size})"
        )
