"""API client wrappers for REDCap.

Each client handles:
- Authentication
- Record-id blocking
- Rate limiting
- Retries with exponential backoff
"""

from .base import BaseAPIClient, RequestMetrics
from .redcap_client import RedcapApiError, RedcapClient

__all__ = ["BaseAPIClient", "RequestMetrics", "RedcapClient", "RedcapApiError"]
