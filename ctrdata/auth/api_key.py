"""REDCap project token authentication."""

import logging

logger = logging.getLogger(__name__)


class TokenAuth:
    """Project token sent as a field of the form-encoded POST body.

    REDCap reads the token from the request body only; headers and query
    strings are ignored by the API.
    """

    def __init__(self, api_token: str, key_name: str = "token"):
        """Initialize token auth.

        Args:
            api_token: The project API token
            key_name: Name of the form field carrying the token
        """
        self.api_token = api_token
        self.key_name = key_name

        logger.debug("TokenAuth initialized", extra={"key_name": key_name})

    def get_auth_form(self) -> dict:
        """Get form fields dict for requests."""
        return {self.key_name: self.api_token}
