"""Authentication for REDCap API access (project token in the form body)."""

from .api_key import TokenAuth

__all__ = ["TokenAuth"]
