"""Utility modules for the package.

Includes:
- Logging configuration
- Structured run logging
- Spreadsheet I/O helpers
"""

from .logging_config import setup_logging
from .file_io import create_path, split_save, temp_loader, temp_uploader
from .run_logger import RunLogger, timed_operation

__all__ = [
    "setup_logging",
    "create_path",
    "split_save",
    "temp_loader",
    "temp_uploader",
    "RunLogger",
    "timed_operation",
]
