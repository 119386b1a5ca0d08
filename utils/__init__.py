"""
Utils Module
Logging, error taxonomy and file helpers
"""
from .logger import setup_logger, get_logger, safe_serialize
from .exceptions import (
    JobClientError,
    ConfigurationError,
    ServerConnectionError,
    RequestTimeoutError,
    ValidationError,
    UnknownNodeError,
    InvalidOverrideTypeError,
    ExecutionError,
    UploadError,
    DownloadError,
    ClientDestroyedError,
    RequestInProgressError,
    RequestCancelledError,
    error_from_status,
)

__all__ = [
    "setup_logger",
    "get_logger",
    "safe_serialize",
    "JobClientError",
    "ConfigurationError",
    "ServerConnectionError",
    "RequestTimeoutError",
    "ValidationError",
    "UnknownNodeError",
    "InvalidOverrideTypeError",
    "ExecutionError",
    "UploadError",
    "DownloadError",
    "ClientDestroyedError",
    "RequestInProgressError",
    "RequestCancelledError",
    "error_from_status",
]
