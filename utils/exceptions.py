"""
Custom Exceptions
Error taxonomy for the job execution client
"""
from typing import Optional


class JobClientError(Exception):
    """Base exception for every failure raised by the job client"""

    kind = "JOB_CLIENT_ERROR"

    def __init__(self, message: str, details: dict = None, status_code: Optional[int] = None):
        self.message = message
        self.details = details or {}
        self.status_code = status_code
        super().__init__(self.message)

    def __str__(self):
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(JobClientError):
    """Invalid or missing configuration"""
    kind = "CONFIGURATION_ERROR"


class ServerConnectionError(JobClientError):
    """Server refused the connection or is unreachable"""
    kind = "CONNECTION_ERROR"


class RequestTimeoutError(JobClientError):
    """Request exceeded its timeout"""
    kind = "TIMEOUT_ERROR"


class ValidationError(JobClientError):
    """Malformed job graph, override or payload"""
    kind = "VALIDATION_ERROR"


class UnknownNodeError(ValidationError):
    """Override addresses a node id that is not in the job graph"""

    kind = "UNKNOWN_NODE"

    def __init__(self, node_id: str, **kwargs):
        super().__init__(
            f'Node ID "{node_id}" not found in workflow. Please check your workflow JSON.',
            kwargs,
        )
        self.node_id = node_id


class InvalidOverrideTypeError(ValidationError):
    """Bulk override carries a value that cannot be sent to the server"""

    kind = "INVALID_OVERRIDE_TYPE"

    def __init__(self, message: str, key: str = None, **kwargs):
        super().__init__(message, kwargs)
        self.key = key


class ExecutionError(JobClientError):
    """Server-side 5xx or job-level failure"""
    kind = "EXECUTION_ERROR"


class UploadError(JobClientError):
    """Asset could not be uploaded"""
    kind = "UPLOAD_ERROR"


class DownloadError(JobClientError):
    """Asset or artifact could not be downloaded"""
    kind = "DOWNLOAD_ERROR"


class ClientDestroyedError(JobClientError):
    """Client was torn down; every further call fails fast"""

    kind = "CLIENT_DESTROYED"

    def __init__(self, message: str = "Client has been destroyed", **kwargs):
        super().__init__(message, kwargs)


class RequestInProgressError(JobClientError):
    """A second request was started while one is still in flight"""

    kind = "REQUEST_IN_PROGRESS"

    def __init__(
        self,
        message: str = "Another request is already in progress on this client. "
        "Use a separate client instance for parallel jobs.",
        **kwargs,
    ):
        super().__init__(message, kwargs)


class RequestCancelledError(JobClientError):
    """Request was cancelled by the caller"""

    kind = "REQUEST_CANCELLED"

    def __init__(self, message: str = "Request was cancelled", **kwargs):
        super().__init__(message, kwargs)


_STATUS_HINTS = {
    400: "The server returned 400 Bad Request. The request may be malformed.",
    403: "The server returned 403 Forbidden. The URL may require authentication or block automated access.",
    404: "The server returned 404 Not Found. The URL may be incorrect or the resource may have been removed.",
    500: "The server returned 500 Internal Server Error. Please try again later.",
    503: "The server returned 503 Service Unavailable. The server may be overloaded.",
}


def status_hint(status_code: Optional[int]) -> str:
    return _STATUS_HINTS.get(status_code, "") if status_code else ""


def error_from_status(
    status_code: int,
    default_message: str = "HTTP request failed",
    *,
    url: str = "",
    body: str = "",
) -> JobClientError:
    """
    Map an HTTP status code to the matching error class

    Args:
        status_code: HTTP status returned by the server
        default_message: Context prefix for the message
        url: Request URL, recorded in details
        body: Truncated response body, recorded in details

    Returns:
        Error instance carrying the status code
    """
    details = {"url": url} if url else {}
    if body:
        details["body"] = body[:200]

    hint = status_hint(status_code)
    message = f"{default_message}: HTTP {status_code}"
    if hint:
        message = f"{message}. {hint}"

    if status_code == 400:
        return ValidationError(message, details, status_code=status_code)
    if status_code in (403, 404):
        return ServerConnectionError(message, details, status_code=status_code)
    if status_code >= 500:
        return ExecutionError(message, details, status_code=status_code)

    error = JobClientError(message, details, status_code=status_code)
    error.kind = "HTTP_ERROR"
    return error
