"""Job execution: lifecycle, retries, polling, extraction and downloads."""

from .client import HealthStatus, JobExecutionClient
from .downloader import BatchDownloader
from .extractor import ResultExtractor
from .lifecycle import ClientLifecycle
from .polling import JobStatus, PollingExecutor, PollOutcome, PollState
from .retry import RetryingInvoker, exponential_backoff

__all__ = [
    "BatchDownloader",
    "ClientLifecycle",
    "HealthStatus",
    "JobExecutionClient",
    "JobStatus",
    "PollOutcome",
    "PollState",
    "PollingExecutor",
    "ResultExtractor",
    "RetryingInvoker",
    "exponential_backoff",
]
