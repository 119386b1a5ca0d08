"""Transport adapters package."""

from .base import ResponseBody, TransportAdapter, TransportRequest
from .httpx_transport import HttpxTransport

__all__ = [
    "HttpxTransport",
    "ResponseBody",
    "TransportAdapter",
    "TransportRequest",
]
