"""Transport adapter boundary."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Protocol, Tuple, Union


ResponseBody = Union[Dict[str, Any], bytes]


@dataclass
class TransportRequest:
    """One HTTP request."""

    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    json_body: Optional[Any] = None
    files: Optional[Dict[str, Tuple[str, bytes]]] = None
    data: Optional[Dict[str, str]] = None
    timeout_s: Optional[float] = None
    expect: Literal["json", "bytes"] = "json"
    cancel_event: Optional[asyncio.Event] = None


class TransportAdapter(Protocol):
    """Performs a single request; raises normalized JobClientError subclasses."""

    async def request(self, request: TransportRequest) -> ResponseBody:
        ...

    async def close(self) -> None:
        ...
