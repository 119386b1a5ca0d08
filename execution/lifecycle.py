"""Client state machine: mutual exclusion, cancellation and teardown."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator, Optional

from core.contracts import ClientState
from utils.exceptions import ClientDestroyedError, RequestCancelledError, RequestInProgressError


logger = logging.getLogger(__name__)


class ClientLifecycle:
    """
    Owns the ClientState of one client instance.

    IDLE -> REQUESTING on ``request()`` entry, back to IDLE on exit.
    Any state -> DESTROYED on ``destroy()``; DESTROYED is terminal.
    """

    def __init__(self) -> None:
        self._state = ClientState.IDLE
        self._cancel_event: Optional[asyncio.Event] = None

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def is_destroyed(self) -> bool:
        return self._state == ClientState.DESTROYED

    @property
    def cancel_event(self) -> Optional[asyncio.Event]:
        """Cancellation token of the in-flight request, if any."""
        return self._cancel_event

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event is not None and self._cancel_event.is_set()

    def ensure_alive(self) -> None:
        if self.is_destroyed:
            raise ClientDestroyedError()

    def ensure_not_cancelled(self) -> None:
        self.ensure_alive()
        if self.is_cancelled:
            raise RequestCancelledError()

    @asynccontextmanager
    async def request(self) -> AsyncIterator[asyncio.Event]:
        """Hold the single request slot; yields the request's cancellation token."""
        self.ensure_alive()
        if self._state == ClientState.REQUESTING:
            raise RequestInProgressError()

        self._state = ClientState.REQUESTING
        self._cancel_event = asyncio.Event()
        try:
            yield self._cancel_event
        finally:
            self._cancel_event = None
            if self._state == ClientState.REQUESTING:
                self._state = ClientState.IDLE

    def cancel(self) -> None:
        """Abort the in-flight request, if any."""
        if self._cancel_event is not None and not self._cancel_event.is_set():
            logger.debug("Cancelling in-flight request")
            self._cancel_event.set()

    def destroy(self) -> None:
        if self.is_destroyed:
            return
        self._state = ClientState.DESTROYED
        self.cancel()

    async def pause(self, delay: float) -> None:
        """Sleep ``delay`` seconds, waking early when the request is cancelled."""
        event = self._cancel_event
        if event is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
