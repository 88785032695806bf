"""
Cancellable sleep between harvest cycles.
"""

from __future__ import annotations

import asyncio
from typing import Optional


class Scheduler:
    """Timer plus cancellation token for the harvest loop."""

    def __init__(self) -> None:
        # Created lazily so the event binds to the loop that runs the harvester
        self._stop_event: Optional[asyncio.Event] = None
        self._cancelled = False

    def _event(self) -> asyncio.Event:
        if self._stop_event is None:
            self._stop_event = asyncio.Event()
            if self._cancelled:
                self._stop_event.set()
        return self._stop_event

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def sleep(self, seconds: float) -> bool:
        """
        Wait for ``seconds`` or until cancelled.

        Returns:
            True if the full interval elapsed, False if cancelled
        """
        if self._cancelled:
            return False
        try:
            await asyncio.wait_for(self._event().wait(), timeout=max(0.0, seconds))
        except asyncio.TimeoutError:
            return True
        return False

    def cancel(self) -> None:
        self._cancelled = True
        if self._stop_event is not None:
            self._stop_event.set()
