"""
Cooperative cancellation.

A CancellationToken is an out-of-band abort flag. Long-running work (directory
traversal, shell output reading, tool dispatch, stream consumption) checks it
between discrete units of work; nothing is interrupted forcibly.
"""

from __future__ import annotations

import asyncio


class CancellationToken:
    """Abort flag shared between a caller and the work it started."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    @classmethod
    def cancelled(cls, reason: str = "cancelled") -> CancellationToken:
        token = cls()
        token.cancel(reason)
        return token


def is_cancelled(token: CancellationToken | None) -> bool:
    return token is not None and token.is_cancelled
