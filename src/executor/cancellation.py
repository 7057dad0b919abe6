"""Cancellation tokens for poll loops and backoff waits.

One token per execution id. Waits go through token.sleep(), which returns
as soon as the token is cancelled and raises asyncio.CancelledError, so a
poll or retry loop stops when its execution is cleared from history.

Tokens are plain asyncio objects: the whole service runs on one event loop.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


class CancellationToken:
    """Flag + event pair checked at every suspension point."""

    def __init__(self, key: str = ""):
        self.key = key
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError(f"Cancelled: {self.key}")

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds`, waking early if cancelled.

        Raises:
            asyncio.CancelledError: if the token is (or becomes) cancelled
        """
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(seconds, 0))
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()


class CancellationRegistry:
    """Hands out and tracks tokens keyed by execution id."""

    def __init__(self) -> None:
        self._tokens: dict[str, CancellationToken] = {}

    def token_for(self, execution_id: str) -> CancellationToken:
        token = self._tokens.get(execution_id)
        if token is None:
            token = CancellationToken(execution_id)
            self._tokens[execution_id] = token
        return token

    def get(self, execution_id: str) -> Optional[CancellationToken]:
        return self._tokens.get(execution_id)

    def cancel(self, execution_id: str) -> bool:
        """Cancel the token for an execution. Returns True if one was active."""
        token = self._tokens.pop(execution_id, None)
        if token is None:
            return False
        token.cancel()
        logger.info(f"Cancellation requested for execution {execution_id}")
        return True

    def cancel_all(self) -> int:
        """Cancel every outstanding token (shutdown). Returns how many."""
        tokens = list(self._tokens.values())
        self._tokens.clear()
        for token in tokens:
            token.cancel()
        return len(tokens)

    def release(self, execution_id: str) -> None:
        """Forget a token once its execution reached a terminal state."""
        self._tokens.pop(execution_id, None)

    def __len__(self) -> int:
        return len(self._tokens)


async def cancellable_sleep(
    seconds: float,
    cancel_token: Optional[CancellationToken] = None,
    sleep: Optional[SleepFunc] = None,
) -> None:
    """Wait `seconds`, honouring a cancel token if there is one.

    An injected `sleep` replaces the wait itself; the token is then only
    checked before and after it.

    Raises:
        asyncio.CancelledError: if the token is (or becomes) cancelled
    """
    if cancel_token is None:
        await (sleep or asyncio.sleep)(seconds)
    elif sleep is None:
        await cancel_token.sleep(seconds)
    else:
        cancel_token.raise_if_cancelled()
        await sleep(seconds)
        cancel_token.raise_if_cancelled()
