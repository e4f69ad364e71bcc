"""Match fire-and-forget requests to responses that arrive out of band.

The editor side answers over a separate inbound channel, so a request
cannot simply be awaited as a call. Each outbound request gets an opaque id
and a future; the inbound handler resolves the future by id. Unanswered
requests are rejected and forgotten after their timeout, and answers that
arrive later are ignored.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Any

from codescape.exceptions import RequestTimeoutError

logger = logging.getLogger("codescape.correlation")


@dataclass
class PendingRequest:
    """One outstanding request. Await it to get the response value."""

    request_id: str
    created_at: float
    timeout_ms: float
    future: asyncio.Future
    _registry: PendingRequests = field(repr=False)
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def __await__(self):
        return self.future.__await__()

    def cancel(self) -> None:
        """Stop waiting. The provider is not told; a late answer is ignored."""
        self._registry.cancel(self.request_id)


class PendingRequests:
    """Registry of in-flight requests owned by one visualization session."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    @staticmethod
    def new_id(prefix: str) -> str:
        return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"

    def create(self, prefix: str, timeout_ms: float) -> PendingRequest:
        """Register a new pending request that times out after ``timeout_ms``.

        Must be called from inside the running event loop.
        """
        loop = asyncio.get_running_loop()
        request_id = self.new_id(prefix)
        request = PendingRequest(
            request_id=request_id,
            created_at=time.time(),
            timeout_ms=timeout_ms,
            future=loop.create_future(),
            _registry=self,
        )
        request._timer = loop.call_later(timeout_ms / 1000, self._expire, request_id)
        self._pending[request_id] = request
        logger.debug(f"Pending {request_id} (timeout {timeout_ms:g}ms)")
        return request

    def resolve(self, request_id: str, value: Any) -> bool:
        """Deliver a response. Unknown or expired ids are ignored.

        Returns:
            True if a waiting request was resolved.
        """
        request = self._pending.pop(request_id, None)
        if request is None:
            logger.debug(f"No pending request {request_id}, dropping response")
            return False
        if request._timer is not None:
            request._timer.cancel()
        if request.future.done():
            return False
        request.future.set_result(value)
        return True

    def cancel(self, request_id: str) -> bool:
        request = self._pending.pop(request_id, None)
        if request is None:
            return False
        if request._timer is not None:
            request._timer.cancel()
        request.future.cancel()
        return True

    def close(self) -> None:
        """Cancel everything still waiting (session teardown)."""
        for request_id in list(self._pending):
            self.cancel(request_id)

    def _expire(self, request_id: str) -> None:
        request = self._pending.pop(request_id, None)
        if request is None or request.future.done():
            return
        logger.info(f"Request {request_id} timed out after {request.timeout_ms:g}ms")
        request.future.set_exception(RequestTimeoutError(request_id, request.timeout_ms))
