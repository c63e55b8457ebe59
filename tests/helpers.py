from __future__ import annotations

from typing import Callable, List

import httpx


class SleepRecorder:
    """Stands in for ``asyncio.sleep`` so backoff tests run instantly."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: List[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self)


