"""Fan-out of a publication to every registered subscriber."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

import httpx

from .blocking import to_thread
from .metrics import DELIVERIES
from .registry import SubscriberRegistry

log = logging.getLogger(__name__)

CONTENT_TYPE = "application/json"


def make_client(timeout_seconds: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout_seconds),
        follow_redirects=False,
    )


class Broadcaster:
    """POSTs a payload to each URL in a registry snapshot.

    A delivery fails when the transport fails (refused connection, DNS,
    timeout, TLS). HTTP error statuses only count as failures when
    ``fail_on_http_error_status`` is set, and then for every subscriber.
    """

    def __init__(
        self,
        registry: SubscriberRegistry,
        client: httpx.AsyncClient,
        *,
        parallel: bool = True,
        concurrency: int = 32,
        fail_on_http_error_status: bool = False,
    ) -> None:
        self.registry = registry
        self.client = client
        self.parallel = parallel
        self.concurrency = max(1, concurrency)
        self.fail_on_http_error_status = fail_on_http_error_status
        self._pending: set[asyncio.Future[list[str]]] = set()

    async def deliver(self, url: str, payload: bytes) -> bool:
        try:
            response = await self.client.post(
                url, content=payload, headers={"Content-Type": CONTENT_TYPE}
            )
        except (httpx.RequestError, httpx.InvalidURL, ValueError) as exc:
            # ValueError covers host encoding failures (idna)
            log.warning("delivery to %s failed: %s", url, exc.__class__.__name__)
            DELIVERIES.labels("failed").inc()
            return False
        if self.fail_on_http_error_status and not response.is_success:
            log.warning("delivery to %s rejected with HTTP %s", url, response.status_code)
            DELIVERIES.labels("failed").inc()
            return False
        DELIVERIES.labels("ok").inc()
        return True

    async def _deliver_all(self, urls: Sequence[str], payload: bytes) -> list[bool]:
        results: list[bool | BaseException]
        if self.parallel:
            sem = asyncio.Semaphore(self.concurrency)

            async def _bounded(url: str) -> bool:
                async with sem:
                    return await self.deliver(url, payload)

            results = await asyncio.gather(*[_bounded(u) for u in urls], return_exceptions=True)
        else:
            results = []
            for url in urls:
                try:
                    results.append(await self.deliver(url, payload))
                except Exception as exc:  # noqa: BLE001
                    results.append(exc)

        outcomes: list[bool] = []
        for url, result in zip(urls, results):
            if isinstance(result, BaseException):
                log.error("delivery to %s raised %r", url, result)
                DELIVERIES.labels("failed").inc()
                outcomes.append(False)
            else:
                outcomes.append(result)
        return outcomes

    async def publish(self, payload: bytes) -> list[str]:
        """Deliver ``payload`` and return the failed URLs in snapshot order."""

        urls = await to_thread(self.registry.snapshot)
        if not urls:
            return []
        outcomes = await self._deliver_all(urls, payload)
        failed = [url for url, ok in zip(urls, outcomes) if not ok]
        log.info(
            "published %d bytes to %d subscribers (%d failed)",
            len(payload),
            len(urls),
            len(failed),
        )
        return failed

    async def publish_detached(self, payload: bytes) -> list[str]:
        """Like :meth:`publish`, but cancelling the caller leaves deliveries running."""

        task = asyncio.ensure_future(self.publish(payload))
        self._pending.add(task)
        task.add_done_callback(self._finished)
        return await asyncio.shield(task)

    def _finished(self, task: asyncio.Future[list[str]]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("publication failed: %r", exc)
