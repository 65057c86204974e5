# surveypulse/client/dashboard.py
"""
Live dashboard subscriber.

Listens on the server's SSE stream and refetches /api/aggregates when a
response for its own company/survey comes in. Bursts of events within the
debounce window collapse into a single fetch.

The server does not replay events missed while disconnected, so after every
reconnect the subscriber does one fresh fetch to catch up.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, Tuple

import httpx

DEBOUNCE_SECONDS = 0.8

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Dict[str, Any]], Any]


class Debouncer:
    """Run an async callable once, `delay` seconds after the last trigger()."""

    def __init__(self, fn: Callable[[], Awaitable[Any]], delay: float = DEBOUNCE_SECONDS):
        self.fn = fn
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    def trigger(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        self._task = asyncio.ensure_future(self.fn())

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def flush(self) -> None:
        """Wait for a fetch that has already fired."""
        if self._task is not None:
            await self._task


async def iter_sse(lines: AsyncIterator[str]) -> AsyncIterator[Tuple[str, str]]:
    """Parse SSE text lines into (event, data) pairs. Comments are skipped."""
    event, data = "message", []
    async for line in lines:
        if line == "":
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)


class DashboardSubscriber:
    def __init__(self,
                 base_url: str,
                 company_id: str,
                 survey_id: str,
                 on_update: Optional[UpdateCallback] = None,
                 debounce: float = DEBOUNCE_SECONDS,
                 reconnect_delay: float = 3.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.company_id = company_id
        self.survey_id = survey_id
        self.on_update = on_update
        self.reconnect_delay = reconnect_delay
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=None)
        self.aggregates: Optional[Dict[str, Any]] = None
        self.connected = False
        self.debouncer = Debouncer(self.fetch_aggregates, debounce)
        self._stopped = False

    # ---------- HTTP ----------

    async def login(self) -> None:
        """Dev login; the server answers with a tenant cookie kept by the client."""
        resp = await self.client.post("/api/login", json={"companyId": self.company_id})
        resp.raise_for_status()

    async def fetch_aggregates(self) -> Optional[Dict[str, Any]]:
        try:
            resp = await self.client.get("/api/aggregates", params={
                "companyId": self.company_id,
                "surveyId": self.survey_id,
            })
        except httpx.HTTPError as e:
            logger.error("fetch aggregates failed: %s", e)
            return None
        if resp.status_code != 200:
            return None
        try:
            body = resp.json()
        except ValueError as e:
            logger.error("aggregates reply is not JSON: %s", e)
            return None
        if isinstance(body, dict) and body.get("ok"):
            self.aggregates = body["aggregates"]
            if self.on_update is not None:
                result = self.on_update(self.aggregates)
                if asyncio.iscoroutine(result):
                    await result
        return self.aggregates

    # ---------- Events ----------

    def handle_event(self, event: str, data: str) -> bool:
        """Schedule a refetch if this event concerns us. Returns True if scheduled."""
        if event == "response:created":
            try:
                payload = json.loads(data)
            except ValueError:
                self.debouncer.trigger()
                return True
            if (isinstance(payload, dict)
                    and payload.get("surveyId") == self.survey_id
                    and payload.get("companyId") == self.company_id):
                self.debouncer.trigger()
                return True
            return False
        if event == "response:changed":
            self.debouncer.trigger()
            return True
        return False

    async def listen_once(self) -> None:
        """One SSE connection, until the server closes it or it fails."""
        async with self.client.stream("GET", "/sse") as resp:
            resp.raise_for_status()
            self.connected = True
            logger.info("SSE connected")
            async for event, data in iter_sse(resp.aiter_lines()):
                self.handle_event(event, data)

    async def run(self) -> None:
        """Log in, load once, then follow the stream forever, reconnecting on loss."""
        await self.login()
        await self.fetch_aggregates()
        first = True
        while not self._stopped:
            if not first:
                # nothing is replayed; catch up on whatever we missed
                await self.fetch_aggregates()
            first = False
            try:
                await self.listen_once()
            except httpx.HTTPError as e:
                logger.warning("SSE error: %s", e)
            self.connected = False
            if self._stopped:
                break
            await asyncio.sleep(self.reconnect_delay)

    async def close(self) -> None:
        self._stopped = True
        self.debouncer.cancel()
        await self.client.aclose()
