"""WebSocket connection from a participant to the chat relay."""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager, suppress
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Protocol

import websockets

from ..core.config import settings

logger = logging.getLogger(__name__)

Emit = Callable[[str, Any], Awaitable[None]]
EventHandler = Callable[[Any], Awaitable[None]]
CloseHandler = Callable[[], Awaitable[None]]


class EventChannel(Protocol):
    """What the client engines need from a transport."""

    async def emit(self, event: str, data: Any) -> None: ...

    def on(self, event: str, handler: EventHandler) -> None: ...

    def on_close(self, handler: CloseHandler) -> None: ...


class RelayConnection:
    """Event channel to the relay.

    Incoming events are dispatched one at a time: each handler runs to
    completion before the next frame is read, so handlers never interleave.
    """

    def __init__(self, ws: Any) -> None:
        self._ws = ws
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._close_handlers: List[CloseHandler] = []
        self._receive_task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> "RelayConnection":
        self._receive_task = asyncio.create_task(self._receive_loop())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._receive_task:
            self._receive_task.cancel()
            with suppress(asyncio.CancelledError):
                await self._receive_task
        await self._ws.close()

    def on(self, event: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event, []).append(handler)

    def on_close(self, handler: CloseHandler) -> None:
        self._close_handlers.append(handler)

    async def emit(self, event: str, data: Any) -> None:
        await self._ws.send(json.dumps({"event": event, "data": data}))

    async def dispatch(self, event: str, data: Any) -> None:
        for handler in list(self._handlers.get(event, ())):
            try:
                await handler(data)
            except Exception:  # noqa: BLE001
                logger.exception("Handler for %s failed", event)

    async def _receive_loop(self) -> None:
        try:
            async for frame in self._ws:
                if isinstance(frame, bytes):
                    continue
                try:
                    payload = json.loads(frame)
                except json.JSONDecodeError:
                    logger.warning("Ignoring non-JSON frame from relay")
                    continue
                if not isinstance(payload, dict) or "event" not in payload:
                    continue
                await self.dispatch(payload["event"], payload.get("data"))
        except asyncio.CancelledError:
            raise
        except websockets.ConnectionClosed as exc:
            logger.info("Relay connection closed: %s", exc)
        finally:
            for handler in list(self._close_handlers):
                try:
                    await handler()
                except Exception:  # noqa: BLE001
                    logger.exception("Close handler failed")


@asynccontextmanager
async def connect_relay(url: str | None = None) -> AsyncIterator[RelayConnection]:
    """Open a connection to the relay and start dispatching its events."""

    async with websockets.connect(url or settings.relay_url) as ws:
        async with RelayConnection(ws) as connection:
            yield connection
