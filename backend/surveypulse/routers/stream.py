# surveypulse/routers/stream.py
"""
Push channels for live dashboards.

  GET /sse        server-sent events, one-way
  WS  /ws/events  JSON frames {"event": ..., "data": ...}, both ways

Both register a subscriber with the app's ChangeNotifier for as long as the
connection is open.
"""
import asyncio
import json
import logging
import os
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from surveypulse.services.notifier import ChangeNotifier, SocketSubscriber, StreamSubscriber, Subscriber

SSE_KEEPALIVE_SECONDS = float(os.getenv("SSE_KEEPALIVE_SECONDS", "15"))

router = APIRouter(tags=["stream"])
logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


# ---------- Server-sent events ----------

def encode_sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


async def sse_stream(notifier: ChangeNotifier,
                     is_disconnected: Callable[[], Awaitable[bool]],
                     keepalive: float = SSE_KEEPALIVE_SECONDS,
                     sub: Optional[Subscriber] = None) -> AsyncIterator[str]:
    """Yield SSE text for one connection until it goes away or is closed."""
    sub = notifier.add(sub or StreamSubscriber())
    try:
        yield ":connected\n\n"
        while not sub.closed:
            try:
                msg = await asyncio.wait_for(sub.queue.get(), timeout=keepalive)
            except asyncio.TimeoutError:
                if await is_disconnected():
                    break
                yield ":keepalive\n\n"
                continue
            if msg is None:
                break
            event, data = msg
            yield encode_sse(event, data)
    finally:
        notifier.remove(sub)


@router.get("/sse")
async def sse(request: Request):
    stream = sse_stream(request.app.state.notifier, request.is_disconnected)
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)


# ---------- WebSocket ----------

async def _drain_socket(ws: WebSocket, sub: Subscriber) -> None:
    """Only writer for this socket; a send failure ends this subscriber alone."""
    while True:
        msg = await sub.queue.get()
        if msg is None:
            # server closed us (shutdown); hang up
            try:
                await ws.close()
            except Exception as e:
                logger.debug("ws %s close failed: %s", sub.id, e)
            break
        event, data = msg
        try:
            await ws.send_json({"event": event, "data": data})
        except Exception as e:
            logger.info("ws send to %s failed: %s", sub.id, e)
            break


@router.websocket("/ws/events")
async def events_ws(ws: WebSocket):
    notifier: ChangeNotifier = ws.app.state.notifier
    await ws.accept()
    sub = notifier.add(SocketSubscriber())
    sender = asyncio.create_task(_drain_socket(ws, sub))
    sub.deliver("server:welcome", {"message": "Welcome! websocket connected."})
    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            text = message.get("text")
            if text is None:
                logger.info("ws %s sent a binary frame, ignoring", sub.id)
                continue
            try:
                msg = json.loads(text)
            except ValueError:
                logger.info("ws %s sent a non-JSON frame, ignoring", sub.id)
                continue
            if not isinstance(msg, dict):
                continue
            if msg.get("event") == "client:test":
                data = msg.get("data")
                logger.info("Received client:test from %s: %r", sub.id, data)
                # echo to the sender, broadcast to the other sockets
                sub.deliver("server:echo", {"received": data})
                notifier.publish("server:broadcast", {"from": sub.id, "data": data},
                                 exclude=sub, kind=SocketSubscriber.kind)
    except WebSocketDisconnect as e:
        logger.info("ws %s disconnected (code=%s)", sub.id, e.code)
    finally:
        notifier.remove(sub)
        sender.cancel()
