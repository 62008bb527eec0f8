"""Websocket transport to a jabterm gateway.

One ``GatewayConnection`` per login.  ``run()`` owns the socket for its
whole life: it sends the login frame, forwards queued outbound frames and
turns each inbound frame into an event on the shared inbound queue.  The
main loop drains that queue; nothing here touches windows directly.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Deque, Dict, Optional

import aiohttp
from pydantic import ValidationError

from jabterm.config import FRAME_MAX
from jabterm.events import ConnectionEvent, TraceEvent, parse_event
from jabterm.protocol import ConnStatus, GatewayProtocol

log = logging.getLogger(__name__)


def encode_frame(obj: Dict[str, Any]) -> str:
    raw = json.dumps(obj, separators=(",", ":"))
    if len(raw) > FRAME_MAX:
        raise ValueError("Frame too large")
    return raw


class GatewayConnection:
    def __init__(
        self,
        url: str,
        jid: str,
        protocol: GatewayProtocol,
        inbound: Deque[Any],
        password: str = "",
    ) -> None:
        self.url = url
        self.jid = jid
        self.password = password
        self.protocol = protocol
        self.inbound = inbound
        self._wakeup: Optional[asyncio.Event] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._closing = False
        self._rejected = False

    def _queue(self, event: Any) -> None:
        self.inbound.append(event)

    def _on_frame(self, raw: str) -> None:
        if self.protocol.trace:
            self._queue(TraceEvent(direction="RECV", text=raw))
        try:
            event = parse_event(raw)
        except (ValidationError, ValueError) as e:
            log.warning("dropping invalid frame: %s", e)
            return
        if isinstance(event, ConnectionEvent) and event.status == "failed":
            self._rejected = self._closing = True
        self._queue(event)

    async def _pump_outbox(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        assert self._wakeup is not None
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            for frame in self.protocol.drain():
                try:
                    await ws.send_str(encode_frame(frame))
                except ValueError as e:
                    log.error("not sending %s frame: %s", frame.get("type"), e)
                if frame.get("type") == "logout":
                    self._closing = True
                    await ws.close()
                    return

    def close(self) -> None:
        self._closing = True
        if self._ws is not None and not self._ws.closed:
            asyncio.ensure_future(self._ws.close())

    async def run(self) -> None:
        self._wakeup = asyncio.Event()
        self.protocol.on_send = self._wakeup.set
        self.protocol.jid = self.jid
        self.protocol.status = ConnStatus.CONNECTING
        opened = False
        try:
            async with aiohttp.ClientSession() as session:
                async with session.ws_connect(
                    self.url,
                    params={"jid": self.jid},
                    max_msg_size=FRAME_MAX,
                    heartbeat=30,
                ) as ws:
                    opened = True
                    self._ws = ws
                    log.info("connected to %s as %s", self.url, self.jid)
                    await ws.send_str(encode_frame(
                        {"type": "login", "jid": self.jid, "password": self.password}
                    ))
                    if self.protocol.outbox:
                        self._wakeup.set()
                    pump = asyncio.create_task(self._pump_outbox(ws))
                    try:
                        async for msg in ws:
                            if msg.type == aiohttp.WSMsgType.TEXT:
                                self._on_frame(msg.data)
                            elif msg.type == aiohttp.WSMsgType.ERROR:
                                log.error("websocket error: %s", ws.exception())
                                break
                            if self._closing:
                                break
                    finally:
                        pump.cancel()
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            log.error("connection to %s failed: %s", self.url, e)
            if not opened:
                self._queue(ConnectionEvent(status="failed", jid=self.jid, message=str(e)))
                return
        finally:
            self.protocol.on_send = None
            self._ws = None

        if self._rejected:
            return
        if self._closing:
            self._queue(ConnectionEvent(status="disconnected", jid=self.jid))
        else:
            self._queue(ConnectionEvent(status="lost", jid=self.jid))
