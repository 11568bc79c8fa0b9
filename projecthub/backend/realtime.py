"""
ProjectHub Change Feed — per-table row-change notifications.

``RealtimeListener`` holds the websocket to the backend and calls
``ChangeFeed.publish(event)`` for every row change it pushes; the feed fans
it out to the handlers of every subscribed channel watching that table.

Usage:
    feed = ChangeFeed()
    channel = feed.channel("projects").on("projects", reload_projects).subscribe()
    ...
    await feed.publish(ChangeEvent(table="projects", event_type="UPDATE"))
    feed.remove_channel(channel)
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import websockets
from websockets.exceptions import WebSocketException

from projecthub.engine.logging import log, log_realtime_event

logger = logging.getLogger("projecthub.backend.realtime")

ChangeHandler = Callable[["ChangeEvent"], Awaitable[Any]]

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")


@dataclass
class ChangeEvent:
    """One row change. ``new`` / ``old`` carry the row images when sent."""

    table: str
    event_type: str = "*"
    schema: str = "public"
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)


class Channel:
    """
    A named group of (table, event) handlers. Handlers only receive events
    after ``subscribe()``.
    """

    def __init__(self, feed: "ChangeFeed", name: str):
        self._feed = feed
        self.name = name
        self._handlers: List[Tuple[str, str, ChangeHandler]] = []
        self.subscribed = False

    def on(self, table: str, handler: ChangeHandler, event: str = "*") -> "Channel":
        """Watch ``table`` for ``event`` (INSERT / UPDATE / DELETE / *)."""
        if event != "*" and event not in EVENT_TYPES:
            raise ValueError(f"event must be one of {EVENT_TYPES} or '*', got '{event}'")
        self._handlers.append((table, event, handler))
        return self

    def subscribe(self) -> "Channel":
        self.subscribed = True
        logger.debug(f"Channel subscribed: {self.name}")
        return self

    def handlers_for(self, change: ChangeEvent) -> List[ChangeHandler]:
        if not self.subscribed:
            return []
        return [
            handler for table, event, handler in self._handlers
            if table == change.table and event in ("*", change.event_type)
        ]

    @property
    def tables(self) -> List[str]:
        return sorted({table for table, _, _ in self._handlers})


class ChangeFeed:
    """Registry of channels; fans published changes out to their handlers."""

    def __init__(self) -> None:
        self._channels: Dict[str, Channel] = {}

    def channel(self, name: str) -> Channel:
        """Create (or replace) a channel by name."""
        channel = Channel(self, name)
        self._channels[name] = channel
        return channel

    def remove_channel(self, channel: Channel) -> None:
        if self._channels.get(channel.name) is channel:
            del self._channels[channel.name]
        channel.subscribed = False
        logger.debug(f"Channel removed: {channel.name}")

    def remove_all_channels(self) -> None:
        for channel in list(self._channels.values()):
            self.remove_channel(channel)

    def get_channel(self, name: str) -> Optional[Channel]:
        return self._channels.get(name)

    @property
    def channel_names(self) -> List[str]:
        return list(self._channels.keys())

    async def publish(self, change: ChangeEvent) -> int:
        """
        Deliver ``change`` to every matching handler, in subscription order.

        A failing handler is logged and does not stop the others.

        Returns:
            Number of handlers that completed without error.
        """
        delivered = 0
        for channel in list(self._channels.values()):
            for handler in channel.handlers_for(change):
                try:
                    await handler(change)
                    delivered += 1
                    log(log_realtime_event(change.table, change.event_type, reloaded=True))
                except Exception as e:
                    logger.error(
                        f"Change handler failed on channel '{channel.name}' "
                        f"for {change.table}: {e}"
                    )
                    log(log_realtime_event(change.table, change.event_type, reloaded=False, error=str(e)))
        return delivered


# ---------------------------------------------------------------------------
# Websocket listener — joins the backend's change stream and feeds ChangeFeed
# ---------------------------------------------------------------------------

HEARTBEAT_TOPIC = "phoenix"


def parse_change(message: Dict[str, Any]) -> Optional[ChangeEvent]:
    """
    Map one ``postgres_changes`` frame to a ChangeEvent.

    Frames of any other event (join replies, heartbeats, presence) give None.
    """
    if message.get("event") != "postgres_changes":
        return None
    data = (message.get("payload") or {}).get("data") or {}
    table = data.get("table")
    if not table:
        return None
    return ChangeEvent(
        table=table,
        event_type=data.get("type") or "*",
        schema=data.get("schema") or "public",
        new=data.get("record") or {},
        old=data.get("old_record") or {},
    )


class RealtimeListener:
    """
    Keeps one websocket to the backend's realtime endpoint, joins a topic
    per watched table and publishes every row change to the ChangeFeed.

    The connection is reopened after ``reconnect_delay`` seconds whenever it
    drops, until ``stop()``.

    Usage:
        listener = RealtimeListener(config.backend.realtime_url, key, feed)
        listener.start(["projects", "files"])
        ...
        await listener.stop()
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        feed: ChangeFeed,
        schema: str = "public",
        heartbeat_interval: float = 30.0,
        reconnect_delay: float = 5.0,
        connect: Optional[Callable[[str], Any]] = None,
    ):
        self._url = url
        self._api_key = api_key
        self._feed = feed
        self._schema = schema
        self._heartbeat_interval = heartbeat_interval
        self._reconnect_delay = reconnect_delay
        self._connect = connect or websockets.connect
        self._tables: List[str] = []
        self._ref = 0
        self._task: Optional[asyncio.Task] = None
        self._stopping = False

    @property
    def endpoint(self) -> str:
        return f"{self._url}?apikey={self._api_key}&vsn=1.0.0"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    def join_message(self, table: str) -> Dict[str, Any]:
        return {
            "topic": f"realtime:{table}_changes",
            "event": "phx_join",
            "payload": {
                "config": {
                    "postgres_changes": [{"event": "*", "schema": self._schema, "table": table}],
                },
            },
            "ref": self._next_ref(),
        }

    def start(self, tables: List[str]) -> None:
        """Spawn the listening task; must be called inside a running loop."""
        if self.running:
            return
        self._tables = list(tables)
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Realtime listener started for {len(self._tables)} tables")

    async def stop(self) -> None:
        self._stopping = True
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Realtime listener stopped")

    async def _run(self) -> None:
        while not self._stopping:
            try:
                await self.listen()
            except (WebSocketException, OSError) as e:
                logger.warning(f"Realtime connection lost: {e}")
                log(log_realtime_event("*", "disconnect", reloaded=False, error=str(e)))
            if not self._stopping:
                await asyncio.sleep(self._reconnect_delay)

    async def listen(self) -> None:
        """One connection: join every table, then publish changes until it closes."""
        async with self._connect(self.endpoint) as socket:
            for table in self._tables:
                await socket.send(json.dumps(self.join_message(table)))
            heartbeat = asyncio.ensure_future(self._heartbeat(socket))
            try:
                async for raw in socket:
                    await self.handle_frame(raw)
            finally:
                heartbeat.cancel()

    async def handle_frame(self, raw: Any) -> Optional[ChangeEvent]:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning(f"Ignoring malformed realtime frame: {raw!r:.80}")
            return None
        if message.get("event") == "phx_reply" and (message.get("payload") or {}).get("status") == "error":
            logger.error(f"Realtime join rejected for {message.get('topic')}: {message.get('payload')}")
        change = parse_change(message)
        if change is not None:
            await self._feed.publish(change)
        return change

    async def _heartbeat(self, socket: Any) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            await socket.send(json.dumps({
                "topic": HEARTBEAT_TOPIC,
                "event": "heartbeat",
                "payload": {},
                "ref": self._next_ref(),
            }))
