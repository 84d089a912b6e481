"""
Change-feed transport over the backend's realtime websocket.

Speaks the Phoenix channel protocol used by Supabase Realtime:
every frame is a JSON object `{"topic", "event", "payload", "ref"}`. A channel
is joined with `phx_join` (carrying the `postgres_changes` config and the
user's access token), kept alive with `phoenix`/`heartbeat` frames, and left
with `phx_leave`. Row changes arrive as `postgres_changes` events.
"""
import asyncio
import itertools
import json
import logging
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import urlencode

from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from core.config import Settings
from schemas.realtime import ChangeEvent, ChangeEventType
from services.exceptions import RealtimeError

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "1.0.0"
PHOENIX_TOPIC = "phoenix"


def decode_frame(raw: str | bytes) -> dict[str, Any] | None:
    """Decode one websocket frame; returns None for anything that isn't a JSON object."""
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("realtime_frame_undecodable frame=%r", raw[:200])
        return None
    if not isinstance(message, dict):
        return None
    return message


class RealtimeSubscription:
    """
    One joined channel on its own websocket connection.

    Iterate it to receive ChangeEvents. Events whose type was not requested
    are dropped here so consumers only see what they subscribed to.
    """

    def __init__(
        self,
        connection: ClientConnection,
        topic: str,
        event_types: frozenset[ChangeEventType],
    ) -> None:
        self._connection = connection
        self.topic = topic
        self._event_types = {str(t) for t in event_types}
        self._refs = itertools.count(1)
        self._heartbeat_task: asyncio.Task[None] | None = None
        self.join_ref: str | None = None
        self.closed = False

    async def send(self, topic: str, event: str, payload: dict[str, Any]) -> str:
        """Send a frame and return its ref."""
        ref = str(next(self._refs))
        frame = {"topic": topic, "event": event, "payload": payload, "ref": ref}
        if self.join_ref is not None and topic == self.topic:
            frame["join_ref"] = self.join_ref
        await self._connection.send(json.dumps(frame))
        return ref

    async def join(self, config: dict[str, Any], access_token: str, timeout: float) -> None:
        """
        Join the channel and wait for the server's reply.

        Raises:
            RealtimeError: If the server refuses the join, the connection drops
                or no reply arrives within `timeout` seconds.
        """
        payload: dict[str, Any] = {"config": config}
        if access_token:
            payload["access_token"] = access_token
        ref = await self.send(self.topic, "phx_join", payload)
        self.join_ref = ref

        try:
            async with asyncio.timeout(timeout):
                while True:
                    message = decode_frame(await self._connection.recv())
                    if message is None:
                        continue
                    if message.get("event") == "phx_reply" and message.get("ref") == ref:
                        break
        except TimeoutError as e:
            raise RealtimeError(f"Timed out joining realtime channel '{self.topic}'") from e
        except ConnectionClosed as e:
            raise RealtimeError(f"Realtime connection closed while joining: {e}") from e

        reply = message.get("payload") or {}
        status = reply.get("status")
        logger.info("realtime_subscription_status topic=%s status=%s", self.topic, status)
        if status != "ok":
            raise RealtimeError(
                f"Realtime channel '{self.topic}' refused: {reply.get('response')}",
            )

    def start_heartbeat(self, interval: float) -> None:
        """Keep the connection alive by sending a heartbeat every `interval` seconds."""
        self._heartbeat_task = asyncio.create_task(self._heartbeat(interval))

    async def _heartbeat(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.send(PHOENIX_TOPIC, "heartbeat", {})
            except ConnectionClosed:
                return

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[ChangeEvent]:
        try:
            async for raw in self._connection:
                message = decode_frame(raw)
                if message is None:
                    continue
                event = message.get("event")
                if message.get("topic") == self.topic and event in ("phx_error", "phx_close"):
                    logger.warning("realtime_channel_closed topic=%s event=%s", self.topic, event)
                    return
                change = self.handle_message(message)
                if change is not None:
                    yield change
        except ConnectionClosed as e:
            if not self.closed:
                raise RealtimeError(f"Realtime connection lost: {e}") from e

    def handle_message(self, message: dict[str, Any]) -> ChangeEvent | None:
        """Turn a decoded frame into a ChangeEvent, or None if it isn't a wanted row change."""
        event = message.get("event")
        payload = message.get("payload") or {}

        if event == "postgres_changes" and message.get("topic") == self.topic:
            data = payload.get("data")
            if not isinstance(data, dict):
                logger.warning("realtime_change_malformed payload=%r", payload)
                return None
            try:
                change = ChangeEvent.from_postgres_changes(data)
            except ValidationError as e:
                logger.warning("realtime_change_malformed topic=%s error=%s", self.topic, e)
                return None
            if change.event_type not in self._event_types:
                logger.debug("realtime_change_filtered event_type=%s", change.event_type)
                return None
            return change

        if event == "system":
            logger.info(
                "realtime_subscription_status topic=%s status=%s message=%s",
                self.topic,
                payload.get("status"),
                payload.get("message"),
            )
        else:
            logger.debug("realtime_frame_skipped topic=%s event=%s", message.get("topic"), event)
        return None

    async def close(self) -> None:
        """Leave the channel and close the connection. Idempotent."""
        if self.closed:
            return
        self.closed = True
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            await asyncio.gather(self._heartbeat_task, return_exceptions=True)
            self._heartbeat_task = None
        try:
            await self.send(self.topic, "phx_leave", {})
        except ConnectionClosed:
            logger.debug("realtime_leave_skipped topic=%s connection already closed", self.topic)
        finally:
            await self._connection.close()


class RealtimeClient:
    """Opens change-feed subscriptions against the backend's realtime endpoint."""

    def __init__(self, settings: Settings, access_token: str | None = None) -> None:
        self._settings = settings
        self._access_token = settings.access_token if access_token is None else access_token

    @property
    def socket_url(self) -> str:
        query = urlencode({"apikey": self._settings.supabase_anon_key, "vsn": PROTOCOL_VERSION})
        return f"{self._settings.realtime_url}?{query}"

    def channel_config(self, table: str, owner_id: str | None = None) -> dict[str, Any]:
        """
        Join config: every row change on `table` (filtered client-side by type).

        With `owner_id`, the backend only forwards rows whose `user_id` matches,
        the same owner filter the row reads use.
        """
        changes: dict[str, Any] = {
            "event": "*", "schema": self._settings.db_schema, "table": table,
        }
        if owner_id:
            changes["filter"] = f"user_id=eq.{owner_id}"
        return {
            "broadcast": {"ack": False, "self": False},
            "presence": {"key": ""},
            "postgres_changes": [changes],
            "private": False,
        }

    async def subscribe(
        self,
        table: str,
        event_types: frozenset[ChangeEventType],
        *,
        owner_id: str | None = None,
    ) -> RealtimeSubscription:
        """
        Open a connection and join the change feed for `table`, scoped to
        `owner_id` when given.

        Raises:
            RealtimeError: If the connection or the join fails.
        """
        try:
            connection = await connect(self.socket_url)
        except (OSError, WebSocketException) as e:
            raise RealtimeError(f"Could not connect to realtime: {e}") from e

        subscription = RealtimeSubscription(connection, f"realtime:{table}", event_types)
        try:
            await subscription.join(
                self.channel_config(table, owner_id),
                self._access_token,
                timeout=self._settings.api_timeout,
            )
        except BaseException:
            await subscription.close()
            raise
        subscription.start_heartbeat(self._settings.realtime_heartbeat_interval)
        return subscription

    async def unsubscribe(self, subscription: RealtimeSubscription) -> None:
        """Release a subscription returned by `subscribe`."""
        await subscription.close()
