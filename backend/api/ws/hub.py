"""
WebSocket broadcast hub for scorewire.

Manages client connections with:
- Team and sport subscriptions (``team:NBA_LAL``, ``sport:NBA``)
- "All my teams" subscriptions resolved through the storage collaborator
- Fan-out of score/status/news events to interested connections
- Redis pub/sub bridge so events published by scheduler workers reach
  clients connected to any API instance
"""
from __future__ import annotations

import asyncio
import json
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from shared.config import Settings, get_settings
from shared.errors import BroadcastError
from shared.models.domain import BroadcastEvent
from shared.models.enums import Sport, WSClientOp, WSServerMsgType
from shared.storage import ScoreStorage
from shared.utils.logging import get_logger
from shared.utils.metrics import BROADCAST_EVENTS, WS_CONNECTIONS, WS_MESSAGES, WS_SUBSCRIPTIONS
from shared.utils.redis_manager import FANOUT_CHANNEL, RedisManager

from ingest.scores_agent import sanitize_team_ids

logger = get_logger(__name__)


def team_key(team_id: str) -> str:
    return f"team:{team_id.strip().upper()}"


def sport_key(sport: str) -> str:
    return f"sport:{sport.strip().upper()}"


@dataclass
class WSConnection:
    """A single client connection and its subscription keys."""

    ws: WebSocket
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    user_id: Optional[str] = None
    subscriptions: set[str] = field(default_factory=set)
    created_at: float = field(default_factory=time.monotonic)

    @property
    def alive_seconds(self) -> float:
        return time.monotonic() - self.created_at


class BroadcastHub:
    def __init__(
        self,
        storage: Optional[ScoreStorage] = None,
        redis: Optional[RedisManager] = None,
        settings: Settings | None = None,
    ) -> None:
        self._storage = storage
        self._redis = redis
        self._settings = settings or get_settings()
        self._connections: dict[str, WSConnection] = {}
        # subscription key -> connection ids
        self._subscribers: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()
        self._bridge_task: Optional[asyncio.Task[None]] = None

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def subscribers_of(self, key: str) -> set[str]:
        return set(self._subscribers.get(key, set()))

    def subscriptions_of(self, connection_id: str) -> set[str]:
        conn = self._connections.get(connection_id)
        return set(conn.subscriptions) if conn else set()

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def start(self) -> None:
        if self._redis is not None and self._bridge_task is None:
            self._bridge_task = asyncio.create_task(self._run_redis_bridge())
        logger.info("broadcast_hub_started", bridge=self._bridge_task is not None)

    async def stop(self) -> None:
        if self._bridge_task is not None:
            self._bridge_task.cancel()
            try:
                await self._bridge_task
            except asyncio.CancelledError:
                pass
            self._bridge_task = None
        for conn in list(self._connections.values()):
            try:
                if conn.ws.client_state == WebSocketState.CONNECTED:
                    await conn.ws.close(code=1001, reason="server_shutdown")
            except Exception as exc:
                logger.debug("ws_close_error", connection_id=conn.connection_id, error=str(exc))
            await self.disconnect(conn.connection_id)
        logger.info("broadcast_hub_stopped")

    # ── Registry ────────────────────────────────────────────────────────

    async def register(self, ws: WebSocket, user_id: Optional[str] = None) -> WSConnection:
        conn = WSConnection(ws=ws, user_id=user_id)
        async with self._lock:
            self._connections[conn.connection_id] = conn
        WS_CONNECTIONS.inc()
        logger.info("ws_connected", connection_id=conn.connection_id, user_id=user_id)
        await self._send(conn, self._message(
            WSServerMsgType.CONNECTION_STATUS,
            {"status": "connected", "connectionId": conn.connection_id},
        ))
        return conn

    def _keys_for(self, sport: Optional[str], team_id: Optional[str]) -> list[str]:
        keys: list[str] = []
        if team_id:
            keys.append(team_key(team_id))
        if sport:
            keys.append(sport_key(sport))
        return keys

    async def subscribe(
        self, connection_id: str, sport: Optional[str] = None, team_id: Optional[str] = None
    ) -> list[str]:
        """Add subscription keys for a connection; returns the keys now held for this request."""
        keys = self._keys_for(sport, team_id)
        async with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None or not keys:
                return []
            new = [k for k in keys if k not in conn.subscriptions]
            if len(conn.subscriptions) + len(new) > self._settings.ws_max_subscriptions_per_conn:
                raise BroadcastError(connection_id, "subscription limit reached")
            for key in new:
                conn.subscriptions.add(key)
                self._subscribers.setdefault(key, set()).add(connection_id)
                WS_SUBSCRIPTIONS.inc()
        logger.debug("ws_subscribed", connection_id=connection_id, keys=keys)
        return keys

    async def unsubscribe(
        self, connection_id: str, sport: Optional[str] = None, team_id: Optional[str] = None
    ) -> list[str]:
        keys = self._keys_for(sport, team_id)
        removed: list[str] = []
        async with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                return []
            for key in keys:
                if key in conn.subscriptions:
                    self._drop_key(conn, key)
                    removed.append(key)
        logger.debug("ws_unsubscribed", connection_id=connection_id, keys=removed)
        return removed

    async def disconnect(self, connection_id: str) -> None:
        async with self._lock:
            conn = self._connections.pop(connection_id, None)
            if conn is None:
                return
            for key in list(conn.subscriptions):
                self._drop_key(conn, key)
        WS_CONNECTIONS.dec()
        logger.info(
            "ws_disconnected",
            connection_id=connection_id,
            alive_seconds=round(conn.alive_seconds, 1),
        )

    def _drop_key(self, conn: WSConnection, key: str) -> None:
        conn.subscriptions.discard(key)
        holders = self._subscribers.get(key)
        if holders is not None:
            holders.discard(conn.connection_id)
            if not holders:
                del self._subscribers[key]
        WS_SUBSCRIPTIONS.dec()

    # ── Fan-out ─────────────────────────────────────────────────────────

    def _targets(self, event: BroadcastEvent) -> list[WSConnection]:
        if not event.team_ids and not event.sport:
            return list(self._connections.values())
        ids: set[str] = set()
        for team_id in event.team_ids:
            ids |= self._subscribers.get(team_key(team_id), set())
        if event.sport:
            ids |= self._subscribers.get(sport_key(event.sport), set())
        return [self._connections[cid] for cid in ids if cid in self._connections]

    async def broadcast(self, event: BroadcastEvent) -> int:
        """Deliver ``event`` to interested connections; returns how many received it."""
        async with self._lock:
            targets = self._targets(event)
        if not targets:
            return 0

        message = event.client_message()
        results = await asyncio.gather(*(self._send(conn, message) for conn in targets))
        failed = [conn for conn, ok in zip(targets, results) if not ok]
        for conn in failed:
            logger.warning(
                "ws_delivery_failed",
                error=str(BroadcastError(conn.connection_id, event.type.value)),
            )
            await self.disconnect(conn.connection_id)

        delivered = len(targets) - len(failed)
        WS_MESSAGES.labels(direction="out").inc(delivered)
        return delivered

    async def publish(self, event: BroadcastEvent) -> None:
        """In-process ``Broadcaster``: events produced in the API process go straight out."""
        BROADCAST_EVENTS.labels(type=event.type.value).inc()
        await self.broadcast(event)

    async def _run_redis_bridge(self) -> None:
        """Relay events published on the fan-out channel to local connections."""
        assert self._redis is not None
        pubsub = await self._redis.subscribe_channel(FANOUT_CHANNEL)
        logger.info("ws_pubsub_bridge_started", channel=FANOUT_CHANNEL)
        try:
            while True:
                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if not message or message.get("type") != "message":
                    continue
                try:
                    event = BroadcastEvent.model_validate_json(message["data"])
                except ValidationError as exc:
                    logger.warning("ws_bridge_bad_event", error=str(exc))
                    continue
                await self.broadcast(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("ws_pubsub_bridge_failed", error=str(exc), exc_info=True)
        finally:
            await pubsub.unsubscribe(FANOUT_CHANNEL)
            await pubsub.aclose()

    # ── Client protocol ─────────────────────────────────────────────────

    async def handle_connection(self, ws: WebSocket, user_id: Optional[str] = None) -> None:
        """Accept ``ws`` and serve its messages until it disconnects."""
        await ws.accept()
        conn = await self.register(ws, user_id)
        try:
            while True:
                raw = await ws.receive_text()
                WS_MESSAGES.labels(direction="in").inc()
                await self.handle_message(conn, raw)
        except WebSocketDisconnect:
            pass
        except Exception as exc:
            logger.warning("ws_connection_error", connection_id=conn.connection_id, error=str(exc))
        finally:
            await self.disconnect(conn.connection_id)

    async def handle_message(self, conn: WSConnection, raw: str) -> None:
        try:
            msg = json.loads(raw)
        except json.JSONDecodeError:
            await self._send_error(conn, "invalid_json", "Message must be valid JSON")
            return
        if not isinstance(msg, dict):
            await self._send_error(conn, "invalid_message", "Message must be a JSON object")
            return

        try:
            op = WSClientOp(msg.get("type"))
        except ValueError:
            await self._send_error(conn, "unknown_type", f"Unknown message type: {msg.get('type')}")
            return

        try:
            if op == WSClientOp.PING:
                await self._send(conn, self._message(WSServerMsgType.PONG, {}))
            elif op in (WSClientOp.SUBSCRIBE, WSClientOp.UNSUBSCRIBE):
                await self._handle_team(conn, op, msg)
            else:
                await self._handle_user_teams(conn, op, msg)
        except BroadcastError as exc:
            await self._send_error(conn, "subscription_limit", exc.detail or str(exc))

    async def _handle_team(self, conn: WSConnection, op: WSClientOp, msg: dict[str, Any]) -> None:
        team_id = msg.get("teamId")
        sport = msg.get("sport")
        if sport and Sport.resolve(sport) is None:
            await self._send_error(conn, "invalid_sport", f"Unknown sport: {sport}")
            return
        teams = sanitize_team_ids([team_id] if isinstance(team_id, str) else [])
        if not teams and not sport:
            await self._send_error(conn, "missing_team_id", f"{op.value} requires teamId or sport")
            return

        sport_name = Sport.resolve(sport).value if sport else None
        team = teams[0] if teams else None
        if op == WSClientOp.SUBSCRIBE:
            keys = await self.subscribe(conn.connection_id, sport_name, team)
        else:
            keys = await self.unsubscribe(conn.connection_id, sport_name, team)
        await self._confirm(conn, op, keys)

    async def _handle_user_teams(self, conn: WSConnection, op: WSClientOp, msg: dict[str, Any]) -> None:
        if not conn.user_id or self._storage is None:
            await self._send_error(conn, "unauthenticated", "User teams require a userId")
            return
        sport = Sport.resolve(msg.get("sport")) if msg.get("sport") else None
        try:
            favorites = await self._storage.get_user_team_ids(conn.user_id)
        except Exception as exc:
            logger.warning("ws_user_teams_failed", user_id=conn.user_id, error=str(exc))
            await self._send_error(conn, "teams_unavailable", "Could not load user teams")
            return
        team_ids = sanitize_team_ids(favorites)
        if sport is not None:
            team_ids = [t for t in team_ids if t.startswith(f"{sport.value}_")]

        keys: list[str] = []
        for team_id in team_ids:
            if op == WSClientOp.SUBSCRIBE_USER_TEAMS:
                keys += await self.subscribe(conn.connection_id, team_id=team_id)
            else:
                keys += await self.unsubscribe(conn.connection_id, team_id=team_id)

        if op == WSClientOp.SUBSCRIBE_USER_TEAMS:
            await self._send(conn, self._message(
                WSServerMsgType.TEAMS_LOADED,
                {"teamIds": team_ids, "sport": sport.value if sport else None},
            ))
        await self._confirm(conn, op, keys)

    async def _confirm(self, conn: WSConnection, op: WSClientOp, keys: Iterable[str]) -> None:
        await self._send(conn, self._message(
            WSServerMsgType.SUBSCRIPTION_CONFIRMATION,
            {
                "action": op.value,
                "keys": list(keys),
                "subscriptions": sorted(conn.subscriptions),
            },
        ))

    # ── Sending ─────────────────────────────────────────────────────────

    @staticmethod
    def _message(msg_type: WSServerMsgType, payload: dict[str, Any]) -> dict[str, Any]:
        return {"type": msg_type.value, "payload": payload, "timestamp": time.time()}

    async def _send(self, conn: WSConnection, message: dict[str, Any]) -> bool:
        """Send one JSON message; returns False when the socket is gone or the send failed."""
        try:
            if conn.ws.client_state != WebSocketState.CONNECTED:
                return False
            await conn.ws.send_text(json.dumps(message, default=str))
            return True
        except Exception as exc:
            logger.debug("ws_send_error", connection_id=conn.connection_id, error=str(exc))
            return False

    async def _send_error(self, conn: WSConnection, code: str, message: str) -> None:
        await self._send(conn, self._message(WSServerMsgType.ERROR, {"code": code, "message": message}))
