import datetime
import itertools
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .config import BANNER, Settings, load_settings
from .errors import (
    AlreadyInRoomError,
    MalformedMessageError,
    NotInRoomError,
    RelayError,
    RoomExistsError,
    RoomFullError,
    RoomIncompleteError,
    RoomNotFoundError,
)
from .netplay import protocol
from .netplay.security import InputSanitizer

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Internal server error"


class Peer:
    """One relay connection. Bound to at most one room at a time."""

    def __init__(self, ws: WebSocket, conn_id: str):
        self.ws = ws
        self.conn_id = conn_id
        self.room_code: Optional[str] = None
        self.player_name: str = ""
        self.is_host: bool = False

    def unbind(self) -> None:
        self.room_code = None
        self.is_host = False

    async def send(self, message: Dict[str, Any]) -> bool:
        try:
            await self.ws.send_text(json.dumps(message))
        except Exception as exc:
            # Peer already gone; its own disconnect path cleans up the room.
            logger.warning("[Relay] Send to %s failed (%s): %s", self.conn_id, message.get("type"), exc)
            return False
        return True

    def __repr__(self) -> str:
        return f"Peer({self.conn_id}, room={self.room_code}, host={self.is_host})"


@dataclass
class Room:
    code: str
    host: Peer
    host_name: str
    client: Optional[Peer] = None
    client_name: Optional[str] = None
    started: bool = False
    created_at: datetime.datetime = field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc))

    def other(self, peer: Peer) -> Optional[Peer]:
        if peer is self.host:
            return self.client
        if peer is self.client:
            return self.host
        return None

    def summary(self) -> Dict[str, Any]:
        return {
            "room_code": self.code,
            "host": self.host_name,
            "client": self.client_name,
            "full": self.client is not None,
            "started": self.started,
            "created_at": self.created_at.isoformat(),
        }


class RoomManager:
    """Room code -> Room. Every mutation runs under one lock and completes before any send."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def get(self, code: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(code)

    def require(self, code: str) -> Room:
        with self._lock:
            room = self.get(code)
            if room is None:
                raise RoomNotFoundError(code)
            return room

    def create_room(self, code: str, player_name: str, peer: Peer) -> Room:
        with self._lock:
            if peer.room_code is not None:
                raise AlreadyInRoomError(peer.room_code)
            if code in self._rooms:
                raise RoomExistsError(code)
            room = Room(code=code, host=peer, host_name=player_name)
            self._rooms[code] = room
            peer.room_code = code
            peer.player_name = player_name
            peer.is_host = True
            return room

    def join_room(self, code: str, player_name: str, peer: Peer) -> Room:
        with self._lock:
            if peer.room_code is not None:
                raise AlreadyInRoomError(peer.room_code)
            room = self.require(code)
            if room.client is not None:
                raise RoomFullError(code)
            room.client = peer
            room.client_name = player_name
            peer.room_code = code
            peer.player_name = player_name
            peer.is_host = False
            return room

    def start_game(self, code: str, peer: Peer) -> Room:
        with self._lock:
            room = self.require(code)
            if peer is not room.host and peer is not room.client:
                raise NotInRoomError()
            if room.client is None:
                raise RoomIncompleteError(code)
            room.started = True
            return room

    def opponent_of(self, peer: Peer) -> Optional[Peer]:
        with self._lock:
            if peer.room_code is None:
                return None
            room = self._rooms.get(peer.room_code)
            if room is None:
                return None
            return room.other(peer)

    def leave(self, peer: Peer) -> Tuple[Optional[Peer], bool]:
        """Detach `peer` from its room. Returns (peer to notify, room deleted)."""
        with self._lock:
            code = peer.room_code
            if code is None:
                return None, False
            room = self._rooms.get(code)
            peer.unbind()
            if room is None:
                return None, False
            if peer is room.host:
                self._rooms.pop(code, None)
                remaining = room.client
                if remaining is not None:
                    remaining.unbind()
                return remaining, True
            if peer is room.client:
                room.client = None
                room.client_name = None
                room.started = False
                return room.host, False
            return None, False

    def snapshot(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [room.summary() for room in self._rooms.values()]


class RelayServer:
    """Pairs two peers per room and forwards their messages. Knows nothing about checkers."""

    def __init__(self, rooms: Optional[RoomManager] = None):
        self.rooms = rooms if rooms is not None else RoomManager()
        self._conn_counter = itertools.count()

    async def serve(self, ws: WebSocket) -> None:
        await ws.accept()
        peer = Peer(ws, f"conn-{next(self._conn_counter)}")
        logger.info("[Relay] New connection %s", peer.conn_id)
        try:
            while True:
                txt = await ws.receive_text()
                try:
                    msg = protocol.parse_message(txt)
                except MalformedMessageError as exc:
                    logger.warning("[Relay] %s from %s", exc, peer.conn_id)
                    continue
                try:
                    await self.handle(peer, msg)
                except RelayError as exc:
                    await peer.send(protocol.error_message(str(exc)))
                except Exception:
                    # Never crash the socket loop on handler errors; report to client
                    logger.exception("[Relay] Handler failed for %s", peer.conn_id)
                    await peer.send(protocol.error_message(INTERNAL_ERROR))
        except WebSocketDisconnect:
            logger.info("[Relay] Connection closed %s", peer.conn_id)
        finally:
            await self.disconnect(peer)

    async def handle(self, peer: Peer, msg: Dict[str, Any]) -> None:
        t = msg.get("type")
        if t == protocol.PING:
            return
        logger.debug("[Relay] %s <- %s", peer.conn_id, t)
        if t == protocol.CREATE_ROOM:
            await self.create_room(peer, msg)
        elif t == protocol.JOIN_ROOM:
            await self.join_room(peer, msg)
        elif t == protocol.START_GAME:
            await self.start_game(peer, msg)
        elif t == protocol.MOVE:
            await self.relay_move(peer, msg)
        else:
            logger.info("[Relay] Unknown message type %r from %s", t, peer.conn_id)

    async def create_room(self, peer: Peer, msg: Dict[str, Any]) -> None:
        req = protocol.validate(protocol.RoomRequest, msg)
        code = InputSanitizer.normalize_room_code(req.roomCode)
        name = self._player_name(req.playerName)
        self.rooms.create_room(code, name, peer)
        logger.info("[Relay] Room %s created by %s", code, name)
        await peer.send(protocol.room_created_message(code))

    async def join_room(self, peer: Peer, msg: Dict[str, Any]) -> None:
        req = protocol.validate(protocol.RoomRequest, msg)
        code = InputSanitizer.normalize_room_code(req.roomCode)
        name = self._player_name(req.playerName)
        room = self.rooms.join_room(code, name, peer)
        logger.info("[Relay] %s joined room %s", name, code)
        await peer.send(protocol.join_success_message(room.host_name))
        await room.host.send(protocol.player_joined_message(name))

    async def start_game(self, peer: Peer, msg: Dict[str, Any]) -> None:
        req = protocol.validate(protocol.StartGameRequest, msg)
        code = InputSanitizer.normalize_room_code(req.roomCode)
        room = self.rooms.start_game(code, peer)
        logger.info("[Relay] Game started in room %s", code)
        start = protocol.game_start_message(room.host_name, room.client_name)
        await room.host.send(start)
        if room.client is not None:
            await room.client.send(start)

    async def relay_move(self, peer: Peer, msg: Dict[str, Any]) -> None:
        other = self.rooms.opponent_of(peer)
        if other is None:
            logger.debug("[Relay] Move from %s has no recipient", peer.conn_id)
            return
        await other.send(msg)

    async def disconnect(self, peer: Peer) -> None:
        code = peer.room_code
        notify, deleted = self.rooms.leave(peer)
        if code is None:
            return
        if deleted:
            logger.info("[Relay] Host left; room %s closed", code)
        else:
            logger.info("[Relay] Player left room %s", code)
        if notify is not None:
            await notify.send(protocol.opponent_disconnected_message())

    @staticmethod
    def _player_name(raw: str) -> str:
        if InputSanitizer.is_suspicious(raw):
            logger.warning("[Relay] Suspicious player name %r", raw)
        return InputSanitizer.sanitize_player_name(raw)


def create_app(settings: Optional[Settings] = None, relay: Optional[RelayServer] = None) -> FastAPI:
    settings = settings if settings is not None else load_settings()
    relay = relay if relay is not None else RelayServer()

    app = FastAPI()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.relay = relay

    @app.get("/", response_class=PlainTextResponse)
    def banner():
        return PlainTextResponse(BANNER)

    @app.get("/health")
    def health():
        return JSONResponse({"ok": True, "rooms": len(relay.rooms), "room_list": relay.rooms.snapshot()})

    @app.websocket("/")
    async def ws_root(ws: WebSocket):
        await relay.serve(ws)

    @app.websocket("/ws")
    async def ws_endpoint(ws: WebSocket):
        await relay.serve(ws)

    return app
