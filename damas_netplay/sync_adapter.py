import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .config import HEARTBEAT_SECONDS_DEFAULT, Settings, load_settings
from .errors import DesyncError, MalformedMessageError
from .netplay import protocol
from .netplay.move_validator import MoveValidator
from .netplay.security import DEFAULT_PLAYER_NAME
from .rules_engine import Color, MoveResult, PlayerProfile, RulesEngine

logger = logging.getLogger(__name__)

Sender = Callable[[Dict[str, Any]], Any]

HOST_COLOR = Color.RED
CLIENT_COLOR = Color.BLUE


class SyncAdapter:
    """Networked wrapper around one RulesEngine.

    Contract:
    - Seat: the room creator plays RED, the joiner plays BLUE, fixed for the match
    - Local input: accepted only while the engine's current player is the local color
    - Outbound: each successful local move sends origin and destination only
    - Inbound: peer moves are checked against the local engine, then applied through
      select_piece/move_piece so captures and promotion are re-derived locally
    - Desync: a peer move the engine refuses is dropped and the match is frozen
    """

    def __init__(
        self,
        engine: RulesEngine,
        send: Sender,
        *,
        validate_incoming: bool = True,
        heartbeat_seconds: float = HEARTBEAT_SECONDS_DEFAULT,
    ) -> None:
        self.engine = engine
        self.send = send
        self.validator = MoveValidator(engine)
        self.validate_incoming = validate_incoming
        self.heartbeat_seconds = heartbeat_seconds
        self.is_host: bool = False
        self.room_code: Optional[str] = None
        self.my_player: Optional[Color] = None
        self.player_name: str = DEFAULT_PLAYER_NAME
        self.opponent_name: str = DEFAULT_PLAYER_NAME
        self.socket_open: bool = False
        self.is_connected: bool = False
        self.in_game: bool = False
        self.desynced: bool = False
        self.last_error: Optional[str] = None
        self.result_summary: Optional[Dict[str, Any]] = None
        # UI callbacks
        self.on_room_created: Optional[Callable[[str], None]] = None
        self.on_connected: Optional[Callable[[str], None]] = None
        self.on_game_start: Optional[Callable[[Dict[str, Any]], None]] = None
        self.on_opponent_move: Optional[Callable[[MoveResult], None]] = None
        self.on_disconnected: Optional[Callable[[], None]] = None
        self.on_error: Optional[Callable[[str], None]] = None
        self.on_desync: Optional[Callable[[DesyncError], None]] = None
        self.on_game_over: Optional[Callable[[Dict[str, Any]], None]] = None

    @classmethod
    def from_settings(cls, engine: RulesEngine, send: Sender, settings: Optional[Settings] = None,
                      **kwargs: Any) -> "SyncAdapter":
        """Adapter whose keep-alive interval comes from Settings (loaded when not given)."""
        settings = settings if settings is not None else load_settings()
        return cls(engine, send, heartbeat_seconds=settings.heartbeat_seconds, **kwargs)

    # ---- Lobby ----
    def create_room(self, player_name: str, room_code: Optional[str] = None) -> str:
        """Open a room as host. The host always plays RED."""
        self.is_host = True
        self.my_player = HOST_COLOR
        self.room_code = (room_code or protocol.generate_room_code()).upper()
        self.player_name = player_name
        self.socket_open = True
        self._send(protocol.create_room_message(self.room_code, player_name))
        return self.room_code

    def join_room(self, room_code: str, player_name: str) -> None:
        """Join an existing room. The joiner always plays BLUE."""
        self.is_host = False
        self.my_player = CLIENT_COLOR
        self.room_code = room_code.upper()
        self.player_name = player_name
        self.socket_open = True
        self._send(protocol.join_room_message(self.room_code, player_name))

    def start_game(self) -> bool:
        if not self.is_host or not self.room_code:
            return False
        self._send(protocol.start_game_message(self.room_code))
        return True

    def disconnect(self) -> None:
        self.socket_open = False
        self.is_connected = False
        self.in_game = False
        self.is_host = False
        self.room_code = None

    def reset(self) -> None:
        self.disconnect()
        self.opponent_name = DEFAULT_PLAYER_NAME
        self.my_player = None
        self.desynced = False
        self.last_error = None

    # ---- Turn gate ----
    def is_my_turn(self) -> bool:
        return self.my_player is not None and self.engine.current_player is self.my_player

    def _accepts_local_input(self) -> bool:
        return self.in_game and not self.desynced and not self.engine.game_over and self.is_my_turn()

    def select_piece(self, row: int, col: int) -> bool:
        if not self._accepts_local_input():
            return False
        return self.engine.select_piece(row, col)

    def move_piece(self, to_row: int, to_col: int) -> MoveResult:
        if not self._accepts_local_input() or self.engine.selected_piece is None:
            return MoveResult(success=False)
        origin = self.engine.selected_piece
        result = self.engine.move_piece(to_row, to_col)
        if not result.success:
            return result
        self._send(protocol.move_message(self.room_code, origin, (to_row, to_col)))
        self._after_move(result)
        return result

    # ---- Inbound ----
    def receive_move(self, message: Dict[str, Any]) -> MoveResult:
        """Apply a move announced by the opponent. Returns a failed result on desync."""
        if self.desynced:
            logger.warning("[Sync] Dropping move after desync: %s", message)
            return MoveResult(success=False)
        if self.my_player is None:
            self._desync(DesyncError("move received before seat assignment", message))
            return MoveResult(success=False)
        peer = self.my_player.opponent
        try:
            if self.validate_incoming:
                origin, dest = self.validator.validate_move(peer, message)
            else:
                origin, dest = self.validator.parse(message)
        except DesyncError as exc:
            self._desync(exc)
            return MoveResult(success=False)
        if not self.engine.select_piece(*origin):
            self._desync(DesyncError(f"cannot select {origin}", message))
            return MoveResult(success=False)
        result = self.engine.move_piece(*dest)
        if not result.success:
            self._desync(DesyncError(f"engine refused {origin}->{dest}", message))
            return result
        logger.debug("[Sync] Opponent move %s->%s %s", origin, dest, result.to_dict())
        if self.on_opponent_move:
            self.on_opponent_move(result)
        self._after_move(result)
        return result

    def handle_text(self, text: str) -> None:
        try:
            msg = protocol.parse_message(text)
        except MalformedMessageError as exc:
            logger.warning("[Sync] Ignoring frame: %s", exc)
            return
        self.handle_message(msg)

    def handle_message(self, msg: Dict[str, Any]) -> None:
        t = msg.get("type")
        if t == protocol.ROOM_CREATED:
            if self.on_room_created:
                self.on_room_created(str(msg.get("roomCode") or self.room_code))
        elif t == protocol.JOIN_SUCCESS:
            self.is_connected = True
            self.opponent_name = str(msg.get("hostName") or DEFAULT_PLAYER_NAME)
            if self.on_connected:
                self.on_connected(self.opponent_name)
        elif t == protocol.PLAYER_JOINED:
            self.is_connected = True
            self.opponent_name = str(msg.get("playerName") or DEFAULT_PLAYER_NAME)
            if self.on_connected:
                self.on_connected(self.opponent_name)
        elif t == protocol.GAME_START:
            self._start_match(msg)
        elif t == protocol.MOVE:
            self.receive_move(msg)
        elif t == protocol.OPPONENT_DISCONNECTED:
            self.handle_disconnect()
        elif t == protocol.ERROR:
            self.last_error = str(msg.get("message") or "")
            logger.error("[Sync] Server error: %s", self.last_error)
            if self.on_error:
                self.on_error(self.last_error)
        elif t == protocol.PING:
            return
        else:
            logger.debug("[Sync] Unknown message type %r", t)

    def handle_disconnect(self) -> None:
        self.is_connected = False
        self.in_game = False
        if self.on_disconnected:
            self.on_disconnected()

    # ---- Keep-alive ----
    async def heartbeat(self, interval: Optional[float] = None) -> None:
        """Send a ping every `interval` seconds while the socket is open."""
        delay = float(interval if interval is not None else self.heartbeat_seconds)
        while self.socket_open:
            await asyncio.sleep(delay)
            if not self.socket_open:
                break
            self._send(protocol.ping_message())

    # ---- Internals ----
    def _start_match(self, msg: Dict[str, Any]) -> None:
        host_name = str(msg.get("hostName") or DEFAULT_PLAYER_NAME)
        client_name = str(msg.get("clientName") or DEFAULT_PLAYER_NAME)
        self.engine.init(PlayerProfile("1", host_name), PlayerProfile("2", client_name))
        self.opponent_name = client_name if self.is_host else host_name
        self.in_game = True
        self.is_connected = True
        self.desynced = False
        self.result_summary = None
        logger.info("[Sync] Match started in %s: %s vs %s (I am %s)",
                    self.room_code, host_name, client_name,
                    self.my_player.name if self.my_player else "?")
        if self.on_game_start:
            self.on_game_start(msg)

    def _after_move(self, result: MoveResult) -> None:
        if not result.game_over or result.winner is None:
            return
        self.in_game = False
        self.result_summary = self.engine.end_game(result.winner)
        if self.on_game_over:
            self.on_game_over(self.result_summary)

    def _desync(self, exc: DesyncError) -> None:
        self.desynced = True
        logger.error("[Sync] %s in room %s", exc, self.room_code)
        if self.on_desync:
            self.on_desync(exc)

    def _send(self, message: Dict[str, Any]) -> None:
        if not self.socket_open:
            logger.debug("[Sync] Socket closed, not sending %s", message.get("type"))
            return
        self.send(message)

