# Messages exchanged over the relay socket.
# Every message is a JSON object with a 'type' field.
# Lobby:
# - create_room: { type, roomCode, playerName }          client -> server
# - room_created: { type, roomCode }                      server -> host
# - join_room: { type, roomCode, playerName }            client -> server
# - join_success: { type, hostName }                     server -> joiner
# - player_joined: { type, playerName }                  server -> host
# - start_game: { type, roomCode }                       client -> server
# - game_start: { type, hostName, clientName }           server -> both
# Play:
# - move: { type, roomCode, from: {row, col}, to: {row, col} }   relayed verbatim
# Lifecycle:
# - opponent_disconnected: { type }                      server -> remaining peer
# - error: { type, message }                             server -> requester
# - ping: { type }                                       keep-alive, ignored

from __future__ import annotations

import json
import random
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import MalformedMessageError
from ..rules_engine import BOARD_SIZE
from .security import DEFAULT_PLAYER_NAME, ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH

CREATE_ROOM = "create_room"
ROOM_CREATED = "room_created"
JOIN_ROOM = "join_room"
JOIN_SUCCESS = "join_success"
PLAYER_JOINED = "player_joined"
START_GAME = "start_game"
GAME_START = "game_start"
MOVE = "move"
OPPONENT_DISCONNECTED = "opponent_disconnected"
ERROR = "error"
PING = "ping"


class Square(BaseModel):
    row: int = Field(ge=0, le=BOARD_SIZE - 1)
    col: int = Field(ge=0, le=BOARD_SIZE - 1)

    def as_tuple(self) -> Tuple[int, int]:
        return (self.row, self.col)


class RoomRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    roomCode: str = Field(max_length=32)
    playerName: str = Field(default=DEFAULT_PLAYER_NAME, max_length=200)


class StartGameRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    roomCode: str = Field(max_length=32)


class MovePayload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    roomCode: Optional[str] = None
    from_: Square = Field(alias="from")
    to: Square


def parse_message(text: Any) -> Dict[str, Any]:
    """Decode one inbound frame into an envelope dict with a string 'type'."""
    try:
        msg = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise MalformedMessageError("Malformed JSON") from exc
    if not isinstance(msg, dict) or not isinstance(msg.get("type"), str):
        raise MalformedMessageError("Missing message type")
    return msg


def validate(model: type, msg: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(msg)
    except ValidationError as exc:
        raise MalformedMessageError(f"Malformed {msg.get('type', 'message')}") from exc


def generate_room_code(rng: Optional[random.Random] = None) -> str:
    rng = rng or random.SystemRandom()
    return "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def _square(sq: Tuple[int, int]) -> Dict[str, int]:
    return {"row": int(sq[0]), "col": int(sq[1])}


# ---- client -> server ----
def create_room_message(room_code: str, player_name: str) -> Dict[str, Any]:
    return {"type": CREATE_ROOM, "roomCode": room_code, "playerName": player_name}


def join_room_message(room_code: str, player_name: str) -> Dict[str, Any]:
    return {"type": JOIN_ROOM, "roomCode": room_code.upper(), "playerName": player_name}


def start_game_message(room_code: str) -> Dict[str, Any]:
    return {"type": START_GAME, "roomCode": room_code}


def move_message(room_code: Optional[str], origin: Tuple[int, int], dest: Tuple[int, int]) -> Dict[str, Any]:
    return {"type": MOVE, "roomCode": room_code, "from": _square(origin), "to": _square(dest)}


def ping_message() -> Dict[str, Any]:
    return {"type": PING}


# ---- server -> client ----
def room_created_message(room_code: str) -> Dict[str, Any]:
    return {"type": ROOM_CREATED, "roomCode": room_code}


def join_success_message(host_name: str) -> Dict[str, Any]:
    return {"type": JOIN_SUCCESS, "hostName": host_name}


def player_joined_message(player_name: str) -> Dict[str, Any]:
    return {"type": PLAYER_JOINED, "playerName": player_name}


def game_start_message(host_name: str, client_name: Optional[str]) -> Dict[str, Any]:
    return {"type": GAME_START, "hostName": host_name, "clientName": client_name}


def opponent_disconnected_message() -> Dict[str, Any]:
    return {"type": OPPONENT_DISCONNECTED}


def error_message(message: str) -> Dict[str, Any]:
    return {"type": ERROR, "message": message}
