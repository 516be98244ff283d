"""
Peer Move Validation
Checks an announced opponent move against the local engine before it is applied
"""

from typing import Any, Dict, Optional, Tuple

from ..errors import DesyncError, MalformedMessageError
from ..rules_engine import Color, Move, RulesEngine, piece_color
from .protocol import MovePayload, validate


class MoveValidator:
    """Validates opponent moves received from the relay"""

    def __init__(self, engine: RulesEngine):
        self.engine = engine

    def parse(self, message: Dict[str, Any]) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """
        Shape check of a move message.

        Returns:
            (origin, destination) as (row, col) tuples

        Raises:
            DesyncError: the message does not carry two on-board squares
        """
        try:
            payload = validate(MovePayload, message)
        except MalformedMessageError as exc:
            raise DesyncError("malformed move", message) from exc
        return payload.from_.as_tuple(), payload.to.as_tuple()

    def find_move(
        self,
        peer_color: Color,
        origin: Tuple[int, int],
        dest: Tuple[int, int],
    ) -> Optional[Move]:
        """Return the legal Move matching (origin, dest) for the peer, or None."""
        engine = self.engine
        if engine.game_over or engine.current_player is not peer_color:
            return None
        sr, sc = origin
        if piece_color(engine.board[sr][sc]) is not peer_color:
            return None
        if engine.capture_chain and engine.selected_piece != origin:
            return None
        for move in engine.get_valid_moves(sr, sc):
            if (move.row, move.col) == dest:
                return move
        return None

    def validate_move(
        self,
        peer_color: Color,
        message: Dict[str, Any],
    ) -> Tuple[Tuple[int, int], Tuple[int, int]]:
        """
        Validate a move message announced by the peer playing `peer_color`.

        Raises:
            DesyncError: shape mismatch, wrong turn or a move the local engine does not allow
        """
        origin, dest = self.parse(message)
        if self.engine.current_player is not peer_color:
            raise DesyncError("move received out of turn", message)
        if self.find_move(peer_color, origin, dest) is None:
            raise DesyncError(f"illegal move {origin}->{dest}", message)
        return origin, dest
