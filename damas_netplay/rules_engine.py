import logging
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

from .match_recorder import MatchRecord, MatchRecorder, NullMatchRecorder

logger = logging.getLogger(__name__)

BOARD_SIZE = 8
PIECES_PER_SIDE = 12


class Cell(IntEnum):
    EMPTY = 0
    RED = 1
    BLUE = 2
    RED_KING = 3
    BLUE_KING = 4


class Color(IntEnum):
    RED = 1
    BLUE = 2

    @property
    def opponent(self) -> "Color":
        return Color.BLUE if self is Color.RED else Color.RED


MAN_DIRECTIONS = {
    Color.RED: [(-1, -1), (-1, 1)],  # toward row 0
    Color.BLUE: [(1, -1), (1, 1)],  # toward row 7
}
KING_DIRECTIONS = [(-1, -1), (-1, 1), (1, -1), (1, 1)]
CROWN_ROW = {Color.RED: 0, Color.BLUE: BOARD_SIZE - 1}


def piece_color(cell: int) -> Optional[Color]:
    if cell in (Cell.RED, Cell.RED_KING):
        return Color.RED
    if cell in (Cell.BLUE, Cell.BLUE_KING):
        return Color.BLUE
    return None


def is_king(cell: int) -> bool:
    return cell in (Cell.RED_KING, Cell.BLUE_KING)


def crowned(cell: int) -> Cell:
    return Cell.RED_KING if piece_color(cell) is Color.RED else Cell.BLUE_KING


def in_bounds(row: int, col: int) -> bool:
    return 0 <= row < BOARD_SIZE and 0 <= col < BOARD_SIZE


def is_dark_square(row: int, col: int) -> bool:
    return (row + col) % 2 == 1


def initial_board() -> List[List[int]]:
    """Standard opening: BLUE men on rows 0-2, RED men on rows 5-7, dark squares only."""
    board: List[List[int]] = []
    for row in range(BOARD_SIZE):
        line: List[int] = []
        for col in range(BOARD_SIZE):
            if not is_dark_square(row, col):
                line.append(Cell.EMPTY)
            elif row < 3:
                line.append(Cell.BLUE)
            elif row > 4:
                line.append(Cell.RED)
            else:
                line.append(Cell.EMPTY)
        board.append(line)
    return board


@dataclass(frozen=True)
class Move:
    row: int
    col: int
    capture: bool = False
    captured_row: Optional[int] = None
    captured_col: Optional[int] = None

    @property
    def captured(self) -> Optional[Tuple[int, int]]:
        if not self.capture:
            return None
        return (self.captured_row, self.captured_col)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"row": self.row, "col": self.col, "capture": self.capture}
        if self.capture:
            out["capturedRow"] = self.captured_row
            out["capturedCol"] = self.captured_col
        return out


@dataclass(frozen=True)
class PlayerProfile:
    id: str
    name: str


DEFAULT_PLAYER1 = PlayerProfile("1", "Jogador 1")
DEFAULT_PLAYER2 = PlayerProfile("2", "Jogador 2")


@dataclass
class MoveResult:
    success: bool
    captured: bool = False
    crowned: bool = False
    continue_capture: bool = False
    game_over: bool = False
    winner: Optional[Color] = None
    from_square: Optional[Tuple[int, int]] = None
    to_square: Optional[Tuple[int, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "captured": self.captured,
            "crowned": self.crowned,
        }
        if self.continue_capture:
            out["continueCapture"] = True
        if self.game_over:
            out["gameOver"] = True
            out["winner"] = int(self.winner) if self.winner is not None else None
        return out


class RulesEngine:
    """Brazilian checkers rules for one match.

    Contract:
    - State: 8x8 board of Cell values, current player, selection and chain flags
    - Validation: select_piece/move_piece reject illegal input by return value, never raise
    - Turn: a capture keeps the turn while the same piece can keep capturing, unless it was crowned
    - End: a side without pieces, or without a legal move on its turn, loses
    """

    def __init__(self, recorder: Optional[MatchRecorder] = None) -> None:
        self.recorder: MatchRecorder = recorder if recorder is not None else NullMatchRecorder()
        self.board: List[List[int]] = [[Cell.EMPTY] * BOARD_SIZE for _ in range(BOARD_SIZE)]
        self.current_player: Optional[Color] = None
        self.selected_piece: Optional[Tuple[int, int]] = None
        self.valid_moves: List[Move] = []
        self.must_capture: bool = False
        self.capture_chain: bool = False
        self.red_pieces: int = 0
        self.blue_pieces: int = 0
        self.player1: Optional[PlayerProfile] = None
        self.player2: Optional[PlayerProfile] = None
        self.start_time: Optional[float] = None
        self.game_over: bool = False
        self.winner: Optional[Color] = None
        self.moves_list: List[Dict[str, Any]] = []
        self._summary: Optional[Dict[str, Any]] = None

    # ---- Setup ----
    def init(self, player1: Optional[PlayerProfile] = None, player2: Optional[PlayerProfile] = None) -> None:
        """Start a new match. player1 plays RED and moves first, player2 plays BLUE."""
        self.player1 = player1 if player1 is not None else DEFAULT_PLAYER1
        self.player2 = player2 if player2 is not None else DEFAULT_PLAYER2
        self.board = initial_board()
        self.current_player = Color.RED
        self.selected_piece = None
        self.valid_moves = []
        self.must_capture = False
        self.capture_chain = False
        self.red_pieces = PIECES_PER_SIDE
        self.blue_pieces = PIECES_PER_SIDE
        self.start_time = time.monotonic()
        self.game_over = False
        self.winner = None
        self.moves_list = []
        self._summary = None
        logger.debug("[Engine] New match %s (RED) vs %s (BLUE)", self.player1.name, self.player2.name)

    def load_position(self, board: List[List[int]], current_player: Color) -> None:
        """Install an arbitrary position; counters and the capture flag are derived from it."""
        if len(board) != BOARD_SIZE or any(len(row) != BOARD_SIZE for row in board):
            raise ValueError("board must be 8x8")
        grid: List[List[int]] = []
        for r, row in enumerate(board):
            line: List[int] = []
            for c, value in enumerate(row):
                cell = Cell(value)
                if cell != Cell.EMPTY and not is_dark_square(r, c):
                    raise ValueError(f"piece on light square ({r},{c})")
                line.append(cell)
            grid.append(line)
        self.board = grid
        self.current_player = Color(current_player)
        self.selected_piece = None
        self.valid_moves = []
        self.capture_chain = False
        self.red_pieces = self.count_pieces(Color.RED)
        self.blue_pieces = self.count_pieces(Color.BLUE)
        if self.start_time is None:
            self.start_time = time.monotonic()
        self.game_over = False
        self.winner = None
        self._summary = None
        self.must_capture = self.check_must_capture()

    # ---- Queries ----
    def count_pieces(self, color: Color) -> int:
        return sum(1 for row in self.board for cell in row if piece_color(cell) is color)

    def is_current_player_piece(self, cell: int) -> bool:
        return self.current_player is not None and piece_color(cell) is self.current_player

    def _piece_moves(self, row: int, col: int) -> Tuple[List[Move], List[Move]]:
        """Return (simple moves, captures) for the piece at (row, col), ignoring turn state."""
        piece = self.board[row][col]
        color = piece_color(piece)
        if color is None:
            return [], []
        directions = KING_DIRECTIONS if is_king(piece) else MAN_DIRECTIONS[color]
        moves: List[Move] = []
        captures: List[Move] = []
        for dr, dc in directions:
            nr, nc = row + dr, col + dc
            if not in_bounds(nr, nc):
                continue
            target = self.board[nr][nc]
            if target == Cell.EMPTY:
                moves.append(Move(nr, nc))
            elif piece_color(target) is color.opponent:
                jr, jc = nr + dr, nc + dc
                if in_bounds(jr, jc) and self.board[jr][jc] == Cell.EMPTY:
                    captures.append(Move(jr, jc, True, nr, nc))
        return moves, captures

    def get_valid_moves(self, row: int, col: int) -> List[Move]:
        if not in_bounds(row, col):
            return []
        moves, captures = self._piece_moves(row, col)
        if captures:
            return captures
        # Another piece of the side to move can capture, so this one may not move.
        if self.must_capture and self.is_current_player_piece(self.board[row][col]):
            return []
        return moves

    def _squares_of(self, color: Color):
        for r in range(BOARD_SIZE):
            for c in range(BOARD_SIZE):
                if piece_color(self.board[r][c]) is color:
                    yield r, c

    def check_must_capture(self) -> bool:
        if self.current_player is None:
            return False
        for r, c in self._squares_of(self.current_player):
            if self._piece_moves(r, c)[1]:
                return True
        return False

    def get_pieces_with_mandatory_capture(self) -> List[Tuple[int, int]]:
        if not self.must_capture or self.current_player is None:
            return []
        return [(r, c) for r, c in self._squares_of(self.current_player) if self._piece_moves(r, c)[1]]

    def has_any_move(self, color: Color) -> bool:
        must = any(self._piece_moves(r, c)[1] for r, c in self._squares_of(color))
        for r, c in self._squares_of(color):
            moves, captures = self._piece_moves(r, c)
            if captures or (moves and not must):
                return True
        return False

    def check_game_over(self) -> Dict[str, Any]:
        """Evaluate the end of game for the side about to move."""
        if self.current_player is None:
            return {"over": False, "winner": None}
        if self.red_pieces == 0:
            return {"over": True, "winner": Color.BLUE}
        if self.blue_pieces == 0:
            return {"over": True, "winner": Color.RED}
        if not self.has_any_move(self.current_player):
            return {"over": True, "winner": self.current_player.opponent}
        return {"over": False, "winner": None}

    # ---- Input ----
    def select_piece(self, row: int, col: int) -> bool:
        if self.game_over or self.current_player is None or not in_bounds(row, col):
            return False
        if self.capture_chain and self.selected_piece is not None:
            if (row, col) != self.selected_piece:
                return False
        if not self.is_current_player_piece(self.board[row][col]):
            return False
        moves = self.get_valid_moves(row, col)
        if self.must_capture and not any(m.capture for m in moves):
            return False
        self.selected_piece = (row, col)
        self.valid_moves = moves
        return True

    def move_piece(self, to_row: int, to_col: int) -> MoveResult:
        if self.game_over or self.selected_piece is None:
            return MoveResult(success=False)
        move = next((m for m in self.valid_moves if m.row == to_row and m.col == to_col), None)
        if move is None:
            return MoveResult(success=False)

        from_row, from_col = self.selected_piece
        piece = self.board[from_row][from_col]
        color = piece_color(piece)
        self.board[to_row][to_col] = piece
        self.board[from_row][from_col] = Cell.EMPTY

        captured = False
        if move.capture:
            self.board[move.captured_row][move.captured_col] = Cell.EMPTY
            captured = True
            if color is Color.RED:
                self.blue_pieces -= 1
            else:
                self.red_pieces -= 1

        was_crowned = False
        if not is_king(piece) and to_row == CROWN_ROW[color]:
            self.board[to_row][to_col] = crowned(piece)
            was_crowned = True

        self.moves_list.append({
            "player": int(color),
            "from": {"row": from_row, "col": from_col},
            "to": {"row": to_row, "col": to_col},
            "capture": captured,
            "crowned": was_crowned,
        })
        result = MoveResult(
            success=True,
            captured=captured,
            crowned=was_crowned,
            from_square=(from_row, from_col),
            to_square=(to_row, to_col),
        )

        if captured and not was_crowned:
            chain = self._piece_moves(to_row, to_col)[1]
            if chain:
                self.selected_piece = (to_row, to_col)
                self.valid_moves = chain
                self.must_capture = True
                self.capture_chain = True
                result.continue_capture = True
                return result

        self.selected_piece = None
        self.valid_moves = []
        self.capture_chain = False
        self.current_player = color.opponent
        self.must_capture = self.check_must_capture()

        outcome = self.check_game_over()
        if outcome["over"]:
            self.game_over = True
            self.winner = outcome["winner"]
            self.must_capture = False
            result.game_over = True
            result.winner = self.winner
            logger.info("[Engine] Game over, winner=%s", self.winner.name)
        return result

    # ---- Results ----
    def elapsed_seconds(self) -> int:
        if self.start_time is None:
            return 0
        return int(time.monotonic() - self.start_time)

    def end_game(self, winner_id: Color) -> Dict[str, Any]:
        """Record the finished match once and return the summary shown to players."""
        if self._summary is not None:
            logger.warning("[Engine] end_game called again; match already recorded")
            return self._summary
        winner_id = Color(winner_id)
        duration = self.elapsed_seconds()
        p1 = self.player1 if self.player1 is not None else DEFAULT_PLAYER1
        p2 = self.player2 if self.player2 is not None else DEFAULT_PLAYER2
        winner, loser = (p1, p2) if winner_id is Color.RED else (p2, p1)
        record = MatchRecord(
            player1_id=p1.id,
            player2_id=p2.id,
            winner_id=winner.id,
            player1_pieces=self.red_pieces,
            player2_pieces=self.blue_pieces,
            duration=duration,
        )
        self.recorder.record(record)
        self._summary = {
            "winner": winner,
            "loser": loser,
            "winner_pieces": self.red_pieces if winner_id is Color.RED else self.blue_pieces,
            "duration": duration,
            "record": record,
        }
        return self._summary

    def get_current_player(self) -> Optional[PlayerProfile]:
        if self.current_player is None:
            return None
        return self.player1 if self.current_player is Color.RED else self.player2

    def get_stats(self) -> Dict[str, Any]:
        return {
            "current_player": self.current_player,
            "current_player_obj": self.get_current_player(),
            "red_pieces": self.red_pieces,
            "blue_pieces": self.blue_pieces,
            "player1": self.player1,
            "player2": self.player2,
            "must_capture": self.must_capture,
            "duration": self.elapsed_seconds(),
        }

    def serialize_board(self) -> List[List[int]]:
        return [[int(cell) for cell in row] for row in self.board]

    def serialize_state(self) -> Dict[str, Any]:
        sel = self.selected_piece
        return {
            "turn": self.current_player.name if self.current_player is not None else None,
            "board": self.serialize_board(),
            "selected": {"row": sel[0], "col": sel[1]} if sel else None,
            "valid_moves": [m.to_dict() for m in self.valid_moves],
            "must_capture": self.must_capture,
            "capture_chain": self.capture_chain,
            "red_pieces": self.red_pieces,
            "blue_pieces": self.blue_pieces,
            "game_over": self.game_over,
            "winner": self.winner.name if self.winner is not None else None,
            "moves": list(self.moves_list),
        }
