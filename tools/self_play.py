"""
Random self-play over a loopback relay.

Two SyncAdapters, each with its own RulesEngine, play random legal moves; every
move message is delivered to the other side exactly as the relay would forward it.
After each ply the board invariants are checked and both engines must agree.

Usage:
  python tools/self_play.py              # 20 games, seed 7
  python tools/self_play.py --games 200 --seed 1 --max-plies 400
"""
import argparse
import os
import random
import sys
from typing import Dict, List, Optional, Tuple

# Ensure the package is importable when running directly from a checkout
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from damas_netplay.config import Settings, load_settings
from damas_netplay.match_recorder import InMemoryMatchRecorder
from damas_netplay.netplay import protocol
from damas_netplay.rules_engine import BOARD_SIZE, Cell, RulesEngine, is_dark_square
from damas_netplay.sync_adapter import SyncAdapter

Square = Tuple[int, int]


def check_board_invariants(engine: RulesEngine) -> None:
    """Pieces only on dark squares, valid cell values, counters match the board."""
    red = blue = 0
    for r in range(BOARD_SIZE):
        for c in range(BOARD_SIZE):
            cell = engine.board[r][c]
            if cell not in tuple(Cell):
                raise AssertionError(f"Bad cell value {cell!r} at ({r},{c})")
            if cell == Cell.EMPTY:
                continue
            if not is_dark_square(r, c):
                raise AssertionError(f"Piece on light square ({r},{c})")
            if cell in (Cell.RED, Cell.RED_KING):
                red += 1
            else:
                blue += 1
    if (red, blue) != (engine.red_pieces, engine.blue_pieces):
        raise AssertionError(f"Counters {engine.red_pieces}/{engine.blue_pieces} != board {red}/{blue}")


def legal_pairs(engine: RulesEngine) -> List[Tuple[Square, Square]]:
    """All (origin, destination) pairs the side to move may play right now."""
    if engine.capture_chain and engine.selected_piece is not None:
        origins = [engine.selected_piece]
    else:
        origins = [
            (r, c)
            for r in range(BOARD_SIZE)
            for c in range(BOARD_SIZE)
            if engine.is_current_player_piece(engine.board[r][c])
        ]
    pairs = []
    for origin in origins:
        for mv in engine.get_valid_moves(*origin):
            pairs.append((origin, (mv.row, mv.col)))
    return pairs


def make_loopback(recorder: Optional[InMemoryMatchRecorder] = None,
                  settings: Optional[Settings] = None) -> Tuple[SyncAdapter, SyncAdapter]:
    """Host and client adapters wired back to back, already past the lobby."""
    inbox: Dict[str, SyncAdapter] = {}

    def to_client(message):
        if message.get("type") == protocol.MOVE:
            inbox["client"].handle_message(dict(message))

    def to_host(message):
        if message.get("type") == protocol.MOVE:
            inbox["host"].handle_message(dict(message))

    settings = settings if settings is not None else Settings()
    host = SyncAdapter.from_settings(RulesEngine(recorder), to_client, settings)
    client = SyncAdapter.from_settings(RulesEngine(), to_host, settings)
    inbox["host"], inbox["client"] = host, client
    code = host.create_room("Host")
    client.join_room(code, "Guest")
    start = protocol.game_start_message("Host", "Guest")
    host.handle_message(start)
    client.handle_message(start)
    return host, client


def play_mirrored_game(rng: random.Random, max_plies: int = 300,
                       recorder: Optional[InMemoryMatchRecorder] = None,
                       settings: Optional[Settings] = None) -> Dict[str, int]:
    host, client = make_loopback(recorder, settings)
    stats = {"plies": 0, "captures": 0, "crowned": 0, "finished": 0}
    for _ in range(max_plies):
        if host.engine.game_over:
            break
        mover = host if host.is_my_turn() else client
        pairs = legal_pairs(mover.engine)
        if not pairs:
            raise AssertionError("Side to move has no legal move but the game is not over")
        origin, dest = rng.choice(pairs)
        if not mover.select_piece(*origin):
            raise AssertionError(f"Engine rejected its own legal selection {origin}")
        res = mover.move_piece(*dest)
        if not res.success:
            raise AssertionError(f"Engine rejected its own legal move {origin}->{dest}")
        stats["plies"] += 1
        stats["captures"] += int(res.captured)
        stats["crowned"] += int(res.crowned)
        for side in (host, client):
            if side.desynced:
                raise AssertionError(f"Desync after {origin}->{dest}")
            check_board_invariants(side.engine)
        if host.engine.serialize_board() != client.engine.serialize_board():
            raise AssertionError(f"Mirror boards differ after {origin}->{dest}")
    if host.engine.game_over:
        stats["finished"] = 1
        if host.engine.winner != client.engine.winner:
            raise AssertionError("Engines disagree on the winner")
    return stats


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--games", type=int, default=20)
    parser.add_argument("--seed", type=int, default=7)
    parser.add_argument("--max-plies", type=int, default=300)
    args = parser.parse_args(argv)

    rng = random.Random(args.seed)
    settings = load_settings()
    recorder = InMemoryMatchRecorder(settings.match_history_limit)
    totals = {"plies": 0, "captures": 0, "crowned": 0, "finished": 0}
    for _ in range(args.games):
        stats = play_mirrored_game(rng, args.max_plies, recorder, settings)
        for key, value in stats.items():
            totals[key] += value
    print(f"[OK] games={args.games} finished={totals['finished']} plies={totals['plies']} "
          f"captures={totals['captures']} crowned={totals['crowned']} recorded={len(recorder.matches)}")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except AssertionError as e:
        print(f"[FAIL] {e}")
        sys.exit(1)
