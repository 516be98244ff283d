"""Brazilian checkers rules engine with a two-player WebSocket relay."""

from .match_recorder import InMemoryMatchRecorder, MatchRecord, MatchRecorder
from .rules_engine import Cell, Color, Move, MoveResult, PlayerProfile, RulesEngine
from .sync_adapter import SyncAdapter

__version__ = "1.0.0"

__all__ = [
    "Cell",
    "Color",
    "InMemoryMatchRecorder",
    "MatchRecord",
    "MatchRecorder",
    "Move",
    "MoveResult",
    "PlayerProfile",
    "RulesEngine",
    "SyncAdapter",
]
