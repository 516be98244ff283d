import datetime
import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 100


def _utcnow_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


@dataclass(frozen=True)
class MatchRecord:
    """Summary of a finished match. player1 played RED, player2 played BLUE."""

    player1_id: str
    player2_id: str
    winner_id: Optional[str]
    player1_pieces: int
    player2_pieces: int
    duration: int  # seconds
    played_at: str = field(default_factory=_utcnow_iso)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class MatchRecorder(Protocol):
    def record(self, match: MatchRecord) -> None:
        ...


class NullMatchRecorder:
    """Recorder used when the caller does not care about match history."""

    def record(self, match: MatchRecord) -> None:
        logger.debug("[Recorder] Match finished: %s", match.to_dict())


class InMemoryMatchRecorder:
    """Keeps the most recent matches, newest first."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self.limit = max(1, int(limit))
        self._matches: List[MatchRecord] = []
        self._lock = threading.Lock()

    def record(self, match: MatchRecord) -> None:
        with self._lock:
            self._matches.insert(0, match)
            del self._matches[self.limit:]
        logger.info(
            "[Recorder] %s vs %s -> winner %s (%ss)",
            match.player1_id, match.player2_id, match.winner_id, match.duration,
        )

    @property
    def matches(self) -> List[MatchRecord]:
        with self._lock:
            return list(self._matches)

    def matches_for(self, player_id: str) -> List[MatchRecord]:
        return [m for m in self.matches if player_id in (m.player1_id, m.player2_id)]

    def clear(self) -> None:
        with self._lock:
            self._matches.clear()
