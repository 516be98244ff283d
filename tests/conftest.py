"""Shared fixtures.

Fixtures:
    engine       - RulesEngine with a fresh match between Ana (RED) and Bia (BLUE).
    recorder     - InMemoryMatchRecorder collecting finished matches.
    board_with   - Builds an 8x8 board from a {(row, col): Cell} mapping.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Add project root so `damas_netplay` and `tools` resolve from a checkout
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from damas_netplay.match_recorder import InMemoryMatchRecorder  # noqa: E402
from damas_netplay.rules_engine import BOARD_SIZE, Cell, PlayerProfile, RulesEngine  # noqa: E402


@pytest.fixture
def recorder():
    return InMemoryMatchRecorder()


@pytest.fixture
def engine(recorder):
    eng = RulesEngine(recorder)
    eng.init(PlayerProfile("ana", "Ana"), PlayerProfile("bia", "Bia"))
    return eng


def _board_with(pieces):
    board = [[Cell.EMPTY] * BOARD_SIZE for _ in range(BOARD_SIZE)]
    for (row, col), cell in pieces.items():
        board[row][col] = cell
    return board


@pytest.fixture
def board_with():
    return _board_with
