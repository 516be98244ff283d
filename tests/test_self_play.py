"""Random mirrored games over the loopback relay from tools/self_play.py."""

from __future__ import annotations

import random

import pytest

from damas_netplay.match_recorder import InMemoryMatchRecorder
from tools.self_play import check_board_invariants, legal_pairs, main, make_loopback, play_mirrored_game


def test_opening_has_seven_moves():
    host, _ = make_loopback()
    assert len(legal_pairs(host.engine)) == 7
    check_board_invariants(host.engine)


@pytest.mark.parametrize("seed", range(8))
def test_random_games_stay_in_sync(seed):
    recorder = InMemoryMatchRecorder()
    stats = play_mirrored_game(random.Random(seed), max_plies=400, recorder=recorder)
    assert stats["plies"] > 0
    assert len(recorder.matches) == stats["finished"]


def test_invariant_check_catches_counter_drift():
    host, _ = make_loopback()
    host.engine.red_pieces -= 1
    with pytest.raises(AssertionError, match="Counters"):
        check_board_invariants(host.engine)


def test_main_reports_ok(capsys):
    assert main(["--games", "2", "--seed", "5", "--max-plies", "200"]) == 0
    assert capsys.readouterr().out.startswith("[OK] games=2")
