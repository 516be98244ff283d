"""Tests for SyncAdapter.

Two adapters are wired back to back through plain lists standing in for the
relay socket. Covers: seats, turn gating, outbound move shape, mirror replay,
desync handling, lobby callbacks, game over and the keep-alive loop.
"""

from __future__ import annotations

import asyncio

import pytest

from damas_netplay.config import Settings
from damas_netplay.errors import DesyncError
from damas_netplay.match_recorder import InMemoryMatchRecorder
from damas_netplay.netplay import protocol
from damas_netplay.rules_engine import Cell, Color, RulesEngine
from damas_netplay.sync_adapter import SyncAdapter

R, B = Cell.RED, Cell.BLUE


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class Pair:
    """Host and client adapters plus everything each one sent."""

    def __init__(self, recorder=None):
        self.host_sent = []
        self.client_sent = []
        self.host = SyncAdapter(RulesEngine(recorder), self.host_sent.append)
        self.client = SyncAdapter(RulesEngine(), self.client_sent.append)
        self.code = self.host.create_room("Ana", "abc123")
        self.client.join_room("abc123", "Bia")

    def start(self):
        start = protocol.game_start_message("Ana", "Bia")
        self.host.handle_message(start)
        self.client.handle_message(start)

    def last_move(self, sent):
        moves = [m for m in sent if m["type"] == protocol.MOVE]
        return moves[-1]


@pytest.fixture
def pair():
    return Pair()


@pytest.fixture
def started(pair):
    pair.start()
    return pair


# ---------------------------------------------------------------------------
# Lobby
# ---------------------------------------------------------------------------


class TestLobby:

    def test_creator_plays_red(self, pair):
        assert pair.code == "ABC123"
        assert pair.host.is_host
        assert pair.host.my_player is Color.RED
        assert pair.host_sent[0] == {"type": "create_room", "roomCode": "ABC123", "playerName": "Ana"}

    def test_joiner_plays_blue_and_code_is_upper_cased(self, pair):
        assert not pair.client.is_host
        assert pair.client.my_player is Color.BLUE
        assert pair.client_sent[0] == {"type": "join_room", "roomCode": "ABC123", "playerName": "Bia"}

    def test_generated_room_code(self):
        adapter = SyncAdapter(RulesEngine(), lambda msg: None)
        code = adapter.create_room("Ana")
        assert len(code) == 6
        assert code.isalnum() and code.upper() == code

    def test_only_host_starts(self, pair):
        assert pair.host.start_game()
        assert pair.host_sent[-1] == {"type": "start_game", "roomCode": "ABC123"}
        assert not pair.client.start_game()

    def test_connection_callbacks(self, pair):
        seen = []
        pair.client.on_connected = seen.append
        pair.host.on_connected = seen.append
        pair.client.handle_message(protocol.join_success_message("Ana"))
        pair.host.handle_message(protocol.player_joined_message("Bia"))
        assert seen == ["Ana", "Bia"]
        assert pair.client.is_connected and pair.host.is_connected

    def test_room_created_callback(self, pair):
        seen = []
        pair.host.on_room_created = seen.append
        pair.host.handle_message(protocol.room_created_message("ABC123"))
        assert seen == ["ABC123"]

    def test_server_error_is_reported(self, pair):
        seen = []
        pair.client.on_error = seen.append
        pair.client.handle_message(protocol.error_message("Room not found"))
        assert pair.client.last_error == "Room not found"
        assert seen == ["Room not found"]

    def test_game_start_initialises_engine(self, pair):
        seen = []
        pair.client.on_game_start = seen.append
        pair.start()
        assert pair.client.in_game
        assert pair.client.opponent_name == "Ana"
        assert pair.host.opponent_name == "Bia"
        assert pair.client.engine.player1.name == "Ana"
        assert pair.client.engine.player2.name == "Bia"
        assert pair.client.engine.current_player is Color.RED
        assert seen and seen[0]["type"] == "game_start"

    def test_malformed_frame_is_ignored(self, started):
        started.client.handle_text("{not json")
        started.client.handle_text('{"type": "mystery"}')
        assert not started.client.desynced


# ---------------------------------------------------------------------------
# Turn gate and outbound moves
# ---------------------------------------------------------------------------


class TestLocalMoves:

    def test_no_input_before_game_start(self, pair):
        assert not pair.host.select_piece(5, 0)
        assert not pair.host.move_piece(4, 1).success

    def test_turns(self, started):
        assert started.host.is_my_turn()
        assert not started.client.is_my_turn()
        assert not started.client.select_piece(2, 1)

    def test_move_sends_origin_and_destination(self, started):
        assert started.host.select_piece(5, 0)
        result = started.host.move_piece(4, 1)
        assert result.success
        assert started.last_move(started.host_sent) == {
            "type": "move",
            "roomCode": "ABC123",
            "from": {"row": 5, "col": 0},
            "to": {"row": 4, "col": 1},
        }

    def test_failed_move_sends_nothing(self, started):
        started.host.select_piece(5, 0)
        count = len(started.host_sent)
        assert not started.host.move_piece(3, 2).success
        assert len(started.host_sent) == count

    def test_move_after_disconnect_is_not_sent(self, started):
        started.host.socket_open = False
        started.host.select_piece(5, 0)
        assert started.host.move_piece(4, 1).success
        assert all(m["type"] != "move" for m in started.host_sent)


# ---------------------------------------------------------------------------
# Inbound moves
# ---------------------------------------------------------------------------


class TestRemoteMoves:

    def test_mirror_replay_matches_board(self, started):
        seen = []
        started.client.on_opponent_move = seen.append
        started.host.select_piece(5, 2)
        started.host.move_piece(4, 3)
        started.client.handle_message(started.last_move(started.host_sent))
        assert started.client.engine.serialize_board() == started.host.engine.serialize_board()
        assert started.client.is_my_turn()
        assert len(seen) == 1 and seen[0].success

        started.client.select_piece(2, 3)
        started.client.move_piece(3, 2)
        started.host.handle_message(started.last_move(started.client_sent))
        assert started.host.engine.serialize_state() == started.client.engine.serialize_state()
        assert started.host.is_my_turn()

    def test_mirror_replay_through_capture_chain(self, started, board_with):
        position = board_with({(5, 2): R, (4, 1): B, (2, 1): B, (0, 7): B})
        for side in (started.host, started.client):
            side.engine.load_position(position, Color.RED)
        started.host.select_piece(5, 2)
        assert started.host.move_piece(3, 0).continue_capture
        started.client.handle_message(started.last_move(started.host_sent))
        assert started.client.engine.capture_chain
        assert not started.client.is_my_turn()
        started.host.move_piece(1, 2)
        started.client.handle_message(started.last_move(started.host_sent))
        assert started.client.engine.serialize_board() == started.host.engine.serialize_board()
        assert started.client.is_my_turn()

    def test_illegal_move_desyncs(self, started):
        seen = []
        started.client.on_desync = seen.append
        before = started.client.engine.serialize_board()
        result = started.client.receive_move(protocol.move_message("ABC123", (5, 0), (3, 2)))
        assert not result.success
        assert started.client.desynced
        assert isinstance(seen[0], DesyncError)
        assert started.client.engine.serialize_board() == before

    def test_out_of_turn_move_desyncs(self, started):
        result = started.host.receive_move(protocol.move_message("ABC123", (2, 1), (3, 0)))
        assert not result.success
        assert started.host.desynced

    def test_malformed_move_desyncs(self, started):
        started.client.handle_message({"type": "move", "from": {"row": 9, "col": 0}, "to": {"row": 4}})
        assert started.client.desynced

    def test_desync_freezes_local_input(self, started):
        started.client.receive_move(protocol.move_message("ABC123", (5, 0), (3, 2)))
        started.host.select_piece(5, 0)
        started.host.move_piece(4, 1)
        assert not started.client.receive_move(started.last_move(started.host_sent)).success
        assert not started.client.select_piece(2, 1)

    def test_engine_still_checks_without_validator(self):
        client = SyncAdapter(RulesEngine(), lambda msg: None, validate_incoming=False)
        client.join_room("ABC123", "Bia")
        client.handle_message(protocol.game_start_message("Ana", "Bia"))
        client.receive_move(protocol.move_message("ABC123", (5, 0), (3, 2)))
        assert client.desynced

    def test_restart_clears_desync(self, started):
        started.client.receive_move(protocol.move_message("ABC123", (5, 0), (3, 2)))
        started.start()
        assert not started.client.desynced
        assert started.client.in_game


# ---------------------------------------------------------------------------
# Game over and disconnects
# ---------------------------------------------------------------------------


class TestGameOver:

    def test_both_sides_finish_and_host_records(self, board_with):
        recorder = InMemoryMatchRecorder()
        pair = Pair(recorder)
        pair.start()
        position = board_with({(5, 2): R, (4, 1): B})
        for side in (pair.host, pair.client):
            side.engine.load_position(position, Color.RED)
        finished = []
        pair.host.on_game_over = finished.append
        pair.client.on_game_over = finished.append

        pair.host.select_piece(5, 2)
        result = pair.host.move_piece(3, 0)
        pair.client.handle_message(pair.last_move(pair.host_sent))

        assert result.game_over and result.winner is Color.RED
        assert pair.client.engine.game_over
        assert len(finished) == 2
        assert pair.host.result_summary["winner"].name == "Ana"
        assert pair.client.result_summary["loser"].name == "Bia"
        assert not pair.host.in_game and not pair.client.in_game
        assert len(recorder.matches) == 1

    def test_opponent_disconnected(self, started):
        calls = []
        started.client.on_disconnected = lambda: calls.append(True)
        started.client.handle_message(protocol.opponent_disconnected_message())
        assert calls == [True]
        assert not started.client.in_game
        assert not started.client.is_connected

    def test_reset(self, started):
        started.host.reset()
        assert started.host.room_code is None
        assert started.host.my_player is None
        assert not started.host.socket_open


# ---------------------------------------------------------------------------
# Keep-alive
# ---------------------------------------------------------------------------


class TestHeartbeat:

    def test_pings_until_socket_closes(self):
        sent = []
        adapter = SyncAdapter(RulesEngine(), None)

        def send(msg):
            sent.append(msg)
            if msg["type"] == protocol.PING and len(sent) >= 3:
                adapter.socket_open = False

        adapter.send = send
        adapter.create_room("Ana", "ABC123")
        asyncio.run(adapter.heartbeat(0))
        assert [m["type"] for m in sent] == ["create_room", "ping", "ping"]

    def test_interval_from_settings(self):
        adapter = SyncAdapter.from_settings(RulesEngine(), lambda msg: None, Settings(heartbeat_seconds=5.0),
                                            validate_incoming=False)
        assert adapter.heartbeat_seconds == 5.0
        assert not adapter.validate_incoming

    def test_no_ping_when_closed(self):
        sent = []
        adapter = SyncAdapter(RulesEngine(), sent.append, heartbeat_seconds=0)
        asyncio.run(adapter.heartbeat())
        assert sent == []
