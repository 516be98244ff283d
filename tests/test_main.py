"""Tests for the relay entry point."""

from __future__ import annotations

import damas_netplay.__main__ as cli
from fastapi import FastAPI


def test_main_runs_uvicorn_with_cli_overrides(monkeypatch, tmp_path):
    calls = {}

    def fake_run(app, host, port, log_level):
        calls.update(app=app, host=host, port=port, log_level=log_level)

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    cli.main(["--host", "127.0.0.1", "--port", "4100", "--log-level", "debug",
              "--settings", str(tmp_path / "missing.json")])
    assert isinstance(calls["app"], FastAPI)
    assert calls["host"] == "127.0.0.1"
    assert calls["port"] == 4100
    assert calls["log_level"] == "debug"
    assert calls["app"].state.settings.port == 4100
