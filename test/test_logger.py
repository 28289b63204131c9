import argparse
import pytest

import groovyclient.globals as G
from groovyclient import logger

def test_decode_escape():
    assert logger.decode_escape(b"Size: 3\r\n\xff\x00") == "Size: 3\\r\\n\\xff\\0"

def test_debug_disabled(monkeypatch, capsys):
    monkeypatch.setattr(G, "args", argparse.Namespace(debug=False, no_color=True))
    logger.debug("hidden")
    assert capsys.readouterr().err == ""

def test_debug_enabled(monkeypatch, capsys):
    monkeypatch.setattr(G, "args", argparse.Namespace(debug=True, no_color=True))
    logger.debug_args("run_invocation", {"self": None, "args": ["-e"]})
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == "   DEBUG: run_invocation args=['-e']\n"

@pytest.mark.parametrize("no_color,expected", [(True, ""), (False, "\033[1m")])
def test_col(monkeypatch, no_color, expected):
    monkeypatch.setattr(G, "args", argparse.Namespace(debug=False, no_color=no_color))
    assert logger.col("\033[1m") == expected

def test_server_starting_goes_to_stderr(monkeypatch, capsys):
    monkeypatch.setattr(G, "args", argparse.Namespace(debug=False, no_color=True))
    logger.server_starting("localhost", 1961, 1)
    logger.server_starting("localhost", 1961, 2)
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == "starting server.. localhost:1961\nstarting server.. localhost:1961 (attempt 2)\n"
