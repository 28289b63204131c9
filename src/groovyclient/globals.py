"""Stores all global state."""

import argparse
from typing import cast
from jinja2 import Environment, StrictUndefined

args: argparse.Namespace = cast(argparse.Namespace, None)
"""
The parsed client options. Set by `groovyclient.main.main` before a session is
started, and consulted by the logger to decide on colors and debug output.
"""

jinja2_env: Environment = Environment(
    autoescape=False,
    undefined=StrictUndefined)
"""The jinja2 environment used to render the server bootstrap command."""
