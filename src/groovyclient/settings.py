"""
Provides a class that represents the resolved client configuration.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass

from groovyclient.request import DEFAULT_MAX_REQUEST_SIZE, DEFAULT_STDIN_BLOCK_SIZE

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 1961
DEFAULT_SERVER_COMMAND = "{{ server }}"
DEFAULT_RETRY_INTERVAL = 3.0

def default_state_dir() -> str:
    """Returns the directory in which the server keeps its state and log file."""
    home = os.getenv("GROOVYSERV_HOME")
    if home:
        return home
    return os.path.join(os.path.expanduser("~"), ".groovy", "groovyserver")

def default_port() -> int:
    """Returns the server port from GROOVYSERV_PORT, or the default port."""
    value = os.getenv("GROOVYSERV_PORT")
    if not value:
        return DEFAULT_PORT
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid value '{value}' for GROOVYSERV_PORT: Must be an integer.") # pylint: disable=raise-missing-from

@dataclass
class ClientSettings:
    """
    This class stores the values that determine where the server is found,
    how it is started when it is not running, and how data is exchanged with it.
    """
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    server_command: str = DEFAULT_SERVER_COMMAND
    """A jinja2 template for the command that launches the server."""
    state_dir: str = ""
    """The directory holding the server's state. Empty means `default_state_dir()`."""
    log_file: str = ""
    """The file that receives the server's output. Empty means `groovyserver.log` in the state directory."""
    retry_interval: float = DEFAULT_RETRY_INTERVAL
    max_retries: int = 0
    """The number of times the server may be started before giving up. 0 retries forever."""
    max_request_size: int = DEFAULT_MAX_REQUEST_SIZE
    stdin_block_size: int = DEFAULT_STDIN_BLOCK_SIZE

    def resolved_state_dir(self) -> str:
        """Returns the state directory, falling back to the default location."""
        return self.state_dir or default_state_dir()

    def resolved_log_file(self) -> str:
        """Returns the log file, falling back to the default location in the state directory."""
        return self.log_file or os.path.join(self.resolved_state_dir(), "groovyserver.log")

    @staticmethod
    def from_args(args: argparse.Namespace) -> ClientSettings:
        """
        Creates settings from parsed client options.

        Parameters
        ----------
        args
            The options as parsed by `groovyclient.main.main`.

        Returns
        -------
        ClientSettings
            The settings
        """
        return ClientSettings(
            host             = args.host,
            port             = args.port,
            server_command   = args.server_command,
            state_dir        = args.state_dir,
            log_file         = args.log_file,
            retry_interval   = args.retry_interval,
            max_retries      = args.max_retries,
            max_request_size = args.max_request_size,
            stdin_block_size = args.stdin_block_size)
