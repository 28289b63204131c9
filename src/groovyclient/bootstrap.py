"""
Launches the server process when no server is listening.
"""

import shlex
import subprocess
from typing import Optional

from jinja2 import TemplateError

from groovyclient import globals as G, logger
from groovyclient.settings import ClientSettings
from groovyclient.utils import FatalError, ensure_directory, sibling_executable

SERVER_EXECUTABLE = "groovyserver"
"""The name of the server executable, expected next to the client executable."""

def render_server_command(settings: ClientSettings, server: Optional[str] = None) -> list[str]:
    """
    Renders the configured server command template and splits it into an argument list.

    Parameters
    ----------
    settings
        The client settings containing the command template.
    server
        The path of the server executable. Defaults to the executable next to this program.

    Returns
    -------
    list[str]
        The command to execute.

    Raises
    ------
    FatalError
        The template is invalid or renders to an empty command.
    """
    try:
        rendered = G.jinja2_env.from_string(settings.server_command).render(
            server=server if server is not None else sibling_executable(SERVER_EXECUTABLE),
            state_dir=settings.resolved_state_dir(),
            log_file=settings.resolved_log_file(),
            host=settings.host,
            port=settings.port)
    except TemplateError as e:
        raise FatalError(f"invalid server command template '{settings.server_command}': {str(e)}") # pylint: disable=raise-missing-from

    command = shlex.split(rendered)
    if len(command) == 0:
        raise FatalError("the server command is empty")
    return command

class Bootstrapper:
    """
    Starts the server in the background. Calling it repeatedly is safe: while a
    previously launched server process is still running, no new one is spawned.
    """

    def __init__(self, settings: ClientSettings):
        self.settings = settings
        self.process: Optional[subprocess.Popen] = None

    def __call__(self) -> None:
        self.ensure_server_running()

    def ensure_server_running(self) -> None:
        """
        Creates the state directory tree if it is missing and launches the server
        detached from this process, with its output appended to the log file.

        Raises
        ------
        FatalError
            The state directory cannot be used or the server executable cannot be run.
        """
        if self.process is not None and self.process.poll() is None:
            logger.debug(f"server process {self.process.pid} is still starting")
            return

        ensure_directory(self.settings.resolved_state_dir())
        command = render_server_command(self.settings)
        log_file = self.settings.resolved_log_file()

        with open(log_file, "ab") as log:
            try:
                # pylint: disable=consider-using-with
                # The server must outlive this function and the client.
                self.process = subprocess.Popen(command,
                                                stdin=subprocess.DEVNULL,
                                                stdout=log,
                                                stderr=subprocess.STDOUT,
                                                start_new_session=True,
                                                close_fds=True)
            except FileNotFoundError:
                raise FatalError(f"server executable '{command[0]}' not found") # pylint: disable=raise-missing-from
            except PermissionError:
                raise FatalError(f"server executable '{command[0]}' is not executable") # pylint: disable=raise-missing-from

        logger.server_launched(command, log_file)
