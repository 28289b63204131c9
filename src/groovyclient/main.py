"""
Provides the top-level logic of groovyclient such as option parsing
and running a single invocation on the server.
"""

import argparse
import os
import shlex
import sys
from typing import NoReturn, Optional, Sequence

import groovyclient
from groovyclient import globals as G, logger
from groovyclient.connection import Connection
from groovyclient.protocol import ProtocolError
from groovyclient.request import DEFAULT_MAX_REQUEST_SIZE, DEFAULT_STDIN_BLOCK_SIZE, encode_request
from groovyclient.session import Session
from groovyclient.settings import DEFAULT_HOST, DEFAULT_RETRY_INTERVAL, DEFAULT_SERVER_COMMAND, ClientSettings, default_port
from groovyclient.utils import FatalError, die_error

OPTIONS_VARIABLE = "GROOVYCLIENT_OPTS"
"""
The environment variable that holds the client options. The command line itself
is forwarded to the server untouched, so client options cannot be given there.
"""

def run_invocation(settings: ClientSettings,
                   args: Sequence[str],
                   cwd: Optional[str] = None,
                   classpath: Optional[str] = None) -> int:
    """
    Runs the given arguments on the server and returns the exit status reported by it.
    Standard input is forwarded to the server, and the server's output is written
    to standard output and standard error.

    Parameters
    ----------
    settings
        The client settings.
    args
        The arguments to forward, excluding the program name.
    cwd
        The working directory to report. Defaults to the current working directory.
    classpath
        The classpath to forward. Defaults to the CLASSPATH environment variable.

    Returns
    -------
    int
        The exit status of the invocation.
    """
    logger.debug_args("run_invocation", {"args": list(args), "cwd": cwd})
    if cwd is None:
        cwd = os.getcwd()
    if classpath is None:
        classpath = os.getenv("CLASSPATH")

    # Encode first, so an oversized request is reported before the server is even contacted.
    request = encode_request(os.path.abspath(cwd), args, classpath, max_size=settings.max_request_size)

    with Connection(settings) as connection, \
         Session(connection, stdin_block_size=settings.stdin_block_size) as session:
        session.send_request(request)
        return session.run()

class ArgumentParserError(Exception):
    """Error class for argument parsing errors."""

class ThrowingArgumentParser(argparse.ArgumentParser):
    """An argument parser that throws when invalid argument types are passed."""

    def error(self, message: str) -> NoReturn:
        """Raises an exception on error."""
        raise ArgumentParserError(message)

def create_parser() -> ThrowingArgumentParser:
    """Creates the parser for the client options."""
    parser = ThrowingArgumentParser(prog="groovyclient",
            description=f"Runs a command line on a groovyserver. Client options are read from the {OPTIONS_VARIABLE} environment variable, all command line arguments are forwarded to the server.")

    parser.add_argument('-V', '--version', action='version',
            version=f"%(prog)s version {groovyclient.version}")
    parser.add_argument('--host', dest='host', default=os.getenv("GROOVYSERV_HOST", DEFAULT_HOST), type=str,
            help="The host the server listens on. Defaults to GROOVYSERV_HOST or localhost.")
    parser.add_argument('--port', dest='port', default=None, type=int,
            help="The port the server listens on. Defaults to GROOVYSERV_PORT or 1961.")
    parser.add_argument('--server-command', dest='server_command', default=DEFAULT_SERVER_COMMAND, type=str,
            help="A jinja2 template for the command that starts the server. Available variables are server, state_dir, log_file, host and port.")
    parser.add_argument('--state-dir', dest='state_dir', default="", type=str,
            help="The directory for the server's state. Defaults to GROOVYSERV_HOME or ~/.groovy/groovyserver.")
    parser.add_argument('--log-file', dest='log_file', default="", type=str,
            help="The file that receives the output of a started server. Defaults to groovyserver.log in the state directory.")
    parser.add_argument('--retry-interval', dest='retry_interval', default=DEFAULT_RETRY_INTERVAL, type=float,
            help="Seconds to wait after starting the server before connecting again.")
    parser.add_argument('--max-retries', dest='max_retries', default=0, type=int,
            help="How often the server may be started before giving up. 0 retries forever.")
    parser.add_argument('--max-request-size', dest='max_request_size', default=DEFAULT_MAX_REQUEST_SIZE, type=int,
            help="The maximum size of the initial request in bytes. 0 disables the limit.")
    parser.add_argument('--stdin-block-size', dest='stdin_block_size', default=DEFAULT_STDIN_BLOCK_SIZE, type=int,
            help="The maximum number of stdin bytes sent in a single chunk.")
    parser.add_argument('--debug', dest='debug', action='store_true',
            help="Enable debugging output on stderr.")
    parser.add_argument('--no-color', dest='no_color', action='store_true',
            help="Disables any color output. Color can also be disabled by setting the NO_COLOR environment variable.")
    return parser

def parse_options(options: Optional[str] = None) -> argparse.Namespace:
    """
    Parses the client options. Defaults to the value of GROOVYCLIENT_OPTS if options is None.

    Raises
    ------
    ArgumentParserError
        The options are invalid.
    """
    if options is None:
        options = os.getenv(OPTIONS_VARIABLE, "")
    try:
        argv = shlex.split(options)
    except ValueError as e:
        raise ArgumentParserError(f"{OPTIONS_VARIABLE}: {str(e)}") # pylint: disable=raise-missing-from

    args = create_parser().parse_args(argv)
    if args.port is None:
        try:
            args.port = default_port()
        except ValueError as e:
            raise ArgumentParserError(str(e)) # pylint: disable=raise-missing-from

    # Disable color when NO_COLOR is set
    if os.getenv("NO_COLOR") is not None:
        args.no_color = True
    return args

def main(argv: Optional[list[str]] = None) -> NoReturn:
    """
    The main program entry point. Forwards the given arguments to the server and
    exits with the status reported by the server. Defaults to sys.argv[1:] if argv is None.
    """
    if argv is None:
        argv = sys.argv[1:]

    try:
        args = parse_options()
    except ArgumentParserError as e:
        die_error(str(e))
    G.args = args

    try:
        status = run_invocation(ClientSettings.from_args(args), argv)
    except (FatalError, ProtocolError) as e:
        die_error(str(e))
    except KeyboardInterrupt:
        sys.exit(0)
    except OSError as e:
        die_error(str(e))

    sys.exit(status)
