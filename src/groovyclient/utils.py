"""
Provides utility functions.
"""

from __future__ import annotations

import os
import sys
from typing import NoReturn, Optional

from groovyclient.logger import col

class FatalError(Exception):
    """An exception type for errors after which the client cannot continue."""

def print_error(msg: str) -> None:
    """Prints a message with a (possibly colored) 'error: ' prefix."""
    print(f"{col('[1;31m')}error:{col('[m')} {msg}", file=sys.stderr)

def die_error(msg: str, status_code: int = 1) -> NoReturn:
    """Prints a message with a colored 'error: ' prefix, and exit with the given status code afterwards."""
    print_error(msg)
    sys.exit(status_code)

def ensure_directory(path: str) -> None:
    """
    Creates the given directory including all missing parents.
    Raises a FatalError if the path exists but is not a directory.

    Parameters
    ----------
    path
        The directory to create.
    """
    if os.path.exists(path) and not os.path.isdir(path):
        raise FatalError(f"path '{path}' is not a directory")
    os.makedirs(path, exist_ok=True)

def sibling_executable(name: str, argv0: Optional[str] = None) -> str:
    """
    Returns the path of the executable with the given name that lives in the same
    directory as the currently running program. If the program was started without
    any directory component, only the name is returned so it is looked up in PATH.

    Parameters
    ----------
    name
        The file name of the sibling executable.
    argv0
        The path of the running program. Defaults to sys.argv[0].

    Returns
    -------
    str
        The path to the sibling executable.
    """
    if argv0 is None:
        argv0 = sys.argv[0]
    directory = os.path.dirname(argv0)
    if directory == "":
        return name
    return os.path.join(directory, name)
