import os
import pytest

from groovyclient.bootstrap import Bootstrapper, render_server_command
from groovyclient.settings import ClientSettings
from groovyclient.utils import FatalError, sibling_executable

def test_render_default_command():
    settings = ClientSettings()
    assert render_server_command(settings, server="/opt/groovy/bin/groovyserver") == ["/opt/groovy/bin/groovyserver"]

def test_render_command_variables(tmp_path):
    settings = ClientSettings(port=2000,
                              state_dir=str(tmp_path),
                              server_command="{{ server }} -p {{ port }} --log '{{ log_file }}' --host {{ host }}")
    assert render_server_command(settings, server="groovyserver") == [
            "groovyserver", "-p", "2000", "--log", os.path.join(str(tmp_path), "groovyserver.log"), "--host", "localhost"]

def test_render_undefined_variable():
    settings = ClientSettings(server_command="{{ servr }}")
    with pytest.raises(FatalError, match=r"invalid server command template"):
        render_server_command(settings, server="groovyserver")

def test_render_syntax_error():
    settings = ClientSettings(server_command="{{ server ")
    with pytest.raises(FatalError, match=r"invalid server command template"):
        render_server_command(settings, server="groovyserver")

def test_render_empty_command():
    settings = ClientSettings(server_command="  ")
    with pytest.raises(FatalError, match=r"the server command is empty"):
        render_server_command(settings, server="groovyserver")

def test_sibling_executable():
    assert sibling_executable("groovyserver", "/usr/local/bin/groovyclient") == "/usr/local/bin/groovyserver"
    assert sibling_executable("groovyserver", "groovyclient") == "groovyserver"

def test_launch_creates_state_dir_and_log(tmp_path):
    state_dir = tmp_path / "home" / ".groovy" / "groovyserver"
    settings = ClientSettings(state_dir=str(state_dir), server_command="sh -c 'echo started on {{ port }}'")
    bootstrapper = Bootstrapper(settings)
    bootstrapper()
    assert bootstrapper.process is not None
    assert bootstrapper.process.wait() == 0
    assert state_dir.is_dir()
    assert (state_dir / "groovyserver.log").read_text() == "started on 1961\n"

def test_launch_appends_to_log(tmp_path):
    log_file = tmp_path / "server.log"
    log_file.write_text("previous\n")
    settings = ClientSettings(state_dir=str(tmp_path), log_file=str(log_file), server_command="sh -c 'echo next >&2'")
    bootstrapper = Bootstrapper(settings)
    bootstrapper.ensure_server_running()
    assert bootstrapper.process is not None
    bootstrapper.process.wait()
    assert log_file.read_text() == "previous\nnext\n"

def test_launch_does_not_start_twice(tmp_path):
    settings = ClientSettings(state_dir=str(tmp_path), server_command="sleep 10")
    bootstrapper = Bootstrapper(settings)
    try:
        bootstrapper()
        first = bootstrapper.process
        bootstrapper()
        assert bootstrapper.process is first
    finally:
        if bootstrapper.process is not None:
            bootstrapper.process.kill()
            bootstrapper.process.wait()

def test_launch_missing_executable(tmp_path):
    settings = ClientSettings(state_dir=str(tmp_path), server_command="{{ state_dir }}/nonexistent-groovyserver")
    with pytest.raises(FatalError, match=r"not found"):
        Bootstrapper(settings)()

def test_state_dir_is_a_file(tmp_path):
    path = tmp_path / "file"
    path.write_text("")
    settings = ClientSettings(state_dir=str(path), server_command="true")
    with pytest.raises(FatalError, match=r"is not a directory"):
        Bootstrapper(settings)()
