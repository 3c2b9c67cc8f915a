"""Tests for the psutil-backed process table."""

import logging
import subprocess
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import psutil
import pytest

from fleetmake.processes import TOOL_TIMEOUT, ProcessTable


def fake_proc(pid, name="", exe=""):
    proc = MagicMock()
    proc.pid = pid
    proc.info = {"pid": pid, "name": name, "exe": exe}
    return proc


def listen(port, status=psutil.CONN_LISTEN):
    return SimpleNamespace(status=status, laddr=SimpleNamespace(port=port))


def patch_processes(*procs):
    return patch("fleetmake.processes.psutil.process_iter", return_value=list(procs))


@pytest.mark.unit
class TestFind:
    def test_matches_name_or_exe_basename(self):
        procs = [
            fake_proc(1, name="api"),
            fake_proc(2, name="launcher", exe="/opt/fleet/api.exe"),
            fake_proc(3, name="api-gateway", exe="/usr/bin/api-gateway"),
            fake_proc(4, name="api.exe"),
        ]

        with patch_processes(*procs):
            assert ProcessTable().pids("api") == [1, 2, 4]

    def test_exe_must_be_the_fleet_binary(self, tmp_path):
        binary = tmp_path / "api"
        binary.write_bytes(b"\x7fELF")
        procs = [
            fake_proc(1, name="api", exe=str(binary)),
            fake_proc(2, name="api", exe="/opt/other/api"),
            fake_proc(3, name="api", exe=""),
        ]
        table = ProcessTable(lambda name: tmp_path / name)

        with patch_processes(*procs):
            # PID 3's executable is unreadable, so only its name can be checked
            assert table.pids("api") == [1, 3]

    def test_running_counts(self):
        procs = [fake_proc(1, name="api"), fake_proc(2, name="api"), fake_proc(3, name="push")]

        with patch_processes(*procs):
            assert ProcessTable().running_counts(["api", "push", "msg"]) == {"api": 2, "push": 1, "msg": 0}


@pytest.mark.unit
def test_terminate_skips_vanished_and_denied_processes(caplog):
    gone = fake_proc(1, name="api")
    gone.terminate.side_effect = psutil.NoSuchProcess(1)
    denied = fake_proc(2, name="api")
    denied.terminate.side_effect = psutil.AccessDenied(2)
    alive = fake_proc(3, name="api")

    with patch_processes(gone, denied, alive), caplog.at_level(logging.WARNING):
        assert ProcessTable().terminate(["api"]) == 1

    alive.terminate.assert_called_once_with()
    assert "cannot signal PID 2" in caplog.text


@pytest.mark.unit
def test_listening_ports_only_counts_listen_sockets():
    first = fake_proc(1, name="api")
    first.net_connections.return_value = [
        listen(10002),
        listen(51234, status=psutil.CONN_ESTABLISHED),
        SimpleNamespace(status=psutil.CONN_LISTEN, laddr=()),
    ]
    second = fake_proc(2, name="api")
    second.net_connections.return_value = [listen(10002), listen(9090)]
    vanished = fake_proc(3, name="api")
    vanished.net_connections.side_effect = psutil.NoSuchProcess(3)

    with patch_processes(first, second, vanished):
        assert ProcessTable().listening_ports("api") == [9090, 10002]

    first.net_connections.assert_called_once_with(kind="inet")


@pytest.mark.unit
def test_launch_appends_output_to_log_file(tmp_path):
    binary = tmp_path / "bin" / "api"
    log_file = tmp_path / "logs" / "api.log"

    with patch("fleetmake.processes.subprocess.Popen", return_value=MagicMock(pid=4242)) as popen:
        assert ProcessTable().launch(binary, log_file) == 4242

    assert log_file.parent.is_dir()
    cmd = popen.call_args.args[0]
    kwargs = popen.call_args.kwargs
    assert cmd == [str(binary)]
    assert kwargs["cwd"] == binary.parent
    assert kwargs["start_new_session"] is True
    assert str(kwargs["stdout"].name) == str(log_file)
    assert kwargs["stdout"].mode == "ab"
    assert kwargs["stderr"] == subprocess.STDOUT


@pytest.mark.unit
def test_launch_keeps_earlier_log_content(tmp_path):
    log_file = tmp_path / "api.log"
    log_file.write_text("previous run\n")

    with patch("fleetmake.processes.subprocess.Popen", return_value=MagicMock(pid=1)):
        ProcessTable().launch(tmp_path / "api", log_file)

    assert log_file.read_text() == "previous run\n"


@pytest.mark.unit
def test_run_tool_is_bounded_by_timeout(tmp_path):
    binary = tmp_path / "seq"
    completed = subprocess.CompletedProcess(args=[str(binary)], returncode=0, stdout="", stderr="")

    with patch("fleetmake.processes.subprocess.run", return_value=completed) as run:
        assert ProcessTable().run_tool(binary) is completed

    kwargs = run.call_args.kwargs
    assert run.call_args.args[0] == [str(binary)]
    assert kwargs["timeout"] == TOOL_TIMEOUT
    assert kwargs["capture_output"] is True
    assert kwargs["cwd"] == tmp_path
