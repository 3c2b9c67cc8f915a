"""Tests for the fleetmake command line."""

import json

import pytest

from conftest import FakeCompiler, FakeProcessTable, make_entry
from fleetmake import build, cli, supervisor
from fleetmake.retry import RetryPolicy


@pytest.fixture
def project(config, monkeypatch):
    """A project root with default layout and no environment overrides"""
    monkeypatch.delenv("FLEETMAKE_ROOT", raising=False)
    return config.root_dir


def use_processes(monkeypatch, table):
    monkeypatch.setattr(supervisor, "ProcessTable", lambda *args: table)
    monkeypatch.setattr(build, "ProcessTable", lambda *args: table)


@pytest.mark.unit
def test_no_command_prints_help(capsys):
    assert cli.main([]) == 0
    assert "usage: fleetmake" in capsys.readouterr().out


@pytest.mark.unit
def test_check_without_descriptor_fails(project):
    assert cli.main(["--root", str(project), "check"]) == 1


@pytest.mark.unit
def test_build_compiles_and_writes_descriptor(project, monkeypatch):
    make_entry(project / "cmd", "api")
    make_entry(project / "tools", "seq")
    compiler = FakeCompiler()
    monkeypatch.setattr(build, "GoCompiler", lambda workdir, executable: compiler)
    use_processes(monkeypatch, FakeProcessTable())
    monkeypatch.setenv("PLATFORMS", "linux_amd64")

    assert cli.main(["--root", str(project), "build"]) == 0

    assert sorted(job.name for job in compiler.jobs) == ["api", "seq"]
    assert (project / "_output" / "bin" / "platforms" / "linux" / "amd64" / "api").is_file()
    assert (project / "start-config.yml").is_file()


@pytest.mark.unit
def test_build_failure_exits_non_zero(project, monkeypatch):
    make_entry(project / "cmd", "api")
    monkeypatch.setattr(build, "GoCompiler", lambda workdir, executable: FakeCompiler(failing={"api"}))
    use_processes(monkeypatch, FakeProcessTable())
    monkeypatch.setenv("PLATFORMS", "linux_amd64")

    assert cli.main(["--root", str(project), "build", "api"]) == 1
    assert not (project / "start-config.yml").exists()


@pytest.mark.unit
def test_invalid_platform_exits_non_zero(project, monkeypatch):
    monkeypatch.setenv("PLATFORMS", "linux")

    assert cli.main(["--root", str(project), "build"]) == 1


@pytest.mark.unit
def test_status_json(project, monkeypatch, capsys):
    (project / "start-config.yml").write_text("serviceBinaries:\n  api: 1\n  push: 2\ntoolBinaries: []\n")
    use_processes(monkeypatch, FakeProcessTable(running={"api": [7]}, ports={"api": [10002]}))

    assert cli.main(["--root", str(project), "status", "--json"]) == 0

    data = json.loads(capsys.readouterr().out)
    assert data["api"] == {"expected": 1, "running": 1, "healthy": True, "pids": [7], "ports": [10002]}
    assert data["push"]["running"] == 0
    assert data["push"]["healthy"] is False


@pytest.mark.unit
def test_stop_reports_stragglers(project, monkeypatch):
    (project / "start-config.yml").write_text("serviceBinaries:\n  api: 1\n")
    use_processes(monkeypatch, FakeProcessTable(running={"api": [7]}, stubborn={"api"}))
    monkeypatch.setattr(supervisor, "RetryPolicy", lambda: RetryPolicy.immediate())

    assert cli.main(["--root", str(project), "stop"]) == 1


@pytest.mark.unit
def test_invalid_log_level(project, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    assert cli.main(["--root", str(project), "status"]) == 1
