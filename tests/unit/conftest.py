"""Shared fixtures: project trees, a fake process table and a fake compiler."""

import subprocess
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pytest

from fleetmake.compiler import CompileJob
from fleetmake.config import FleetConfig
from fleetmake.errors import CompileFailure


def make_entry(root: Path, *segments: str, entry_file: str = "main.go") -> Path:
    """Create root/<segments>/main.go and return the directory"""
    directory = root.joinpath(*segments)
    directory.mkdir(parents=True, exist_ok=True)
    (directory / entry_file).write_text("package main\n\nfunc main() {}\n")
    return directory


class FakeProcessTable:
    """
    In-memory stand-in for ProcessTable.

    ``running`` maps binary name to a list of PIDs. Terminating a binary
    removes its PIDs unless ``stubborn`` names it.
    """

    def __init__(
        self,
        running: Optional[Dict[str, List[int]]] = None,
        ports: Optional[Dict[str, List[int]]] = None,
        tool_returncodes: Optional[Dict[str, int]] = None,
        stubborn: Iterable[str] = (),
    ):
        self.running = {name: list(pids) for name, pids in (running or {}).items()}
        self.ports = ports or {}
        self.tool_returncodes = tool_returncodes or {}
        self.stubborn = set(stubborn)
        self.terminated: List[str] = []
        self.launched: List[str] = []
        self.log_files: List[Path] = []
        self.tool_runs: List[str] = []
        self.probes = 0
        self._next_pid = 1000

    def pids(self, name):
        return sorted(self.running.get(name, []))

    def running_counts(self, names):
        self.probes += 1
        return {name: len(self.running.get(name, [])) for name in names}

    def terminate(self, names):
        signalled = 0
        for name in names:
            pids = self.running.get(name, [])
            if pids:
                self.terminated.append(name)
                signalled += len(pids)
            if name not in self.stubborn:
                self.running[name] = []
        return signalled

    def listening_ports(self, name):
        return list(self.ports.get(name, [])) if self.running.get(name) else []

    def launch(self, binary, log_file=None):
        name = Path(binary).name
        self._next_pid += 1
        self.running.setdefault(name, []).append(self._next_pid)
        self.launched.append(name)
        self.log_files.append(log_file)
        return self._next_pid

    def run_tool(self, binary):
        name = Path(binary).name
        self.tool_runs.append(name)
        returncode = self.tool_returncodes.get(name, 0)
        return subprocess.CompletedProcess(
            args=[str(binary)],
            returncode=returncode,
            stdout="",
            stderr="config check failed" if returncode else "",
        )


class FakeCompiler:
    """Writes a placeholder binary for each job; fails for names in ``failing``"""

    def __init__(self, failing: Iterable[str] = (), delay: float = 0.0):
        self.failing = set(failing)
        self.delay = delay
        self.jobs: List[CompileJob] = []
        self._lock = threading.Lock()

    def __call__(self, job: CompileJob) -> None:
        with self._lock:
            self.jobs.append(job)
        if self.delay:
            threading.Event().wait(self.delay)
        if job.name in self.failing:
            raise CompileFailure(job.name, job.platform.token, "undefined: foo")
        job.output_path.write_bytes(b"\x7fELF")

    @property
    def platforms(self) -> List[str]:
        return [job.platform.token for job in self.jobs]


@pytest.fixture
def config(tmp_path, monkeypatch) -> FleetConfig:
    for key in ("FLEETMAKE_SERVICE_DIR", "FLEETMAKE_TOOL_DIR", "FLEETMAKE_SERVICE_OUTPUT",
                "FLEETMAKE_TOOL_OUTPUT", "FLEETMAKE_DESCRIPTOR", "FLEETMAKE_ENTRY_FILE",
                "FLEETMAKE_COMPILER", "FLEETMAKE_LOG_DIR", "LOG_LEVEL", "PLATFORMS"):
        monkeypatch.delenv(key, raising=False)
    return FleetConfig(root_dir=tmp_path, service_output="outbin", tool_output="outtool")


@pytest.fixture
def processes() -> FakeProcessTable:
    return FakeProcessTable()
