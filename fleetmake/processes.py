"""
Process table.

Thin layer over psutil and subprocess for the supervisor: find running
binaries by name, signal them, list their listening ports, launch service
replicas and run tool binaries to completion.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import psutil

logger = logging.getLogger(__name__)

# Seconds a tool binary may run before it is considered failed
TOOL_TIMEOUT = 300


def _executable_names(name: str) -> set:
    return {name, f"{name}.exe"}


class ProcessTable:
    """
    OS process introspection keyed by binary name.

    Args:
        binary_path: Maps a binary name to the file it is launched from. When
            given, a process matches only if its executable is that file; the
            bare process name is used only when the executable is unreadable.
    """

    def __init__(self, binary_path: Optional[Callable[[str], Path]] = None):
        self.binary_path = binary_path

    def _matches(self, name: str, proc_name: str, exe: str) -> bool:
        names = _executable_names(name)
        if not exe:
            return proc_name in names
        if self.binary_path is None:
            return os.path.basename(exe) in names
        return os.path.realpath(exe) == os.path.realpath(self.binary_path(name))

    def find(self, name: str) -> List[psutil.Process]:
        """Running processes of the binary ``name``"""
        matches = []
        for proc in psutil.process_iter(["pid", "name", "exe"]):
            try:
                proc_name = proc.info.get("name") or ""
                exe = proc.info.get("exe") or ""
                if self._matches(name, proc_name, exe):
                    matches.append(proc)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return matches

    def pids(self, name: str) -> List[int]:
        return sorted(proc.pid for proc in self.find(name))

    def running_counts(self, names: Iterable[str]) -> Dict[str, int]:
        """Number of live processes for each name"""
        return {name: len(self.find(name)) for name in names}

    def terminate(self, names: Iterable[str]) -> int:
        """
        Send SIGTERM to every process of each binary.

        Returns:
            Number of processes signalled
        """
        signalled = 0
        for name in names:
            for proc in self.find(name):
                try:
                    proc.terminate()
                    signalled += 1
                    logger.info(f"{name}: sent terminate to PID {proc.pid}")
                except psutil.NoSuchProcess:
                    continue
                except psutil.AccessDenied as e:
                    logger.warning(f"{name}: cannot signal PID {proc.pid}: {e}")
        return signalled

    def listening_ports(self, name: str) -> List[int]:
        """Sorted TCP/UDP ports the binary's processes are listening on"""
        ports = set()
        for proc in self.find(name):
            try:
                for conn in proc.net_connections(kind="inet"):
                    if conn.status == psutil.CONN_LISTEN and conn.laddr:
                        ports.add(conn.laddr.port)
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
        return sorted(ports)

    def launch(self, binary: Path, log_file: Optional[Path] = None) -> int:
        """
        Start a binary in its own session without waiting for it.

        Output is appended to ``log_file`` when given, discarded otherwise.

        Returns:
            PID of the new process

        Raises:
            OSError: the binary could not be executed
        """
        binary = Path(binary)
        if log_file is not None:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(log_file, "ab") as out:
                process = subprocess.Popen(
                    [str(binary)],
                    cwd=binary.parent,
                    stdin=subprocess.DEVNULL,
                    stdout=out,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        else:
            process = subprocess.Popen(
                [str(binary)],
                cwd=binary.parent,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        logger.info(f"{binary.name}: started with PID {process.pid}")
        return process.pid

    def run_tool(self, binary: Path) -> subprocess.CompletedProcess:
        """
        Run a tool binary to completion.

        Raises:
            OSError: the binary could not be executed
            subprocess.TimeoutExpired: it ran longer than TOOL_TIMEOUT
        """
        binary = Path(binary)
        logger.info(f"{binary.name}: running tool")
        return subprocess.run(
            [str(binary)],
            cwd=binary.parent,
            capture_output=True,
            text=True,
            check=False,
            timeout=TOOL_TIMEOUT,
        )
