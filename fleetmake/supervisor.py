"""
Process Lifecycle Supervisor

Drives start, stop and check of the binaries named in the deployment
descriptor on the local host. State is never cached between operations:
every decision is made from a fresh look at the process table.
"""

import logging
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .config import FleetConfig
from .descriptor import DeploymentDescriptor
from .errors import (
    FleetError,
    ProcessLaunchFailure,
    ProcessNotRunning,
    ProcessNotStopped,
    ToolFailure,
)
from .limits import raise_open_file_limit
from .platforms import Platform, detect_platform
from .processes import ProcessTable
from .retry import RetryPolicy, retry

logger = logging.getLogger(__name__)


@dataclass
class FleetReport:
    """Listening ports per running service"""

    ports: Dict[str, List[int]] = field(default_factory=dict)


@dataclass
class ServiceStatus:
    name: str
    expected: int
    running: int
    pids: List[int] = field(default_factory=list)
    ports: List[int] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.running >= self.expected


class Supervisor:
    """
    Lifecycle operations over the descriptor's binaries.

    Args:
        config: Project layout, used to locate compiled binaries and logs
        descriptor: Parsed deployment descriptor
        processes: Process table (psutil-backed by default)
        policy: Retry policy for the stop/running confirmation loops
        platform: Platform whose binaries are run, the host by default
        raise_limit: Callable raising the open file limit
    """

    def __init__(
        self,
        config: FleetConfig,
        descriptor: DeploymentDescriptor,
        processes: Optional[ProcessTable] = None,
        policy: Optional[RetryPolicy] = None,
        platform: Optional[Platform] = None,
        raise_limit: Callable[[int], int] = raise_open_file_limit,
    ):
        self.config = config
        self.descriptor = descriptor
        self.platform = platform or detect_platform()
        self.processes = processes or ProcessTable(
            lambda name: config.service_binary(name, self.platform)
        )
        self.policy = policy or RetryPolicy()
        self.raise_limit = raise_limit

    @property
    def service_names(self) -> List[str]:
        return list(self.descriptor.service_binaries)

    # ------------------------------------------------------------------
    # Point-in-time checks
    # ------------------------------------------------------------------

    def check_stopped(self) -> None:
        """Raise ProcessNotStopped if any service binary still has a process"""
        counts = self.processes.running_counts(self.service_names)
        remaining = [name for name, count in counts.items() if count > 0]
        if remaining:
            details = ", ".join(f"{name} ({counts[name]} running)" for name in remaining)
            raise ProcessNotStopped(f"still running: {details}", remaining)

    def check_running(self) -> None:
        """Raise ProcessNotRunning if any service has fewer processes than replicas"""
        counts = self.processes.running_counts(self.service_names)
        missing = [
            name
            for name, replicas in self.descriptor.service_binaries.items()
            if counts.get(name, 0) < replicas
        ]
        if missing:
            details = ", ".join(
                f"{name} ({counts.get(name, 0)}/{self.descriptor.service_binaries[name]} running)"
                for name in missing
            )
            raise ProcessNotRunning(f"not running: {details}", missing)

    # ------------------------------------------------------------------
    # Confirmation loops
    # ------------------------------------------------------------------

    def _log_retry(self, attempt: int, error: FleetError) -> None:
        logger.warning(
            f"Attempt {attempt}/{self.policy.max_attempts}: {error}; "
            f"checking again in {self.policy.interval:g}s"
        )

    def confirm_stopped(self) -> None:
        """Poll until every service binary has exited"""
        try:
            retry(self.check_stopped, self.policy, on_retry=self._log_retry)
        except ProcessNotStopped as e:
            raise ProcessNotStopped(
                f"after {self.policy.max_attempts} checks some services have still not stopped: {e}",
                e.binaries,
            ) from e

    def confirm_running(self) -> None:
        """Poll until every service runs its full replica count"""
        try:
            retry(self.check_running, self.policy, on_retry=self._log_retry)
        except ProcessNotRunning as e:
            raise ProcessNotRunning(
                f"after {self.policy.max_attempts} checks some services are still not running: {e}",
                e.binaries,
            ) from e

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def kill_services(self) -> int:
        """Signal every running service binary to terminate"""
        signalled = self.processes.terminate(self.service_names)
        if signalled:
            logger.info(f"Sent terminate to {signalled} service processes")
        return signalled

    def run_tools(self) -> None:
        """
        Run each tool binary in order, stopping at the first failure.

        Raises:
            ToolFailure: a tool is missing, cannot be executed or exits non-zero
        """
        for name in self.descriptor.tool_binaries:
            binary = self.config.tool_binary(name, self.platform)
            if not binary.is_file():
                raise ToolFailure(f"tool {name} not found at {binary}", [name])

            try:
                result = self.processes.run_tool(binary)
            except (OSError, subprocess.TimeoutExpired) as e:
                raise ToolFailure(f"tool {name} could not run: {e}", [name]) from e

            if result.returncode != 0:
                output = (result.stderr or result.stdout or "").strip()
                message = f"tool {name} exited with status {result.returncode}"
                if output:
                    message = f"{message}:\n{output}"
                raise ToolFailure(message, [name])
            logger.info(f"Tool {name} completed")

    def launch_services(self) -> Dict[str, List[int]]:
        """
        Launch every service ``replicas`` times without waiting in between.

        Returns:
            PIDs started per service

        Raises:
            ProcessLaunchFailure: a binary is missing or cannot be executed
        """
        started: Dict[str, List[int]] = {}
        for name, replicas in self.descriptor.service_binaries.items():
            binary = self.config.service_binary(name, self.platform)
            if replicas and not binary.is_file():
                raise ProcessLaunchFailure(f"service {name} not found at {binary}", [name])

            log_file = self.config.log_path / f"{name}.log"
            pids = []
            for _ in range(replicas):
                try:
                    pids.append(self.processes.launch(binary, log_file))
                except OSError as e:
                    raise ProcessLaunchFailure(f"service {name} failed to start: {e}", [name]) from e
            started[name] = pids
        return started

    def report(self) -> FleetReport:
        """Listening ports of every service"""
        return FleetReport(
            ports={name: self.processes.listening_ports(name) for name in self.service_names}
        )

    # ------------------------------------------------------------------
    # Entry operations
    # ------------------------------------------------------------------

    def start(self) -> FleetReport:
        """
        Start the fleet.

        Tools run first as pre-flight validation, then any running services
        are stopped and confirmed gone, then every service is launched and
        confirmed running.
        """
        self.raise_limit(self.descriptor.max_file_descriptors)

        logger.info("Running tools")
        self.run_tools()

        self.kill_services()
        self.confirm_stopped()

        logger.info("Starting services")
        self.launch_services()
        self.confirm_running()
        return self.report()

    def stop(self) -> None:
        """Terminate every service and confirm they exited"""
        self.kill_services()
        self.confirm_stopped()

    def check(self) -> FleetReport:
        """Verify every service is running now (no retry) and report ports"""
        self.check_running()
        return self.report()

    def status(self) -> List[ServiceStatus]:
        """Per-service snapshot; never raises for stopped services"""
        rows = []
        for name, replicas in self.descriptor.service_binaries.items():
            pids = self.processes.pids(name)
            ports = self.processes.listening_ports(name) if pids else []
            rows.append(
                ServiceStatus(name=name, expected=replicas, running=len(pids), pids=pids, ports=ports)
            )
        return rows
