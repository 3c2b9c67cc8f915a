"""
Exception hierarchy for fleetmake.

Library code raises these; only the CLI turns them into exit codes.
"""

from typing import Iterable, List, Optional


class FleetError(Exception):
    """Base class for every error fleetmake raises on purpose"""


class PlatformError(FleetError):
    """Platform token could not be parsed"""


class EntryRootNotFound(FleetError):
    """A scan root does not exist (non-fatal, the scan is simply empty)"""


class ScanError(FleetError):
    """A directory under a scan root could not be read"""

    def __init__(self, path, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        message = f"cannot read directory {path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class CompileFailure(FleetError):
    """A single binary failed to compile for a platform"""

    def __init__(self, name: str, platform: str, detail: str = ""):
        self.name = name
        self.platform = platform
        self.detail = detail
        message = f"failed to compile {name} for {platform}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DescriptorError(FleetError):
    """Deployment descriptor is missing or malformed"""


class DescriptorWriteFailure(DescriptorError):
    """Deployment descriptor could not be written"""


class LimitError(FleetError):
    """Open file descriptor limit could not be raised"""


class ProcessError(FleetError):
    """Base for lifecycle errors that name the offending binaries"""

    def __init__(self, message: str, binaries: Iterable[str] = ()):
        self.binaries: List[str] = sorted(set(binaries))
        super().__init__(message)


class ToolFailure(ProcessError):
    """A pre-flight tool binary exited with an error"""


class ProcessLaunchFailure(ProcessError):
    """A service binary could not be launched"""


class ProcessNotStopped(ProcessError):
    """Service binaries are still running after all stop confirmation attempts"""


class ProcessNotRunning(ProcessError):
    """Service binaries are not running (or not enough replicas are)"""
