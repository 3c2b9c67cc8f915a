"""
fleetmake

Build and run a multi-binary service fleet: discover entry points under
cmd/ and tools/, cross-compile them with bounded parallelism, record what was
built in start-config.yml, and start, stop and check the resulting processes.

Components:
- scanner: entry-point discovery
- resolver: binary name resolution
- compiler: concurrent cross-compilation
- descriptor: start-config.yml
- supervisor: process lifecycle
"""

from .config import FleetConfig
from .descriptor import DeploymentDescriptor, read_descriptor, write_descriptor
from .platforms import Platform
from .supervisor import Supervisor

__version__ = "0.1.0"

__all__ = [
    "FleetConfig",
    "DeploymentDescriptor",
    "Platform",
    "Supervisor",
    "read_descriptor",
    "write_descriptor",
]
