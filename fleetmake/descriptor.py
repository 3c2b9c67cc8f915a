"""
Deployment descriptor (start-config.yml).

The descriptor is generated once by the first successful build and then left
alone: operators hand-tune replica counts in it, so an existing file is never
rewritten.

Format::

    serviceBinaries:
      api: 1
      push: 2
    toolBinaries:
      - check-config
    maxFileDescriptors: 10000
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List

import yaml

from .config import DEFAULT_MAX_FILE_DESCRIPTORS, DEFAULT_REPLICAS
from .errors import DescriptorError, DescriptorWriteFailure

logger = logging.getLogger(__name__)

SERVICES_KEY = "serviceBinaries"
TOOLS_KEY = "toolBinaries"
MAX_FDS_KEY = "maxFileDescriptors"


@dataclass
class DeploymentDescriptor:
    service_binaries: Dict[str, int] = field(default_factory=dict)
    tool_binaries: List[str] = field(default_factory=list)
    max_file_descriptors: int = DEFAULT_MAX_FILE_DESCRIPTORS

    def to_dict(self) -> dict:
        return {
            SERVICES_KEY: dict(self.service_binaries),
            TOOLS_KEY: list(self.tool_binaries),
            MAX_FDS_KEY: self.max_file_descriptors,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeploymentDescriptor":
        """Validate parsed YAML and build a descriptor"""
        if not isinstance(data, dict):
            raise DescriptorError("descriptor must be a mapping")

        services = data.get(SERVICES_KEY) or {}
        if not isinstance(services, dict):
            raise DescriptorError(f"{SERVICES_KEY} must be a mapping of name to replica count")
        service_binaries = {}
        for name, replicas in services.items():
            if replicas is None:
                replicas = DEFAULT_REPLICAS
            if isinstance(replicas, bool) or not isinstance(replicas, int) or replicas < 0:
                raise DescriptorError(f"invalid replica count for {name}: {replicas!r}")
            service_binaries[str(name)] = replicas

        tools = data.get(TOOLS_KEY) or []
        if not isinstance(tools, list):
            raise DescriptorError(f"{TOOLS_KEY} must be a list of names")

        max_fds = data.get(MAX_FDS_KEY, DEFAULT_MAX_FILE_DESCRIPTORS)
        if isinstance(max_fds, bool) or not isinstance(max_fds, int) or max_fds <= 0:
            raise DescriptorError(f"invalid {MAX_FDS_KEY}: {max_fds!r}")

        return cls(
            service_binaries=service_binaries,
            tool_binaries=[str(name) for name in tools],
            max_file_descriptors=max_fds,
        )


def render_descriptor(descriptor: DeploymentDescriptor) -> str:
    return yaml.safe_dump(descriptor.to_dict(), sort_keys=False, default_flow_style=False)


def write_descriptor(
    path: Path,
    service_names: Iterable[str],
    tool_names: Iterable[str],
    max_file_descriptors: int = DEFAULT_MAX_FILE_DESCRIPTORS,
) -> bool:
    """
    Write a fresh descriptor unless one already exists.

    Args:
        path: Descriptor location
        service_names: Compiled service binaries, each given one replica
        tool_names: Compiled tool binaries
        max_file_descriptors: File descriptor hint

    Returns:
        True if the file was written, False if it already existed

    Raises:
        DescriptorWriteFailure: the file could not be written
    """
    path = Path(path)
    if path.exists():
        logger.info(f"{path.name} already exists, skipping creation")
        return False

    descriptor = DeploymentDescriptor(
        service_binaries={name: DEFAULT_REPLICAS for name in sorted(set(service_names))},
        tool_binaries=sorted(set(tool_names)),
        max_file_descriptors=max_file_descriptors,
    )

    try:
        # "x" so a concurrently created file is never clobbered
        with open(path, "x") as f:
            f.write(render_descriptor(descriptor))
    except FileExistsError:
        logger.info(f"{path.name} already exists, skipping creation")
        return False
    except OSError as e:
        raise DescriptorWriteFailure(f"failed to create {path}: {e}") from e

    logger.info(f"{path.name} created")
    return True


def read_descriptor(path: Path) -> DeploymentDescriptor:
    """
    Load and validate a descriptor.

    Raises:
        DescriptorError: missing file, unparsable YAML or invalid fields
    """
    path = Path(path)
    if not path.exists():
        raise DescriptorError(f"{path} not found, run a build first")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise DescriptorError(f"could not load {path}: {e}") from e

    # Empty file parses as None
    return DeploymentDescriptor.from_dict(data or {})


def find_stale_entries(
    descriptor: DeploymentDescriptor,
    service_names: Iterable[str],
    tool_names: Iterable[str],
) -> List[str]:
    """Binaries the descriptor lists that the source tree no longer provides"""
    services = set(service_names)
    tools = set(tool_names)
    stale = [name for name in descriptor.service_binaries if name not in services]
    stale.extend(name for name in descriptor.tool_binaries if name not in tools)
    return stale
