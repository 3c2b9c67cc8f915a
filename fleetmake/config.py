"""
fleetmake Configuration

Holds every path the build and supervisor code need. A single FleetConfig is
resolved once (environment first, then the project's .env file) and passed
explicitly to each component.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import dotenv_values

from .platforms import Platform

logger = logging.getLogger(__name__)

# At most this many compile jobs run at once for a platform
CONCURRENCY_LIMIT = 4

# File descriptor hint written into freshly generated descriptors
DEFAULT_MAX_FILE_DESCRIPTORS = 10000

DEFAULT_REPLICAS = 1

# Environment variable -> FleetConfig field
ENV_FIELDS = {
    "FLEETMAKE_SERVICE_DIR": "service_dir",
    "FLEETMAKE_TOOL_DIR": "tool_dir",
    "FLEETMAKE_SERVICE_OUTPUT": "service_output",
    "FLEETMAKE_TOOL_OUTPUT": "tool_output",
    "FLEETMAKE_DESCRIPTOR": "descriptor_name",
    "FLEETMAKE_ENTRY_FILE": "entry_file",
    "FLEETMAKE_COMPILER": "compiler",
    "FLEETMAKE_LOG_DIR": "log_dir",
    "LOG_LEVEL": "log_level",
}


def read_dotenv(root_dir: Path) -> Dict[str, str]:
    """Load <root>/.env as a plain dict (empty when the file is absent)"""
    env_path = Path(root_dir) / ".env"
    if not env_path.exists():
        return {}

    values = dotenv_values(env_path)
    # dotenv_values maps bare keys to None
    return {key: value for key, value in values.items() if value}


@dataclass(frozen=True)
class FleetConfig:
    """
    Immutable project layout.

    Attributes:
        root_dir: Project root, every relative path below resolves against it
        service_dir: Root of service entry points (``cmd``)
        tool_dir: Root of tool entry points (``tools``)
        service_output: Output base for compiled services
        tool_output: Output base for compiled tools
        descriptor_name: Deployment descriptor file name
        entry_file: File whose presence marks a buildable directory
        compiler: Compiler executable
        log_dir: Directory receiving launched services' output
        log_level: Logging level name
    """

    root_dir: Path
    service_dir: str = "cmd"
    tool_dir: str = "tools"
    service_output: str = "_output/bin/platforms"
    tool_output: str = "_output/bin/tools"
    descriptor_name: str = "start-config.yml"
    entry_file: str = "main.go"
    compiler: str = "go"
    log_dir: str = "_output/logs"
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization"""
        object.__setattr__(self, "root_dir", Path(self.root_dir))
        for name in ("service_dir", "tool_dir", "service_output", "tool_output",
                     "descriptor_name", "entry_file", "compiler", "log_dir"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"unknown log level: {self.log_level}")

    @classmethod
    def from_env(
        cls,
        root_dir: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "FleetConfig":
        """
        Build a config from the environment.

        Process environment wins over ``<root>/.env``; unset keys keep the
        dataclass defaults. ``FLEETMAKE_ROOT`` is consulted only when
        ``root_dir`` is not given.
        """
        environ = os.environ if environ is None else environ
        if root_dir is None:
            root_dir = Path(environ.get("FLEETMAKE_ROOT") or os.getcwd())
        root_dir = Path(root_dir).resolve()

        merged = read_dotenv(root_dir)
        merged.update({k: v for k, v in environ.items() if k in ENV_FIELDS and v})

        overrides = {ENV_FIELDS[key]: value for key, value in merged.items() if key in ENV_FIELDS}
        if overrides:
            logger.debug(f"Config overrides: {overrides}")
        return cls(root_dir=root_dir, **overrides)

    def _resolve(self, value: str) -> Path:
        path = Path(value)
        return path if path.is_absolute() else self.root_dir / path

    @property
    def service_root(self) -> Path:
        return self._resolve(self.service_dir)

    @property
    def tool_root(self) -> Path:
        return self._resolve(self.tool_dir)

    @property
    def service_output_base(self) -> Path:
        return self._resolve(self.service_output)

    @property
    def tool_output_base(self) -> Path:
        return self._resolve(self.tool_output)

    @property
    def descriptor_path(self) -> Path:
        return self._resolve(self.descriptor_name)

    @property
    def log_path(self) -> Path:
        return self._resolve(self.log_dir)

    def service_binary(self, name: str, platform: Platform) -> Path:
        """Path of a compiled service binary for a platform"""
        return self.service_output_base / platform.os / platform.arch / platform.binary_name(name)

    def tool_binary(self, name: str, platform: Platform) -> Path:
        """Path of a compiled tool binary for a platform"""
        return self.tool_output_base / platform.os / platform.arch / platform.binary_name(name)
