"""
Target platforms.

A platform is an (os, arch) pair spelled ``os_arch`` using Go's names,
e.g. ``linux_amd64`` or ``windows_arm64``.
"""

import os
import platform as host
from dataclasses import dataclass
from typing import List, Mapping, Optional

from .errors import PlatformError

PLATFORMS_ENV = "PLATFORMS"

_OS_NAMES = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
}

_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "armv7l": "arm",
    "armv6l": "arm",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}


@dataclass(frozen=True)
class Platform:
    os: str
    arch: str

    @classmethod
    def parse(cls, token: str) -> "Platform":
        """Parse an ``os_arch`` token"""
        os_name, sep, arch = token.strip().partition("_")
        if not sep or not os_name or not arch:
            raise PlatformError(f"invalid platform {token!r}, expected <os>_<arch>")
        return cls(os=os_name, arch=arch)

    @property
    def token(self) -> str:
        return f"{self.os}_{self.arch}"

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    def binary_name(self, name: str) -> str:
        """Executable file name for a binary built for this platform"""
        return f"{name}.exe" if self.is_windows else name

    def env(self) -> dict:
        """Cross-compilation environment for the Go toolchain"""
        return {"GOOS": self.os, "GOARCH": self.arch}

    def __str__(self) -> str:
        return self.token


def detect_platform() -> Platform:
    """Platform of the running host, in Go naming"""
    system = host.system().lower()
    machine = host.machine().lower()
    return Platform(
        os=_OS_NAMES.get(system, system),
        arch=_ARCH_NAMES.get(machine, machine),
    )


def parse_platforms(value: Optional[str]) -> List[Platform]:
    """
    Parse a space-separated platform list.

    Returns the host platform when the value is empty. Duplicates are dropped,
    order is preserved.
    """
    tokens = (value or "").split()
    if not tokens:
        return [detect_platform()]

    platforms: List[Platform] = []
    for token in tokens:
        parsed = Platform.parse(token)
        if parsed not in platforms:
            platforms.append(parsed)
    return platforms


def platforms_from_env(environ: Optional[Mapping[str, str]] = None) -> List[Platform]:
    """Platforms requested through $PLATFORMS, defaulting to the host"""
    environ = os.environ if environ is None else environ
    return parse_platforms(environ.get(PLATFORMS_ENV))
