"""
Binary name resolution.

Maps the names a user asks for onto discovered entry points. Service roots
are searched before tool roots; unknown names are reported, never fatal.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from .scanner import EntryPoint

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    services: List[EntryPoint] = field(default_factory=list)
    tools: List[EntryPoint] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.services and not self.tools


def index_by_leaf(entries: Iterable[EntryPoint]) -> Dict[str, EntryPoint]:
    """
    Index entry points by leaf name.

    Two leaves with the same name would compile to the same output file, so
    only the first (by relative path) is kept and the rest are logged.
    """
    index: Dict[str, EntryPoint] = {}
    for entry in entries:
        kept = index.get(entry.leaf_name)
        if kept is None:
            index[entry.leaf_name] = entry
        else:
            logger.warning(
                f"Duplicate binary name {entry.leaf_name!r}: using {kept}, ignoring {entry}"
            )
    return index


def resolve(
    requested_names: Sequence[str],
    service_entries: Sequence[EntryPoint],
    tool_entries: Sequence[EntryPoint],
) -> Resolution:
    """
    Resolve requested binary names to entry points.

    Args:
        requested_names: Names from the command line; empty means everything
        service_entries: Scanner output for the service root
        tool_entries: Scanner output for the tool root

    Returns:
        Resolution with the matched service and tool entry points plus the
        names that matched nothing, in request order
    """
    services = index_by_leaf(service_entries)
    tools = index_by_leaf(tool_entries)

    if not requested_names:
        return Resolution(services=list(services.values()), tools=list(tools.values()))

    resolution = Resolution()
    seen = set()
    for name in requested_names:
        if name in seen:
            continue
        seen.add(name)

        if name in services:
            resolution.services.append(services[name])
        elif name in tools:
            resolution.tools.append(tools[name])
        else:
            logger.warning(f"Binary {name} not found in service or tool directories, skipping")
            resolution.unresolved.append(name)

    return resolution
