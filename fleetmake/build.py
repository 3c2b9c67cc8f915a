"""
Build pipeline.

discover -> resolve -> compile (one platform at a time) -> write descriptor.
A compile failure aborts the whole run; platforms after the failing one are
not attempted.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .compiler import CompileOutcome, CompileRunner, GoCompiler, compile_all
from .config import CONCURRENCY_LIMIT, FleetConfig
from .descriptor import find_stale_entries, read_descriptor, write_descriptor
from .errors import DescriptorError, DescriptorWriteFailure
from .platforms import Platform, detect_platform
from .processes import ProcessTable
from .resolver import Resolution, resolve
from .scanner import RootKind, ScanResult, scan

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    resolution: Resolution
    service_outcomes: List[CompileOutcome] = field(default_factory=list)
    tool_outcomes: List[CompileOutcome] = field(default_factory=list)
    descriptor_written: bool = False
    stale_entries: List[str] = field(default_factory=list)
    scan_errors: List[str] = field(default_factory=list)

    @property
    def compiled_services(self) -> List[str]:
        return sorted({n for o in self.service_outcomes for n in o.compiled_names})

    @property
    def compiled_tools(self) -> List[str]:
        return sorted({n for o in self.tool_outcomes for n in o.compiled_names})


def discover(config: FleetConfig) -> Tuple[ScanResult, ScanResult]:
    """Scan the service and tool roots"""
    services = scan(config.service_root, RootKind.SERVICE, config.entry_file)
    tools = scan(config.tool_root, RootKind.TOOL, config.entry_file)
    return services, tools


def stop_previous_services(config: FleetConfig, processes: ProcessTable) -> int:
    """
    Signal services from an existing descriptor so their binaries can be
    replaced. Does not wait for them to exit.
    """
    if not config.descriptor_path.exists():
        return 0
    try:
        descriptor = read_descriptor(config.descriptor_path)
    except DescriptorError as e:
        logger.warning(f"Not stopping running services: {e}")
        return 0
    return processes.terminate(descriptor.service_binaries)


def warn_stale_descriptor(config: FleetConfig, services: ScanResult, tools: ScanResult) -> List[str]:
    """Log descriptor entries that no longer exist in the source tree"""
    if not config.descriptor_path.exists():
        return []
    try:
        descriptor = read_descriptor(config.descriptor_path)
    except DescriptorError as e:
        logger.warning(f"Existing descriptor is unreadable: {e}")
        return []

    stale = find_stale_entries(descriptor, services.names, tools.names)
    if stale:
        logger.warning(
            f"{config.descriptor_name} lists binaries with no entry point: {', '.join(stale)}. "
            f"It is not modified; edit or remove it to regenerate"
        )
    return stale


def run_build(
    config: FleetConfig,
    requested_names: Sequence[str],
    platforms: Sequence[Platform],
    runner: Optional[CompileRunner] = None,
    processes: Optional[ProcessTable] = None,
) -> BuildReport:
    """
    Build the requested binaries for every platform.

    Args:
        config: Project layout
        requested_names: Binary names; empty builds everything discovered
        platforms: Target platforms, built strictly one after another
        runner: Compile runner, ``go build`` by default
        processes: Process table used to stop services before rebuilding

    Returns:
        BuildReport describing what was compiled

    Raises:
        CompileFailure: the first compile error of the first failing platform
    """
    runner = runner or GoCompiler(config.root_dir, config.compiler)
    host = detect_platform()
    processes = processes or ProcessTable(lambda name: config.service_binary(name, host))

    stop_previous_services(config, processes)

    services, tools = discover(config)
    resolution = resolve(requested_names, services.entry_points, tools.entry_points)
    report = BuildReport(
        resolution=resolution,
        scan_errors=[str(e) for e in services.errors + tools.errors],
    )
    report.stale_entries = warn_stale_descriptor(config, services, tools)

    if resolution.is_empty:
        logger.warning("Nothing to build")
        return report

    for platform in platforms:
        logger.info(f"Compiling for platform: {platform}")

        service_outcome = compile_all(
            platform,
            resolution.services,
            config.service_root,
            config.service_output_base,
            runner,
            CONCURRENCY_LIMIT,
            config.entry_file,
        )
        report.service_outcomes.append(service_outcome)
        if not service_outcome.ok:
            raise service_outcome.first_error

        tool_outcome = compile_all(
            platform,
            resolution.tools,
            config.tool_root,
            config.tool_output_base,
            runner,
            CONCURRENCY_LIMIT,
            config.entry_file,
        )
        report.tool_outcomes.append(tool_outcome)
        if not tool_outcome.ok:
            raise tool_outcome.first_error

        try:
            written = write_descriptor(
                config.descriptor_path,
                service_outcome.compiled_names,
                tool_outcome.compiled_names,
            )
        except DescriptorWriteFailure as e:
            logger.error(f"{e}; continuing without a descriptor")
        else:
            report.descriptor_written = report.descriptor_written or written

    return report
