"""
Cross-compilation orchestrator.

Compiles a set of entry points for one platform on worker threads. A permit
pool caps how many compiles run at once; the first failure is kept in a
single-slot queue and cancels jobs that have not started yet. Jobs already
compiling are allowed to finish.
"""

import logging
import os
import queue
import subprocess
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import CONCURRENCY_LIMIT
from .errors import CompileFailure
from .platforms import Platform
from .scanner import EntryPoint

logger = logging.getLogger(__name__)

# Lines of compiler stderr kept in a CompileFailure
STDERR_TAIL_LINES = 20


@dataclass(frozen=True)
class CompileJob:
    entry_point: EntryPoint
    platform: Platform
    source_file: Path
    output_path: Path

    @property
    def name(self) -> str:
        return self.entry_point.leaf_name


@dataclass
class CompileResult:
    job: CompileJob
    succeeded: bool
    error: Optional[CompileFailure] = None
    skipped: bool = False


@dataclass
class CompileOutcome:
    platform: Platform
    compiled_names: List[str] = field(default_factory=list)
    first_error: Optional[CompileFailure] = None
    results: List[CompileResult] = field(default_factory=list)
    peak_concurrency: int = 0

    @property
    def ok(self) -> bool:
        return self.first_error is None

    @property
    def failed_names(self) -> List[str]:
        return [r.job.name for r in self.results if not r.succeeded and not r.skipped]

    @property
    def skipped_names(self) -> List[str]:
        return [r.job.name for r in self.results if r.skipped]


CompileRunner = Callable[[CompileJob], None]


class PermitPool:
    """
    Counting gate for concurrent compiles.

    Wraps a bounded semaphore and tracks how many permits are held, so the
    peak can be checked after a run.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._semaphore = threading.BoundedSemaphore(capacity)
        self._lock = threading.Lock()
        self.in_use = 0
        self.peak = 0

    @contextmanager
    def permit(self):
        self._semaphore.acquire()
        with self._lock:
            self.in_use += 1
            self.peak = max(self.peak, self.in_use)
        try:
            yield
        finally:
            with self._lock:
                self.in_use -= 1
            self._semaphore.release()


class GoCompiler:
    """Runs ``go build`` for a job with GOOS/GOARCH set for its platform"""

    def __init__(self, workdir: Path, executable: str = "go"):
        self.workdir = Path(workdir)
        self.executable = executable

    def command(self, job: CompileJob) -> List[str]:
        return [self.executable, "build", "-o", str(job.output_path), str(job.source_file)]

    def __call__(self, job: CompileJob) -> None:
        env = dict(os.environ)
        env.update(job.platform.env())
        cmd = self.command(job)
        logger.debug(f"{job.name}: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                cwd=self.workdir,
                env=env,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as e:
            raise CompileFailure(job.name, job.platform.token, str(e)) from e

        if result.returncode != 0:
            stderr = result.stderr.strip().splitlines()[-STDERR_TAIL_LINES:]
            detail = "\n".join(stderr) or f"exit status {result.returncode}"
            raise CompileFailure(job.name, job.platform.token, detail)


def plan_jobs(
    platform: Platform,
    entry_points: Sequence[EntryPoint],
    source_root: Path,
    output_dir: Path,
    entry_file: str = "main.go",
) -> List[CompileJob]:
    """One independent job per entry point"""
    return [
        CompileJob(
            entry_point=entry,
            platform=platform,
            source_file=Path(source_root) / entry.relative_dir / entry_file,
            output_path=Path(output_dir) / platform.binary_name(entry.leaf_name),
        )
        for entry in entry_points
    ]


def compile_all(
    platform: Platform,
    entry_points: Sequence[EntryPoint],
    source_root: Path,
    output_base: Path,
    runner: CompileRunner,
    concurrency_limit: int = CONCURRENCY_LIMIT,
    entry_file: str = "main.go",
) -> CompileOutcome:
    """
    Compile every entry point for ``platform``.

    Args:
        platform: Target platform
        entry_points: Entry points to build, all from the same root
        source_root: Directory the entry points' relative paths are under
        output_base: Binaries land in ``output_base/<os>/<arch>``
        runner: Callable performing one compile; raises CompileFailure
        concurrency_limit: Maximum compiles in flight
        entry_file: Entry file name inside each entry point directory

    Returns:
        CompileOutcome. ``first_error`` is set when any job failed; the
        caller decides whether to abort.
    """
    outcome = CompileOutcome(platform=platform)
    if not entry_points:
        return outcome

    output_dir = Path(output_base) / platform.os / platform.arch
    # Created once here so workers never race on mkdir
    output_dir.mkdir(parents=True, exist_ok=True)

    jobs = plan_jobs(platform, entry_points, source_root, output_dir, entry_file)
    pool = PermitPool(concurrency_limit)
    errors: "queue.Queue[CompileFailure]" = queue.Queue(maxsize=1)
    cancelled = threading.Event()
    lock = threading.Lock()

    def record(result: CompileResult) -> None:
        with lock:
            outcome.results.append(result)
            if result.succeeded:
                outcome.compiled_names.append(result.job.name)

    def worker(job: CompileJob) -> None:
        with pool.permit():
            if cancelled.is_set():
                logger.info(f"{job.name}: skipped, compilation for {platform} aborted")
                record(CompileResult(job, succeeded=False, skipped=True))
                return

            logger.info(f"Compiling {job.name} for {platform} -> {job.output_path.name}")
            try:
                runner(job)
            except CompileFailure as e:
                error = e
            except Exception as e:
                error = CompileFailure(job.name, platform.token, str(e))
            else:
                logger.info(f"Compiled {job.name} for {platform}")
                record(CompileResult(job, succeeded=True))
                return

            # Cancel before the permit is released so waiting jobs see it
            cancelled.set()
            try:
                errors.put_nowait(error)
            except queue.Full:
                pass
            record(CompileResult(job, succeeded=False, error=error))

        logger.error(str(error))

    threads = [
        threading.Thread(target=worker, args=(job,), name=f"compile-{job.name}", daemon=True)
        for job in jobs
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    try:
        outcome.first_error = errors.get_nowait()
    except queue.Empty:
        outcome.first_error = None
    outcome.peak_concurrency = pool.peak
    return outcome
