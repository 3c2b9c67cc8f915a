"""Raise the soft open-file limit before launching services."""

import logging

from .errors import LimitError

logger = logging.getLogger(__name__)

try:
    import resource
except ImportError:
    # Windows has no RLIMIT_NOFILE
    resource = None


def raise_open_file_limit(target: int) -> int:
    """
    Raise the soft RLIMIT_NOFILE to ``target``.

    The limit is never lowered. When the hard limit is below ``target`` the
    soft limit is raised to the hard limit and a warning is logged.

    Returns:
        The soft limit in effect afterwards (``target`` on platforms without
        rlimits)

    Raises:
        LimitError: the limit could not be read or changed
    """
    if resource is None:
        logger.debug("RLIMIT_NOFILE not supported on this platform")
        return target

    try:
        soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    except (OSError, ValueError) as e:
        raise LimitError(f"cannot read open file limit: {e}") from e

    if soft == resource.RLIM_INFINITY or soft >= target:
        logger.debug(f"Open file limit already {soft} (>= {target})")
        return soft

    new_soft = target
    if hard != resource.RLIM_INFINITY and hard < target:
        logger.warning(f"Hard open file limit {hard} is below {target}, using {hard}")
        new_soft = hard

    try:
        resource.setrlimit(resource.RLIMIT_NOFILE, (new_soft, hard))
    except (OSError, ValueError) as e:
        raise LimitError(f"cannot raise open file limit to {new_soft}: {e}") from e

    logger.info(f"Open file limit: {soft} -> {new_soft} (hard: {hard})")
    return new_soft
