"""Bounded fixed-interval retry used by the supervisor's confirmation loops."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from .errors import FleetError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attributes:
        max_attempts: Total number of probes
        interval: Seconds slept between probes (not after the last one)
        sleep: Sleep function, replaceable in tests
    """

    max_attempts: int = 15
    interval: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.interval < 0:
            raise ValueError("interval must be non-negative")

    @classmethod
    def immediate(cls, max_attempts: int = 15) -> "RetryPolicy":
        """Policy that never sleeps"""
        return cls(max_attempts=max_attempts, interval=0, sleep=lambda _: None)


def retry(
    probe: Callable[[], T],
    policy: RetryPolicy,
    on_retry: Optional[Callable[[int, FleetError], None]] = None,
) -> T:
    """
    Call ``probe`` until it returns without raising a FleetError.

    Args:
        probe: Check to run; raises FleetError while the condition is unmet
        policy: Attempt cap and interval
        on_retry: Called with (attempt, error) after each failed probe that
            will be retried

    Returns:
        The probe's return value from the first successful attempt

    Raises:
        The last probe error once every attempt failed
    """
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return probe()
        except FleetError as e:
            if attempt == policy.max_attempts:
                logger.debug(f"Giving up after {attempt} attempts: {e}")
                raise
            if on_retry is not None:
                on_retry(attempt, e)
            policy.sleep(policy.interval)
    raise AssertionError("unreachable")
