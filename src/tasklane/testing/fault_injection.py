"""Fault-injecting unit of work for exercising the retry path.

Only imported when FAULT_INJECTION_RATE is configured; production builds
never load this module.
"""

import random

from tasklane.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_FAILURE_RATE = 0.3


class InjectedFailure(Exception):
    """Raised by RandomFailureUnitOfWork to simulate a failed task."""


class RandomFailureUnitOfWork:
    """Fails a configurable share of deliveries at random.

    Args:
        failure_rate: Probability in [0, 1] that a call raises.
        rng: Random source (seed it for reproducible runs).
    """

    def __init__(
        self,
        failure_rate: float = DEFAULT_FAILURE_RATE,
        rng: random.Random | None = None,
    ) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {failure_rate}")
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()

    def __call__(self, task_id: str, payload: dict) -> None:
        value = self._rng.random()
        failed = value < self.failure_rate
        logger.info(
            "random failure check",
            extra={
                "extra_fields": {
                    "random_value": round(value, 3),
                    "failure_rate": self.failure_rate,
                    "failed": failed,
                }
            },
        )
        if failed:
            raise InjectedFailure(f"Simulated task failure (random: {value:.3f})")
