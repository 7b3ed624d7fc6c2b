"""Redelivery pacing for failed deliveries."""

# Seconds to wait before redelivery, indexed by attempt - 1.
DELAY_SCHEDULE_SECONDS: tuple[int, ...] = (5, 10, 20)

# Attempt count at which the controller stops requesting delays.
EXHAUSTION_THRESHOLD = 3


def delay_for(attempt: int) -> int:
    """Return the redelivery delay for a failed delivery attempt.

    Attempts past the end of the schedule reuse its last entry.

    Raises:
        ValueError: If attempt is lower than 1.
    """
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    index = min(attempt, len(DELAY_SCHEDULE_SECONDS)) - 1
    return DELAY_SCHEDULE_SECONDS[index]


def is_exhausted(attempt: int) -> bool:
    """Return True once no further redelivery delay should be requested."""
    return attempt >= EXHAUSTION_THRESHOLD
