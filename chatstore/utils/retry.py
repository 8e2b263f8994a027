from typing import Iterator


def backoff_delays(base: float, maximum: float) -> Iterator[float]:
    """Yield exponentially growing delays in seconds, capped at ``maximum``."""

    delay = base
    while True:
        yield delay
        delay = min(delay * 2, maximum)
