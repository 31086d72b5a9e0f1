def exponential_delay(
    base_seconds: float,
    attempt: int,
    *,
    factor: float = 2.0,
    cap_seconds: float | None = None,
) -> float:
    """Delay before retry number `attempt` (0-based): base * factor**attempt, capped."""
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    delay = base_seconds * (factor**attempt)
    if cap_seconds is not None:
        delay = min(delay, cap_seconds)
    return delay
