"""Byte counter delta computation."""


def counter_delta(current: int, previous: int) -> int:
    """Return the increase of a monotonic byte counter.

    A counter that went down is treated as reset (interface restart),
    so the whole current value counts as new traffic. Wraparound at the
    64-bit boundary is not modelled separately.

    Args:
        current: Counter value now
        previous: Counter value at the previous sample

    Returns:
        Non-negative byte delta
    """
    if current >= previous:
        return current - previous
    return current
