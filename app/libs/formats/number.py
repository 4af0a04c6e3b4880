import math


def round_half_up(value: float) -> int:
    """Làm tròn .5 lên (2.5 → 3), khác với round() của Python (banker's rounding)."""
    return int(math.floor(value + 0.5))


def clamp_percent(value: int) -> int:
    return max(0, min(100, value))
