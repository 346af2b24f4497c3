import math
import re
from typing import Optional, Union

Duration = Union[int, float, str, None]

_UNITS = {
    "": 1.0,
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}
_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d*)?|\.\d+)\s*(ms|s|m|h|d)?\s*$", re.IGNORECASE)


def parse_duration(value: Duration) -> Optional[float]:
    """
    Converts a duration into seconds.

    Accepts numbers (seconds) and the suffixes understood by sleep(1): "500ms",
    "2s", "1.5m", "1h", "3d". "infinity" maps to math.inf and None stays None.

    :raises ValueError: if the value cannot be parsed or is negative.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Negative duration: {value}")
        return float(value)

    text = str(value).strip().lower()
    if text in ("inf", "infinity"):
        return math.inf

    match = _DURATION_RE.match(text)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    number, unit = match.groups()
    return float(number) * _UNITS[(unit or "").lower()]
