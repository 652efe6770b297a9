import math
import re
from typing import Optional

from promboard import consts

# SI suffix by power of 1000.
_SUFFIXES = {
    4: "T",
    3: "G",
    2: "M",
    1: "K",
    0: "",
    -1: "m",
    -2: "μ",
    -3: "n",
    -4: "p",
}
_MIN_ORDER = min(_SUFFIXES)
_MAX_ORDER = max(_SUFFIXES)

_SHORTHAND_HEX_RE = re.compile(r"^#?([a-f\d])([a-f\d])([a-f\d])$", re.IGNORECASE)
_HEX_RE = re.compile(r"^#?([a-f\d]{2})([a-f\d]{2})([a-f\d]{2})$", re.IGNORECASE)


def format_scientific(
    value: Optional[float], resolution: int = consts.DEFAULT_RESOLUTION
) -> str:
    """Format ``value`` with ``resolution`` decimals and an SI suffix.

    The suffix is picked by ``floor(log10(|value|) / 3)``, clamped to the
    range of the suffix table (p .. T).

    Example:
        >>> format_scientific(1234567, 2)
        '1.23M'
        >>> format_scientific(-0.0042, 1)
        '-4.2m'
        >>> format_scientific(0, 3)
        '0.000'
    """
    if value is None:
        return ""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return f"{0.0:.{resolution}f}"

    sign = "-" if value < 0 else ""
    abs_value = abs(value)
    order = math.floor(math.log10(abs_value) / 3)
    order = max(_MIN_ORDER, min(_MAX_ORDER, order))
    normalized = abs_value / math.pow(10, order * 3)
    return f"{sign}{normalized:.{resolution}f}{_SUFFIXES[order]}"


def format_with_units(
    value: Optional[float], resolution: int = consts.DEFAULT_RESOLUTION, units=""
) -> str:
    formatted = format_scientific(value, resolution)
    if units:
        return f"{formatted} {units}"
    return formatted


def hex_to_rgba(hex_color: str, alpha: float) -> str:
    """Convert ``#rrggbb`` or ``#rgb`` to a css ``rgba()`` string.

    Invalid input gives black with the requested alpha.
    """
    hex_color = _SHORTHAND_HEX_RE.sub(
        lambda m: "".join(c * 2 for c in m.groups()), hex_color
    )
    match = _HEX_RE.match(hex_color)
    if match is None:
        return f"rgba(0, 0, 0, {alpha:g})"
    r, g, b = (int(part, 16) for part in match.groups())
    return f"rgba({r}, {g}, {b}, {alpha:g})"
