"""Feature value syntax rules.

Applied on the write path only (feature defaults, plan values, overrides).
Resolution returns stored strings untouched; callers that need a typed
value use ``parse_toggle`` / ``parse_numeric``.
"""

import math

from planwise_engine.common.exceptions import ValidationError


def validate_feature_value(value: str, value_type: str) -> None:
    """Raise ValidationError if ``value`` is not valid for ``value_type``."""
    if value_type == "toggle":
        if value.lower() not in ("true", "false"):
            raise ValidationError('Toggle features must have value "true" or "false"')
    elif value_type == "numeric":
        if parse_numeric(value) is None:
            raise ValidationError("Numeric features must have a valid number value")
    elif value_type == "text":
        pass
    else:
        raise ValidationError(f"Unknown feature value type: {value_type}")


def parse_toggle(value: str | None) -> bool:
    return value is not None and value.lower() == "true"


def parse_numeric(value: str | None) -> float | None:
    """Parse a finite number, or return None."""
    if value is None or not value.strip():
        return None
    try:
        num = float(value)
    except ValueError:
        return None
    if not math.isfinite(num):
        return None
    return num
