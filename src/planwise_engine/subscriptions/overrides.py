"""Per-subscription feature overrides."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Iterator

from planwise_engine.common.exceptions import ValidationError


class OverrideType(str, Enum):
    PERMANENT = "permanent"  # survives renewal
    TEMPORARY = "temporary"  # cleared on renewal


def parse_override_type(value: "str | OverrideType") -> OverrideType:
    try:
        return OverrideType(value)
    except ValueError as exc:
        raise ValidationError(
            f"Unknown override type: {value!r}. Must be permanent or temporary"
        ) from exc


@dataclass(frozen=True)
class FeatureOverride:
    """A subscription-scoped exception to a plan's feature value."""
    feature_id: str
    value: str
    type: OverrideType
    created_at: datetime


class OverrideStore:
    """Overrides keyed by feature id; one entry per feature at most."""

    def __init__(self, overrides: Iterable[FeatureOverride] = ()):
        self._entries: dict[str, FeatureOverride] = {}
        for override in overrides:
            self._entries[override.feature_id] = override

    def set_override(
        self,
        feature_id: str,
        value: str,
        override_type: OverrideType,
        now: datetime,
    ) -> FeatureOverride:
        """Insert or replace the override for ``feature_id``."""
        override = FeatureOverride(
            feature_id=feature_id,
            value=value,
            type=parse_override_type(override_type),
            created_at=now,
        )
        self._entries[feature_id] = override
        return override

    def remove_override(self, feature_id: str) -> None:
        self._entries.pop(feature_id, None)

    def clear_temporary_overrides(self) -> list[FeatureOverride]:
        """Drop every temporary override. Returns the removed entries."""
        removed = [o for o in self._entries.values() if o.type == OverrideType.TEMPORARY]
        for override in removed:
            del self._entries[override.feature_id]
        return removed

    def get(self, feature_id: str) -> FeatureOverride | None:
        return self._entries.get(feature_id)

    def __contains__(self, feature_id: object) -> bool:
        return feature_id in self._entries

    def __iter__(self) -> Iterator[FeatureOverride]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"OverrideStore({list(self._entries.values())!r})"
