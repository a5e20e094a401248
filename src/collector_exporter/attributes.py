"""Typed attribute values.

Producers hand attributes over as plain mappings. They are classified here,
once, into an explicit tagged union so the translator never has to inspect
runtime types itself.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

logger = logging.getLogger(__name__)


class ValueType(IntEnum):
    """Attribute type discriminator on the wire."""

    STRING = 0
    INT = 1
    DOUBLE = 2
    BOOL = 3


@dataclass(frozen=True)
class AttributeValue:
    """A single attribute value with exactly one tag set."""

    type: ValueType
    value: str | bool | float

    @classmethod
    def string(cls, value: str) -> AttributeValue:
        return cls(ValueType.STRING, value)

    @classmethod
    def boolean(cls, value: bool) -> AttributeValue:
        return cls(ValueType.BOOL, value)

    @classmethod
    def double(cls, value: float) -> AttributeValue:
        return cls(ValueType.DOUBLE, float(value))

    @classmethod
    def from_python(cls, value: Any) -> AttributeValue | None:
        """Build the closest tagged value, or None if the type is unsupported.

        ``bool`` is checked before ``int`` since it is an ``int`` subclass.
        All numbers are carried as doubles. NaN and infinities have no JSON
        encoding and are unsupported.
        """
        if isinstance(value, str):
            return cls.string(value)
        if isinstance(value, bool):
            return cls.boolean(value)
        if isinstance(value, (int, float)):
            if isinstance(value, float) and not math.isfinite(value):
                return None
            return cls.double(value)
        return None

    def to_wire(self, key: str) -> dict[str, Any]:
        item: dict[str, Any] = {"key": key, "type": int(self.type)}
        if self.type is ValueType.STRING:
            item["stringValue"] = self.value
        elif self.type is ValueType.BOOL:
            item["boolValue"] = self.value
        else:
            item["doubleValue"] = self.value
        return item


@dataclass(frozen=True)
class AttributeSet:
    """Classified attributes plus the number of entries that were omitted."""

    items: tuple[tuple[str, AttributeValue], ...] = ()
    dropped: int = 0

    def __len__(self) -> int:
        return len(self.items)

    def to_wire(self) -> list[dict[str, Any]]:
        return [value.to_wire(key) for key, value in self.items]


EMPTY_ATTRIBUTES = AttributeSet()


def classify_attributes(attributes: Mapping[str, Any] | None) -> AttributeSet:
    """Classify a raw attribute mapping into an AttributeSet.

    Unsupported values are omitted and counted in ``dropped``; they never
    reduce or alter the supported entries.

    Args:
        attributes: Raw attributes from the producer. None is treated as empty.

    Returns:
        AttributeSet preserving the mapping's key order.
    """
    if not attributes:
        return EMPTY_ATTRIBUTES

    items: list[tuple[str, AttributeValue]] = []
    dropped = 0
    for key, raw in attributes.items():
        value = AttributeValue.from_python(raw)
        if value is None:
            logger.debug(
                "Dropping attribute '%s' with unsupported type %s",
                key,
                type(raw).__name__,
            )
            dropped += 1
            continue
        items.append((str(key), value))
    return AttributeSet(items=tuple(items), dropped=dropped)
