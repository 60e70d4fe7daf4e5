"""Shared declarative base and enums for all models."""
from __future__ import annotations

import enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class ConfidenceEnum(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Ordinal position: high > medium > low."""
        return _CONFIDENCE_RANK[self]


_CONFIDENCE_RANK: dict[ConfidenceEnum, int] = {
    ConfidenceEnum.LOW: 0,
    ConfidenceEnum.MEDIUM: 1,
    ConfidenceEnum.HIGH: 2,
}


class GeofenceModeEnum(str, enum.Enum):
    CROSSING = "crossing"
    ZONE = "zone"
