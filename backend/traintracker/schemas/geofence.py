"""Pydantic schemas for geofence checks."""
from __future__ import annotations
from pydantic import BaseModel, Field


class LocationReading(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    accuracy: float = Field(..., ge=0.0)
