"""Pydantic schemas for train report operations."""
from __future__ import annotations
from typing import Optional
from pydantic import BaseModel, Field, StrictBool

from traintracker.schemas.geofence import LocationReading


class TrainReportCreateRequest(BaseModel):
    is_train_crossing: StrictBool
    location: Optional[LocationReading] = None


class SimulatedReportRequest(BaseModel):
    is_train_crossing: StrictBool
    simulated_user: str = Field(..., min_length=1, max_length=40)
