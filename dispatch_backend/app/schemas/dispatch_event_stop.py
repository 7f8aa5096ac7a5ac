"""
Dispatch event stop schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional

from dispatch_backend.app.models.dispatch_enums import StopStatus, OnTimeStatus


class DispatchEventStopUpdate(BaseModel):
    """
    Schema for a stop progress update.

    on_time_status and service_time are computed by the engine, so they are
    not accepted here.
    """
    status: Optional[StopStatus] = None
    actual_arrival_time: Optional[datetime] = None
    actual_departure_time: Optional[datetime] = None
    notes: Optional[str] = None
    exception_reason: Optional[str] = Field(None, max_length=255)
    skip_reason: Optional[str] = Field(None, max_length=255)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    odometer: Optional[float] = Field(None, ge=0)
    fuel_used: Optional[float] = Field(None, ge=0)
    requires_attention: Optional[bool] = None

    @field_validator("status", "requires_attention")
    @classmethod
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value

    class Config:
        extra = "forbid"


class DispatchEventStopResponse(BaseModel):
    """Schema for stop progress response."""
    id: int
    dispatch_event_id: int
    route_stop_id: Optional[int]
    sequence: int
    planned_eta: Optional[str]
    planned_etd: Optional[str]
    actual_arrival_time: Optional[datetime]
    actual_departure_time: Optional[datetime]
    service_time: Optional[float]
    status: StopStatus
    on_time_status: Optional[OnTimeStatus]
    latitude: Optional[float]
    longitude: Optional[float]
    odometer: Optional[float]
    fuel_used: Optional[float]
    notes: Optional[str]
    exception_reason: Optional[str]
    skip_reason: Optional[str]
    requires_attention: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
