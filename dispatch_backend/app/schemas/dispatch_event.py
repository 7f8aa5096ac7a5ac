"""
Dispatch event schemas.

Request and response models for the dispatch board.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import date, datetime
from typing import List, Optional

from dispatch_backend.app.models.dispatch_enums import DispatchStatus, DispatchPriority
from dispatch_backend.app.schemas.dispatch_event_stop import DispatchEventStopResponse

HHMM_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class DispatchEventCreate(BaseModel):
    """Schema for creating a dispatch event from a route."""
    route_id: int = Field(..., gt=0)
    execution_date: date
    priority: DispatchPriority = DispatchPriority.NORMAL
    assigned_driver_id: Optional[int] = Field(None, gt=0)
    assigned_truck_id: Optional[str] = Field(None, max_length=50)
    assigned_sub_unit_id: Optional[str] = Field(None, max_length=50)
    dispatch_notes: Optional[str] = None
    operational_notes: Optional[str] = None

    class Config:
        extra = "forbid"


class DispatchEventUpdate(BaseModel):
    """
    Schema for patching a dispatch event.

    Status, assignment, identity and the engine-derived metrics have their own
    operations and are rejected here.
    """
    priority: Optional[DispatchPriority] = None
    planned_departure_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    actual_departure_time: Optional[datetime] = None
    estimated_return_time: Optional[str] = Field(None, pattern=HHMM_PATTERN)
    actual_return_time: Optional[datetime] = None
    estimated_completion_time: Optional[datetime] = None
    estimated_delay_minutes: Optional[int] = Field(None, ge=0)
    dispatch_notes: Optional[str] = None
    operational_notes: Optional[str] = None
    last_location_update: Optional[datetime] = None
    last_geotab_sync: Optional[datetime] = None

    @field_validator("priority")
    @classmethod
    def validate_priority(cls, value: Optional[DispatchPriority]) -> DispatchPriority:
        # Omit the field to leave it unchanged; the column is not nullable
        if value is None:
            raise ValueError("priority cannot be null")
        return value

    class Config:
        extra = "forbid"


class DispatchStatusChange(BaseModel):
    """Schema for a client-requested status transition."""
    status: DispatchStatus
    cancellation_reason: Optional[str] = Field(None, max_length=255)
    cancellation_notes: Optional[str] = None
    estimated_delay_minutes: Optional[int] = Field(None, ge=0)

    class Config:
        extra = "forbid"


class DispatchEventResponse(BaseModel):
    """Schema for dispatch event response."""
    id: int
    route_id: int
    terminal_id: int
    execution_date: date
    status: DispatchStatus
    priority: DispatchPriority
    assigned_driver_id: Optional[int]
    assigned_truck_id: Optional[str]
    assigned_sub_unit_id: Optional[str]
    planned_departure_time: Optional[str]
    actual_departure_time: Optional[datetime]
    estimated_return_time: Optional[str]
    actual_return_time: Optional[datetime]
    estimated_completion_time: Optional[datetime]
    actual_completion_time: Optional[datetime]
    estimated_delay_minutes: Optional[int]
    cancellation_reason: Optional[str]
    cancellation_notes: Optional[str]
    dispatch_notes: Optional[str]
    operational_notes: Optional[str]
    total_miles: Optional[float]
    total_service_time: Optional[float]
    fuel_used: Optional[float]
    on_time_performance: Optional[float]
    last_location_update: Optional[datetime]
    last_geotab_sync: Optional[datetime]
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DispatchEventWithStopsResponse(BaseModel):
    """Dispatch event together with its stops in sequence order."""
    event: DispatchEventResponse
    stops: List[DispatchEventStopResponse]


class DispatchGenerateRequest(BaseModel):
    """Schema for generating a terminal's dispatch events for one day."""
    execution_date: date


class SkippedRoute(BaseModel):
    trkid: str
    reason: str


class DispatchGenerateResponse(BaseModel):
    """Result of daily dispatch generation."""
    created: List[DispatchEventResponse]
    skipped: List[SkippedRoute]


class StopUpdateResponse(BaseModel):
    """Updated stop together with its event after any cascade."""
    stop: DispatchEventStopResponse
    event: DispatchEventResponse
