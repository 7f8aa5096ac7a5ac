"""
Assignment schemas.

Requests for putting a driver or equipment on a dispatch event.
"""

from pydantic import BaseModel, Field
from typing import Optional


class DriverAssignmentRequest(BaseModel):
    """
    Assign (or unassign, with driver_id null) the driver of a dispatch event.

    truck_id is only applied when present in the request body.
    """
    driver_id: Optional[int] = Field(..., gt=0)
    truck_id: Optional[str] = Field(None, max_length=50)

    class Config:
        extra = "forbid"


class EquipmentAssignmentRequest(BaseModel):
    """Assign truck and/or sub-unit; only fields present in the body are applied."""
    truck_id: Optional[str] = Field(None, max_length=50)
    sub_unit_id: Optional[str] = Field(None, max_length=50)

    class Config:
        extra = "forbid"
