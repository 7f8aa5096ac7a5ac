"""
Dispatch-related enumerations.
"""

import enum


class DispatchStatus(str, enum.Enum):
    """Dispatch event status enumeration."""
    PLANNED = "planned"  # Created for the day, no driver yet
    ASSIGNED = "assigned"  # Driver assigned, not yet released
    DISPATCHED = "dispatched"  # Released to the road
    IN_TRANSIT = "in_transit"  # First stop reached
    COMPLETED = "completed"  # All stops closed out
    CANCELLED = "cancelled"  # Cancelled with a reason
    DELAYED = "delayed"  # Running behind


class DispatchPriority(str, enum.Enum):
    """Dispatch priority enumeration."""
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class StopStatus(str, enum.Enum):
    """Stop progress status enumeration."""
    PENDING = "pending"  # Not yet visited
    ARRIVED = "arrived"  # Truck at the stop
    COMPLETED = "completed"  # Service finished
    SKIPPED = "skipped"  # Stop skipped
    EXCEPTION = "exception"  # Could not be serviced normally


class OnTimeStatus(str, enum.Enum):
    """Arrival classification against the planned ETA."""
    EARLY = "early"
    ON_TIME = "on_time"
    LATE = "late"
