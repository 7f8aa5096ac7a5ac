"""
Driver Availability database model.
"""

import enum
from sqlalchemy import Column, Integer, String, Date, DateTime, Enum
from dispatch_backend.app.db.session import Base, utcnow


class AvailabilityType(str, enum.Enum):
    AVAILABLE = "available"
    NOT_AVAILABLE = "not_available"
    PTO = "pto"
    VACATION = "vacation"
    SICK = "sick"
    PERSONAL = "personal"


class DriverAvailability(Base):
    """
    Availability record for a driver over an inclusive date range.

    Any record other than AVAILABLE that overlaps a date makes the driver
    unavailable on that date.
    """
    __tablename__ = "driver_availability"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    driver_id = Column(Integer, nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    availability_type = Column(Enum(AvailabilityType), nullable=False)
    reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<DriverAvailability(driver_id={self.driver_id}, type='{self.availability_type.value}')>"
