"""
Route template database model.

Maintained by the route planning system; the dispatch engine only reads it.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from dispatch_backend.app.db.session import Base, utcnow


class Route(Base):
    """
    Route template model.

    Schedule days are stored as one flag per weekday.
    """
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    trkid = Column(String(50), unique=True, nullable=False, index=True)
    terminal_id = Column(Integer, nullable=False, index=True)

    # Defaults applied to each day's dispatch
    default_driver_id = Column(Integer, nullable=True)
    truck_number = Column(String(50), nullable=True)
    sub_unit_number = Column(String(50), nullable=True)
    departure_time = Column(String(8), nullable=True)  # HH:MM

    # Schedule
    sun = Column(Boolean, default=False, nullable=False)
    mon = Column(Boolean, default=False, nullable=False)
    tue = Column(Boolean, default=False, nullable=False)
    wed = Column(Boolean, default=False, nullable=False)
    thu = Column(Boolean, default=False, nullable=False)
    fri = Column(Boolean, default=False, nullable=False)
    sat = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<Route(id={self.id}, trkid='{self.trkid}', terminal_id={self.terminal_id})>"
