"""
Route Substitution database model.

Temporary override of a route's default driver/equipment for a date range.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey, Text
from dispatch_backend.app.db.session import Base, utcnow


class RouteSubstitution(Base):
    __tablename__ = "route_substitutions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)

    # Inclusive date range
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    # Overrides
    driver_id = Column(Integer, nullable=True)
    truck_number = Column(String(50), nullable=True)
    sub_unit_number = Column(String(50), nullable=True)

    reason = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<RouteSubstitution(id={self.id}, route_id={self.route_id}, {self.start_date}..{self.end_date})>"
