"""
Route Stop template database model.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, UniqueConstraint
from dispatch_backend.app.db.session import Base


class RouteStop(Base):
    """Planned stop of a route template, ordered by sequence."""
    __tablename__ = "route_stops"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)

    # Destination
    cust_name = Column(String(200), nullable=True)
    address = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Planned window (HH:MM)
    eta = Column(String(8), nullable=True)
    etd = Column(String(8), nullable=True)

    __table_args__ = (
        UniqueConstraint('route_id', 'sequence', name='uq_route_stops_route_sequence'),
    )

    def __repr__(self):
        return f"<RouteStop(id={self.id}, route_id={self.route_id}, seq={self.sequence})>"
