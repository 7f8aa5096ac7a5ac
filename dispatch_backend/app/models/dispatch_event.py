"""
Dispatch Event database model.

One dated execution of a route template. (route_id, execution_date) is a
natural key enforced by a unique constraint.
"""

from sqlalchemy import Column, Integer, String, Float, Date, DateTime, Text, ForeignKey, Enum, UniqueConstraint
from dispatch_backend.app.db.session import Base, utcnow
from dispatch_backend.app.models.dispatch_enums import DispatchStatus, DispatchPriority


class DispatchEvent(Base):
    """
    Dispatch Event model.

    Owns its dispatch_event_stops rows. The version column backs optimistic
    concurrency: every UPDATE is conditioned on the version that was read.
    """
    __tablename__ = "dispatch_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identity (immutable after creation)
    route_id = Column(Integer, ForeignKey('routes.id'), nullable=False, index=True)
    terminal_id = Column(Integer, nullable=False, index=True)
    execution_date = Column(Date, nullable=False, index=True)

    # Assignment
    assigned_driver_id = Column(Integer, nullable=True, index=True)
    assigned_truck_id = Column(String(50), nullable=True)
    assigned_sub_unit_id = Column(String(50), nullable=True)

    # Status
    status = Column(Enum(DispatchStatus), default=DispatchStatus.PLANNED, nullable=False, index=True)
    priority = Column(Enum(DispatchPriority), default=DispatchPriority.NORMAL, nullable=False)

    # Timing
    planned_departure_time = Column(String(8), nullable=True)  # HH:MM from the route
    actual_departure_time = Column(DateTime(timezone=True), nullable=True)
    estimated_return_time = Column(String(8), nullable=True)
    actual_return_time = Column(DateTime(timezone=True), nullable=True)
    estimated_completion_time = Column(DateTime(timezone=True), nullable=True)
    actual_completion_time = Column(DateTime(timezone=True), nullable=True)

    # Delays and cancellation
    estimated_delay_minutes = Column(Integer, nullable=True)
    cancellation_reason = Column(String(255), nullable=True)
    cancellation_notes = Column(Text, nullable=True)

    # Notes
    dispatch_notes = Column(Text, nullable=True)
    operational_notes = Column(Text, nullable=True)

    # Engine-derived metrics
    total_miles = Column(Float, nullable=True)
    total_service_time = Column(Float, nullable=True)
    fuel_used = Column(Float, nullable=True)
    on_time_performance = Column(Float, nullable=True)

    # Telemetry touch points
    last_location_update = Column(DateTime(timezone=True), nullable=True)
    last_geotab_sync = Column(DateTime(timezone=True), nullable=True)

    # Optimistic concurrency
    version = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('route_id', 'execution_date', name='uq_dispatch_events_route_date'),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<DispatchEvent(id={self.id}, route_id={self.route_id}, date={self.execution_date}, status='{self.status.value}')>"
