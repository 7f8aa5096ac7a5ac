"""
Dispatch Event Stop database model.

Stop-level execution tracking, one row per route stop template.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, Enum, Boolean, Text
from dispatch_backend.app.db.session import Base, utcnow
from dispatch_backend.app.models.dispatch_enums import StopStatus, OnTimeStatus


class DispatchEventStop(Base):
    """
    Dispatch Event Stop model.

    Exclusively owned by one dispatch event and deleted with it.
    """
    __tablename__ = "dispatch_event_stops"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Owner
    dispatch_event_id = Column(
        Integer, ForeignKey('dispatch_events.id', ondelete='CASCADE'), nullable=False, index=True
    )

    # Template reference
    route_stop_id = Column(Integer, ForeignKey('route_stops.id'), nullable=True)
    sequence = Column(Integer, nullable=False)  # 0-based, gaps allowed

    # Plan (copied from the template)
    planned_eta = Column(String(8), nullable=True)
    planned_etd = Column(String(8), nullable=True)

    # Execution
    actual_arrival_time = Column(DateTime(timezone=True), nullable=True)
    actual_departure_time = Column(DateTime(timezone=True), nullable=True)
    service_time = Column(Float, nullable=True)  # minutes
    status = Column(Enum(StopStatus), default=StopStatus.PENDING, nullable=False)
    on_time_status = Column(Enum(OnTimeStatus), nullable=True)

    # Telemetry enrichment
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    odometer = Column(Float, nullable=True)
    fuel_used = Column(Float, nullable=True)

    # Notes and exceptions
    notes = Column(Text, nullable=True)
    exception_reason = Column(String(255), nullable=True)
    skip_reason = Column(String(255), nullable=True)
    requires_attention = Column(Boolean, default=False, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<DispatchEventStop(id={self.id}, event={self.dispatch_event_id}, seq={self.sequence}, status='{self.status.value}')>"
