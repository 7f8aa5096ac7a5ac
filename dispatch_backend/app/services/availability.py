"""
Driver availability lookups.
"""

from datetime import date
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from dispatch_backend.app.models.driver_availability import DriverAvailability, AvailabilityType


class AvailabilityService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_driver_available(self, driver_id: int, on_date: date) -> bool:
        """
        A driver is unavailable when any non-AVAILABLE record covers the date
        (start_date and end_date inclusive).
        """
        result = await self.db.execute(
            select(func.count(DriverAvailability.id)).where(
                DriverAvailability.driver_id == driver_id,
                DriverAvailability.availability_type != AvailabilityType.AVAILABLE,
                DriverAvailability.start_date <= on_date,
                DriverAvailability.end_date >= on_date,
            )
        )
        return result.scalar_one() == 0
