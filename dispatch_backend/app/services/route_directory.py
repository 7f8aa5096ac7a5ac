"""
Read-only access to route templates and their stops.
"""

from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from dispatch_backend.app.models.route import Route
from dispatch_backend.app.models.route_stop import RouteStop

# Python weekday() order: Monday is 0
WEEKDAY_FLAGS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


class RouteDirectory:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, route_id: int) -> Optional[Route]:
        result = await self.db.execute(select(Route).where(Route.id == route_id))
        return result.scalar_one_or_none()

    async def list_stops(self, route_id: int) -> List[RouteStop]:
        """Stop templates of a route in sequence order."""
        result = await self.db.execute(
            select(RouteStop)
            .where(RouteStop.route_id == route_id)
            .order_by(RouteStop.sequence)
        )
        return list(result.scalars().all())

    async def list_routes_for_day(self, terminal_id: int, weekday: int) -> List[Route]:
        """
        Routes of a terminal scheduled on a weekday.

        Args:
            weekday: 0 (Monday) to 6 (Sunday), as returned by date.weekday()
        """
        flag = getattr(Route, WEEKDAY_FLAGS[weekday])
        result = await self.db.execute(
            select(Route)
            .where(Route.terminal_id == terminal_id, flag.is_(True))
            .order_by(Route.trkid)
        )
        return list(result.scalars().all())
