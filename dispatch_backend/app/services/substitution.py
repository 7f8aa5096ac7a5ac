"""
Route substitution lookups.
"""

from datetime import date
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from dispatch_backend.app.models.route_substitution import RouteSubstitution


class SubstitutionService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_active(self, route_id: int, on_date: date) -> Optional[RouteSubstitution]:
        """Most recently created substitution whose date range contains on_date."""
        result = await self.db.execute(
            select(RouteSubstitution)
            .where(
                RouteSubstitution.route_id == route_id,
                RouteSubstitution.start_date <= on_date,
                RouteSubstitution.end_date >= on_date,
            )
            .order_by(desc(RouteSubstitution.created_at), desc(RouteSubstitution.id))
            .limit(1)
        )
        return result.scalar_one_or_none()
