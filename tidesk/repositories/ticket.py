from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.db.models import Ticket


class TicketRepository:
    """Repository for ticket rows. Status writes are single UPDATE statements."""

    async def get_by_id(self, session: AsyncSession, ticket_id: int) -> Optional[Ticket]:
        stmt = select(Ticket).where(Ticket.id == ticket_id).execution_options(populate_existing=True)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def exists(self, session: AsyncSession, ticket_id: int) -> bool:
        res = await session.execute(select(Ticket.id).where(Ticket.id == ticket_id))
        return res.first() is not None

    async def list_recent(self, session: AsyncSession, user_id: Optional[int] = None, limit: int = 200) -> List[Ticket]:
        stmt = select(Ticket).order_by(Ticket.created_at.desc(), Ticket.id.desc()).limit(limit)
        if user_id is not None:
            stmt = stmt.where(Ticket.user_id == user_id)
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def count_created_between(self, session: AsyncSession, start: datetime, end: datetime) -> int:
        res = await session.execute(
            select(func.count(Ticket.id)).where(Ticket.created_at >= start, Ticket.created_at < end)
        )
        return int(res.scalar_one())

    async def list_by_ticket_number(self, session: AsyncSession, ticket_number: int) -> List[Ticket]:
        """Every ticket carrying the given daily number, newest first."""
        stmt = (
            select(Ticket)
            .where(Ticket.ticket_number == ticket_number)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def create(self, session: AsyncSession, **fields: Any) -> Ticket:
        entity = Ticket(**fields)
        session.add(entity)
        await session.flush()
        return entity

    async def update_fields(self, session: AsyncSession, ticket_id: int, values: Dict[str, Any], **conditions: Any) -> int:
        """Apply ``values`` in one UPDATE; extra ``conditions`` are column equality guards.

        Returns:
            Number of rows affected.
        """
        stmt = update(Ticket).where(Ticket.id == ticket_id)
        for column, expected in conditions.items():
            stmt = stmt.where(getattr(Ticket, column) == expected)
        res = await session.execute(stmt.values(**values).execution_options(synchronize_session=False))
        return res.rowcount or 0

    async def resolve_closed_before(self, session: AsyncSession, threshold: datetime, now: datetime) -> int:
        res = await session.execute(
            update(Ticket)
            .where(Ticket.status == "closed", Ticket.updated_at < threshold)
            .values(status="resolved", updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return res.rowcount or 0

    async def delete(self, session: AsyncSession, ticket_id: int) -> int:
        res = await session.execute(delete(Ticket).where(Ticket.id == ticket_id))
        return res.rowcount or 0
