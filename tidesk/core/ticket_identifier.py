"""
Composite ticket identifiers.

A ticket shown to humans as ``20260122003`` is ticket number 3 of 2026-01-22 in
the civil timezone. The daily number resets every civil day and is not unique
at the storage layer, so decoding has to search by number and disambiguate by
creation date.
"""

import logging
from datetime import date, datetime
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.core.exceptions import NotFoundError, StorageFailure
from tidesk.core.timeutils import civil_day_bounds, civil_today, to_civil
from tidesk.db.base import MAX_STORED_INTEGER
from tidesk.repositories.ticket import TicketRepository

logger = logging.getLogger(__name__)

DATE_PREFIX_LENGTH = 8
NUMBER_WIDTH = 3
COMPOSITE_MIN_LENGTH = DATE_PREFIX_LENGTH + NUMBER_WIDTH


class TicketIdentifierCodec:
    """Generates daily ticket numbers and maps composite identifiers to row ids."""

    def __init__(self, tz_name: Optional[str] = None) -> None:
        self.tz_name = tz_name
        self.repo = TicketRepository()

    async def next_ticket_number(self, session: AsyncSession, today: Optional[date] = None) -> int:
        """Count tickets created on the civil day and return count + 1.

        Not serialised across concurrent callers: two creations racing on the
        same day can obtain the same number.
        """
        day = today or civil_today(tz_name=self.tz_name)
        start, end = civil_day_bounds(day, self.tz_name)
        try:
            count = await self.repo.count_created_between(session, start, end)
        except SQLAlchemyError as exc:
            raise StorageFailure("Failed to compute next ticket number", {"day": day.isoformat()}) from exc
        return count + 1

    def encode(self, created_at: datetime, ticket_number: int) -> str:
        civil = to_civil(created_at, self.tz_name)
        return f"{civil:%Y%m%d}{int(ticket_number):0{NUMBER_WIDTH}d}"

    async def decode(self, raw: Union[str, int, None], session: Optional[AsyncSession] = None) -> Optional[int]:
        """Map a composite identifier (or a raw row id) to the internal ticket id.

        Returns:
            The internal id, or None when nothing matches or the input is malformed.
        """
        if raw is None:
            return None
        text = str(raw).strip()
        if not (text.isascii() and text.isdigit()):
            return None

        if len(text) < COMPOSITE_MIN_LENGTH:
            value = int(text)
            return value if value > 0 else None

        if session is None:
            raise ValueError("A session is required to decode composite identifiers")

        year, month, day = int(text[0:4]), int(text[4:6]), int(text[6:8])
        ticket_number = int(text[DATE_PREFIX_LENGTH:])
        if ticket_number > MAX_STORED_INTEGER:
            return None

        try:
            candidates = await self.repo.list_by_ticket_number(session, ticket_number)
        except SQLAlchemyError as exc:
            raise StorageFailure("Failed to look up ticket identifier", {"identifier": text}) from exc

        for candidate in candidates:
            civil = to_civil(candidate.created_at, self.tz_name)
            if (civil.year, civil.month, civil.day) == (year, month, day):
                return candidate.id

        # Day-boundary skew: a lone ticket with that number is still the one meant
        if len(candidates) == 1:
            logger.info(
                "Ticket identifier %s matched by number only (ticket %s)", text, candidates[0].id
            )
            return candidates[0].id

        return None

    async def resolve(self, session: AsyncSession, raw: Union[str, int]) -> int:
        """Like :meth:`decode` but raises NotFoundError instead of returning None."""
        ticket_id = await self.decode(raw, session)
        if ticket_id is None:
            raise NotFoundError("Ticket not found", {"ticket": str(raw)})
        return ticket_id


ticket_codec = TicketIdentifierCodec()
