from __future__ import annotations
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tidesk.db.base import MAX_STORED_INTEGER
from tidesk.db.models import Form, Group


class FormRepository:
    async def list_all(self, session: AsyncSession) -> List[Form]:
        res = await session.execute(select(Form).order_by(Form.name))
        return list(res.scalars().all())

    async def get_by_id(self, session: AsyncSession, form_id: int) -> Optional[Form]:
        return await session.get(Form, form_id)

    async def get_by_public_url(self, session: AsyncSession, public_url: str) -> Optional[Form]:
        res = await session.execute(select(Form).where(Form.public_url == public_url))
        return res.scalar_one_or_none()

    async def get_by_public_ref(self, session: AsyncSession, ref: str) -> Optional[Form]:
        """Public URL first, then a numeric form id."""
        form = await self.get_by_public_url(session, ref)
        if form is None and ref.isascii() and ref.isdigit() and int(ref) <= MAX_STORED_INTEGER:
            form = await self.get_by_id(session, int(ref))
        return form

    async def get_group(self, session: AsyncSession, group_id: int) -> Optional[Group]:
        return await session.get(Group, group_id)

    async def create(
        self,
        session: AsyncSession,
        name: str,
        public_url: str,
        created_by: int,
        description: Optional[str] = None,
        linked_user_id: Optional[int] = None,
        linked_group_id: Optional[int] = None,
    ) -> Form:
        entity = Form(
            name=name,
            description=description,
            public_url=public_url,
            created_by=created_by,
            linked_user_id=linked_user_id,
            linked_group_id=linked_group_id,
        )
        session.add(entity)
        await session.flush()
        return entity
