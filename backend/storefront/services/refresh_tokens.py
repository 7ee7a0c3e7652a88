"""Refresh token rows: one per user, upserted atomically on the user_id unique key."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.refresh_token import RefreshToken

logger = logging.getLogger(__name__)


class SqlRefreshTokenStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    def _insert(self):
        if self.session.bind.dialect.name == "sqlite":
            return sqlite_insert(RefreshToken)
        return pg_insert(RefreshToken)

    async def upsert_refresh_token(self, user_id: int, token: str, expires_at: datetime) -> None:
        now = datetime.now(timezone.utc)
        stmt = self._insert().values(user_id=user_id, token=token, expires_at=expires_at, created_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id"],
            set_={"token": stmt.excluded.token, "expires_at": stmt.excluded.expires_at, "created_at": now},
        )
        await self.session.execute(stmt)

    async def find_refresh_token(self, token: str) -> RefreshToken | None:
        r = await self.session.execute(select(RefreshToken).where(RefreshToken.token == token))
        return r.scalar_one_or_none()

    async def delete_refresh_token(self, user_id: int) -> None:
        await self.session.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))

    async def count_for_user(self, user_id: int) -> int:
        r = await self.session.execute(select(RefreshToken.id).where(RefreshToken.user_id == user_id))
        return len(r.all())


async def purge_expired_refresh_tokens(session: AsyncSession) -> int:
    """Delete refresh-token rows past their expiry. Returns the number removed."""
    r = await session.execute(
        delete(RefreshToken).where(RefreshToken.expires_at < datetime.now(timezone.utc))
    )
    count = r.rowcount or 0
    if count:
        logger.info("Purged %d expired refresh tokens", count)
    return count
