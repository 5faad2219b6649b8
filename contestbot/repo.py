from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contestbot.db.models import AppSetting, Participant, Referral

log = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """The storage layer failed; the transaction was rolled back."""


class DuplicateError(StorageError):
    """A unique constraint rejected the write."""


class ContestRepository:
    """Session-bound data access for participants, referrals and settings.

    Every counter change goes through a single UPDATE with an increment
    expression, and every one-way flag flip through a conditional UPDATE whose
    rowcount tells the caller whether it won.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ---- participants ---------------------------------------------------------
    async def find_participant(self, user_id: int, chat_id: int) -> Participant | None:
        q = (
            select(Participant)
            .where(Participant.user_id == user_id, Participant.chat_id == chat_id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(q)

    async def lock_participant(self, user_id: int, chat_id: int) -> Participant | None:
        """Row-locks the participant until the transaction ends (no-op on SQLite)."""
        q = (
            select(Participant)
            .where(Participant.user_id == user_id, Participant.chat_id == chat_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(q)

    async def find_participant_by_referral_code(self, code: str) -> Participant | None:
        q = (
            select(Participant)
            .where(Participant.referral_code == code)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(q)

    async def referral_code_exists(self, code: str) -> bool:
        q = select(Participant.id).where(Participant.referral_code == code).limit(1)
        return (await self.session.scalar(q)) is not None

    async def create_participant(self, **data: Any) -> Participant:
        p = Participant(**data)
        self.session.add(p)
        await self.session.flush()
        return p

    async def update_participant_atomic(
        self,
        participant_id: int,
        *,
        values: dict[str, Any] | None = None,
        increment: dict[str, int] | None = None,
        set_once: dict[str, Any] | None = None,
        only_if: dict[str, Any] | None = None,
    ) -> int:
        """Single UPDATE statement; returns the number of rows it touched.

        values:    plain assignments
        increment: column = column + n
        set_once:  column = coalesce(column, value)
        only_if:   extra equality guards (compare-and-swap)
        """
        assignments: dict[str, Any] = dict(values or {})
        for name, n in (increment or {}).items():
            assignments[name] = getattr(Participant, name) + n
        for name, v in (set_once or {}).items():
            assignments[name] = func.coalesce(getattr(Participant, name), v)
        if not assignments:
            return 0

        conds = [Participant.id == participant_id]
        for name, v in (only_if or {}).items():
            conds.append(getattr(Participant, name) == v)

        stmt = (
            update(Participant)
            .where(*conds)
            .values(**assignments)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        return int(res.rowcount or 0)

    async def list_active_participants(self, chat_id: int) -> list[Participant]:
        q = (
            select(Participant)
            .where(Participant.chat_id == chat_id, Participant.is_active.is_(True))
            .execution_options(populate_existing=True)
        )
        return list((await self.session.scalars(q)).all())

    # ---- referrals ------------------------------------------------------------
    async def create_referral(self, **data: Any) -> Referral:
        r = Referral(**data)
        self.session.add(r)
        await self.session.flush()
        return r

    async def find_referrals_by_referred_user(self, user_id: int, chat_id: int, status: str) -> list[Referral]:
        q = (
            select(Referral)
            .where(
                Referral.referred_user_id == user_id,
                Referral.chat_id == chat_id,
                Referral.status == status,
            )
            .order_by(Referral.id.asc())
            .execution_options(populate_existing=True)
        )
        return list((await self.session.scalars(q)).all())

    async def update_referral_status(
        self,
        referral_id: int,
        new_status: str,
        left_at: datetime | None,
        *,
        expected_status: str | None = None,
    ) -> int:
        conds = [Referral.id == referral_id]
        if expected_status is not None:
            conds.append(Referral.status == expected_status)
        stmt = (
            update(Referral)
            .where(*conds)
            .values(status=new_status, left_at=left_at)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(stmt)
        return int(res.rowcount or 0)

    # ---- runtime settings -----------------------------------------------------
    async def get_app_setting(self, key: str) -> AppSetting | None:
        return await self.session.get(AppSetting, key)

    async def set_app_setting(self, key: str, *, int_value: int | None = None, str_value: str | None = None) -> None:
        row = await self.session.get(AppSetting, key)
        if not row:
            row = AppSetting(key=key)
            self.session.add(row)
        row.int_value = int_value
        row.str_value = str_value
        row.touch()
        await self.session.flush()


class ContestStorage:
    """Hands out repositories bound to one committed-or-rolled-back transaction."""

    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]):
        self._sessionmaker = sessionmaker

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[ContestRepository]:
        try:
            async with self._sessionmaker() as session:
                async with session.begin():
                    yield ContestRepository(session)
        except IntegrityError as e:
            log.warning("storage_integrity_error", extra={"reason": str(e.orig)})
            raise DuplicateError(str(e.orig)) from e
        except SQLAlchemyError as e:
            log.error("storage_error", extra={"reason": str(e)})
            raise StorageError(str(e)) from e
