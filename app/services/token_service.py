import asyncio
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import func, select

from app.core.config import settings
from app.core.exceptions import (
    AllocationFailed,
    InvalidTransition,
    NotFound,
    TransientAllocationConflict,
    UnknownDoctor,
    ValidationError,
)
from app.core.locks import KeyedLocks, allocation_locks
from app.core.logger import logger
from app.core.utils import clean_text, clinic_today, is_valid_phone
from app.db.models import Doctor, Token, TokenCounter, TokenStatus
from app.schemas.change import ChangeKind, ChangeTable
from app.schemas.token import QueueResponse, TokenAllocation, TokenResponse
from app.services.change_feed import ChangeFeed, change_feed


def _error_message(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


class TokenService:
    def __init__(self, session: AsyncSession, feed: ChangeFeed = None, locks: KeyedLocks = None):
        self.session = session
        self.feed = feed if feed is not None else change_feed
        self.locks = locks if locks is not None else allocation_locks

    def validate_patient(self, patient_name: str, patient_phone: str) -> tuple[str, str]:
        name = clean_text(patient_name)
        phone = clean_text(patient_phone)
        if not name:
            raise ValidationError("Patient name is required.")
        if not phone:
            raise ValidationError("Patient phone is required.")
        if not is_valid_phone(phone):
            raise ValidationError("Phone number must be exactly 10 digits.")
        return name, phone

    async def allocate_token(
        self,
        doctor_id: UUID,
        patient_name: str,
        patient_phone: str,
        token_date: Optional[date] = None,
    ) -> TokenAllocation:
        """
        Issue the next token for a doctor's day.

        The number and queue position are assigned under a lock scoped to
        (doctor_id, token_date): an in-process asyncio lock plus a row lock on
        the matching ``token_counters`` row. Database conflicts are retried
        with exponential backoff; when the budget runs out the caller gets
        AllocationFailed and no token row exists.
        """
        name, phone = self.validate_patient(patient_name, patient_phone)
        token_date = token_date or clinic_today()
        key = (doctor_id, token_date)

        max_attempts = max(1, settings.ALLOCATION_MAX_ATTEMPTS)
        for attempt in range(1, max_attempts + 1):
            try:
                async with self.locks.hold(key):
                    token = await self._allocate_once(doctor_id, name, phone, token_date)
                break
            except TransientAllocationConflict as exc:
                if attempt == max_attempts:
                    logger.error(f"Token allocation for doctor {doctor_id} on {token_date} gave up after {attempt} attempts: {exc}")
                    raise AllocationFailed(f"Could not allocate a token, please retry: {exc}")
                delay = settings.ALLOCATION_RETRY_BACKOFF_SECONDS * (2 ** (attempt - 1))
                logger.warning(f"Token allocation conflict for doctor {doctor_id} on {token_date} (attempt {attempt}), retrying in {delay:.3f}s")
                await asyncio.sleep(delay)

        logger.info(
            f"Token issued: doctor={doctor_id} date={token_date} "
            f"number={token.token_number} position={token.queue_position}"
        )
        await self.feed.notify(ChangeTable.TOKENS, ChangeKind.INSERT, token.model_dump(mode="json"))

        return TokenAllocation(
            token_id=token.id,
            token_number=token.token_number,
            token_date=token.token_date,
            queue_position=token.queue_position,
        )

    async def _allocate_once(self, doctor_id: UUID, patient_name: str, patient_phone: str, token_date: date) -> Token:
        try:
            doctor = await self.session.get(Doctor, doctor_id)
            if not doctor:
                await self.session.rollback()
                raise UnknownDoctor(doctor_id)

            counter = await self._lock_counter(doctor_id, token_date)

            # The counter is authoritative, but never hand out a number already in the ledger
            max_stmt = select(func.max(Token.token_number)).where(
                Token.doctor_id == doctor_id,
                Token.token_date == token_date,
            )
            max_issued = (await self.session.execute(max_stmt)).scalar() or 0

            active_stmt = select(func.count(Token.id)).where(
                Token.doctor_id == doctor_id,
                Token.token_date == token_date,
                Token.status == TokenStatus.ACTIVE,
            )
            active_count = (await self.session.execute(active_stmt)).scalar() or 0

            token = Token(
                doctor_id=doctor_id,
                patient_name=patient_name,
                patient_phone=patient_phone,
                token_number=max(counter.last_token, max_issued) + 1,
                token_date=token_date,
                queue_position=active_count + 1,
                status=TokenStatus.ACTIVE,
            )
            counter.last_token = token.token_number
            self.session.add(counter)
            self.session.add(token)
            await self.session.commit()
        except (IntegrityError, OperationalError) as exc:
            await self.session.rollback()
            if exc.connection_invalidated:
                # Lost the database, not a conflicting writer
                raise AllocationFailed(_error_message(exc)) from exc
            raise TransientAllocationConflict(_error_message(exc)) from exc
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise AllocationFailed(_error_message(exc)) from exc

        return token

    async def _lock_counter(self, doctor_id: UUID, token_date: date) -> TokenCounter:
        stmt = select(TokenCounter).where(
            TokenCounter.doctor_id == doctor_id,
            TokenCounter.token_date == token_date,
        ).with_for_update()
        result = await self.session.execute(stmt)
        counter = result.scalars().first()
        if counter is None:
            # A concurrent first allocation for the day fails here on the unique constraint
            counter = TokenCounter(doctor_id=doctor_id, token_date=token_date, last_token=0)
            self.session.add(counter)
            await self.session.flush()
        return counter

    async def get_token(self, token_id: UUID) -> Token:
        token = await self.session.get(Token, token_id)
        if not token:
            raise NotFound()
        return token

    async def list_tokens(self, doctor_id: UUID, token_date: Optional[date] = None) -> List[Token]:
        token_date = token_date or clinic_today()
        stmt = select(Token).where(
            Token.doctor_id == doctor_id,
            Token.token_date == token_date,
        ).order_by(Token.token_number)
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def get_queue(self, doctor_id: UUID, token_date: Optional[date] = None) -> QueueResponse:
        token_date = token_date or clinic_today()
        tokens = await self.list_tokens(doctor_id, token_date)
        active = [TokenResponse.model_validate(t) for t in tokens if t.status == TokenStatus.ACTIVE]
        completed = [TokenResponse.model_validate(t) for t in tokens if t.status == TokenStatus.COMPLETED]
        return QueueResponse(
            doctor_id=doctor_id,
            token_date=token_date,
            active=active,
            completed=completed,
            total_active=len(active),
            total_completed=len(completed),
            total=len(tokens),
        )

    async def mark_complete(self, token_id: UUID) -> Token:
        # Conditional update keeps the status flip atomic for the single row
        stmt = update(Token).where(
            Token.id == token_id,
            Token.status == TokenStatus.ACTIVE,
        ).values(
            status=TokenStatus.COMPLETED,
            completed_at=datetime.utcnow(),
        ).execution_options(synchronize_session=False)
        result = await self.session.execute(stmt)

        if result.rowcount == 0:
            await self.session.rollback()
            if await self.session.get(Token, token_id) is None:
                raise NotFound()
            raise InvalidTransition()

        await self.session.commit()
        token = await self.session.get(Token, token_id, populate_existing=True)
        logger.info(f"Token completed: {token.id} (doctor={token.doctor_id} number={token.token_number})")

        await self.feed.notify(ChangeTable.TOKENS, ChangeKind.UPDATE, token.model_dump(mode="json"))
        return token
