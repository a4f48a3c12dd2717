from typing import List
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.exceptions import UnknownDoctor, ValidationError
from app.core.logger import logger
from app.core.utils import clean_text
from app.db.models import Doctor
from app.schemas.change import ChangeKind, ChangeTable
from app.schemas.doctor import DoctorCreate, DoctorOrder
from app.services.change_feed import ChangeFeed, change_feed

class DoctorService:
    def __init__(self, session: AsyncSession, feed: ChangeFeed = None):
        self.session = session
        self.feed = feed if feed is not None else change_feed

    async def add_doctor(self, data: DoctorCreate) -> Doctor:
        name = clean_text(data.name)
        specialization = clean_text(data.specialization)
        if not name:
            raise ValidationError("Doctor name is required.")
        if not specialization:
            raise ValidationError("Specialization is required.")

        doctor = Doctor(name=name, specialization=specialization)
        self.session.add(doctor)
        await self.session.commit()
        await self.session.refresh(doctor)
        logger.info(f"Doctor added: {doctor.id} ({doctor.name}, {doctor.specialization})")

        await self.feed.notify(ChangeTable.DOCTORS, ChangeKind.INSERT, doctor.model_dump(mode="json"))
        return doctor

    async def get_doctor(self, doctor_id: UUID) -> Doctor:
        doctor = await self.session.get(Doctor, doctor_id)
        if not doctor:
            raise UnknownDoctor(doctor_id)
        return doctor

    async def list_doctors(self, order_by: DoctorOrder | str = DoctorOrder.NAME) -> List[Doctor]:
        try:
            order_by = DoctorOrder(order_by)
        except ValueError:
            raise ValidationError(f"Unsupported ordering: {order_by}")

        query = select(Doctor)
        if order_by == DoctorOrder.NAME:
            query = query.order_by(Doctor.name, Doctor.created_at)
        else:
            query = query.order_by(Doctor.created_at.desc())
        result = await self.session.execute(query)
        return result.scalars().all()
