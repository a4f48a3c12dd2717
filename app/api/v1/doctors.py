from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from app.db.session import get_session
from app.schemas.doctor import DoctorCreate, DoctorOrder, DoctorResponse
from app.services.change_feed import ChangeFeed, get_change_feed
from app.services.doctor_service import DoctorService

router = APIRouter()

async def get_doctor_service(
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed)
) -> DoctorService:
    return DoctorService(session, feed)

@router.post("/", response_model=DoctorResponse, status_code=201)
async def add_doctor(
    doctor: DoctorCreate,
    service: DoctorService = Depends(get_doctor_service)
):
    return await service.add_doctor(doctor)

@router.get("/", response_model=List[DoctorResponse])
async def list_doctors(
    order_by: DoctorOrder = DoctorOrder.NAME,
    service: DoctorService = Depends(get_doctor_service)
):
    return await service.list_doctors(order_by)

@router.get("/{doctor_id}", response_model=DoctorResponse)
async def read_doctor(
    doctor_id: UUID,
    service: DoctorService = Depends(get_doctor_service)
):
    return await service.get_doctor(doctor_id)
