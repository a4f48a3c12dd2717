from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from uuid import UUID

from app.db.session import get_session
from app.schemas.token import QueueResponse, TokenCreate, TokenIssuedResponse, TokenResponse
from app.services.change_feed import ChangeFeed, get_change_feed
from app.services.doctor_service import DoctorService
from app.services.token_service import TokenService

router = APIRouter()

async def get_token_service(
    session: AsyncSession = Depends(get_session),
    feed: ChangeFeed = Depends(get_change_feed)
) -> TokenService:
    return TokenService(session, feed)

@router.post("/", response_model=TokenIssuedResponse, status_code=201)
async def generate_token(
    request: TokenCreate,
    service: TokenService = Depends(get_token_service)
):
    # Token date is stamped by the server, clients cannot pick a day
    allocation = await service.allocate_token(
        request.doctor_id,
        request.patient_name,
        request.patient_phone,
    )
    doctor = await DoctorService(service.session, service.feed).get_doctor(request.doctor_id)
    return TokenIssuedResponse(
        **allocation.model_dump(),
        doctor_name=doctor.name,
        patient_name=request.patient_name.strip(),
    )

@router.get("/", response_model=List[TokenResponse])
async def list_tokens(
    doctor_id: UUID,
    token_date: Optional[date] = None,
    service: TokenService = Depends(get_token_service)
):
    return await service.list_tokens(doctor_id, token_date)

@router.get("/queue", response_model=QueueResponse)
async def read_queue(
    doctor_id: UUID,
    token_date: Optional[date] = None,
    service: TokenService = Depends(get_token_service)
):
    return await service.get_queue(doctor_id, token_date)

@router.get("/{token_id}", response_model=TokenResponse)
async def read_token(
    token_id: UUID,
    service: TokenService = Depends(get_token_service)
):
    return await service.get_token(token_id)

@router.post("/{token_id}/complete", response_model=TokenResponse)
async def mark_complete(
    token_id: UUID,
    service: TokenService = Depends(get_token_service)
):
    return await service.mark_complete(token_id)
