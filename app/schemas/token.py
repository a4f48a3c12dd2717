from pydantic import BaseModel
from uuid import UUID
from datetime import date, datetime
from typing import Optional, List

from app.db.models.token import TokenStatus

class TokenCreate(BaseModel):
    doctor_id: UUID
    patient_name: str
    patient_phone: str

class TokenAllocation(BaseModel):
    token_id: UUID
    token_number: int
    token_date: date
    queue_position: int

class TokenIssuedResponse(TokenAllocation):
    doctor_name: str
    patient_name: str

class TokenResponse(BaseModel):
    id: UUID
    doctor_id: UUID
    patient_name: str
    patient_phone: str
    token_number: int
    token_date: date
    queue_position: int
    status: TokenStatus
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class QueueResponse(BaseModel):
    doctor_id: UUID
    token_date: date
    active: List[TokenResponse]
    completed: List[TokenResponse]
    total_active: int = 0
    total_completed: int = 0
    total: int = 0
