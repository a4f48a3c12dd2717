from enum import Enum
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint
from typing import Optional, TYPE_CHECKING
from datetime import date, datetime
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from .doctor import Doctor

class TokenStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"

class Token(SQLModel, table=True):
    __tablename__ = "tokens"
    __table_args__ = (
        UniqueConstraint("doctor_id", "token_date", "token_number", name="uq_tokens_doctor_date_number"),
    )
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    doctor_id: UUID = Field(foreign_key="doctors.id", index=True)
    patient_name: str
    patient_phone: str = Field(max_length=10)
    token_number: int
    token_date: date = Field(index=True)
    queue_position: int
    status: TokenStatus = Field(default=TokenStatus.ACTIVE)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None

    doctor: "Doctor" = Relationship(back_populates="tokens")
