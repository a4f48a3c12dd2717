from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint
from datetime import date
from uuid import UUID, uuid4

class TokenCounter(SQLModel, table=True):
    """Last issued token number per doctor per day. Row-locked during allocation."""
    __tablename__ = "token_counters"
    __table_args__ = (
        UniqueConstraint("doctor_id", "token_date", name="uq_token_counters_doctor_date"),
    )
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    doctor_id: UUID = Field(foreign_key="doctors.id")
    token_date: date
    last_token: int = Field(default=0)
