from sqlmodel import SQLModel, Field, Relationship
from typing import List, TYPE_CHECKING
from datetime import datetime
from uuid import UUID, uuid4

if TYPE_CHECKING:
    from .token import Token

class Doctor(SQLModel, table=True):
    __tablename__ = "doctors"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(index=True)
    specialization: str
    created_at: datetime = Field(default_factory=datetime.utcnow, index=True)

    tokens: List["Token"] = Relationship(back_populates="doctor")
