from enum import Enum
from pydantic import BaseModel
from uuid import UUID
from datetime import datetime

class DoctorOrder(str, Enum):
    NAME = "name"
    CREATED_AT_DESC = "created_at_desc"

class DoctorBase(BaseModel):
    name: str
    specialization: str

class DoctorCreate(DoctorBase):
    pass

class DoctorResponse(DoctorBase):
    id: UUID
    created_at: datetime

    class Config:
        from_attributes = True
