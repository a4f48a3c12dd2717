from sqlmodel import SQLModel
from .doctor import Doctor
from .token import Token, TokenStatus
from .counter import TokenCounter

__all__ = [
    "SQLModel",
    "Doctor",
    "Token",
    "TokenStatus",
    "TokenCounter",
]
