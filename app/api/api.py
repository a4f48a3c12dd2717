from fastapi import APIRouter
from app.api.v1 import changes, doctors, tokens

api_router = APIRouter()

api_router.include_router(doctors.router, prefix="/doctors", tags=["doctors"])
api_router.include_router(tokens.router, prefix="/tokens", tags=["tokens"])
api_router.include_router(changes.router, prefix="/changes", tags=["changes"])
