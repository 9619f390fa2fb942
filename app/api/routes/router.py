from fastapi import APIRouter

from app.api.routes.auth import router as auth_router
from app.api.routes.confirmation import router as confirmation_router
from app.api.routes.doctor.patients import router as doctor_patients_router

api_router = APIRouter()

# Public confirmation handshake
api_router.include_router(confirmation_router)
api_router.include_router(auth_router)

# Doctor routes
api_router.include_router(doctor_patients_router)
