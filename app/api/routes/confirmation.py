"""Doctor/patient confirmation routes.

``POST /generateConfirmation`` and ``GET /confirmPatientRequest`` are public:
the doctor's dashboard calls the first, the patient's mail client opens the
second. ``POST /confirmations/confirm`` is called by the patient's login page
once they are signed in with Firebase.
"""
import logging

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import RedirectResponse

from app.api.deps import get_current_user, get_services
from app.models.schemas import (
    ConfirmTokenIn,
    ConfirmTokenOut,
    GenerateConfirmationIn,
    GenerateConfirmationOut,
)
from app.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["confirmation"])


@router.post(
    "/generateConfirmation",
    response_model=GenerateConfirmationOut,
    response_model_by_alias=True,
)
async def generate_confirmation(
    payload: GenerateConfirmationIn = Body(...),
    services: Services = Depends(get_services),
):
    logger.info("Confirmation link requested by doctor %s", payload.doctor_id)
    result = services.workflow.generate_confirmation(payload.doctor_id, payload.patient_email)
    return GenerateConfirmationOut(
        confirmation_link=result.confirmation_link,
        email_template=result.email_template,
    )


@router.get("/confirmPatientRequest")
async def confirm_patient_request(
    doctor_id: str = Query("", alias="doctorId"),
    patient_id: str = Query("", alias="patientId"),
    services: Services = Depends(get_services),
):
    redirect_url = services.workflow.redeem_confirmation_link(doctor_id, patient_id)
    return RedirectResponse(redirect_url, status_code=302)


@router.post(
    "/confirmations/confirm",
    response_model=ConfirmTokenOut,
    response_model_by_alias=True,
)
async def confirm_with_token(
    payload: ConfirmTokenIn = Body(...),
    user=Depends(get_current_user),
    services: Services = Depends(get_services),
):
    link = services.workflow.confirm_with_token(payload.token, user.get("uid"))
    return ConfirmTokenOut(
        doctor_id=link.doctor_id,
        patient_id=link.patient_id,
        confirmed_at=link.confirmed_at,
    )
