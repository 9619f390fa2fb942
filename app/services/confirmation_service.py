"""Doctor -> patient confirmation handshake.

1. ``generate_confirmation``: the doctor asks for an invitation link for a
   patient email. A pending request is stored and a link carrying the
   doctor and patient ids is returned (delivery is up to the caller).
2. ``redeem_confirmation_link``: the patient opens the link. A one-time
   token is issued and the patient is sent to the login page with it.
3. ``confirm_with_token``: the signed-in patient presents the token. The
   doctor-patient link is created and the request becomes confirmed.
"""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import urlencode

from app.core.exceptions import InvalidArgument, InvalidToken, NotFound
from app.models.confirmation import ConfirmationRequest, ConfirmationState, DoctorPatientLink
from app.models.schemas import EmailTemplate
from app.services.confirmation_store import ConfirmationStore
from app.services.identity_directory import IdentityDirectory
from app.services.logger import log_event, mask_token

logger = logging.getLogger(__name__)

EMAIL_SUBJECT = "Confirm Doctor Access to Your TicVision Data"
TOKEN_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_email_template(confirmation_link: str) -> EmailTemplate:
    body = (
        "A doctor wants to add you as a patient on TicVision.\n"
        "Click the link below to confirm your access:\n"
        f"{confirmation_link}\n"
        "\n"
        "If you did not request this, please ignore this email.\n"
    )
    return EmailTemplate(subject=EMAIL_SUBJECT, body=body)


@dataclass
class GeneratedConfirmation:
    request: ConfirmationRequest
    confirmation_link: str
    email_template: EmailTemplate
    created: bool


class ConfirmationWorkflow:
    def __init__(
        self,
        store: ConfirmationStore,
        directory: IdentityDirectory,
        confirmation_base_url: str,
        patient_login_url: str,
        token_ttl: Optional[timedelta] = None,
        clock: Callable[[], datetime] = _utcnow,
        token_factory: Callable[[], str] = lambda: secrets.token_urlsafe(TOKEN_BYTES),
    ):
        self.store = store
        self.directory = directory
        self.confirmation_base_url = confirmation_base_url.rstrip("/")
        self.patient_login_url = patient_login_url
        self.token_ttl = token_ttl
        self._clock = clock
        self._new_token = token_factory

    def confirmation_link(self, doctor_id: str, patient_id: str) -> str:
        query = urlencode({"doctorId": doctor_id, "patientId": patient_id})
        return f"{self.confirmation_base_url}/confirmPatientRequest?{query}"

    def login_redirect(self, token: str) -> str:
        sep = "&" if "?" in self.patient_login_url else "?"
        return f"{self.patient_login_url}{sep}{urlencode({'token': token})}"

    def generate_confirmation(self, doctor_id: Optional[str], patient_email: Optional[str]) -> GeneratedConfirmation:
        if not doctor_id or not patient_email:
            raise InvalidArgument("Missing doctorId or patientEmail.")

        patient = self.directory.find_by_email(patient_email)
        if patient is None:
            logger.info("Patient not found for confirmation request from doctor %s", doctor_id)
            raise NotFound("Patient not found.")

        request = ConfirmationRequest(
            id=uuid.uuid4().hex,
            doctor_id=doctor_id,
            patient_id=patient.uid,
            patient_email=patient_email,
            state=ConfirmationState.PENDING,
            created_at=self._clock(),
        )
        stored, created = self.store.create_request(request, supersede=self._replaces_issued_token)
        if not created:
            logger.info(
                "Reusing active request %s for doctor %s / patient %s",
                stored.id, doctor_id, patient.uid,
            )

        link = self.confirmation_link(stored.doctor_id, stored.patient_id)
        log_event("confirmation_generated", {
            "request_id": stored.id,
            "doctor_id": doctor_id,
            "patient_id": patient.uid,
            "created": created,
        })
        return GeneratedConfirmation(
            request=stored,
            confirmation_link=link,
            email_template=build_email_template(link),
            created=created,
        )

    @staticmethod
    def _replaces_issued_token(current: ConfirmationRequest) -> bool:
        # A request holding a token is replaced by a fresh invite; the old
        # token stops working.
        return current.state == ConfirmationState.TOKEN_ISSUED

    def redeem_confirmation_link(self, doctor_id: Optional[str], patient_id: Optional[str]) -> str:
        """Issue the token for a pending request; returns the login redirect URL."""
        if not doctor_id or not patient_id:
            raise InvalidArgument("Invalid confirmation link.")

        token = self._new_token()
        request = self.store.issue_token(doctor_id, patient_id, token, self._clock())

        logger.info("Issued token %s for request %s", mask_token(token), request.id)
        return self.login_redirect(token)

    def confirm_with_token(self, token: Optional[str], authenticated_user_id: Optional[str]) -> DoctorPatientLink:
        if not token or not authenticated_user_id:
            raise InvalidArgument("Missing token.")

        now = self._clock()

        def _validate(request: ConfirmationRequest):
            if request.patient_id != authenticated_user_id:
                logger.warning(
                    "Token %s presented by %s, addressed to another patient",
                    mask_token(token), authenticated_user_id,
                )
                raise InvalidToken()
            if self.token_ttl is not None and request.token_issued_at is not None:
                if now - request.token_issued_at > self.token_ttl:
                    logger.info("Token %s expired", mask_token(token))
                    raise InvalidToken()

        link = self.store.confirm_token(token, now, _validate)
        log_event("confirmation_completed", {
            "doctor_id": link.doctor_id,
            "patient_id": link.patient_id,
            "request_id": link.request_id,
        })
        return link
