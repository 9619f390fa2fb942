"""Confirmation request and doctor-patient link records stored in Firestore.

A request moves strictly forward:
    pending --(redeem link)--> token_issued --(confirm token)--> confirmed
and is never deleted. A pending or token_issued request can be superseded
by a newer invitation for the same pair; it then stays as an inactive record.
"""
import hashlib
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel


class ConfirmationState(str, Enum):
    PENDING = "pending"
    TOKEN_ISSUED = "token_issued"
    CONFIRMED = "confirmed"


class ConfirmationRequest(BaseModel):
    id: str
    doctor_id: str
    patient_id: str
    patient_email: str
    state: ConfirmationState = ConfirmationState.PENDING
    token: Optional[str] = None
    token_issued_at: Optional[datetime] = None
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    # Set when a newer invitation for the same pair replaced this one
    superseded_by: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.state != ConfirmationState.CONFIRMED and self.superseded_by is None

    def to_firestore(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"id"})
        data["state"] = self.state.value
        return data

    @classmethod
    def from_firestore(cls, doc_id: str, data: Dict[str, Any]) -> "ConfirmationRequest":
        return cls(id=doc_id, **data)


class DoctorPatientLink(BaseModel):
    doctor_id: str
    patient_id: str
    confirmed_at: datetime
    request_id: Optional[str] = None

    def to_firestore(self) -> Dict[str, Any]:
        return self.model_dump()


def intent_key(doctor_id: str, patient_id: str) -> str:
    """Stable document id for the single active request of a pair."""
    raw = f"{doctor_id}\x00{patient_id}".encode("utf-8")
    return hashlib.sha256(raw).hexdigest()
