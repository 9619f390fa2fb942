"""Persistence for confirmation requests and doctor-patient links.

Firestore layout:

    pending_requests/{request_id}                ConfirmationRequest
    confirmation_intents/{intent_key}            {"request_id": ...} latest request of a pair
    confirmation_tokens/{token}                  {"request_id": ...} token index
    doctors/{doctor_id}/patients/{patient_id}    DoctorPatientLink

Every multi-document mutation runs inside one Firestore transaction. The
transaction re-reads the request and checks its ``state`` before writing,
so of two concurrent callers exactly one performs a given transition.
"""
from __future__ import annotations

import functools
import logging
import re
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from firebase_admin import firestore
from google.api_core import exceptions as gcp_exceptions

from app.core.exceptions import InvalidOrExpired, InvalidToken, Unavailable
from app.models.confirmation import (
    ConfirmationRequest,
    ConfirmationState,
    DoctorPatientLink,
    intent_key,
)

logger = logging.getLogger(__name__)

REQUESTS = "pending_requests"
INTENTS = "confirmation_intents"
TOKENS = "confirmation_tokens"
DOCTORS = "doctors"
PATIENTS = "patients"

# Runs inside the confirm transaction; raise to abort it.
Validator = Callable[[ConfirmationRequest], None]

# Decides whether an active request may be replaced by a new invitation.
SupersedePolicy = Callable[[ConfirmationRequest], bool]

# Alphabet of secrets.token_urlsafe; also keeps tokens valid document ids
_TOKEN_RE = re.compile(r"[A-Za-z0-9_-]{1,256}")


class ConfirmationStore(Protocol):
    def create_request(
        self, request: ConfirmationRequest, supersede: Optional[SupersedePolicy] = None
    ) -> Tuple[ConfirmationRequest, bool]:
        """Insert ``request`` unless the pair already has an active one.

        An active request for which ``supersede`` returns True is replaced:
        it is marked ``superseded_by`` and its token stops working.
        Returns the stored request and whether it was newly created.
        """

    def issue_token(
        self, doctor_id: str, patient_id: str, token: str, issued_at: datetime
    ) -> ConfirmationRequest:
        """Move the pair's pending request to token_issued with ``token``."""

    def confirm_token(
        self, token: str, confirmed_at: datetime, validate: Validator
    ) -> DoctorPatientLink:
        """Create the link and mark the token's request confirmed, atomically."""

    def get_link(self, doctor_id: str, patient_id: str) -> Optional[DoctorPatientLink]: ...

    def list_links(self, doctor_id: str) -> List[DoctorPatientLink]: ...


# -------------------------
# Transition rules (shared by both stores)
# -------------------------
def _issue(
    request: Optional[ConfirmationRequest], token: str, issued_at: datetime
) -> ConfirmationRequest:
    if request is None or not request.is_active or request.state != ConfirmationState.PENDING:
        raise InvalidOrExpired()
    return request.model_copy(
        update={
            "state": ConfirmationState.TOKEN_ISSUED,
            "token": token,
            "token_issued_at": issued_at,
        }
    )


def _confirm(
    request: Optional[ConfirmationRequest], confirmed_at: datetime, validate: Validator
) -> Tuple[ConfirmationRequest, DoctorPatientLink]:
    if request is None or not request.is_active or request.state != ConfirmationState.TOKEN_ISSUED:
        raise InvalidToken()
    validate(request)
    updated = request.model_copy(
        update={"state": ConfirmationState.CONFIRMED, "confirmed_at": confirmed_at}
    )
    link = DoctorPatientLink(
        doctor_id=request.doctor_id,
        patient_id=request.patient_id,
        confirmed_at=confirmed_at,
        request_id=request.id,
    )
    return updated, link


def _keeps_current(current: Optional[ConfirmationRequest], supersede: Optional[SupersedePolicy]) -> bool:
    if current is None or not current.is_active:
        return False
    return supersede is None or not supersede(current)


def _link_from_doc(doctor_id: str, patient_id: str, data: dict) -> DoctorPatientLink:
    # Links written by the web client use camelCase fields
    return DoctorPatientLink(
        doctor_id=doctor_id,
        patient_id=patient_id,
        confirmed_at=data.get("confirmed_at") or data.get("confirmedAt"),
        request_id=data.get("request_id"),
    )


def _translate_errors(fn):
    """Surface Firestore/network failures as ``Unavailable``."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (gcp_exceptions.GoogleAPICallError, gcp_exceptions.RetryError) as exc:
            logger.error("Firestore call failed in %s: %s", fn.__name__, exc)
            raise Unavailable() from exc

    return wrapper


# -------------------------
# Firestore
# -------------------------
class FirestoreConfirmationStore:
    def __init__(self, db):
        self._db = db

    def _request_ref(self, request_id: str):
        return self._db.collection(REQUESTS).document(request_id)

    def _intent_ref(self, doctor_id: str, patient_id: str):
        return self._db.collection(INTENTS).document(intent_key(doctor_id, patient_id))

    def _link_ref(self, doctor_id: str, patient_id: str):
        return (
            self._db.collection(DOCTORS)
            .document(doctor_id)
            .collection(PATIENTS)
            .document(patient_id)
        )

    def _read_request(self, request_id: Optional[str], transaction=None):
        if not request_id:
            return None
        snap = self._request_ref(request_id).get(transaction=transaction)
        if not snap.exists:
            return None
        return ConfirmationRequest.from_firestore(snap.id, snap.to_dict() or {})

    def _active_request_id(self, doctor_id: str, patient_id: str, transaction=None):
        snap = self._intent_ref(doctor_id, patient_id).get(transaction=transaction)
        if not snap.exists:
            return None
        return (snap.to_dict() or {}).get("request_id")

    @_translate_errors
    def create_request(self, request, supersede=None):
        intent_ref = self._intent_ref(request.doctor_id, request.patient_id)

        @firestore.transactional
        def _create(transaction):
            current_id = self._active_request_id(
                request.doctor_id, request.patient_id, transaction
            )
            current = self._read_request(current_id, transaction)
            if _keeps_current(current, supersede):
                return current, False

            if current is not None and current.is_active:
                transaction.update(self._request_ref(current.id), {"superseded_by": request.id})
                if current.token:
                    transaction.delete(self._db.collection(TOKENS).document(current.token))

            transaction.set(self._request_ref(request.id), request.to_firestore())
            transaction.set(
                intent_ref,
                {
                    "request_id": request.id,
                    "doctor_id": request.doctor_id,
                    "patient_id": request.patient_id,
                },
            )
            return request, True

        return _create(self._db.transaction())

    @_translate_errors
    def issue_token(self, doctor_id, patient_id, token, issued_at):
        @firestore.transactional
        def _issue_txn(transaction):
            request_id = self._active_request_id(doctor_id, patient_id, transaction)
            updated = _issue(self._read_request(request_id, transaction), token, issued_at)

            transaction.update(
                self._request_ref(updated.id),
                {
                    "state": updated.state.value,
                    "token": updated.token,
                    "token_issued_at": updated.token_issued_at,
                },
            )
            transaction.set(
                self._db.collection(TOKENS).document(token), {"request_id": updated.id}
            )
            return updated

        return _issue_txn(self._db.transaction())

    @_translate_errors
    def confirm_token(self, token, confirmed_at, validate):
        if not _TOKEN_RE.fullmatch(token or ""):
            raise InvalidToken()
        token_ref = self._db.collection(TOKENS).document(token)

        @firestore.transactional
        def _confirm_txn(transaction):
            token_snap = token_ref.get(transaction=transaction)
            request_id = (token_snap.to_dict() or {}).get("request_id") if token_snap.exists else None
            updated, link = _confirm(
                self._read_request(request_id, transaction), confirmed_at, validate
            )

            transaction.set(
                self._link_ref(link.doctor_id, link.patient_id), link.to_firestore()
            )
            transaction.update(
                self._request_ref(updated.id),
                {"state": updated.state.value, "confirmed_at": updated.confirmed_at},
            )
            return link

        return _confirm_txn(self._db.transaction())

    @_translate_errors
    def get_link(self, doctor_id, patient_id):
        snap = self._link_ref(doctor_id, patient_id).get()
        if not snap.exists:
            return None
        return _link_from_doc(doctor_id, snap.id, snap.to_dict() or {})

    @_translate_errors
    def list_links(self, doctor_id):
        docs = self._db.collection(DOCTORS).document(doctor_id).collection(PATIENTS).stream()
        return [_link_from_doc(doctor_id, d.id, d.to_dict() or {}) for d in docs]


# -------------------------
# In-memory (local runs, tests)
# -------------------------
class MemoryConfirmationStore:
    """Process-local store with the same transition guarantees.

    A single lock stands in for Firestore's transaction isolation.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.requests: Dict[str, ConfirmationRequest] = {}
        self.intents: Dict[str, str] = {}
        self.tokens: Dict[str, str] = {}
        self.links: Dict[Tuple[str, str], DoctorPatientLink] = {}

    def _active(self, doctor_id: str, patient_id: str) -> Optional[ConfirmationRequest]:
        request_id = self.intents.get(intent_key(doctor_id, patient_id))
        return self.requests.get(request_id) if request_id else None

    def create_request(self, request, supersede=None):
        with self._lock:
            current = self._active(request.doctor_id, request.patient_id)
            if _keeps_current(current, supersede):
                return current, False
            if current is not None and current.is_active:
                self.requests[current.id] = current.model_copy(update={"superseded_by": request.id})
                if current.token:
                    self.tokens.pop(current.token, None)
            self.requests[request.id] = request
            self.intents[intent_key(request.doctor_id, request.patient_id)] = request.id
            return request, True

    def issue_token(self, doctor_id, patient_id, token, issued_at):
        with self._lock:
            updated = _issue(self._active(doctor_id, patient_id), token, issued_at)
            self.requests[updated.id] = updated
            self.tokens[token] = updated.id
            return updated

    def confirm_token(self, token, confirmed_at, validate):
        with self._lock:
            request_id = self.tokens.get(token)
            request = self.requests.get(request_id) if request_id else None
            updated, link = _confirm(request, confirmed_at, validate)
            self.links[(link.doctor_id, link.patient_id)] = link
            self.requests[updated.id] = updated
            return link

    def get_link(self, doctor_id, patient_id):
        with self._lock:
            return self.links.get((doctor_id, patient_id))

    def list_links(self, doctor_id):
        with self._lock:
            return [link for (d, _), link in self.links.items() if d == doctor_id]
