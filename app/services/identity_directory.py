"""Lookup of TicVision users by email and by uid.

Profiles are written by the web/mobile clients on first sign-in to
``users/{uid}`` with ``email``, ``name``/``displayName`` and ``ticCounter``.
"""
from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore import FieldFilter

from app.core.exceptions import Unavailable
from app.models.patient import UserIdentity

logger = logging.getLogger(__name__)

USERS = "users"


class IdentityDirectory(Protocol):
    def find_by_email(self, email: str) -> Optional[UserIdentity]: ...

    def get_profile(self, uid: str) -> Optional[UserIdentity]: ...


def _to_identity(uid: str, data: dict) -> UserIdentity:
    return UserIdentity(
        uid=uid,
        email=data.get("email"),
        display_name=data.get("displayName") or data.get("name"),
        tic_counter=data.get("ticCounter") or 0,
    )


class FirestoreIdentityDirectory:
    def __init__(self, db):
        self._db = db

    def find_by_email(self, email):
        try:
            docs = (
                self._db.collection(USERS)
                .where(filter=FieldFilter("email", "==", email))
                .limit(1)
                .stream()
            )
            matches = [(d.id, d.to_dict() or {}) for d in docs]
        except (gcp_exceptions.GoogleAPICallError, gcp_exceptions.RetryError) as exc:
            logger.error("User lookup by email failed: %s", exc)
            raise Unavailable() from exc

        if not matches:
            return None
        uid, data = matches[0]
        return _to_identity(uid, data)

    def get_profile(self, uid):
        try:
            snap = self._db.collection(USERS).document(uid).get()
        except (gcp_exceptions.GoogleAPICallError, gcp_exceptions.RetryError) as exc:
            logger.error("Profile read for %s failed: %s", uid, exc)
            raise Unavailable() from exc

        if not snap.exists:
            return None
        return _to_identity(snap.id, snap.to_dict() or {})


class MemoryIdentityDirectory:
    def __init__(self, users: Optional[Dict[str, dict]] = None):
        # uid -> profile document
        self.users: Dict[str, dict] = dict(users or {})

    def add_user(self, uid: str, email: str, **profile):
        self.users[uid] = {"email": email, **profile}

    def find_by_email(self, email):
        for uid, data in self.users.items():
            if data.get("email") == email:
                return _to_identity(uid, data)
        return None

    def get_profile(self, uid):
        data = self.users.get(uid)
        if data is None:
            return None
        return _to_identity(uid, data)
