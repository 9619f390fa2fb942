"""Pydantic models for user identities and a doctor's linked patients.

Profiles live in the Firestore ``users`` collection, keyed by Firebase uid.
"""
from pydantic import BaseModel
from typing import Optional


class UserIdentity(BaseModel):
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    tic_counter: int = 0


class LinkedPatient(BaseModel):
    id: str
    display_name: str = "Unknown"
    tic_counter: int = 0
