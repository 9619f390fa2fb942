"""Wiring of the backend services.

``build_services`` is called once on app startup and the result is kept on
``app.state.services``; routes receive it through ``app.api.deps``.
"""
from dataclasses import dataclass
from datetime import timedelta

from app.core.config import Settings
from app.services.confirmation_service import ConfirmationWorkflow
from app.services.confirmation_store import (
    ConfirmationStore,
    FirestoreConfirmationStore,
    MemoryConfirmationStore,
)
from app.services.identity_directory import (
    FirestoreIdentityDirectory,
    IdentityDirectory,
    MemoryIdentityDirectory,
)
from app.services.tic_data import FirestoreTicHistory, MemoryTicHistory, TicHistorySource


@dataclass
class Services:
    store: ConfirmationStore
    directory: IdentityDirectory
    tic_history: TicHistorySource
    workflow: ConfirmationWorkflow


def build_services(settings: Settings, db=None) -> Services:
    """
    Build services for the configured backend.

    ``db`` is the Firestore client; required unless STORE_BACKEND is "memory".
    """
    backend = settings.STORE_BACKEND.lower()
    if backend == "memory":
        store = MemoryConfirmationStore()
        directory = MemoryIdentityDirectory()
        tic_history = MemoryTicHistory()
    elif backend == "firestore":
        if db is None:
            raise RuntimeError("Firestore backend selected but no client was provided")
        store = FirestoreConfirmationStore(db)
        directory = FirestoreIdentityDirectory(db)
        tic_history = FirestoreTicHistory(db)
    else:
        raise RuntimeError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")

    ttl = timedelta(minutes=settings.TOKEN_TTL_MINUTES) if settings.TOKEN_TTL_MINUTES > 0 else None
    workflow = ConfirmationWorkflow(
        store=store,
        directory=directory,
        confirmation_base_url=settings.CONFIRMATION_BASE_URL,
        patient_login_url=settings.PATIENT_LOGIN_URL,
        token_ttl=ttl,
    )
    return Services(store=store, directory=directory, tic_history=tic_history, workflow=workflow)
