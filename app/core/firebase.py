"""
Firebase admin initialization and helpers.

This module initializes the Firebase Admin SDK for use in the API.
Doctors and patients authenticate with Firebase Authentication on the
frontend and pass Firebase ID tokens to the backend. The backend verifies
those tokens using the Firebase Admin SDK and reads/writes Firestore.

Nothing here is reached for implicitly: the Firestore client returned by
``get_db`` is handed to the stores and directories that need it.
"""

import logging
import os

import firebase_admin
from firebase_admin import credentials, firestore

from app.core.config import settings

logger = logging.getLogger(__name__)

_firebase_app = None


def init_firebase(cred_path: str | None = None):
    """
    Initialize Firebase Admin SDK if not already initialized.

    Priority:
    1. Explicit ``cred_path`` argument
    2. FIREBASE_CREDENTIALS setting (env var or .env)
    """
    global _firebase_app

    # Prevent re-initialization (important for Uvicorn reload)
    if firebase_admin._apps:
        _firebase_app = firebase_admin.get_app()
        return _firebase_app

    cred_path = cred_path or settings.FIREBASE_CREDENTIALS

    if not os.path.exists(cred_path):
        raise RuntimeError(
            f"Firebase credentials not found at: {cred_path}\n"
            "Set FIREBASE_CREDENTIALS env var or place firebase_key.json correctly."
        )

    cred = credentials.Certificate(cred_path)
    _firebase_app = firebase_admin.initialize_app(cred)

    logger.info("Firebase Admin initialized successfully.")
    return _firebase_app


def get_db():
    """Return a Firestore client bound to the initialized app."""
    if _firebase_app is None:
        raise RuntimeError("Firebase is not initialized; call init_firebase() first")
    return firestore.client(app=_firebase_app)
