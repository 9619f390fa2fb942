# app/core/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Service account JSON for Firebase Admin (local path)
    FIREBASE_CREDENTIALS: str = "app/core/firebase_key.json"

    # "firestore" in production, "memory" for local runs without Firebase
    STORE_BACKEND: str = "firestore"

    # Where the confirmation endpoint is publicly reachable
    CONFIRMATION_BASE_URL: str = "https://us-central1-ticvision.cloudfunctions.net"

    # Patient-facing login page that finishes the handshake
    PATIENT_LOGIN_URL: str = "http://localhost:3000/userlogin"

    # Lifetime of an issued confirmation token
    TOKEN_TTL_MINUTES: int = 24 * 60

    CORS_ORIGINS: list[str] = ["*"]

    LOG_LEVEL: str = "INFO"
    DEBUG_EVENTS: bool = False

    # If you want to read from a .env file, keep this:
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


settings = Settings()
