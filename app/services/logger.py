import json
import logging

from app.core.config import settings

event_logger = logging.getLogger("ticvision.events")


def setup_logging(level: str | None = None):
    """Configure root logging once for the API process."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s | %(name)s | %(message)s",
    )


def log_event(event: str, data: dict):
    """
    Logs structured debug info if enabled.
    """
    if not settings.DEBUG_EVENTS:
        return

    event_logger.info("%s: %s", event, json.dumps(data, default=str, sort_keys=True))


def mask_token(token: str | None) -> str:
    """Shorten a bearer token so it can appear in logs."""
    if not token:
        return "<none>"
    return f"{token[:6]}…"
