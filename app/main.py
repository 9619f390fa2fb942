import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes.router import api_router
from app.core.config import settings
from app.core.exceptions import ConfirmationError
from app.core.firebase import get_db, init_firebase
from app.services import build_services
from app.services.logger import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="TicVision Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    """Initialize Firebase and wire the confirmation services."""
    db = None
    if settings.STORE_BACKEND.lower() == "firestore":
        # Reads credentials path from FIREBASE_CREDENTIALS
        init_firebase()
        db = get_db()

    app.state.services = build_services(settings, db)
    logger.info("Services ready (backend=%s)", settings.STORE_BACKEND)


@app.exception_handler(ConfirmationError)
async def confirmation_error_handler(request: Request, exc: ConfirmationError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Missing or mistyped input is a plain 400 like the other caller errors
    fields = ", ".join(
        ".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid or missing fields: {fields}"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Server error"})


@app.get("/")
async def root():
    return {"message": "TicVision backend is running"}


@app.get("/health")
async def health_check():
    return {"status": "ok"}


# Include API routers
app.include_router(api_router)
