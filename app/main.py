from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app import config
from app.routes import auth, profile, subjects, tutors, timesheets
from app.services.errors import (
    AlreadyDecided,
    ConflictError,
    DuplicateEmail,
    DuplicateName,
    NotAssigned,
    NotFound,
    PartialInviteFailure,
    PermissionDenied,
    StoreError,
    TutorTimeError,
    ValidationError,
)
from datetime import datetime, timezone
import logging
import time

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Most specific first; TutorTimeError catches the rest
ERROR_STATUS = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotAssigned, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (DuplicateName, status.HTTP_409_CONFLICT),
    (DuplicateEmail, status.HTTP_409_CONFLICT),
    (AlreadyDecided, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PartialInviteFailure, status.HTTP_502_BAD_GATEWAY),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
]

app = FastAPI(
    redirect_slashes=False,
    title="Tutor Time API",
    description="Timesheets, subjects and tutor rates for a tutoring business",
    version="1.0.0",
    openapi_tags=[
        {
            "name": "Timesheets",
            "description": "Logging hours and approving them",
        },
    ],
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[config.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        f"{request.method} {request.url.path} - "
        f"Status: {response.status_code} - "
        f"Duration: {duration_ms:.2f}ms"
    )
    return response


def error_status(exc: TutorTimeError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@app.exception_handler(TutorTimeError)
async def domain_exception_handler(request: Request, exc: TutorTimeError):
    """Report domain failures, flagging the ones that may have left state half-written."""
    code = error_status(exc)
    if exc.inconsistent:
        logger.error(f"{request.method} {request.url.path} left inconsistent state: {exc.message}")
    elif code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")

    return JSONResponse(
        status_code=code,
        content={
            "error": {
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
                "inconsistent": exc.inconsistent,
            }
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": jsonable_errors(exc),
                "inconsistent": False,
            }
        }
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx can hold exception instances, which JSONResponse cannot encode
    return [{k: v for k, v in err.items() if k != "ctx"} for err in exc.errors()]


@app.get("/health", tags=["Health"])
def health_check():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": "1.0.0",
    }


# Include routers
app.include_router(auth.router, prefix="/auth")
app.include_router(profile.router, prefix="/profile")
app.include_router(subjects.router, prefix="/subjects")
app.include_router(tutors.router, prefix="/tutors", tags=["Tutors"])
app.include_router(timesheets.router, prefix="/timesheets", tags=["Timesheets"])
