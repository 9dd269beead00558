from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.responses import Response
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from colorlog import ColoredFormatter
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import IntegrityError
import time, json, logging, traceback

from marketplace.core.config import settings


# Formatter for console
console_formatter = ColoredFormatter(
    "%(log_color)s%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    log_colors={
        'DEBUG': 'cyan',
        'INFO': 'green',
        'WARNING': 'yellow',
        'ERROR': 'red',
        'CRITICAL': 'bold_red',
    },
)

# Formatter for file (no color)
file_formatter = logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger("marketplace.middleware")


def configure_logging():
    """Attach the console (and optional file) handlers to the package logger once."""
    root = logging.getLogger("marketplace")
    if root.handlers:
        return
    root.setLevel(settings.LOG_LEVEL)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(console_formatter)
    root.addHandler(console_handler)

    if settings.LOG_FILE:
        file_handler = logging.FileHandler(settings.LOG_FILE)
        file_handler.setFormatter(file_formatter)
        root.addHandler(file_handler)


def get_status_color(status_code: int) -> str:
    if 200 <= status_code < 300:
        return "\033[92m"  # Green
    elif 400 <= status_code < 500:
        return "\033[93m"  # Yellow
    elif 500 <= status_code < 600:
        return "\033[91m"  # Red
    else:
        return "\033[0m"   # Default


def register_middleware(app: FastAPI):

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        logger.error(f"HTTPException: {exc.detail} at {request.method} {request.url.path}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.error(f"Validation error at {request.method} {request.url.path}: {exc.errors()}")
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})

    @app.exception_handler(IntegrityError)
    async def db_integrity_error_handler(request: Request, exc: IntegrityError):
        logger.error(f"Database integrity error at {request.method} {request.url.path}: {str(exc)}")
        logger.error(traceback.format_exc())
        return JSONResponse(status_code=400, content={"detail": "Database error occurred"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception at {request.method} {request.url.path}: {str(exc)}")
        logger.error(traceback.format_exc())
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.exception(f"Unhandled error for {request.method} {request.url.path}")
            raise exc
        process_time = time.time() - start_time

        status_color = get_status_color(response.status_code)
        reset_color = "\033[0m"
        client = f"{request.client.host}:{request.client.port}" if request.client else "-"

        log_msg = (
            f"{client} - {request.method} {request.url.path} - "
            f"Status: {status_color}{response.status_code}{reset_color} - Time: {process_time:.2f}s"
        )

        if response.status_code >= 400:
            body = b""
            async for chunk in response.body_iterator:
                body += chunk
            response = Response(
                content=body,
                status_code=response.status_code,
                headers=dict(response.headers),
                media_type=response.media_type,
            )
            try:
                error_content = json.loads(body.decode())
                reason = error_content.get("message") or error_content.get("detail", error_content)
                log_msg += f" - Reason: {reason}"
            except Exception:
                log_msg += f" - Reason: {body.decode(errors='ignore')}"

        logger.info(log_msg)
        return response


    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)
