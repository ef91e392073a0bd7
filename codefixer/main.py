"""
codefixer/main.py
-----------------------------------------------------------------------------
FastAPI application entrypoint for the CodeFixer API.

This module is a **thin routing layer** — each route handler orchestrates
calls to domain modules and returns the result.  All business logic lives
in dedicated modules:

Domain modules
~~~~~~~~~~~~~~
- ``codefixer.archive_reader`` – Upload filtering and in-memory zip reading.
- ``codefixer.bundle_builder`` – Delimited text bundle for the prompt.
- ``codefixer.ai_gateway``     – Prompt rendering, model call, reply parsing.
- ``codefixer.reconciler``     – Merge file operations into project state.
- ``codefixer.archive_writer`` – Zip serialisation for downloads.
- ``codefixer.fixer_service``  – One refinement round (gateway + reconciler).
- ``codefixer.rate_limit``     – Per-client request limiter.
- ``codefixer.schema``         – Pydantic v2 request / response models.
- ``codefixer.errors``         – Error taxonomy with HTTP status codes.

Run with:
    uvicorn codefixer.main:app --host 127.0.0.1 --port 5000

Endpoints
---------
GET  /                    → plain-text banner
GET  /api/ping            → liveness check ("pong"), not rate limited
POST /api/upload          → read a project zip (multipart field ``projectZip``)
POST /api/upload-single   → read one text file (multipart field ``codeFile``)
POST /api/fix             → one AI refinement round over the client's files
POST /api/download        → zip the client's project state for download

Architecture notes
------------------
- The project state is held by the client; every request is independent.
- Services (settings, gateway, fixer, rate limiter) are built in
  ``create_app`` and stored on ``app.state``; handlers get them through
  ``Depends``.
- The model call is blocking, so ``/api/fix`` is a plain ``def`` handler
  that FastAPI runs in its threadpool.
- Every handled failure is returned as ``{"success": false, "message": ...}``.
- Every response carries the ``SECURITY_HEADERS`` set; rate-limited routes
  add ``RateLimit-Limit`` / ``RateLimit-Remaining`` / ``RateLimit-Reset``.
"""

from __future__ import annotations

import io
import logging
import re

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from fastapi import APIRouter, Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from codefixer.ai_gateway import AIGateway
from codefixer.archive_reader import MAX_UPLOAD_SIZE, read_archive, read_single_file
from codefixer.archive_writer import write_archive
from codefixer.config import Settings
from codefixer.errors import CodeFixerError, RateLimitExceeded, UploadInputError
from codefixer.fixer_service import FixerService
from codefixer.logging_config import configure_logging, install_excepthook
from codefixer.rate_limit import FixedWindowRateLimiter
from codefixer.schema import DownloadRequest, FixRequest, FixResponse, UploadResponse

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Bootstrap
# -----------------------------------------------------------------------------

# Version comes from the installed distribution metadata, which setuptools
# fills in from pyproject.toml.
try:
    _APP_VERSION: str = version("codefixer")
except PackageNotFoundError:
    _APP_VERSION = "0+unknown"

_ZIP_CONTENT_TYPES = {"application/zip", "application/x-zip-compressed"}

_SAFE_DOWNLOAD_NAME = re.compile(r"[^A-Za-z0-9_.-]")

# Conservative defaults for a JSON API that serves no HTML of its own.
SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=15552000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Frame-Options": "SAMEORIGIN",
}


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(request: Request) -> None:
    """
    Count the request against the caller's address; raises on overflow.

    The ``RateLimit-*`` headers are parked on ``request.state`` and copied
    onto the response by the HTTP middleware in ``create_app``.
    """
    request.state.rate_limit_headers = request.app.state.rate_limiter.hit(_client_key(request))


def get_fixer_service(request: Request) -> FixerService:
    return request.app.state.fixer


# -----------------------------------------------------------------------------
# Routes
# -----------------------------------------------------------------------------

router = APIRouter(prefix="/api", dependencies=[Depends(enforce_rate_limit)])


@router.post("/upload", response_model=UploadResponse, summary="Upload a project zip")
async def upload_project(
    project_zip: UploadFile | None = File(default=None, alias="projectZip"),
) -> UploadResponse:
    """
    Read every eligible text file from an uploaded zip archive.

    Raises
    ------
    UploadInputError (400) : No file, or not a zip, or over the size limit.
    ArchiveError (400)     : Corrupt archive, or nothing eligible inside.
    """
    if project_zip is None or not project_zip.filename:
        raise UploadInputError("No .zip file uploaded or file type was incorrect.")

    is_zip_name = project_zip.filename.lower().endswith(".zip")
    if project_zip.content_type not in _ZIP_CONTENT_TYPES and not is_zip_name:
        logger.warning(
            "Rejected upload %s with content type %s",
            project_zip.filename,
            project_zip.content_type,
        )
        raise UploadInputError("Invalid file type. Only .zip files are allowed.")

    # One byte over the limit is enough for read_archive to reject it.
    zip_bytes = await project_zip.read(MAX_UPLOAD_SIZE + 1)
    result = read_archive(zip_bytes)

    return UploadResponse(
        message="File uploaded and extracted successfully.",
        files=result.files,
        warnings=result.warnings,
    )


@router.post(
    "/upload-single",
    response_model=UploadResponse,
    summary="Upload a single source file",
)
async def upload_single(
    code_file: UploadFile | None = File(default=None, alias="codeFile"),
) -> UploadResponse:
    """Wrap one uploaded text file as a one-file project."""
    if code_file is None:
        raise UploadInputError("No file uploaded.")
    data = await code_file.read(MAX_UPLOAD_SIZE + 1)
    result = read_single_file(code_file.filename, data)
    return UploadResponse(message="File uploaded successfully.", files=result.files)


@router.post("/fix", response_model=FixResponse, summary="Run one AI refinement round")
def fix_project(
    req: FixRequest,
    service: FixerService = Depends(get_fixer_service),
) -> FixResponse:
    """
    Send the client's files and instruction to the model and return the
    merged project state.

    Raises
    ------
    UploadInputError (400)      : ``files`` is empty.
    AIRequestError (500)        : The model could not be reached.
    AIResponseFormatError (500) : The model's reply was unusable.
    """
    result = service.fix(req.files, req.user_prompt)
    return FixResponse(message=service.summarize(result), **result.model_dump())


@router.post("/download", summary="Download a project state as a zip file")
def download_project(req: DownloadRequest) -> StreamingResponse:
    """
    Stream the given project state as a compressed zip archive.

    Malformed items are skipped by the writer; an empty state gives an
    empty archive.
    """
    zip_bytes = write_archive(req.project_state)

    name = req.filename or f"fixed-project-{datetime.now(timezone.utc):%Y%m%d_%H%M%S}.zip"
    name = _SAFE_DOWNLOAD_NAME.sub("_", Path(name.replace("\\", "/")).name) or "project.zip"
    if not name.lower().endswith(".zip"):
        name += ".zip"

    return StreamingResponse(
        io.BytesIO(zip_bytes),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{name}"'},
    )


# -----------------------------------------------------------------------------
# Exception handlers
# -----------------------------------------------------------------------------


def _envelope(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CodeFixerError)
    async def handle_codefixer_error(request: Request, exc: CodeFixerError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimitExceeded):
            headers = {**exc.headers, "Retry-After": str(exc.retry_after)}
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
        return _envelope(exc.status_code, exc.message, headers)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return _envelope(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        problems = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
            problems.append(f"{field}: {error['msg']}" if field else error["msg"])
        return _envelope(400, "Invalid request. " + "; ".join(problems))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error for %s %s", request.method, request.url.path)
        return _envelope(500, "An internal server error occurred.")


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    *,
    gateway: AIGateway | None = None,
    rate_limiter: FixedWindowRateLimiter | None = None,
) -> FastAPI:
    """
    Build the FastAPI application and its services.

    Parameters
    ----------
    settings     : Runtime settings; read from the environment when None.
    gateway      : Model gateway; built from ``settings`` when None.
    rate_limiter : Request limiter; built from ``settings`` when None.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if not settings.gemini_api_key:
            if settings.require_api_key:
                logger.critical("GEMINI_API_KEY is not set. Set it and restart the server.")
                raise RuntimeError("GEMINI_API_KEY is not set")
            logger.warning("GEMINI_API_KEY is not set; /api/fix will fail until it is.")
        else:
            logger.info("GEMINI_API_KEY is loaded; using model %s", settings.gemini_model)
        yield

    app = FastAPI(
        title="CodeFixer API",
        description=(
            "Upload a code project, have a generative model apply an instruction "
            "to it, and download the patched file set as a zip."
        ),
        version=_APP_VERSION,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.fixer = FixerService(gateway or AIGateway.from_settings(settings))
    app.state.rate_limiter = rate_limiter or FixedWindowRateLimiter(
        settings.rate_limit_requests, settings.rate_limit_window_seconds
    )

    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    @app.middleware("http")
    async def log_and_decorate(request: Request, call_next):
        logger.info("%s %s from %s", request.method, request.url.path, _client_key(request))
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        for name, value in getattr(request.state, "rate_limit_headers", {}).items():
            response.headers.setdefault(name, value)
        return response

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    def root() -> str:
        return "CodeFixer API is up and running!"

    @app.get("/api/ping", response_class=PlainTextResponse, summary="Liveness check")
    def ping() -> str:
        return "pong"

    app.include_router(router)
    _register_exception_handlers(app)
    return app


install_excepthook()

app = create_app()
