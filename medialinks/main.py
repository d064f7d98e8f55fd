import json
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import FastAPI, Response, Request, Depends, Header, Query, status
from fastapi.responses import JSONResponse

from medialinks.config import settings
from medialinks.errors import ServiceError
from medialinks.logging_utils import setup_logging, RequestLoggingMiddleware, annotate_request_log
from medialinks.metrics import get_metrics, get_metrics_content_type
from medialinks.schemas import (
    AccountResponse,
    ErrorResponse,
    HealthResponse,
    Media,
    StatusResponse,
    Token,
)
from medialinks.services import Services, build_services
from medialinks.storage import init_db, check_db_health


# Setup structured JSON logging
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    - Startup: Initialize database and build the resource managers
    - Shutdown: Cleanup resources
    """
    init_db()
    app.state.services = build_services(settings=settings)
    logger.info("Service started")
    yield


app = FastAPI(
    title="Media Links API",
    description="Token-authenticated accounts and user-owned media links",
    version="1.0.0",
    lifespan=lifespan,
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Validation error or missing record"},
    403: {"model": ErrorResponse, "description": "Missing or invalid token"},
    500: {"model": ErrorResponse, "description": "Persistence or partial failure"},
}


def get_services(request: Request) -> Services:
    return request.app.state.services


ServicesDep = Annotated[Services, Depends(get_services)]
TokenHeader = Annotated[str | None, Header(description="Session token id")]


async def read_payload(request: Request) -> dict[str, Any]:
    """
    Decode the request body as a JSON object.

    Anything that is not a JSON object is treated as an empty payload so that
    the managers report the missing fields with a 400.
    """
    raw_body = await request.body()
    if not raw_body:
        return {}
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.debug(f"Ignoring undecodable body: {e}")
        return {}
    return payload if isinstance(payload, dict) else {}


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map a manager error to its status code and a short message body."""
    annotate_request_log(request, error=exc.kind)
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.kind}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


# =============================================================================
# Health Check Routes
# =============================================================================

@app.get("/ping", response_model=StatusResponse)
async def ping() -> StatusResponse:
    return StatusResponse()


@app.get("/health/live", response_model=HealthResponse)
async def health_live() -> HealthResponse:
    """
    Liveness probe - always returns 200 once the app is running.
    """
    return HealthResponse(status="ok")


@app.get("/health/ready", response_model=HealthResponse)
async def health_ready(response: Response) -> HealthResponse:
    """
    Readiness probe - returns 200 only if the DB is reachable and the
    records table exists, otherwise 503 (Service Unavailable).
    """
    if not check_db_health():
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="not_ready",
            reason="Database not reachable or schema not applied"
        )

    return HealthResponse(status="ready")


# =============================================================================
# Account Routes
# =============================================================================

@app.post("/users", response_model=StatusResponse, responses=ERROR_RESPONSES)
async def create_user(request: Request, services: ServicesDep) -> StatusResponse:
    """
    Register an account.

    Body: firstName, lastName, phone (10 characters), password (or secret),
    tosAgreement (or tos) = true
    """
    payload = await read_payload(request)
    annotate_request_log(request, resource="users")
    account = await services.accounts.create(payload)
    annotate_request_log(request, key=account.phone)
    return StatusResponse()


@app.get("/users", response_model=AccountResponse, responses=ERROR_RESPONSES)
async def get_user(
    request: Request,
    services: ServicesDep,
    phone: Annotated[str | None, Query(description="Account phone number")] = None,
    token: TokenHeader = None,
) -> AccountResponse:
    """Return the caller's own account, without the password hash."""
    annotate_request_log(request, resource="users", key=phone)
    return await services.accounts.read(phone, token)


@app.put("/users", response_model=StatusResponse, responses=ERROR_RESPONSES)
async def update_user(request: Request, services: ServicesDep, token: TokenHeader = None) -> StatusResponse:
    """
    Update the caller's account.

    Body: phone plus at least one of firstName, lastName, password
    """
    payload = await read_payload(request)
    annotate_request_log(request, resource="users", key=payload.get("phone"))
    await services.accounts.update(payload, token)
    return StatusResponse()


@app.delete("/users", response_model=StatusResponse, responses=ERROR_RESPONSES)
async def delete_user(
    request: Request,
    services: ServicesDep,
    phone: Annotated[str | None, Query(description="Account phone number")] = None,
    token: TokenHeader = None,
) -> StatusResponse:
    """
    Delete the caller's account and every media link it owns.

    A 500 with succeeded/failed counts means the account was removed but some
    of its media records could not be.
    """
    annotate_request_log(request, resource="users", key=phone)
    result = await services.accounts.delete(phone, token)
    annotate_request_log(request, cascade_succeeded=result.succeeded, cascade_failed=result.failed)
    return StatusResponse()


# =============================================================================
# Token Routes
# =============================================================================

@app.post("/tokens", response_model=Token, responses=ERROR_RESPONSES)
async def create_token(request: Request, services: ServicesDep) -> Token:
    """
    Log in.

    Body: phone, password (or secret). Returns a token valid for one hour.
    """
    payload = await read_payload(request)
    annotate_request_log(request, resource="tokens")
    return await services.tokens.issue(payload)


@app.get("/tokens", response_model=Token, responses={**ERROR_RESPONSES, 404: {"description": "Token not found"}})
async def get_token(
    request: Request,
    services: ServicesDep,
    id: Annotated[str | None, Query(description="Token id")] = None,
) -> Token:
    annotate_request_log(request, resource="tokens")
    return await services.tokens.read(id)


@app.put("/tokens", response_model=Token, responses=ERROR_RESPONSES)
async def extend_token(request: Request, services: ServicesDep) -> Token:
    """
    Extend an unexpired token by one hour.

    Body: id, extend = true
    """
    payload = await read_payload(request)
    annotate_request_log(request, resource="tokens")
    return await services.tokens.extend(payload)


@app.delete("/tokens", response_model=StatusResponse, responses=ERROR_RESPONSES)
async def delete_token(
    request: Request,
    services: ServicesDep,
    id: Annotated[str | None, Query(description="Token id")] = None,
) -> StatusResponse:
    """Log out."""
    annotate_request_log(request, resource="tokens")
    await services.tokens.revoke(id)
    return StatusResponse()


# =============================================================================
# Media Routes
# =============================================================================

@app.post("/media", response_model=Media, responses=ERROR_RESPONSES)
async def create_media(request: Request, services: ServicesDep, token: TokenHeader = None) -> Media:
    """
    Add a media link for the token's account.

    Body: url (its host must resolve), description (or dis)
    """
    payload = await read_payload(request)
    annotate_request_log(request, resource="media")
    media = await services.media.create(payload, token)
    annotate_request_log(request, key=media.id)
    return media


@app.get("/media", response_model=dict[str, Media], responses=ERROR_RESPONSES)
async def list_media(request: Request, services: ServicesDep) -> dict[str, Media]:
    """Every media link, keyed by id. No token is required."""
    annotate_request_log(request, resource="media")
    return await services.media.list()


@app.put("/media", response_model=StatusResponse, responses=ERROR_RESPONSES)
async def update_media(request: Request, services: ServicesDep, token: TokenHeader = None) -> StatusResponse:
    """
    Update a media link owned by the token's account.

    Body: id plus at least one of url, description
    """
    payload = await read_payload(request)
    annotate_request_log(request, resource="media", key=payload.get("id"))
    await services.media.update(payload, token)
    return StatusResponse()


@app.delete("/media", response_model=StatusResponse, responses=ERROR_RESPONSES)
async def delete_media(
    request: Request,
    services: ServicesDep,
    id: Annotated[str | None, Query(description="Media id")] = None,
    token: TokenHeader = None,
) -> StatusResponse:
    annotate_request_log(request, resource="media", key=id)
    await services.media.delete(id, token)
    return StatusResponse()


# =============================================================================
# Metrics Route
# =============================================================================

@app.get("/metrics")
async def metrics() -> Response:
    """
    Expose Prometheus-style metrics.
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )
