"""
FastAPI backend for the helper matchmaking service.

Endpoints:
    GET  /health                                — Health check
    POST /api/meetings                          — Seeker creates a meeting
    GET  /api/meetings/global                   — Helper lists open global requests
    GET  /api/meetings/pending-specific         — Helper lists requests addressed to them
    POST /api/meetings/accept-specific          — Helper claims a specific meeting
    POST /api/meetings/accept-first             — Helper claims the oldest global meeting
    POST /api/meetings/reject                   — Helper declines a specific meeting
    POST /api/meetings/end                      — Either participant ends a meeting
    POST /api/meetings/token                    — (Re)issue a session credential
    POST /api/meetings/check-pending-timeouts   — Sweep stale pending meetings (system)
    GET  /api/meetings/{meeting_id}             — Meeting details

Endpoints are plain ``def`` so FastAPI runs them on its threadpool; the
store adapters make blocking boto3 calls.
"""

import uuid
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Header, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
import uvicorn

from domain.models import CallerIdentity, MeetingKind, UserRole
from shared_utils.config_loader import get_settings
from shared_utils.logging_utils import ContextualLogger, bind_request_context, clear_request_context
from shared_utils.constants import APIEndpoints, LogScope, RateLimits
from shared_utils.error_handler import AppException, handle_error
from shared_utils.validation import InputValidator
from shared_utils.di_container import get_di_container


# ---------------------------------------------------------------------------
# Application bootstrap
# ---------------------------------------------------------------------------

settings = get_settings()
logger = ContextualLogger(scope=LogScope.API)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=settings.app_description,
)

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

logger.info(
    "api_initialized",
    environment=settings.environment,
    store_backend=settings.store_backend,
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every log line of a request with a request id."""
    clear_request_context()
    bind_request_context(
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        path=request.url.path,
    )
    return await call_next(request)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Errors raised from dependencies (authentication, role checks)."""
    logger.warning("request_rejected", error_code=exc.error_code, path=request.url.path)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------

def require_roles(*roles: UserRole) -> Callable[..., CallerIdentity]:
    """Dependency factory: authenticate the bearer token and assert its role."""

    def dependency(authorization: Optional[str] = Header(default=None)) -> CallerIdentity:
        access_control = get_di_container().get_access_control()
        caller = access_control.authenticate(authorization)
        access_control.authorize(caller, roles)
        return caller

    return dependency


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

def _success(data: dict, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "success", "data": data})


def _failure(exc: Exception, event: str) -> JSONResponse:
    if isinstance(exc, AppException):
        logger.warning(event, error_code=exc.error_code, message=exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())
    error_response = handle_error(exc, scope=LogScope.API)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_response,
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get(APIEndpoints.HEALTH)
def health_check() -> dict:
    """Health check endpoint."""
    logger.debug("health_check_requested")
    return {
        "status": "healthy",
        "environment": settings.environment,
        "store_backend": settings.store_backend,
    }


# ======================================================================
# Seeker endpoints
# ======================================================================

@app.post(APIEndpoints.MEETINGS)
@limiter.limit(RateLimits.CREATE)
def create_meeting(
    request: Request,
    body: dict,
    caller: CallerIdentity = Depends(require_roles(UserRole.SEEKER)),
) -> JSONResponse:
    """Create a global or specific meeting request.

    Body JSON:
        type (str): "global" or "specific".
        helper (str, optional): Helper user id, required for "specific".
    """
    try:
        kind = MeetingKind(
            InputValidator.validate_choice(
                body.get("type"), [k.value for k in MeetingKind], "meeting type"
            )
        )
        helper = body.get("helper")
        if helper is not None:
            helper = InputValidator.validate_non_empty_string(helper, "helper")

        meeting = get_di_container().get_matchmaking_service().create_meeting(
            caller, kind, helper_id=helper
        )
        return _success({"meeting": meeting.to_api()}, status.HTTP_201_CREATED)
    except Exception as e:
        return _failure(e, "create_meeting_error")


# ======================================================================
# Helper endpoints (declared before /{meeting_id})
# ======================================================================

@app.get(APIEndpoints.GLOBAL)
def list_global_meetings(
    caller: CallerIdentity = Depends(require_roles(UserRole.HELPER)),
) -> JSONResponse:
    """Open global requests, oldest first."""
    try:
        meetings = get_di_container().get_matchmaking_service().list_pending_global(caller)
        return _success({"meetings": [m.to_api() for m in meetings]})
    except Exception as e:
        return _failure(e, "list_global_error")


@app.get(APIEndpoints.PENDING_SPECIFIC)
def list_pending_specific_meetings(
    caller: CallerIdentity = Depends(require_roles(UserRole.HELPER)),
) -> JSONResponse:
    """Pending requests addressed to the calling helper, with seeker names."""
    try:
        views = get_di_container().get_matchmaking_service().list_pending_specific(caller)
        return _success({"meetings": [v.to_api() for v in views]})
    except Exception as e:
        return _failure(e, "list_pending_specific_error")


@app.post(APIEndpoints.ACCEPT_SPECIFIC)
@limiter.limit(RateLimits.CLAIM)
def accept_specific_meeting(
    request: Request,
    body: dict,
    caller: CallerIdentity = Depends(require_roles(UserRole.HELPER)),
) -> JSONResponse:
    """Claim a specific meeting; returns the meeting and a session credential."""
    try:
        meeting_id = InputValidator.require_meeting_id(body)
        result = get_di_container().get_matchmaking_service().claim_specific(caller, meeting_id)
        return _success({"meeting": result.meeting.to_api(), **result.credential.to_api()})
    except Exception as e:
        return _failure(e, "accept_specific_error")


@app.post(APIEndpoints.ACCEPT_FIRST)
@limiter.limit(RateLimits.CLAIM)
def accept_first_meeting(
    request: Request,
    caller: CallerIdentity = Depends(require_roles(UserRole.HELPER)),
) -> JSONResponse:
    """Claim the longest-waiting global meeting."""
    try:
        result = get_di_container().get_matchmaking_service().claim_first_global(caller)
        return _success({"meeting": result.meeting.to_api(), **result.credential.to_api()})
    except Exception as e:
        return _failure(e, "accept_first_error")


@app.post(APIEndpoints.REJECT)
def reject_meeting(
    body: dict,
    caller: CallerIdentity = Depends(require_roles(UserRole.HELPER)),
) -> JSONResponse:
    """Decline a specific meeting."""
    try:
        meeting_id = InputValidator.require_meeting_id(body)
        meeting = get_di_container().get_matchmaking_service().reject_meeting(caller, meeting_id)
        return _success({"meeting": meeting.to_api()})
    except Exception as e:
        return _failure(e, "reject_error")


# ======================================================================
# Shared endpoints
# ======================================================================

@app.post(APIEndpoints.END)
def end_meeting(
    body: dict,
    caller: CallerIdentity = Depends(require_roles(UserRole.SEEKER, UserRole.HELPER)),
) -> JSONResponse:
    """End an accepted meeting (either participant)."""
    try:
        meeting_id = InputValidator.require_meeting_id(body)
        meeting = get_di_container().get_matchmaking_service().end_meeting(caller, meeting_id)
        return _success({"meeting": meeting.to_api()})
    except Exception as e:
        return _failure(e, "end_error")


@app.post(APIEndpoints.TOKEN)
@limiter.limit(RateLimits.CLAIM)
def generate_access_token(
    request: Request,
    body: dict,
    caller: CallerIdentity = Depends(require_roles(UserRole.SEEKER, UserRole.HELPER)),
) -> JSONResponse:
    """Issue a media-session credential for a live meeting the caller is part of."""
    try:
        meeting_id = InputValidator.require_meeting_id(body)
        credential = get_di_container().get_matchmaking_service().issue_credential(
            caller, meeting_id
        )
        return _success(credential.to_api())
    except Exception as e:
        return _failure(e, "token_error")


@app.post(APIEndpoints.CHECK_PENDING_TIMEOUTS)
@limiter.limit(RateLimits.SWEEP)
def check_pending_timeouts(
    request: Request,
    caller: CallerIdentity = Depends(require_roles(UserRole.SYSTEM)),
) -> JSONResponse:
    """Demote every pending meeting older than the timeout threshold."""
    try:
        report = get_di_container().get_timeout_sweeper().sweep()
        logger.info("sweep_triggered_via_api", triggered_by=caller.user_id)
        return _success({"report": report.model_dump()})
    except Exception as e:
        return _failure(e, "sweep_error")


@app.get(APIEndpoints.MEETING_DETAIL)
def get_meeting(
    meeting_id: str,
    caller: CallerIdentity = Depends(require_roles(UserRole.SEEKER, UserRole.HELPER)),
) -> JSONResponse:
    """Meeting details for its participants."""
    try:
        meeting = get_di_container().get_matchmaking_service().get_meeting(caller, meeting_id)
        return _success({"meeting": meeting.to_api()})
    except Exception as e:
        return _failure(e, "get_meeting_error")


if __name__ == "__main__":
    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_level="info"
    )
