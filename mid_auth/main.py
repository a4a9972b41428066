# mid_auth/main.py
#
# -----------------------------------------------------------------------------
# Architectural notes (high level)
# -----------------------------------------------------------------------------
# This file is intentionally "thin" HTTP glue:
#   - It wires HTTP endpoints to the Mobile-ID primitives implemented elsewhere.
#   - It MUST NOT implement crypto itself (crypto lives in challenge.py,
#     certificates.py and tokens.py).
#   - It keeps NO per-session state: the browser holds the session id and the
#     serialized challenge between /start and /status.
#
# Key modules / responsibilities:
#   - config.py        : environment-driven settings
#   - hash_types.py    : supported digest algorithms
#   - challenge.py     : random challenge, verification code, signature check
#   - certificates.py  : trust store + signer certificate
#   - client.py        : Mobile-ID REST client (httpx)
#   - authenticator.py : start -> poll -> verify round trip
#   - tokens.py        : identity token (JWT) after verified authentication
#   - audit.py         : append-only audit log (security telemetry, forensics)
#
# Flow:
#   POST /api/v1/auth/start   -> verification code + session id + challenge
#   POST /api/v1/auth/status  -> running | failure | success (+ idToken)
#   POST /api/v1/token/validate
# -----------------------------------------------------------------------------

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, HTTPException, Request

from .audit import build_common, safe_append_event
from .authenticator import (
    AuthenticationError,
    AuthenticationFailure,
    AuthenticationRunning,
    AuthenticationSuccess,
    Authenticator,
    VerificationErrorCode,
)
from .certificates import TrustStore
from .challenge import Challenge
from .client import MidClient
from .config import settings
from .errors import MidAuthError
from .models import AuthStatusRequest, StartAuthRequest, StartAuthResponse, TokenValidateRequest
from .tokens import TokenExpired, TokenInvalid, issue_identity_token, verify_identity_token

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# 403 (not 400): the provider answered fine, but we refuse to trust the result
_NOT_AUTHORIZED_KINDS = {
    VerificationErrorCode.UNTRUSTED_CERTIFICATE.value,
    VerificationErrorCode.SIGNATURE_MISMATCH.value,
}


# -----------------------------------------------------------------------------
# Wiring
# -----------------------------------------------------------------------------
def build_authenticator(http_client: httpx.AsyncClient) -> Authenticator:
    client = MidClient(
        http_client,
        settings.RELYING_PARTY_UUID,
        settings.RELYING_PARTY_NAME,
        display_text=settings.DISPLAY_TEXT,
        display_text_format=settings.DISPLAY_TEXT_FORMAT,
        language=settings.LANGUAGE,
    )
    return Authenticator(client, TrustStore(settings.TRUSTED_CERTIFICATES_DIR), settings.hash_type)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with httpx.AsyncClient(
        base_url=settings.MID_API_URL,
        headers={"Content-Type": "application/json"},
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    ) as http_client:
        app.state.authenticator = build_authenticator(http_client)
        yield


app = FastAPI(
    title="Mobile-ID Auth Server",
    version="0.1.0",
    lifespan=lifespan,
)


def get_authenticator(request: Request) -> Authenticator:
    return request.app.state.authenticator


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _client_context(request: Request) -> dict:
    return {
        "request_ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def _error_response(outcome: AuthenticationError) -> HTTPException:
    status_code = 403 if outcome.kind in _NOT_AUTHORIZED_KINDS else 400
    return HTTPException(
        status_code=status_code,
        detail={
            "error": "not_authorized" if status_code == 403 else "bad_request",
            "reason": outcome.kind,
            "message": outcome.message,
        },
    )


def _has_allowed_prefix(phone_number: str) -> bool:
    return any(phone_number.startswith(p) for p in settings.allowed_phone_prefixes)


# -----------------------------------------------------------------------------
# Authentication
# -----------------------------------------------------------------------------
@app.post("/api/v1/auth/start", response_model=StartAuthResponse)
async def start_auth(
    body: StartAuthRequest,
    request: Request,
    authenticator: Authenticator = Depends(get_authenticator),
):
    # Only allow phone numbers from the configured countries (no network call otherwise)
    if not _has_allowed_prefix(body.phone_number):
        raise HTTPException(
            400,
            f"Phone number must start with {' or '.join(settings.allowed_phone_prefixes)}",
        )

    outcome = await authenticator.start(body.phone_number, body.national_identity_number)

    common = build_common(
        session_id=getattr(outcome, "session_id", None),
        phone_number=body.phone_number,
        national_identity_number=body.national_identity_number,
        hash_type=authenticator.hash_type.value,
        **_client_context(request),
    )

    if isinstance(outcome, AuthenticationError):
        safe_append_event({**common, "result": "error", "reason": outcome.kind}, settings.AUDIT_DIR)
        raise _error_response(outcome)

    safe_append_event({**common, "result": "started", "reason": "session_started"}, settings.AUDIT_DIR)

    return StartAuthResponse(
        code=outcome.verification_code,
        session_id=outcome.session_id,
        challenge=outcome.challenge.serialize(),
    )


@app.post("/api/v1/auth/status")
async def auth_status(
    body: AuthStatusRequest,
    request: Request,
    authenticator: Authenticator = Depends(get_authenticator),
):
    try:
        challenge = Challenge.parse(body.challenge)
    except MidAuthError as e:
        raise HTTPException(400, f"invalid challenge: {e}")

    outcome = await authenticator.check(body.session_id, challenge, settings.POLL_TIMEOUT_MS)

    if isinstance(outcome, AuthenticationRunning):
        return {"status": "running"}

    certificate = outcome.certificate if isinstance(outcome, AuthenticationSuccess) else None
    common = build_common(
        session_id=body.session_id,
        hash_type=challenge.hash_type_name,
        certificate_bytes=certificate.der if certificate else None,
        **_client_context(request),
    )

    if isinstance(outcome, AuthenticationFailure):
        safe_append_event({**common, "result": "denied", "reason": outcome.result}, settings.AUDIT_DIR)
        return {"status": "failure", "result": outcome.result}

    if isinstance(outcome, AuthenticationError):
        safe_append_event({**common, "result": "error", "reason": outcome.kind}, settings.AUDIT_DIR)
        raise _error_response(outcome)

    if not isinstance(outcome, AuthenticationSuccess):
        raise HTTPException(500, "unexpected authentication outcome")

    id_token = issue_identity_token(
        outcome.identity,
        settings.ID_TOKEN_SECRET,
        ttl_seconds=settings.ID_TOKEN_TTL_SECONDS,
        issuer=settings.ID_TOKEN_ISSUER,
    )

    safe_append_event({**common, "result": "approved", "reason": "signature_valid"}, settings.AUDIT_DIR)

    return {"status": "success", "identity": outcome.identity, "idToken": id_token}


# -----------------------------------------------------------------------------
# Identity token
# -----------------------------------------------------------------------------
@app.post("/api/v1/token/validate")
def validate_token(body: TokenValidateRequest):
    try:
        return verify_identity_token(body.token, settings.ID_TOKEN_SECRET, issuer=settings.ID_TOKEN_ISSUER)
    except TokenExpired:
        raise HTTPException(410, "token expired")
    except TokenInvalid:
        raise HTTPException(400, "invalid token")


@app.get("/healthz")
def healthz():
    return {"ok": True}
