"""
mid_auth/responses.py

Typed view of the Mobile-ID REST API responses.

Every call against the provider returns a Result: either Ok(value) or
Err(error). Provider/transport errors are values, not exceptions, so callers
have to handle both branches explicitly.

Error conditions follow the provider documentation:
  - start:  https://github.com/SK-EID/MID#326-error-conditions
  - status: https://github.com/SK-EID/MID#339-http-error-codes
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")
E = TypeVar("E")


# -----------------------------------------------------------------------------
# Result
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err[E]]


# -----------------------------------------------------------------------------
# Codes
# -----------------------------------------------------------------------------
class StartAuthenticationErrorCode(str, Enum):
    MISSING_REQUIRED_PARAM = "MissingRequiredParam"
    MISMATCHED_HASH_LENGTH = "MismatchedHashLength"
    HASH_NOT_BASE64 = "HashNotBase64"
    FAILED_TO_AUTHORIZE_USER = "FailedToAuthorizeUser"
    METHOD_NOT_ALLOWED = "MethodNotAllowed"
    INTERNAL_SERVER_ERROR = "InternalServerError"
    UNKNOWN_ERROR = "UnknownError"


class GetSessionStatusErrorCode(str, Enum):
    REQUIRED_SESSION_ID_MISSING = "RequiredSessionIdMissing"
    FAILED_TO_AUTHORIZE_USER = "FailedToAuthorizeUser"
    SESSION_ID_NOT_FOUND = "SessionIdNotFound"
    METHOD_NOT_ALLOWED = "MethodNotAllowed"
    INTERNAL_SERVER_ERROR = "InternalServerError"
    UNKNOWN_ERROR = "UnknownError"


class SessionState(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class AuthenticationResultCode(str, Enum):
    OK = "OK"
    TIMEOUT = "TIMEOUT"
    NOT_MID_CLIENT = "NOT_MID_CLIENT"
    USER_CANCELLED = "USER_CANCELLED"
    SIGNATURE_HASH_MISMATCH = "SIGNATURE_HASH_MISMATCH"
    PHONE_ABSENT = "PHONE_ABSENT"
    DELIVERY_ERROR = "DELIVERY_ERROR"
    SIM_ERROR = "SIM_ERROR"


class SignatureAlgorithm(str, Enum):
    SHA256_WITH_EC = "SHA256WithECEncryption"
    SHA256_WITH_RSA = "SHA256WithRSAEncryption"
    SHA384_WITH_EC = "SHA384WithECEncryption"
    SHA384_WITH_RSA = "SHA384WithRSAEncryption"
    SHA512_WITH_EC = "SHA512WithECEncryption"
    SHA512_WITH_RSA = "SHA512WithRSAEncryption"


_START_ERRORS_BY_STATUS = {
    401: StartAuthenticationErrorCode.FAILED_TO_AUTHORIZE_USER,
    405: StartAuthenticationErrorCode.METHOD_NOT_ALLOWED,
    500: StartAuthenticationErrorCode.INTERNAL_SERVER_ERROR,
}

_STATUS_ERRORS_BY_STATUS = {
    400: GetSessionStatusErrorCode.REQUIRED_SESSION_ID_MISSING,
    401: GetSessionStatusErrorCode.FAILED_TO_AUTHORIZE_USER,
    404: GetSessionStatusErrorCode.SESSION_ID_NOT_FOUND,
    405: GetSessionStatusErrorCode.METHOD_NOT_ALLOWED,
    500: GetSessionStatusErrorCode.INTERNAL_SERVER_ERROR,
}


# -----------------------------------------------------------------------------
# Success payloads
# -----------------------------------------------------------------------------
class _ProviderModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class StartAuthenticationSuccess(_ProviderModel):
    session_id: str = Field(alias="sessionID")


class SessionSignature(_ProviderModel):
    value: str
    algorithm: SignatureAlgorithm


class SessionStatus(_ProviderModel):
    """Status of one session: https://github.com/SK-EID/MID#335-response-structure"""

    state: SessionState
    time: Optional[datetime] = None
    trace_id: Optional[str] = Field(default=None, alias="traceId")
    result: Optional[str] = None
    signature: Optional[SessionSignature] = None
    cert: Optional[str] = None

    def is_running(self) -> bool:
        return self.state == SessionState.RUNNING

    def is_success(self) -> bool:
        return self.state == SessionState.COMPLETED and self.result == AuthenticationResultCode.OK.value

    def is_failure(self) -> bool:
        return self.state == SessionState.COMPLETED and self.result != AuthenticationResultCode.OK.value

    def signature_bytes(self) -> bytes:
        """Raw signature value; raises ValueError if missing or not base64."""
        if self.signature is None:
            raise ValueError("session status carries no signature")
        return base64.b64decode(self.signature.value, validate=True)


# -----------------------------------------------------------------------------
# Errors
# -----------------------------------------------------------------------------
def _provider_error_fields(body: Any) -> tuple[str, Optional[str], Optional[str]]:
    if not isinstance(body, dict):
        return "", None, None
    error = body.get("error")
    return (
        error if isinstance(error, str) else "",
        body.get("time") if isinstance(body.get("time"), str) else None,
        body.get("traceId") if isinstance(body.get("traceId"), str) else None,
    )


def _parse_time(value: Optional[str]) -> datetime:
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ProviderError:
    """
    Common fields of a failed provider call.

    `error` is the free-text message from the provider (empty if none),
    `status_code` is None when the request never got an HTTP response.
    """

    error: str
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    trace_id: str = "unknown"
    status_code: Optional[int] = None


@dataclass(frozen=True)
class StartAuthenticationError(ProviderError):
    error_type: StartAuthenticationErrorCode = StartAuthenticationErrorCode.UNKNOWN_ERROR

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "StartAuthenticationError":
        message, time, trace_id = _provider_error_fields(body)

        if not message:
            # not a provider error body (proxy page, empty response)
            error_type = StartAuthenticationErrorCode.UNKNOWN_ERROR
        elif status_code == 400:
            # the missing-parameter message differs per field, so it is the fallback
            if "Base64" in message:
                error_type = StartAuthenticationErrorCode.HASH_NOT_BASE64
            elif "length" in message:
                error_type = StartAuthenticationErrorCode.MISMATCHED_HASH_LENGTH
            else:
                error_type = StartAuthenticationErrorCode.MISSING_REQUIRED_PARAM
        else:
            error_type = _START_ERRORS_BY_STATUS.get(status_code, StartAuthenticationErrorCode.UNKNOWN_ERROR)

        return cls(
            error=message or "Unknown error",
            time=_parse_time(time),
            trace_id=trace_id or "unknown",
            status_code=status_code,
            error_type=error_type,
        )

    @classmethod
    def unknown(cls, message: str, status_code: Optional[int] = None) -> "StartAuthenticationError":
        return cls(error=message, status_code=status_code)


@dataclass(frozen=True)
class GetSessionStatusError(ProviderError):
    error_type: GetSessionStatusErrorCode = GetSessionStatusErrorCode.UNKNOWN_ERROR

    @classmethod
    def from_response(cls, status_code: int, body: Any) -> "GetSessionStatusError":
        message, time, trace_id = _provider_error_fields(body)
        if message:
            error_type = _STATUS_ERRORS_BY_STATUS.get(status_code, GetSessionStatusErrorCode.UNKNOWN_ERROR)
        else:
            error_type = GetSessionStatusErrorCode.UNKNOWN_ERROR
        return cls(
            error=message or "Unknown error",
            time=_parse_time(time),
            trace_id=trace_id or "unknown",
            status_code=status_code,
            error_type=error_type,
        )

    @classmethod
    def unknown(cls, message: str, status_code: Optional[int] = None) -> "GetSessionStatusError":
        return cls(error=message, status_code=status_code)
