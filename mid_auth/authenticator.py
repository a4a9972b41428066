"""
mid_auth/authenticator.py

Full Mobile-ID authentication round trip:

    start ──> awaiting signature ──> success | failure | error

  - start():  new Challenge + start_session. The caller keeps the returned
              challenge and session id (per attempt, never process-wide).
  - check():  one status poll; on a successful completion the certificate
              is checked against the trust store and the signature against
              the challenge. Both must pass before the person counts as
              authenticated.
  - wait_for_completion(): caller-side loop over check() with an overall
              deadline, for callers that keep the attempt in one task.

Outcomes:
  - AuthenticationFailure is a legitimate negative answer from the provider
    (user cancelled, phone absent, ...), not an error.
  - AuthenticationError covers provider/transport errors and failed
    verification. Verification fails closed.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Union

from .certificates import AuthenticationCertificate, TrustStore
from .challenge import Challenge
from .client import MidClient
from .errors import MidAuthError
from .hash_types import HashType
from .responses import Err, SessionStatus

logger = logging.getLogger(__name__)


class VerificationErrorCode(str, Enum):
    MISSING_CERTIFICATE = "MissingCertificate"
    UNTRUSTED_CERTIFICATE = "UntrustedCertificate"
    SIGNATURE_MISMATCH = "SignatureMismatch"
    DEADLINE_EXCEEDED = "DeadlineExceeded"


# -----------------------------------------------------------------------------
# Outcomes
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class AuthenticationStarted:
    session_id: str
    challenge: Challenge
    status: str = field(default="started", init=False)

    @property
    def verification_code(self) -> str:
        return self.challenge.verification_code()


@dataclass(frozen=True)
class AuthenticationRunning:
    session_id: str
    status: str = field(default="running", init=False)


@dataclass(frozen=True)
class AuthenticationFailure:
    session_id: str
    result: str
    status: str = field(default="failure", init=False)


@dataclass(frozen=True)
class AuthenticationSuccess:
    session_id: str
    identity: Dict[str, str]
    certificate: AuthenticationCertificate = field(repr=False, compare=False)
    status: str = field(default="success", init=False)


@dataclass(frozen=True)
class AuthenticationError:
    """`kind` is the .value of a start, status or verification error code."""

    kind: str
    message: str = ""
    session_id: Optional[str] = None
    status: str = field(default="error", init=False)


AuthenticationOutcome = Union[
    AuthenticationRunning,
    AuthenticationFailure,
    AuthenticationSuccess,
    AuthenticationError,
]


# -----------------------------------------------------------------------------
# Orchestrator
# -----------------------------------------------------------------------------
class Authenticator:
    def __init__(
        self,
        client: MidClient,
        trust_store: TrustStore,
        hash_type: HashType = HashType.SHA256,
    ) -> None:
        self.client = client
        self.trust_store = trust_store
        self.hash_type = HashType(hash_type)

    async def start(
        self, phone_number: str, national_identity_number: str
    ) -> Union[AuthenticationStarted, AuthenticationError]:
        challenge = Challenge.generate(self.hash_type)
        result = await self.client.start_session(phone_number, national_identity_number, challenge)

        if isinstance(result, Err):
            return AuthenticationError(result.error.error_type.value, result.error.error)

        logger.info("Authentication session started: %s", result.value.session_id)
        return AuthenticationStarted(session_id=result.value.session_id, challenge=challenge)

    async def check(
        self,
        session_id: str,
        challenge: Challenge,
        timeout_ms: Optional[int] = None,
    ) -> AuthenticationOutcome:
        result = await self.client.get_session_status(session_id, timeout_ms)
        if isinstance(result, Err):
            return AuthenticationError(result.error.error_type.value, result.error.error, session_id)

        status = result.value
        if status.is_running():
            return AuthenticationRunning(session_id)

        if status.is_failure():
            logger.info("Authentication session %s completed with %s", session_id, status.result)
            return AuthenticationFailure(session_id, str(status.result))

        return self._verify_completed(session_id, challenge, status)

    def _verify_completed(
        self, session_id: str, challenge: Challenge, status: SessionStatus
    ) -> AuthenticationOutcome:
        if not status.cert:
            return AuthenticationError(
                VerificationErrorCode.MISSING_CERTIFICATE.value,
                "No certificate found in authentication result",
                session_id,
            )

        try:
            certificate = AuthenticationCertificate.from_base64(status.cert)
        except MidAuthError as e:
            logger.warning("Session %s returned an unparsable certificate: %s", session_id, e)
            return AuthenticationError(
                VerificationErrorCode.UNTRUSTED_CERTIFICATE.value, str(e), session_id
            )

        if not certificate.is_trusted_by(self.trust_store):
            logger.warning("Session %s certificate is not issued by a trusted authority", session_id)
            return AuthenticationError(
                VerificationErrorCode.UNTRUSTED_CERTIFICATE.value,
                "Invalid certificate, not signed by a trusted authority",
                session_id,
            )

        try:
            valid = challenge.verify(certificate.public_key(), status.signature_bytes())
        except (MidAuthError, ValueError) as e:
            logger.warning("Session %s signature could not be verified: %s", session_id, e)
            valid = False

        if not valid:
            return AuthenticationError(
                VerificationErrorCode.SIGNATURE_MISMATCH.value,
                "Signature verification failed",
                session_id,
            )

        identity = certificate.signed_user_data()
        logger.info("Authentication session %s verified", session_id)
        return AuthenticationSuccess(session_id, identity, certificate)

    async def wait_for_completion(
        self,
        session_id: str,
        challenge: Challenge,
        *,
        deadline_seconds: float,
        timeout_ms: int = 10_000,
    ) -> AuthenticationOutcome:
        """
        Poll until the session leaves RUNNING or `deadline_seconds` pass.

        Errors are returned as soon as they occur; nothing is retried.
        """
        deadline = time.monotonic() + deadline_seconds
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return AuthenticationError(
                    VerificationErrorCode.DEADLINE_EXCEEDED.value,
                    f"session still running after {deadline_seconds}s",
                    session_id,
                )

            poll_ms = max(1000, min(timeout_ms, int(remaining * 1000)))
            try:
                outcome = await asyncio.wait_for(
                    self.check(session_id, challenge, poll_ms),
                    timeout=remaining + 1,
                )
            except asyncio.TimeoutError:
                continue

            if not isinstance(outcome, AuthenticationRunning):
                return outcome
