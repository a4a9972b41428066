"""
mid_auth/client.py

Async client for the Mobile-ID REST API (authentication endpoints only).

The httpx.AsyncClient is created by the caller (base_url pointing at the
provider, e.g. https://tsp.demo.sk.ee/mid-api) and passed in, so there is no
hidden shared client and tests can swap the transport.

Both calls return a Result and never raise for HTTP or transport failures.
Nothing is retried here; a caller that wants another status poll simply
calls get_session_status again.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .challenge import Challenge
from .responses import (
    Err,
    GetSessionStatusError,
    Ok,
    Result,
    SessionStatus,
    StartAuthenticationError,
    StartAuthenticationSuccess,
)

logger = logging.getLogger(__name__)

DEFAULT_DISPLAY_TEXT = "Authentication request"

# extra client-side wait on top of the provider's long-poll window
_POLL_READ_MARGIN_SECONDS = 5.0


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


class MidClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        relying_party_uuid: str,
        relying_party_name: str,
        *,
        display_text: str = DEFAULT_DISPLAY_TEXT,
        display_text_format: str = "GSM-7",
        language: str = "ENG",
    ) -> None:
        self.http_client = http_client
        self.relying_party_uuid = relying_party_uuid
        self.relying_party_name = relying_party_name
        self.display_text = display_text
        self.display_text_format = display_text_format
        self.language = language

    def _start_payload(
        self, phone_number: str, national_identity_number: str, challenge: Challenge
    ) -> Dict[str, str]:
        return {
            "relyingPartyUUID": self.relying_party_uuid,
            "relyingPartyName": self.relying_party_name,
            "phoneNumber": phone_number,
            "nationalIdentityNumber": national_identity_number,
            "hash": challenge.hash_to_base64(),
            "hashType": challenge.hash_type_name,
            "language": self.language,
            "displayText": self.display_text,
            "displayTextFormat": self.display_text_format,
        }

    async def start_session(
        self,
        phone_number: str,
        national_identity_number: str,
        challenge: Challenge,
    ) -> Result[StartAuthenticationSuccess, StartAuthenticationError]:
        """
        Initiate authentication:
        https://github.com/SK-EID/MID#32-initiating-signing-and-authentication
        """
        payload = self._start_payload(phone_number, national_identity_number, challenge)
        logger.debug("Starting authentication session, hash type %s", payload["hashType"])

        try:
            response = await self.http_client.post("/authentication", json=payload)
        except httpx.HTTPError as e:
            logger.warning("Start authentication transport error: %s", e)
            return Err(StartAuthenticationError.unknown(f"transport error: {e}"))

        body = _json_or_none(response)
        if response.is_error:
            error = StartAuthenticationError.from_response(response.status_code, body)
            logger.info(
                "Start authentication failed: %s (HTTP %s, trace %s)",
                error.error_type.value,
                response.status_code,
                error.trace_id,
            )
            return Err(error)

        try:
            return Ok(StartAuthenticationSuccess.model_validate(body))
        except ValidationError as e:
            return Err(StartAuthenticationError.unknown(f"unexpected response: {e}", response.status_code))

    async def get_session_status(
        self,
        session_id: str,
        timeout_ms: Optional[int] = None,
    ) -> Result[SessionStatus, GetSessionStatusError]:
        """
        One status request. The provider holds the request open for up to
        `timeout_ms` while the session is RUNNING (long poll).
        """
        params = {}
        timeout = self.http_client.timeout
        if timeout_ms is not None:
            params["timeoutMs"] = int(timeout_ms)
            timeout = httpx.Timeout(
                self.http_client.timeout.connect,
                read=timeout_ms / 1000 + _POLL_READ_MARGIN_SECONDS,
            )

        try:
            response = await self.http_client.get(
                f"/authentication/session/{quote(session_id, safe='')}",
                params=params,
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Session status transport error: %s", e)
            return Err(GetSessionStatusError.unknown(f"transport error: {e}"))

        body = _json_or_none(response)
        if response.is_error:
            error = GetSessionStatusError.from_response(response.status_code, body)
            logger.info(
                "Session status failed: %s (HTTP %s, trace %s)",
                error.error_type.value,
                response.status_code,
                error.trace_id,
            )
            return Err(error)

        try:
            status = SessionStatus.model_validate(body)
        except ValidationError as e:
            return Err(GetSessionStatusError.unknown(f"unexpected response: {e}", response.status_code))

        logger.debug("Session %s state=%s result=%s", session_id, status.state.value, status.result)
        return Ok(status)
