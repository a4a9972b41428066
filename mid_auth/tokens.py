# mid_auth/tokens.py
#
# -----------------------------------------------------------------------------
# Identity token layer
# -----------------------------------------------------------------------------
# After a Mobile-ID authentication has been fully verified (trusted
# certificate + valid signature), the request layer hands the browser a
# short-lived identity token. This module only mints and checks that token;
# it knows nothing about Mobile-ID sessions.
#
# Token format: standard JWT, HS256, symmetric secret (ID_TOKEN_SECRET).
#
#   claims = signed identity attributes from the certificate subject
#            (SERIALNUMBER, GN, SN, CN, C, ...)
#          + sub (SERIALNUMBER, i.e. PNOEE-<national id>)
#          + iss, iat, exp, jti
#
# Only HS256 is accepted on verification (no alg confusion).
# -----------------------------------------------------------------------------

import secrets
import time
from typing import Dict, Optional

import jwt

ALGORITHM = "HS256"


class TokenExpired(Exception):
    pass


class TokenInvalid(Exception):
    pass


def issue_identity_token(
    identity: Dict[str, str],
    secret: str,
    *,
    ttl_seconds: int,
    issuer: str,
    now: Optional[int] = None,
) -> str:
    """
    Sign the identity attributes into a JWT.

    Identity keys never override the registered claims.
    """
    if not secret:
        raise ValueError("identity token secret must not be empty")

    iat = int(now if now is not None else time.time())
    claims = dict(identity)
    claims.update(
        {
            "sub": identity.get("SERIALNUMBER", ""),
            "iss": issuer,
            "iat": iat,
            "exp": iat + int(ttl_seconds),
            "jti": secrets.token_urlsafe(16),
        }
    )
    return jwt.encode(claims, secret, algorithm=ALGORITHM)


def verify_identity_token(token: str, secret: str, *, issuer: str) -> dict:
    """
    Verify signature, issuer and expiry and return the claims.

    Raises:
      - TokenExpired  when exp is in the past
      - TokenInvalid  for every other problem (bad signature, wrong issuer,
                      malformed token, wrong algorithm)
    """
    try:
        return jwt.decode(
            str(token).strip(),
            secret,
            algorithms=[ALGORITHM],
            issuer=issuer,
            options={"require": ["exp", "iat", "iss", "sub"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise TokenExpired("identity token expired") from e
    except jwt.InvalidTokenError as e:
        raise TokenInvalid(str(e)) from e
