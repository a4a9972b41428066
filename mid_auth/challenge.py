"""
mid_auth/challenge.py

The random challenge a user's phone signs during Mobile-ID authentication.

Lifecycle:
  1. Challenge.generate() draws a random message and hashes it.
  2. The digest (base64) is sent to the provider, the verification code is
     shown to the user so they can compare it with the code on the phone.
  3. serialize() gives a compact wire form the caller keeps until the
     session completes (nothing is held server-side).
  4. verify() checks the returned signature against the certificate key.

The RSA / ECDSA verification procedures follow the SK Mobile-ID reference
client (MidSignatureVerifier).
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from . import hash_types
from .errors import InvalidSignatureEncoding, MalformedChallenge, UnsupportedKeyType
from .hash_types import HashType

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# CVC -> DER
# -----------------------------------------------------------------------------
def signature_from_cvc_encoding(signature: bytes) -> bytes:
    """
    Convert a CVC-encoded ECDSA signature (r || s, fixed width, big-endian)
    to the DER SEQUENCE { INTEGER r, INTEGER s } that verifiers expect.

    DER integers are signed, so a half whose high bit is set gets a leading
    zero byte; encode_dss_signature takes care of that and of the minimal
    length encoding.
    """
    if not signature or len(signature) % 2:
        raise InvalidSignatureEncoding(
            f"CVC signature length must be even and non-zero, got {len(signature)}"
        )

    mid = len(signature) // 2
    r = int.from_bytes(signature[:mid], "big")
    s = int.from_bytes(signature[mid:], "big")
    return encode_dss_signature(r, s)


# -----------------------------------------------------------------------------
# Challenge
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class Challenge:
    hash_type: HashType
    message: bytes

    @classmethod
    def generate(cls, hash_type: HashType, message: Optional[bytes] = None) -> "Challenge":
        """
        Create a challenge. Without an explicit message, a random one as long
        as the digest is drawn from the OS CSPRNG.
        """
        hash_type = HashType(hash_type)
        if message is None:
            message = secrets.token_bytes(hash_types.length_in_bytes(hash_type))
        elif not message:
            raise MalformedChallenge("challenge message is empty")
        return cls(hash_type=hash_type, message=bytes(message))

    @property
    def digest(self) -> bytes:
        # always derived from message so the two cannot disagree
        return hashlib.new(hash_types.algorithm(self.hash_type), self.message).digest()

    @property
    def hash_type_name(self) -> str:
        return hash_types.hash_type_name(self.hash_type)

    def hash_to_base64(self) -> str:
        return base64.b64encode(self.digest).decode("ascii")

    def verification_code(self) -> str:
        """
        6 bits from the beginning of the digest and 7 bits from its end,
        read as a 13 bit integer and printed with 4 digits (e.g. "0041").
        """
        digest = self.digest
        first6 = digest[0] >> 2
        last7 = digest[-1] & 0b01111111
        return f"{(first6 << 7) | last7:04d}"

    # -------------------------------------------------------------------------
    # Wire form
    # -------------------------------------------------------------------------
    def serialize(self) -> str:
        return f"{self.hash_type_name}:{base64.b64encode(self.message).decode('ascii')}"

    @classmethod
    def parse(cls, value: str) -> "Challenge":
        name, sep, message_b64 = str(value).strip().partition(":")
        if not sep:
            raise MalformedChallenge("challenge must look like '<HashType>:<base64 message>'")

        hash_type = hash_types.from_hash_type_name(name)

        try:
            message = base64.b64decode(message_b64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedChallenge(f"challenge message is not valid base64: {e}") from e
        if not message:
            raise MalformedChallenge("challenge message is empty")

        return cls(hash_type=hash_type, message=message)

    def __repr__(self) -> str:
        return f"Challenge({self.hash_type_name}, {self.digest.hex()})"

    # -------------------------------------------------------------------------
    # Signature verification
    # -------------------------------------------------------------------------
    def verify(self, public_key, signature: bytes) -> bool:
        """
        Verify the phone's signature over this challenge.

        Returns False on a cryptographic mismatch. Raises UnsupportedKeyType
        for key families other than RSA / EC and InvalidSignatureEncoding for
        an EC signature that cannot be split into r and s.
        """
        if isinstance(public_key, rsa.RSAPublicKey):
            return self._verify_rsa(public_key, signature)
        if isinstance(public_key, ec.EllipticCurvePublicKey):
            return self._verify_ecdsa(public_key, signature)
        raise UnsupportedKeyType(type(public_key).__name__)

    def _verify_rsa(self, public_key: rsa.RSAPublicKey, signature: bytes) -> bool:
        logger.debug("Verifying RSA signature, hash type %s", self.hash_type_name)
        signed_digest = hash_types.digest_info_prefix(self.hash_type) + self.digest

        try:
            # algorithm=None: return the whole PKCS#1 v1.5 payload (DigestInfo || digest)
            recovered = public_key.recover_data_from_signature(signature, padding.PKCS1v15(), None)
        except (InvalidSignature, ValueError):
            logger.debug("RSA signature could not be recovered")
            return False

        return hmac.compare_digest(recovered, signed_digest)

    def _verify_ecdsa(self, public_key: ec.EllipticCurvePublicKey, signature: bytes) -> bool:
        logger.debug("Verifying ECDSA signature, hash type %s", self.hash_type_name)
        signature_der = signature_from_cvc_encoding(signature)
        algo = hash_types.get_value(self.hash_type).crypto_hash()

        # ECDSA hashes its input itself: pass the message, NOT the digest
        try:
            public_key.verify(signature_der, self.message, ec.ECDSA(algo))
        except InvalidSignature:
            return False
        return True
