"""
mid_auth/certificates.py

Trust store + authentication certificate handling.

The provider returns the signer's certificate (base64 DER). Before the
signature is looked at, the certificate must be issued by one of the
certificates found in TRUSTED_CERTIFICATES_DIR.

Trust model:
  - a subject certificate is trusted iff its signature verifies under the
    public key of at least one trusted certificate (first match wins)
  - an empty or unreadable trust folder trusts nothing
  - verification never raises; any error counts as "not trusted"

Provisioning the folder (which CA certificates to put there) is an
operational concern and out of scope here.
"""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.x509.oid import NameOID, SignatureAlgorithmOID

from .errors import MalformedCertificate

logger = logging.getLogger(__name__)

DEFAULT_TRUSTED_CERTIFICATES_DIR = "certificates"

# Short names used when the subject is rendered as "KEY=value" lines.
_SUBJECT_LABELS = {
    NameOID.COUNTRY_NAME: "C",
    NameOID.STATE_OR_PROVINCE_NAME: "ST",
    NameOID.LOCALITY_NAME: "L",
    NameOID.ORGANIZATION_NAME: "O",
    NameOID.ORGANIZATIONAL_UNIT_NAME: "OU",
    NameOID.COMMON_NAME: "CN",
    NameOID.SURNAME: "SN",
    NameOID.GIVEN_NAME: "GN",
    NameOID.SERIAL_NUMBER: "SERIALNUMBER",
    NameOID.EMAIL_ADDRESS: "emailAddress",
}


# -----------------------------------------------------------------------------
# Parsing
# -----------------------------------------------------------------------------
def parse_certificate(data: bytes) -> x509.Certificate:
    """Parse PEM or DER bytes. Raises MalformedCertificate."""
    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            return x509.load_pem_x509_certificate(data)
        return x509.load_der_x509_certificate(data)
    except (ValueError, UnsupportedAlgorithm) as e:
        raise MalformedCertificate(f"cannot parse certificate: {e}") from e


def load_trusted_certificates(folder: Path | str) -> List[x509.Certificate]:
    """
    Load every regular file in `folder` as a certificate.

    Files that do not parse are logged and skipped; a missing folder gives
    an empty list. Neither is an error at this level: an empty trust set
    simply trusts nothing.
    """
    path = Path(folder)
    if not path.is_dir():
        logger.error("Trusted certificates folder does not exist: %s", path)
        return []

    certificates: List[x509.Certificate] = []
    for file_path in sorted(path.iterdir()):
        if not file_path.is_file():
            continue
        try:
            certificates.append(parse_certificate(file_path.read_bytes()))
        except (OSError, MalformedCertificate) as e:
            logger.warning("Skipping trusted certificate %s: %s", file_path, e)

    logger.info("Loaded %d trusted certificate(s) from %s", len(certificates), path)
    return certificates


# -----------------------------------------------------------------------------
# Trust
# -----------------------------------------------------------------------------
def _verify_certificate_signature(subject: x509.Certificate, issuer_public_key) -> bool:
    """True iff `issuer_public_key` verifies the signature on `subject`."""
    try:
        algo = subject.signature_hash_algorithm

        if isinstance(issuer_public_key, ec.EllipticCurvePublicKey):
            issuer_public_key.verify(
                subject.signature,
                subject.tbs_certificate_bytes,
                ec.ECDSA(algo),
            )
            return True

        if isinstance(issuer_public_key, rsa.RSAPublicKey):
            if subject.signature_algorithm_oid == SignatureAlgorithmOID.RSASSA_PSS:
                pad = padding.PSS(mgf=padding.MGF1(algo), salt_length=padding.PSS.AUTO)
            else:
                pad = padding.PKCS1v15()
            issuer_public_key.verify(subject.signature, subject.tbs_certificate_bytes, pad, algo)
            return True

        logger.debug("Unsupported issuer key type: %s", type(issuer_public_key).__name__)
        return False

    except InvalidSignature:
        return False
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        logger.debug("Certificate signature check errored: %s", e)
        return False


def is_trusted(subject: x509.Certificate, trusted: Iterable[x509.Certificate]) -> bool:
    for candidate in trusted:
        if _verify_certificate_signature(subject, candidate.public_key()):
            logger.debug(
                "Certificate signature verified with trusted certificate: %s",
                candidate.subject.rfc4514_string(),
            )
            return True
    return False


# -----------------------------------------------------------------------------
# Identity
# -----------------------------------------------------------------------------
def subject_text(certificate: x509.Certificate) -> str:
    """Subject DN as one "KEY=value" line per attribute, in certificate order."""
    lines = []
    for attr in certificate.subject:
        label = _SUBJECT_LABELS.get(attr.oid, attr.oid.dotted_string)
        value = attr.value if isinstance(attr.value, str) else attr.value.hex()
        lines.append(f"{label}={value}")
    return "\n".join(lines)


def parse_subject_text(text: str) -> Dict[str, str]:
    data: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        key, value = key.strip(), value.strip()
        if sep and key:
            data[key] = value
    return data


def extract_signed_identity(certificate: x509.Certificate) -> Dict[str, str]:
    """
    Signed personal data from the subject field (SERIALNUMBER, GN, SN, CN, C).

    The date of birth is not on the certificate; it can be derived from the
    national identity number in SERIALNUMBER if needed.
    """
    return parse_subject_text(subject_text(certificate))


def public_key(certificate: x509.Certificate):
    return certificate.public_key()


# -----------------------------------------------------------------------------
# Cached trust set
# -----------------------------------------------------------------------------
class TrustStore:
    """
    Process-wide cache of the trusted certificate set.

    The set is an immutable tuple; reload() builds a new tuple and swaps the
    reference, so readers never see a partially loaded set.
    """

    def __init__(self, folder: Path | str = DEFAULT_TRUSTED_CERTIFICATES_DIR):
        self.folder = Path(folder)
        self._certificates: Optional[Tuple[x509.Certificate, ...]] = None
        self._lock = threading.Lock()

    @classmethod
    def from_certificates(cls, certificates: Sequence[x509.Certificate]) -> "TrustStore":
        store = cls(folder="")
        store._certificates = tuple(certificates)
        return store

    @property
    def certificates(self) -> Tuple[x509.Certificate, ...]:
        certs = self._certificates
        if certs is None:
            with self._lock:
                if self._certificates is None:
                    self._certificates = tuple(load_trusted_certificates(self.folder))
                certs = self._certificates
        return certs

    def reload(self) -> int:
        fresh = tuple(load_trusted_certificates(self.folder))
        self._certificates = fresh
        return len(fresh)

    def is_trusted(self, subject: x509.Certificate) -> bool:
        return is_trusted(subject, self.certificates)


# -----------------------------------------------------------------------------
# Authentication certificate (provider response)
# -----------------------------------------------------------------------------
class AuthenticationCertificate:
    """The signer's certificate as returned by the provider (base64 DER)."""

    def __init__(self, certificate: x509.Certificate, cert_b64: str = ""):
        self.certificate = certificate
        self.cert_b64 = cert_b64

    @classmethod
    def from_base64(cls, cert_b64: str) -> "AuthenticationCertificate":
        try:
            der = base64.b64decode(str(cert_b64).strip(), validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedCertificate(f"certificate is not valid base64: {e}") from e
        return cls(parse_certificate(der), cert_b64)

    @property
    def der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)

    @property
    def subject(self) -> str:
        return subject_text(self.certificate)

    def public_key(self):
        return public_key(self.certificate)

    def is_trusted_by(self, store: TrustStore) -> bool:
        return store.is_trusted(self.certificate)

    def signed_user_data(self) -> Dict[str, str]:
        return extract_signed_identity(self.certificate)
