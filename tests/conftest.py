"""
Shared fixtures: a throwaway CA plus RSA / EC authentication certificates
shaped like the SK demo ones, and helpers that produce provider-style
signatures (PKCS#1 v1.5 for RSA, CVC for EC).
"""
# Settings are read at import time, so point them at temp dirs first.
import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="mid-auth-tests-")
os.environ.setdefault("AUDIT_DIR", os.path.join(_TMP, "audit"))
os.environ.setdefault("TRUSTED_CERTIFICATES_DIR", os.path.join(_TMP, "certificates"))
os.environ.setdefault("ID_TOKEN_SECRET", "test-secret")

import base64
import datetime
from dataclasses import dataclass

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed, decode_dss_signature
from cryptography.x509.oid import NameOID

DEMO_PHONE = "+37200000766"
DEMO_NATIONAL_ID = "60001019906"


@dataclass
class Issued:
    key: object
    certificate: x509.Certificate

    @property
    def der_b64(self) -> str:
        return base64.b64encode(self.certificate.public_bytes(serialization.Encoding.DER)).decode("ascii")

    @property
    def pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)


def _name(*attrs) -> x509.Name:
    return x509.Name([x509.NameAttribute(oid, value) for oid, value in attrs])


def make_certificate(subject: x509.Name, key, issuer: Issued | None = None, *, ca: bool = False) -> Issued:
    now = datetime.datetime.now(datetime.timezone.utc)
    signer_key = issuer.key if issuer else key
    issuer_name = issuer.certificate.subject if issuer else subject
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(signer_key, hashes.SHA256())
    )
    return Issued(key, cert)


def person_name() -> x509.Name:
    return _name(
        (NameOID.COUNTRY_NAME, "EE"),
        (NameOID.ORGANIZATION_NAME, "ESTEID (MOBIIL-ID)"),
        (NameOID.ORGANIZATIONAL_UNIT_NAME, "authentication"),
        (NameOID.COMMON_NAME, "O'CONNEŽ-ŠUSLIK TESTNUMBER,MARY ÄNN,60001019906"),
        (NameOID.SURNAME, "O'CONNEŽ-ŠUSLIK TESTNUMBER"),
        (NameOID.GIVEN_NAME, "MARY ÄNN"),
        (NameOID.SERIAL_NUMBER, "PNOEE-60001019906"),
    )


def sign_rsa(key: rsa.RSAPrivateKey, digest: bytes, algo: hashes.HashAlgorithm) -> bytes:
    """PKCS#1 v1.5 over DigestInfo(algo) || digest, as the phone does."""
    return key.sign(digest, padding.PKCS1v15(), Prehashed(algo))


def sign_ec_cvc(key: ec.EllipticCurvePrivateKey, digest: bytes, algo: hashes.HashAlgorithm) -> bytes:
    """ECDSA signature in CVC form: r || s, each padded to the curve size."""
    size = (key.curve.key_size + 7) // 8
    r, s = decode_dss_signature(key.sign(digest, ec.ECDSA(Prehashed(algo))))
    return r.to_bytes(size, "big") + s.to_bytes(size, "big")


@pytest.fixture(scope="session")
def ca() -> Issued:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return make_certificate(
        _name((NameOID.COUNTRY_NAME, "EE"), (NameOID.COMMON_NAME, "TEST of EID-SK 2016")),
        key,
        ca=True,
    )


@pytest.fixture(scope="session")
def ec_ca() -> Issued:
    key = ec.generate_private_key(ec.SECP384R1())
    return make_certificate(
        _name((NameOID.COUNTRY_NAME, "EE"), (NameOID.COMMON_NAME, "TEST of ESTEID2018")),
        key,
        ca=True,
    )


@pytest.fixture(scope="session")
def rogue_ca() -> Issued:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return make_certificate(_name((NameOID.COMMON_NAME, "Rogue CA")), key, ca=True)


@pytest.fixture(scope="session")
def rsa_person(ca) -> Issued:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return make_certificate(person_name(), key, ca)


@pytest.fixture(scope="session")
def ec_person(ec_ca) -> Issued:
    key = ec.generate_private_key(ec.SECP256R1())
    return make_certificate(person_name(), key, ec_ca)


@pytest.fixture
def trust_dir(tmp_path, ca, ec_ca):
    folder = tmp_path / "certificates"
    folder.mkdir()
    (folder / "TEST_of_EID-SK_2016.pem.crt").write_bytes(ca.pem)
    (folder / "TEST_of_ESTEID2018.der.crt").write_bytes(ec_ca.certificate.public_bytes(serialization.Encoding.DER))
    (folder / "README.txt").write_text("not a certificate")
    (folder / "nested").mkdir()
    return folder
