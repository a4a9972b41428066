import base64
import hashlib

import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, rsa
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from mid_auth import hash_types
from mid_auth.challenge import Challenge, signature_from_cvc_encoding
from mid_auth.errors import InvalidSignatureEncoding, MalformedChallenge, UnknownHashName, UnsupportedKeyType
from mid_auth.hash_types import HashType

from conftest import sign_ec_cvc, sign_rsa


def _flip_bit(data: bytes, index: int, bit: int = 0) -> bytes:
    out = bytearray(data)
    out[index] ^= 1 << bit
    return bytes(out)


@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


# -----------------------------------------------------------------------------
# Generation / wire form
# -----------------------------------------------------------------------------
@pytest.mark.parametrize("hash_type", list(HashType))
def test_generate_random_message_of_digest_length(hash_type):
    c = Challenge.generate(hash_type)
    assert len(c.message) == hash_types.length_in_bytes(hash_type)
    assert c.digest == hashlib.new(hash_types.algorithm(hash_type), c.message).digest()
    assert Challenge.generate(hash_type).message != c.message


@pytest.mark.parametrize("hash_type", list(HashType))
def test_parse_serialize_round_trip(hash_type):
    c = Challenge.generate(hash_type)
    parsed = Challenge.parse(c.serialize())
    assert parsed == c
    assert parsed.hash_type is hash_type
    assert parsed.message == c.message


def test_explicit_message_is_kept():
    c = Challenge.generate(HashType.SHA256, b"hello")
    assert c.message == b"hello"
    assert c.serialize() == "SHA256:aGVsbG8="
    assert c.hash_to_base64() == base64.b64encode(hashlib.sha256(b"hello").digest()).decode()


@pytest.mark.parametrize("hash_type", list(HashType))
def test_generate_rejects_empty_message(hash_type):
    with pytest.raises(MalformedChallenge):
        Challenge.generate(hash_type, b"")


def test_parse_unknown_hash_name():
    with pytest.raises(UnknownHashName):
        Challenge.parse("MD5:aGVsbG8=")


@pytest.mark.parametrize("value", ["aGVsbG8=", "SHA256:not base64!", "SHA256:"])
def test_parse_malformed(value):
    with pytest.raises(MalformedChallenge):
        Challenge.parse(value)


# -----------------------------------------------------------------------------
# Verification code
# -----------------------------------------------------------------------------
@pytest.mark.parametrize("hash_type", list(HashType))
def test_verification_code_is_four_digits(hash_type):
    for _ in range(200):
        code = Challenge.generate(hash_type).verification_code()
        assert len(code) == 4 and code.isdigit()
        assert 0 <= int(code) <= 8191


def _challenge_with_digest_edges(first: int, last: int) -> Challenge:
    # find a message whose digest has the wanted first/last byte pattern
    for i in range(1_000_000):
        c = Challenge.generate(HashType.SHA256, i.to_bytes(4, "big"))
        d = c.digest
        if d[0] == first and d[-1] & 0x7F == last:
            return c
    raise AssertionError("no matching digest found")


def test_verification_code_bit_layout():
    c = Challenge.generate(HashType.SHA256, b"bit layout")
    d = c.digest
    assert c.verification_code() == f"{((d[0] >> 2) << 7) | (d[-1] & 0x7F):04d}"


def test_verification_code_range_tops_out_at_8191_not_8192():
    # the provider docs say "0000...8192", but 13 bits cannot exceed 8191
    c = _challenge_with_digest_edges(0xFF, 0x7F)
    assert c.verification_code() == "8191"


def test_verification_code_is_zero_padded():
    c = _challenge_with_digest_edges(0x00, 0x05)
    assert c.verification_code() == "0005"


# -----------------------------------------------------------------------------
# CVC -> DER
# -----------------------------------------------------------------------------
def test_cvc_high_bit_halves_get_a_leading_zero():
    r = b"\x80" + b"\x01" * 31
    s = b"\x7f" + b"\x02" * 31
    der = signature_from_cvc_encoding(r + s)

    assert der[0] == 0x30
    assert der[1] == len(der) - 2
    # INTEGER r: 33 bytes, zero byte first so it stays positive
    assert der[2:5] == bytes([0x02, 33, 0x00])
    assert der[5:37] == r
    # INTEGER s: high bit clear, no padding
    assert der[37:39] == bytes([0x02, 32])
    assert der[39:] == s
    assert decode_dss_signature(der) == (int.from_bytes(r, "big"), int.from_bytes(s, "big"))


def test_cvc_rejects_odd_length():
    with pytest.raises(InvalidSignatureEncoding):
        signature_from_cvc_encoding(b"\x01" * 63)
    with pytest.raises(InvalidSignatureEncoding):
        signature_from_cvc_encoding(b"")


# -----------------------------------------------------------------------------
# Signature verification
# -----------------------------------------------------------------------------
@pytest.mark.parametrize("hash_type", list(HashType))
def test_rsa_signature_verifies(rsa_key, hash_type):
    c = Challenge.generate(hash_type)
    signature = sign_rsa(rsa_key, c.digest, hash_types.get_value(hash_type).crypto_hash())
    assert c.verify(rsa_key.public_key(), signature) is True


def test_rsa_single_bit_flip_fails(rsa_key):
    c = Challenge.generate(HashType.SHA256)
    signature = sign_rsa(rsa_key, c.digest, hashes.SHA256())
    for index in (len(signature) - 1, len(signature) // 2, 1):
        assert c.verify(rsa_key.public_key(), _flip_bit(signature, index)) is False


def test_rsa_signature_for_other_challenge_fails(rsa_key):
    c = Challenge.generate(HashType.SHA256)
    other = Challenge.generate(HashType.SHA256)
    signature = sign_rsa(rsa_key, other.digest, hashes.SHA256())
    assert c.verify(rsa_key.public_key(), signature) is False


def test_rsa_wrong_length_signature_fails(rsa_key):
    c = Challenge.generate(HashType.SHA256)
    assert c.verify(rsa_key.public_key(), b"\x01" * 10) is False


def test_ec_cvc_signature_verifies(ec_key):
    # keep signing until at least one half has its high bit set
    for _ in range(100):
        c = Challenge.generate(HashType.SHA256)
        signature = sign_ec_cvc(ec_key, c.digest, hashes.SHA256())
        if signature[0] & 0x80 or signature[32] & 0x80:
            break
    else:
        pytest.fail("could not produce a high-bit signature")

    assert len(signature) == 64
    assert c.verify(ec_key.public_key(), signature) is True
    # corrupting either half fails
    assert c.verify(ec_key.public_key(), _flip_bit(signature, 5)) is False
    assert c.verify(ec_key.public_key(), _flip_bit(signature, 40)) is False


@pytest.mark.parametrize("hash_type", list(HashType))
def test_ec_verifies_against_message_for_every_hash_type(ec_key, hash_type):
    c = Challenge.generate(hash_type)
    signature = sign_ec_cvc(ec_key, c.digest, hash_types.get_value(hash_type).crypto_hash())
    assert c.verify(ec_key.public_key(), signature) is True


def test_ec_signature_with_other_key_fails(ec_key):
    c = Challenge.generate(HashType.SHA256)
    other = ec.generate_private_key(ec.SECP256R1())
    signature = sign_ec_cvc(other, c.digest, hashes.SHA256())
    assert c.verify(ec_key.public_key(), signature) is False


def test_ec_odd_length_signature_raises(ec_key):
    c = Challenge.generate(HashType.SHA256)
    with pytest.raises(InvalidSignatureEncoding):
        c.verify(ec_key.public_key(), b"\x01" * 63)


def test_unsupported_key_type():
    c = Challenge.generate(HashType.SHA256)
    key = ed25519.Ed25519PrivateKey.generate().public_key()
    with pytest.raises(UnsupportedKeyType):
        c.verify(key, b"\x00" * 64)
