"""
mid_auth/hash_types.py

Registry of the digest algorithms the Mobile-ID service accepts.

Each member of HashType has exactly one immutable HashTypeInfo entry:
  - length_in_bits / length_in_bytes
  - digest_info_prefix: DER-encoded DigestInfo header (AlgorithmIdentifier +
    OCTET STRING tag/length) that precedes the raw digest inside an
    RSA PKCS#1 v1.5 signature
  - hash_type_name: name used on the wire ("hashType") and in the
    serialized challenge ("SHA256:<base64>")
  - algorithm: hashlib name used to compute the digest locally
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping

from cryptography.hazmat.primitives import hashes

from .errors import UnknownHashLength, UnknownHashName


class HashType(str, Enum):
    SHA256 = "SHA256"
    SHA384 = "SHA384"
    SHA512 = "SHA512"


@dataclass(frozen=True)
class HashTypeInfo:
    hash_type: HashType
    length_in_bits: int
    digest_info_prefix: bytes
    hash_type_name: str
    algorithm: str

    @property
    def length_in_bytes(self) -> int:
        return self.length_in_bits // 8

    def crypto_hash(self) -> hashes.HashAlgorithm:
        """The matching `cryptography` hash object (used for ECDSA)."""
        return _CRYPTO_HASHES[self.hash_type]()


_HASH_TYPES: Mapping[HashType, HashTypeInfo] = MappingProxyType(
    {
        HashType.SHA256: HashTypeInfo(
            HashType.SHA256,
            256,
            bytes.fromhex("3031300d060960864801650304020105000420"),
            "SHA256",
            "sha256",
        ),
        HashType.SHA384: HashTypeInfo(
            HashType.SHA384,
            384,
            bytes.fromhex("3041300d060960864801650304020205000430"),
            "SHA384",
            "sha384",
        ),
        HashType.SHA512: HashTypeInfo(
            HashType.SHA512,
            512,
            bytes.fromhex("3051300d060960864801650304020305000440"),
            "SHA512",
            "sha512",
        ),
    }
)

_CRYPTO_HASHES = {
    HashType.SHA256: hashes.SHA256,
    HashType.SHA384: hashes.SHA384,
    HashType.SHA512: hashes.SHA512,
}


def get_value(hash_type: HashType) -> HashTypeInfo:
    return _HASH_TYPES[HashType(hash_type)]


def from_hash_type_name(name: str) -> HashType:
    for info in _HASH_TYPES.values():
        if info.hash_type_name == name:
            return info.hash_type
    raise UnknownHashName(name)


def from_bytes_length(length_in_bytes: int) -> HashType:
    for info in _HASH_TYPES.values():
        if info.length_in_bytes == length_in_bytes:
            return info.hash_type
    raise UnknownHashLength(length_in_bytes)


def length_in_bytes(hash_type: HashType) -> int:
    return get_value(hash_type).length_in_bytes


def digest_info_prefix(hash_type: HashType) -> bytes:
    return get_value(hash_type).digest_info_prefix


def hash_type_name(hash_type: HashType) -> str:
    return get_value(hash_type).hash_type_name


def algorithm(hash_type: HashType) -> str:
    return get_value(hash_type).algorithm


def all_hash_types() -> tuple[HashType, ...]:
    return tuple(_HASH_TYPES)
