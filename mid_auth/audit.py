"""
mid_auth/audit.py

Tamper-evident authentication audit log.

We append one JSON object per line (JSONL). Each event is hash-chained:

  H_0 = "0"*64
  H_n = SHA3-256( bytes.fromhex(H_{n-1}) || canonical_json(event_without_hash_fields) )

Each line stores:
  - prev_hash: hex string (64 chars)
  - hash:      hex string (64 chars)

Properties:
- Any modification, deletion, or reordering of log lines breaks the chain.
- Chain state is persisted in <audit_dir>/auth_audit.state
- Uses file locking (flock) to keep chain consistent under concurrency.
- Personal data (national identity number, certificate, signature) is only
  recorded as SHA3-256 hash + length.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import logging
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

LOG_NAME = "auth_audit.jsonl"
STATE_NAME = "auth_audit.state"
LOCK_NAME = "auth_audit.lock"

GENESIS_HASH = "0" * 64  # 32 bytes hex


# -----------------------------------------------------------------------------
# Canonical JSON
# -----------------------------------------------------------------------------
def _canonical_json_bytes(obj: Dict[str, Any]) -> bytes:
    """Sorted keys, no whitespace, UTF-8."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def _sha3_256_hex(data: bytes) -> str:
    return hashlib.sha3_256(data).hexdigest()


def _read_last_hash_unlocked(state_path: Path) -> str:
    """Caller must hold the lock. GENESIS_HASH if state is missing or bad."""
    try:
        s = state_path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        return GENESIS_HASH
    if len(s) != 64:
        return GENESIS_HASH
    try:
        bytes.fromhex(s)
    except ValueError:
        return GENESIS_HASH
    return s.lower()


def mask_phone_number(phone_number: str) -> str:
    """+37200000766 -> +372*****766"""
    p = str(phone_number or "")
    if len(p) <= 7:
        return "*" * len(p)
    return p[:4] + "*" * (len(p) - 7) + p[-3:]


# -----------------------------------------------------------------------------
# Public helpers used by main.py
# -----------------------------------------------------------------------------
def build_common(
    *,
    session_id: Optional[str],
    phone_number: Optional[str] = None,
    national_identity_number: Optional[str] = None,
    hash_type: Optional[str] = None,
    certificate_bytes: Optional[bytes] = None,
    signature_bytes: Optional[bytes] = None,
    request_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> Dict[str, Any]:
    """Common audit fields. Keep this "boring" and stable."""
    out: Dict[str, Any] = {
        "ts": int(time.time()),
        "session_id": session_id,
    }

    if phone_number:
        out["phone"] = mask_phone_number(phone_number)
    if national_identity_number:
        out["national_id_sha3_256"] = _sha3_256_hex(national_identity_number.encode("utf-8"))
    if hash_type:
        out["hash_type"] = hash_type
    if request_ip:
        out["request_ip"] = request_ip
    if user_agent:
        out["user_agent"] = user_agent[:200]

    if certificate_bytes is not None:
        out["cert_len"] = len(certificate_bytes)
        out["cert_sha3_256"] = _sha3_256_hex(certificate_bytes)

    if signature_bytes is not None:
        out["signature_len"] = len(signature_bytes)
        out["signature_sha3_256"] = _sha3_256_hex(signature_bytes)

    return out


def append_event(event: Dict[str, Any], audit_dir: Path | str) -> str:
    """
    Append one event with hash chaining and return its hash.

    - locks <audit_dir>/auth_audit.lock
    - reads prev hash
    - computes next hash over canonical event (excluding hash fields)
    - writes JSONL line containing prev_hash + hash
    - updates state file
    """
    directory = Path(audit_dir)
    directory.mkdir(parents=True, exist_ok=True)

    # dedicated lock file so it works even if log/state don't exist yet
    with open(directory / LOCK_NAME, "a+", encoding="utf-8") as lockf:
        fcntl.flock(lockf.fileno(), fcntl.LOCK_EX)
        try:
            prev_hash = _read_last_hash_unlocked(directory / STATE_NAME)

            # callers cannot inject their own chain fields
            e = dict(event)
            e.pop("prev_hash", None)
            e.pop("hash", None)

            next_hash = _sha3_256_hex(bytes.fromhex(prev_hash) + _canonical_json_bytes(e))

            stored = dict(e)
            stored["prev_hash"] = prev_hash
            stored["hash"] = next_hash

            with open(directory / LOG_NAME, "ab") as f:
                f.write(_canonical_json_bytes(stored) + b"\n")
                f.flush()
                os.fsync(f.fileno())

            (directory / STATE_NAME).write_text(next_hash + "\n", encoding="utf-8")
        finally:
            fcntl.flock(lockf.fileno(), fcntl.LOCK_UN)

    return next_hash


def safe_append_event(event: Dict[str, Any], audit_dir: Path | str) -> None:
    """append_event for request handlers: an audit failure is logged, not raised."""
    try:
        append_event(event, audit_dir)
    except OSError as e:
        logger.error("Failed to write audit event %s: %s", event.get("reason"), e)


# -----------------------------------------------------------------------------
# Verification
# -----------------------------------------------------------------------------
def verify_log_chain(path: Path) -> bool:
    """
    Verify the hash chain of an audit log file.
    A missing file is an empty (valid) chain.
    """
    if not path.exists():
        return True

    prev = GENESIS_HASH
    with open(path, "rb") as f:
        for raw_line in f:
            raw_line = raw_line.strip()
            if not raw_line:
                continue
            try:
                obj = json.loads(raw_line.decode("utf-8"))
            except ValueError:
                return False

            if obj.get("prev_hash") != prev:
                return False

            obj2 = dict(obj)
            obj2.pop("prev_hash", None)
            line_hash = obj2.pop("hash", None)

            if _sha3_256_hex(bytes.fromhex(prev) + _canonical_json_bytes(obj2)) != line_hash:
                return False

            prev = line_hash

    return True
