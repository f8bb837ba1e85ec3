"""
auth/passwords.py -- Salted scrypt password digests.

Security design decisions:
  Digest format: "{hash_hex}.{salt_hex}". The salt is 16 random bytes, hex
       encoded; the hex string itself is fed to scrypt as the salt input.
       Hex output never contains ".", so the delimiter is unambiguous. The
       format and parameters match digests already stored by the previous
       deployment, so existing accounts keep working.

  scrypt (N=16384, r=8, p=1, 64-byte key) is memory-hard: brute-forcing a
       stolen digest costs both CPU and RAM per guess. That cost is the point,
       and it is paid on every login.

  verify_password() compares with hmac.compare_digest (constant time) and
       returns False on any malformed digest -- it never raises.

  DUMMY_DIGEST is computed once at module load. authenticate() in
       auth/authenticator.py verifies against it when the username does not
       exist so both failure paths cost one scrypt derivation.

Concurrency:
  scrypt blocks the calling thread for tens of milliseconds and allocates
  ~16 MiB. The functions here are plain blocking calls; the HTTP layer runs
  them through api/offload.py, which caps concurrent derivations at
  MAX_CONCURRENT_HASHES with an anyio CapacityLimiter. Requests waiting for a
  slot queue on the event loop and hold no worker thread.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

_SCRYPT_N = 16384
_SCRYPT_R = 8
_SCRYPT_P = 1
_KEY_LEN = 64
_SALT_BYTES = 16
# 128 * r * N bytes = 16 MiB for the parameters above; leave headroom.
_MAX_MEM = 64 * 1024 * 1024

_DELIMITER = "."


def _derive(plain: str, salt_hex: str) -> bytes:
    return hashlib.scrypt(
        plain.encode("utf-8"),
        salt=salt_hex.encode("ascii"),
        n=_SCRYPT_N,
        r=_SCRYPT_R,
        p=_SCRYPT_P,
        maxmem=_MAX_MEM,
        dklen=_KEY_LEN,
    )


def hash_password(plain: str) -> str:
    """Return a fresh "{hash}.{salt}" digest. Two calls never return the same value."""
    salt_hex = secrets.token_hex(_SALT_BYTES)
    return f"{_derive(plain, salt_hex).hex()}{_DELIMITER}{salt_hex}"


def verify_password(plain: str, digest: str) -> bool:
    """Return True if plain matches digest. Malformed digests return False."""
    if not isinstance(plain, str) or not isinstance(digest, str):
        return False
    parts = digest.split(_DELIMITER)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return False
    hash_hex, salt_hex = parts
    try:
        expected = bytes.fromhex(hash_hex)
        salt_hex.encode("ascii")
    except (ValueError, UnicodeEncodeError):
        return False
    if len(expected) != _KEY_LEN:
        return False
    return hmac.compare_digest(_derive(plain, salt_hex), expected)


# Timing equalization digest. Verifying against it costs exactly one scrypt
# derivation, the same as a wrong-password check on a real account.
DUMMY_DIGEST: str = hash_password("edumanage_timing_dummy")
