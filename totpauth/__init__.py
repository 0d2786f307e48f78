"""
totpauth package
================

TOTP (RFC 6238) verifier for a single shared secret, with replay protection
and single-use scratch codes.

──────────────────────────────────────────────
Core algorithm
──────────────────────────────────────────────
- Code: HOTP(secret, step) with step = floor(unix_time / 30), HMAC-SHA1,
  dynamic truncation, 6 digits.
- Window: steps t0 - window_size // 2 .. t0 + window_size // 2 are accepted,
  scanned in ascending order.
- Replay guard: an accepted step is remembered in `used_steps` and rejected
  afterwards; steps older than the window are pruned.
- Scratch codes: 8-digit backup codes, each accepted once.

──────────────────────────────────────────────
Quick example
──────────────────────────────────────────────
>>> from totpauth import new_authenticator, authenticate, provisioning_uri
>>> auth = new_authenticator(scratch_codes=5)
>>> uri = provisioning_uri(auth, "alice@example", "MyService")
>>> ok = authenticate(auth, user_input)   # mutates auth, persist it afterwards
"""

from .otp_core import (
    Authenticator,
    InvalidChallenge,
    InvalidCode,
    InvalidSecret,
    OTPError,
    authenticate,
    collect_garbage,
    compute_code,
    current_step,
)
from .otp_generator import (
    new_authenticator,
    new_scratch_code,
    provisioning_qr_png,
    provisioning_uri,
)
from .otp_store import InvalidState, load_authenticator, save_authenticator

__all__ = [
    "Authenticator",
    "InvalidChallenge",
    "InvalidCode",
    "InvalidSecret",
    "InvalidState",
    "OTPError",
    "authenticate",
    "collect_garbage",
    "compute_code",
    "current_step",
    "load_authenticator",
    "new_authenticator",
    "new_scratch_code",
    "provisioning_qr_png",
    "provisioning_uri",
    "save_authenticator",
]
