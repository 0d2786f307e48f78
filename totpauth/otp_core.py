"""
otp_core.py — Core TOTP engine and authenticator state machine.

Goals:
- Pure helpers for code derivation (HOTP dynamic truncation, RFC 4226/6238).
- An explicit Authenticator state value plus the functions that mutate it:
  `authenticate` and `collect_garbage`.
- No file I/O and no argparse here; persistence lives in otp_store.py and the
  CLI in otp_cli.py.

Security notes:
- The Authenticator is mutated by every successful call to `authenticate`.
  The caller must persist it afterwards, otherwise a used code can be
  replayed or a consumed scratch code reused.
- Calls on the same Authenticator must be serialized by the caller.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import struct
import time
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

logger = logging.getLogger(__name__)

# --- Config / constants ----------------------------------------------------
CODE_DIGITS = 6             # TOTP codes are always 6 digits
SCRATCH_CODE_DIGITS = 8     # scratch codes are 8 digits, never starting with 0
TIME_STEP = 30              # seconds per step, not configurable
DEFAULT_WINDOW_SIZE = 5


# --- Errors ----------------------------------------------------------------
class OTPError(ValueError):
    """Base class for every error raised by totpauth."""


class InvalidCode(OTPError):
    """The password is not a 6-digit code or an 8-digit scratch code."""


class InvalidSecret(OTPError):
    """The secret is not valid base-32."""


class InvalidChallenge(OTPError):
    """The step counter cannot be encoded as a signed 64-bit integer."""


# --- State -----------------------------------------------------------------
@dataclass
class Authenticator:
    """
    Configuration and replay state for a single shared secret.

    Fields:
        secret: base-32 text of the raw secret bytes
        window_size: number of 30s steps tolerated around "now" (split in two)
        used_steps: step counters already accepted, never accepted again
        scratch_codes: remaining single-use 8-digit backup codes
    """

    secret: str
    window_size: int = DEFAULT_WINDOW_SIZE
    used_steps: Set[int] = field(default_factory=set)
    scratch_codes: List[int] = field(default_factory=list)

    def __post_init__(self):
        if self.window_size < 0:
            raise ValueError(f"window_size must be non-negative, got {self.window_size}")
        self.used_steps = set(self.used_steps)
        self.scratch_codes = list(self.scratch_codes)


# --- RFC helpers -----------------------------------------------------------
def decode_secret(secret: str) -> bytes:
    """
    Base-32 decode a secret into raw key bytes.

    Raises:
        InvalidSecret: if the text is not valid (padded) base-32
    """
    try:
        return base64.b32decode(secret, casefold=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidSecret("Invalid Base32 secret") from e


def step_to_bytes(step: int) -> bytes:
    """
    Encode a step counter as 8 bytes, big-endian, two's complement.

    Example: step_to_bytes(1) -> b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00\\x01'
    """
    try:
        return struct.pack(">q", step)
    except struct.error as e:
        raise InvalidChallenge(f"Cannot encode step counter {step!r}") from e


def dynamic_truncate(digest: bytes) -> int:
    """
    RFC 4226 dynamic truncation.

    - offset = low 4 bits of the last byte
    - read 4 bytes at offset as a big-endian integer
    - clear the sign bit, leaving a 31-bit value
    """
    offset = digest[-1] & 0x0F
    (value,) = struct.unpack(">I", digest[offset:offset + 4])
    return value & 0x7FFFFFFF


def compute_code(secret: str, step: int) -> str:
    """
    Compute the 6-digit code of `secret` for the step counter `step`.

    Steps:
    1. Base-32 decode secret -> key bytes
    2. HMAC-SHA1(key, 8-byte big-endian step)
    3. Dynamic truncation -> 31-bit integer
    4. Modulo 10^6, zero-padded to 6 digits

    Arguments:
        secret: base-32 secret
        step: time-step counter (see current_step), not wall-clock seconds

    Raises:
        InvalidSecret: the secret does not decode
        InvalidChallenge: the step does not fit in 64 bits
    """
    key = decode_secret(secret)
    digest = hmac.new(key, step_to_bytes(step), hashlib.sha1).digest()
    return str(dynamic_truncate(digest) % 10 ** CODE_DIGITS).zfill(CODE_DIGITS)


def current_step(timestamp: Optional[float] = None) -> int:
    """Return floor(timestamp / 30), using time.time() when timestamp is None."""
    if timestamp is None:
        timestamp = time.time()
    return int(timestamp // TIME_STEP)


def window_bounds(window_size: int, timestamp: Optional[float] = None) -> Tuple[int, int]:
    """
    Return the inclusive (min_step, max_step) window around the current step.

    An odd window_size is truncated: window_size=5 gives t0-2 .. t0+2.
    """
    t0 = current_step(timestamp)
    half = window_size // 2
    return t0 - half, t0 + half


# --- Authenticator operations ---------------------------------------------
def collect_garbage(auth: Authenticator, timestamp: Optional[float] = None) -> int:
    """
    Drop used steps that fell below the lower bound of the current window.

    The bound is computed from the time of this call, so steps expire even
    when nobody authenticates. Returns the number of steps removed.
    """
    min_step, _ = window_bounds(auth.window_size, timestamp)
    stale = {t for t in auth.used_steps if t < min_step}
    if stale:
        auth.used_steps -= stale
        logger.debug("pruned %d stale step(s) below %d", len(stale), min_step)
    return len(stale)


def _authenticate_totp(auth: Authenticator, password: str, timestamp: Optional[float]) -> bool:
    min_step, max_step = window_bounds(auth.window_size, timestamp)
    for t in range(min_step, max_step + 1):
        if not hmac.compare_digest(compute_code(auth.secret, t), password):
            continue
        if t in auth.used_steps:
            logger.debug("replay of step %d rejected", t)
            return False
        auth.used_steps.add(t)
        collect_garbage(auth, timestamp)
        logger.debug("TOTP accepted for step %d", t)
        return True
    logger.debug("TOTP code matched no step in [%d, %d]", min_step, max_step)
    return False


def _authenticate_scratch(auth: Authenticator, code: int) -> bool:
    try:
        auth.scratch_codes.remove(code)
    except ValueError:
        logger.debug("unknown scratch code rejected")
        return False
    logger.debug("scratch code consumed, %d left", len(auth.scratch_codes))
    return True


def authenticate(auth: Authenticator, password: str, timestamp: Optional[float] = None) -> bool:
    """
    Check a one-time password against `auth`, mutating it on success.

    - 6 digits: TOTP code, searched in ascending step order over the window.
      An accepted step is recorded in used_steps and stale steps are pruned.
    - 8 digits not starting with '0': scratch code, removed once used.

    A wrong code, an expired code and a replayed code all return False.

    Arguments:
        auth: the Authenticator to check against (mutated in place)
        password: the code typed by the user
        timestamp: epoch seconds to use instead of time.time()

    Raises:
        InvalidCode: the password is not a well-formed code
        InvalidSecret: auth.secret does not decode
    """
    if not (password.isascii() and password.isdigit()):
        raise InvalidCode("Code must contain only digits")

    if len(password) == CODE_DIGITS:
        return _authenticate_totp(auth, password, timestamp)
    if len(password) == SCRATCH_CODE_DIGITS and password[0] != "0":
        return _authenticate_scratch(auth, int(password))
    raise InvalidCode(
        f"Code must be {CODE_DIGITS} digits or a {SCRATCH_CODE_DIGITS}-digit scratch code"
    )
