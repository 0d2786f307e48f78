"""
otp_generator.py — Bootstrap helpers: new secrets, scratch codes and
provisioning data for authenticator apps.

Randomness comes from `secrets.SystemRandom()` (CSPRNG) unless the caller
passes its own `random.Random`-compatible source, e.g. a seeded one in tests.
"""

import base64
import io
import logging
import secrets
from random import Random
from typing import Optional
from urllib.parse import urlencode

import qrcode

from .otp_core import DEFAULT_WINDOW_SIZE, Authenticator

logger = logging.getLogger(__name__)

SECRET_BYTES = 10           # 80-bit secret, 16 base-32 characters
DEFAULT_SCRATCH_CODES = 5
SCRATCH_CODE_MIN = 10_000_000
SCRATCH_CODE_MAX = 99_999_999


def _rand(rand: Optional[Random]) -> Random:
    return rand if rand is not None else secrets.SystemRandom()


def generate_base32_secret(rand: Optional[Random] = None) -> str:
    """
    Generate a random secret and return it base-32 encoded (with padding).

    - SECRET_BYTES bytes from the random source (CSPRNG by default).
    - Base-32 so it can be typed or imported into Google Authenticator / Authy.
    """
    raw = _rand(rand).randbytes(SECRET_BYTES)
    return base64.b32encode(raw).decode("ascii")


def new_scratch_code(rand: Optional[Random] = None) -> int:
    """Return a random 8-digit scratch code; the first digit is never 0."""
    return _rand(rand).randint(SCRATCH_CODE_MIN, SCRATCH_CODE_MAX)


def new_authenticator(
    scratch_codes: int = DEFAULT_SCRATCH_CODES,
    window_size: int = DEFAULT_WINDOW_SIZE,
    rand: Optional[Random] = None,
) -> Authenticator:
    """
    Create a fresh Authenticator with a random secret and `scratch_codes`
    newly minted scratch codes.

    Arguments:
        scratch_codes: how many backup codes to mint
        window_size: tolerated steps around now (default 5, i.e. +/- 2 steps)
        rand: random source, secrets.SystemRandom() when None
    """
    if scratch_codes < 0:
        raise ValueError(f"scratch_codes must be non-negative, got {scratch_codes}")
    rand = _rand(rand)
    auth = Authenticator(
        secret=generate_base32_secret(rand),
        window_size=window_size,
        scratch_codes=[new_scratch_code(rand) for _ in range(scratch_codes)],
    )
    logger.debug("created authenticator with %d scratch code(s), window %d",
                 scratch_codes, window_size)
    return auth


def provisioning_uri(auth: Authenticator, user: str, issuer: str = "") -> str:
    """
    Build the otpauth:// URI that authenticator apps import (usually as a QR code).

    - otpauth://totp/{issuer}:{user}?issuer={issuer}&secret={secret}
    - otpauth://totp/{user}?secret={secret}  (issuer == "")

    The issuer is both a label prefix and a parameter, which avoids
    conflicting accounts in Google Authenticator. Query parameters are
    sorted by name.
    """
    label = user
    params = {"secret": auth.secret}
    if issuer:
        params["issuer"] = issuer
        label = f"{issuer}:{user}"
    return f"otpauth://totp/{label}?{urlencode(sorted(params.items()))}"


def provisioning_qr_png(auth: Authenticator, user: str, issuer: str = "") -> bytes:
    """Render the provisioning URI as a PNG QR code and return the image bytes."""
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(provisioning_uri(auth, user, issuer))
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
