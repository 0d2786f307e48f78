"""
otp_store.py — JSON persistence for Authenticator state.

The core never touches the disk; these helpers are what the CLI uses, and
what a caller can use when a JSON file or column is good enough.

Stored document:
    {
        "secret": "2SH3V3GDW7ZNMGYE",
        "window_size": 5,
        "used_steps": [56984533],
        "scratch_codes": [11112222, 22223333]
    }
"""

import json
import logging
import os
import shutil
from typing import Any, Dict, Optional

from .otp_core import Authenticator, OTPError, collect_garbage

logger = logging.getLogger(__name__)

STATE_FILE = "otp_state.json"


class InvalidState(OTPError):
    """Persisted state is not a valid Authenticator document."""


def to_dict(auth: Authenticator) -> Dict[str, Any]:
    """Return a JSON-compatible dict holding all four Authenticator fields."""
    return {
        "secret": auth.secret,
        "window_size": auth.window_size,
        "used_steps": sorted(auth.used_steps),
        "scratch_codes": list(auth.scratch_codes),
    }


def _int_list(data: Dict[str, Any], key: str) -> list:
    value = data.get(key, [])
    if not isinstance(value, list) or not all(
        isinstance(v, int) and not isinstance(v, bool) for v in value
    ):
        raise InvalidState(f"'{key}' must be a list of integers")
    return value


def from_dict(data: Dict[str, Any]) -> Authenticator:
    """
    Rebuild an Authenticator from the output of to_dict().

    Missing used_steps / scratch_codes default to empty lists.

    Raises:
        InvalidState: missing secret or wrongly typed fields
    """
    if not isinstance(data, dict):
        raise InvalidState("State must be a JSON object")
    secret = data.get("secret")
    if not isinstance(secret, str):
        raise InvalidState("'secret' must be a string")
    window_size = data.get("window_size")
    if not isinstance(window_size, int) or isinstance(window_size, bool) or window_size < 0:
        raise InvalidState("'window_size' must be a non-negative integer")
    return Authenticator(
        secret=secret,
        window_size=window_size,
        used_steps=set(_int_list(data, "used_steps")),
        scratch_codes=_int_list(data, "scratch_codes"),
    )


def dumps(auth: Authenticator) -> str:
    return json.dumps(to_dict(auth))


def loads(text: str) -> Authenticator:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidState(f"State is not valid JSON: {e}") from e
    return from_dict(data)


def save_authenticator(
    auth: Authenticator, path: str = STATE_FILE, timestamp: Optional[float] = None
) -> None:
    """
    Prune stale used steps, then write the state to `path` as JSON.

    - If the file already exists, a copy is kept at path + ".bak".
    - The file holds the secret; restrict its permissions (chmod 600).
    """
    collect_garbage(auth, timestamp)
    if os.path.exists(path):
        shutil.copy2(path, path + ".bak")
    with open(path, "w", encoding="utf-8") as f:
        json.dump(to_dict(auth), f, indent=2)
        f.write("\n")
    logger.debug("saved authenticator state to %s", path)


def load_authenticator(path: str = STATE_FILE) -> Authenticator:
    """
    Read an Authenticator back from `path`.

    Raises:
        FileNotFoundError: the file does not exist
        InvalidState: the file is not a valid state document
    """
    with open(path, "r", encoding="utf-8") as f:
        auth = loads(f.read())
    logger.debug("loaded authenticator state from %s", path)
    return auth
