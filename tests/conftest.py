import pytest

from totpauth.otp_core import TIME_STEP, Authenticator

SECRET = "2SH3V3GDW7ZNMGYE"
# Five seconds into step 56666666
NOW = 56666666 * TIME_STEP + 5
T0 = 56666666


@pytest.fixture
def auth():
    return Authenticator(secret=SECRET, window_size=5, scratch_codes=[11112222, 22223333])
