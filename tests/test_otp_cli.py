import json

import pytest

from totpauth import otp_cli
from totpauth.otp_core import compute_code, current_step
from totpauth.otp_store import load_authenticator


@pytest.fixture
def state(tmp_path, capsys):
    path = str(tmp_path / "otp_state.json")
    assert otp_cli.main(["--state", path, "init", "--scratch-codes", "2",
                         "--user", "alice", "--issuer", "Company"]) == 0
    return path


def test_init_writes_state(state, capsys):
    out = capsys.readouterr().out
    auth = load_authenticator(state)
    assert len(auth.scratch_codes) == 2
    assert f"otpauth://totp/Company:alice?issuer=Company&secret={auth.secret}" in out
    for code in auth.scratch_codes:
        assert str(code) in out


def test_init_refuses_to_overwrite(state, capsys):
    assert otp_cli.main(["--state", state, "init"]) == otp_cli.EXIT_ERROR
    assert "already exists" in capsys.readouterr().out


def test_init_force_replaces(state):
    before = load_authenticator(state).secret
    assert otp_cli.main(["--state", state, "init", "--force"]) == 0
    assert load_authenticator(state).secret != before


def test_verify_accepts_then_rejects_replay(state, capsys):
    auth = load_authenticator(state)
    code = compute_code(auth.secret, current_step())

    assert otp_cli.main(["--state", state, "verify", code]) == otp_cli.EXIT_OK
    assert "VALID" in capsys.readouterr().out
    assert load_authenticator(state).used_steps

    assert otp_cli.main(["--state", state, "verify", code]) == otp_cli.EXIT_REJECTED
    assert "INVALID" in capsys.readouterr().out


def test_verify_scratch_code(state):
    scratch = str(load_authenticator(state).scratch_codes[0])
    assert otp_cli.main(["--state", state, "verify", scratch]) == otp_cli.EXIT_OK
    assert otp_cli.main(["--state", state, "verify", scratch]) == otp_cli.EXIT_REJECTED
    assert len(load_authenticator(state).scratch_codes) == 1


def test_verify_malformed_code(state, capsys):
    assert otp_cli.main(["--state", state, "verify", "12ab"]) == otp_cli.EXIT_ERROR
    assert "[!]" in capsys.readouterr().out


def test_missing_state_file(tmp_path, capsys):
    path = str(tmp_path / "missing.json")
    assert otp_cli.main(["--state", path, "code"]) == otp_cli.EXIT_ERROR
    assert "not found" in capsys.readouterr().out


def test_invalid_secret_reported(tmp_path, capsys):
    path = tmp_path / "state.json"
    path.write_text(json.dumps({"secret": "?", "window_size": 5}))
    assert otp_cli.main(["--state", str(path), "code"]) == otp_cli.EXIT_ERROR
    assert "Invalid Base32 secret" in capsys.readouterr().out


def test_code_prints_current_code(state, capsys):
    capsys.readouterr()
    auth = load_authenticator(state)
    assert otp_cli.main(["--state", state, "code"]) == 0
    out = capsys.readouterr().out
    assert out.startswith("TOTP: ")
    assert out.split()[1] in {
        compute_code(auth.secret, current_step() + k) for k in (-1, 0)
    }


def test_uri_and_scratch(state, capsys):
    capsys.readouterr()
    auth = load_authenticator(state)
    assert otp_cli.main(["--state", state, "uri", "--user", "bob"]) == 0
    assert capsys.readouterr().out.strip() == f"otpauth://totp/bob?secret={auth.secret}"

    assert otp_cli.main(["--state", state, "scratch"]) == 0
    assert "2 scratch code(s) left" in capsys.readouterr().out


def test_qr_writes_png(state, tmp_path):
    out = tmp_path / "alice.png"
    assert otp_cli.main(["--state", state, "qr", "--user", "alice", "--out", str(out)]) == 0
    assert out.read_bytes().startswith(b"\x89PNG")


def test_gc_prunes_old_steps(state, capsys):
    with open(state, encoding="utf-8") as f:
        data = json.load(f)
    step = current_step()
    data["used_steps"] = [1, 2, step]
    with open(state, "w", encoding="utf-8") as f:
        json.dump(data, f)

    assert otp_cli.main(["--state", state, "gc"]) == 0
    assert "Pruned 2 expired step(s)" in capsys.readouterr().out
    assert load_authenticator(state).used_steps == {step}


def test_no_command_prints_help_hint(capsys):
    assert otp_cli.main([]) == otp_cli.EXIT_ERROR
    assert "Use -h for help" in capsys.readouterr().out
