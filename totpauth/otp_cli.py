#!/usr/bin/env python3
"""
otp_cli.py — CLI wrapper around otp_core / otp_generator / otp_store.

Subcommands:
- init    : create a new state file (secret + scratch codes), print the otpauth URI
- code    : show the current TOTP code (optionally refreshing in real time)
- verify  : authenticate a code and save the updated state
- uri     : print the otpauth URI
- qr      : write the otpauth URI as a PNG QR code
- scratch : list the remaining scratch codes
- gc      : prune expired used steps and save

Exit status of `verify`: 0 accepted, 1 rejected, 2 malformed code.
"""

import argparse
import logging
import os
import sys
import time

from . import otp_core, otp_generator, otp_store

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2


def _load(args):
    try:
        return otp_store.load_authenticator(args.state)
    except FileNotFoundError:
        print(f"[!] State file '{args.state}' not found. Run 'totpauth init' first.")
        return None
    except otp_store.InvalidState as e:
        print(f"[!] State file '{args.state}' is invalid: {e}")
        return None


# --- CLI command handlers ---
def cmd_init(args):
    if os.path.exists(args.state) and not args.force:
        print(f"[!] {args.state} already exists. Use --force to replace it.")
        return EXIT_ERROR

    auth = otp_generator.new_authenticator(args.scratch_codes, window_size=args.window)
    otp_store.save_authenticator(auth, args.state)

    print(f"[*] State saved to {args.state}")
    print("    Secret:", auth.secret)
    print("    URI:   ", otp_generator.provisioning_uri(auth, args.user, args.issuer))
    if auth.scratch_codes:
        print("[*] Scratch codes (each works once):")
        for code in auth.scratch_codes:
            print("   ", code)
    return EXIT_OK


def cmd_code(args):
    auth = _load(args)
    if auth is None:
        return EXIT_ERROR

    if not args.watch:
        now = time.time()
        code = otp_core.compute_code(auth.secret, otp_core.current_step(now))
        remaining = otp_core.TIME_STEP - int(now) % otp_core.TIME_STEP
        print(f"TOTP: {code}  (valid ~{remaining:2d}s)")
        return EXIT_OK

    print("Press Ctrl+C to quit. Generating TOTP in real time...\n")
    last_code = None
    try:
        while True:
            now = time.time()
            code = otp_core.compute_code(auth.secret, otp_core.current_step(now))
            remaining = otp_core.TIME_STEP - int(now) % otp_core.TIME_STEP
            if code != last_code:
                print(f"TOTP: {code}  (valid ~{remaining:2d}s)")
                last_code = code
            else:
                print(f".. {remaining:2d}s left", end="\r", flush=True)
            time.sleep(1)
    except KeyboardInterrupt:
        print("\nBye.")
    return EXIT_OK


def cmd_verify(args):
    auth = _load(args)
    if auth is None:
        return EXIT_ERROR

    try:
        ok = otp_core.authenticate(auth, args.code)
    except otp_core.InvalidCode as e:
        print(f"[!] {e}")
        return EXIT_ERROR

    # Saved on both outcomes so expired steps get pruned too
    otp_store.save_authenticator(auth, args.state)
    if ok:
        print("[+] Code is VALID")
        return EXIT_OK
    print("[-] Code is INVALID")
    return EXIT_REJECTED


def cmd_uri(args):
    auth = _load(args)
    if auth is None:
        return EXIT_ERROR
    print(otp_generator.provisioning_uri(auth, args.user, args.issuer))
    return EXIT_OK


def cmd_qr(args):
    auth = _load(args)
    if auth is None:
        return EXIT_ERROR
    png = otp_generator.provisioning_qr_png(auth, args.user, args.issuer)
    with open(args.out, "wb") as f:
        f.write(png)
    print(f"[*] QR code written to {args.out}")
    return EXIT_OK


def cmd_scratch(args):
    auth = _load(args)
    if auth is None:
        return EXIT_ERROR
    print(f"[*] {len(auth.scratch_codes)} scratch code(s) left")
    for code in auth.scratch_codes:
        print("   ", code)
    return EXIT_OK


def cmd_gc(args):
    auth = _load(args)
    if auth is None:
        return EXIT_ERROR
    pruned = otp_core.collect_garbage(auth)
    otp_store.save_authenticator(auth, args.state)
    print(f"[*] Pruned {pruned} expired step(s), {len(auth.used_steps)} left")
    return EXIT_OK


def cmd_help(args):
    print("No command specified. Use -h for help.")
    return EXIT_ERROR


# --- Argparse builder ---
"""
eg..:
    totpauth init --user alice --issuer MyService
    totpauth code --watch
    totpauth verify 123456
    totpauth qr --user alice --issuer MyService --out alice.png
"""
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="TOTP authenticator with replay protection and scratch codes")
    p.add_argument("--state", default=os.getenv("TOTPAUTH_STATE_FILE", otp_store.STATE_FILE),
                   help="Authenticator state file (JSON)")
    p.add_argument("--verbose", action="store_true", help="Verbose (debug) logging")
    sub = p.add_subparsers(dest="cmd")
    p.set_defaults(func=cmd_help)

    # init
    pi = sub.add_parser("init", help="Create a new secret and scratch codes")
    pi.add_argument("--scratch-codes", type=int, default=otp_generator.DEFAULT_SCRATCH_CODES,
                    help="Number of scratch codes to mint")
    pi.add_argument("--window", type=int, default=otp_core.DEFAULT_WINDOW_SIZE,
                    help="Window size in 30s steps")
    pi.add_argument("--user", default="user@example", help="Account label for the otpauth URI")
    pi.add_argument("--issuer", default="", help="Issuer label for the otpauth URI")
    pi.add_argument("--force", action="store_true", help="Replace an existing state file")
    pi.set_defaults(func=cmd_init)

    # code
    pc = sub.add_parser("code", help="Show the current TOTP code")
    pc.add_argument("--watch", action="store_true", help="Refresh every second")
    pc.set_defaults(func=cmd_code)

    # verify
    pv = sub.add_parser("verify", help="Authenticate a TOTP or scratch code")
    pv.add_argument("code", help="6-digit TOTP code or 8-digit scratch code")
    pv.set_defaults(func=cmd_verify)

    # uri / qr
    pu = sub.add_parser("uri", help="Print the otpauth URI")
    pu.add_argument("--user", required=True)
    pu.add_argument("--issuer", default="")
    pu.set_defaults(func=cmd_uri)

    pq = sub.add_parser("qr", help="Write the otpauth URI as a PNG QR code")
    pq.add_argument("--user", required=True)
    pq.add_argument("--issuer", default="")
    pq.add_argument("--out", required=True, help="Output PNG file")
    pq.set_defaults(func=cmd_qr)

    # scratch / gc
    ps = sub.add_parser("scratch", help="List remaining scratch codes")
    ps.set_defaults(func=cmd_scratch)

    pg = sub.add_parser("gc", help="Prune expired used steps")
    pg.set_defaults(func=cmd_gc)

    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] %(name)s: %(message)s")
    try:
        return args.func(args)
    except otp_core.OTPError as e:
        print(f"[!] {e}")
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
