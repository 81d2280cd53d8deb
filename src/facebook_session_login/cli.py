from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from .browser.cookies import CookieStore
from .browser.login import FacebookLoginClient
from .config import AppConfig, ViewportConfig, load_config
from .errors import BrowserLaunchError, CookieSourceError, FacebookLoginError
from .logging_config import configure_logging
from .models import DEFAULT_COOKIES_FILE, LoginRequest


logger = logging.getLogger("facebook_session_login")

EXIT_OK = 0
EXIT_LOGIN_FAILED = 1
EXIT_USAGE = 2


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="facebook_session_login")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    login = sub.add_parser("login", help="Log in to the mobile site and print the authenticated identity as JSON")
    login.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    login.add_argument("--cookies-file", default="", help="Cookie snapshot to reuse and update (default: COOKIES_PATH).")
    login.add_argument(
        "--no-cookies-file",
        action="store_true",
        help="Neither read nor write any cookie snapshot, even if COOKIES_PATH is set.",
    )
    login.add_argument("--cookie-header", default="", help='Existing cookies as a header string, e.g. "c_user=1; xs=abc".')
    login.add_argument("--cookies-json", default="", help="Path to a JSON array of existing cookie records.")
    login.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
    login.add_argument("--device", default="", help='Playwright device profile to emulate (default: "iPhone 15 Pro").')
    login.add_argument("--viewport", default="", help="Override the device viewport, as WIDTHxHEIGHT.")
    login.add_argument(
        "--no-block-requests",
        action="store_true",
        help="Load images/fonts/stylesheets/media (blocked by default to speed up page loads).",
    )
    login.add_argument("--slowmo-ms", type=int, default=0, help="Playwright slow motion in milliseconds (debug).")
    login.add_argument("--step-debug", action="store_true", help="Save step-by-step screenshots under the debug dir.")
    login.add_argument("--log-steps", action="store_true", help="Log each login stage with the current URL.")

    check = sub.add_parser("check-cookies", help="Validate and summarize a cookie snapshot without opening a browser")
    check.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")
    check.add_argument("--cookies-file", default="", help="Cookie snapshot to inspect (default: COOKIES_PATH).")
    check.add_argument("--cookie-header", default="", help="Inspect a header string instead of a snapshot file.")

    return p


def _parse_viewport(raw: str) -> ViewportConfig:
    try:
        w, h = raw.lower().split("x", 1)
        return ViewportConfig(width=int(w), height=int(h))
    except ValueError:
        raise SystemExit(f"--viewport must look like 390x844 (got {raw!r})")


def _apply_login_overrides(cfg: AppConfig, args: argparse.Namespace) -> None:
    if args.headful:
        cfg.browser.headless = False
    if args.device:
        cfg.browser.device_name = args.device
    if args.viewport:
        cfg.browser.viewport = _parse_viewport(args.viewport)
    if args.no_block_requests:
        cfg.browser.block_requests = False
    if args.slowmo_ms:
        cfg.browser.slow_mo_ms = args.slowmo_ms
    if args.step_debug:
        cfg.debug.step_debug = True
    if args.log_steps:
        cfg.debug.log_steps = True


def _existing_cookies(args: argparse.Namespace) -> object:
    if args.cookies_json:
        p = Path(args.cookies_json)
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CookieSourceError(f"could not read {p}: {e}") from e
        if not isinstance(data, list):
            raise CookieSourceError(f"{p} must hold a JSON array of cookie records")
        return data
    return args.cookie_header or None


def _login_request(cfg: AppConfig, args: argparse.Namespace) -> LoginRequest:
    if args.no_cookies_file:
        cookies_file: object = None
    elif args.cookies_file:
        cookies_file = args.cookies_file
    else:
        cookies_file = DEFAULT_COOKIES_FILE

    return LoginRequest(
        email=cfg.account.email,
        password=cfg.account.password,
        two_fa_secret=cfg.account.two_fa_secret or None,
        existing_cookies=_existing_cookies(args),
        cookies_file=cookies_file,
    )


def _check_cookies(cfg: AppConfig, path: str, *, header: str = "") -> int:
    store = CookieStore(cfg.site)
    if header:
        source = "cookie-header"
        cookies = store.parse_cookie_header_string(header)
    elif path:
        source = path
        try:
            cookies = store.load(path)
        except CookieSourceError as e:
            print(f"❌ {e}")
            return EXIT_LOGIN_FAILED
    else:
        print("❌ No cookies given. Pass --cookies-file or --cookie-header, or set COOKIES_PATH.")
        return EXIT_USAGE

    if not cookies:
        print(f"❌ No usable cookies in {source}")
        return EXIT_LOGIN_FAILED

    identity = store.identity_cookie(cookies)
    summary = {
        "source": source,
        "count": len(cookies),
        "names": sorted({c.name for c in cookies}),
        "userID": identity.value if identity else None,
        "sessionOnly": sum(1 for c in cookies if c.is_session),
    }
    print(json.dumps(summary, indent=2))
    return EXIT_OK if identity else EXIT_LOGIN_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    try:
        cfg = load_config(args.config)
    except (ValidationError, yaml.YAMLError) as e:
        print(f"❌ Invalid config: {e}")
        return EXIT_USAGE
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path, tz=cfg.logging.tz)

    if args.cmd == "check-cookies":
        return _check_cookies(cfg, args.cookies_file or cfg.cookies.path, header=args.cookie_header)

    if args.cmd == "login":
        _apply_login_overrides(cfg, args)
        if not cfg.account.email or not cfg.account.password:
            print("❌ Missing credentials. Set FB_EMAIL and FB_PASSWORD in your .env.")
            return EXIT_USAGE
        try:
            request = _login_request(cfg, args)
        except CookieSourceError as e:
            print(f"❌ {e}")
            return EXIT_USAGE

        logger.info("Starting login for %s", cfg.account.email)
        try:
            result = asyncio.run(FacebookLoginClient(cfg).login(request))
        except KeyboardInterrupt:
            print("Interrupted.")
            return 130
        except BrowserLaunchError as e:
            print(f"❌ Browser launch failed: {e}")
            return EXIT_LOGIN_FAILED
        except FacebookLoginError as e:
            print(f"❌ Login failed: {e}")
            return EXIT_LOGIN_FAILED
        except Exception as e:
            print(f"❌ login errored: {e}")
            return EXIT_LOGIN_FAILED

        print(json.dumps({"success": True, "userID": result.user_id, "profileName": result.profile_name}, indent=2))
        return EXIT_OK

    raise AssertionError("Unhandled command")
