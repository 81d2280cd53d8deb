from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional
from typing import Union

import yaml
from pydantic import BaseModel, Field, model_validator


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only config so most users only need `.env`; YAML is an optional override on top.
    """
    return {
        "account": {
            "email": os.getenv("FB_EMAIL", ""),
            "password": os.getenv("FB_PASSWORD", ""),
            "two_fa_secret": os.getenv("FB_2FA_SECRET", ""),
        },
        "browser": {
            # Headless unless explicitly turned off.
            "headless": (os.getenv("HEADLESS", "") or "").strip().lower() not in {"false", "0", "no", "off"},
            "executable_path": os.getenv("BROWSER_EXECUTABLE_PATH", ""),
            "device_name": os.getenv("DEVICE_NAME", "iPhone 15 Pro"),
            "block_requests": _env_bool("BLOCK_REQUESTS", default=True),
        },
        "cookies": {
            "path": os.getenv("COOKIES_PATH", ""),
        },
        "debug": {
            "dir": os.getenv("DEBUG_DIR", "data/debug"),
            "step_debug": _env_bool("STEP_DEBUG", default=False),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", ""),
            "tz": os.getenv("LOG_TZ", "Asia/Dhaka"),
        },
    }


class AccountConfig(BaseModel):
    email: str = ""
    password: str = Field(default="", repr=False)
    two_fa_secret: str = Field(default="", repr=False)


class SiteConfig(BaseModel):
    """
    Target site endpoints and the session-identity cookie.
    """

    login_url: str = "https://m.facebook.com/login"
    home_url: str = "https://m.facebook.com/"
    profile_url: str = "https://m.facebook.com/profile.php"
    cookie_origin: str = "https://m.facebook.com"
    cookie_domain: str = ".facebook.com"
    identity_cookie: str = "c_user"


class ViewportConfig(BaseModel):
    width: int
    height: int


class BrowserConfig(BaseModel):
    headless: bool = True
    executable_path: str = ""
    args: list[str] = Field(default_factory=lambda: ["--no-sandbox", "--disable-dev-shm-usage"])
    device_name: str = "iPhone 15 Pro"
    # Overrides the device descriptor's viewport when set.
    viewport: Optional[ViewportConfig] = None
    block_requests: bool = True
    blocked_resource_types: list[str] = Field(default_factory=lambda: ["image", "font", "stylesheet", "media"])
    slow_mo_ms: int = 0


class TimeoutsConfig(BaseModel):
    """
    All bounded waits, in milliseconds.
    """

    nav: int = 30_000
    short: int = 6_000
    home_nav: int = 20_000
    profile_button: int = 12_000
    profile_click: int = 8_000
    profile_nav: int = 10_000
    profile_heading: int = 6_000
    post_submit_nav: int = 8_000
    code_race: int = 3_000
    code_wait: int = 8_000
    code_visible: int = 10_000
    save_prompt: int = 6_000
    identity_cookie: int = 12_000
    identity_cookie_step: int = 250

    # Fixed pauses between steps.
    after_welcome: int = 500
    after_submit: int = 200
    after_checkpoint: int = 500
    between_code_attempts: int = 150
    between_profile_clicks: int = 350

    # Per-keystroke delays.
    field_type_delay: int = 10
    code_type_delay: int = 15


class RetryPolicy(BaseModel):
    attempts: int = 5
    delay_ms: int = 250


class RetriesConfig(BaseModel):
    click: RetryPolicy = RetryPolicy()
    login_button: RetryPolicy = RetryPolicy(attempts=5, delay_ms=300)
    try_another_way: RetryPolicy = RetryPolicy(attempts=5, delay_ms=200)
    checkpoint_continue: RetryPolicy = RetryPolicy(attempts=2, delay_ms=250)
    radio: RetryPolicy = RetryPolicy()
    fill: RetryPolicy = RetryPolicy(attempts=3, delay_ms=150)
    profile_click_attempts: int = 3
    code_entry_attempts: int = 3


class CookiesConfig(BaseModel):
    # Default snapshot path; empty means "do not persist unless the caller passes a path".
    path: str = ""


class DebugConfig(BaseModel):
    dir: str = "data/debug"
    # Single fixed-name screenshot written on fatal failure, overwritten each time.
    error_screenshot: str = "error-screenshot.png"
    step_debug: bool = False
    log_steps: bool = False

    def error_screenshot_path(self) -> Path:
        p = Path(self.error_screenshot)
        if p.is_absolute() or not self.dir:
            return p
        return Path(self.dir) / p


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = ""
    tz: str = "Asia/Dhaka"


class AppConfig(BaseModel):
    account: AccountConfig = AccountConfig()
    site: SiteConfig = SiteConfig()
    browser: BrowserConfig = BrowserConfig()
    timeouts: TimeoutsConfig = TimeoutsConfig()
    retries: RetriesConfig = RetriesConfig()
    cookies: CookiesConfig = CookiesConfig()
    debug: DebugConfig = DebugConfig()
    logging: LoggingConfig = LoggingConfig()

    @model_validator(mode="after")
    def _validate_bounds(self) -> "AppConfig":
        if self.timeouts.identity_cookie_step <= 0:
            raise ValueError("timeouts.identity_cookie_step must be > 0")
        for name in ("click", "login_button", "try_another_way", "checkpoint_continue", "radio", "fill"):
            if getattr(self.retries, name).attempts < 1:
                raise ValueError(f"retries.{name}.attempts must be >= 1")
        return self


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)
