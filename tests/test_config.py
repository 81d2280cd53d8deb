from __future__ import annotations

from pathlib import Path

import pytest

from facebook_session_login.config import _deep_merge, load_config


_ENV_KEYS = (
    "FB_EMAIL",
    "FB_PASSWORD",
    "FB_2FA_SECRET",
    "COOKIES_PATH",
    "HEADLESS",
    "DEVICE_NAME",
    "BROWSER_EXECUTABLE_PATH",
    "BLOCK_REQUESTS",
    "LOG_LEVEL",
    "LOG_FILE",
    "LOG_TZ",
    "DEBUG_DIR",
    "STEP_DEBUG",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write(tmp_path: Path, name: str, text: str) -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_defaults_without_file_or_env(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.yaml")

    assert cfg.site.login_url == "https://m.facebook.com/login"
    assert cfg.site.identity_cookie == "c_user"
    assert cfg.browser.headless is True
    assert cfg.browser.device_name == "iPhone 15 Pro"
    assert cfg.browser.block_requests is True
    assert cfg.browser.args == ["--no-sandbox", "--disable-dev-shm-usage"]
    assert cfg.timeouts.nav == 30_000
    assert cfg.timeouts.identity_cookie == 12_000
    assert cfg.retries.login_button.delay_ms == 300
    assert cfg.retries.checkpoint_continue.attempts == 2
    assert cfg.cookies.path == ""
    assert cfg.logging.tz == "Asia/Dhaka"
    assert str(cfg.debug.error_screenshot_path()) == str(Path("data/debug") / "error-screenshot.png")


def test_env_values_are_picked_up(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("FB_EMAIL", "jane@example.com")
    monkeypatch.setenv("FB_PASSWORD", "pw")
    monkeypatch.setenv("FB_2FA_SECRET", "JBSW Y3DP")
    monkeypatch.setenv("COOKIES_PATH", "data/cookies.json")
    monkeypatch.setenv("HEADLESS", "false")
    monkeypatch.setenv("BLOCK_REQUESTS", "0")
    monkeypatch.setenv("STEP_DEBUG", "yes")

    cfg = load_config(None)

    assert cfg.account.email == "jane@example.com"
    assert cfg.account.two_fa_secret == "JBSW Y3DP"
    assert cfg.cookies.path == "data/cookies.json"
    assert cfg.browser.headless is False
    assert cfg.browser.block_requests is False
    assert cfg.debug.step_debug is True
    # Secrets stay out of reprs/logs.
    assert "pw" not in repr(cfg.account)
    assert "JBSW" not in repr(cfg.account)


def test_headless_only_disabled_by_false_like_values(monkeypatch) -> None:
    monkeypatch.setenv("HEADLESS", "maybe")
    assert load_config(None).browser.headless is True


def test_yaml_overrides_env_and_expands_vars(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("FB_EMAIL", "env@example.com")
    monkeypatch.setenv("MY_COOKIE_DIR", "/var/fb")
    cfg_path = _write(
        tmp_path,
        "cfg.yaml",
        """
account:
  password: "from-yaml"
cookies:
  path: "${MY_COOKIE_DIR}/cookies.json"
browser:
  viewport:
    width: 390
    height: 844
timeouts:
  short: 1000
retries:
  login_button:
    attempts: 7
""",
    )
    cfg = load_config(cfg_path)

    assert cfg.account.email == "env@example.com"
    assert cfg.account.password == "from-yaml"
    assert cfg.cookies.path == "/var/fb/cookies.json"
    assert (cfg.browser.viewport.width, cfg.browser.viewport.height) == (390, 844)
    assert cfg.timeouts.short == 1000
    assert cfg.timeouts.nav == 30_000
    assert cfg.retries.login_button.attempts == 7
    assert cfg.retries.login_button.delay_ms == 250


def test_invalid_bounds_rejected(tmp_path: Path) -> None:
    cfg_path = _write(
        tmp_path,
        "cfg.yaml",
        """
retries:
  fill:
    attempts: 0
""",
    )
    with pytest.raises(Exception):
        _ = load_config(cfg_path)

    cfg_path = _write(tmp_path, "cfg2.yaml", "timeouts:\n  identity_cookie_step: 0\n")
    with pytest.raises(Exception):
        _ = load_config(cfg_path)


def test_deep_merge_keeps_unrelated_keys() -> None:
    merged = _deep_merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}, "c": 4})
    assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
