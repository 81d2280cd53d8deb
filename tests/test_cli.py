from __future__ import annotations

import json
from pathlib import Path

import pytest

from facebook_session_login import cli
from facebook_session_login.errors import LoginFailedError
from facebook_session_login.models import DEFAULT_COOKIES_FILE, AuthResult


@pytest.fixture(autouse=True)
def _isolated(monkeypatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    for key in ("FB_EMAIL", "FB_PASSWORD", "FB_2FA_SECRET", "COOKIES_PATH"):
        monkeypatch.delenv(key, raising=False)


def _argv(tmp_path: Path, *args: str) -> list[str]:
    return ["--env-file", str(tmp_path / "missing.env"), *args, "--config", str(tmp_path / "missing.yaml")]


class _RecordingClient:
    requests: list = []
    outcome: object = None

    def __init__(self, config) -> None:
        self.config = config

    async def login(self, request):
        type(self).requests.append((self.config, request))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def recording_client(monkeypatch):
    _RecordingClient.requests = []
    _RecordingClient.outcome = AuthResult(authenticated=True, user_id="42", profile_name="Jane Doe")
    monkeypatch.setattr(cli, "FacebookLoginClient", _RecordingClient)
    return _RecordingClient


def test_login_prints_identity_json(tmp_path: Path, monkeypatch, capsys, recording_client) -> None:
    monkeypatch.setenv("FB_EMAIL", "jane@example.com")
    monkeypatch.setenv("FB_PASSWORD", "pw")

    rc = cli.main(_argv(tmp_path, "login", "--cookie-header", "c_user=42; xs=a", "--headful", "--log-steps"))

    assert rc == 0
    assert json.loads(capsys.readouterr().out) == {"success": True, "userID": "42", "profileName": "Jane Doe"}
    config, request = recording_client.requests[0]
    assert config.browser.headless is False
    assert config.debug.log_steps is True
    assert request.existing_cookies == "c_user=42; xs=a"
    assert request.cookies_file is DEFAULT_COOKIES_FILE
    assert request.two_fa_secret is None


def test_login_no_cookies_file_is_explicit_opt_out(tmp_path: Path, monkeypatch, recording_client) -> None:
    monkeypatch.setenv("FB_EMAIL", "jane@example.com")
    monkeypatch.setenv("FB_PASSWORD", "pw")
    monkeypatch.setenv("COOKIES_PATH", str(tmp_path / "cookies.json"))

    assert cli.main(_argv(tmp_path, "login", "--no-cookies-file")) == 0

    _, request = recording_client.requests[0]
    assert request.cookies_file is None
    assert request.resolve_cookies_file(str(tmp_path / "cookies.json")) is None


def test_login_reads_cookie_records_file(tmp_path: Path, monkeypatch, recording_client) -> None:
    monkeypatch.setenv("FB_EMAIL", "jane@example.com")
    monkeypatch.setenv("FB_PASSWORD", "pw")
    records = tmp_path / "export.json"
    records.write_text(json.dumps([{"name": "c_user", "value": "42"}]), encoding="utf-8")

    assert cli.main(_argv(tmp_path, "login", "--cookies-json", str(records))) == 0

    _, request = recording_client.requests[0]
    assert request.existing_cookies == [{"name": "c_user", "value": "42"}]


def test_login_failure_exit_code(tmp_path: Path, monkeypatch, capsys, recording_client) -> None:
    monkeypatch.setenv("FB_EMAIL", "jane@example.com")
    monkeypatch.setenv("FB_PASSWORD", "pw")
    recording_client.outcome = LoginFailedError("Login failed")

    assert cli.main(_argv(tmp_path, "login")) == 1
    assert "Login failed" in capsys.readouterr().out


def test_login_without_credentials_is_usage_error(tmp_path: Path, recording_client) -> None:
    assert cli.main(_argv(tmp_path, "login")) == 2
    assert recording_client.requests == []


def test_check_cookies_reports_identity(tmp_path: Path, capsys) -> None:
    path = tmp_path / "cookies.json"
    path.write_text(
        json.dumps([{"name": "c_user", "value": "42", "expires": 1893456000}, {"name": "xs", "value": "a"}]),
        encoding="utf-8",
    )

    rc = cli.main(_argv(tmp_path, "check-cookies", "--cookies-file", str(path)))

    summary = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert summary["userID"] == "42"
    assert summary["count"] == 2
    assert summary["sessionOnly"] == 1


def test_check_cookies_header_without_identity(tmp_path: Path, capsys) -> None:
    rc = cli.main(_argv(tmp_path, "check-cookies", "--cookie-header", "xs=a; datr=b"))

    assert rc == 1
    assert json.loads(capsys.readouterr().out)["names"] == ["datr", "xs"]


def test_check_cookies_needs_a_source(tmp_path: Path) -> None:
    assert cli.main(_argv(tmp_path, "check-cookies")) == 2


def test_check_cookies_with_only_malformed_records(tmp_path: Path, capsys) -> None:
    path = tmp_path / "cookies.json"
    path.write_text(json.dumps([{"name": "c_user", "value": "42", "path": ["x"]}]), encoding="utf-8")

    rc = cli.main(_argv(tmp_path, "check-cookies", "--cookies-file", str(path)))

    assert rc == 1
    assert "No usable cookies" in capsys.readouterr().out
