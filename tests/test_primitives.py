from __future__ import annotations

import asyncio

import pytest

from facebook_session_login.browser.primitives import (
    ProbeOutcome,
    click_by_text,
    click_exact_text_once,
    click_if_present,
    fill_field,
    poll_until,
    retry,
    select_radio_by_aria_label,
)
from facebook_session_login.errors import FieldWriteError, WaitTimeoutError

from fakes import AUTH_APP_LABEL, SEL, FakeSession


def test_retry_returns_first_success_after_failures() -> None:
    calls = []

    async def flaky() -> str:
        calls.append(1)
        if len(calls) < 3:
            raise RuntimeError(f"boom {len(calls)}")
        return "ok"

    assert asyncio.run(retry(flaky, attempts=3, delay_ms=0, label="flaky")) == "ok"
    assert len(calls) == 3


def test_retry_reraises_error_of_final_attempt() -> None:
    calls = []

    async def always_fails() -> None:
        calls.append(1)
        raise ValueError(f"attempt {len(calls)}")

    with pytest.raises(ValueError, match="attempt 4"):
        asyncio.run(retry(always_fails, attempts=4, delay_ms=0))
    assert len(calls) == 4


def test_retry_never_runs_attempts_in_parallel() -> None:
    active = []
    peak = []

    async def action() -> None:
        active.append(1)
        peak.append(len(active))
        await asyncio.sleep(0)
        active.pop()
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError):
        asyncio.run(retry(action, attempts=3, delay_ms=0))
    assert max(peak) == 1


def test_poll_until_raises_distinguishable_timeout() -> None:
    async def never() -> bool:
        return False

    with pytest.raises(WaitTimeoutError) as ei:
        asyncio.run(poll_until(never, timeout_ms=20, step_ms=5, label="never"))
    assert ei.value.timeout_ms == 20


def test_click_by_text_clicks_matching_button() -> None:
    site = FakeSession(two_factor=True, method_chooser=True)
    site.page = "approvals"

    outcome = asyncio.run(click_by_text(site, "  try   ANOTHER way ", attempts=2, delay_ms=0, timeout_ms=20))

    assert outcome is ProbeOutcome.FOUND
    assert site.page == "methods"


def test_click_by_text_partial_match_only_when_not_exact() -> None:
    site = FakeSession()
    site.page = "login"

    exact = asyncio.run(click_by_text(site, "Forgot", attempts=1, delay_ms=0, timeout_ms=10))
    partial = asyncio.run(click_by_text(site, "Forgot", attempts=1, delay_ms=0, exact=False, timeout_ms=10))

    assert exact is ProbeOutcome.TIMED_OUT
    assert partial is ProbeOutcome.FOUND
    assert site.pressed == [("login", "Forgot password?")]


def test_click_by_text_miss_is_swallowed() -> None:
    site = FakeSession()
    site.page = "home"

    outcome = asyncio.run(click_by_text(site, "Continue", attempts=2, delay_ms=0, timeout_ms=10))

    assert outcome is ProbeOutcome.TIMED_OUT
    assert not outcome.found
    assert site.pressed == []


def test_click_by_text_skips_disabled_elements() -> None:
    site = FakeSession(disabled_buttons=["Continue"])
    site.page = "code"

    outcome = asyncio.run(click_by_text(site, "Continue", attempts=1, delay_ms=0, timeout_ms=10))

    assert outcome is ProbeOutcome.TIMED_OUT
    assert site.pressed == []


def test_select_radio_confirms_checked_state() -> None:
    site = FakeSession()
    site.page = "methods"

    outcome = asyncio.run(
        select_radio_by_aria_label(site, SEL.auth_app_radio_labels, attempts=2, delay_ms=0, timeout_ms=20)
    )

    assert outcome is ProbeOutcome.FOUND
    assert site.checked_radio == AUTH_APP_LABEL


def test_select_radio_without_chooser_is_not_fatal() -> None:
    site = FakeSession()
    site.page = "code"

    outcome = asyncio.run(
        select_radio_by_aria_label(site, SEL.auth_app_radio_labels, attempts=2, delay_ms=0, timeout_ms=10)
    )

    assert outcome is ProbeOutcome.TIMED_OUT
    assert site.checked_radio is None


def test_click_exact_text_once_is_single_scan() -> None:
    site = FakeSession(show_welcome=True)
    site.page = "welcome"

    assert asyncio.run(click_exact_text_once(site, "I already have an account", selectors=SEL)).found
    assert site.page == "login"
    # Second scan on the login page: nothing to click, no error.
    assert asyncio.run(click_exact_text_once(site, "I already have an account", selectors=SEL)) is ProbeOutcome.NOT_FOUND


def test_click_if_present_absence_is_not_error() -> None:
    site = FakeSession()
    site.page = "home"

    assert asyncio.run(click_if_present(site, SEL.save_browser_button, timeout_ms=10)) is ProbeOutcome.TIMED_OUT

    site.page = "save"
    assert asyncio.run(click_if_present(site, SEL.save_browser_button, timeout_ms=10)) is ProbeOutcome.FOUND
    assert site.page == "home"


def test_fill_field_direct_assignment() -> None:
    site = FakeSession()
    site.page = "login"

    asyncio.run(fill_field(site, SEL.email_field_id, "jane@example.com", attempts=1, delay_ms=0, timeout_ms=10))

    assert site.fields["#m_login_email"] == "jane@example.com"
    assert site.typed == []


def test_fill_field_falls_back_to_keystrokes() -> None:
    site = FakeSession(ignore_direct_assignment=[SEL.password_field_id])
    site.page = "login"
    site.fields["#m_login_password"] = "stale"

    asyncio.run(fill_field(site, SEL.password_field_id, "hunter2", attempts=1, delay_ms=0, timeout_ms=10))

    assert site.fields["#m_login_password"] == "hunter2"
    assert site.typed == [("#m_login_password", "hunter2")]


def test_fill_field_raises_when_value_never_sticks() -> None:
    site = FakeSession(stuck_fields=[SEL.email_field_id])
    site.page = "login"

    with pytest.raises(FieldWriteError, match="m_login_email"):
        asyncio.run(fill_field(site, SEL.email_field_id, "x@y.z", attempts=2, delay_ms=0, timeout_ms=10))
    assert len(site.typed) == 2


def test_fill_field_missing_field_raises_field_write_error() -> None:
    site = FakeSession()
    site.page = "home"

    with pytest.raises(FieldWriteError):
        asyncio.run(fill_field(site, SEL.email_field_id, "x@y.z", attempts=1, delay_ms=0, timeout_ms=10))
