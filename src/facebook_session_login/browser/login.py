from __future__ import annotations

import asyncio
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Optional, Sequence

from ..config import AppConfig, BrowserConfig, RetryPolicy
from ..errors import CookieSourceError, LoginFailedError
from ..models import AuthResult, Cookie, LoginRequest, cookie_source_from
from . import scripts
from .auth_state import AuthStateDetector, AuthVerdict
from .cookies import CookieStore
from .primitives import (
    ProbeOutcome,
    click_by_text,
    click_exact_text_once,
    click_if_present,
    fill_field,
    select_radio_by_aria_label,
    sleep_ms,
)
from .selectors import FacebookSelectors
from .session import BrowserSession, launch_browser
from .totp import CodeGenerator, generate_code, mask_code


logger = logging.getLogger(__name__)

SessionFactory = Callable[[BrowserConfig], Awaitable[BrowserSession]]


class LoginStage(str, Enum):
    TRY_PERSISTED_COOKIES = "try_persisted_cookies"
    TRY_SUPPLIED_COOKIES = "try_supplied_cookies"
    CREDENTIAL_LOGIN = "credential_login"
    WELCOME_SCREEN = "welcome_screen"
    CREDENTIAL_ENTRY = "credential_entry"
    TRY_ANOTHER_WAY = "try_another_way"
    CHALLENGE_SELECT = "challenge_select"
    TWO_FACTOR_ENTRY = "two_factor_entry"
    TRUST_DEVICE_PROMPT = "trust_device_prompt"
    IDENTITY_CONFIRM = "identity_confirm"
    VERIFY = "verify"
    PERSIST = "persist"
    DONE = "done"
    FAILED = "failed"


class ChallengeBranch(str, Enum):
    RADIO = "radio"
    CODE = "code"
    NONE = "none"


class FacebookLoginClient:
    """
    Mobile-site login automation.

    Tries the persisted cookie snapshot, then caller-supplied cookies, then the credential flow with its
    optional challenge screens. Returns a verified AuthResult or raises; the browser session is closed on every
    path.

    Collaborators are injectable: `session_factory` produces the browser session (Playwright by default),
    `code_generator` turns a two-factor secret into the current code (pyotp by default).
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        session_factory: Optional[SessionFactory] = None,
        code_generator: Optional[CodeGenerator] = None,
        selectors: Optional[FacebookSelectors] = None,
    ) -> None:
        self.config = config or AppConfig()
        self.selectors = selectors or FacebookSelectors()
        self.cookie_store = CookieStore(self.config.site)
        self.detector = AuthStateDetector(self.config, self.cookie_store, selectors=self.selectors)
        self._session_factory = session_factory or launch_browser
        self._code_generator = code_generator or generate_code

    async def login(self, request: LoginRequest) -> AuthResult:
        cookies_file = request.resolve_cookies_file(self.config.cookies.path)
        # A launch failure propagates as-is: nothing was opened, nothing to clean up.
        session = await self._session_factory(self.config.browser)
        run = _LoginRun(self, session, request, cookies_file)
        try:
            return await run.execute()
        except Exception as e:
            await run.stage(LoginStage.FAILED)
            logger.error("fatal error: %s", e)
            await run.save_error_screenshot()
            raise
        finally:
            await run.abandon_pending()
            await session.close()


async def login_facebook(
    request: LoginRequest,
    config: Optional[AppConfig] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
    code_generator: Optional[CodeGenerator] = None,
) -> AuthResult:
    client = FacebookLoginClient(config, session_factory=session_factory, code_generator=code_generator)
    return await client.login(request)


class _LoginRun:
    """
    State of a single login invocation. Never shared between invocations.
    """

    def __init__(
        self,
        client: FacebookLoginClient,
        session: BrowserSession,
        request: LoginRequest,
        cookies_file: Optional[str],
    ) -> None:
        self.client = client
        self.config = client.config
        self.selectors = client.selectors
        self.cookie_store = client.cookie_store
        self.detector = client.detector
        self.session = session
        self.request = request
        self.cookies_file = cookies_file
        self.current: Optional[LoginStage] = None
        self._step_counter = 0
        self._pending: list[asyncio.Future] = []

    # --- flow --------------------------------------------------------------------------------

    async def execute(self) -> AuthResult:
        await self.stage(LoginStage.TRY_PERSISTED_COOKIES)
        persisted = self._load_persisted_cookies()
        result = await self._try_cookies("file", persisted)
        if result is not None:
            logger.info("authenticated via cookies file")
            return result
        if persisted:
            logger.warning("stored cookies invalid/expired; continuing with credentials")

        await self.stage(LoginStage.TRY_SUPPLIED_COOKIES)
        result = await self._try_cookies("provided", self._supplied_cookies())
        if result is not None:
            logger.info("authenticated via provided cookies")
            return result

        return await self._credential_login()

    async def _credential_login(self) -> AuthResult:
        t = self.config.timeouts
        r = self.config.retries
        s = self.selectors

        await self.stage(LoginStage.CREDENTIAL_LOGIN)
        logger.info("navigating to login")
        await self.session.navigate(self.config.site.login_url, wait_until="domcontentloaded", timeout_ms=t.nav)

        await self.stage(LoginStage.WELCOME_SCREEN)
        welcomed = await click_exact_text_once(self.session, s.welcome_text, selectors=s)
        logger.debug("welcome screen: %s", welcomed.value)
        if welcomed.found:
            logger.info('Clicked "I already have an account"')
            await sleep_ms(t.after_welcome)

        await self.stage(LoginStage.CREDENTIAL_ENTRY)
        logger.info("filling #%s", s.email_field_id)
        await self._fill(s.email_field_id, self.request.email)
        logger.info("filling #%s", s.password_field_id)
        await self._fill(s.password_field_id, self.request.password)

        logger.info('clicking "%s"', s.login_button_text)
        await self._click_text(s.login_button_text, r.login_button)
        try:
            await self.session.wait_for_navigation(timeout_ms=t.post_submit_nav)
        except Exception:
            logger.debug("no navigation after submitting credentials", exc_info=True)
        await sleep_ms(t.after_submit)

        await self.stage(LoginStage.TRY_ANOTHER_WAY)
        logger.info('clicking "%s"', s.try_another_way_text)
        await self._click_text(s.try_another_way_text, r.try_another_way)

        await self.stage(LoginStage.CHALLENGE_SELECT)
        branch = await self._race_challenge()
        logger.info("challenge select: %s", branch.value)
        if branch is ChallengeBranch.RADIO:
            logger.info('radio selected, clicking "%s"', s.continue_text)
            await self._click_text(s.continue_text, r.click, label=f'click "{s.continue_text}" after radio')

        await self.stage(LoginStage.TWO_FACTOR_ENTRY)
        await self._enter_two_factor_code()

        await self.stage(LoginStage.TRUST_DEVICE_PROMPT)
        saved = await click_if_present(self.session, s.save_browser_button, timeout_ms=t.save_prompt, label='click "Save"')
        if saved.found:
            logger.info('clicked "Save"')

        await self.stage(LoginStage.IDENTITY_CONFIRM)
        got_cookie = await self.cookie_store.wait_for_identity_cookie(
            self.session,
            total_ms=t.identity_cookie,
            step_ms=t.identity_cookie_step,
        )
        if not got_cookie:
            logger.info("%s cookie not set yet; trying checkpoint continue", self.config.site.identity_cookie)
            await self._click_text(
                s.continue_text,
                r.checkpoint_continue,
                label=f'click "{s.continue_text}" checkpoint',
            )
            await sleep_ms(t.after_checkpoint)

        await self.stage(LoginStage.VERIFY)
        verdict = await self.detector.check(self.session)
        if not verdict.authenticated:
            raise LoginFailedError("Login failed")

        result = await self._finish(verdict)
        logger.info("login complete for user %s", result.user_id)
        return result

    # --- cookie reuse ------------------------------------------------------------------------

    def _load_persisted_cookies(self) -> list[Cookie]:
        if not self.cookies_file:
            return []
        try:
            return self.cookie_store.load(self.cookies_file)
        except CookieSourceError as e:
            logger.warning("failed reading cookies file %s: %s", self.cookies_file, e)
            return []

    def _supplied_cookies(self) -> list[Cookie]:
        try:
            return self.cookie_store.from_source(cookie_source_from(self.request.existing_cookies))
        except CookieSourceError as e:
            logger.warning("ignoring provided cookies: %s", e)
            return []

    async def _try_cookies(self, label: str, cookies: Sequence[Cookie]) -> Optional[AuthResult]:
        if not cookies:
            return None
        try:
            logger.info("setting %s cookies", label)
            await self.cookie_store.apply(self.session, cookies)
            verdict = await self.detector.check(self.session)
            if verdict.authenticated:
                return await self._finish(verdict)
            logger.info("%s cookies did not authenticate the session", label)
            await self.cookie_store.discard(self.session)
        except Exception as e:
            logger.warning("%s cookies check failed: %s", label, e)
        return None

    async def _finish(self, verdict: AuthVerdict) -> AuthResult:
        await self.stage(LoginStage.PERSIST)
        cookies = await self.cookie_store.read_all(self.session)
        if self.cookies_file:
            logger.info("saving cookies to %s", self.cookies_file)
        self.cookie_store.persist(self.cookies_file, cookies)
        await self.stage(LoginStage.DONE)
        return AuthResult(
            authenticated=True,
            user_id=verdict.user_id,
            profile_name=verdict.profile_name,
            cookies=cookies,
        )

    # --- challenge handling ------------------------------------------------------------------

    async def _race_challenge(self) -> ChallengeBranch:
        """
        Start the radio selection and the direct code-field probe together; the first to finish picks the branch.
        """
        radio = asyncio.ensure_future(self._probe_auth_app_radio())
        code = asyncio.ensure_future(self._probe_code_field(self.config.timeouts.code_race))
        self._pending.extend([radio, code])

        done, _ = await asyncio.wait({radio, code}, return_when=asyncio.FIRST_COMPLETED)
        finished = [f.result() for f in (radio, code) if f in done]
        for branch in finished:
            if branch is not ChallengeBranch.NONE:
                return branch
        return ChallengeBranch.NONE

    async def _probe_auth_app_radio(self) -> ChallengeBranch:
        r = self.config.retries.radio
        logger.info("selecting radio by aria-label: %s", ", ".join(self.selectors.auth_app_radio_labels))
        outcome = await select_radio_by_aria_label(
            self.session,
            self.selectors.auth_app_radio_labels,
            attempts=r.attempts,
            delay_ms=r.delay_ms,
            timeout_ms=self.config.timeouts.short,
            label='select radio "Authentication app"',
        )
        return ChallengeBranch.RADIO if outcome.found else ChallengeBranch.NONE

    async def _probe_code_field(self, timeout_ms: int) -> ChallengeBranch:
        try:
            await self.session.wait_for_condition(
                scripts.SELECTOR_PRESENT,
                {"selector": self.selectors.code_input},
                timeout_ms=timeout_ms,
            )
        except Exception:
            return ChallengeBranch.NONE
        return ChallengeBranch.CODE

    async def _code_field_present(self) -> bool:
        await self._probe_code_field(self.config.timeouts.code_wait)
        try:
            return bool(await self.session.evaluate(scripts.SELECTOR_PRESENT, {"selector": self.selectors.code_input}))
        except Exception:
            logger.debug("code field probe failed", exc_info=True)
            return False

    async def _enter_two_factor_code(self) -> None:
        t = self.config.timeouts
        sel = self.selectors.code_input
        if not await self._code_field_present():
            return

        secret = self.request.two_fa_secret
        if not secret:
            # Proceeding without a code almost certainly fails verification; we still let it run its course.
            logger.warning("two-factor code requested but no secret was supplied; continuing without a code")
            return

        logger.info("filling 2FA code")
        code = self.client._code_generator(secret)
        await self.session.wait_for_selector(sel, timeout_ms=t.code_visible, visible=True)
        await self.step("two_factor_before_code_entry")

        matched = False
        attempts = self.config.retries.code_entry_attempts
        for attempt in range(1, attempts + 1):
            await self.session.click(sel, click_count=3)
            await self.session.press("Backspace")
            await self.session.type(sel, code, delay_ms=t.code_type_delay)
            if await self.session.input_value(sel) == code:
                matched = True
                break
            logger.debug("2FA code read-back mismatch (attempt %d/%d)", attempt, attempts)
            await sleep_ms(t.between_code_attempts)
        if not matched:
            logger.warning("2FA field never held code %s; continuing", mask_code(code))

        await self._click_text(
            self.selectors.continue_text,
            self.config.retries.click,
            label=f'click "{self.selectors.continue_text}" after code',
        )

    # --- helpers -----------------------------------------------------------------------------

    async def _fill(self, field_id: str, value: str) -> None:
        r = self.config.retries.fill
        await fill_field(
            self.session,
            field_id,
            value,
            attempts=r.attempts,
            delay_ms=r.delay_ms,
            timeout_ms=self.config.timeouts.short,
            type_delay_ms=self.config.timeouts.field_type_delay,
        )

    async def _click_text(self, text: str, policy: RetryPolicy, *, label: Optional[str] = None) -> ProbeOutcome:
        return await click_by_text(
            self.session,
            text,
            attempts=policy.attempts,
            delay_ms=policy.delay_ms,
            exact=True,
            timeout_ms=self.config.timeouts.short,
            selectors=self.selectors,
            label=label,
        )

    async def stage(self, stage: LoginStage) -> None:
        self.current = stage
        logger.debug("stage -> %s", stage.value)
        await self.step(stage.value)

    async def step(self, name: str) -> None:
        """
        If enabled, log step-by-step progress and save a step screenshot.
        """
        dbg = self.config.debug
        if not dbg.log_steps and not dbg.step_debug:
            return

        self._step_counter += 1
        safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name).strip("_")[:60] or "step"
        logger.info("Step %02d %s (url=%s)", self._step_counter, name, self.session.url)

        if not dbg.step_debug or self.session.closed:
            return
        path = Path(dbg.dir) / f"step_{self._step_counter:02d}_{safe}.png"
        try:
            await self.session.screenshot(str(path))
        except Exception:
            logger.debug("Failed to save step screenshot (%s).", path, exc_info=True)

    async def save_error_screenshot(self) -> None:
        path = self.config.debug.error_screenshot_path()
        try:
            await self.session.screenshot(str(path))
            logger.warning("saved %s", path)
        except Exception:
            logger.debug("Failed to save error screenshot.", exc_info=True)

    async def abandon_pending(self) -> None:
        """
        Drop work still in flight (the challenge race loser) before the session goes away.
        """
        pending = [f for f in self._pending if not f.done()]
        for f in pending:
            f.cancel()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()
