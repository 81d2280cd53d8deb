from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..config import AppConfig
from . import scripts
from .cookies import CookieStore
from .primitives import sleep_ms
from .selectors import FacebookSelectors
from .session import BrowserSession


logger = logging.getLogger(__name__)


class AuthSignal(str, Enum):
    """
    Evidence consulted by the detector, highest confidence first.
    """

    LOGIN_LIKE_PAGE = "login_like_page"
    PROFILE_BUTTON = "profile_button"
    IDENTITY_COOKIE = "identity_cookie"
    PROFILE_HEADING = "profile_heading"
    UI_AFFORDANCE = "ui_affordance"


@dataclass(frozen=True)
class SignalReading:
    signal: AuthSignal
    present: bool
    detail: Optional[str] = None


@dataclass
class AuthVerdict:
    authenticated: bool
    user_id: Optional[str] = None
    profile_name: Optional[str] = None
    signals: list[SignalReading] = field(default_factory=list)

    def reading(self, signal: AuthSignal) -> Optional[SignalReading]:
        for r in self.signals:
            if r.signal is signal:
                return r
        return None


@dataclass(frozen=True)
class UiAffordances:
    logout: bool = False
    settings: bool = False
    messages: bool = False
    friends: bool = False
    heading_text: Optional[str] = None

    @property
    def any(self) -> bool:
        return self.logout or self.settings or self.messages or self.friends or bool(self.heading_text)


class AuthStateDetector:
    """
    Decide whether a live session is logged in, and who it belongs to.

    The UI renders inconsistently across account states, so no single signal is trusted on its own:
    a login-like page is a fast negative; otherwise the profile affordance or the identity cookie must be
    present, and without a profile name a secondary UI check (or the cookie) has to confirm it.
    """

    def __init__(
        self,
        config: AppConfig,
        cookie_store: CookieStore,
        *,
        selectors: Optional[FacebookSelectors] = None,
    ) -> None:
        self.config = config
        self.cookie_store = cookie_store
        self.selectors = selectors or FacebookSelectors()

    async def check(self, session: BrowserSession) -> AuthVerdict:
        t = self.config.timeouts
        site = self.config.site
        signals: list[SignalReading] = []

        cookies = await self.cookie_store.read_all(session)
        logger.debug(
            "auth-check: cookie snapshot count=%d, names=[%s]",
            len(cookies),
            ", ".join(sorted(c.name for c in cookies)),
        )
        if session.url:
            logger.debug("auth-check: precheck url=%s", session.url)

        await self.goto_home(session)
        logger.debug("auth-check: landed on %s", session.url)

        login_like = await self.is_login_like(session)
        signals.append(SignalReading(AuthSignal.LOGIN_LIKE_PAGE, login_like, session.url))
        if login_like:
            return AuthVerdict(authenticated=False, signals=signals)

        has_profile_btn = await self.has_profile_button(session, timeout_ms=t.profile_button)
        signals.append(SignalReading(AuthSignal.PROFILE_BUTTON, has_profile_btn))
        identity = self.cookie_store.identity_cookie(cookies)
        signals.append(SignalReading(AuthSignal.IDENTITY_COOKIE, identity is not None, identity.value if identity else None))
        if not has_profile_btn and identity is None:
            return AuthVerdict(authenticated=False, signals=signals)
        logger.debug(
            "auth-check: hasProfileBtn=%s, %s=%s",
            has_profile_btn,
            site.identity_cookie,
            identity.value if identity else "null",
        )

        profile_name: Optional[str] = None
        if has_profile_btn:
            await self.open_profile(session)
            profile_name = await self.read_profile_heading(session, timeout_ms=t.profile_heading)
            signals.append(SignalReading(AuthSignal.PROFILE_HEADING, bool(profile_name), profile_name))

        if not profile_name:
            ui = await self.read_ui_affordances(session)
            signals.append(SignalReading(AuthSignal.UI_AFFORDANCE, ui.any, ui.heading_text))
            if not ui.any and identity is None:
                return AuthVerdict(authenticated=False, signals=signals)
            profile_name = ui.heading_text or profile_name

        return AuthVerdict(
            authenticated=True,
            user_id=identity.value if identity else None,
            profile_name=profile_name or None,
            signals=signals,
        )

    # --- individual signals ------------------------------------------------------------------

    async def goto_home(self, session: BrowserSession) -> None:
        try:
            await session.navigate(
                self.config.site.home_url,
                wait_until="domcontentloaded",
                timeout_ms=self.config.timeouts.home_nav,
            )
        except Exception as e:
            logger.warning("auth-check: goto home failed: %s", e)

    async def is_login_like(self, session: BrowserSession) -> bool:
        try:
            return bool(
                await session.evaluate(
                    scripts.IS_LOGIN_LIKE,
                    {
                        "form": self.selectors.login_form_selector,
                        "urlPattern": self.selectors.login_like_url_pattern,
                        "loginPath": self.selectors.login_path_pattern,
                    },
                )
            )
        except Exception:
            logger.debug("auth-check: login-like probe failed", exc_info=True)
            return False

    async def has_profile_button(self, session: BrowserSession, *, timeout_ms: int) -> bool:
        try:
            await session.wait_for_condition(
                scripts.SELECTOR_PRESENT,
                {"selector": self.selectors.profile_button},
                timeout_ms=timeout_ms,
            )
            return True
        except Exception:
            return False

    async def click_profile_button(self, session: BrowserSession) -> bool:
        t = self.config.timeouts
        try:
            if not await self.has_profile_button(session, timeout_ms=t.profile_click):
                return False
            clicked = await session.evaluate(scripts.CLICK_PROFILE_BUTTON, {"selector": self.selectors.profile_button})
            if not clicked:
                return False
        except Exception:
            logger.debug("auth-check: profile click failed", exc_info=True)
            return False

        try:
            await session.wait_for_condition(
                scripts.URL_MATCHES,
                {"pattern": self.selectors.profile_url_pattern},
                timeout_ms=t.profile_nav,
            )
        except Exception:
            logger.debug("auth-check: profile navigation not observed", exc_info=True)
        return True

    async def open_profile(self, session: BrowserSession) -> bool:
        attempts = self.config.retries.profile_click_attempts
        for i in range(1, attempts + 1):
            logger.info("auth-check: clicking Go to profile (%d/%d)", i, attempts)
            ok = await self.click_profile_button(session)
            logger.debug("auth-check: post-click url=%s", session.url)
            if ok:
                return True
            await sleep_ms(self.config.timeouts.between_profile_clicks)
        return False

    async def read_profile_heading(self, session: BrowserSession, *, timeout_ms: int) -> Optional[str]:
        try:
            handle = await session.wait_for_condition(
                scripts.HEADING_TEXT,
                {"selector": self.selectors.heading},
                timeout_ms=timeout_ms,
            )
            value = await handle.json_value()
        except Exception:
            return None
        if not value:
            return None
        return str(value).strip() or None

    async def read_ui_affordances(self, session: BrowserSession) -> UiAffordances:
        s = self.selectors
        try:
            raw = await session.evaluate(
                scripts.UI_AFFORDANCES,
                {
                    "heading": s.heading,
                    "logout": s.logout_link,
                    "settings": s.settings_link,
                    "messages": s.messages_link,
                    "friends": s.friends_link,
                },
            )
        except Exception:
            logger.debug("auth-check: UI affordance probe failed", exc_info=True)
            return UiAffordances()
        raw = raw or {}
        return UiAffordances(
            logout=bool(raw.get("logout")),
            settings=bool(raw.get("settings")),
            messages=bool(raw.get("messages")),
            friends=bool(raw.get("friends")),
            heading_text=raw.get("headingText") or None,
        )

