from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from playwright.async_api import (
    Browser,
    BrowserContext,
    JSHandle,
    Page,
    Playwright,
    Route,
    TimeoutError as PlaywrightTimeout,
    async_playwright,
)

from ..config import BrowserConfig
from ..errors import BrowserLaunchError, WaitTimeoutError


logger = logging.getLogger(__name__)


class BrowserSession:
    """
    One Playwright browser + context + page, exposing only what the login flow needs.

    Timeouts from Playwright are surfaced as `WaitTimeoutError`; `close()` is idempotent and safe on a browser
    that already disconnected.
    """

    def __init__(
        self,
        *,
        playwright: Playwright,
        browser: Browser,
        context: BrowserContext,
        page: Page,
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._page = page
        self._closed = False

    @property
    def url(self) -> str:
        try:
            return self._page.url or ""
        except Exception:
            return ""

    @property
    def closed(self) -> bool:
        return self._closed

    async def navigate(self, url: str, *, wait_until: str = "domcontentloaded", timeout_ms: int = 30_000) -> None:
        try:
            await self._page.goto(url, wait_until=wait_until, timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise WaitTimeoutError(f"Navigation to {url} timed out after {timeout_ms}ms", timeout_ms=timeout_ms) from e

    async def wait_for_navigation(self, *, timeout_ms: int) -> None:
        try:
            await self._page.wait_for_event("framenavigated", timeout=timeout_ms)
            await self._page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise WaitTimeoutError(f"No navigation within {timeout_ms}ms", timeout_ms=timeout_ms) from e

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        return await self._page.evaluate(script, arg)

    async def wait_for_condition(self, script: str, arg: Any = None, *, timeout_ms: int) -> JSHandle:
        """
        Poll `script(arg)` in the page until it returns a truthy value; return a handle to that value.
        """
        try:
            return await self._page.wait_for_function(script, arg=arg, timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise WaitTimeoutError(f"Condition not met within {timeout_ms}ms", timeout_ms=timeout_ms) from e

    async def wait_for_selector(self, selector: str, *, timeout_ms: int, visible: bool = False) -> None:
        try:
            await self._page.wait_for_selector(
                selector,
                state="visible" if visible else "attached",
                timeout=timeout_ms,
            )
        except PlaywrightTimeout as e:
            raise WaitTimeoutError(f"Selector {selector!r} not found within {timeout_ms}ms", timeout_ms=timeout_ms) from e

    async def click(self, selector: str, *, click_count: int = 1) -> None:
        await self._page.click(selector, click_count=click_count)

    async def type(self, selector: str, text: str, *, delay_ms: int = 0) -> None:
        await self._page.type(selector, text, delay=delay_ms)

    async def press(self, key: str) -> None:
        await self._page.keyboard.press(key)

    async def input_value(self, selector: str) -> str:
        return await self._page.input_value(selector)

    async def screenshot(self, path: str) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        await self._page.screenshot(path=path)

    async def cookies(self, urls: Optional[Sequence[str]] = None) -> list[dict[str, Any]]:
        if urls:
            return list(await self._context.cookies(list(urls)))
        return list(await self._context.cookies())

    async def add_cookies(self, cookies: Sequence[dict[str, Any]]) -> None:
        await self._context.add_cookies(list(cookies))

    async def clear_cookies(self) -> None:
        await self._context.clear_cookies()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._browser.is_connected():
                await self._browser.close()
        except Exception:
            logger.debug("Failed to close browser (already gone?).", exc_info=True)
        try:
            await self._playwright.stop()
        except Exception:
            logger.debug("Failed to stop Playwright driver.", exc_info=True)


async def _launch_chromium(p: Playwright, cfg: BrowserConfig) -> Browser:
    launch_kwargs: dict[str, Any] = {
        "headless": cfg.headless,
        "args": list(cfg.args),
        "slow_mo": int(cfg.slow_mo_ms or 0),
    }
    if cfg.executable_path:
        launch_kwargs["executable_path"] = cfg.executable_path
        return await p.chromium.launch(**launch_kwargs)

    # Prefer Playwright's bundled Chromium, but fall back to a system-installed browser if the
    # cache doesn't have Playwright browsers available.
    try:
        return await p.chromium.launch(**launch_kwargs)
    except Exception as e:
        msg = str(e)
        if "Executable doesn't exist" not in msg:
            raise
        logger.warning("Playwright Chromium executable missing; falling back to system browser channel. (%s)", msg)

    try:
        return await p.chromium.launch(channel="chrome", **launch_kwargs)
    except Exception:
        return await p.chromium.launch(channel="msedge", **launch_kwargs)


def _context_kwargs(p: Playwright, cfg: BrowserConfig) -> dict[str, Any]:
    ctx_kwargs: dict[str, Any] = {}
    if cfg.device_name:
        descriptor = p.devices.get(cfg.device_name)
        if descriptor:
            ctx_kwargs.update(descriptor)
            logger.debug("Emulating device %s", cfg.device_name)
        else:
            logger.warning("Unknown device profile %r; using default context settings.", cfg.device_name)
    if cfg.viewport is not None:
        ctx_kwargs["viewport"] = {"width": cfg.viewport.width, "height": cfg.viewport.height}
    return ctx_kwargs


async def _install_request_blocking(context: BrowserContext, blocked: Sequence[str]) -> None:
    blocked_types = frozenset(blocked)

    async def _filter(route: Route) -> None:
        if route.request.resource_type in blocked_types:
            await route.abort()
        else:
            await route.continue_()

    await context.route("**/*", _filter)


async def launch_browser(cfg: BrowserConfig) -> BrowserSession:
    """
    Start Playwright, launch Chromium and open one emulated page.

    Raises BrowserLaunchError if no session could be produced; nothing is left running in that case.
    """
    logger.info("launching browser (headless=%s)", cfg.headless)
    p = await async_playwright().start()
    browser: Optional[Browser] = None
    try:
        browser = await _launch_chromium(p, cfg)
        context = await browser.new_context(**_context_kwargs(p, cfg))
        if cfg.block_requests:
            await _install_request_blocking(context, cfg.blocked_resource_types)
        page = await context.new_page()
    except Exception as e:
        if browser is not None:
            try:
                await browser.close()
            except Exception:
                logger.debug("Failed to close partially launched browser.", exc_info=True)
        await p.stop()
        raise BrowserLaunchError(f"Failed to launch browser: {e}") from e

    return BrowserSession(playwright=p, browser=browser, context=context, page=page)
