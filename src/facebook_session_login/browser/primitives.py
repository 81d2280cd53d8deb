from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from ..errors import FieldWriteError, WaitTimeoutError
from . import scripts
from .selectors import FacebookSelectors
from .session import BrowserSession


logger = logging.getLogger(__name__)
T = TypeVar("T")

_DEFAULT_SELECTORS = FacebookSelectors()


class ProbeOutcome(str, Enum):
    """
    Result of a best-effort step. Only FOUND means the action happened.
    """

    FOUND = "found"
    NOT_FOUND = "not_found"
    TIMED_OUT = "timed_out"

    @property
    def found(self) -> bool:
        return self is ProbeOutcome.FOUND


def _outcome_for(exc: BaseException) -> ProbeOutcome:
    return ProbeOutcome.TIMED_OUT if isinstance(exc, WaitTimeoutError) else ProbeOutcome.NOT_FOUND


async def sleep_ms(ms: int) -> None:
    await asyncio.sleep(max(0, ms) / 1000)


async def retry(
    action: Callable[[], Awaitable[T]],
    *,
    attempts: int = 5,
    delay_ms: int = 500,
    label: str = "task",
) -> T:
    """
    Run `action` up to `attempts` times, sequentially, sleeping `delay_ms` between failures.

    Returns the first successful result; re-raises the error of the final attempt.
    """
    attempts = max(1, int(attempts))
    last_exc: Exception
    for attempt in range(1, attempts + 1):
        try:
            logger.debug("%s: attempt %d/%d", label, attempt, attempts)
            out = await action()
            logger.debug("%s: success on attempt %d", label, attempt)
            return out
        except Exception as e:
            last_exc = e
            logger.log(
                logging.WARNING if attempt == attempts else logging.DEBUG,
                "%s: failed attempt %d - %s",
                label,
                attempt,
                e,
            )
            if attempt < attempts:
                await sleep_ms(delay_ms)

    raise last_exc


async def poll_until(
    check: Callable[[], Awaitable[T]],
    *,
    timeout_ms: int,
    step_ms: int,
    label: str = "condition",
) -> T:
    """
    Re-evaluate `check` every `step_ms` until it returns a truthy value or `timeout_ms` elapses.

    Raises WaitTimeoutError on timeout. Errors raised by `check` propagate.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + max(0, timeout_ms) / 1000
    while True:
        value = await check()
        if value:
            return value
        if loop.time() >= deadline:
            raise WaitTimeoutError(f"{label}: not met within {timeout_ms}ms", timeout_ms=timeout_ms)
        await sleep_ms(step_ms)


async def click_by_text(
    session: BrowserSession,
    text: str,
    *,
    attempts: int = 5,
    delay_ms: int = 250,
    exact: bool = True,
    timeout_ms: int = 6_000,
    selectors: FacebookSelectors = _DEFAULT_SELECTORS,
    label: Optional[str] = None,
) -> ProbeOutcome:
    """
    Best-effort click on the interactive element whose normalized text equals (or contains) `text`.

    Elements under a disabled ancestor are skipped; the click goes to the nearest button/link ancestor.
    A miss is logged and returned as an outcome, never raised.
    """
    label = label or f'click "{text}"'
    arg = {
        "text": text,
        "exact": bool(exact),
        "scan": selectors.clickable_scan_selector,
        "actionable": selectors.actionable_selector,
        "disabled": selectors.disabled_ancestor_selector,
    }

    async def _attempt() -> None:
        handle = await session.wait_for_condition(scripts.FIND_CLICKABLE_BY_TEXT, arg, timeout_ms=timeout_ms)
        element = handle.as_element()
        if element is None:
            raise LookupError(f"{label}: match is not an element")
        await element.click()

    try:
        await retry(_attempt, attempts=attempts, delay_ms=delay_ms, label=label)
    except Exception as e:
        outcome = _outcome_for(e)
        logger.warning("%s: not found, skipping (%s)", label, outcome.value)
        return outcome
    return ProbeOutcome.FOUND


async def select_radio_by_aria_label(
    session: BrowserSession,
    label_substrings: Sequence[str],
    *,
    attempts: int = 5,
    delay_ms: int = 250,
    timeout_ms: int = 6_000,
    label: str = "select radio",
) -> ProbeOutcome:
    """
    Best-effort selection of the radio whose accessible label contains all substrings (case-insensitive).

    Success requires the page to report a checked radio with a matching label after the click.
    """
    wants = [s.lower() for s in label_substrings]

    async def _attempt() -> None:
        handle = await session.wait_for_condition(scripts.FIND_RADIO_BY_LABEL, {"wants": wants}, timeout_ms=timeout_ms)
        element = handle.as_element()
        if element is None:
            raise LookupError(f"{label}: match is not an element")
        await element.click()
        await session.wait_for_condition(scripts.RADIO_CHECKED_WITH_LABEL, {"wants": wants}, timeout_ms=timeout_ms)

    try:
        await retry(_attempt, attempts=attempts, delay_ms=delay_ms, label=label)
    except Exception as e:
        outcome = _outcome_for(e)
        logger.warning("%s: not found, skipping (%s)", label, outcome.value)
        return outcome
    return ProbeOutcome.FOUND


async def click_exact_text_once(
    session: BrowserSession,
    text: str,
    *,
    selectors: FacebookSelectors = _DEFAULT_SELECTORS,
) -> ProbeOutcome:
    """
    Single DOM scan (no polling, no retry) for an exact normalized-text match; clicks it if present.
    """
    try:
        clicked = await session.evaluate(
            scripts.CLICK_EXACT_TEXT_ONCE,
            {"text": text, "scan": selectors.welcome_scan_selector, "actionable": selectors.actionable_selector},
        )
    except Exception:
        logger.debug('One-shot scan for "%s" failed.', text, exc_info=True)
        return ProbeOutcome.NOT_FOUND
    return ProbeOutcome.FOUND if clicked else ProbeOutcome.NOT_FOUND


async def click_if_present(
    session: BrowserSession,
    selector: str,
    *,
    timeout_ms: int,
    label: Optional[str] = None,
) -> ProbeOutcome:
    """
    Wait (bounded) for a visible element and click it; absence is not an error.
    """
    label = label or f"click {selector}"
    try:
        await session.wait_for_selector(selector, timeout_ms=timeout_ms, visible=True)
        await session.click(selector)
    except WaitTimeoutError:
        logger.debug("%s: not present", label)
        return ProbeOutcome.TIMED_OUT
    except Exception:
        logger.debug("%s: click failed", label, exc_info=True)
        return ProbeOutcome.NOT_FOUND
    return ProbeOutcome.FOUND


async def fill_field(
    session: BrowserSession,
    field_id: str,
    value: str,
    *,
    attempts: int = 3,
    delay_ms: int = 150,
    timeout_ms: int = 6_000,
    type_delay_ms: int = 10,
) -> None:
    """
    Set `#field_id` to `value` and verify the page sees it.

    Direct assignment (+ input/change events) first; if the read-back differs, select-all and type it as
    keystrokes. Raises FieldWriteError when neither strategy sticks.
    """
    selector = f"#{field_id}"
    label = f"fill {selector}"

    async def _attempt() -> None:
        await session.wait_for_selector(selector, timeout_ms=timeout_ms)
        await session.evaluate(scripts.SET_FIELD_VALUE, {"selector": selector, "value": value})
        if await session.input_value(selector) == value:
            return

        logger.debug("%s: direct assignment not observed; typing instead", label)
        await session.click(selector, click_count=3)
        await session.type(selector, value, delay_ms=type_delay_ms)
        if await session.input_value(selector) != value:
            raise FieldWriteError(f"failed to set {field_id}")

    try:
        await retry(_attempt, attempts=attempts, delay_ms=delay_ms, label=label)
    except FieldWriteError:
        raise
    except Exception as e:
        raise FieldWriteError(f"failed to set {field_id}: {e}") from e
