"""Action executors: live (Playwright page) and simulated (dev), same result shape."""
import logging
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from playwright.sync_api import Page

from tabpilot.actions import Click, Navigate, ParsedAction, Press, Type, parse
from tabpilot.core.errors import ActionError, ElementNotFoundError, NoActiveTargetError, UnsupportedActionError
from tabpilot.core.types import ActionResult

logger = logging.getLogger(__name__)

# Schemes whose URLs carry a non-null origin.
ORIGIN_SCHEMES = ("http", "https", "ws", "wss", "ftp")

PUSH_STATE_JS = """
(url) => {
  history.pushState({}, "", url);
  window.dispatchEvent(new PopStateEvent("popstate", { state: {} }));
  return window.location.href;
}
"""

CLICK_JS = "(el) => el.click()"

SET_VALUE_JS = "(el, text) => { el.value = text; }"

FOCUSED_ELEMENT_JS = "() => document.activeElement || document.body"

NAMED_KEY_CODES = {
    "Backspace": 8,
    "Tab": 9,
    "Enter": 13,
    "Shift": 16,
    "Control": 17,
    "Alt": 18,
    "Escape": 27,
    "Space": 32,
    "PageUp": 33,
    "PageDown": 34,
    "End": 35,
    "Home": 36,
    "ArrowLeft": 37,
    "ArrowUp": 38,
    "ArrowRight": 39,
    "ArrowDown": 40,
    "Delete": 46,
}


def is_absolute_url(url: str) -> bool:
    """True when url has a non-null origin. Raises ValueError if it cannot be parsed."""
    parts = urlsplit(url)
    # Accessing .port validates it.
    parts.port
    return parts.scheme.lower() in ORIGIN_SCHEMES and bool(parts.hostname)


def key_event_init(key: str) -> Dict[str, Any]:
    if len(key) == 1:
        upper = key.upper()
        code = f"Key{upper}"
        key_code = ord(upper)
    else:
        code = key
        key_code = NAMED_KEY_CODES.get(key, 0)
    return {"key": key, "code": code, "keyCode": key_code, "which": key_code, "bubbles": True}


class BaseExecutor:
    """Executor contract: execute() never raises, failures come back as ActionResult."""

    simulated = False

    def execute(self, parsed: ParsedAction, page: Optional[Page]) -> ActionResult:
        raise NotImplementedError

    def execute_code(self, code: str, page: Optional[Page]) -> ActionResult:
        try:
            parsed = parse(code)
        except UnsupportedActionError as e:
            logger.warning("Rejected action code %r: %s", code, e)
            return ActionResult.failure(e)
        return self.execute(parsed, page)


class LiveExecutor(BaseExecutor):
    """Apply actions to a real page through Playwright's sync API."""

    def __init__(self, wait_until: str = "load", timeout_ms: int = 30000):
        self.wait_until = wait_until
        self.timeout_ms = timeout_ms

    def execute(self, parsed: ParsedAction, page: Optional[Page]) -> ActionResult:
        logger.info("Executing: %s%s", parsed.verb, parsed.args)
        try:
            if page is None:
                raise NoActiveTargetError("No page context available")
            if isinstance(parsed, Navigate):
                data = self.navigate(page, parsed.url)
            elif isinstance(parsed, Click):
                data = self.click(page, parsed.selector)
            elif isinstance(parsed, Type):
                data = self.type_text(page, parsed.selector, parsed.text)
            elif isinstance(parsed, Press):
                data = self.press(page, parsed.key)
            else:
                raise UnsupportedActionError(repr(parsed))
        except ActionError as e:
            logger.warning("Action %s failed: %s", parsed.verb, e)
            return ActionResult.failure(e)
        except Exception as e:
            logger.exception("Action %s raised on the page", parsed.verb)
            return ActionResult(success=False, error=f"{type(e).__name__}: {e}", error_type=type(e).__name__)
        return ActionResult.ok(data)

    def navigate(self, page: Page, url: str) -> Dict[str, Any]:
        try:
            absolute = is_absolute_url(url)
        except ValueError:
            # Unparseable URL: hand the raw string to a full navigation and report it as degraded.
            logger.warning("Could not parse %r, falling back to full navigation", url)
            page.goto(url, wait_until=self.wait_until, timeout=self.timeout_ms)
            return {"url": url, "method": "fallback"}
        if absolute:
            page.goto(url, wait_until=self.wait_until, timeout=self.timeout_ms)
            current = page.url
        else:
            current = page.evaluate(PUSH_STATE_JS, url)
        return {"url": url, "currentUrl": current}

    def _resolve(self, page: Page, selector: str):
        element = page.query_selector(selector)
        if element is None:
            raise ElementNotFoundError(selector)
        return element

    def click(self, page: Page, selector: str) -> Dict[str, Any]:
        element = self._resolve(page, selector)
        element.evaluate(CLICK_JS)
        return {"selector": selector}

    def type_text(self, page: Page, selector: str, text: str) -> Dict[str, Any]:
        element = self._resolve(page, selector)
        element.focus()
        element.evaluate(SET_VALUE_JS, text)
        element.dispatch_event("input", {"bubbles": True})
        element.dispatch_event("change", {"bubbles": True})
        return {"selector": selector, "text": text}

    def press(self, page: Page, key: str) -> Dict[str, Any]:
        target = page.evaluate_handle(FOCUSED_ELEMENT_JS).as_element()
        target.dispatch_event("keydown", key_event_init(key))
        return {"key": key}


class SimulatedExecutor(BaseExecutor):
    """Dev executor: real side effects when a page is reachable, otherwise a fabricated result."""

    simulated = True

    def __init__(self, delay: float = 1.0, live: Optional[LiveExecutor] = None):
        self.delay = delay
        self.live = live or LiveExecutor()

    def execute(self, parsed: ParsedAction, page: Optional[Page]) -> ActionResult:
        if page is not None:
            return self.live.execute(parsed, page)
        time.sleep(self.delay)
        if isinstance(parsed, Navigate):
            data = {"url": parsed.url}
        elif isinstance(parsed, Click):
            data = {"selector": parsed.selector}
        elif isinstance(parsed, Type):
            data = {"selector": parsed.selector, "text": parsed.text}
        elif isinstance(parsed, Press):
            data = {"key": parsed.key}
        else:
            return ActionResult.failure(UnsupportedActionError(repr(parsed)))
        logger.info("Simulated %s%s", parsed.verb, parsed.args)
        return ActionResult.ok(data, simulated=True)


def build_executor(mode: str, simulated_delay: float = 1.0) -> BaseExecutor:
    if mode == "live":
        return LiveExecutor()
    if mode == "simulated":
        return SimulatedExecutor(delay=simulated_delay)
    raise ValueError(f"Unknown executor mode: {mode!r}")
