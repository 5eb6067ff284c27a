"""Test doubles: a fake Playwright page and a controllable bridge."""
import asyncio
from typing import Dict, List, Optional
from urllib.parse import urljoin

from tabpilot.core.browser import PageTarget
from tabpilot.core.types import ActionResult, ActionStatus
from tabpilot.executor import CLICK_JS, FOCUSED_ELEMENT_JS, PUSH_STATE_JS, SET_VALUE_JS
from tabpilot.storage import MemoryStorage


class FakeElement:
    def __init__(self, page: "FakePage", selector: str, value: str = ""):
        self.page = page
        self.selector = selector
        self.value = value
        self.clicks = 0
        self.events: List[tuple] = []

    def focus(self):
        self.page.focused = self

    def as_element(self):
        return self

    def evaluate(self, expression, arg=None):
        if expression == CLICK_JS:
            self.clicks += 1
        elif expression == SET_VALUE_JS:
            self.value = arg
        else:
            raise AssertionError(f"unexpected script: {expression}")

    def dispatch_event(self, type, event_init=None):
        self.events.append((type, event_init))


class FakePage:
    """Just enough of playwright.sync_api.Page for the executor and snapshot code."""

    def __init__(self, url: str = "https://example.com/", title: str = "Example", text: str = "Hello world"):
        self.url = url
        self._title = title
        self._text = text
        self.elements: Dict[str, FakeElement] = {}
        self.body = FakeElement(self, "body")
        self.focused: Optional[FakeElement] = None
        self.gotos: List[str] = []
        self.push_states: List[str] = []

    def add(self, selector: str, value: str = "") -> FakeElement:
        element = FakeElement(self, selector, value)
        self.elements[selector] = element
        return element

    def goto(self, url, wait_until=None, timeout=None):
        self.gotos.append(url)
        self.url = url

    def evaluate(self, expression, arg=None):
        if expression == PUSH_STATE_JS:
            self.push_states.append(arg)
            self.url = urljoin(self.url, arg)
            return self.url
        raise AssertionError(f"unexpected script: {expression}")

    def evaluate_handle(self, expression):
        assert expression == FOCUSED_ELEMENT_JS
        return self.focused or self.body

    def query_selector(self, selector):
        return self.elements.get(selector)

    def title(self):
        return self._title

    def inner_text(self, selector):
        assert selector == "body"
        return self._text


class FakePageTarget(PageTarget):
    """A worker-thread target whose page is a FakePage."""

    def __init__(self, target_id, executor, page: Optional[FakePage] = None):
        super().__init__(target_id, executor, startup_timeout=5)
        self.fake_page = page or FakePage()

    def open_page(self):
        return self.fake_page


class ScriptedBridge:
    """Bridge stand-in: returns queued results, or holds a dispatch open until released."""

    def __init__(self, results: Optional[Dict[str, ActionResult]] = None):
        self.results = results or {}
        self.dispatched: List[str] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.entered: Dict[str, asyncio.Event] = {}

    def hold(self, action_id: str) -> None:
        self.gates[action_id] = asyncio.Event()
        self.entered[action_id] = asyncio.Event()

    def release(self, action_id: str) -> None:
        self.gates[action_id].set()

    async def dispatch(self, action):
        self.dispatched.append(action.id)
        if action.id in self.gates:
            self.entered[action.id].set()
            await self.gates[action.id].wait()
        return self.results.get(action.id, ActionResult.ok({"id": action.id}))

    async def page_content(self):
        return None


class GatedStorage(MemoryStorage):
    """MemoryStorage whose failed-status write blocks until released."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def update_action_status(self, key, status, error=None):
        if status == ActionStatus.FAILED:
            self.entered.set()
            await self.gate.wait()
        return await super().update_action_status(key, status, error)
