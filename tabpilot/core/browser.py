"""Page targets: one worker thread per page, plus the registry that tracks the active one."""
import asyncio
import logging
import queue
import sys
import threading
from concurrent.futures import Future
from typing import Any, Dict, Optional

from playwright.sync_api import sync_playwright

from tabpilot.core.content import handle_message
from tabpilot.core.errors import TransportError

logger = logging.getLogger(__name__)

_STOP = object()


def ensure_thread_event_loop() -> None:
    """On Windows, ensure worker threads have a Proactor event loop for Playwright subprocesses."""
    if not sys.platform.startswith("win"):
        return
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    if loop is None or "Proactor" not in loop.__class__.__name__:
        asyncio.set_event_loop(asyncio.ProactorEventLoop())  # type: ignore[attr-defined]


class PageTarget:
    """A page context reachable through a message channel.

    Sync Playwright objects are bound to the thread that created them, so the
    page is opened, used and closed on a dedicated worker thread. Callers talk
    to it only through send(), which returns a concurrent Future.
    """

    def __init__(self, target_id: str, executor, startup_timeout: float = 60.0):
        self.target_id = target_id
        self.executor = executor
        self.page = None
        self._startup_timeout = startup_timeout
        self._inbox: "queue.Queue[Any]" = queue.Queue()
        self._ready = threading.Event()
        self._startup_error: Optional[BaseException] = None
        self._closed = False
        self._thread = threading.Thread(target=self._run, name=f"page-{target_id}", daemon=True)

    def open_page(self):
        """Create the page on the worker thread. None means a page-less (simulated) target."""
        return None

    def close_page(self) -> None:
        pass

    def start(self) -> "PageTarget":
        self._thread.start()
        if not self._ready.wait(self._startup_timeout):
            raise TransportError(f"Target {self.target_id} did not start within {self._startup_timeout}s")
        if self._startup_error is not None:
            raise TransportError(f"Target {self.target_id} failed to start: {self._startup_error}")
        return self

    @property
    def is_alive(self) -> bool:
        return not self._closed and self._thread.is_alive()

    def send(self, message: Dict[str, Any]) -> Future:
        if not self.is_alive:
            raise TransportError(f"Target {self.target_id} is closed")
        future: Future = Future()
        self._inbox.put((message, future))
        return future

    def close(self, timeout: float = 10.0) -> None:
        if self._closed:
            return
        self._closed = True
        self._inbox.put(_STOP)
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def _run(self) -> None:
        ensure_thread_event_loop()
        try:
            self.page = self.open_page()
        except Exception as e:
            logger.exception("Failed to open page for target %s", self.target_id)
            self._startup_error = e
            self._closed = True
            self._ready.set()
            return
        self._ready.set()
        try:
            while True:
                item = self._inbox.get()
                if item is _STOP:
                    break
                message, future = item
                if not future.set_running_or_notify_cancel():
                    continue
                try:
                    response = handle_message(message, self.executor, self.page)
                except Exception as e:
                    logger.exception("Target %s crashed while handling %s", self.target_id, message)
                    future.set_exception(TransportError(f"{type(e).__name__}: {e}"))
                else:
                    future.set_result(response)
        finally:
            self._drain()
            try:
                self.close_page()
            except Exception:
                logger.exception("Error while closing page for target %s", self.target_id)

    def _drain(self) -> None:
        while True:
            try:
                item = self._inbox.get_nowait()
            except queue.Empty:
                return
            if item is _STOP:
                continue
            _, future = item
            if future.set_running_or_notify_cancel():
                future.set_exception(TransportError(f"Target {self.target_id} closed before delivery"))


class BrowserTarget(PageTarget):
    """A headed or headless Chromium page driven by Playwright's sync API."""

    def __init__(
        self,
        target_id: str,
        executor,
        headless: bool = False,
        slow_mo_ms: int = 150,
        start_url: Optional[str] = None,
        startup_timeout: float = 60.0,
    ):
        super().__init__(target_id, executor, startup_timeout=startup_timeout)
        self.headless = headless
        self.slow_mo_ms = slow_mo_ms
        self.start_url = start_url
        self._playwright = None
        self._browser = None

    def open_page(self):
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self.headless, slow_mo=self.slow_mo_ms)
        context = self._browser.new_context(viewport={"width": 1280, "height": 800})
        page = context.new_page()
        if self.start_url:
            page.goto(self.start_url, wait_until="domcontentloaded")
        return page

    def close_page(self) -> None:
        try:
            if self._browser is not None:
                self._browser.close()
        finally:
            if self._playwright is not None:
                self._playwright.stop()
            self._browser = None
            self._playwright = None
            self.page = None


class TargetRegistry:
    """Tracks page targets by id and which one is active."""

    def __init__(self):
        self._targets: Dict[str, PageTarget] = {}
        self._active_id: Optional[str] = None

    def register(self, target: PageTarget, activate: bool = True) -> PageTarget:
        previous = self._targets.get(target.target_id)
        if previous is not None and previous is not target:
            previous.close()
        self._targets[target.target_id] = target
        if activate or self._active_id is None:
            self._active_id = target.target_id
        return target

    def activate(self, target_id: str) -> None:
        if target_id not in self._targets:
            raise KeyError(f"Unknown target: {target_id}")
        self._active_id = target_id

    def get(self, target_id: str) -> Optional[PageTarget]:
        return self._targets.get(target_id)

    def active(self) -> Optional[PageTarget]:
        """The active target, or None if there is none or it has gone away."""
        if self._active_id is None:
            return None
        target = self._targets.get(self._active_id)
        if target is None or not target.is_alive:
            return None
        return target

    def start_browser_session(self, session_id: str, executor, **kwargs) -> BrowserTarget:
        existing = self._targets.get(session_id)
        if isinstance(existing, BrowserTarget) and existing.is_alive:
            self._active_id = session_id
            return existing
        target = BrowserTarget(session_id, executor, **kwargs)
        target.start()
        self.register(target)
        return target

    def stop_browser_session(self, session_id: str) -> None:
        target = self._targets.pop(session_id, None)
        if target is not None:
            target.close()
        if self._active_id == session_id:
            self._active_id = None

    def close_all(self) -> None:
        for target_id in list(self._targets):
            self.stop_browser_session(target_id)
