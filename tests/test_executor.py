import unittest
from unittest.mock import patch

from tabpilot.actions import Click, Navigate, Press, Type
from tabpilot.executor import (
    LiveExecutor,
    SimulatedExecutor,
    build_executor,
    is_absolute_url,
    key_event_init,
)

from support import FakePage


class LiveExecutorTestCase(unittest.TestCase):

    def setUp(self):
        self.page = FakePage(url="https://example.com/start")
        self.executor = LiveExecutor()

    def test_click_missing_element(self):
        result = self.executor.execute_code('click(".missing")', self.page)
        self.assertEqual(result.to_dict(), {
            "success": False,
            "error": "Element not found: .missing",
            "errorType": "ElementNotFoundError",
        })

    def test_type_sets_value_and_fires_events(self):
        field = self.page.add("#q")
        result = self.executor.execute_code('type("#q", "hello")', self.page)
        self.assertTrue(result.success)
        self.assertEqual(result.data, {"selector": "#q", "text": "hello"})
        self.assertEqual(field.value, "hello")
        self.assertEqual([e[0] for e in field.events], ["input", "change"])
        self.assertIs(self.page.focused, field)

    def test_click(self):
        button = self.page.add(".go")
        result = self.executor.execute(Click(".go"), self.page)
        self.assertEqual(result.to_dict(), {"success": True, "data": {"selector": ".go"}})
        self.assertEqual(button.clicks, 1)

    def test_navigate_absolute(self):
        result = self.executor.execute(Navigate("https://example.org/a"), self.page)
        self.assertEqual(self.page.gotos, ["https://example.org/a"])
        self.assertEqual(result.data, {"url": "https://example.org/a", "currentUrl": "https://example.org/a"})

    def test_navigate_relative_uses_push_state(self):
        result = self.executor.execute(Navigate("/path"), self.page)
        self.assertEqual(self.page.gotos, [])
        self.assertEqual(self.page.push_states, ["/path"])
        self.assertEqual(result.data["currentUrl"], "https://example.com/path")

    def test_navigate_unparseable_falls_back(self):
        result = self.executor.execute(Navigate("http://[::1"), self.page)
        self.assertTrue(result.success)
        self.assertEqual(result.data, {"url": "http://[::1", "method": "fallback"})
        self.assertEqual(self.page.gotos, ["http://[::1"])

    def test_press_dispatches_on_focused_element(self):
        field = self.page.add("#q")
        field.focus()
        result = self.executor.execute(Press("Enter"), self.page)
        self.assertEqual(result.data, {"key": "Enter"})
        self.assertEqual(field.events, [("keydown", key_event_init("Enter"))])

    def test_press_without_focus_goes_to_body(self):
        self.executor.execute(Press("a"), self.page)
        self.assertEqual(self.page.body.events[0][0], "keydown")

    def test_unsupported_code(self):
        result = self.executor.execute_code('scroll("down")', self.page)
        self.assertFalse(result.success)
        self.assertEqual(result.error, 'Unsupported action: scroll("down")')
        self.assertEqual(result.error_type, "UnsupportedActionError")

    def test_malformed_code(self):
        result = self.executor.execute_code('type("#q")', self.page)
        self.assertEqual(result.error_type, "MalformedArgumentsError")

    def test_no_page(self):
        result = self.executor.execute(Click(".go"), None)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "No page context available")
        self.assertEqual(result.error_type, "NoActiveTargetError")

    def test_page_exception_becomes_failure(self):
        self.page.add(".go")
        with patch.object(self.page, "query_selector", side_effect=RuntimeError("detached")):
            result = self.executor.execute(Click(".go"), self.page)
        self.assertFalse(result.success)
        self.assertEqual(result.error, "RuntimeError: detached")


class SimulatedExecutorTestCase(unittest.TestCase):

    def test_fabricates_results_without_page(self):
        executor = SimulatedExecutor(delay=0)
        result = executor.execute(Type("#q", "x"), None)
        self.assertEqual(result.to_dict(), {
            "success": True,
            "data": {"selector": "#q", "text": "x"},
            "simulated": True,
        })
        self.assertEqual(executor.execute(Navigate("/a"), None).data, {"url": "/a"})

    def test_delegates_to_live_with_page(self):
        page = FakePage()
        executor = SimulatedExecutor(delay=0)
        result = executor.execute_code('click(".missing")', page)
        self.assertEqual(result.error, "Element not found: .missing")
        self.assertFalse(result.simulated)

    def test_rejects_unsupported_code(self):
        result = SimulatedExecutor(delay=0).execute_code('hover(".a")', None)
        self.assertEqual(result.error_type, "UnsupportedActionError")


class HelpersTestCase(unittest.TestCase):

    def test_is_absolute_url(self):
        self.assertTrue(is_absolute_url("https://example.com/a"))
        self.assertFalse(is_absolute_url("/a"))
        self.assertFalse(is_absolute_url("about:blank"))
        with self.assertRaises(ValueError):
            is_absolute_url("http://example.com:99999")

    def test_key_event_init(self):
        self.assertEqual(key_event_init("a"), {"key": "a", "code": "KeyA", "keyCode": 65, "which": 65, "bubbles": True})
        self.assertEqual(key_event_init("Enter")["keyCode"], 13)
        self.assertEqual(key_event_init("F13")["keyCode"], 0)

    def test_build_executor(self):
        self.assertIsInstance(build_executor("live"), LiveExecutor)
        self.assertIsInstance(build_executor("simulated", simulated_delay=0), SimulatedExecutor)
        with self.assertRaises(ValueError):
            build_executor("remote")


if __name__ == '__main__':
    unittest.main()
