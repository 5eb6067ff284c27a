import asyncio
import unittest

from tabpilot.agent.feedback import PassiveFeedback
from tabpilot.agent.sequencer import ExecutionSequencer, ExecutionState
from tabpilot.core.bridge import DispatchBridge
from tabpilot.core.browser import TargetRegistry
from tabpilot.core.errors import PlannerError
from tabpilot.core.types import Action, ActionResult, ActionStatus
from tabpilot.executor import LiveExecutor

from support import FakePageTarget, ScriptedBridge


def make_batch(n, prefix="a"):
    return [Action(f"{prefix}{i}", f'click(".{prefix}{i}")') for i in range(1, n + 1)]


class FailingFeedback(PassiveFeedback):
    """Raises a planner fault for one action once released."""

    def __init__(self, action_id):
        self.action_id = action_id
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def on_result(self, action, result, pending=0):
        if action.id != self.action_id:
            return await super().on_result(action, result, pending)
        action.finish(result)
        self.entered.set()
        await self.gate.wait()
        raise PlannerError("Failed to process feedback: down")


class ExecutionSequencerTestCase(unittest.IsolatedAsyncioTestCase):

    async def test_runs_batch_in_order(self):
        bridge = ScriptedBridge()
        sequencer = ExecutionSequencer(bridge, inter_action_delay=0)
        batch = make_batch(3)
        self.assertTrue(sequencer.start(batch))
        await sequencer.wait()
        self.assertEqual(bridge.dispatched, ["a1", "a2", "a3"])
        self.assertTrue(all(a.status == ActionStatus.COMPLETED for a in batch))
        status = sequencer.get_status()
        self.assertFalse(status["running"])
        self.assertEqual(status["progress"], {"total": 3, "completed": 3, "failed": 0})

    async def test_first_failure_halts(self):
        """A failure at action k means exactly k dispatches and the index stays on it"""
        bridge = ScriptedBridge({"a3": ActionResult.failure("Element not found: .a3")})
        sequencer = ExecutionSequencer(bridge, inter_action_delay=0)
        batch = make_batch(5)
        sequencer.start(batch)
        await sequencer.wait()
        self.assertEqual(bridge.dispatched, ["a1", "a2", "a3"])
        self.assertEqual(sequencer.state.current_index, 2)
        self.assertFalse(sequencer.is_running)
        self.assertEqual(sequencer.last_error, "Element not found: .a3")
        self.assertEqual(batch[2].status, ActionStatus.FAILED)
        self.assertEqual(batch[2].error, "Element not found: .a3")
        self.assertEqual([a.status for a in batch[3:]], [ActionStatus.QUEUED, ActionStatus.QUEUED])

    async def test_navigate_then_missing_click(self):
        registry = TargetRegistry()
        registry.register(FakePageTarget("tab-1", LiveExecutor()).start())
        try:
            sequencer = ExecutionSequencer(DispatchBridge(registry, timeout=5), inter_action_delay=0)
            sequencer.start([
                Action("a1", 'navigate("https://example.com")'),
                Action("a2", 'click(".go")'),
            ])
            await sequencer.wait()
        finally:
            registry.close_all()
        status = sequencer.get_status()
        self.assertFalse(status["running"])
        self.assertEqual(status["progress"], {"total": 2, "completed": 1, "failed": 1})
        self.assertEqual(status["currentAction"]["id"], "a2")
        self.assertEqual(status["currentAction"]["error"], "Element not found: .go")

    async def test_stop_while_in_flight(self):
        bridge = ScriptedBridge()
        bridge.hold("a2")
        sequencer = ExecutionSequencer(bridge, inter_action_delay=0)
        batch = make_batch(5)
        sequencer.start(batch)
        await bridge.entered["a2"].wait()
        sequencer.stop()
        self.assertFalse(sequencer.is_running)
        bridge.release("a2")
        await sequencer.wait()
        self.assertEqual(bridge.dispatched, ["a1", "a2"])
        self.assertFalse(sequencer.is_running)
        self.assertEqual(sequencer.state.current_index, 1)
        # The late result is still recorded on the action.
        self.assertEqual(batch[1].status, ActionStatus.COMPLETED)
        self.assertEqual(batch[2].status, ActionStatus.QUEUED)

    async def test_empty_start_is_ignored(self):
        sequencer = ExecutionSequencer(ScriptedBridge(), inter_action_delay=0)
        before = sequencer.get_status()
        self.assertFalse(sequencer.start([]))
        self.assertEqual(sequencer.get_status(), before)
        self.assertEqual(before, {
            "running": False,
            "currentAction": None,
            "error": None,
            "progress": {"total": 0, "completed": 0, "failed": 0},
        })

    async def test_status_is_read_only(self):
        bridge = ScriptedBridge()
        bridge.hold("a1")
        sequencer = ExecutionSequencer(bridge, inter_action_delay=0)
        sequencer.start(make_batch(2))
        await bridge.entered["a1"].wait()
        first = sequencer.get_status()
        self.assertEqual(sequencer.get_status(), first)
        self.assertTrue(first["running"])
        self.assertEqual(first["currentAction"]["status"], "in_progress")
        bridge.release("a1")
        await sequencer.wait()

    async def test_replacing_a_running_batch(self):
        bridge = ScriptedBridge()
        bridge.hold("a2")
        sequencer = ExecutionSequencer(bridge, inter_action_delay=0)
        old = make_batch(3)
        sequencer.start(old)
        await bridge.entered["a2"].wait()

        new = make_batch(2, prefix="b")
        self.assertTrue(sequencer.start(new))
        self.assertEqual(sequencer.state.current_index, 0)
        self.assertIs(sequencer.state.current, new[0])
        # b1 must not be dispatched while a2 is still in flight.
        self.assertEqual(bridge.dispatched, ["a1", "a2"])

        bridge.release("a2")
        await sequencer.wait()
        self.assertEqual(bridge.dispatched, ["a1", "a2", "b1", "b2"])
        self.assertEqual(old[1].status, ActionStatus.COMPLETED)
        self.assertEqual(old[2].status, ActionStatus.QUEUED)
        self.assertEqual(sequencer.get_status()["progress"], {"total": 2, "completed": 2, "failed": 0})

    async def test_progress_events(self):
        events = []
        sequencer = ExecutionSequencer(ScriptedBridge(), inter_action_delay=0)
        sequencer.subscribe(events.append)
        sequencer.start(make_batch(2))
        await sequencer.wait()
        self.assertEqual(
            [(e["type"], e["actionIndex"]) for e in events],
            [("actionStarted", 0), ("actionResult", 0), ("actionStarted", 1), ("actionResult", 1)],
        )
        self.assertEqual(events[1]["result"], {"success": True, "data": {"id": "a1"}})

    async def test_planner_fault_recorded_without_waiter(self):
        feedback = FailingFeedback("a1")
        feedback.gate.set()
        sequencer = ExecutionSequencer(ScriptedBridge(), feedback, inter_action_delay=0)
        with self.assertLogs("tabpilot.agent.sequencer", level="ERROR") as logs:
            sequencer.start(make_batch(3))
            while sequencer.is_running:
                await asyncio.sleep(0)
            await asyncio.sleep(0)
            await asyncio.sleep(0)
        self.assertEqual(sequencer.last_error, "Failed to process feedback: down")
        self.assertEqual(sequencer.get_status()["error"], "Failed to process feedback: down")
        self.assertIn("PlannerError", logs.output[-1])
        with self.assertRaises(PlannerError):
            await sequencer.wait()

    async def test_planner_fault_of_replaced_batch_is_logged_only(self):
        feedback = FailingFeedback("a1")
        bridge = ScriptedBridge()
        sequencer = ExecutionSequencer(bridge, feedback, inter_action_delay=0)
        sequencer.start(make_batch(1))
        await feedback.entered.wait()
        sequencer.start(make_batch(2, prefix="b"))
        with self.assertLogs("tabpilot.agent.sequencer", level="ERROR") as logs:
            feedback.gate.set()
            await sequencer.wait()
        self.assertEqual(bridge.dispatched, ["a1", "b1", "b2"])
        self.assertIsNone(sequencer.get_status()["error"])
        self.assertEqual(sequencer.get_status()["progress"]["completed"], 2)
        self.assertTrue(any("Failed to process feedback: down" in line for line in logs.output))

    async def test_failing_listener_does_not_strand_action(self):
        def broken(event):
            raise RuntimeError("listener down")

        sequencer = ExecutionSequencer(ScriptedBridge(), inter_action_delay=0)
        sequencer.subscribe(broken)
        batch = make_batch(2)
        with self.assertLogs("tabpilot.agent.sequencer", level="ERROR"):
            sequencer.start(batch)
            await sequencer.wait()
        self.assertEqual([a.status for a in batch], [ActionStatus.COMPLETED, ActionStatus.COMPLETED])
        self.assertFalse(sequencer.is_running)


class ExecutionStateTestCase(unittest.TestCase):

    def test_pending_and_reset(self):
        state = ExecutionState(running=True, actions=make_batch(3), current_index=0)
        self.assertEqual(state.pending(), 2)
        state.current_index = 2
        self.assertEqual(state.pending(), 0)
        state.reset()
        self.assertEqual((state.running, state.actions, state.current_index), (False, [], -1))
        self.assertIsNone(state.current)


if __name__ == '__main__':
    unittest.main()
