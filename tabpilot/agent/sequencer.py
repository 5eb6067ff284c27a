"""Execution sequencer: runs a batch of actions strictly one at a time and stops on the first failure."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from tabpilot.agent.feedback import Directive, PassiveFeedback
from tabpilot.core.types import Action, ActionResult, ActionStatus

logger = logging.getLogger(__name__)

ProgressListener = Callable[[Dict[str, Any]], None]


@dataclass
class ExecutionState:
    running: bool = False
    actions: List[Action] = field(default_factory=list)
    current_index: int = -1

    def reset(self) -> None:
        self.running = False
        self.actions = []
        self.current_index = -1

    @property
    def current(self) -> Optional[Action]:
        if 0 <= self.current_index < len(self.actions):
            return self.actions[self.current_index]
        return None

    def pending(self) -> int:
        """Queued actions after the current one."""
        return max(len(self.actions) - self.current_index - 1, 0)


class ExecutionSequencer:
    """Owns one ExecutionState; all mutation goes through start/advance/stop/on_failure."""

    def __init__(self, bridge, feedback=None, inter_action_delay: float = 0.5):
        self.bridge = bridge
        self.feedback = feedback or PassiveFeedback()
        self.inter_action_delay = inter_action_delay
        self.state = ExecutionState()
        self.last_error: Optional[str] = None
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[ProgressListener] = []

    def subscribe(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    def _emit(self, event: Dict[str, Any]) -> None:
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Progress listener failed on %s", event.get("type"))

    def start(self, actions: List[Action]) -> bool:
        """Replace any batch with `actions` and start at index 0. Empty batches are ignored."""
        if not actions:
            logger.info("start() called with no actions; ignoring")
            return False
        if self.state.running:
            logger.info("Replacing running batch (%d actions)", len(self.state.actions))
        self._generation += 1
        self.state.reset()
        self.state.actions = list(actions)
        self.state.current_index = 0
        self.state.running = True
        self.last_error = None
        previous = self._task if self._task is not None and not self._task.done() else None
        self._task = asyncio.get_running_loop().create_task(self._drive(self._generation, previous))
        self._task.add_done_callback(self._batch_done)
        return True

    def stop(self) -> None:
        """Cooperative stop: no further dispatch; the in-flight action finishes but never advances."""
        if self.state.running:
            logger.info("Stopping execution at index %d", self.state.current_index)
        self.state.running = False

    def enqueue(self, actions: List[Action]) -> None:
        self.state.actions.extend(actions)

    def advance(self) -> bool:
        """Move to the next action. Returns False (and stops) when the batch is exhausted."""
        if self.state.current_index + 1 < len(self.state.actions):
            self.state.current_index += 1
            return True
        logger.info("Batch completed (%d actions)", len(self.state.actions))
        self.state.running = False
        return False

    def on_failure(self, result: ActionResult) -> None:
        self.state.running = False
        self.last_error = result.error
        logger.warning(
            "Halting at action %d: %s", self.state.current_index, result.error
        )

    def get_status(self) -> Dict[str, Any]:
        current = self.state.current
        return {
            "running": self.state.running,
            "currentAction": current.to_dict() if current is not None else None,
            "error": self.last_error,
            "progress": {
                "total": len(self.state.actions),
                "completed": sum(1 for a in self.state.actions if a.status == ActionStatus.COMPLETED),
                "failed": sum(1 for a in self.state.actions if a.status == ActionStatus.FAILED),
            },
        }

    @property
    def is_running(self) -> bool:
        return self.state.running

    async def wait(self) -> None:
        """Wait for the current batch to halt. Re-raises turn-level errors such as planner failures."""
        while self._task is not None:
            task = self._task
            await task
            if task is self._task:
                return

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.state.running

    async def _drive(self, generation: int, previous: Optional[asyncio.Task] = None) -> None:
        if previous is not None:
            # The replaced batch may still have an action in flight; never overlap two.
            await asyncio.wait([previous])
        try:
            while self._is_current(generation):
                await self._step(generation)
        except Exception as e:
            if generation == self._generation:
                self.state.running = False
                self.last_error = str(e)
            raise

    def _batch_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Batch ended with %s: %s", type(error).__name__, error)

    async def _step(self, generation: int) -> None:
        index = self.state.current_index
        action = self.state.actions[index]
        action.begin()
        await self.feedback.on_dispatch(action)
        self._emit({"type": "actionStarted", "actionIndex": index, "action": action.to_dict()})

        result = await self.bridge.dispatch(action)
        self._emit({"type": "actionResult", "actionIndex": index, "action": action.to_dict(), "result": result.to_dict()})

        if not self._is_current(generation):
            logger.info("Late result for %s recorded; batch was stopped or replaced", action.id)
            await self.feedback.on_discarded(action, result)
            return

        directive: Directive = await self.feedback.on_result(action, result, pending=self.state.pending())
        if generation != self._generation:
            logger.info("Result for %s arrived after its batch was replaced; not applied", action.id)
            return
        if not result.success:
            self.on_failure(result)
            return
        if not self._is_current(generation):
            if directive.actions:
                logger.info("Dropping %d follow-up actions for a stopped batch", len(directive.actions))
            return
        if directive.is_halt:
            logger.info("Halting: %s", directive.reason)
            self.state.running = False
            return
        if directive.actions:
            self.enqueue(directive.actions)
        if self.advance() and self.inter_action_delay > 0:
            await asyncio.sleep(self.inter_action_delay)
