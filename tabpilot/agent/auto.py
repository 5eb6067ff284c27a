"""Auto mode: plan from instruction + page context, then execute the batch through the sequencer."""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from tabpilot import config
from tabpilot.agent.feedback import FeedbackController
from tabpilot.agent.sequencer import ExecutionSequencer
from tabpilot.core.bridge import DispatchBridge
from tabpilot.core.browser import PageTarget, TargetRegistry
from tabpilot.core.errors import PlannerError
from tabpilot.core.types import Action
from tabpilot.executor import build_executor
from tabpilot.planner import LLMPlanner
from tabpilot.storage import EntryType, MemoryStorage

logger = logging.getLogger(__name__)


@dataclass
class TurnResult:
    session_id: str
    content: str
    actions: List[Action] = field(default_factory=list)
    status: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


class BrowserAgent:
    """One session: instruction -> planner -> sequenced execution with feedback after every action."""

    def __init__(
        self,
        planner,
        bridge: DispatchBridge,
        storage=None,
        session_id: Optional[str] = None,
        inter_action_delay: Optional[float] = None,
    ):
        self.planner = planner
        self.bridge = bridge
        self.storage = storage or MemoryStorage()
        self.session_id = session_id or str(uuid.uuid4())
        if inter_action_delay is None:
            inter_action_delay = config.get_inter_action_delay()
        self.feedback = FeedbackController(planner, self.storage, self.session_id)
        self.sequencer = ExecutionSequencer(bridge, self.feedback, inter_action_delay=inter_action_delay)

    async def _context(self) -> Dict[str, Any]:
        session = await self.storage.get_or_create_session(self.session_id)
        return session.context

    async def handle_instruction(self, instruction: str) -> TurnResult:
        """Run one turn. Planner failures raise PlannerError after execution has halted."""
        context = await self._context()
        context.setdefault("messages", []).append({"role": "user", "content": instruction})
        await self.storage.update_session_context(self.session_id, context)
        await self.storage.create_conversation(self.session_id, EntryType.USER, instruction)

        page = await self.bridge.page_content()
        planning_context = dict(context, page=page) if page else context
        try:
            response = await self.planner.plan(instruction, planning_context)
        except PlannerError as e:
            await self._record_failure(e)
            raise

        await self.feedback.store_batch(context, response.content, response.actions)
        if not self.sequencer.start(response.actions):
            return TurnResult(self.session_id, response.content, [], self.get_status())

        try:
            await self.sequencer.wait()
        except PlannerError as e:
            await self._record_failure(e)
            raise
        finally:
            await self.feedback.drain()

        return TurnResult(
            session_id=self.session_id,
            content=response.content,
            actions=list(self.sequencer.state.actions),
            status=self.get_status(),
            error=self.sequencer.last_error,
        )

    async def _record_failure(self, error: Exception) -> None:
        logger.error("Turn failed: %s", error)
        await self.storage.create_conversation(self.session_id, EntryType.SYSTEM, f"Turn failed: {error}")

    async def start_execution(self, actions: List[Union[Action, Dict[str, Any]]], content: str = "Manual batch") -> bool:
        """Control command: replace any running batch with `actions`."""
        batch = [a if isinstance(a, Action) else Action.from_dict(a) for a in actions]
        if not batch:
            return False
        await self.feedback.store_batch(await self._context(), content, batch)
        return self.sequencer.start(batch)

    def stop_execution(self) -> None:
        self.sequencer.stop()

    def get_status(self) -> Dict[str, Any]:
        return self.sequencer.get_status()


def open_target(
    registry: TargetRegistry,
    session_id: str,
    mode: Optional[str] = None,
    start_url: Optional[str] = None,
    headless: Optional[bool] = None,
) -> PageTarget:
    """Open the page for a session: a Chromium page in live mode, a page-less target when simulated."""
    mode = mode or config.get_executor_mode()
    executor = build_executor(mode, simulated_delay=config.get_simulated_delay())
    if mode == "live":
        return registry.start_browser_session(
            session_id,
            executor,
            headless=config.get_headless() if headless is None else headless,
            start_url=start_url,
        )
    return registry.register(PageTarget(session_id, executor).start())


def run_auto_agent(
    instruction: str,
    start_url: Optional[str] = None,
    session_id: Optional[str] = None,
    mode: Optional[str] = None,
    planner=None,
    headless: Optional[bool] = None,
) -> TurnResult:
    """Run a single turn end to end and close the page afterwards."""
    session_id = session_id or str(uuid.uuid4())
    registry = TargetRegistry()
    try:
        open_target(registry, session_id, mode=mode, start_url=start_url, headless=headless)
        agent = BrowserAgent(
            planner or LLMPlanner(),
            DispatchBridge(registry, timeout=config.get_dispatch_timeout()),
            session_id=session_id,
        )
        return asyncio.run(agent.handle_instruction(instruction))
    finally:
        registry.close_all()
