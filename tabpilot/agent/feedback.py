"""Feedback loop: turns each action result into Advance, RequestMore or Halt."""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from tabpilot.core.types import Action, ActionResult
from tabpilot.storage import EntryType

logger = logging.getLogger(__name__)

ADVANCE = "advance"
REQUEST_MORE = "request_more"
HALT = "halt"


@dataclass
class Directive:
    kind: str
    actions: List[Action] = field(default_factory=list)
    context: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None

    @classmethod
    def advance(cls, actions: Optional[List[Action]] = None) -> "Directive":
        return cls(ADVANCE, actions=list(actions or []))

    @classmethod
    def request_more(cls, context: Dict[str, Any]) -> "Directive":
        return cls(REQUEST_MORE, context=context)

    @classmethod
    def halt(cls, reason: str) -> "Directive":
        return cls(HALT, reason=reason)

    @property
    def is_halt(self) -> bool:
        return self.kind == HALT


def describe_result(action: Action, result: ActionResult) -> str:
    if result.success:
        return f"Successfully executed action: {action.id}\nResult: {json.dumps(result.data)}"
    return f"Failed to execute action: {action.id}\nError: {result.error}"


class PassiveFeedback:
    """Marks actions and continues through the batch; no planner, no storage."""

    async def on_dispatch(self, action: Action) -> None:
        pass

    async def on_result(self, action: Action, result: ActionResult, pending: int = 0) -> Directive:
        action.finish(result)
        if not result.success:
            return Directive.halt(result.error or "error")
        return Directive.advance()

    async def on_discarded(self, action: Action, result: ActionResult) -> None:
        action.finish(result)


class FeedbackController:
    """Records every result for the session and asks the planner how to continue."""

    def __init__(self, planner, storage, session_id: str):
        self.planner = planner
        self.storage = storage
        self.session_id = session_id
        self._notifications: Set[asyncio.Task] = set()

    async def _context(self) -> Dict[str, Any]:
        session = await self.storage.get_or_create_session(self.session_id)
        return session.context

    async def _persist(self, action: Action) -> None:
        if action.key is not None:
            await self.storage.update_action_status(action.key, action.status, action.error)

    async def _record(self, context: Dict[str, Any], content: str) -> None:
        await self.storage.create_conversation(self.session_id, EntryType.SYSTEM, content)
        context.setdefault("messages", []).append({"role": "system", "content": content})
        await self.storage.update_session_context(self.session_id, context)

    async def store_batch(self, context: Dict[str, Any], content: str, actions: List[Action]) -> None:
        """Persist a planner batch as queued actions plus an agent entry."""
        for action in actions:
            await self.storage.create_action(action)
        keys = [a.key for a in actions if a.key is not None]
        await self.storage.create_conversation(self.session_id, EntryType.AGENT, content, keys)
        context.setdefault("messages", []).append(
            {"role": "assistant", "content": content, "actions": [a.to_dict() for a in actions]}
        )
        await self.storage.update_session_context(self.session_id, context)

    async def on_dispatch(self, action: Action) -> None:
        await self._persist(action)

    async def on_discarded(self, action: Action, result: ActionResult) -> None:
        action.finish(result)
        await self._persist(action)
        logger.info("Recorded late %s result for %s", action.status.value, action.id)

    async def on_result(self, action: Action, result: ActionResult, pending: int = 0) -> Directive:
        action.finish(result)
        await self._persist(action)
        context = await self._context()
        await self._record(context, describe_result(action, result))

        if not result.success:
            self._notify_failure(action, result, context)
            return Directive.halt(result.error or "error")

        return await self.resolve(Directive.request_more(context), action, result, pending)

    async def resolve(self, directive: Directive, action: Action, result: ActionResult, pending: int) -> Directive:
        """Ask the planner for a continuation. Planner errors propagate and end the turn."""
        if directive.kind != REQUEST_MORE:
            return directive
        context = directive.context or {}
        response = await self.planner.feedback(action.id, True, result.data, None, context)
        if response.actions:
            await self.store_batch(context, response.content, response.actions)
            logger.info("Planner queued %d follow-up actions", len(response.actions))
            return Directive.advance(response.actions)
        if pending:
            return Directive.advance()
        logger.info("Planner has nothing more to do: %s", response.content)
        return Directive.halt("done")

    def _notify_failure(self, action: Action, result: ActionResult, context: Dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(
            self.planner.feedback(action.id, False, None, result.error, context)
        )
        self._notifications.add(task)
        task.add_done_callback(self._notification_done)

    def _notification_done(self, task: asyncio.Task) -> None:
        self._notifications.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Planner failure notification failed: %s", error)

    async def drain(self) -> None:
        """Wait for outstanding failure notifications."""
        if self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)
