"""Dispatch bridge: relays actions from the asyncio loop to the active page target."""
import asyncio
import logging
from typing import Any, Dict, Optional

from tabpilot.core.browser import TargetRegistry
from tabpilot.core.content import EXECUTE_ACTION, GET_PAGE_CONTENT
from tabpilot.core.errors import NoActiveTargetError, TransportError
from tabpilot.core.types import Action, ActionResult

logger = logging.getLogger(__name__)


class DispatchBridge:
    """Deliver one action at a time to the active target and map every failure to an ActionResult."""

    def __init__(self, registry: TargetRegistry, timeout: float = 30.0):
        self.registry = registry
        self.timeout = timeout

    async def _request(self, message: Dict[str, Any]) -> Any:
        target = self.registry.active()
        if target is None:
            raise NoActiveTargetError()
        future = target.send(message)
        try:
            return await asyncio.wait_for(asyncio.wrap_future(future), self.timeout)
        except asyncio.TimeoutError:
            future.cancel()
            raise TransportError(f"Target {target.target_id} did not answer within {self.timeout}s")

    async def dispatch(self, action: Action) -> ActionResult:
        message = {"type": EXECUTE_ACTION, "action": {"code": action.code}}
        try:
            response = await self._request(message)
            result = ActionResult.from_response(response)
        except (NoActiveTargetError, TransportError) as e:
            logger.warning("Dispatch of %s failed: %s", action.id, e)
            return ActionResult.failure(e)
        logger.info("Action %s -> success=%s", action.id, result.success)
        return result

    async def page_content(self) -> Optional[Dict[str, Any]]:
        """Title, url and leading body text of the active page, or None when unavailable."""
        try:
            response = await self._request({"type": GET_PAGE_CONTENT})
        except (NoActiveTargetError, TransportError) as e:
            logger.info("Page content unavailable: %s", e)
            return None
        if not isinstance(response, dict) or not response.get("success"):
            return None
        return response.get("data")
