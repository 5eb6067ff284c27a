from tabpilot.core.bridge import DispatchBridge
from tabpilot.core.browser import (
    BrowserTarget,
    PageTarget,
    TargetRegistry,
    ensure_thread_event_loop,
)
from tabpilot.core.content import handle_message, safe_page_snapshot
from tabpilot.core.errors import (
    ActionError,
    BrowserAgentError,
    ElementNotFoundError,
    MalformedArgumentsError,
    NoActiveTargetError,
    PlannerError,
    TransportError,
    UnsupportedActionError,
)
from tabpilot.core.types import Action, ActionResult, ActionStatus

__all__ = [
    "DispatchBridge",
    "BrowserTarget",
    "PageTarget",
    "TargetRegistry",
    "ensure_thread_event_loop",
    "handle_message",
    "safe_page_snapshot",
    "ActionError",
    "BrowserAgentError",
    "ElementNotFoundError",
    "MalformedArgumentsError",
    "NoActiveTargetError",
    "PlannerError",
    "TransportError",
    "UnsupportedActionError",
    "Action",
    "ActionResult",
    "ActionStatus",
]
