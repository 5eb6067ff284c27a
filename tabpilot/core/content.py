"""Page-side message handler: runs in the thread that owns the page."""
import logging
from typing import Any, Dict, Optional

from tabpilot.core.types import ActionResult

logger = logging.getLogger(__name__)

EXECUTE_ACTION = "executeAction"
EXECUTE = "execute"
GET_PAGE_CONTENT = "getPageContent"

PAGE_TEXT_LIMIT = 1000


def safe_page_snapshot(page, max_chars: int = PAGE_TEXT_LIMIT) -> Dict[str, Any]:
    title = None
    url = None
    body = ""
    try:
        title = (page.title() or "").strip() or None
    except Exception:
        title = None
    try:
        url = page.url
    except Exception:
        url = None
    try:
        body = (page.inner_text("body") or "")[:max_chars]
    except Exception:
        body = ""
    return {"title": title, "url": url, "text": body}


def _action_code(message: Dict[str, Any]) -> Optional[str]:
    if message.get("type") == EXECUTE_ACTION:
        action = message.get("action") or {}
        return action.get("code")
    if message.get("type") == EXECUTE or message.get("action") == EXECUTE:
        return message.get("code")
    return None


def handle_message(message: Dict[str, Any], executor, page) -> Dict[str, Any]:
    """Answer one channel message with a JSON-compatible response."""
    logger.debug("Page received message: %s", message)
    kind = message.get("type")
    if kind == GET_PAGE_CONTENT:
        if page is None:
            return {"success": False, "error": "No page context available"}
        return {"success": True, "data": safe_page_snapshot(page)}
    if kind in (EXECUTE_ACTION, EXECUTE) or message.get("action") == EXECUTE:
        code = _action_code(message)
        if not isinstance(code, str):
            return ActionResult.failure(f"Message carries no action code: {message!r}").to_dict()
        return executor.execute_code(code, page).to_dict()
    return {"success": False, "error": f"Unsupported message type: {kind}"}
