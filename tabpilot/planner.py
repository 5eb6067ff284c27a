"""LLM planner: instruction or execution feedback + context -> {content, actions}."""
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

import anthropic
from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from tabpilot import config
from tabpilot.core.errors import PlannerError
from tabpilot.core.types import Action

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Execute browser action"

ACTIONS_HELP = """Available browser actions:
- navigate("<url>"): Navigate to a URL, or to a path on the current site
- click("<selector>"): Click on an element matching the CSS selector
- type("<selector>", "<text>"): Type text into an input field matching the selector
- press("<key>"): Press a keyboard key (e.g. "Enter", "ArrowDown")

Arguments are always double-quoted and cannot contain double quotes."""

PLAN_PROMPT = f"""You are a browser automation agent. Your job is to help users perform tasks in their web browser by generating a sequence of actions.

{ACTIONS_HELP}

For each user instruction, respond with JSON only:
{{
  "content": "a concise explanation of what you'll do",
  "actions": [
    {{"id": "action-1", "code": "navigate(\\"https://www.google.com\\")", "description": "Navigate to Google"}}
  ]
}}

Keep your actions precise and focused. Break complex tasks into smaller steps."""

FEEDBACK_PROMPT = f"""You are a browser automation agent. Your job is to help users perform tasks in their web browser by generating browser actions.

{ACTIONS_HELP}

Based on the execution feedback, decide whether new actions are needed.
If the task is complete, respond with a summary and an empty "actions" array.
If an action failed, you may propose a corrected action.

Respond with JSON only:
{{
  "content": "what you're doing next",
  "actions": [
    {{"id": "action-1", "code": "click(\\".result-link\\")", "description": "Click on the first search result"}}
  ]
}}"""


@dataclass
class PlannerResponse:
    content: str
    actions: List[Action] = field(default_factory=list)


class Planner(Protocol):
    async def plan(self, instruction: str, context: Dict[str, Any]) -> PlannerResponse: ...

    async def feedback(
        self,
        action_id: str,
        success: bool,
        result: Optional[Dict[str, Any]],
        error: Optional[str],
        context: Dict[str, Any],
    ) -> PlannerResponse: ...


def extract_json(text: Optional[str]) -> Optional[str]:
    """Extract first JSON object from markdown (e.g. ```json ... ```). Returns stripped text or None."""
    if not text or not text.strip():
        return None
    text = text.strip()
    m = re.search(r"```(?:json)?\s*\n?(.*?)\n?```", text, re.DOTALL)
    if m:
        return m.group(1).strip()
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    for i in range(start, len(text)):
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _random_id() -> str:
    return f"action-{uuid.uuid4().hex[:7]}"


def normalize_actions(raw_actions: List[Any], id_factory: Callable[[int], str]) -> List[Action]:
    actions = []
    for index, raw in enumerate(raw_actions):
        if isinstance(raw, str):
            raw = {"code": raw}
        if not isinstance(raw, dict):
            continue
        code = raw.get("code") or raw.get("action")
        if not isinstance(code, str) or not code.strip():
            logger.warning("Skipping planner action without code: %s", raw)
            continue
        actions.append(
            Action(
                id=str(raw.get("id") or id_factory(index)),
                code=code,
                description=raw.get("description") or DEFAULT_DESCRIPTION,
            )
        )
    return actions


def parse_plan(text: str) -> PlannerResponse:
    data = _load(text)
    content = data.get("content") or data.get("explanation") or data.get("message") or "I'll help you with that task."
    raw_actions = data.get("actions")
    if not isinstance(raw_actions, list):
        raw_actions = data.get("steps") if isinstance(data.get("steps"), list) else []
    return PlannerResponse(content, normalize_actions(raw_actions, lambda i: f"action-{i + 1}"))


def parse_feedback(text: str) -> PlannerResponse:
    data = _load(text)
    content = data.get("content") or data.get("message") or "Continuing with the task."
    raw_actions = data.get("actions")
    if not isinstance(raw_actions, list):
        raw_actions = data.get("nextActions") if isinstance(data.get("nextActions"), list) else []
    return PlannerResponse(content, normalize_actions(raw_actions, lambda i: _random_id()))


def _load(text: str) -> Dict[str, Any]:
    to_parse = extract_json(text)
    if to_parse is None:
        to_parse = (text or "").strip()
    if not to_parse:
        raise ValueError("Empty response from model")
    data = json.loads(to_parse)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
    return data


def to_lc_messages(history: List[Dict[str, Any]]) -> List[BaseMessage]:
    out: List[BaseMessage] = []
    for m in history:
        role = m.get("role")
        content = m.get("content", "")
        if role == "user":
            out.append(HumanMessage(content=content))
        elif role == "assistant":
            actions = m.get("actions")
            if actions:
                content = f"{content}\nActions: {json.dumps(actions)}"
            out.append(AIMessage(content=content))
        else:
            # Anthropic only accepts a leading system prompt; mid-conversation feedback goes in as a user turn.
            out.append(HumanMessage(content=f"[Execution feedback] {content}"))
    return out


def format_page(page: Optional[Dict[str, Any]]) -> str:
    if not page:
        return ""
    return f"\n\nCurrent page:\nURL: {page.get('url')}\nTitle: {page.get('title')}\nText: {page.get('text')}"


def is_model_not_found_error(e: Exception) -> bool:
    if isinstance(e, anthropic.NotFoundError):
        return True
    txt = str(e).lower()
    return ("not_found" in txt and "model" in txt) or ("not_found_error" in txt)


def build_llm(model_name: str):
    return ChatAnthropic(
        model=model_name,
        api_key=config.get_api_key(),
        temperature=0.2,
        max_tokens=1024,
    )


def _text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, list):
        return "".join(b.get("text", "") if isinstance(b, dict) else str(b) for b in content)
    return content or ""


class LLMPlanner:
    """Planner backed by a chat model, falling back through the configured model candidates."""

    def __init__(self, model_candidates: Optional[List[str]] = None, llm_factory: Callable[[str], Any] = build_llm):
        self.model_candidates = model_candidates or config.get_model_candidates()
        self.llm_factory = llm_factory
        self.model_index = 0

    @property
    def model_in_use(self) -> str:
        return self.model_candidates[self.model_index]

    async def _invoke(self, messages: List[BaseMessage]) -> str:
        while True:
            model = self.model_in_use
            try:
                response = await self.llm_factory(model).ainvoke(messages)
                return _text(response)
            except Exception as e:
                if is_model_not_found_error(e) and self.model_index + 1 < len(self.model_candidates):
                    logger.warning("Model %s not available, trying %s", model, self.model_candidates[self.model_index + 1])
                    self.model_index += 1
                    continue
                raise

    async def plan(self, instruction: str, context: Dict[str, Any]) -> PlannerResponse:
        messages = [SystemMessage(content=PLAN_PROMPT)]
        messages += to_lc_messages(context.get("messages", []))
        messages.append(HumanMessage(content=f"{instruction}{format_page(context.get('page'))}\n\n(Respond in JSON format)"))
        logger.info("Planning instruction with %s", self.model_in_use)
        try:
            return parse_plan(await self._invoke(messages))
        except Exception as e:
            raise PlannerError(f"Failed to process instruction: {e}") from e

    async def feedback(
        self,
        action_id: str,
        success: bool,
        result: Optional[Dict[str, Any]],
        error: Optional[str],
        context: Dict[str, Any],
    ) -> PlannerResponse:
        if success:
            note = f"Action {action_id} completed successfully. Result: {json.dumps(result)}"
        else:
            note = f"Action {action_id} failed. Error: {error}"
        messages = [SystemMessage(content=FEEDBACK_PROMPT)]
        messages += to_lc_messages(context.get("messages", []))
        messages.append(HumanMessage(content=f"{note}{format_page(context.get('page'))}\n\n(Respond in JSON format with your next steps.)"))
        logger.info("Sending feedback for %s (success=%s)", action_id, success)
        try:
            return parse_feedback(await self._invoke(messages))
        except Exception as e:
            raise PlannerError(f"Failed to process feedback: {e}") from e


class ScriptedPlanner:
    """Planner that replays fixed responses; used for dev runs without a model."""

    def __init__(self, plan: PlannerResponse, follow_ups: Optional[List[PlannerResponse]] = None):
        self._plan = plan
        self._follow_ups = list(follow_ups or [])
        self.feedback_calls: List[Dict[str, Any]] = []

    async def plan(self, instruction: str, context: Dict[str, Any]) -> PlannerResponse:
        return PlannerResponse(self._plan.content, [Action(a.id, a.code, a.description) for a in self._plan.actions])

    async def feedback(self, action_id, success, result, error, context) -> PlannerResponse:
        self.feedback_calls.append({"action_id": action_id, "success": success, "result": result, "error": error})
        if self._follow_ups and success:
            return self._follow_ups.pop(0)
        return PlannerResponse("Done." if success else f"Stopped: {error}")
