"""Streamlit control panel: one browser session per Streamlit session, instruction turns run through the agent."""
import asyncio
import sys
import traceback
import uuid

import streamlit as st

from tabpilot import config
from tabpilot.agent.auto import BrowserAgent, open_target
from tabpilot.core.bridge import DispatchBridge
from tabpilot.core.browser import TargetRegistry
from tabpilot.core.errors import PlannerError
from tabpilot.planner import LLMPlanner
from tabpilot.storage import MemoryStorage

config.configure_logging()

st.set_page_config(page_title="tabpilot", page_icon="🧭", layout="wide")
st.title("tabpilot: instruction -> browser actions")
st.caption(
    "Each instruction is planned, then executed one action at a time with feedback after every step. "
    "A turn runs until the planner is done or an action fails; stopping mid-turn is only available "
    "from the Python API (BrowserAgent.stop_execution)."
)

# Session state
if "session_id" not in st.session_state:
    st.session_state.session_id = str(uuid.uuid4())
if "registry" not in st.session_state:
    st.session_state.registry = TargetRegistry()
if "storage" not in st.session_state:
    st.session_state.storage = MemoryStorage()
if "agent" not in st.session_state:
    st.session_state.agent = None
if "last_traceback" not in st.session_state:
    st.session_state.last_traceback = ""
if "mode" not in st.session_state:
    st.session_state.mode = config.get_executor_mode()


def close_session() -> None:
    st.session_state.registry.stop_browser_session(st.session_state.session_id)
    st.session_state.agent = None


def get_agent(start_url: str) -> BrowserAgent:
    """Reuse the session's agent while its page is alive; otherwise open a fresh one."""
    registry = st.session_state.registry
    if st.session_state.agent is not None and registry.active() is not None:
        return st.session_state.agent
    open_target(registry, st.session_state.session_id, mode=st.session_state.mode, start_url=start_url or None)
    st.session_state.agent = BrowserAgent(
        LLMPlanner(),
        DispatchBridge(registry, timeout=config.get_dispatch_timeout()),
        storage=st.session_state.storage,
        session_id=st.session_state.session_id,
    )
    return st.session_state.agent


# Sidebar
with st.sidebar:
    st.subheader("Executor")
    modes = list(config.EXECUTOR_MODES)
    mode = st.radio("Mode", modes, index=modes.index(st.session_state.mode), key="mode_radio")
    if mode != st.session_state.mode:
        close_session()
        st.session_state.mode = mode
    st.caption("live drives a Chromium window; simulated fabricates results without a page.")

    st.subheader("Claude Model")
    if not config.get_api_key():
        st.error("API key missing. Set ANTHROPIC_API_KEY in system env, or create a .env file in the project root with: ANTHROPIC_API_KEY=sk-ant-...")
        st.caption("If you set system env, restart the terminal/IDE before running streamlit.")
    st.code("\n".join(config.get_model_candidates()[:5]))

    st.subheader("Debug")
    with st.expander("Last traceback"):
        st.code(st.session_state.get("last_traceback") or "(none)")

    if sys.platform.startswith("win"):
        st.caption("Windows: Proactor event loop is set for Playwright in page threads.")

    st.subheader("Browser session")
    st.code(st.session_state.session_id)
    if st.button("Close browser session"):
        try:
            close_session()
            st.success("Browser session closed.")
        except Exception as e:
            st.error(str(e))


# Main area
instruction = st.text_input("Instruction", placeholder="e.g. Search for a product and add it to cart.")
start_url = st.text_input("Start URL", value=config.get_start_url() or "https://www.saucedemo.com/")
if st.button("Run"):
    if not instruction:
        st.warning("Provide an instruction.")
    else:
        with st.spinner("Planning and executing…"):
            try:
                agent = get_agent(start_url)
                result = asyncio.run(agent.handle_instruction(instruction))
                progress = result.status.get("progress", {})
                if result.error:
                    st.error(f"Stopped: {result.error}")
                else:
                    st.success(f"Completed {progress.get('completed', 0)} of {progress.get('total', 0)} actions.")
                st.markdown(result.content)
                with st.expander("Actions"):
                    st.json([a.to_dict() for a in result.actions])
            except PlannerError as e:
                st.session_state.last_traceback = traceback.format_exc()
                st.error(str(e))
            except Exception as e:
                st.session_state.last_traceback = traceback.format_exc()
                st.error(f"{type(e).__name__}: {e}")

agent = st.session_state.agent
if agent is not None:
    st.subheader("Status")
    st.json(agent.get_status())

    st.subheader("Conversation")
    for entry in asyncio.run(st.session_state.storage.get_conversations(st.session_state.session_id)):
        role = {"user": "user", "agent": "assistant"}.get(entry.type.value)
        if role is None:
            with st.expander("Execution feedback", expanded=False):
                st.code(entry.content)
        else:
            with st.chat_message(role):
                st.markdown(entry.content)
