"""Central config: env vars, model names, executor mode and timing."""
import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Load .env from project root (system env vars still take precedence)
_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
load_dotenv(os.path.join(_root, ".env"), override=False)

EXECUTOR_MODES = ("live", "simulated")


def get_api_key() -> str:
    return os.getenv("ANTHROPIC_API_KEY") or ""


def get_planner_model() -> str:
    return os.getenv("PLANNER_MODEL", "claude-haiku-4-5-20251001")


def get_model_candidates() -> list:
    candidates = [
        (os.getenv("CLAUDE_MODEL") or "").strip(),
        get_planner_model(),
        "claude-sonnet-4-5",
        "claude-3-7-sonnet-latest",
        "claude-3-5-haiku-latest",
    ]
    seen = set()
    out = []
    for c in candidates:
        if c and c not in seen:
            out.append(c)
            seen.add(c)
    return out


def get_executor_mode() -> str:
    mode = os.getenv("EXECUTOR_MODE", "live").strip().lower()
    if mode not in EXECUTOR_MODES:
        logger.warning("Unknown EXECUTOR_MODE %r, using 'live'", mode)
        return "live"
    return mode


def get_headless() -> bool:
    return os.getenv("HEADLESS", "false").strip().lower() in ("1", "true", "yes")


def get_start_url() -> str:
    return os.getenv("START_URL", "")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default


def get_inter_action_delay() -> float:
    return _get_float("INTER_ACTION_DELAY", 0.5)


def get_simulated_delay() -> float:
    return _get_float("SIMULATED_DELAY", 1.0)


def get_dispatch_timeout() -> float:
    return _get_float("DISPATCH_TIMEOUT", 30.0)


def get_log_level() -> str:
    return os.getenv("LOG_LEVEL", "INFO").upper()


def configure_logging() -> None:
    logging.basicConfig(
        level=get_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
