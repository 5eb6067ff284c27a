import argparse
import json
import sys

from tabpilot import config
from tabpilot.agent.auto import run_auto_agent
from tabpilot.core.errors import PlannerError
from tabpilot.core.types import Action
from tabpilot.planner import PlannerResponse, ScriptedPlanner


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Turn an instruction into browser actions and run them.")
    parser.add_argument("instruction", help="What to do in the browser")
    parser.add_argument("--start-url", default=config.get_start_url() or None)
    parser.add_argument("--session-id", default=None)
    parser.add_argument("--mode", choices=config.EXECUTOR_MODES, default=None, help="Executor mode (default: EXECUTOR_MODE)")
    parser.add_argument("--headless", action="store_true", default=None)
    parser.add_argument(
        "--actions",
        nargs="+",
        metavar="CODE",
        help='Skip the model and run these action codes, e.g. navigate("https://example.com")',
    )
    return parser


def scripted_planner(codes) -> ScriptedPlanner:
    actions = [Action(id=f"action-{i + 1}", code=code, description="Scripted action") for i, code in enumerate(codes)]
    return ScriptedPlanner(PlannerResponse("Running scripted actions.", actions))


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config.configure_logging()
    planner = scripted_planner(args.actions) if args.actions else None
    try:
        result = run_auto_agent(
            instruction=args.instruction,
            start_url=args.start_url,
            session_id=args.session_id,
            mode=args.mode,
            planner=planner,
            headless=args.headless,
        )
    except PlannerError as e:
        print(f"Planner failed: {e}", file=sys.stderr)
        return 2

    print(result.content)
    for action in result.actions:
        line = f"  [{action.status.value}] {action.id}: {action.code}"
        if action.error:
            line += f" -> {action.error}"
        print(line)
    print(json.dumps(result.status["progress"]))
    if result.error:
        print(f"Stopped: {result.error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
