from tabpilot.agent.auto import BrowserAgent, TurnResult, open_target, run_auto_agent
from tabpilot.agent.feedback import Directive, FeedbackController, PassiveFeedback
from tabpilot.agent.sequencer import ExecutionSequencer, ExecutionState

__all__ = [
    "BrowserAgent",
    "TurnResult",
    "open_target",
    "run_auto_agent",
    "Directive",
    "FeedbackController",
    "PassiveFeedback",
    "ExecutionSequencer",
    "ExecutionState",
]
