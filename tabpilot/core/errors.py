"""Error taxonomy: per-action failures (carried as data) and turn-level faults."""


class BrowserAgentError(Exception):
    """Base class for every error raised by tabpilot."""


class ActionError(BrowserAgentError):
    """A failure of a single action. Never crosses the sequencer as an exception."""


class UnsupportedActionError(ActionError):
    def __init__(self, code: str, message: str = ""):
        self.code = code
        super().__init__(message or f"Unsupported action: {code}")


class MalformedArgumentsError(UnsupportedActionError):
    """The verb is known but its argument list has the wrong shape."""

    def __init__(self, code: str, reason: str):
        self.reason = reason
        super().__init__(code, f"Malformed arguments in {code}: {reason}")


class ElementNotFoundError(ActionError):
    def __init__(self, selector: str):
        self.selector = selector
        super().__init__(f"Element not found: {selector}")


class NoActiveTargetError(ActionError):
    def __init__(self, message: str = "No active tab found"):
        super().__init__(message)


class TransportError(ActionError):
    """The dispatch channel could not deliver the action or its result."""


class PlannerError(BrowserAgentError):
    """The planner call failed; fatal to the current turn."""
