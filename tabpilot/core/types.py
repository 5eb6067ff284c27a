"""Action and ActionResult records shared by the executor, bridge and sequencer."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

from tabpilot.core.errors import TransportError


class ActionStatus(str, Enum):
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (ActionStatus.COMPLETED, ActionStatus.FAILED)


@dataclass
class Action:
    """One primitive browser operation requested by the planner."""

    id: str
    code: str
    description: str = ""
    status: ActionStatus = ActionStatus.QUEUED
    error: Optional[str] = None
    key: Optional[int] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _transition(self, status: ActionStatus) -> None:
        if self.is_terminal:
            raise ValueError(f"Action {self.id} is already {self.status.value}")
        self.status = status

    def begin(self) -> None:
        if self.status != ActionStatus.QUEUED:
            raise ValueError(f"Action {self.id} cannot start from {self.status.value}")
        self._transition(ActionStatus.IN_PROGRESS)

    def complete(self) -> None:
        self._transition(ActionStatus.COMPLETED)

    def fail(self, error: str) -> None:
        self._transition(ActionStatus.FAILED)
        self.error = error

    def finish(self, result: "ActionResult") -> None:
        if result.success:
            self.complete()
        else:
            self.fail(result.error or "Unknown error")

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "status": self.status.value,
        }
        if self.error is not None:
            out["error"] = self.error
        return out

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Action":
        return cls(
            id=str(raw["id"]),
            code=raw["code"],
            description=raw.get("description") or "",
        )


@dataclass
class ActionResult:
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_type: Optional[str] = None
    simulated: bool = False

    @classmethod
    def ok(cls, data: Dict[str, Any], simulated: bool = False) -> "ActionResult":
        return cls(success=True, data=data, simulated=simulated)

    @classmethod
    def failure(cls, error: Union[str, Exception]) -> "ActionResult":
        if isinstance(error, Exception):
            return cls(success=False, error=str(error), error_type=type(error).__name__)
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        """Channel response shape: {success, data?, error?, errorType?, simulated?}."""
        out: Dict[str, Any] = {"success": self.success}
        if self.success:
            out["data"] = dict(self.data)
        else:
            out["error"] = self.error
            if self.error_type:
                out["errorType"] = self.error_type
        if self.simulated:
            out["simulated"] = True
        return out

    @classmethod
    def from_response(cls, response: Any) -> "ActionResult":
        if not isinstance(response, dict) or not isinstance(response.get("success"), bool):
            raise TransportError(f"Malformed response from page: {response!r}")
        if response["success"]:
            return cls.ok(dict(response.get("data") or {}), simulated=bool(response.get("simulated")))
        return cls(
            success=False,
            error=response.get("error") or "Unknown error",
            error_type=response.get("errorType"),
        )
