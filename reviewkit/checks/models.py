"""Workflow job and step metadata as reported by the Actions API."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class StepConclusion(Enum):
    """Conclusion of a finished step or check run."""
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    NEUTRAL = "neutral"
    TIMED_OUT = "timed_out"
    ACTION_REQUIRED = "action_required"
    STALE = "stale"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["StepConclusion"]:
        """Parse an API conclusion string; unknown or empty values give None."""
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class StepMetadata:
    """One step of a workflow job, independent of its log content."""

    number: int
    name: str
    conclusion: Optional[StepConclusion] = None
    status: Optional[str] = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "StepMetadata":
        return cls(
            number=int(data.get("number", 0)),
            name=str(data.get("name", "")),
            conclusion=StepConclusion.parse(data.get("conclusion")),
            status=data.get("status"),
        )

    @property
    def failed(self) -> bool:
        return self.conclusion is StepConclusion.FAILURE


@dataclass
class WorkflowJob:
    """A workflow job with its ordered steps."""

    id: int
    name: str
    run_id: Optional[int] = None
    run_attempt: Optional[int] = None
    status: Optional[str] = None
    conclusion: Optional[StepConclusion] = None
    html_url: str = ""
    steps: list[StepMetadata] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "WorkflowJob":
        """Build a job from a ``GET /actions/jobs/{id}`` payload."""
        run_id = data.get("run_id")
        run_attempt = data.get("run_attempt")
        return cls(
            id=int(data.get("id", 0)),
            name=str(data.get("name", "")),
            run_id=int(run_id) if run_id is not None else None,
            run_attempt=int(run_attempt) if run_attempt is not None else None,
            status=data.get("status"),
            conclusion=StepConclusion.parse(data.get("conclusion")),
            html_url=data.get("html_url") or "",
            steps=[StepMetadata.from_api(s) for s in data.get("steps") or []],
        )

    def failed_steps(self) -> list[StepMetadata]:
        return [s for s in self.steps if s.failed]
