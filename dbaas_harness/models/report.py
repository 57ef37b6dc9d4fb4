"""
Per-step outcome of a workflow run.
"""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class StepOutcome(str, Enum):
    CREATED = "CREATED"
    DELETED = "DELETED"
    READY = "READY"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class StepResult(BaseModel):
    step: str
    resource: str = ""
    outcome: StepOutcome
    error: Optional[str] = None


class WorkflowReport(BaseModel):
    """Ordered record of what a provision or deprovision run did."""

    workflow: str
    run_id: str = ""
    steps: List[StepResult] = Field(default_factory=list)

    def record(
        self,
        step: str,
        resource: str,
        outcome: StepOutcome,
        error: Optional[str] = None,
    ) -> StepResult:
        result = StepResult(step=step, resource=resource, outcome=outcome, error=error)
        self.steps.append(result)
        return result

    def outcome_of(self, step: str) -> Optional[StepOutcome]:
        """Outcome of the last step with this name, if it ran."""
        for result in reversed(self.steps):
            if result.step == step:
                return result.outcome
        return None

    @property
    def failed_steps(self) -> List[StepResult]:
        return [s for s in self.steps if s.outcome is StepOutcome.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed_steps
